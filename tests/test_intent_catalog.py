import pytest

from core.errors import IntentCatalogError
from core.intent_catalog import IntentCatalog, load_intent_catalog, missing_parameter_prompt


def _write(tmp_path, text):
    path = tmp_path / "intents.yaml"
    path.write_text(text, encoding="utf-8")
    return path


def test_default_catalog_contains_control_intents():
    catalog = IntentCatalog()

    for name in ("UNKNOWN", "CANCEL_ACTION", "PROCEED_WITH_AVAILABLE_INFO", "LIST_COURSES", "INVITE_STUDENTS"):
        assert name in catalog
    assert not catalog.is_actionable("GREETING")
    assert catalog.is_actionable("INVITE_STUDENTS")


def test_unknown_names_fall_back_to_unknown_definition():
    assert IntentCatalog().get("ORDER_PIZZA").name == "UNKNOWN"


def test_role_rules():
    catalog = IntentCatalog()

    assert catalog.get("LIST_COURSES").allows(None)
    assert catalog.get("INVITE_STUDENTS").allows("teacher")
    assert not catalog.get("INVITE_STUDENTS").allows("student")
    assert not catalog.get("INVITE_TEACHERS").allows("teacher")
    assert catalog.get("INVITE_TEACHERS").allows("super_admin")


def test_missing_parameters_treat_blank_values_as_absent():
    catalog = IntentCatalog()

    missing = catalog.missing_parameters("INVITE_STUDENTS", {"courseName": "  ", "studentEmails": []})

    assert missing == ["courseName", "studentEmails"]


def test_missing_parameter_prompts():
    assert missing_parameter_prompt("CREATE_COURSE", ["name"]) == "What would you like to call your new class?"
    assert missing_parameter_prompt("CREATE_MEETING", ["timeExpr", "dateExpr"]).startswith("When should the meeting be?")
    combined = missing_parameter_prompt("SEND_EMAIL", ["recipientEmail", "message"])
    assert combined.splitlines()[0] == "I need a few more details:"
    assert len(combined.splitlines()) == 3


def test_prompt_lines_describe_each_intent():
    lines = IntentCatalog().prompt_lines()

    invite = next(line for line in lines if line.startswith("- INVITE_STUDENTS:"))
    assert "courseName (required" in invite
    assert any(line.startswith("- GREETING:") and "no parameters" in line for line in lines)


def test_no_path_loads_defaults():
    assert load_intent_catalog(None).names() == IntentCatalog().names()


def test_yaml_overrides_patch_and_add_intents(tmp_path):
    path = _write(
        tmp_path,
        """
intents:
  LIST_COURSES:
    description: Show every course I can see
  INVITE_TEACHERS:
    allowed_roles: [teacher, super_admin]
  REQUEST_EXTENSION:
    description: Ask for more time on an assignment
    required_parameters: [courseName, assignmentTitle]
    allowed_roles: [student]
""",
    )

    catalog = load_intent_catalog(path)

    assert catalog.get("LIST_COURSES").description == "Show every course I can see"
    assert catalog.get("INVITE_TEACHERS").allows("teacher")
    assert catalog.get("INVITE_TEACHERS").required_parameters == ("courseName", "emails")
    extension = catalog.get("REQUEST_EXTENSION")
    assert extension.required_parameters == ("courseName", "assignmentTitle")
    assert extension.allows("student") and not extension.allows("teacher")


def test_null_roles_open_an_intent_to_everyone(tmp_path):
    path = _write(tmp_path, "intents:\n  DELETE_COURSE:\n    allowed_roles: null\n")

    assert load_intent_catalog(path).get("DELETE_COURSE").allows("student")


@pytest.mark.parametrize(
    "text",
    [
        "- just\n- a list\n",
        "intents: [LIST_COURSES]\n",
        "intents:\n  LIST_COURSES: plain text\n",
        "intents:\n  NEW_THING:\n    required_parameters: [x]\n",
        "intents:\n  LIST_COURSES:\n    optional_parameters: courseName\n",
        "intents: {LIST_COURSES: [unclosed\n",
    ],
)
def test_malformed_overrides_raise(tmp_path, text):
    with pytest.raises(IntentCatalogError):
        load_intent_catalog(_write(tmp_path, text))


def test_missing_override_file_raises(tmp_path):
    with pytest.raises(IntentCatalogError):
        load_intent_catalog(tmp_path / "absent.yaml")
