import asyncio
from datetime import datetime, timezone

import pytest

from core.action_context import ActionContext
from core.errors import AmbiguousReference, BackendError, EntityNotFound, MissingParameter
from tools.assignment_tool import check_submissions, create_assignment, list_assignments
from tools.course_tool import create_course, delete_course, get_course, update_course
from tools.email_tool import read_email, send_email
from tools.grade_tool import grade_assignment, show_course_grades
from tools.roster_tool import invite_students, show_enrolled_students

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)

JOHN = {"userId": "s1", "profile": {"name": {"fullName": "John Smith"}, "emailAddress": "john@example.com"}}
JANE = {"userId": "s2", "profile": {"name": {"fullName": "Jane Smith"}, "emailAddress": "jane@example.com"}}


def _ctx(backend, intent, role="teacher"):
    return ActionContext(intent=intent, backend=backend, token="t", role=role, clock=lambda: NOW)


def _physics(backend, **extra):
    backend.seed("courses", [{"id": "7", "name": "Physics 352", **extra}, {"id": "8", "name": "Chemistry 101"}])


def test_get_course_shows_details(backend):
    _physics(backend, section="B", enrollmentCode="abc123")

    response = asyncio.run(get_course({"courseName": "physics"}, _ctx(backend, "GET_COURSE")))

    assert response.message.splitlines() == [
        "Course details for Physics 352:",
        "- Section: B",
        "- Enrollment code: abc123",
    ]


def test_unknown_course_names_the_available_ones(backend):
    _physics(backend)

    with pytest.raises(EntityNotFound) as excinfo:
        asyncio.run(get_course({"courseName": "biology"}, _ctx(backend, "GET_COURSE")))

    assert excinfo.value.user_message == 'I couldn\'t find a course matching "biology". Your courses are: Physics 352, Chemistry 101.'


def test_course_list_is_fetched_on_every_lookup(backend):
    _physics(backend)
    ctx = _ctx(backend, "GET_COURSE")

    asyncio.run(get_course({"courseName": "physics"}, ctx))
    backend.items("courses").pop(0)
    with pytest.raises(EntityNotFound):
        asyncio.run(get_course({"courseName": "physics"}, ctx))

    assert backend.count("list", "courses") == 2


def test_create_course_activates_it(backend):
    response = asyncio.run(create_course({"name": "Advanced Physics", "section": "A"}, _ctx(backend, "CREATE_COURSE")))

    created = backend.items("courses")[0]
    assert created["courseState"] == "ACTIVE"
    assert created["section"] == "A"
    assert response.message == 'Created the course "Advanced Physics".'


def test_created_course_that_cannot_be_activated_is_still_reported(backend):
    backend.fail("patch", "courses", BackendError("The caller does not have permission", http_status=403, status="PERMISSION_DENIED"))

    response = asyncio.run(create_course({"name": "Advanced Physics"}, _ctx(backend, "CREATE_COURSE")))

    assert response.kind == "completed"
    assert response.message.startswith('Created the course "Advanced Physics", but it still needs activation')
    assert response.data["needsActivation"] is True
    assert backend.items("courses")[0]["courseState"] == "PROVISIONED"
    assert backend.count("create", "courses") == 1


def test_update_course_renames(backend):
    _physics(backend)

    response = asyncio.run(update_course({"courseName": "physics", "newName": "Physics 353"}, _ctx(backend, "UPDATE_COURSE")))

    assert response.message == "Updated Physics 352: set name to Physics 353."
    assert backend.items("courses")[0]["name"] == "Physics 353"


def test_update_course_without_changes_asks(backend):
    _physics(backend)

    with pytest.raises(MissingParameter):
        asyncio.run(update_course({"courseName": "physics"}, _ctx(backend, "UPDATE_COURSE")))


def test_delete_course_by_stale_id_is_not_found(backend):
    _physics(backend)

    with pytest.raises(EntityNotFound) as excinfo:
        asyncio.run(delete_course({"courseId": "99"}, _ctx(backend, "DELETE_COURSE")))

    assert "no longer exists" in excinfo.value.user_message


def test_create_assignment_with_due_date(backend):
    _physics(backend)
    params = {"courseName": "physics 352", "title": "Math Quiz", "dueDate": "next friday", "maxPoints": "20"}

    response = asyncio.run(create_assignment(params, _ctx(backend, "CREATE_ASSIGNMENT")))

    assert response.message == 'Created the assignment "Math Quiz" in Physics 352, due 2026-03-06.'
    body = backend.items("coursework", course_id="7")[0]
    assert body["dueDate"] == {"year": 2026, "month": 3, "day": 6}
    assert body["maxPoints"] == 20.0


def test_create_assignment_rejects_past_due_date(backend):
    _physics(backend)
    params = {"courseName": "physics 352", "title": "Late", "dueDate": "2026-01-01"}

    with pytest.raises(MissingParameter) as excinfo:
        asyncio.run(create_assignment(params, _ctx(backend, "CREATE_ASSIGNMENT")))

    assert excinfo.value.parameters == ["dueDate"]
    assert backend.count("create") == 0


def test_list_assignments_suggests_creating_one(backend):
    _physics(backend)

    response = asyncio.run(list_assignments({"courseName": "physics"}, _ctx(backend, "LIST_ASSIGNMENTS", "student")))

    assert response.message.startswith("No assignments found in Physics 352.")


def _gradebook(backend):
    _physics(backend)
    backend.seed("coursework", [{"id": "w1", "title": "Test 1", "maxPoints": 100}, {"id": "w2", "title": "Test 2"}], course_id="7")
    backend.seed("students", [JOHN, JANE], course_id="7")
    backend.seed(
        "submissions",
        [{"id": "sub1", "userId": "s1", "state": "TURNED_IN"}, {"id": "sub2", "userId": "s2", "state": "CREATED"}],
        course_id="7",
        coursework_id="w1",
    )


def test_grade_assignment_patches_the_submission(backend):
    _gradebook(backend)
    params = {
        "courseName": "physics 352",
        "assignmentTitle": "test 1",
        "studentEmail": "john@example.com",
        "assignedGrade": "95",
    }

    response = asyncio.run(grade_assignment(params, _ctx(backend, "GRADE_ASSIGNMENT")))

    assert response.message == 'Graded John Smith 95/100 on "Test 1" in Physics 352.'
    patched = backend.items("submissions", course_id="7", coursework_id="w1")[0]
    assert patched["assignedGrade"] == 95.0


def test_grade_above_max_points_asks_again(backend):
    _gradebook(backend)
    params = {"courseName": "physics", "assignmentTitle": "test 1", "studentEmail": "john@example.com", "assignedGrade": "120"}

    with pytest.raises(MissingParameter) as excinfo:
        asyncio.run(grade_assignment(params, _ctx(backend, "GRADE_ASSIGNMENT")))

    assert "worth at most 100 points" in excinfo.value.prompt


def test_grade_with_ambiguous_assignment_title(backend):
    _gradebook(backend)
    params = {"courseName": "physics", "assignmentTitle": "test", "studentEmail": "john@example.com", "assignedGrade": "90"}

    with pytest.raises(AmbiguousReference) as excinfo:
        asyncio.run(grade_assignment(params, _ctx(backend, "GRADE_ASSIGNMENT")))

    assert excinfo.value.parameter == "assignmentId"
    assert excinfo.value.data["courseId"] == "7"


def test_grade_with_ambiguous_student_name(backend):
    _gradebook(backend)
    params = {"courseName": "physics", "assignmentTitle": "test 1", "studentEmail": "smith", "assignedGrade": "90"}

    with pytest.raises(AmbiguousReference) as excinfo:
        asyncio.run(grade_assignment(params, _ctx(backend, "GRADE_ASSIGNMENT")))

    assert [option["id"] for option in excinfo.value.options] == ["s1", "s2"]


def test_show_course_grades(backend):
    _gradebook(backend)
    backend.items("submissions", course_id="7", coursework_id="w1")[0]["assignedGrade"] = 88

    response = asyncio.run(show_course_grades({"courseName": "physics"}, _ctx(backend, "SHOW_COURSE_GRADES")))

    assert response.message.splitlines() == [
        "Grades for Physics 352:",
        "- John Smith: Test 1 88/100, Test 2 -",
        "- Jane Smith: Test 1 -, Test 2 -",
    ]


def test_check_submissions_splits_turned_in_and_pending(backend):
    _gradebook(backend)

    response = asyncio.run(
        check_submissions({"courseName": "physics", "assignmentTitle": "test 1"}, _ctx(backend, "CHECK_ASSIGNMENT_SUBMISSIONS"))
    )

    assert response.message.splitlines() == [
        'Submissions for "Test 1": 1 of 2 turned in.',
        "Turned in: John Smith",
        "Not yet submitted: Jane Smith",
    ]


def test_roster_lists_names_and_emails(backend):
    _gradebook(backend)

    response = asyncio.run(show_enrolled_students({"courseName": "physics"}, _ctx(backend, "SHOW_ENROLLED_STUDENTS")))

    assert response.message.splitlines()[1] == "1. John Smith <john@example.com>"


def test_invitations_report_partial_failures(backend):
    _physics(backend)
    backend.fail(
        "create",
        "invitations",
        BackendError("Already invited.", http_status=409),
        BackendError("Bad email.", http_status=400),
    )
    params = {"courseName": "physics", "studentEmails": ["a@x.com", "b@x.com", "c@x.com"]}

    response = asyncio.run(invite_students(params, _ctx(backend, "INVITE_STUDENTS")))

    assert response.message.splitlines() == [
        "Invited 2 students to Physics 352: a@x.com, c@x.com.",
        "Could not invite b@x.com: Bad email.",
    ]
    assert response.data["failed"] == ["b@x.com"]


def test_invitations_all_failing_raise_last_error(backend):
    _physics(backend)
    backend.fail("create", "invitations", BackendError("Service down", http_status=503))

    with pytest.raises(BackendError) as excinfo:
        asyncio.run(invite_students({"courseName": "physics", "studentEmails": ["a@x.com"]}, _ctx(backend, "INVITE_STUDENTS")))

    assert excinfo.value.kind == "transient"


def test_send_and_read_email(backend):
    ctx = _ctx(backend, "SEND_EMAIL")

    sent = asyncio.run(send_email({"recipientEmail": "bob@example.com", "message": "hi"}, ctx))
    inbox = asyncio.run(read_email({"senderEmail": "nobody@example.com"}, ctx))

    assert sent.message == 'Sent your email to bob@example.com with subject "Message from your classroom assistant".'
    assert backend.items("messages")[0]["to"] == "bob@example.com"
    assert inbox.message.startswith("Recent emails from nobody@example.com (1 of 1):")
