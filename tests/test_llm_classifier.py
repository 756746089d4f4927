import asyncio

import pytest

from conftest import ScriptedModel
from core.errors import ClassificationUnavailable
from core.intent_catalog import IntentCatalog
from core.llm_classifier import LLMClassifier, parse_json_object, strip_code_fences


def _classifier(*replies):
    model = ScriptedModel(*replies)
    return LLMClassifier(model, IntentCatalog(), timeout=1.0), model


def test_strip_code_fences_handles_language_tags():
    assert strip_code_fences('```json\n{"intent": "HELP"}\n```') == '{"intent": "HELP"}'
    assert strip_code_fences('```\n{"a": 1}```') == '{"a": 1}'
    assert strip_code_fences('{"a": 1}') == '{"a": 1}'


def test_parse_json_object_tolerates_surrounding_prose():
    assert parse_json_object('Sure! {"intent": "HELP"} hope that helps') == {"intent": "HELP"}


def test_parse_json_object_rejects_non_objects():
    with pytest.raises(ClassificationUnavailable):
        parse_json_object("[1, 2, 3]")
    with pytest.raises(ClassificationUnavailable):
        parse_json_object("no json here")


def test_classification_is_validated_against_the_catalog():
    classifier, _ = _classifier()

    with pytest.raises(ClassificationUnavailable):
        classifier.parse_classification('{"intent": "ORDER_PIZZA", "confidence": 0.9}')


def test_confidence_is_clamped_and_empty_parameters_dropped():
    classifier, _ = _classifier()

    high = classifier.parse_classification(
        '{"intent": "INVITE_STUDENTS", "confidence": 7, "parameters": {"courseName": "math 101", "studentEmails": []}}'
    )
    low = classifier.parse_classification('{"intent": "HELP", "confidence": -2}')
    missing = classifier.parse_classification('{"intent": "HELP", "confidence": "very"}')

    assert high.confidence == 1.0
    assert high.parameters == {"courseName": "math 101"}
    assert low.confidence == 0.0
    assert missing.confidence == 0.5


def test_classify_sends_catalog_and_message_in_prompt():
    classifier, model = _classifier('```json\n{"intent": "LIST_COURSES", "confidence": 0.8}\n```')

    result = asyncio.run(classifier.classify("what do I teach?"))

    assert result.intent == "LIST_COURSES"
    assert result.source == "model"
    assert "INVITE_STUDENTS" in model.prompts[0]
    assert model.prompts[0].endswith("User message: what do I teach?")


def test_slow_model_is_reported_as_unavailable():
    class SlowModel:
        async def complete(self, prompt, history=(), *, system=None, temperature=0.1):
            await asyncio.sleep(1)
            return "{}"

    classifier = LLMClassifier(SlowModel(), IntentCatalog(), timeout=0.01)

    with pytest.raises(ClassificationUnavailable):
        asyncio.run(classifier.classify("hello"))


def test_detect_correction_returns_none_when_model_says_no():
    classifier, _ = _classifier('{"isCorrection": false, "parameters": {"courseName": "x"}}')

    changed = asyncio.run(classifier.detect_correction("sorry", [], "LIST_COURSES", {}))

    assert changed is None


def test_detect_correction_accepts_string_flag():
    classifier, _ = _classifier('{"is_correction": "true", "parameters": {"courseName": "biology"}}')

    changed = asyncio.run(classifier.detect_correction("actually biology", [], "GET_COURSE", {"courseName": "math"}))

    assert changed == {"courseName": "biology"}


def test_answer_question_strips_whitespace():
    classifier, _ = _classifier("  Plants turn light into sugar.\n")

    assert asyncio.run(classifier.answer_question("what is photosynthesis?")) == "Plants turn light into sugar."
