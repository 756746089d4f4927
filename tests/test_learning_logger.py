import asyncio
import json

from conftest import TEACHER
from core.errors import BackendError
from core.learning_logger import LearningLogger, ReviewItem, TurnRecord


def _read_lines(path):
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines() if line.strip()]


def _turn(**overrides):
    values = dict(
        conversation_id="c1",
        user_text="list my courses",
        intent="LIST_COURSES",
        confidence=0.95,
        source="pattern",
        outcome="completed",
        response_text="Your courses (1):\n1. Math 101",
    )
    values.update(overrides)
    return TurnRecord.new(**values)


def test_learning_logger_writes_jsonl_records(tmp_path):
    turn_path = tmp_path / "turns.jsonl"
    review_path = tmp_path / "review.jsonl"
    logger = LearningLogger(turn_log_path=turn_path, review_log_path=review_path, enabled=True)

    logger.log_turn(_turn(role="teacher", latency_ms=12))
    logger.log_review_item(
        ReviewItem.new(
            conversation_id="c1",
            user_text="blorp zzz",
            intent="UNKNOWN",
            confidence=0.5,
            reason="unknown_intent",
        )
    )

    turn = _read_lines(turn_path)[0]
    review = _read_lines(review_path)[0]
    assert turn["intent"] == "LIST_COURSES"
    assert turn["outcome"] == "completed"
    assert turn["role"] == "teacher"
    assert turn["parameters"] == {}
    assert turn["timestamp"]
    assert review["reason"] == "unknown_intent"
    assert review["user_text"] == "blorp zzz"


def test_disabled_logger_writes_nothing(tmp_path):
    logger = LearningLogger(
        turn_log_path=tmp_path / "turns.jsonl",
        review_log_path=tmp_path / "review.jsonl",
        enabled=False,
    )

    logger.log_turn(_turn())

    assert not logger.enabled
    assert list(tmp_path.iterdir()) == []


def test_redaction_scrubs_text_and_nested_parameters(tmp_path):
    turn_path = tmp_path / "turns.jsonl"
    logger = LearningLogger(turn_log_path=turn_path, review_log_path=tmp_path / "review.jsonl")

    logger.log_turn(
        _turn(
            user_text="invite john@example.com to math 101",
            intent="INVITE_STUDENTS",
            response_text="Invited 1 student to Math 101: john@example.com.",
            parameters={"courseName": "math 101", "studentEmails": ["john@example.com"]},
        )
    )

    record = _read_lines(turn_path)[0]
    assert record["user_text"] == "invite [REDACTED_EMAIL] to math 101"
    assert record["response_text"] == "Invited 1 student to Math 101: [REDACTED_EMAIL]."
    assert record["parameters"] == {"courseName": "math 101", "studentEmails": ["[REDACTED_EMAIL]"]}
    assert record["conversation_id"] == "c1"


def test_card_numbers_win_over_phone_numbers(tmp_path):
    turn_path = tmp_path / "turns.jsonl"
    logger = LearningLogger(turn_log_path=turn_path, review_log_path=tmp_path / "review.jsonl")

    logger.log_turn(_turn(user_text="see https://example.com/x card 4111 1111 1111 1111"))

    assert _read_lines(turn_path)[0]["user_text"] == "see [REDACTED_URL] card [REDACTED_CREDIT_CARD]"


def test_redaction_can_be_limited_or_disabled(tmp_path):
    limited_path = tmp_path / "limited.jsonl"
    raw_path = tmp_path / "raw.jsonl"
    text = "mail john@example.com or visit https://example.com"

    LearningLogger(
        turn_log_path=limited_path,
        review_log_path=tmp_path / "review.jsonl",
        patterns=["url", "not-a-pattern"],
    ).log_turn(_turn(user_text=text))
    LearningLogger(
        turn_log_path=raw_path,
        review_log_path=tmp_path / "review.jsonl",
        redact=False,
    ).log_turn(_turn(user_text=text))

    assert _read_lines(limited_path)[0]["user_text"] == "mail john@example.com or visit [REDACTED_URL]"
    assert _read_lines(raw_path)[0]["user_text"] == text


def test_rotation_keeps_numbered_backups(tmp_path):
    turn_path = tmp_path / "turns.jsonl"
    logger = LearningLogger(
        turn_log_path=turn_path,
        review_log_path=tmp_path / "review.jsonl",
        max_bytes=10,
        backup_count=2,
    )

    for index in range(3):
        logger.log_turn(_turn(conversation_id=f"c{index}"))

    assert _read_lines(turn_path)[0]["conversation_id"] == "c2"
    assert _read_lines(tmp_path / "turns.jsonl.1")[0]["conversation_id"] == "c1"
    assert _read_lines(tmp_path / "turns.jsonl.2")[0]["conversation_id"] == "c0"


def test_rotation_without_backups_truncates(tmp_path):
    turn_path = tmp_path / "turns.jsonl"
    logger = LearningLogger(
        turn_log_path=turn_path,
        review_log_path=tmp_path / "review.jsonl",
        max_bytes=10,
        backup_count=0,
    )

    logger.log_turn(_turn(conversation_id="first"))
    logger.log_turn(_turn(conversation_id="second"))

    assert [record["conversation_id"] for record in _read_lines(turn_path)] == ["second"]
    assert not (tmp_path / "turns.jsonl.1").exists()


def test_dialogue_logs_turns_and_queues_unknown_input(tmp_path, make_dialogue, backend):
    turn_path = tmp_path / "turns.jsonl"
    review_path = tmp_path / "review.jsonl"
    backend.seed("courses", [{"id": "1", "name": "Math 101"}])
    dialogue = make_dialogue(
        learning_logger=LearningLogger(turn_log_path=turn_path, review_log_path=review_path)
    )

    async def scenario():
        await dialogue.handle_turn("c1", "list my courses", "Bearer test-token", TEACHER)
        await dialogue.handle_turn("c1", "blorp zzz", "Bearer test-token", TEACHER)

    asyncio.run(scenario())

    turns = _read_lines(turn_path)
    reviews = _read_lines(review_path)
    assert [turn["intent"] for turn in turns] == ["LIST_COURSES", "UNKNOWN"]
    assert turns[0]["role"] == "teacher"
    assert turns[0]["latency_ms"] >= 0
    assert [review["reason"] for review in reviews] == ["unknown_intent"]


def test_dialogue_queues_failed_actions(tmp_path, make_dialogue, backend):
    review_path = tmp_path / "review.jsonl"
    backend.fail("list", "courses", BackendError("Service unavailable.", http_status=503))
    dialogue = make_dialogue(
        learning_logger=LearningLogger(turn_log_path=tmp_path / "turns.jsonl", review_log_path=review_path)
    )

    asyncio.run(dialogue.handle_turn("c1", "list my courses", "Bearer test-token"))

    review = _read_lines(review_path)[0]
    assert review["reason"] == "failed"
    assert review["intent"] == "LIST_COURSES"
    assert review["error"]
