import asyncio

from conftest import ADMIN, STUDENT, TEACHER, ScriptedModel
from core.action_context import COURSE_NEEDS_ADMIN
from core.conversation_memory import ConversationStore, InMemoryKeyValueStore
from core.errors import DENIAL_MESSAGE, BackendError
from core.orchestrator import INTERNAL_ERROR_MESSAGE, apply_teacher_override
from tools.conversation_tool import NOTHING_TO_CANCEL, UNKNOWN_MESSAGE

TOKEN = "Bearer test-token"

TWO_MATHS = [
    {"id": "1", "name": "Math 101", "section": "A"},
    {"id": "2", "name": "Math 101", "section": "B"},
    {"id": "3", "name": "Biology"},
]


def test_list_courses_end_to_end(make_dialogue, backend):
    backend.seed("courses", [{"id": "1", "name": "Math 101"}, {"id": "2", "name": "Biology"}])
    dialogue = make_dialogue()

    async def scenario():
        result = await dialogue.handle_turn(None, "list my courses", TOKEN)
        conversation = await dialogue.store.find(result.conversation_id)
        return result, conversation

    result, conversation = asyncio.run(scenario())

    assert result.conversation_id
    assert result.intent.intent == "LIST_COURSES"
    assert result.response.kind == "completed"
    assert result.response.message.splitlines() == ["Your courses (2):", "1. Math 101", "2. Biology"]
    assert backend.count("list", "courses") == 1
    assert [message.role for message in conversation.messages] == ["user", "assistant"]
    assert conversation.messages[1].content["type"] == "completed"
    assert conversation.context.last_intent == "LIST_COURSES"


def test_list_courses_with_no_courses(make_dialogue):
    result = asyncio.run(make_dialogue().handle_turn("c1", "list my courses", TOKEN))

    assert result.response.message == "No courses found."


def test_student_sees_enrolled_heading(make_dialogue, backend):
    backend.seed("courses", [{"id": "1", "name": "Math 101"}])
    result = asyncio.run(make_dialogue().handle_turn("c1", "list my courses", TOKEN, STUDENT))

    assert result.response.message.startswith("Your enrolled courses (1):")


def test_cancel_clears_ongoing_action(make_dialogue):
    dialogue = make_dialogue()

    async def scenario():
        asked = await dialogue.handle_turn("c1", "show announcements in my class", TOKEN)
        cancelled = await dialogue.handle_turn("c1", "never mind", TOKEN)
        return asked, cancelled

    asked, cancelled = asyncio.run(scenario())

    assert asked.response.kind == "needs_parameter"
    assert asked.context.ongoing_action.action == "GET_ANNOUNCEMENTS"
    assert cancelled.intent.intent == "CANCEL_ACTION"
    assert cancelled.response.message == (
        "Got it! I've stopped working on get announcements. What would you like to do instead?"
    )
    assert cancelled.context.ongoing_action is None
    assert cancelled.context.pending_action is None


def test_cancel_clears_pending_choice(make_dialogue, backend):
    backend.seed("courses", TWO_MATHS)
    dialogue = make_dialogue()

    async def scenario():
        await dialogue.handle_turn("c1", "show announcements in math 101", TOKEN)
        return await dialogue.handle_turn("c1", "cancel", TOKEN)

    cancelled = asyncio.run(scenario())

    assert "get announcements" in cancelled.response.message
    assert cancelled.context.pending_action is None
    assert backend.count("list", "announcements") == 0


def test_cancel_with_nothing_in_progress(make_dialogue):
    result = asyncio.run(make_dialogue().handle_turn("c1", "cancel", TOKEN))

    assert result.response.message == NOTHING_TO_CANCEL


def test_disambiguation_reply_completes_the_blocked_action(make_dialogue, backend):
    backend.seed("courses", TWO_MATHS)
    backend.seed("announcements", [{"id": "a1", "text": "Quiz on Friday"}], course_id="2")
    dialogue = make_dialogue()

    async def scenario():
        asked = await dialogue.handle_turn("c1", "show announcements in math 101", TOKEN)
        answered = await dialogue.handle_turn("c1", "the second one", TOKEN)
        return asked, answered

    asked, answered = asyncio.run(scenario())

    assert asked.response.kind == "needs_disambiguation"
    assert [option["id"] for option in asked.response.options] == ["1", "2"]
    assert asked.context.pending_action.parameter == "courseId"
    assert answered.response.kind == "completed"
    assert answered.response.message.splitlines() == [
        "Recent announcements in Math 101 (1 of 1):",
        "1. Quiz on Friday",
    ]
    assert answered.context.pending_action is None
    assert answered.context.last_parameters == {"courseName": "math 101"}


def test_unmatched_disambiguation_reply_asks_again(make_dialogue, backend):
    backend.seed("courses", TWO_MATHS)
    dialogue = make_dialogue()

    async def scenario():
        await dialogue.handle_turn("c1", "show announcements in math 101", TOKEN)
        return await dialogue.handle_turn("c1", "chemistry", TOKEN)

    again = asyncio.run(scenario())

    assert again.response.kind == "needs_disambiguation"
    assert again.response.message.startswith("I didn't catch which course you meant.")
    assert [option["id"] for option in again.context.pending_action.options] == ["1", "2"]
    assert backend.count("list", "announcements") == 0


def test_collected_parameter_runs_the_action_once(make_dialogue, backend):
    dialogue = make_dialogue()

    async def scenario():
        asked = await dialogue.handle_turn("c1", "create a new course", TOKEN, TEACHER)
        done = await dialogue.handle_turn("c1", "Advanced Physics", TOKEN, TEACHER)
        repeated = await dialogue.handle_turn("c1", "Advanced Physics", TOKEN, TEACHER)
        return asked, done, repeated

    asked, done, repeated = asyncio.run(scenario())

    assert asked.response.message == "What would you like to call your new class?"
    assert asked.context.ongoing_action.missing_parameters == ["name"]
    assert done.intent.is_parameter_collection
    assert done.response.message.startswith('Created the course "Advanced Physics".')
    assert done.context.ongoing_action is None
    assert repeated.response.message == UNKNOWN_MESSAGE
    assert backend.count("create", "courses") == 1


def test_unknown_reply_during_collection_repeats_the_question(make_dialogue):
    dialogue = make_dialogue()

    async def scenario():
        await dialogue.handle_turn("c1", "show announcements in my class", TOKEN)
        return await dialogue.handle_turn("c1", "lorem ipsum dolor sit amet consectetur adipiscing elit sed do", TOKEN)

    result = asyncio.run(scenario())

    assert result.response.kind == "needs_parameter"
    assert result.context.ongoing_action.action == "GET_ANNOUNCEMENTS"


class SlowKeyValueStore(InMemoryKeyValueStore):
    async def set(self, key, value):
        await asyncio.sleep(0.01)
        await super().set(key, value)


def test_turns_on_one_conversation_apply_in_arrival_order(make_dialogue, backend):
    backend.seed("courses", [{"id": "1", "name": "Math 101"}])
    store = ConversationStore(SlowKeyValueStore())
    dialogue = make_dialogue(store=store)

    async def scenario():
        await asyncio.gather(
            dialogue.handle_turn("c1", "list my courses", TOKEN),
            dialogue.handle_turn("c1", "hello", TOKEN),
            dialogue.handle_turn("c1", "help", TOKEN),
        )
        return await store.find("c1")

    conversation = asyncio.run(scenario())

    user_messages = [message.content for message in conversation.messages if message.role == "user"]
    assert user_messages == ["list my courses", "hello", "help"]
    assert [message.role for message in conversation.messages] == ["user", "assistant"] * 3
    assert conversation.context.last_intent == "LIST_COURSES"


def test_student_cannot_delete_a_course(make_dialogue, backend):
    backend.seed("courses", [{"id": "1", "name": "Biology 101"}])
    result = asyncio.run(make_dialogue().handle_turn("c1", "delete the course biology 101", TOKEN, STUDENT))

    assert result.response.kind == "failed"
    assert result.response.error_kind == "unauthorized"
    assert result.response.message == DENIAL_MESSAGE
    assert backend.calls == []


def test_invitation_mentioning_teachers_is_sent_as_teacher_invite(make_dialogue, backend):
    backend.seed("courses", [{"id": "7", "name": "Physics 352"}])
    model = ScriptedModel(
        '{"intent": "INVITE_STUDENTS", "confidence": 0.9, '
        '"parameters": {"courseName": "physics 352", "studentEmails": ["prof@example.com"]}}'
    )
    dialogue = make_dialogue(model=model)

    result = asyncio.run(dialogue.handle_turn("c1", "add my co-teacher prof@example.com to physics 352", TOKEN, ADMIN))

    assert result.response.message == "Invited 1 teacher to Physics 352: prof@example.com."
    invitations = [details["body"] for method, kind, details in backend.calls if method == "create" and kind == "invitations"]
    assert invitations == [{"courseId": "7", "userId": "prof@example.com", "role": "TEACHER"}]


def test_teacher_override_moves_student_emails():
    intent, parameters = apply_teacher_override(
        "INVITE_STUDENTS",
        {"courseName": "physics 352", "studentEmails": ["prof@example.com"]},
        "invite the teacher prof@example.com",
    )

    assert intent == "INVITE_TEACHERS"
    assert parameters == {"courseName": "physics 352", "emails": ["prof@example.com"]}


def test_teacher_invite_is_denied_for_teachers(make_dialogue, backend):
    backend.seed("courses", [{"id": "7", "name": "Physics 352"}])
    result = asyncio.run(
        make_dialogue().handle_turn("c1", "invite teacher prof@example.com to physics 352", TOKEN, TEACHER)
    )

    assert result.response.error_kind == "unauthorized"
    assert backend.count("create", "invitations") == 0


def test_correction_reruns_previous_request_with_new_email(make_dialogue, backend):
    backend.seed("courses", [{"id": "1", "name": "Math 101"}])
    dialogue = make_dialogue()

    async def scenario():
        await dialogue.handle_turn("c1", "invite a@x.com to class math 101", TOKEN, TEACHER)
        return await dialogue.handle_turn("c1", "sorry, I meant b@x.com", TOKEN, TEACHER)

    corrected = asyncio.run(scenario())

    invited = [details["body"]["userId"] for method, kind, details in backend.calls if kind == "invitations"]
    assert invited == ["a@x.com", "b@x.com"]
    assert corrected.intent.is_correction
    assert corrected.context.last_parameters == {"courseName": "math 101", "studentEmails": ["b@x.com"]}


def test_announcement_activates_course_and_retries_once(make_dialogue, backend):
    backend.seed("courses", [{"id": "7", "name": "Physics 352", "courseState": "PROVISIONED"}])
    backend.fail("create", "announcements", BackendError("Precondition check failed.", http_status=400, status="FAILED_PRECONDITION"))

    result = asyncio.run(
        make_dialogue().handle_turn("c1", "create announcement Welcome back in physics 352", TOKEN, TEACHER)
    )

    assert result.response.message == 'Posted your announcement "Welcome back" in Physics 352.'
    assert backend.count("patch", "courses") == 1
    assert backend.count("create", "announcements") == 2
    assert backend.items("courses")[0]["courseState"] == "ACTIVE"


def test_announcement_reports_course_needing_admin(make_dialogue, backend):
    backend.seed("courses", [{"id": "7", "name": "Physics 352", "courseState": "PROVISIONED"}])
    precondition = BackendError("Precondition check failed.", http_status=400, status="FAILED_PRECONDITION")
    backend.fail("create", "announcements", precondition, precondition)

    result = asyncio.run(
        make_dialogue().handle_turn("c1", "create announcement Welcome back in physics 352", TOKEN, TEACHER)
    )

    assert result.response.kind == "failed"
    assert result.response.error_kind == "precondition"
    assert result.response.message == COURSE_NEEDS_ADMIN
    assert backend.count("create", "announcements") == 2


def test_transient_backend_failure_is_reported(make_dialogue, backend):
    backend.fail("list", "courses", BackendError("upstream exploded {trace}", http_status=503))

    result = asyncio.run(make_dialogue().handle_turn("c1", "list my courses", TOKEN))

    assert result.response.error_kind == "transient"
    assert "temporarily unavailable" in result.response.message


class BrokenKeyValueStore(InMemoryKeyValueStore):
    async def get(self, key):
        raise RuntimeError("storage offline")


def test_unexpected_failure_becomes_internal_error(make_dialogue):
    dialogue = make_dialogue(store=ConversationStore(BrokenKeyValueStore()))

    result = asyncio.run(dialogue.handle_turn("c1", "list my courses", TOKEN))

    assert result.conversation_id == "c1"
    assert result.response.kind == "failed"
    assert result.response.error_kind == "internal"
    assert result.response.message == INTERNAL_ERROR_MESSAGE


TWO_JOHNS = [
    {"userId": "s1", "profile": {"name": {"fullName": "John Smith"}, "emailAddress": "smith@example.com"}},
    {"userId": "s2", "profile": {"name": {"fullName": "John Doe"}, "emailAddress": "doe@example.com"}},
]


def _two_johns(backend):
    backend.seed("courses", [{"id": "7", "name": "Physics 352"}])
    backend.seed("coursework", [{"id": "w1", "title": "Test 1", "maxPoints": 100}], course_id="7")
    backend.seed("students", TWO_JOHNS, course_id="7")


def test_grading_a_shared_first_name_asks_which_student(make_dialogue, backend):
    _two_johns(backend)
    model = ScriptedModel(
        '{"intent": "GRADE_ASSIGNMENT", "confidence": 0.9, "parameters": {"courseName": "physics 352", '
        '"assignmentTitle": "test 1", "studentEmail": "John", "assignedGrade": "95"}}'
    )

    result = asyncio.run(make_dialogue(model=model).handle_turn("c1", "grade John 95 on test 1 in physics 352", TOKEN, TEACHER))

    assert result.response.kind == "needs_disambiguation"
    assert [option["id"] for option in result.response.options] == ["s1", "s2"]
    assert result.context.pending_action.parameter == "studentId"
    assert backend.count("patch", "submissions") == 0


def test_student_name_given_as_a_follow_up_fills_the_grade(make_dialogue, backend):
    _two_johns(backend)
    model = ScriptedModel(
        '{"intent": "GRADE_ASSIGNMENT", "confidence": 0.9, "parameters": {"courseName": "physics 352", '
        '"assignmentTitle": "test 1", "assignedGrade": "95"}}'
    )
    dialogue = make_dialogue(model=model)

    async def scenario():
        asked = await dialogue.handle_turn("c1", "grade test 1 in physics 352 with 95", TOKEN, TEACHER)
        answered = await dialogue.handle_turn("c1", "John", TOKEN, TEACHER)
        return asked, answered

    asked, answered = asyncio.run(scenario())

    assert asked.response.missing_parameters == ["studentEmail"]
    assert answered.intent.is_parameter_collection
    assert answered.response.kind == "needs_disambiguation"


def test_greeting_while_naming_a_course_keeps_the_request_open(make_dialogue, backend):
    dialogue = make_dialogue()

    async def scenario():
        await dialogue.handle_turn("c1", "create a new course", TOKEN, TEACHER)
        greeted = await dialogue.handle_turn("c1", "hello", TOKEN, TEACHER)
        helped = await dialogue.handle_turn("c1", "help", TOKEN, TEACHER)
        named = await dialogue.handle_turn("c1", "Advanced Physics", TOKEN, TEACHER)
        return greeted, helped, named

    greeted, helped, named = asyncio.run(scenario())

    assert greeted.intent.intent == "GREETING"
    assert greeted.context.ongoing_action.action == "CREATE_COURSE"
    assert helped.intent.intent == "HELP"
    assert helped.context.ongoing_action.missing_parameters == ["name"]
    assert named.response.message.startswith('Created the course "Advanced Physics".')
    assert [details["body"]["name"] for method, kind, details in backend.calls if method == "create" and kind == "courses"] == [
        "Advanced Physics"
    ]


def test_conversation_locks_do_not_outlive_their_turns(make_dialogue, backend):
    backend.seed("courses", [{"id": "1", "name": "Math 101"}])
    dialogue = make_dialogue()

    async def scenario():
        for index in range(50):
            await dialogue.handle_turn(f"c{index}", "list my courses", TOKEN)

    asyncio.run(scenario())

    assert dialogue.store._locks == {}


def test_correction_after_unknown_course_overwrites_email_and_course(make_dialogue, backend):
    backend.seed("courses", [{"id": "1", "name": "Math 101"}])
    dialogue = make_dialogue()

    async def scenario():
        missed = await dialogue.handle_turn("c1", "invite a@x.com to teaching 1", TOKEN, TEACHER)
        corrected = await dialogue.handle_turn("c1", "sorry, invite b@x.com and the class is math 101", TOKEN, TEACHER)
        return missed, corrected

    missed, corrected = asyncio.run(scenario())

    assert missed.response.kind == "failed"
    assert missed.response.error_kind == "not_found"
    assert missed.context.last_parameters == {"courseName": "teaching 1", "studentEmails": ["a@x.com"]}
    assert corrected.intent.is_correction
    assert corrected.intent.parameters == {"courseName": "math 101", "studentEmails": ["b@x.com"]}
    assert corrected.response.kind == "completed"
    invited = [details["body"]["userId"] for method, kind, details in backend.calls if kind == "invitations"]
    assert invited == ["b@x.com"]
