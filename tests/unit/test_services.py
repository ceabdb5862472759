"""Unit tests for course, profile and message services."""

import pytest

from classdesk.engines.coordination.thread_lock import ThreadLockManager
from classdesk.engines.courses import CourseService
from classdesk.engines.messages import (
    MAX_ATTACHMENT_BYTES,
    Attachment,
    MessageService,
    message_preview,
    sender_label,
)
from classdesk.engines.profiles import ProfileService
from classdesk.kernel.errors import ConflictError, NotFoundError, ValidationError
from classdesk.kernel.identity.principal import Principal, derive_client_token
from classdesk.kernel.store import MemoryStore

COURSE_PASSWORD = "open-sesame"


class TestCourseService:
    async def test_create_hides_password_hash(self, store: MemoryStore):
        course = await CourseService(store).create_course("MA201", "Linear Algebra", "pw", "sa-alice", room=" B-2 ")

        assert course["code"] == "MA201"
        assert course["room"] == "B-2"
        assert "password_hash" not in course
        assert "password_hash" not in (await CourseService(store).get_course("MA201"))

    async def test_duplicate_code_conflicts(self, store: MemoryStore, course: str):
        with pytest.raises(ConflictError):
            await CourseService(store).create_course(course, "Again", "pw", "sa-bob")

    @pytest.mark.parametrize("code,title,password,field", [
        ("", "T", "pw", "code"),
        ("X1", "  ", "pw", "title"),
        ("X1", "T", "", "password"),
    ])
    async def test_required_fields(self, store: MemoryStore, code, title, password, field):
        with pytest.raises(ValidationError) as exc_info:
            await CourseService(store).create_course(code, title, password, "sa-alice")

        assert exc_info.value.field == field

    async def test_join_returns_client_token(self, store: MemoryStore, course: str, student: Principal):
        joined = await CourseService(store).join_course(course, COURSE_PASSWORD, student)

        assert joined["client_token"] == derive_client_token(student.user_id, course)
        assert "password_hash" not in joined

    async def test_join_with_wrong_pair_is_not_found(self, store: MemoryStore, course: str, student: Principal):
        courses = CourseService(store)

        with pytest.raises(NotFoundError):
            await courses.join_course(course, "wrong", student)
        with pytest.raises(NotFoundError):
            await courses.join_course("NOPE", COURSE_PASSWORD, student)

    async def test_delete_removes_everything_scoped_to_course(self, store: MemoryStore, course: str):
        await store.insert("messages", {"course_code": course, "client_token": "t1", "role": "participant", "body": "q"})
        await store.insert("calls", {"course_code": course, "client_token": "t1"})
        await store.insert("thread_pins", {"course_code": course, "client_token": "t1"})
        await store.insert("student_aliases", {"course_code": course, "client_token": "t1", "alias_number": 1})
        await store.insert("thread_locks", {"course_code": course, "client_token": "t1", "sa_user_id": "sa-alice"})
        await store.insert("thread_reads", {"course_code": course, "client_token": "t1", "reader_role": "assistant"})

        removed = await CourseService(store).delete_course(course, "sa-alice")

        assert removed == 2
        for table in ("courses", "messages", "calls", "thread_pins", "student_aliases", "thread_locks", "thread_reads"):
            assert await store.select(table, {"course_code": course} if table != "courses" else {"code": course}) == []

    async def test_delete_unknown_course(self, store: MemoryStore):
        with pytest.raises(NotFoundError):
            await CourseService(store).delete_course("NOPE")

    async def test_list_newest_first(self, store: MemoryStore, course: str):
        await CourseService(store).create_course("MA201", "Linear Algebra", "pw", "sa-alice")

        assert [c["code"] for c in await CourseService(store).list_courses()] == ["MA201", course]


class TestProfileService:
    async def test_effective_name_prefers_profile(self, store: MemoryStore, sa_alice: Principal):
        profiles = ProfileService(store)
        assert await profiles.effective_name(sa_alice) == "Alice"

        await profiles.set_display_name(sa_alice.user_id, "  Prof. A  ")

        assert await profiles.effective_name(sa_alice) == "Prof. A"

    async def test_fallback_chain(self, store: MemoryStore):
        profiles = ProfileService(store)

        assert await profiles.effective_name(Principal(user_id="u", email="u@example.edu")) == "u@example.edu"
        assert await profiles.effective_name(Principal(user_id="u")) == "SA"

    async def test_rename_updates_one_row(self, store: MemoryStore):
        profiles = ProfileService(store)
        await profiles.set_display_name("sa-alice", "A")
        await profiles.set_display_name("sa-alice", "B")

        [row] = await store.select("sa_profiles")
        assert row["display_name"] == "B"

    @pytest.mark.parametrize("name", ["", "   ", "x" * 101])
    async def test_invalid_names(self, store: MemoryStore, name):
        with pytest.raises(ValidationError):
            await ProfileService(store).set_display_name("sa-alice", name)


class TestPreviewAndLabels:
    @pytest.mark.parametrize("message,expected", [
        ({"body": "short"}, "short"),
        ({"body": "first line\nsecond"}, "first line"),
        ({"body": "y" * 41}, "y" * 40 + "…"),
        ({"body": "", "attachment_name": "notes.pdf", "attachment_url": "u"}, "📎 notes.pdf"),
        ({"body": None, "attachment_url": "u"}, "📎 Attachment"),
    ])
    def test_preview(self, message, expected):
        assert message_preview(message) == expected

    def test_sender_labels(self):
        assert sender_label({"role": "participant"}) == "Student (anonymous)"
        assert sender_label({"role": "assistant", "sa_display_name": "Alice"}) == "Alice"
        assert sender_label({"role": "assistant"}) == "Instructor / SA"


class TestMessageService:
    async def test_empty_message_rejected(self, store: MemoryStore, blobs, course: str):
        with pytest.raises(ValidationError) as exc_info:
            await MessageService(store, blobs).send_participant_message(course, "t1", "student-1", body="  ")

        assert exc_info.value.field == "body"
        assert await store.select("messages") == []

    async def test_reply_target_must_be_in_thread(self, store: MemoryStore, blobs, course: str):
        messages = MessageService(store, blobs)
        other = await messages.send_participant_message(course, "t2", "student-2", body="elsewhere")

        with pytest.raises(NotFoundError):
            await messages.send_participant_message(course, "t1", "student-1", body="re", parent_message_id=other["id"])

    async def test_oversized_attachment_writes_nothing(self, store: MemoryStore, blobs, course: str):
        big = Attachment("dump.bin", b"\0" * (MAX_ATTACHMENT_BYTES + 1))

        with pytest.raises(ValidationError):
            await MessageService(store, blobs).send_participant_message(course, "t1", "student-1", attachment=big)

        assert blobs.blobs == {}
        assert await store.select("messages") == []

    async def test_attachment_is_uploaded_under_thread(self, store: MemoryStore, blobs, course: str):
        row = await MessageService(store, blobs).send_participant_message(
            course, "t1", "student-1", attachment=Attachment("trace.txt", b"boom", "text/plain")
        )

        [path] = blobs.blobs
        assert path.startswith(f"{course}/t1/")
        assert path.endswith(".txt")
        assert row["attachment_type"] == "text/plain"

    async def test_reply_blocked_by_other_owner(self, store: MemoryStore, blobs, course: str):
        await ThreadLockManager(store).claim(course, "t1", "sa-alice", "Alice")

        with pytest.raises(ConflictError):
            await MessageService(store, blobs).send_reply(course, "t1", "sa-bob", "Bob", body="hi")

        assert await store.select("messages") == []

    async def test_reply_keeps_name_at_send_time(self, store: MemoryStore, blobs, course: str):
        messages = MessageService(store, blobs)
        await messages.send_participant_message(course, "t1", "student-1", body="q")
        first = await messages.send_reply(course, "t1", "sa-alice", "Alice", body="a1")
        await ProfileService(store).set_display_name("sa-alice", "Prof. A")
        second = await messages.send_reply(course, "t1", "sa-alice", "Prof. A", body="a2")

        stored = await messages.thread_messages(course, "t1")
        assert [m["sa_display_name"] for m in stored] == [None, "Alice", "Prof. A"]
        assert first["student_user_id"] == second["student_user_id"] == "student-1"
