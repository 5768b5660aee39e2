import os

import pytest

from docchat.exceptions import (
    ModelRequestRejected,
    NotFound,
    TransientServiceFailure,
    ValidationFailed,
)
from docchat.models.file import FileStatus, FileType
from docchat.services.chat_orchestrator import APOLOGY_MESSAGE, ChatOrchestrator, classify_file_type

SAMPLE_CSV = b"a,b\n1,2\n3,4\n5,6\n"


class TestSessions:
    def test_create_chat_greets_user_by_name(self, orchestrator):
        session = orchestrator.create_chat("user-1", "Numbers")

        assert session.title == "Numbers"
        assert session.total_messages == 1
        assert session.messages[0].role == "assistant"
        assert session.messages[0].content.startswith("Hello Ada Lovelace! 👋")

    def test_unknown_user_is_greeted_generically(self, orchestrator):
        session = orchestrator.create_chat("stranger")
        assert session.title == "New Chat"
        assert session.messages[0].content.startswith("Hello there! 👋")

    def test_title_too_long(self, orchestrator):
        with pytest.raises(ValidationFailed):
            orchestrator.create_chat("user-1", "x" * 101)

    def test_chats_are_private(self, orchestrator):
        session = orchestrator.create_chat("user-1")

        with pytest.raises(NotFound):
            orchestrator.get_chat(session.id, "user-2")
        with pytest.raises(NotFound):
            orchestrator.send_message(session.id, "user-2", "hello")

    def test_list_and_history_are_paginated(self, orchestrator):
        for i in range(3):
            orchestrator.create_chat("user-1", f"Chat {i}")

        page = orchestrator.list_sessions("user-1", page=1, limit=2)
        assert len(page.items) == 2
        assert page.total == 3
        assert page.has_next

        session = page.items[0]
        history = orchestrator.get_history(session.id, "user-1", page=1, limit=50)
        assert history.page.total == 1
        assert history.page.items[0].role == "assistant"

    def test_rename_chat(self, orchestrator):
        session = orchestrator.create_chat("user-1")
        session = orchestrator.rename_chat(session.id, "user-1", "  Renamed  ")
        assert session.title == "Renamed"

    def test_delete_chat(self, orchestrator):
        session = orchestrator.create_chat("user-1")
        orchestrator.delete_chat(session.id, "user-1")

        with pytest.raises(NotFound):
            orchestrator.get_chat(session.id, "user-1")


class TestSettings:
    def test_valid_update(self, orchestrator):
        session = orchestrator.create_chat("user-1")
        session = orchestrator.update_settings(session.id, "user-1", model="gpt-4", temperature=0.2)

        assert session.settings == {"model": "gpt-4", "temperature": 0.2, "max_tokens": 1000}

    def test_invalid_update_changes_nothing(self, orchestrator):
        session = orchestrator.create_chat("user-1")

        with pytest.raises(ValidationFailed) as exc_info:
            orchestrator.update_settings(
                session.id, "user-1", model="gpt-x", temperature=3, max_tokens=50
            )

        assert [e["field"] for e in exc_info.value.errors] == ["model", "temperature", "max_tokens"]
        assert orchestrator.get_chat(session.id, "user-1").session.settings["model"] == "gpt-3.5-turbo"


class TestMessages:
    def test_ordinary_message_calls_model(self, orchestrator, language_model):
        session = orchestrator.create_chat("user-1")
        orchestrator.update_settings(session.id, "user-1", temperature=0.3, max_tokens=500)
        language_model.reply = "Paris."

        reply = orchestrator.send_message(session.id, "user-1", "  Capital of France?  ")

        assert reply.intent is None
        assert reply.assistant_message.content == "Paris."
        assert reply.user_message["content"] == "Capital of France?"
        assert [m.role for m in reply.session.messages] == ["assistant", "user", "assistant"]
        assert reply.session.total_messages == 3

        call = language_model.calls[0]
        assert call["model"] == "gpt-3.5-turbo"
        assert call["temperature"] == 0.3
        assert call["max_tokens"] == 500
        assert call["timeout"] == 30.0
        assert "The user you are talking to is Ada Lovelace." in call["messages"][0]["content"]
        assert call["messages"][-1] == {"role": "user", "content": "Capital of France?"}

    def test_meta_intent_skips_model(self, orchestrator, language_model):
        session = orchestrator.create_chat("user-1")

        reply = orchestrator.send_message(session.id, "user-1", "What is my name?")

        assert reply.intent == "identity"
        assert reply.assistant_message.content == "Your name is Ada Lovelace! 😊"
        assert language_model.calls == []
        assert reply.session.total_messages == 2
        assert [m.role for m in reply.session.messages] == ["assistant", "assistant"]

    def test_session_info_counts_files(self, orchestrator):
        session = orchestrator.create_chat("user-1", "Data")
        orchestrator.upload_file(session.id, "user-1", SAMPLE_CSV, "data.csv", "text/csv")

        reply = orchestrator.send_message(session.id, "user-1", "chat info")

        assert reply.intent == "session_info"
        assert "**Title:** Data" in reply.assistant_message.content
        assert "**Files Uploaded:** 1" in reply.assistant_message.content

    @pytest.mark.parametrize("text", ["", "   ", "x" * 5001])
    def test_invalid_message_is_not_stored(self, orchestrator, language_model, text):
        session = orchestrator.create_chat("user-1")

        with pytest.raises(ValidationFailed):
            orchestrator.send_message(session.id, "user-1", text)

        assert orchestrator.get_chat(session.id, "user-1").session.total_messages == 1
        assert language_model.calls == []

    def test_model_failure_stores_apology(self, orchestrator, language_model):
        session = orchestrator.create_chat("user-1")
        language_model.error = TransientServiceFailure("AI service temporarily unavailable")

        with pytest.raises(TransientServiceFailure):
            orchestrator.send_message(session.id, "user-1", "Summarise this")

        session = orchestrator.get_chat(session.id, "user-1").session
        assert session.total_messages == 3
        assert session.messages[1].content == "Summarise this"
        assert session.messages[-1].content == APOLOGY_MESSAGE

    def test_rejected_request_propagates(self, orchestrator, language_model):
        session = orchestrator.create_chat("user-1")
        language_model.error = ModelRequestRejected("AI service rejected the request")

        with pytest.raises(ModelRequestRejected):
            orchestrator.send_message(session.id, "user-1", "Summarise this")

    def test_unexpected_failure_becomes_transient(self, orchestrator, language_model):
        session = orchestrator.create_chat("user-1")
        language_model.error = RuntimeError("socket closed")

        with pytest.raises(TransientServiceFailure):
            orchestrator.send_message(session.id, "user-1", "Summarise this")
        assert orchestrator.get_chat(session.id, "user-1").session.messages[-1].content == APOLOGY_MESSAGE

    def test_overlapping_sends_keep_every_message(self, db, other_db, user_directory, tmp_path):
        """Should keep both exchanges when a second send lands while the first awaits the model."""
        class InterruptingModel:
            def complete(self, model, messages, temperature, max_tokens, timeout=None):
                second.send_message(session.id, "user-1", "second question")
                return "first answer"

        class ReplyModel:
            def complete(self, model, messages, temperature, max_tokens, timeout=None):
                return "second answer"

        uploads = str(tmp_path / "uploads")
        first = ChatOrchestrator(db, language_model=InterruptingModel(), user_directory=user_directory, upload_dir=uploads)
        second = ChatOrchestrator(other_db, language_model=ReplyModel(), user_directory=user_directory, upload_dir=uploads)
        session = first.create_chat("user-1")

        reply = first.send_message(session.id, "user-1", "first question")

        assert reply.assistant_message.content == "first answer"
        for orch in (first, second):
            stored = orch.get_chat(session.id, "user-1").session
            assert [m.content for m in stored.messages][1:] == [
                "first question", "second question", "second answer", "first answer",
            ]
            assert [m.sequence for m in stored.messages] == [0, 1, 2, 3, 4]
            assert stored.total_messages == 5


class TestUploads:
    def test_csv_question_end_to_end(self, orchestrator, language_model):
        """Upload a CSV, ask about it, and check what reaches the model."""
        session = orchestrator.create_chat("user-1")
        record = orchestrator.upload_file(session.id, "user-1", SAMPLE_CSV, "data.csv", "text/csv")

        assert record.status == FileStatus.PROCESSED.value
        assert record.metadata_dict["rows"] == 3
        assert record.metadata_dict["columns"] == ["a", "b"]
        assert os.path.exists(record.path)

        language_model.reply = "Row 1 has a=1"
        reply = orchestrator.send_message(
            session.id, "user-1", "What is in row 1?", file_selection=[record.id]
        )

        system = language_model.calls[0]["messages"][0]["content"]
        assert "File: data.csv" in system
        assert "Row 1: a: 1, b: 2" in system
        assert "According to the CSV..." in system
        assert reply.assistant_message.content == "Row 1 has a=1"

        user_message = reply.session.messages[1]
        assert user_message.attachments == [{
            "file_id": record.id,
            "original_name": "data.csv",
            "mimetype": "text/csv",
            "size": len(SAMPLE_CSV),
            "file_type": "csv",
        }]
        assert reply.session.file_context == {"has_files": True, "file_types": ["csv"], "total_files": 1}

    def test_files_are_used_without_selection(self, orchestrator, language_model):
        session = orchestrator.create_chat("user-1")
        orchestrator.upload_file(session.id, "user-1", SAMPLE_CSV, "data.csv", "text/csv")

        reply = orchestrator.send_message(session.id, "user-1", "Describe the data")

        assert "File: data.csv" in language_model.calls[0]["messages"][0]["content"]
        assert reply.session.messages[1].attachments == []

    def test_malformed_csv_is_recorded_as_error(self, orchestrator):
        session = orchestrator.create_chat("user-1")
        record = orchestrator.upload_file(session.id, "user-1", b"a,b\n1,2,3\n", "bad.csv", "text/csv")

        assert record.status == FileStatus.ERROR.value
        assert record.extracted_text is None
        assert record.error.startswith("CSV processing failed")

    def test_unreadable_pdf_is_recorded_as_error(self, orchestrator, language_model):
        session = orchestrator.create_chat("user-1")
        record = orchestrator.upload_file(session.id, "user-1", b"not a pdf", "doc.pdf", "application/pdf")

        assert record.status == FileStatus.ERROR.value
        orchestrator.send_message(session.id, "user-1", "What does the document say?")
        assert "doc.pdf" not in language_model.calls[0]["messages"][0]["content"]

    def test_unsupported_type_is_rejected(self, orchestrator):
        session = orchestrator.create_chat("user-1")

        with pytest.raises(ValidationFailed):
            orchestrator.upload_file(session.id, "user-1", b"hello", "notes.txt", "text/plain")
        assert orchestrator.files.count_active(session.id) == 0

    def test_unsupported_type_can_be_recorded(self, db, language_model, user_directory, tmp_path):
        orchestrator = ChatOrchestrator(
            db, language_model, user_directory, upload_dir=str(tmp_path), reject_unsupported=False
        )
        session = orchestrator.create_chat("user-1")
        record = orchestrator.upload_file(session.id, "user-1", b"hello", "notes.txt", "text/plain")

        assert record.status == FileStatus.ERROR.value
        assert record.error == "Unsupported file type: other"

    @pytest.mark.parametrize("raw_bytes, name", [(b"", "data.csv"), (b"a,b\n", "")])
    def test_upload_validation(self, orchestrator, raw_bytes, name):
        session = orchestrator.create_chat("user-1")
        with pytest.raises(ValidationFailed):
            orchestrator.upload_file(session.id, "user-1", raw_bytes, name, "text/csv")

    def test_upload_too_large(self, orchestrator, monkeypatch):
        from docchat.config import settings
        monkeypatch.setattr(settings, "MAX_FILE_SIZE", 4)
        session = orchestrator.create_chat("user-1")

        with pytest.raises(ValidationFailed) as exc_info:
            orchestrator.upload_file(session.id, "user-1", SAMPLE_CSV, "data.csv", "text/csv")
        assert exc_info.value.message == "File too large"

    def test_delete_file_removes_it_from_context(self, orchestrator, language_model):
        session = orchestrator.create_chat("user-1")
        record = orchestrator.upload_file(session.id, "user-1", SAMPLE_CSV, "data.csv", "text/csv")
        orchestrator.delete_file(session.id, record.id, "user-1")

        orchestrator.send_message(session.id, "user-1", "Describe the data")
        assert "data.csv" not in language_model.calls[0]["messages"][0]["content"]


class TestExportImport:
    def test_round_trip(self, orchestrator):
        session = orchestrator.create_chat("user-1")
        orchestrator.send_message(session.id, "user-1", "Hello")

        exported = orchestrator.export_history(session.id, "user-1")
        copy = orchestrator.import_history("user-1", exported, title="Imported")

        assert copy.title == "Imported"
        assert [(m["role"], m["content"]) for m in exported] == [
            (m.role, m.content) for m in copy.messages
        ]
        assert copy.total_messages == 3

    def test_import_rejects_empty_message(self, orchestrator):
        with pytest.raises(ValidationFailed) as exc_info:
            orchestrator.import_history("user-1", [
                {"role": "user", "content": ""},
                {"role": "assistant", "content": "x" * 6000},
            ])

        assert exc_info.value.message == "Message at position 0 is empty"
        assert orchestrator.list_sessions("user-1").total == 0


@pytest.mark.parametrize("mimetype, name, expected", [
    ("application/pdf", "report", FileType.PDF),
    ("text/csv; charset=utf-8", "data.txt", FileType.CSV),
    ("application/octet-stream", "DATA.CSV", FileType.CSV),
    ("text/plain", "notes.txt", FileType.OTHER),
    (None, None, FileType.OTHER),
])
def test_classify_file_type(mimetype, name, expected):
    assert classify_file_type(mimetype, name) == expected
