from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional, Sequence
import logging

from sqlalchemy.orm import Session

from docchat.config import settings
from docchat.exceptions import ChatError, FileProcessingError, TransientServiceFailure, ValidationFailed
from docchat.models.chat import ChatMessage, ChatSession
from docchat.models.file import FileType, UploadedFile
from docchat.services.context_assembler import ContextAssembler
from docchat.services.conversation_store import ConversationStore
from docchat.services.file_processor import FileProcessor
from docchat.services.file_store import FileStore
from docchat.services.intent_router import IntentRouter
from docchat.services.language_model import LanguageModel
from docchat.services.pagination import Page, paginate
from docchat.services.user_directory import UserDirectory, display_name

logger = logging.getLogger(__name__)

WELCOME_TEMPLATE = (
    "Hello {name}! 👋 I'm your AI assistant. How can I help you today? "
    "You can ask me questions, upload files (PDF/CSV) for analysis, or just chat with me!"
)
APOLOGY_MESSAGE = "Sorry, I encountered an error processing your request. Please try again."

MIME_TYPES = {
    "application/pdf": FileType.PDF,
    "text/csv": FileType.CSV,
}
EXTENSIONS = {
    ".pdf": FileType.PDF,
    ".csv": FileType.CSV,
}
MIN_MAX_TOKENS = 100
MAX_MAX_TOKENS = 4000


def classify_file_type(mimetype: Optional[str], original_name: Optional[str]) -> FileType:
    """Declared type from the MIME type, falling back to the file extension"""
    by_mime = MIME_TYPES.get((mimetype or "").split(";")[0].strip().lower())
    if by_mime:
        return by_mime
    return EXTENSIONS.get(Path(original_name or "").suffix.lower(), FileType.OTHER)


@dataclass
class AssistantReply:
    session: ChatSession
    user_message: dict
    assistant_message: ChatMessage
    intent: Optional[str] = None


@dataclass
class ChatView:
    session: ChatSession
    files: List[UploadedFile] = field(default_factory=list)


@dataclass
class HistoryPage:
    session: ChatSession
    page: Page
    files: List[UploadedFile] = field(default_factory=list)


class ChatOrchestrator:
    """Entry point for the chat core: sessions, messages and file uploads"""

    def __init__(
        self,
        db: Session,
        language_model: LanguageModel,
        user_directory: UserDirectory,
        file_processor: Optional[FileProcessor] = None,
        upload_dir: Optional[str] = None,
        reject_unsupported: Optional[bool] = None,
    ):
        self.conversations = ConversationStore(db)
        self.files = FileStore(db, upload_dir or settings.UPLOAD_DIR)
        self.processor = file_processor or FileProcessor()
        self.router = IntentRouter()
        self.assembler = ContextAssembler(self.conversations, self.files)
        self.language_model = language_model
        self.user_directory = user_directory
        if reject_unsupported is None:
            reject_unsupported = settings.REJECT_UNSUPPORTED_UPLOADS
        self.reject_unsupported = reject_unsupported

    # Sessions

    def create_chat(self, user_id: str, title: Optional[str] = None) -> ChatSession:
        title = self._validate_title(title) if title is not None else None
        profile = self.user_directory.get_profile(user_id)
        welcome = WELCOME_TEMPLATE.format(name=display_name(profile, default="there"))
        return self.conversations.create_session(user_id, title=title, welcome_message=welcome)

    def get_chat(self, session_id: str, user_id: str) -> ChatView:
        session = self.conversations.find_active(session_id, user_id)
        return ChatView(session=session, files=self.files.list_processed(session.id))

    def list_sessions(self, user_id: str, page: int = 1, limit: int = 10, search: Optional[str] = None) -> Page:
        sessions = self.conversations.list_sessions(user_id, search=search or None)
        return paginate(sessions, page, limit)

    def get_history(self, session_id: str, user_id: str, page: int = 1, limit: int = 50) -> HistoryPage:
        session = self.conversations.find_active(session_id, user_id)
        return HistoryPage(
            session=session,
            page=paginate(session.messages, page, limit),
            files=self.files.list_processed(session.id),
        )

    def rename_chat(self, session_id: str, user_id: str, title: str) -> ChatSession:
        title = self._validate_title(title)
        session = self.conversations.find_active(session_id, user_id)
        return self.conversations.update_settings(session, title=title or settings.DEFAULT_CHAT_TITLE)

    def update_settings(
        self,
        session_id: str,
        user_id: str,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> ChatSession:
        errors = []
        if model is not None and model not in settings.ALLOWED_MODELS:
            errors.append({"field": "model", "message": "Invalid model selection", "value": model})
        if temperature is not None and not 0 <= temperature <= 2:
            errors.append({
                "field": "temperature",
                "message": "Temperature must be between 0 and 2",
                "value": temperature,
            })
        if max_tokens is not None and not MIN_MAX_TOKENS <= max_tokens <= MAX_MAX_TOKENS:
            errors.append({
                "field": "max_tokens",
                "message": f"Max tokens must be between {MIN_MAX_TOKENS} and {MAX_MAX_TOKENS}",
                "value": max_tokens,
            })
        if errors:
            raise ValidationFailed("Validation failed", errors)

        session = self.conversations.find_active(session_id, user_id)
        return self.conversations.update_settings(
            session, model=model, temperature=temperature, max_tokens=max_tokens
        )

    def delete_chat(self, session_id: str, user_id: str) -> None:
        self.conversations.soft_delete(session_id, user_id)

    def export_history(self, session_id: str, user_id: str) -> List[dict]:
        session = self.conversations.find_active(session_id, user_id)
        return self.conversations.export_messages(session)

    def import_history(self, user_id: str, messages: Iterable[dict], title: Optional[str] = None) -> ChatSession:
        title = self._validate_title(title) if title is not None else None
        return self.conversations.import_messages(user_id, messages, title=title)

    # Messages

    def send_message(
        self,
        session_id: str,
        user_id: str,
        text: str,
        file_selection: Optional[Sequence[str]] = None,
    ) -> AssistantReply:
        text = self._validate_message(text)
        session = self.conversations.find_active(session_id, user_id)
        user_entry = {"role": "user", "content": text, "timestamp": datetime.utcnow()}

        intent = self.router.classify(text)
        if intent is not None:
            profile = self.user_directory.get_profile(user_id)
            reply = self.router.respond(
                intent, profile, session, file_count=self.files.count_active(session.id)
            )
            session = self.conversations.append_message(session.id, "assistant", reply)
            logger.info(f"Answered meta intent {intent.value} in chat {session.id}")
            return AssistantReply(session, user_entry, session.messages[-1], intent=intent.value)

        attachments = []
        if file_selection:
            selected = self.files.list_processed(session.id, file_ids=list(file_selection))
            attachments = [f.attachment_ref() for f in selected]

        session = self.conversations.append_message(session.id, "user", text, attachments)
        user_message = session.messages[-1]
        user_entry["timestamp"] = user_message.timestamp

        profile = self.user_directory.get_profile(user_id)
        prompt = self.assembler.build_prompt(
            session, user_message, file_selection=file_selection, user_name=display_name(profile)
        )

        try:
            answer = self.language_model.complete(
                model=session.model,
                messages=prompt,
                temperature=session.temperature,
                max_tokens=session.max_tokens,
                timeout=settings.OPENAI_TIMEOUT_SECONDS,
            )
        except ChatError as e:
            logger.error(f"Language model call failed for chat {session.id}: {e.message}")
            self.conversations.append_message(session.id, "assistant", APOLOGY_MESSAGE)
            raise
        except Exception as e:
            logger.exception(f"Unexpected language model failure for chat {session.id}")
            self.conversations.append_message(session.id, "assistant", APOLOGY_MESSAGE)
            raise TransientServiceFailure("AI service temporarily unavailable") from e

        session = self.conversations.append_message(session.id, "assistant", answer)
        return AssistantReply(session, user_entry, session.messages[-1])

    # Files

    def upload_file(
        self,
        session_id: str,
        user_id: str,
        raw_bytes: bytes,
        original_name: str,
        mimetype: str,
    ) -> UploadedFile:
        if not raw_bytes:
            raise ValidationFailed("No file uploaded")
        if len(raw_bytes) > settings.MAX_FILE_SIZE:
            raise ValidationFailed("File too large")
        if not original_name:
            raise ValidationFailed("File name is required")

        session = self.conversations.find_active(session_id, user_id)
        file_type = classify_file_type(mimetype, original_name)
        if file_type == FileType.OTHER and self.reject_unsupported:
            raise ValidationFailed("Only PDF and CSV files are allowed")
        logger.info(f"Upload {original_name} to chat {session.id} detected as {file_type.value}")

        blob = self.files.save_blob(raw_bytes, original_name)
        record = self.files.create(
            user_id=user_id,
            chat_id=session.id,
            filename=blob["filename"],
            original_name=original_name,
            mimetype=mimetype or "application/octet-stream",
            size=len(raw_bytes),
            path=blob["path"],
            file_type=file_type.value,
        )
        self.files.mark_processing(record.id)

        try:
            result = self.processor.process_with_timeout(
                raw_bytes, file_type, settings.FILE_PROCESSING_TIMEOUT_SECONDS
            )
        except FileProcessingError as e:
            logger.warning(f"File {record.id} ({original_name}) processing failed: {e.message}")
            return self.files.mark_error(record.id, e.message)
        except Exception:
            logger.exception(f"Unexpected error processing file {record.id}")
            return self.files.mark_error(record.id, "File processing failed")

        logger.info(f"File {original_name} processed, {len(result.extracted_text)} characters extracted")
        return self.files.mark_processed(record.id, result.extracted_text, result.metadata)

    def delete_file(self, session_id: str, file_id: str, user_id: str) -> None:
        session = self.conversations.find_active(session_id, user_id)
        self.files.soft_delete(file_id, user_id, chat_id=session.id)

    # Validation

    def _validate_message(self, text: Optional[str]) -> str:
        text = (text or "").strip()
        if not text:
            raise ValidationFailed("Message content is required", [{"field": "message"}])
        if len(text) > settings.MAX_MESSAGE_LENGTH:
            raise ValidationFailed(
                f"Message cannot exceed {settings.MAX_MESSAGE_LENGTH} characters",
                [{"field": "message"}],
            )
        return text

    def _validate_title(self, title: str) -> str:
        title = (title or "").strip()
        if len(title) > settings.MAX_TITLE_LENGTH:
            raise ValidationFailed(
                f"Chat title cannot exceed {settings.MAX_TITLE_LENGTH} characters",
                [{"field": "title"}],
            )
        return title
