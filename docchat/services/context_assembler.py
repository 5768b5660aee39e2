from typing import Dict, List, Optional, Sequence
import logging

from docchat.config import settings
from docchat.models.chat import ChatMessage, ChatSession
from docchat.models.file import UploadedFile
from docchat.services.conversation_store import ConversationStore
from docchat.services.file_store import FileStore

logger = logging.getLogger(__name__)

FILE_INSTRUCTIONS = """CRITICAL INSTRUCTIONS FOR FILE-BASED QUESTIONS:
1. ALWAYS search the provided file content FIRST for answers
2. If the answer is found in the file, provide it with a reference like "According to the {document}..."
3. If the answer is NOT found in the file, clearly state "This information is not found in the uploaded {document}" before giving a general answer
4. When referencing file content, quote the relevant parts
5. Be specific about what information comes from the file vs. general knowledge

File content available:
{file_context}"""

NO_FILES_NOTE = "Note: No files are currently uploaded in this chat."


class ContextAssembler:
    """Builds the message list sent to the language model.

    Layout: one system instruction (user name + file content or a no-files
    note), then the recent conversation window, then the new user message.
    Attachments are never forwarded; only extracted text reaches the model.
    """

    def __init__(self, conversation_store: ConversationStore, file_store: FileStore, window: Optional[int] = None):
        self.conversation_store = conversation_store
        self.file_store = file_store
        self.window = settings.CONTEXT_WINDOW_MESSAGES if window is None else window

    def files_in_scope(self, session: ChatSession, file_selection: Optional[Sequence[str]] = None) -> List[UploadedFile]:
        if file_selection:
            return self.file_store.list_processed(session.id, file_ids=list(file_selection))
        return self.file_store.list_processed(session.id)

    def build_prompt(
        self,
        session: ChatSession,
        new_user_message: ChatMessage,
        file_selection: Optional[Sequence[str]] = None,
        user_name: str = "User",
    ) -> List[Dict[str, str]]:
        files = self.files_in_scope(session, file_selection)
        messages = [{"role": "system", "content": self.system_instruction(files, user_name)}]

        history = self.conversation_store.recent_messages(
            session.id, self.window, before=new_user_message.sequence
        )
        messages.extend(message.to_prompt_entry() for message in history)
        messages.append(new_user_message.to_prompt_entry())

        logger.debug(f"Assembled prompt for chat {session.id}: {len(messages)} entries, {len(files)} files")
        return messages

    def system_instruction(self, files: Sequence[UploadedFile], user_name: str) -> str:
        instruction = f"You are a helpful AI assistant. The user you are talking to is {user_name}."
        if not files:
            return f"{instruction}\n\n{NO_FILES_NOTE}"

        file_context = "\n\n".join(
            f"File: {f.original_name}\nContent: {f.extracted_text or ''}" for f in files
        )
        return f"{instruction}\n\n" + FILE_INSTRUCTIONS.format(
            document=self._document_label(files),
            file_context=file_context,
        )

    @staticmethod
    def _document_label(files: Sequence[UploadedFile]) -> str:
        types = {f.file_type for f in files}
        if len(types) == 1:
            return f"{types.pop().upper()}"
        return "file"
