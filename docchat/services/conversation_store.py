from typing import Iterable, Iterator, List, Optional, Sequence
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session
from datetime import datetime
import logging

from docchat.config import settings
from docchat.exceptions import NotFound, ValidationFailed
from docchat.models.chat import ChatSession, ChatMessage, MESSAGE_ROLES, ROLE_ASSISTANT, ROLE_USER
from docchat.services.locks import chat_locks

logger = logging.getLogger(__name__)


class ConversationStore:
    def __init__(self, db: Session):
        self.db = db

    def find_active(self, session_id: str, user_id: str) -> ChatSession:
        """Get an active chat session owned by the user"""
        session = self.db.query(ChatSession).filter(
            ChatSession.id == session_id,
            ChatSession.user_id == user_id,
            ChatSession.is_active == True,  # noqa: E712
        ).first()
        if not session:
            raise NotFound("Chat not found")
        return session

    def list_sessions(self, user_id: str, search: Optional[str] = None) -> List[ChatSession]:
        """Active sessions of a user, most recently active first"""
        query = self.db.query(ChatSession).filter(
            ChatSession.user_id == user_id,
            ChatSession.is_active == True,  # noqa: E712
        )
        if search:
            pattern = f"%{search.lower()}%"
            matching_messages = select(ChatMessage.session_id).where(
                ChatMessage.content.ilike(pattern)
            )
            query = query.filter(or_(
                ChatSession.title.ilike(pattern),
                ChatSession.id.in_(matching_messages),
            ))
        return query.order_by(ChatSession.last_activity.desc()).all()

    def create_session(
        self,
        user_id: str,
        title: Optional[str] = None,
        welcome_message: Optional[str] = None,
    ) -> ChatSession:
        """Create a new chat session, seeded with the welcome message if given.

        The session row and its welcome message are committed together.
        """
        try:
            now = datetime.utcnow()
            session = ChatSession(
                user_id=user_id,
                title=title or settings.DEFAULT_CHAT_TITLE,
                model=settings.OPENAI_MODEL,
                temperature=settings.DEFAULT_TEMPERATURE,
                max_tokens=settings.DEFAULT_MAX_TOKENS,
                total_messages=0,
                last_activity=now,
                has_files=False,
                file_types=[],
                total_files=0,
            )
            if welcome_message is not None:
                session.messages.append(ChatMessage(
                    sequence=0,
                    role=ROLE_ASSISTANT,
                    content=welcome_message,
                    attachments=[],
                    timestamp=now,
                ))
                session.total_messages = 1
            self.db.add(session)
            self.db.commit()
            self.db.refresh(session)
            logger.info(f"Created chat session {session.id} for user {user_id}")
            return session
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error creating session: {str(e)}")
            raise

    def append_message(
        self,
        session_id: str,
        role: str,
        content: str,
        attachments: Sequence[dict] = (),
    ) -> ChatSession:
        """Append a message and refresh the session metadata in one transaction.

        Another request may have appended since this session was loaded, so the
        row is re-read and the next sequence comes from the stored messages.
        """
        if role not in MESSAGE_ROLES:
            raise ValidationFailed(f"Invalid message role: {role}")

        with chat_locks.hold(session_id):
            try:
                session = (
                    self.db.query(ChatSession)
                    .populate_existing()
                    .with_for_update()
                    .filter(ChatSession.id == session_id)
                    .first()
                )
                if not session:
                    raise NotFound("Chat not found")

                now = datetime.utcnow()
                attachments = [dict(item) for item in attachments]
                last_sequence = self.db.query(func.max(ChatMessage.sequence)).filter(
                    ChatMessage.session_id == session.id
                ).scalar()
                message = ChatMessage(
                    session_id=session.id,
                    sequence=0 if last_sequence is None else last_sequence + 1,
                    role=role,
                    content=content,
                    attachments=attachments,
                    timestamp=now,
                )
                self.db.add(message)
                self.db.flush()

                session.total_messages = self.db.query(ChatMessage).filter(
                    ChatMessage.session_id == session.id
                ).count()
                if session.last_activity is None or now > session.last_activity:
                    session.last_activity = now

                if attachments:
                    file_types = list(session.file_types or [])
                    for attachment in attachments:
                        file_type = attachment.get("file_type")
                        if file_type and file_type not in file_types:
                            file_types.append(file_type)
                    session.has_files = True
                    session.total_files = (session.total_files or 0) + len(attachments)
                    session.file_types = file_types

                self.db.commit()
                # Reload the message collection along with the columns
                self.db.expire(session)
                return session
            except NotFound:
                self.db.rollback()
                raise
            except Exception as e:
                self.db.rollback()
                logger.error(f"Error adding message: {str(e)}")
                raise

    def recent_messages(self, session_id: str, n: int, before: Optional[int] = None) -> Iterator[ChatMessage]:
        """Yield the last n messages, oldest first.

        With ``before`` only messages whose sequence is lower are considered.
        Each call reads the current state; the returned generator is single use.
        """
        if n <= 0:
            return
        query = self.db.query(ChatMessage).filter(ChatMessage.session_id == session_id)
        if before is not None:
            query = query.filter(ChatMessage.sequence < before)
        latest = query.order_by(ChatMessage.sequence.desc()).limit(n).all()
        yield from reversed(latest)

    def update_settings(self, session: ChatSession, **changes) -> ChatSession:
        try:
            for key, value in changes.items():
                if value is not None:
                    setattr(session, key, value)
            self.db.commit()
            self.db.refresh(session)
            return session
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error updating session {session.id}: {str(e)}")
            raise

    def soft_delete(self, session_id: str, user_id: str) -> None:
        """Deactivate a chat session; rows are never removed"""
        session = self.find_active(session_id, user_id)
        try:
            session.is_active = False
            self.db.commit()
            logger.info(f"Soft-deleted chat session {session_id}")
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error deleting session: {str(e)}")
            raise

    def export_messages(self, session: ChatSession) -> List[dict]:
        return [
            {
                "role": message.role,
                "content": message.content,
                "timestamp": message.timestamp.isoformat() if message.timestamp else None,
                "attachments": list(message.attachments or []),
            }
            for message in session.messages
        ]

    def import_messages(self, user_id: str, messages: Iterable[dict], title: Optional[str] = None) -> ChatSession:
        """Recreate a session from exported messages, keeping their order.

        Every message is checked before anything is written. User messages obey
        the same length limit as live ones; assistant replies are only required
        to be non-empty.
        """
        messages = list(messages)
        for index, item in enumerate(messages):
            content = item.get("content")
            if item.get("role") not in MESSAGE_ROLES or not isinstance(content, str):
                raise ValidationFailed(f"Invalid message at position {index}")
            if not content.strip():
                raise ValidationFailed(
                    f"Message at position {index} is empty", [{"field": "messages", "index": index}]
                )
            if item["role"] == ROLE_USER and len(content.strip()) > settings.MAX_MESSAGE_LENGTH:
                raise ValidationFailed(
                    f"Message at position {index} exceeds {settings.MAX_MESSAGE_LENGTH} characters",
                    [{"field": "messages", "index": index}],
                )

        session = self.create_session(user_id, title=title)
        for item in messages:
            session = self.append_message(
                session.id, item["role"], item["content"], item.get("attachments") or ()
            )
        return session
