from sqlalchemy import Column, String, DateTime, Boolean, ForeignKey, Text, Integer, Float, JSON, Index
from sqlalchemy.orm import relationship
from datetime import datetime
import uuid
from docchat.db.database import Base

ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"
MESSAGE_ROLES = (ROLE_USER, ROLE_ASSISTANT)


class ChatSession(Base):
    __tablename__ = "chat_sessions"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, nullable=False)
    title = Column(String(100), nullable=False, default="New Chat")
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Settings
    model = Column(String, nullable=False, default="gpt-3.5-turbo")
    temperature = Column(Float, nullable=False, default=0.7)
    max_tokens = Column(Integer, nullable=False, default=1000)

    # Metadata
    total_messages = Column(Integer, nullable=False, default=0)
    last_activity = Column(DateTime, nullable=False, default=datetime.utcnow)
    has_files = Column(Boolean, nullable=False, default=False)
    file_types = Column(JSON, nullable=False, default=list)
    total_files = Column(Integer, nullable=False, default=0)

    messages = relationship(
        "ChatMessage",
        back_populates="session",
        order_by="ChatMessage.sequence",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("ix_chat_sessions_user_active", "user_id", "is_active"),
        Index("ix_chat_sessions_last_activity", "last_activity"),
    )

    @property
    def settings(self) -> dict:
        return {
            "model": self.model,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }

    @property
    def file_context(self) -> dict:
        return {
            "has_files": self.has_files,
            "file_types": list(self.file_types or []),
            "total_files": self.total_files,
        }

    def last_message_preview(self, length: int = 100):
        if not self.messages:
            return None
        last = self.messages[-1]
        content = last.content
        if len(content) > length:
            content = content[:length] + "..."
        return {"role": last.role, "content": content, "timestamp": last.timestamp}


class ChatMessage(Base):
    __tablename__ = "chat_messages"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    session_id = Column(String, ForeignKey("chat_sessions.id"), nullable=False)
    sequence = Column(Integer, nullable=False)
    role = Column(String, nullable=False)  # 'user' or 'assistant'
    content = Column(Text, nullable=False)
    attachments = Column(JSON, nullable=False, default=list)
    timestamp = Column(DateTime, default=datetime.utcnow)

    session = relationship("ChatSession", back_populates="messages")

    __table_args__ = (
        Index("ix_chat_messages_session_sequence", "session_id", "sequence", unique=True),
    )

    def to_prompt_entry(self) -> dict:
        return {"role": self.role, "content": self.content}
