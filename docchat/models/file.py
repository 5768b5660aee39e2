from sqlalchemy import Column, String, DateTime, Boolean, ForeignKey, Text, Integer, JSON, Index
from datetime import datetime
from enum import Enum
import math
import uuid
from docchat.db.database import Base


class FileType(str, Enum):
    PDF = "pdf"
    CSV = "csv"
    OTHER = "other"


class FileStatus(str, Enum):
    UPLOADED = "uploaded"
    PROCESSING = "processing"
    PROCESSED = "processed"
    ERROR = "error"


TERMINAL_STATUSES = (FileStatus.PROCESSED.value, FileStatus.ERROR.value)


def format_bytes(size: int) -> str:
    if not size:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB"]
    i = min(int(math.floor(math.log(size, 1024))), len(units) - 1)
    value = round(size / (1024 ** i), 2)
    return f"{value:g} {units[i]}"


class UploadedFile(Base):
    __tablename__ = "uploaded_files"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, nullable=False)
    chat_id = Column(String, ForeignKey("chat_sessions.id"), nullable=False)
    filename = Column(String, nullable=False)
    original_name = Column(String, nullable=False)
    mimetype = Column(String, nullable=False)
    size = Column(Integer, nullable=False)
    path = Column(String, nullable=False)
    file_type = Column(String, nullable=False)  # FileType value
    status = Column(String, nullable=False, default=FileStatus.UPLOADED.value)

    # Processing result
    extracted_text = Column(Text, nullable=True)
    error = Column(Text, nullable=True)
    processed_at = Column(DateTime, nullable=True)

    # Structural metadata, set on successful processing only
    pages = Column(Integer, nullable=True)
    rows = Column(Integer, nullable=True)
    columns = Column(JSON, nullable=True)
    encoding = Column(String, nullable=True)
    language = Column(String, nullable=True)

    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("ix_uploaded_files_user_chat", "user_id", "chat_id"),
        Index("ix_uploaded_files_status", "status"),
    )

    @property
    def size_formatted(self) -> str:
        return format_bytes(self.size)

    @property
    def metadata_dict(self) -> dict:
        data = {
            "pages": self.pages,
            "rows": self.rows,
            "columns": self.columns,
            "encoding": self.encoding,
            "language": self.language,
        }
        return {key: value for key, value in data.items() if value is not None}

    def file_info(self) -> dict:
        """Public view of the file; the storage path is never exposed"""
        return {
            "id": self.id,
            "chat_id": self.chat_id,
            "original_name": self.original_name,
            "filename": self.filename,
            "mimetype": self.mimetype,
            "file_type": self.file_type,
            "size": self.size,
            "size_formatted": self.size_formatted,
            "status": self.status,
            "created_at": self.created_at,
            "processing_result": {
                "extracted_text": self.extracted_text,
                "error": self.error,
                "processed_at": self.processed_at,
            },
            "metadata": self.metadata_dict,
        }

    def attachment_ref(self) -> dict:
        return {
            "file_id": self.id,
            "original_name": self.original_name,
            "mimetype": self.mimetype,
            "size": self.size,
            "file_type": self.file_type,
        }
