import os
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence
import logging

from sqlalchemy.orm import Session

from docchat.exceptions import InvalidStateTransition, NotFound
from docchat.models.file import FileStatus, TERMINAL_STATUSES, UploadedFile
from docchat.services.locks import chat_locks

logger = logging.getLogger(__name__)

METADATA_FIELDS = ("pages", "rows", "columns", "encoding", "language")


class FileStore:
    """Persists uploaded files and owns their status transitions.

    uploaded -> processing -> processed | error, and uploaded -> processed | error.
    Terminal states never move again; a re-upload is a new record.
    """

    def __init__(self, db: Session, upload_dir: Optional[str] = None):
        self.db = db
        self.upload_dir = upload_dir

    def save_blob(self, raw_bytes: bytes, original_name: str) -> Dict[str, str]:
        """Write the raw bytes under the upload directory with a unique name"""
        if not self.upload_dir:
            raise RuntimeError("FileStore has no upload directory configured")
        os.makedirs(self.upload_dir, exist_ok=True)
        suffix = Path(original_name).suffix.lower()
        filename = f"file-{uuid.uuid4().hex}{suffix}"
        path = os.path.join(self.upload_dir, filename)
        with open(path, "wb") as handle:
            handle.write(raw_bytes)
        return {"filename": filename, "path": path}

    def create(
        self,
        user_id: str,
        chat_id: str,
        filename: str,
        original_name: str,
        mimetype: str,
        size: int,
        path: str,
        file_type: str,
    ) -> UploadedFile:
        """Record a new upload in the uploaded state"""
        with chat_locks.hold(chat_id):
            try:
                record = UploadedFile(
                    user_id=user_id,
                    chat_id=chat_id,
                    filename=filename,
                    original_name=original_name,
                    mimetype=mimetype,
                    size=size,
                    path=path,
                    file_type=file_type,
                    status=FileStatus.UPLOADED.value,
                )
                self.db.add(record)
                self.db.commit()
                self.db.refresh(record)
                logger.info(f"Recorded upload {record.id} ({original_name}) in chat {chat_id}")
                return record
            except Exception as e:
                self.db.rollback()
                logger.error(f"Error recording upload: {str(e)}")
                raise

    def get(self, file_id: str, user_id: Optional[str] = None, chat_id: Optional[str] = None) -> UploadedFile:
        query = self.db.query(UploadedFile).filter(
            UploadedFile.id == file_id,
            UploadedFile.is_active == True,  # noqa: E712
        )
        if user_id is not None:
            query = query.filter(UploadedFile.user_id == user_id)
        if chat_id is not None:
            query = query.filter(UploadedFile.chat_id == chat_id)
        record = query.first()
        if not record:
            raise NotFound("File not found")
        return record

    def mark_processing(self, file_id: str) -> UploadedFile:
        return self._transition(
            file_id, FileStatus.PROCESSING, allowed_from=(FileStatus.UPLOADED.value,)
        )

    def mark_processed(self, file_id: str, text: str, metadata: Optional[Dict[str, Any]] = None) -> UploadedFile:
        metadata = metadata or {}
        changes = {"extracted_text": text, "error": None}
        for field in METADATA_FIELDS:
            if field in metadata:
                changes[field] = metadata[field]
        return self._transition(file_id, FileStatus.PROCESSED, changes=changes)

    def mark_error(self, file_id: str, reason: str) -> UploadedFile:
        return self._transition(
            file_id, FileStatus.ERROR, changes={"extracted_text": None, "error": reason}
        )

    def _transition(
        self,
        file_id: str,
        target: FileStatus,
        changes: Optional[Dict[str, Any]] = None,
        allowed_from: Sequence[str] = (FileStatus.UPLOADED.value, FileStatus.PROCESSING.value),
    ) -> UploadedFile:
        record = self.get(file_id)
        if record.status not in allowed_from:
            if record.status in TERMINAL_STATUSES:
                message = f"File {file_id} is already {record.status}"
            else:
                message = f"File {file_id} cannot move from {record.status} to {target.value}"
            raise InvalidStateTransition(message)

        try:
            record.status = target.value
            for key, value in (changes or {}).items():
                setattr(record, key, value)
            if target.value in TERMINAL_STATUSES:
                record.processed_at = datetime.utcnow()
            self.db.commit()
            self.db.refresh(record)
            return record
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error updating file {file_id} to {target.value}: {str(e)}")
            raise

    def list_processed(self, chat_id: str, file_ids: Optional[Sequence[str]] = None) -> List[UploadedFile]:
        """Processed files of a chat, oldest first; optionally only the given ids"""
        query = self.db.query(UploadedFile).filter(
            UploadedFile.chat_id == chat_id,
            UploadedFile.status == FileStatus.PROCESSED.value,
            UploadedFile.is_active == True,  # noqa: E712
        )
        if file_ids is not None:
            if not file_ids:
                return []
            query = query.filter(UploadedFile.id.in_(list(file_ids)))
        return query.order_by(UploadedFile.created_at.asc()).all()

    def count_active(self, chat_id: str) -> int:
        return self.db.query(UploadedFile).filter(
            UploadedFile.chat_id == chat_id,
            UploadedFile.is_active == True,  # noqa: E712
        ).count()

    def soft_delete(self, file_id: str, user_id: Optional[str] = None, chat_id: Optional[str] = None) -> None:
        record = self.get(file_id, user_id, chat_id)
        try:
            record.is_active = False
            self.db.commit()
            logger.info(f"Soft-deleted file {file_id}")
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error deleting file {file_id}: {str(e)}")
            raise
