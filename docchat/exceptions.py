"""Error kinds raised by the chat core.

Every error carries an HTTP status code so the API layer can translate it
without knowing where it came from. File processing errors are special: they
are recorded on the uploaded file as ``error`` status and never escape
``ChatOrchestrator.upload_file``.
"""
from typing import Any, Dict, List, Optional


class ChatError(Exception):
    status_code = 500
    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.message, "statusCode": self.status_code}


class NotFound(ChatError):
    status_code = 404


class ValidationFailed(ChatError):
    status_code = 400

    def __init__(self, message: str, errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.errors = errors or []

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        if self.errors:
            data["errors"] = self.errors
        return data


class InvalidStateTransition(ChatError):
    status_code = 409


class FileProcessingError(ChatError):
    status_code = 422


class UnreadableDocument(FileProcessingError):
    pass


class MalformedTable(FileProcessingError):
    pass


class UnsupportedFileType(FileProcessingError):
    pass


class ProcessingTimeout(FileProcessingError):
    pass


class TransientServiceFailure(ChatError):
    status_code = 503
    retryable = True

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["retryable"] = True
        return data


class ModelRequestRejected(ChatError):
    status_code = 502
