from pydantic import BaseModel, ConfigDict
from typing import Any, Dict, List, Optional
from datetime import datetime
from enum import Enum


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class CreateChatRequest(BaseModel):
    title: Optional[str] = None


class RenameChatRequest(BaseModel):
    title: str


class FileReference(BaseModel):
    file_id: str


class SendMessageRequest(BaseModel):
    message: str
    files: List[FileReference] = []


class UpdateSettingsRequest(BaseModel):
    model: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None


class MessageSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    role: MessageRole
    content: str
    timestamp: Optional[datetime] = None
    attachments: List[Dict[str, Any]] = []


class ImportedMessage(BaseModel):
    role: MessageRole
    content: str
    timestamp: Optional[datetime] = None
    attachments: List[Dict[str, Any]] = []


class ImportChatRequest(BaseModel):
    title: Optional[str] = None
    messages: List[ImportedMessage]


class ChatSettings(BaseModel):
    model: str
    temperature: float
    max_tokens: int


class FileContext(BaseModel):
    has_files: bool
    file_types: List[str] = []
    total_files: int


class ChatSummary(BaseModel):
    id: str
    title: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    total_messages: int
    last_activity: Optional[datetime] = None
    settings: ChatSettings
    file_context: FileContext
    last_message: Optional[Dict[str, Any]] = None


class ProcessingResultSchema(BaseModel):
    extracted_text: Optional[str] = None
    error: Optional[str] = None
    processed_at: Optional[datetime] = None


class FileInfo(BaseModel):
    id: str
    chat_id: str
    original_name: str
    filename: str
    mimetype: str
    file_type: str
    size: int
    size_formatted: str
    status: str
    created_at: Optional[datetime] = None
    processing_result: ProcessingResultSchema
    metadata: Dict[str, Any] = {}


class ChatDetail(ChatSummary):
    messages: List[MessageSchema] = []
    files: List[FileInfo] = []


class Pagination(BaseModel):
    current_page: int
    total_pages: int
    total: int
    has_next: bool
    has_prev: bool


class ChatListResponse(BaseModel):
    chats: List[ChatSummary]
    pagination: Pagination


class HistoryResponse(BaseModel):
    chat_id: str
    title: str
    messages: List[MessageSchema]
    files: List[FileInfo]
    pagination: Pagination


class SendMessageResponse(BaseModel):
    user_message: MessageSchema
    ai_response: MessageSchema
    intent: Optional[str] = None


class UploadResponse(BaseModel):
    file: FileInfo
    message: str
