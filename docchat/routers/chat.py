from fastapi import APIRouter, Depends, File, Header, HTTPException, UploadFile, status
from sqlalchemy.orm import Session
from typing import Optional
import logging

from docchat.cache import ResponseCache
from docchat.config import settings
from docchat.db.database import get_db
from docchat.models.chat import ChatSession, ChatMessage
from docchat.models.file import FileStatus, UploadedFile
from docchat.models.schemas import (
    ChatDetail,
    ChatListResponse,
    ChatSummary,
    CreateChatRequest,
    FileInfo,
    HistoryResponse,
    ImportChatRequest,
    MessageSchema,
    RenameChatRequest,
    SendMessageRequest,
    SendMessageResponse,
    UpdateSettingsRequest,
    UploadResponse,
)
from docchat.services.chat_orchestrator import ChatOrchestrator
from docchat.services.language_model import OpenAIChatModel
from docchat.services.user_directory import SqlUserDirectory

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/chats", tags=["Chats"])

# Shared per process
language_model = OpenAIChatModel()
response_cache = ResponseCache(ttl=settings.CACHE_TTL_SECONDS, max_keys=settings.CACHE_MAX_KEYS)


def get_current_user(x_user_id: Optional[str] = Header(default=None)) -> str:
    if not x_user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-User-Id header")
    return x_user_id


def get_language_model():
    return language_model


def get_orchestrator(
    db: Session = Depends(get_db),
    model=Depends(get_language_model),
) -> ChatOrchestrator:
    return ChatOrchestrator(db, language_model=model, user_directory=SqlUserDirectory(db))


def _invalidate(user_id: str) -> None:
    response_cache.delete_prefix(f"chats:{user_id}:")


def _summary(session: ChatSession) -> ChatSummary:
    return ChatSummary(
        id=session.id,
        title=session.title,
        created_at=session.created_at,
        updated_at=session.updated_at,
        total_messages=session.total_messages,
        last_activity=session.last_activity,
        settings=session.settings,
        file_context=session.file_context,
        last_message=session.last_message_preview(),
    )


def _message(message: ChatMessage) -> MessageSchema:
    return MessageSchema.model_validate(message)


def _file(record: UploadedFile) -> FileInfo:
    return FileInfo(**record.file_info())


def _detail(session: ChatSession, files) -> ChatDetail:
    return ChatDetail(
        **_summary(session).model_dump(),
        messages=[_message(m) for m in session.messages],
        files=[_file(f) for f in files],
    )


@router.post("", response_model=ChatDetail, status_code=status.HTTP_201_CREATED)
def create_chat(
    request: CreateChatRequest,
    user_id: str = Depends(get_current_user),
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
):
    """Create a chat session seeded with a welcome message"""
    session = orchestrator.create_chat(user_id, request.title)
    _invalidate(user_id)
    return _detail(session, [])


@router.get("", response_model=ChatListResponse)
def list_chats(
    page: int = 1,
    limit: int = 10,
    search: Optional[str] = None,
    user_id: str = Depends(get_current_user),
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
):
    """List the user's active chats, most recent activity first"""
    key = f"chats:{user_id}:{page}:{limit}:{search or ''}"
    cached = response_cache.get(key)
    if cached is not None:
        return cached

    result = orchestrator.list_sessions(user_id, page=page, limit=limit, search=search)
    response = ChatListResponse(
        chats=[_summary(s) for s in result.items],
        pagination=result.info(),
    ).model_dump(mode="json")
    response_cache.set(key, response)
    return response


@router.post("/import", response_model=ChatDetail, status_code=status.HTTP_201_CREATED)
def import_chat(
    request: ImportChatRequest,
    user_id: str = Depends(get_current_user),
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
):
    """Recreate a chat from an exported message list"""
    messages = [m.model_dump(mode="json") for m in request.messages]
    session = orchestrator.import_history(user_id, messages, title=request.title)
    _invalidate(user_id)
    return _detail(session, [])


@router.get("/{chat_id}", response_model=ChatDetail)
def get_chat(
    chat_id: str,
    user_id: str = Depends(get_current_user),
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
):
    view = orchestrator.get_chat(chat_id, user_id)
    return _detail(view.session, view.files)


@router.get("/{chat_id}/history", response_model=HistoryResponse)
def get_history(
    chat_id: str,
    page: int = 1,
    limit: int = 50,
    user_id: str = Depends(get_current_user),
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
):
    history = orchestrator.get_history(chat_id, user_id, page=page, limit=limit)
    return HistoryResponse(
        chat_id=history.session.id,
        title=history.session.title,
        messages=[_message(m) for m in history.page.items],
        files=[_file(f) for f in history.files],
        pagination=history.page.info(),
    )


@router.get("/{chat_id}/export")
def export_chat(
    chat_id: str,
    user_id: str = Depends(get_current_user),
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
):
    return {"chat_id": chat_id, "messages": orchestrator.export_history(chat_id, user_id)}


@router.post("/{chat_id}/message", response_model=SendMessageResponse)
def send_message(
    chat_id: str,
    request: SendMessageRequest,
    user_id: str = Depends(get_current_user),
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
):
    """Send a message; meta intents are answered without the model"""
    file_ids = [ref.file_id for ref in request.files]
    try:
        reply = orchestrator.send_message(chat_id, user_id, request.message, file_selection=file_ids)
    finally:
        _invalidate(user_id)
    return SendMessageResponse(
        user_message=reply.user_message,
        ai_response=_message(reply.assistant_message),
        intent=reply.intent,
    )


@router.post("/{chat_id}/upload", response_model=UploadResponse)
def upload_file(
    chat_id: str,
    file: UploadFile = File(...),
    user_id: str = Depends(get_current_user),
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
):
    """Upload a PDF or CSV; processing finishes before the response is sent"""
    # Read at most one byte past the size limit
    raw_bytes = file.file.read(settings.MAX_FILE_SIZE + 1)
    record = orchestrator.upload_file(
        chat_id, user_id, raw_bytes, file.filename, file.content_type
    )
    _invalidate(user_id)
    if record.status == FileStatus.PROCESSED.value:
        message = "File processed successfully! You can now ask questions about it."
    else:
        message = "File uploaded but processing failed. Please try again."
    return UploadResponse(file=_file(record), message=message)


@router.put("/{chat_id}/settings", response_model=ChatSummary)
def update_settings(
    chat_id: str,
    request: UpdateSettingsRequest,
    user_id: str = Depends(get_current_user),
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
):
    session = orchestrator.update_settings(
        chat_id,
        user_id,
        model=request.model,
        temperature=request.temperature,
        max_tokens=request.max_tokens,
    )
    _invalidate(user_id)
    return _summary(session)


@router.patch("/{chat_id}", response_model=ChatSummary)
def rename_chat(
    chat_id: str,
    request: RenameChatRequest,
    user_id: str = Depends(get_current_user),
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
):
    session = orchestrator.rename_chat(chat_id, user_id, request.title)
    _invalidate(user_id)
    return _summary(session)


@router.delete("/{chat_id}")
def delete_chat(
    chat_id: str,
    user_id: str = Depends(get_current_user),
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
):
    orchestrator.delete_chat(chat_id, user_id)
    _invalidate(user_id)
    return {"message": "Chat deleted successfully"}


@router.delete("/{chat_id}/files/{file_id}")
def delete_file(
    chat_id: str,
    file_id: str,
    user_id: str = Depends(get_current_user),
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
):
    orchestrator.delete_file(chat_id, file_id, user_id)
    _invalidate(user_id)
    return {"message": "File deleted successfully"}
