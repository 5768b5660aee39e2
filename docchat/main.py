from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from datetime import datetime
import os
import logging

from docchat.config import settings
from docchat.db.database import init_db
from docchat.exceptions import ChatError
from docchat.routers import chat

# Configure logging
logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Starting up chat service...")
    logger.info(f"Upload directory: {settings.UPLOAD_DIR}")
    os.makedirs(settings.UPLOAD_DIR, exist_ok=True)
    init_db()
    logger.info("Database initialized successfully")
    yield
    # Shutdown
    logger.info("Shutting down chat service...")


app = FastAPI(
    title="DocChat",
    description="Conversational sessions with PDF and CSV file context, backed by OpenAI chat models",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(chat.router)


@app.exception_handler(ChatError)
async def chat_error_handler(request: Request, exc: ChatError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.warning(f"{request.method} {request.url.path} rejected: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.to_dict()},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": {"message": "Internal server error", "statusCode": 500}},
    )


@app.get("/")
async def root():
    return {
        "message": "DocChat API",
        "version": "1.0.0",
        "endpoints": {
            "chats": "/api/chats",
            "chat": "/api/chats/{chat_id}",
            "message": "/api/chats/{chat_id}/message",
            "upload": "/api/chats/{chat_id}/upload",
            "docs": "/docs"
        }
    }


@app.get("/health")
async def health():
    return {"status": "OK", "timestamp": datetime.utcnow().isoformat()}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
