from pydantic_settings import BaseSettings
from typing import Optional, List
import os
import dotenv

dotenv.load_dotenv()


class Settings(BaseSettings):
    # OpenAI Settings
    OPENAI_API_KEY: Optional[str] = os.getenv("OPENAI_API_KEY")
    OPENAI_MODEL: str = "gpt-3.5-turbo"
    OPENAI_TIMEOUT_SECONDS: float = 30.0
    ALLOWED_MODELS: List[str] = ["gpt-3.5-turbo", "gpt-4", "gpt-4-turbo"]

    # Chat Settings
    DEFAULT_CHAT_TITLE: str = "New Chat"
    DEFAULT_TEMPERATURE: float = 0.7
    DEFAULT_MAX_TOKENS: int = 1000
    MAX_MESSAGE_LENGTH: int = 5000
    MAX_TITLE_LENGTH: int = 100
    CONTEXT_WINDOW_MESSAGES: int = 10

    # File Processing Settings
    UPLOAD_DIR: str = "data/uploads"
    MAX_FILE_SIZE: int = 10 * 1024 * 1024
    CSV_PREVIEW_ROWS: int = 5
    FILE_PROCESSING_TIMEOUT_SECONDS: float = 60.0
    REJECT_UNSUPPORTED_UPLOADS: bool = True

    # Response Cache Settings
    CACHE_TTL_SECONDS: int = 300
    CACHE_MAX_KEYS: int = 1000

    # CORS Settings
    BACKEND_CORS_ORIGINS: List[str] = ["*"]

    # Database Settings
    DATABASE_URL: str = "sqlite:///./data/app.db"
    DB_TYPE: str = "sqlite"

    LOG_LEVEL: str = "INFO"

    # Create data directory if it doesn't exist
    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        os.makedirs("data", exist_ok=True)

    class Config:
        env_file = ".env"


settings = Settings()
