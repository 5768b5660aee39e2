from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm import sessionmaker
from docchat.config import settings
import os
import logging
from sqlalchemy import inspect

logger = logging.getLogger(__name__)

# Create data directory if it doesn't exist
os.makedirs("data", exist_ok=True)

# Configure SQLAlchemy engine based on database type
if settings.DB_TYPE == "sqlite":
    SQLALCHEMY_DATABASE_URL = settings.DATABASE_URL
    engine = create_engine(
        SQLALCHEMY_DATABASE_URL,
        connect_args={"check_same_thread": False}  # Needed for SQLite
    )
else:
    SQLALCHEMY_DATABASE_URL = settings.DATABASE_URL
    engine = create_engine(SQLALCHEMY_DATABASE_URL, pool_pre_ping=True)

# Create SessionLocal class
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Create Base class
Base = declarative_base()


# Dependency to get DB session
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind=None):
    """Create all tables that do not exist yet"""
    # Import models here to avoid circular imports
    from docchat.models.chat import ChatSession, ChatMessage  # noqa: F401
    from docchat.models.file import UploadedFile  # noqa: F401
    from docchat.models.user import User  # noqa: F401

    bind = bind or engine
    logger.info("Creating tables...")
    Base.metadata.create_all(bind=bind)

    inspector = inspect(bind)
    tables = inspector.get_table_names()
    logger.info(f"Available tables: {tables}")

    for table in tables:
        columns = inspector.get_columns(table)
        logger.debug(f"Table {table} schema:")
        for column in columns:
            logger.debug(f"  {column['name']}: {column['type']}")
