from docchat.db.database import init_db, engine
from docchat.config import settings
import os
import logging

logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


def init(bind=None):
    """Create the chat, file and user tables plus the upload directory"""
    bind = bind or engine
    logger.info(f"Creating chat tables at {bind.url}")
    init_db(bind=bind)
    os.makedirs(settings.UPLOAD_DIR, exist_ok=True)
    logger.info(f"Uploads will be stored in {settings.UPLOAD_DIR}")


def main():
    logger.info("Preparing DocChat storage")
    init()
    logger.info("Storage ready")


if __name__ == "__main__":
    main()
