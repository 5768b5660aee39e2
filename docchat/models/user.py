from sqlalchemy import Column, String, DateTime
from datetime import datetime
import uuid
from docchat.db.database import Base


class User(Base):
    """Read-only view of the user directory; accounts are managed elsewhere"""
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    username = Column(String, nullable=True)
    email = Column(String, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    last_login = Column(DateTime, nullable=True)
