import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from docchat.db.database import init_db
from docchat.services.chat_orchestrator import ChatOrchestrator
from docchat.services.user_directory import UserProfile


class FakeLanguageModel:
    """Records every prompt and answers with a canned reply or error"""

    def __init__(self, reply="Stub answer"):
        self.reply = reply
        self.error = None
        self.calls = []

    def complete(self, model, messages, temperature, max_tokens, timeout=None):
        self.calls.append({
            "model": model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "timeout": timeout,
        })
        if self.error is not None:
            raise self.error
        return self.reply


class FakeUserDirectory:
    def __init__(self, profiles=None):
        self.profiles = dict(profiles or {})

    def get_profile(self, user_id):
        return self.profiles.get(user_id)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    yield session
    session.close()


@pytest.fixture
def other_db(engine):
    """A second session on the same database, as another request would have"""
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    yield session
    session.close()


@pytest.fixture
def language_model():
    return FakeLanguageModel()


@pytest.fixture
def user_directory():
    return FakeUserDirectory({
        "user-1": UserProfile(email="ada@example.com", first_name="Ada", last_name="Lovelace"),
        "user-2": UserProfile(email="grace@example.com", username="grace"),
    })


@pytest.fixture
def orchestrator(db, language_model, user_directory, tmp_path):
    return ChatOrchestrator(
        db,
        language_model=language_model,
        user_directory=user_directory,
        upload_dir=str(tmp_path / "uploads"),
    )
