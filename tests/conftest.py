"""Shared fixtures for the catalog pipeline tests."""

import tempfile
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from kbeauty_pipeline.db.models import Base
from kbeauty_pipeline.db.repositories import RetailerRepository
from kbeauty_pipeline.services.ai.client import AIClient, AIProvider, AIServiceError, Completion, TokenUsage


class FakeAIClient(AIClient):
    """
    AI client returning scripted replies.

    `replies` are returned in order; a reply that is an exception instance
    is raised instead. Once exhausted, `default` is returned.
    """

    provider = AIProvider.ANTHROPIC
    model = "fake-model"

    def __init__(self, replies=None, default: str = "{}", usage: TokenUsage | None = None):
        self.replies = list(replies or [])
        self.default = default
        self.usage = usage or TokenUsage(input_tokens=1000, output_tokens=200)
        self.calls: list[tuple[str, str]] = []

    async def complete(self, system: str, prompt: str, max_tokens: int = 2048) -> Completion:
        self.calls.append((system, prompt))
        reply = self.replies.pop(0) if self.replies else self.default
        if isinstance(reply, Exception):
            raise reply
        return Completion(text=reply, usage=self.usage)


@pytest.fixture
def temp_db_path():
    """Create a temporary database file."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir) / "test.db"


@pytest.fixture
def engine(temp_db_path):
    """Create a test database engine with the full schema."""
    url = f"sqlite:///{temp_db_path}"
    engine = create_engine(url, echo=False)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine) -> Session:
    """Create a database session with the retailers seeded."""
    SessionLocal = sessionmaker(bind=engine)
    session = SessionLocal()
    RetailerRepository(session).ensure_defaults()
    session.commit()
    yield session
    session.close()


@pytest.fixture
def fake_client() -> FakeAIClient:
    return FakeAIClient()


@pytest.fixture
def failing_client() -> FakeAIClient:
    """Client whose every call fails."""
    client = FakeAIClient()
    client.default = AIServiceError("provider unavailable")
    return client
