import pytest
from unittest.mock import AsyncMock

from aidialer.prompts import SYSTEM_PROMPT
from aidialer.session import SessionStore
from aidialer.engine import ConversationEngine


@pytest.fixture
def sessions():
    return SessionStore(SYSTEM_PROMPT, ttl_seconds=60)


@pytest.fixture
def inference():
    client = AsyncMock()
    client.complete.return_value = "Hi, is this the owner of 12 Oak Street?"
    return client


@pytest.fixture
def engine(sessions, inference):
    return ConversationEngine(sessions, inference)
