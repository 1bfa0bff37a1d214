"""
Pytest configuration for all tests.
"""

import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest


@pytest.fixture
def mock_session():
    """AsyncSession stand-in for services whose repositories are mocked."""
    session = MagicMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.flush = AsyncMock()
    session.execute = AsyncMock()
    return session


@pytest.fixture
def org_id():
    return uuid.UUID("00000000-0000-0000-0000-000000000001")
