"""Pytest fixtures for batch matching unit tests."""

import pytest
from unittest.mock import AsyncMock

from territoires.batch import BatchCoordinator, InMemoryBatchRepository


@pytest.fixture
def batch_repository() -> InMemoryBatchRepository:
    return InMemoryBatchRepository()


@pytest.fixture
def notifier() -> AsyncMock:
    notifier = AsyncMock()
    notifier.notify.return_value = True
    return notifier


@pytest.fixture
def coordinator(batch_repository, matcher, notifier, clock) -> BatchCoordinator:
    """Coordinator without a scheduler; tests drive process_batch directly."""
    return BatchCoordinator(batch_repository, matcher, notifier=notifier, clock=clock)
