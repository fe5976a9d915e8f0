"""Pytest fixtures for HTTP-level tests.

The application lifespan is not run: services are attached to
``app.state`` directly so tests control storage and time.
"""

import pytest
from fastapi.testclient import TestClient

from main import app
from territoires.admission import AdmissionController, ApiKeyValidator, InMemoryApiKeyRepository
from territoires.batch import BatchCoordinator, InMemoryBatchRepository


@pytest.fixture
def api_key_repository() -> InMemoryApiKeyRepository:
    return InMemoryApiKeyRepository()


@pytest.fixture
def admission(api_key_repository, clock) -> AdmissionController:
    return AdmissionController(
        validator=ApiKeyValidator(api_key_repository, clock=clock),
        anonymous_limit=5,
        authenticated_limit=10,
        clock=clock,
    )


@pytest.fixture
def coordinator(matcher, clock) -> BatchCoordinator:
    return BatchCoordinator(InMemoryBatchRepository(), matcher, clock=clock)


@pytest.fixture
def client(matcher, coordinator, admission) -> TestClient:
    app.state.matcher = matcher
    app.state.coordinator = coordinator
    app.state.admission = admission
    return TestClient(app)
