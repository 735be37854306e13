"""Pytest configuration and fixtures for unit tests."""

from collections.abc import Callable

import pytest

from plantvision.core.blob_store import LocalBlobStore
from plantvision.domain.user import Caller
from plantvision.services.audit_service import AuditTrail
from plantvision.services.deps import Deps
from tests.unit.mocks import InMemoryStore
from tests.unit.seed import seed_world


@pytest.fixture
def store():
    """Provides a fresh InMemoryStore for each test."""
    return InMemoryStore()


@pytest.fixture
async def world(store):
    """Seeds the store with a plant, equipment and one user per role and area."""
    return await seed_world(store)


@pytest.fixture
def audit(store):
    """Audit trail that awaits each write so tests can read entries immediately."""
    return AuditTrail(store, blocking=True)


@pytest.fixture
def blobs(tmp_path):
    return LocalBlobStore(str(tmp_path / "blobs"), secret_key="test-secret", base_url="http://testserver")


@pytest.fixture
def deps_for(store, audit, blobs) -> Callable[[Caller], Deps]:
    """Factory building request dependencies for a given caller."""

    def _build(caller: Caller) -> Deps:
        return Deps(store=store, audit=audit, caller=caller, blobs=blobs, ip_address="10.0.0.1", user_agent="pytest")

    return _build
