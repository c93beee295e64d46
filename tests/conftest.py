"""
Pytest Configuration and Centralized Fixtures.

Provides reusable fixtures for testing:
- A controllable clock
- In-memory document store seeded with admin and regular users
- Signed identity tokens and command contexts
- Executor wired with a mocked identity provider
"""

import os
import time
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any
from unittest.mock import AsyncMock

import jwt
import pytest

TEST_TOKEN_KEY = "test-identity-token-key-min-32-characters"

# Set required environment variables BEFORE importing adminops modules
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("IDENTITY_TOKEN_KEY", TEST_TOKEN_KEY)

from adminops.db.store import InMemoryDocumentStore
from adminops.models.api import CommandContext
from adminops.models.domain import USERS, BestEffortResult
from adminops.services.admin_executor import AdminCommandExecutor
from adminops.services.admin_guard import AdminGuard
from adminops.services.audit import AuditLogger
from adminops.services.identity import IdentityProviderClient, IdentityTokenVerifier

ADMIN_UID = "admin-1"
USER_UID = "user-1"
OTHER_ADMIN_UID = "admin-2"


# ============================================================================
# Clock
# ============================================================================


class FakeClock:
    """Deterministic clock; call it to read, ``advance`` to move forward."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    """Clock pinned to 2026-01-15 12:00 UTC."""
    return FakeClock(datetime(2026, 1, 15, 12, 0, tzinfo=UTC))


# ============================================================================
# Store Fixtures
# ============================================================================


@pytest.fixture
def store(clock: FakeClock) -> InMemoryDocumentStore:
    """Empty in-memory store driven by the fake clock."""
    return InMemoryDocumentStore(clock=clock)


def user_document(**overrides: Any) -> dict[str, Any]:
    """Stored user document with sensible defaults."""
    doc: dict[str, Any] = {
        "email": "user@example.com",
        "displayName": "Test User",
        "plan": "Free",
        "isAdmin": False,
        "isBanned": False,
        "messagesUsed": 3,
        "messagesLimit": 10,
        "createdAt": "2025-12-01T09:00:00+00:00",
    }
    doc.update(overrides)
    return doc


@pytest.fixture
async def seeded_store(store: InMemoryDocumentStore) -> InMemoryDocumentStore:
    """Store with two admins and one regular user."""
    await store.set(USERS, ADMIN_UID, user_document(email="admin@example.com", isAdmin=True))
    await store.set(
        USERS, OTHER_ADMIN_UID, user_document(email="admin2@example.com", isAdmin=True)
    )
    await store.set(USERS, USER_UID, user_document())
    return store


# ============================================================================
# Auth Fixtures
# ============================================================================


@pytest.fixture
def token_factory() -> Callable[..., str]:
    """Sign identity tokens for arbitrary subjects."""

    def _make(
        uid: str,
        expires_in: int = 3600,
        key: str = TEST_TOKEN_KEY,
        **claims: Any,
    ) -> str:
        payload = {"sub": uid, "exp": int(time.time()) + expires_in, **claims}
        return jwt.encode(payload, key, algorithm="HS256")

    return _make


@pytest.fixture
def verifier() -> IdentityTokenVerifier:
    return IdentityTokenVerifier(key=TEST_TOKEN_KEY, algorithms=["HS256"])


@pytest.fixture
def admin_ctx(token_factory: Callable[..., str]) -> CommandContext:
    """Context carrying a valid admin credential."""
    return CommandContext(credential=token_factory(ADMIN_UID), ip_address="10.0.0.1")


@pytest.fixture
def user_ctx(token_factory: Callable[..., str]) -> CommandContext:
    """Context carrying a valid non-admin credential."""
    return CommandContext(credential=token_factory(USER_UID), ip_address="10.0.0.2")


# ============================================================================
# Service Fixtures
# ============================================================================


@pytest.fixture
def identity_provider() -> AsyncMock:
    """Identity provider admin client that always succeeds."""
    provider = AsyncMock(spec=IdentityProviderClient)
    provider.delete_user = AsyncMock(return_value=BestEffortResult.success())
    provider.set_custom_claims = AsyncMock(return_value=BestEffortResult.success())
    return provider


@pytest.fixture
def audit(seeded_store: InMemoryDocumentStore) -> AuditLogger:
    return AuditLogger(seeded_store)


@pytest.fixture
def guard(
    verifier: IdentityTokenVerifier,
    seeded_store: InMemoryDocumentStore,
    audit: AuditLogger,
) -> AdminGuard:
    return AdminGuard(verifier, seeded_store, audit)


@pytest.fixture
def executor(
    seeded_store: InMemoryDocumentStore,
    guard: AdminGuard,
    audit: AuditLogger,
    identity_provider: AsyncMock,
    clock: FakeClock,
) -> AdminCommandExecutor:
    """Executor over the seeded store with a mocked identity provider."""
    return AdminCommandExecutor(
        store=seeded_store,
        guard=guard,
        audit=audit,
        identity_provider=identity_provider,
        clock=clock,
    )
