"""
Tests for the Authorization Guard.

Tests credential verification, admin checks, and unauthorized-access audit
entries.
"""

from unittest.mock import AsyncMock

import pytest

from adminops.exceptions import InvalidCredentialError, NotAuthorizedError, UserNotFoundError
from adminops.models.domain import ADMIN_LOGS, BestEffortResult
from adminops.services.admin_guard import AdminGuard

from conftest import ADMIN_UID, USER_UID


class TestAuthorize:
    """AdminGuard.authorize outcomes."""

    @pytest.mark.asyncio
    async def test_admin_is_authorized(self, guard, token_factory, seeded_store):
        uid = await guard.authorize(token_factory(ADMIN_UID))

        assert uid == ADMIN_UID
        assert await seeded_store.find(ADMIN_LOGS) == []

    @pytest.mark.asyncio
    async def test_invalid_credential(self, guard, seeded_store):
        with pytest.raises(InvalidCredentialError):
            await guard.authorize("garbage")

        assert await seeded_store.find(ADMIN_LOGS) == []

    @pytest.mark.asyncio
    async def test_expired_credential(self, guard, token_factory):
        with pytest.raises(InvalidCredentialError):
            await guard.authorize(token_factory(ADMIN_UID, expires_in=-10))

    @pytest.mark.asyncio
    async def test_unknown_subject(self, guard, token_factory, seeded_store):
        """Verified subject without a user record is not found, and not audited."""
        with pytest.raises(UserNotFoundError):
            await guard.authorize(token_factory("stranger"))

        assert await seeded_store.find(ADMIN_LOGS) == []

    @pytest.mark.asyncio
    async def test_non_admin_denied_and_audited_once(self, guard, token_factory, seeded_store):
        with pytest.raises(NotAuthorizedError, match="Unauthorized: Not an admin"):
            await guard.authorize(token_factory(USER_UID))

        entries = await seeded_store.find(ADMIN_LOGS)
        assert len(entries) == 1
        assert entries[0].data["adminUid"] == USER_UID
        assert entries[0].data["action"] == "UNAUTHORIZED_ADMIN_ACCESS"
        assert entries[0].data["data"] == {"reason": "Not an admin"}

    @pytest.mark.asyncio
    async def test_denial_raised_even_if_audit_fails(self, verifier, seeded_store, token_factory):
        audit = AsyncMock()
        audit.record = AsyncMock(return_value=BestEffortResult.failure("down"))
        guard = AdminGuard(verifier, seeded_store, audit)

        with pytest.raises(NotAuthorizedError):
            await guard.authorize(token_factory(USER_UID))

        audit.record.assert_awaited_once()
