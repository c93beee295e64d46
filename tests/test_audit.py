"""
Tests for the Audit Logger.

Audit writes are best-effort: a failing store must never raise out of
``record``.
"""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from adminops.db.store import InMemoryDocumentStore
from adminops.models.domain import ADMIN_LOGS, AdminAction
from adminops.services.audit import AuditLogger


class TestRecord:
    """Writing entries."""

    @pytest.mark.asyncio
    async def test_entry_shape(self, store, clock):
        audit = AuditLogger(store)

        result = await audit.record(
            "admin-1",
            AdminAction.BAN_USER,
            {"targetUser": "user-1", "reason": "spam", "ipAddress": "10.0.0.1"},
        )

        assert result.ok is True
        docs = await store.find(ADMIN_LOGS)
        assert len(docs) == 1
        assert docs[0].data == {
            "adminUid": "admin-1",
            "action": "BAN_USER",
            "data": {"targetUser": "user-1", "reason": "spam", "ipAddress": "10.0.0.1"},
            "ipAddress": "10.0.0.1",
            "timestamp": clock().isoformat(),
        }

    @pytest.mark.asyncio
    async def test_missing_ip_is_unknown(self, store):
        audit = AuditLogger(store)
        await audit.record("admin-1", AdminAction.DISABLE_GLOBAL_MAINTENANCE)
        docs = await store.find(ADMIN_LOGS)
        assert docs[0].data["ipAddress"] == "unknown"
        assert docs[0].data["data"] == {}

    @pytest.mark.asyncio
    async def test_accepts_plain_string_action(self, store):
        audit = AuditLogger(store)
        assert (await audit.record("admin-1", "CUSTOM_ACTION")).ok is True

    @pytest.mark.asyncio
    async def test_store_failure_returns_failure(self):
        """A failing write is reported, never raised."""
        failing_store = AsyncMock(spec=InMemoryDocumentStore)
        failing_store.add = AsyncMock(side_effect=RuntimeError("disk full"))
        audit = AuditLogger(failing_store)

        result = await audit.record("admin-1", AdminAction.BAN_USER, {"targetUser": "u"})

        assert result.ok is False
        assert result.error == "disk full"

    @pytest.mark.asyncio
    async def test_empty_admin_uid_rejected(self, store):
        audit = AuditLogger(store)
        result = await audit.record("", AdminAction.BAN_USER)
        assert result.ok is False
        assert await store.find(ADMIN_LOGS) == []


class TestListAndPurge:
    """Reading and retention."""

    @pytest.mark.asyncio
    async def test_list_entries_newest_first(self, store, clock):
        audit = AuditLogger(store)
        for action in ["BAN_USER", "UNBAN_USER", "DELETE_USER"]:
            await audit.record("admin-1", action)
            clock.advance(seconds=1)

        page = await audit.list_entries(2)
        assert [e.action for e in page.items] == ["DELETE_USER", "UNBAN_USER"]
        assert page.next_cursor == page.items[-1].id

        rest = await audit.list_entries(2, cursor=page.next_cursor)
        assert [e.action for e in rest.items] == ["BAN_USER"]
        assert rest.next_cursor is None

    @pytest.mark.asyncio
    async def test_purge_before_is_strict(self, store, clock):
        audit = AuditLogger(store)
        start = clock()

        await audit.record("admin-1", "OLD")
        clock.advance(days=1)
        await audit.record("admin-1", "AT_CUTOFF")
        clock.advance(days=1)
        await audit.record("admin-1", "NEW")

        purged = await audit.purge_before(start + timedelta(days=1))

        assert purged == 1
        remaining = {doc.data["action"] for doc in await store.find(ADMIN_LOGS)}
        assert remaining == {"AT_CUTOFF", "NEW"}
