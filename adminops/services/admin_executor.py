"""
Administrative Command Executor - Core business logic for admin commands.

Every command follows the same template:
1. Authorize the caller (AdminGuard)
2. Validate parameters
3. Load the target entity
4. Check the business invariant
5. Mutate through the store
6. Record the action (AuditLogger, best-effort)
7. Return

Authorization, not-found and invariant errors abort before any mutation.
Best-effort failures (audit writes, identity provider calls) happen after the
mutation committed and never fail the command.

Load -> mutate is not atomic across store calls: two concurrent commands on
the same entity can both pass validation. No optimistic concurrency control
is applied.
"""

import asyncio
import time
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError
from structlog import get_logger

from adminops.db.store import DocumentStore
from adminops.exceptions import (
    AdminError,
    CannotBanAdminError,
    CannotDeleteAdminError,
    InvalidParameterError,
    LicenseNotFoundError,
    UserNotFoundError,
)
from adminops.models.api import (
    AIConfigUpdate,
    BanUserParams,
    ClearOldLogsParams,
    CommandContext,
    CreateLicenseParams,
    LicenseTarget,
    ListParams,
    MaintenanceMessageParams,
    PartialMaintenanceParams,
    PlannedMaintenanceParams,
    UpdateUserPlanParams,
    UserTarget,
)
from adminops.models.domain import (
    AI_CONFIG_DOC,
    CONFIG,
    LICENSES,
    MAINTENANCE_DOC,
    PLAN_MESSAGE_LIMITS,
    USERS,
    AdminAction,
    AIConfig,
    AuditEntry,
    BestEffortResult,
    LicenseRecord,
    MaintenanceStatus,
    Page,
    Plan,
    SystemStats,
    UserRecord,
    format_timestamp,
    utc_now,
)
from adminops.observability.logging import log_context
from adminops.observability.metrics import metrics
from adminops.observability.tracing import trace_operation
from adminops.services.admin_guard import AdminGuard
from adminops.services.audit import AuditLogger
from adminops.services.identity import IdentityProviderClient
from adminops.services.license_keys import generate_license_key

logger = get_logger(__name__)

P = TypeVar("P", bound=BaseModel)

DEFAULT_GLOBAL_MESSAGE = "System maintenance in progress"
DEFAULT_PARTIAL_MESSAGE = "Some services are under maintenance"
DEFAULT_AI_MESSAGE = "AI service is under maintenance"
DEFAULT_LICENSE_MESSAGE = "License service is under maintenance"
DEFAULT_PLANNED_MESSAGE = "Planned maintenance scheduled"


class AdminCommandExecutor:
    """
    Executes administrative commands against users, licenses and config.

    All collaborators are injected; nothing here reaches for global state.
    """

    def __init__(
        self,
        store: DocumentStore,
        guard: AdminGuard,
        audit: AuditLogger,
        identity_provider: IdentityProviderClient,
        clock: Callable[[], datetime] = utc_now,
        default_page_size: int = 100,
        default_log_page_size: int = 50,
    ) -> None:
        self.store = store
        self.guard = guard
        self.audit = audit
        self.identity_provider = identity_provider
        self.clock = clock
        self.default_page_size = default_page_size
        self.default_log_page_size = default_log_page_size

    # ========================================================================
    # Command plumbing
    # ========================================================================

    @asynccontextmanager
    async def _command(
        self, name: str, ctx: CommandContext, **attributes: Any
    ) -> AsyncIterator[str]:
        """Authorize, then run the command body with logging, tracing and metrics."""
        start = time.perf_counter()
        outcome = "success"

        with trace_operation(f"admin.{name}", **attributes) as span, log_context(
            command=name, ip_address=ctx.ip_address
        ):
            try:
                admin_uid = await self.guard.authorize(ctx.credential)
                span.set_attribute("admin_uid", admin_uid)
                with log_context(admin_uid=admin_uid):
                    yield admin_uid
            except AdminError as e:
                outcome = e.kind
                logger.warning("command_rejected", error_kind=e.kind, error=str(e))
                raise
            except asyncio.CancelledError:
                outcome = "cancelled"
                logger.warning("command_cancelled")
                raise
            except Exception as e:
                outcome = "error"
                logger.error("command_failed", error=str(e), exc_info=True)
                raise
            else:
                logger.info("command_completed", **attributes)
            finally:
                metrics.record_command(name, outcome, time.perf_counter() - start)

    @staticmethod
    def _validate(schema: type[P], /, **values: Any) -> P:
        try:
            return schema(**values)
        except ValidationError as e:
            details = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
            )
            raise InvalidParameterError(details) from e

    async def _audit(
        self,
        admin_uid: str,
        ctx: CommandContext,
        action: AdminAction,
        data: dict[str, Any],
    ) -> BestEffortResult:
        if ctx.ip_address:
            data = {**data, "ipAddress": ctx.ip_address}
        return await self.audit.record(admin_uid, action, data)

    async def _load_user(self, user_id: str) -> UserRecord:
        doc = await self.store.get(USERS, user_id)
        if doc is None:
            raise UserNotFoundError(user_id)
        return UserRecord.from_document(doc.id, doc.data)

    async def _require_license(self, license_key: str) -> None:
        if await self.store.get(LICENSES, license_key) is None:
            raise LicenseNotFoundError(license_key)

    async def _merge_maintenance(self, fields: dict[str, Any]) -> None:
        await self.store.set(CONFIG, MAINTENANCE_DOC, fields, merge=True)

    # ========================================================================
    # User lifecycle
    # ========================================================================

    async def update_user_plan(self, ctx: CommandContext, user_id: str, plan: Plan | str) -> None:
        """Change a user's plan and reset their message limit to the plan's quota."""
        async with self._command("update_user_plan", ctx, target_user=user_id) as admin_uid:
            params = self._validate(UpdateUserPlanParams, user_id=user_id, plan=plan)
            user = await self._load_user(params.user_id)

            await self.store.update(
                USERS,
                user.uid,
                {
                    "plan": params.plan.value,
                    "messagesLimit": PLAN_MESSAGE_LIMITS[params.plan],
                },
            )

            await self._audit(
                admin_uid,
                ctx,
                AdminAction.UPDATE_USER_PLAN,
                {"targetUser": user.uid, "newPlan": params.plan.value},
            )

    async def ban_user(self, ctx: CommandContext, user_id: str, reason: str = "") -> None:
        """Ban a non-admin user."""
        async with self._command("ban_user", ctx, target_user=user_id) as admin_uid:
            params = self._validate(BanUserParams, user_id=user_id, reason=reason)
            user = await self._load_user(params.user_id)
            if user.is_admin:
                raise CannotBanAdminError(user.uid)

            await self.store.update(
                USERS,
                user.uid,
                {
                    "isBanned": True,
                    "bannedAt": self.clock(),
                    "bannedBy": admin_uid,
                    "banReason": params.reason,
                },
            )

            await self._audit(
                admin_uid,
                ctx,
                AdminAction.BAN_USER,
                {"targetUser": user.uid, "reason": params.reason},
            )

    async def unban_user(self, ctx: CommandContext, user_id: str) -> None:
        """Lift a ban and clear all ban metadata. Idempotent."""
        async with self._command("unban_user", ctx, target_user=user_id) as admin_uid:
            params = self._validate(UserTarget, user_id=user_id)
            user = await self._load_user(params.user_id)

            await self.store.update(
                USERS,
                user.uid,
                {
                    "isBanned": False,
                    "bannedAt": None,
                    "bannedBy": None,
                    "banReason": None,
                },
            )

            await self._audit(admin_uid, ctx, AdminAction.UNBAN_USER, {"targetUser": user.uid})

    async def reset_user_messages(self, ctx: CommandContext, user_id: str) -> None:
        """Zero a user's message counter."""
        async with self._command("reset_user_messages", ctx, target_user=user_id) as admin_uid:
            params = self._validate(UserTarget, user_id=user_id)
            user = await self._load_user(params.user_id)

            await self.store.update(
                USERS,
                user.uid,
                {"messagesUsed": 0, "lastMessageReset": self.clock()},
            )

            await self._audit(
                admin_uid, ctx, AdminAction.RESET_USER_MESSAGES, {"targetUser": user.uid}
            )

    async def delete_user(self, ctx: CommandContext, user_id: str) -> None:
        """
        Delete a non-admin user's record, then their identity provider account.

        The provider deletion is best-effort: an account missing there, or an
        unreachable provider, does not fail the command.
        """
        async with self._command("delete_user", ctx, target_user=user_id) as admin_uid:
            params = self._validate(UserTarget, user_id=user_id)
            user = await self._load_user(params.user_id)
            if user.is_admin:
                raise CannotDeleteAdminError(user.uid)

            await self.store.delete(USERS, user.uid)

            result = await self.identity_provider.delete_user(user.uid)
            if not result.ok:
                logger.warning(
                    "identity_user_not_deleted", target_user=user.uid, error=result.error
                )
                metrics.record_best_effort_failure("identity_delete_user")

            await self._audit(
                admin_uid,
                ctx,
                AdminAction.DELETE_USER,
                {"targetUser": user.uid, "userEmail": user.email},
            )

    async def promote_user(self, ctx: CommandContext, user_id: str) -> None:
        """Grant admin and mirror it as an ``admin`` custom claim (best-effort)."""
        await self._set_admin(ctx, user_id, True)

    async def demote_user(self, ctx: CommandContext, user_id: str) -> None:
        """Revoke admin and clear the custom claims (best-effort)."""
        await self._set_admin(ctx, user_id, False)

    async def _set_admin(self, ctx: CommandContext, user_id: str, is_admin: bool) -> None:
        name = "promote_user" if is_admin else "demote_user"
        action = AdminAction.PROMOTE_USER if is_admin else AdminAction.DEMOTE_USER

        async with self._command(name, ctx, target_user=user_id) as admin_uid:
            params = self._validate(UserTarget, user_id=user_id)
            user = await self._load_user(params.user_id)

            await self.store.update(USERS, user.uid, {"isAdmin": is_admin})

            claims: dict[str, Any] = {"admin": True} if is_admin else {}
            result = await self.identity_provider.set_custom_claims(user.uid, claims)
            if not result.ok:
                logger.warning("admin_claim_not_mirrored", target_user=user.uid, error=result.error)
                metrics.record_best_effort_failure("identity_custom_claims")

            await self._audit(admin_uid, ctx, action, {"targetUser": user.uid})

    # ========================================================================
    # License lifecycle
    # ========================================================================

    async def create_license(
        self, ctx: CommandContext, plan: Plan | str, validity_days: int
    ) -> str:
        """Create a valid license and return its generated key."""
        async with self._command("create_license", ctx) as admin_uid:
            params = self._validate(CreateLicenseParams, plan=plan, validity_days=validity_days)
            now = self.clock()
            license_key = generate_license_key(now)

            await self.store.set(
                LICENSES,
                license_key,
                {
                    "plan": params.plan.value,
                    "valid": True,
                    "createdAt": now,
                    "createdBy": admin_uid,
                    "validityDays": params.validity_days,
                },
            )

            await self._audit(
                admin_uid,
                ctx,
                AdminAction.CREATE_LICENSE,
                {
                    "licenseKey": license_key,
                    "plan": params.plan.value,
                    "validityDays": params.validity_days,
                },
            )

        return license_key

    async def invalidate_license(self, ctx: CommandContext, license_key: str) -> None:
        """Soft-invalidate a license."""
        async with self._command("invalidate_license", ctx, license_key=license_key) as admin_uid:
            params = self._validate(LicenseTarget, license_key=license_key)
            await self._require_license(params.license_key)

            await self.store.update(LICENSES, params.license_key, {"valid": False})

            await self._audit(
                admin_uid, ctx, AdminAction.INVALIDATE_LICENSE, {"licenseKey": params.license_key}
            )

    async def delete_license(self, ctx: CommandContext, license_key: str) -> None:
        """Hard-delete a license, valid or not."""
        async with self._command("delete_license", ctx, license_key=license_key) as admin_uid:
            params = self._validate(LicenseTarget, license_key=license_key)
            await self._require_license(params.license_key)

            await self.store.delete(LICENSES, params.license_key)

            await self._audit(
                admin_uid, ctx, AdminAction.DELETE_LICENSE, {"licenseKey": params.license_key}
            )

    async def purge_invalid_licenses(self, ctx: CommandContext) -> int:
        """
        Delete every license with ``valid`` explicitly false.

        Matching keys are snapshotted, then removed in one batch. Licenses
        created or invalidated after the snapshot are left alone.
        """
        async with self._command("purge_invalid_licenses", ctx) as admin_uid:
            purged = await self.store.delete_many(
                LICENSES, lambda data: data.get("valid") is False
            )

            await self._audit(admin_uid, ctx, AdminAction.PURGE_LICENSES, {"count": purged})

        return purged

    # ========================================================================
    # AI configuration
    # ========================================================================

    async def get_ai_config(self, ctx: CommandContext) -> AIConfig:
        """Stored AI config, with defaults for an absent document or field."""
        async with self._command("get_ai_config", ctx):
            doc = await self.store.get(CONFIG, AI_CONFIG_DOC)
            return AIConfig.from_document(doc.data if doc else None)

    async def update_ai_config(
        self,
        ctx: CommandContext,
        *,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        system_prompt: str | None = None,
    ) -> AIConfig:
        """Merge the supplied fields into the AI config; returns the result."""
        async with self._command("update_ai_config", ctx) as admin_uid:
            update = self._validate(
                AIConfigUpdate,
                model=model,
                temperature=temperature,
                max_tokens=max_tokens,
                system_prompt=system_prompt,
            )
            fields = update.to_document()
            if not fields:
                raise InvalidParameterError("at least one AI config field is required")

            await self.store.set(CONFIG, AI_CONFIG_DOC, fields, merge=True)

            await self._audit(admin_uid, ctx, AdminAction.UPDATE_AI_CONFIG, {"config": fields})

            doc = await self.store.get(CONFIG, AI_CONFIG_DOC)
            return AIConfig.from_document(doc.data if doc else None)

    # ========================================================================
    # Maintenance
    # ========================================================================

    async def get_maintenance_status(self, ctx: CommandContext) -> MaintenanceStatus:
        """Current maintenance state, with defaults for an absent document."""
        async with self._command("get_maintenance_status", ctx):
            doc = await self.store.get(CONFIG, MAINTENANCE_DOC)
            return MaintenanceStatus.from_document(doc.data if doc else None)

    async def enable_global_maintenance(
        self, ctx: CommandContext, message: str | None = None
    ) -> None:
        async with self._command("enable_global_maintenance", ctx) as admin_uid:
            params = self._validate(MaintenanceMessageParams, message=message)
            message = params.message or DEFAULT_GLOBAL_MESSAGE
            await self._merge_maintenance(
                {
                    "isGlobalMaintenance": True,
                    "message": message,
                    "enabledAt": self.clock(),
                    "enabledBy": admin_uid,
                }
            )
            await self._audit(
                admin_uid, ctx, AdminAction.ENABLE_GLOBAL_MAINTENANCE, {"message": message}
            )

    async def disable_global_maintenance(self, ctx: CommandContext) -> None:
        async with self._command("disable_global_maintenance", ctx) as admin_uid:
            await self._merge_maintenance({"isGlobalMaintenance": False})
            await self._audit(admin_uid, ctx, AdminAction.DISABLE_GLOBAL_MAINTENANCE, {})

    async def enable_partial_maintenance(
        self, ctx: CommandContext, services: list[str], message: str | None = None
    ) -> None:
        """Mark an explicit list of services as under maintenance."""
        async with self._command("enable_partial_maintenance", ctx) as admin_uid:
            params = self._validate(PartialMaintenanceParams, services=services, message=message)
            message = params.message or DEFAULT_PARTIAL_MESSAGE
            await self._merge_maintenance(
                {
                    "partialServices": params.services,
                    "message": message,
                    "enabledAt": self.clock(),
                    "enabledBy": admin_uid,
                }
            )
            await self._audit(
                admin_uid,
                ctx,
                AdminAction.ENABLE_PARTIAL_MAINTENANCE,
                {"services": params.services, "message": message},
            )

    async def disable_partial_maintenance(self, ctx: CommandContext) -> None:
        async with self._command("disable_partial_maintenance", ctx) as admin_uid:
            await self._merge_maintenance({"partialServices": []})
            await self._audit(admin_uid, ctx, AdminAction.DISABLE_PARTIAL_MAINTENANCE, {})

    # Sub-service flags are inverted: ``enabled`` means the service is available,
    # so turning maintenance ON writes enabled=False.

    async def enable_ai_maintenance(self, ctx: CommandContext, message: str | None = None) -> None:
        await self._enable_service_maintenance(
            ctx,
            "enable_ai_maintenance",
            "iaService",
            DEFAULT_AI_MESSAGE,
            AdminAction.ENABLE_IA_MAINTENANCE,
            message,
        )

    async def disable_ai_maintenance(self, ctx: CommandContext) -> None:
        await self._disable_service_maintenance(
            ctx, "disable_ai_maintenance", "iaService", AdminAction.DISABLE_IA_MAINTENANCE
        )

    async def enable_license_maintenance(
        self, ctx: CommandContext, message: str | None = None
    ) -> None:
        await self._enable_service_maintenance(
            ctx,
            "enable_license_maintenance",
            "licenseService",
            DEFAULT_LICENSE_MESSAGE,
            AdminAction.ENABLE_LICENSE_MAINTENANCE,
            message,
        )

    async def disable_license_maintenance(self, ctx: CommandContext) -> None:
        await self._disable_service_maintenance(
            ctx,
            "disable_license_maintenance",
            "licenseService",
            AdminAction.DISABLE_LICENSE_MAINTENANCE,
        )

    async def _enable_service_maintenance(
        self,
        ctx: CommandContext,
        name: str,
        field: str,
        default_message: str,
        action: AdminAction,
        message: str | None,
    ) -> None:
        async with self._command(name, ctx) as admin_uid:
            params = self._validate(MaintenanceMessageParams, message=message)
            message = params.message or default_message
            await self._merge_maintenance(
                {
                    field: {
                        "enabled": False,
                        "message": message,
                        "enabledAt": self.clock(),
                        "enabledBy": admin_uid,
                    }
                }
            )
            await self._audit(admin_uid, ctx, action, {"message": message})

    async def _disable_service_maintenance(
        self, ctx: CommandContext, name: str, field: str, action: AdminAction
    ) -> None:
        async with self._command(name, ctx) as admin_uid:
            await self._merge_maintenance({field: {"enabled": True}})
            await self._audit(admin_uid, ctx, action, {})

    async def enable_planned_maintenance(
        self, ctx: CommandContext, scheduled_at: datetime | str, message: str | None = None
    ) -> None:
        """Announce a future maintenance window."""
        async with self._command("enable_planned_maintenance", ctx) as admin_uid:
            params = self._validate(
                PlannedMaintenanceParams, scheduled_at=scheduled_at, message=message
            )
            planned_time = format_timestamp(params.scheduled_at)
            message = params.message or DEFAULT_PLANNED_MESSAGE
            await self._merge_maintenance(
                {
                    "plannedMaintenance": {
                        "enabled": True,
                        "scheduledAt": planned_time,
                        "message": message,
                        "scheduledBy": admin_uid,
                    }
                }
            )
            await self._audit(
                admin_uid,
                ctx,
                AdminAction.ENABLE_PLANNED_MAINTENANCE,
                {"plannedTime": planned_time, "message": message},
            )

    async def disable_planned_maintenance(self, ctx: CommandContext) -> None:
        async with self._command("disable_planned_maintenance", ctx) as admin_uid:
            await self._merge_maintenance({"plannedMaintenance": {"enabled": False}})
            await self._audit(admin_uid, ctx, AdminAction.DISABLE_PLANNED_MAINTENANCE, {})

    # ========================================================================
    # Read-only queries (no audit entry)
    # ========================================================================

    async def get_user(self, ctx: CommandContext, user_id: str) -> UserRecord | None:
        async with self._command("get_user", ctx, target_user=user_id):
            params = self._validate(UserTarget, user_id=user_id)
            doc = await self.store.get(USERS, params.user_id)
            return UserRecord.from_document(doc.id, doc.data) if doc else None

    async def get_all_users(
        self, ctx: CommandContext, limit: int | None = None, cursor: str | None = None
    ) -> Page[UserRecord]:
        """One page of users in insertion order. ``cursor`` is the last uid seen."""
        async with self._command("get_all_users", ctx):
            params = self._validate(
                ListParams,
                limit=self.default_page_size if limit is None else limit,
                cursor=cursor,
            )
            docs = await self.store.list(USERS, params.limit, cursor=params.cursor)
            return Page(
                items=[UserRecord.from_document(doc.id, doc.data) for doc in docs],
                next_cursor=docs[-1].id if len(docs) == params.limit else None,
            )

    async def get_all_licenses(
        self, ctx: CommandContext, limit: int | None = None, cursor: str | None = None
    ) -> Page[LicenseRecord]:
        async with self._command("get_all_licenses", ctx):
            params = self._validate(
                ListParams,
                limit=self.default_page_size if limit is None else limit,
                cursor=cursor,
            )
            docs = await self.store.list(LICENSES, params.limit, cursor=params.cursor)
            return Page(
                items=[LicenseRecord.from_document(doc.id, doc.data) for doc in docs],
                next_cursor=docs[-1].id if len(docs) == params.limit else None,
            )

    async def get_banned_users(self, ctx: CommandContext) -> list[UserRecord]:
        async with self._command("get_banned_users", ctx):
            docs = await self.store.find(USERS, lambda data: data.get("isBanned") is True)
            return [UserRecord.from_document(doc.id, doc.data) for doc in docs]

    async def get_admin_logs(
        self, ctx: CommandContext, limit: int | None = None, cursor: str | None = None
    ) -> Page[AuditEntry]:
        """One page of audit entries, newest first."""
        async with self._command("get_admin_logs", ctx):
            params = self._validate(
                ListParams,
                limit=self.default_log_page_size if limit is None else limit,
                cursor=cursor,
            )
            return await self.audit.list_entries(params.limit, cursor=params.cursor)

    async def get_system_stats(self, ctx: CommandContext) -> SystemStats:
        """
        Aggregate counts over users and licenses.

        The ``health`` block is a fixed placeholder, not telemetry.
        """
        async with self._command("get_system_stats", ctx):
            users = [
                UserRecord.from_document(doc.id, doc.data) for doc in await self.store.find(USERS)
            ]
            licenses = [
                LicenseRecord.from_document(doc.id, doc.data)
                for doc in await self.store.find(LICENSES)
            ]

            return SystemStats(
                total_users=len(users),
                total_admins=sum(1 for u in users if u.is_admin),
                banned_users=sum(1 for u in users if u.is_banned),
                total_messages=sum(u.messages_used for u in users),
                active_licenses=sum(1 for lic in licenses if lic.valid),
            )

    # ========================================================================
    # Log retention
    # ========================================================================

    async def clear_old_logs(self, ctx: CommandContext, days_old: int) -> int:
        """
        Delete audit entries stamped strictly before now - ``days_old`` days.

        Entries exactly at the cutoff are kept. Writes one CLEAR_OLD_LOGS entry.
        """
        async with self._command("clear_old_logs", ctx, days_old=days_old) as admin_uid:
            params = self._validate(ClearOldLogsParams, days_old=days_old)
            cutoff = self.clock() - timedelta(days=params.days_old)

            cleared = await self.audit.purge_before(cutoff)

            await self._audit(
                admin_uid,
                ctx,
                AdminAction.CLEAR_OLD_LOGS,
                {"daysOld": params.days_old, "count": cleared},
            )

        return cleared
