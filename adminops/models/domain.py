"""
Domain Models - Typed schema for every stored entity.

Documents in the store are plain JSON maps. Each entity type here owns the
mapping from a (possibly absent, possibly partial) document to an immutable
dataclass, substituting defaults so "document missing" and "field missing"
both surface as typed values instead of ad-hoc fallbacks.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Generic, TypeVar

T = TypeVar("T")

# Logical collections
USERS = "users"
LICENSES = "licenses"
CONFIG = "config"
ADMIN_LOGS = "admin_logs"

# Singleton config documents
AI_CONFIG_DOC = "ai"
MAINTENANCE_DOC = "maintenance"


class Plan(str, Enum):
    """Subscription tier controlling message quota."""

    FREE = "Free"
    CLASSIC = "Classic"
    PRO = "Pro"


PLAN_MESSAGE_LIMITS: dict[Plan, int] = {
    Plan.FREE: 10,
    Plan.CLASSIC: 100,
    Plan.PRO: 1000,
}


class AdminAction(str, Enum):
    """Fixed vocabulary of audit log actions."""

    UNAUTHORIZED_ADMIN_ACCESS = "UNAUTHORIZED_ADMIN_ACCESS"
    UPDATE_USER_PLAN = "UPDATE_USER_PLAN"
    BAN_USER = "BAN_USER"
    UNBAN_USER = "UNBAN_USER"
    RESET_USER_MESSAGES = "RESET_USER_MESSAGES"
    DELETE_USER = "DELETE_USER"
    PROMOTE_USER = "PROMOTE_USER"
    DEMOTE_USER = "DEMOTE_USER"
    CREATE_LICENSE = "CREATE_LICENSE"
    INVALIDATE_LICENSE = "INVALIDATE_LICENSE"
    DELETE_LICENSE = "DELETE_LICENSE"
    UPDATE_AI_CONFIG = "UPDATE_AI_CONFIG"
    PURGE_LICENSES = "PURGE_LICENSES"
    CLEAR_OLD_LOGS = "CLEAR_OLD_LOGS"
    ENABLE_GLOBAL_MAINTENANCE = "ENABLE_GLOBAL_MAINTENANCE"
    DISABLE_GLOBAL_MAINTENANCE = "DISABLE_GLOBAL_MAINTENANCE"
    ENABLE_PARTIAL_MAINTENANCE = "ENABLE_PARTIAL_MAINTENANCE"
    DISABLE_PARTIAL_MAINTENANCE = "DISABLE_PARTIAL_MAINTENANCE"
    ENABLE_IA_MAINTENANCE = "ENABLE_IA_MAINTENANCE"
    DISABLE_IA_MAINTENANCE = "DISABLE_IA_MAINTENANCE"
    ENABLE_LICENSE_MAINTENANCE = "ENABLE_LICENSE_MAINTENANCE"
    DISABLE_LICENSE_MAINTENANCE = "DISABLE_LICENSE_MAINTENANCE"
    ENABLE_PLANNED_MAINTENANCE = "ENABLE_PLANNED_MAINTENANCE"
    DISABLE_PLANNED_MAINTENANCE = "DISABLE_PLANNED_MAINTENANCE"


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


def format_timestamp(value: datetime) -> str:
    """Serialize a timestamp for storage (ISO-8601, always UTC)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat()


def parse_timestamp(value: Any) -> datetime | None:
    """Parse a stored timestamp. Missing or unparseable values become None."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
    return None


def _plan_or_default(value: Any) -> Plan:
    try:
        return Plan(value)
    except ValueError:
        return Plan.FREE


def _int_or_default(value: Any, default: int) -> int:
    try:
        return int(value) if value else default
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class BestEffortResult:
    """
    Outcome of a side call whose failure must never fail the enclosing command.

    Audit writes and identity provider mirroring return this instead of raising.
    """

    ok: bool
    error: str | None = None

    @classmethod
    def success(cls) -> "BestEffortResult":
        return cls(ok=True)

    @classmethod
    def failure(cls, error: str) -> "BestEffortResult":
        return cls(ok=False, error=error)


@dataclass(frozen=True)
class Page(Generic[T]):
    """One page of a listing. ``next_cursor`` is None on the last page."""

    items: list[T]
    next_cursor: str | None


@dataclass(frozen=True)
class UserRecord:
    """Immutable user snapshot with defaults substituted."""

    uid: str
    email: str | None = None
    display_name: str | None = None
    plan: Plan = Plan.FREE
    is_admin: bool = False
    is_banned: bool = False
    messages_used: int = 0
    messages_limit: int = PLAN_MESSAGE_LIMITS[Plan.FREE]
    created_at: datetime | None = None
    banned_at: datetime | None = None
    banned_by: str | None = None
    ban_reason: str | None = None
    last_message_reset: datetime | None = None

    @classmethod
    def from_document(cls, uid: str, data: dict[str, Any]) -> "UserRecord":
        return cls(
            uid=uid,
            email=data.get("email"),
            display_name=data.get("displayName"),
            plan=_plan_or_default(data.get("plan", Plan.FREE.value)),
            is_admin=bool(data.get("isAdmin", False)),
            is_banned=bool(data.get("isBanned", False)),
            messages_used=_int_or_default(data.get("messagesUsed"), 0),
            messages_limit=_int_or_default(
                data.get("messagesLimit"), PLAN_MESSAGE_LIMITS[Plan.FREE]
            ),
            created_at=parse_timestamp(data.get("createdAt")),
            banned_at=parse_timestamp(data.get("bannedAt")),
            banned_by=data.get("bannedBy"),
            ban_reason=data.get("banReason"),
            last_message_reset=parse_timestamp(data.get("lastMessageReset")),
        )


@dataclass(frozen=True)
class LicenseRecord:
    """Immutable license snapshot. A missing ``valid`` field means valid."""

    key: str
    plan: Plan = Plan.FREE
    valid: bool = True
    used_by: str | None = None
    used_at: datetime | None = None
    created_at: datetime | None = None
    created_by: str | None = None
    validity_days: int | None = None

    @classmethod
    def from_document(cls, key: str, data: dict[str, Any]) -> "LicenseRecord":
        return cls(
            key=key,
            plan=_plan_or_default(data.get("plan", Plan.FREE.value)),
            valid=data.get("valid") is not False,
            used_by=data.get("usedBy") or None,
            used_at=parse_timestamp(data.get("usedAt")),
            created_at=parse_timestamp(data.get("createdAt")),
            created_by=data.get("createdBy"),
            validity_days=data.get("validityDays"),
        )


@dataclass(frozen=True)
class AIConfig:
    """AI model configuration (``config/ai``)."""

    model: str = "gpt-4o-mini"
    temperature: float = 0.7
    max_tokens: int = 2000
    system_prompt: str = "You are a helpful AI assistant."

    @classmethod
    def from_document(cls, data: dict[str, Any] | None) -> "AIConfig":
        """Build from a stored document; absent document or fields take defaults."""
        if data is None:
            return cls()
        defaults = cls()
        return cls(
            model=data.get("model", defaults.model),
            temperature=float(data.get("temperature", defaults.temperature)),
            max_tokens=int(data.get("maxTokens", defaults.max_tokens)),
            system_prompt=data.get("systemPrompt", defaults.system_prompt),
        )

    def to_document(self) -> dict[str, Any]:
        return {
            "model": self.model,
            "temperature": self.temperature,
            "maxTokens": self.max_tokens,
            "systemPrompt": self.system_prompt,
        }


@dataclass(frozen=True)
class ServiceMaintenance:
    """
    Per-service maintenance flag.

    Polarity is inverted relative to the global flag: ``enabled`` means the
    service is AVAILABLE. Maintenance on a service sets ``enabled=False``.
    """

    enabled: bool = True
    message: str | None = None
    enabled_at: datetime | None = None
    enabled_by: str | None = None

    @classmethod
    def from_document(cls, data: dict[str, Any] | None) -> "ServiceMaintenance | None":
        if data is None:
            return None
        return cls(
            enabled=data.get("enabled") is not False,
            message=data.get("message"),
            enabled_at=parse_timestamp(data.get("enabledAt")),
            enabled_by=data.get("enabledBy"),
        )


@dataclass(frozen=True)
class PlannedMaintenance:
    """A scheduled maintenance window."""

    enabled: bool = False
    scheduled_at: datetime | None = None
    message: str | None = None
    scheduled_by: str | None = None

    @classmethod
    def from_document(cls, data: dict[str, Any] | None) -> "PlannedMaintenance | None":
        if data is None:
            return None
        return cls(
            enabled=bool(data.get("enabled", False)),
            scheduled_at=parse_timestamp(data.get("scheduledAt")),
            message=data.get("message"),
            scheduled_by=data.get("scheduledBy"),
        )


@dataclass(frozen=True)
class MaintenanceStatus:
    """Composite maintenance state (``config/maintenance``)."""

    is_global_maintenance: bool = False
    message: str | None = None
    enabled_at: datetime | None = None
    enabled_by: str | None = None
    partial_services: tuple[str, ...] = ()
    ia_service: ServiceMaintenance | None = None
    license_service: ServiceMaintenance | None = None
    planned_maintenance: PlannedMaintenance | None = None

    @classmethod
    def from_document(cls, data: dict[str, Any] | None) -> "MaintenanceStatus":
        if data is None:
            return cls()
        return cls(
            is_global_maintenance=bool(data.get("isGlobalMaintenance", False)),
            message=data.get("message"),
            enabled_at=parse_timestamp(data.get("enabledAt")),
            enabled_by=data.get("enabledBy"),
            partial_services=tuple(data.get("partialServices") or ()),
            ia_service=ServiceMaintenance.from_document(data.get("iaService")),
            license_service=ServiceMaintenance.from_document(data.get("licenseService")),
            planned_maintenance=PlannedMaintenance.from_document(data.get("plannedMaintenance")),
        )

    @property
    def ai_service_available(self) -> bool:
        """AI service is usable unless global or AI-specific maintenance is on."""
        if self.is_global_maintenance:
            return False
        return self.ia_service is None or self.ia_service.enabled

    @property
    def license_service_available(self) -> bool:
        """License service is usable unless global or license maintenance is on."""
        if self.is_global_maintenance:
            return False
        return self.license_service is None or self.license_service.enabled


@dataclass(frozen=True)
class AuditEntry:
    """Immutable record of one administrative action."""

    id: str
    admin_uid: str
    action: str
    data: dict[str, Any]
    timestamp: datetime | None
    ip_address: str = "unknown"

    @classmethod
    def from_document(cls, doc_id: str, data: dict[str, Any]) -> "AuditEntry":
        return cls(
            id=doc_id,
            admin_uid=data.get("adminUid", ""),
            action=data.get("action", ""),
            data=dict(data.get("data") or {}),
            timestamp=parse_timestamp(data.get("timestamp")),
            ip_address=data.get("ipAddress") or "unknown",
        )


@dataclass(frozen=True)
class PlaceholderHealth:
    """
    Static health figures.

    These are NOT computed from telemetry. They are fixed stub values kept so
    dashboards have something to render; never alert on them.
    """

    system_health: str = "Optimal"
    uptime_percent: float = 99.95
    avg_latency_ms: int = 45
    storage_used_gb: float = 2.5
    storage_total_gb: float = 100.0
    is_placeholder: bool = True


@dataclass(frozen=True)
class SystemStats:
    """Aggregated counts across users and licenses."""

    total_users: int
    total_admins: int
    banned_users: int
    total_messages: int
    active_licenses: int
    health: PlaceholderHealth = field(default_factory=PlaceholderHealth)
