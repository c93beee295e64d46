"""
Runtime wiring - builds a ready-to-use AdminCommandExecutor from settings.

Transports (HTTP handlers, RPC endpoints, scripts) obtain an executor here
and call its commands directly; request routing lives outside this package.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncEngine

from adminops.config import Settings, get_settings
from adminops.db.migration_runner import run_migrations
from adminops.db.session import create_engine, create_session_factory
from adminops.db.store import DocumentStore, SQLDocumentStore
from adminops.observability import get_logger, metrics, setup_logging, setup_tracing
from adminops.observability.tracing import instrument_sqlalchemy
from adminops.services.admin_executor import AdminCommandExecutor
from adminops.services.admin_guard import AdminGuard
from adminops.services.audit import AuditLogger
from adminops.services.identity import IdentityProviderClient, IdentityTokenVerifier

logger = get_logger(__name__)


@dataclass
class AdminRuntime:
    """Executor plus the resources it holds open."""

    executor: AdminCommandExecutor
    store: DocumentStore
    identity_provider: IdentityProviderClient
    engine: AsyncEngine | None = None

    async def aclose(self) -> None:
        """Release HTTP and database resources."""
        await self.identity_provider.close()
        await self.store.close()
        if self.engine is not None:
            await self.engine.dispose()
        logger.info("admin_runtime_closed")


def build_executor(
    settings: Settings,
    store: DocumentStore,
    identity_provider: IdentityProviderClient | None = None,
) -> AdminCommandExecutor:
    """Wire guard, audit logger and identity clients around ``store``."""
    verifier = IdentityTokenVerifier(
        key=settings.identity_token_key,
        algorithms=settings.token_algorithms,
        audience=settings.identity_token_audience,
        issuer=settings.identity_token_issuer,
    )
    if identity_provider is None:
        identity_provider = IdentityProviderClient(
            base_url=settings.identity_admin_url,
            api_token=settings.identity_admin_token,
            timeout=settings.identity_admin_timeout,
        )

    audit = AuditLogger(store)
    guard = AdminGuard(verifier, store, audit)
    return AdminCommandExecutor(
        store=store,
        guard=guard,
        audit=audit,
        identity_provider=identity_provider,
        default_page_size=settings.default_page_size,
        default_log_page_size=settings.default_log_page_size,
    )


def build_runtime(settings: Settings | None = None) -> AdminRuntime:
    """
    Build the full runtime: logging, tracing, metrics, store, executor.

    Raises:
        ConfigurationError: critical settings are missing (raised while
            loading settings, before any resource is opened)
    """
    settings = settings or get_settings()

    setup_logging(settings)
    setup_tracing(settings)
    if settings.metrics_enabled:
        metrics.set_service_info(settings.service_name, settings.service_version)

    if settings.run_migrations:
        run_migrations(settings)

    engine = create_engine(settings)
    instrument_sqlalchemy(engine, settings)
    store = SQLDocumentStore(create_session_factory(engine))

    executor = build_executor(settings, store)

    logger.info(
        "admin_runtime_started",
        service=settings.service_name,
        version=settings.service_version,
        tracing_enabled=settings.tracing_enabled,
        metrics_enabled=settings.metrics_enabled,
        identity_admin_configured=settings.identity_admin_configured,
    )
    return AdminRuntime(
        executor=executor,
        store=store,
        identity_provider=executor.identity_provider,
        engine=engine,
    )


@asynccontextmanager
async def admin_runtime(settings: Settings | None = None) -> AsyncIterator[AdminRuntime]:
    """Async context manager around ``build_runtime``."""
    runtime = build_runtime(settings)
    try:
        yield runtime
    finally:
        await runtime.aclose()
