"""
Migration Runner - Runs Alembic migrations at startup.

Applies pending migrations before the store is handed to the executor, when
RUN_MIGRATIONS is set.
"""

from pathlib import Path

from sqlalchemy import Engine, create_engine
from structlog import get_logger

from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from adminops.config import Settings

logger = get_logger(__name__)

# Path to alembic.ini relative to project root
ALEMBIC_INI_PATH = Path(__file__).parent.parent.parent / "alembic.ini"

# Async driver -> sync driver used by the Alembic command API
_SYNC_DRIVERS = {
    "postgresql+asyncpg": "postgresql+psycopg2",
    "sqlite+aiosqlite": "sqlite",
}


def get_sync_database_url(database_url: str) -> str:
    """Convert an async database URL to its synchronous equivalent.

    Alembic's command API uses synchronous connections.
    """
    for async_prefix, sync_prefix in _SYNC_DRIVERS.items():
        if database_url.startswith(f"{async_prefix}:"):
            return sync_prefix + database_url[len(async_prefix) :]
    return database_url


def _alembic_config(sync_url: str) -> Config:
    alembic_cfg = Config(str(ALEMBIC_INI_PATH))
    alembic_cfg.set_main_option("sqlalchemy.url", sync_url.replace("%", "%%"))
    return alembic_cfg


def _get_current_revision(engine: Engine) -> str | None:
    """Get the current database revision."""
    with engine.connect() as conn:
        context = MigrationContext.configure(conn)
        return context.get_current_revision()


def _get_head_revision(alembic_cfg: Config) -> str | None:
    """Get the head revision from migration scripts."""
    script = ScriptDirectory.from_config(alembic_cfg)
    return script.get_current_head()


def run_migrations(settings: Settings) -> None:
    """
    Run pending Alembic migrations.

    Only upgrades when the database is behind head.
    """
    if not ALEMBIC_INI_PATH.exists():
        logger.warning("alembic_config_missing", path=str(ALEMBIC_INI_PATH))
        return

    try:
        sync_url = get_sync_database_url(settings.database_url)
        alembic_cfg = _alembic_config(sync_url)
        engine = create_engine(sync_url)

        try:
            current = _get_current_revision(engine)
            head = _get_head_revision(alembic_cfg)

            if current == head:
                logger.info("database_schema_up_to_date", revision=current)
                return

            logger.info("running_migrations", current=current, head=head)
            command.upgrade(alembic_cfg, "head")

            new_current = _get_current_revision(engine)
            logger.info("migrations_complete", revision=new_current)

        finally:
            engine.dispose()

    except Exception as e:
        logger.error("migration_failed", error=str(e))
        raise RuntimeError(f"Database migration failed: {e}") from e
