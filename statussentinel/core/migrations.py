"""Schema provisioning for the history database.

The daemon and every CLI command call ``ensure_db_migrated`` before touching
storage. A database created by an older build without Alembic tracking is
adopted in place rather than rebuilt, so recorded history survives.
"""

import asyncio
from dataclasses import dataclass
from pathlib import Path

import structlog
from alembic import command
from alembic.config import Config
from sqlalchemy import inspect, text

from statussentinel.core import database

logger = structlog.get_logger()

_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent

# Presence of this table marks a database that already holds sentinel data
_MARKER_TABLE = "services"


@dataclass(frozen=True)
class SchemaState:
    tracked: bool
    populated: bool
    revision: str | None = None


def _alembic_config() -> Config:
    cfg = Config(str(_PROJECT_ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(_PROJECT_ROOT / "alembic"))
    # Migrations run against whatever engine the process is using, tests included
    cfg.set_main_option("sqlalchemy.url", database.engine.url.render_as_string(hide_password=False))
    return cfg


def _inspect_schema(connection) -> SchemaState:
    tables = set(inspect(connection).get_table_names())
    if "alembic_version" not in tables:
        return SchemaState(tracked=False, populated=_MARKER_TABLE in tables)

    revision = connection.execute(text("SELECT version_num FROM alembic_version")).scalar()
    return SchemaState(tracked=True, populated=_MARKER_TABLE in tables, revision=revision)


async def _run_alembic(action, *args) -> None:
    await asyncio.to_thread(action, _alembic_config(), *args)


async def ensure_db_migrated() -> None:
    """Bring the history schema to the head revision.

    An empty database gets the ORM metadata and a head stamp. Sentinel tables
    without a version row are stamped as head. A tracked database is upgraded.
    """
    async with database.engine.begin() as conn:
        state = await conn.run_sync(_inspect_schema)

    if state.tracked:
        logger.info("schema_upgrade", revision=state.revision)
        await _run_alembic(command.upgrade, "head")
    elif state.populated:
        logger.info("schema_adopted", action="stamp_head")
        await _run_alembic(command.stamp, "head")
    else:
        logger.info("schema_created", action="create_all_and_stamp")
        async with database.engine.begin() as conn:
            await conn.run_sync(database.Base.metadata.create_all)
        await _run_alembic(command.stamp, "head")
