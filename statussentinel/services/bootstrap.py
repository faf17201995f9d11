"""Startup helpers: load the services file and register its entries."""

import json
from pathlib import Path

import structlog
from pydantic import ValidationError

from statussentinel.config import Settings
from statussentinel.core.exceptions import ConfigError, IdentifierError
from statussentinel.schemas.services import ServicesFile
from statussentinel.services.history import HistoryStore

logger = structlog.get_logger()


def check_database_settings(settings: Settings) -> None:
    """Reject a half-configured split database setup."""
    if settings.sentinel_database_url or not settings.database_host:
        return
    missing = [
        var
        for var, value in (
            ("DATABASE_NAME", settings.database_name),
            ("DATABASE_USER", settings.database_user),
            ("DATABASE_PASSWORD", settings.database_password),
        )
        if not value
    ]
    if missing:
        raise ConfigError(
            f"{', '.join(missing)} must be set when DATABASE_HOST is used.",
            details={"missing": missing},
        )


def load_services_file(path: str | Path) -> dict[str, str]:
    """Read and validate the ``{name: target}`` services file."""
    path = Path(path)
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise ConfigError(f"Services file not found: {path}", details={"path": str(path)}) from e
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Failed to read services file {path}: {e}", details={"path": str(path)}) from e

    try:
        return ServicesFile.model_validate(raw).root
    except ValidationError as e:
        raise ConfigError(
            f"Malformed services file {path}",
            details={"path": str(path), "errors": e.errors(include_url=False)},
        ) from e


async def register_services(store: HistoryStore, services: dict[str, str]) -> int:
    """Upsert every entry. Entries with unusable names are skipped."""
    added = 0
    for name, target in services.items():
        try:
            await store.upsert_service(name, target)
        except IdentifierError as e:
            logger.warning("service_skipped", name=name, reason=e.message)
            continue
        added += 1
        logger.debug("service_registered", name=name, target=target)
    return added
