import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, false, func
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from statussentinel.config import settings


class Base(DeclarativeBase):
    pass


# ── Services ─────────────────────────────────────────────────────────────────


class Service(Base):
    __tablename__ = "services"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    name: Mapped[str] = mapped_column(String(255))
    target: Mapped[str] = mapped_column(Text)
    is_online: Mapped[bool] = mapped_column(Boolean, default=False, server_default=false())


# ── Response history ─────────────────────────────────────────────────────────


class ResponseSample(Base):
    __tablename__ = "response_samples"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    service_id: Mapped[str] = mapped_column(
        String(255), ForeignKey("services.id", ondelete="CASCADE"), index=True
    )
    latency_ms: Mapped[int] = mapped_column(Integer)  # 0 = failed probe
    recorded_at: Mapped[datetime.datetime] = mapped_column(
        DateTime, server_default=func.now()
    )


# ── Incidents ────────────────────────────────────────────────────────────────


class Incident(Base):
    __tablename__ = "incidents"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    service_id: Mapped[str] = mapped_column(
        String(255), ForeignKey("services.id"), index=True
    )
    # Snapshot of the service name when the incident opened
    service_name: Mapped[str] = mapped_column(String(255))
    start_time: Mapped[datetime.datetime] = mapped_column(
        DateTime, server_default=func.now()
    )
    end_time: Mapped[datetime.datetime | None] = mapped_column(DateTime, nullable=True)
    description: Mapped[str] = mapped_column(Text)


# ── Engine & Session ──────────────────────────────────────────────────────────

engine = create_async_engine(settings.database_url, echo=False)
async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_db() -> None:
    """Ensure database schema is up to date via Alembic migrations."""
    from statussentinel.core.migrations import ensure_db_migrated

    await ensure_db_migrated()


async def close_db() -> None:
    """Dispose of the engine."""
    await engine.dispose()
