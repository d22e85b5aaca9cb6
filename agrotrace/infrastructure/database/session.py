# agrotrace/infrastructure/database/session.py

from typing import Optional

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import Session, declarative_base
from sqlalchemy.pool import StaticPool

from agrotrace.config.settings import get_settings

Base = declarative_base()


class AuditedSession(Session):
    """Session class for business writes. The audit hook is installed on this class only."""


_engine: Optional[AsyncEngine] = None


def build_engine(database_url: str) -> AsyncEngine:
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite":
        kwargs = {"connect_args": {"check_same_thread": False}}
        if url.database in (None, "", ":memory:"):
            # One shared connection, otherwise every checkout sees an empty database.
            kwargs["poolclass"] = StaticPool
        return create_async_engine(url, echo=False, **kwargs)
    return create_async_engine(
        url,
        echo=False,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
    )


def get_engine() -> AsyncEngine:
    """Return the process-wide engine, created on first use from settings."""
    global _engine
    if _engine is None:
        _engine = build_engine(get_settings().database_url)
    return _engine


def get_sessionmaker(engine: Optional[AsyncEngine] = None) -> async_sessionmaker[AsyncSession]:
    """Sessions for the audit store itself. Not intercepted."""
    return async_sessionmaker(
        bind=engine or get_engine(),
        expire_on_commit=False,
        autoflush=False,
        class_=AsyncSession,
    )


def get_business_sessionmaker(
    engine: Optional[AsyncEngine] = None,
) -> async_sessionmaker[AsyncSession]:
    """Sessions for domain writes; commits on these sessions are audited."""
    return async_sessionmaker(
        bind=engine or get_engine(),
        expire_on_commit=False,
        autoflush=False,
        class_=AsyncSession,
        sync_session_class=AuditedSession,
    )


async def create_schema(engine: Optional[AsyncEngine] = None) -> None:
    async with (engine or get_engine()).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_engine() -> None:
    global _engine
    if _engine is not None:
        await _engine.dispose()
        _engine = None
