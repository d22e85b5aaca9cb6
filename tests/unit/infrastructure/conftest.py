"""Fixtures for infrastructure tests: file-backed SQLite engine per test, audit schema created."""

import pytest

from agrotrace.audit.chain_lock import LocalChainLock
from agrotrace.audit.recorder import AuditRecorder
from agrotrace.domain.models.audit_event import AuditActor
from agrotrace.infrastructure.database import models  # noqa: F401  (registers audit tables)
from agrotrace.infrastructure.database.audit_repository_db import DbAuditEventRepository
from agrotrace.infrastructure.database.session import (
    build_engine,
    create_schema,
    get_sessionmaker,
)


@pytest.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'audit.db'}")
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return get_sessionmaker(engine)


@pytest.fixture
def db_repository(session_factory):
    return DbAuditEventRepository(session_factory)


@pytest.fixture
def db_recorder(db_repository):
    return AuditRecorder(db_repository, LocalChainLock(), retry_backoff_seconds=0)


@pytest.fixture
def actor():
    return AuditActor(
        actor_id=7,
        email="ana.perez@fincanorte.com",
        tenant_id=1,
        tenant_name="Finca Norte S.A.",
    )
