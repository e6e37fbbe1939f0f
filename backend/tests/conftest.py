from __future__ import annotations

import os

# Base de test : SQLite (aiosqlite) avant tout import de l’application
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["API_KEY"] = ""
os.environ["ENV"] = "test"

from typing import List

import pytest

from tenant_integrity.db.base import Base
from tenant_integrity.db.session import build_engine, build_session_factory
from tenant_integrity.models import Tenant
from tenant_integrity.services.tenancy_health import TenancyHealthService
from tenant_integrity.services.tenancy_repair import RepairActor, RepairAuditEvent

"""
Fixtures de test.

- Une base SQLite fichier par test (tmp_path) : plusieurs sessions concurrentes
  voient les mêmes données, contrairement à :memory:.
- ListAuditSink capture les événements d’audit des réparations.
"""


class ListAuditSink:
    def __init__(self) -> None:
        self.events: List[RepairAuditEvent] = []

    def record(self, event: RepairAuditEvent) -> None:
        self.events.append(event)

    def outcomes(self) -> List[str]:
        return [e.outcome for e in self.events]


@pytest.fixture
async def engine(tmp_path):
    eng = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'tenancy.db'}")
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def audit():
    return ListAuditSink()


@pytest.fixture
def service(session_factory, audit):
    return TenancyHealthService(session_factory, audit_sink=audit, max_concurrency=2, check_timeout_s=10)


@pytest.fixture
def actor():
    return RepairActor(user_id="admin-1", request_id="req-test")


@pytest.fixture
def add_rows(session_factory):
    """Insère des lignes ORM et commit (une session dédiée)."""

    async def _add(*rows):
        async with session_factory() as session:
            session.add_all(rows)
            await session.commit()
        return rows

    return _add


@pytest.fixture
def get_row(session_factory):
    """Relit une ligne fraîche depuis la base."""

    async def _get(model, row_id):
        async with session_factory() as session:
            return await session.get(model, row_id)

    return _get


@pytest.fixture
async def tenants(add_rows):
    t1 = Tenant(id="t1", name="Acme", slug="acme")
    t2 = Tenant(id="t2", name="Globex", slug="globex")
    await add_rows(t1, t2)
    return t1, t2
