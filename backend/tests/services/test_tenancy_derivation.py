from __future__ import annotations

import pytest

from tenant_integrity.core.errors import UnknownTableError
from tenant_integrity.models import Client, Project, Task, TimeEntry, User, Workspace
from tenant_integrity.schemas.tenancy_health import Confidence
from tenant_integrity.services.tenancy_derivation import NO_DERIVATION_PATH, DerivationEngine


@pytest.fixture
def engine_():
    return DerivationEngine()


async def test_client_rule_wins_over_workspace(db, tenants, add_rows, engine_):
    await add_rows(
        Client(id="c1", tenant_id="t1", company_name="A"),
        Workspace(id="w2", tenant_id="t2", name="W2"),
        Project(id="p1", tenant_id=None, client_id="c1", workspace_id="w2", name="x"),
    )

    proposal = await engine_.derive(db, "projects", "p1")

    assert proposal.confidence is Confidence.HIGH
    assert proposal.derived_tenant_id == "t1"
    assert "clientId" in proposal.derivation_path
    assert proposal.current_tenant_id is None


async def test_falls_back_to_workspace_when_client_unowned(db, tenants, add_rows, engine_):
    await add_rows(
        Client(id="c1", tenant_id=None, company_name="A"),
        Workspace(id="w2", tenant_id="t2", name="W2"),
        Project(id="p1", tenant_id=None, client_id="c1", workspace_id="w2", name="x"),
    )

    proposal = await engine_.derive(db, "projects", "p1")

    assert proposal.derived_tenant_id == "t2"
    assert proposal.derivation_path == "workspaceId -> workspaces.tenantId"


async def test_empty_parent_ownership_counts_as_unset(db, tenants, add_rows, engine_):
    await add_rows(
        Client(id="c1", tenant_id="t1", company_name="A"),
        Workspace(id="w-empty", tenant_id="", name="W"),
        Project(id="p1", tenant_id=None, client_id="c-gone", workspace_id="w-empty", name="x"),
    )

    proposal = await engine_.derive(db, "projects", "p1")

    assert proposal.confidence is Confidence.LOW
    assert proposal.derived_tenant_id is None
    assert proposal.derivation_path == NO_DERIVATION_PATH
    assert proposal.notes


async def test_derive_is_noop_for_owned_or_missing_rows(db, tenants, add_rows, engine_):
    await add_rows(Project(id="p-owned", tenant_id="t1", name="x"))

    assert await engine_.derive(db, "projects", "p-owned") is None
    assert await engine_.derive(db, "projects", "p-missing") is None


async def test_derive_treats_empty_string_tenant_as_owned(db, tenants, add_rows, engine_):
    # Même critère que l’applicateur (tenant_id IS NULL) : "" n’est jamais proposé
    await add_rows(
        Client(id="c1", tenant_id="t1", company_name="A"),
        Project(id="p-empty", tenant_id="", client_id="c1", name="x"),
    )

    assert await engine_.derive(db, "projects", "p-empty") is None
    assert [p.id for p in await engine_.derive_unresolved(db, "projects", limit=10)] == []


async def test_personal_task_derives_from_creator(db, tenants, add_rows, engine_):
    await add_rows(
        User(id="u1", tenant_id="t1", email="a@x"),
        Task(id="task-personal", tenant_id=None, created_by="u1", is_personal=True, title="x"),
        Task(id="task-shared", tenant_id=None, created_by="u1", is_personal=False, title="y"),
    )

    personal = await engine_.derive(db, "tasks", "task-personal")
    shared = await engine_.derive(db, "tasks", "task-shared")

    assert personal.confidence is Confidence.HIGH
    assert personal.derived_tenant_id == "t1"
    assert personal.derivation_path.startswith("createdBy")
    assert shared.confidence is Confidence.LOW


async def test_time_entry_chain_order(db, tenants, add_rows, engine_):
    await add_rows(
        User(id="u1", tenant_id="t1", email="a@x"),
        Workspace(id="w2", tenant_id="t2", name="W2"),
        Project(id="p-unowned", tenant_id=None, name="x"),
        TimeEntry(id="te-user", tenant_id=None, project_id="p-unowned", user_id="u1", workspace_id="w2"),
        TimeEntry(id="te-ws", tenant_id=None, project_id=None, user_id=None, workspace_id="w2"),
    )

    by_user = await engine_.derive(db, "time_entries", "te-user")
    by_ws = await engine_.derive(db, "time_entries", "te-ws")

    assert by_user.derived_tenant_id == "t1"
    assert by_user.derivation_path == "userId -> users.tenantId"
    assert by_ws.derived_tenant_id == "t2"


async def test_derive_unresolved_batch_is_limited_and_ordered(db, tenants, add_rows, engine_):
    await add_rows(
        Workspace(id="w1", tenant_id="t1", name="W1"),
        *(Client(id=f"c{i}", tenant_id=None, workspace_id="w1", company_name=str(i)) for i in range(4)),
        Client(id="c-owned", tenant_id="t2", workspace_id="w1", company_name="owned"),
    )

    proposals = await engine_.derive_unresolved(db, "clients", limit=3)

    assert [p.id for p in proposals] == ["c0", "c1", "c2"]
    assert all(p.derived_tenant_id == "t1" for p in proposals)


async def test_derive_unresolved_filters_by_derived_tenant(db, tenants, add_rows, engine_):
    await add_rows(
        Workspace(id="w1", tenant_id="t1", name="W1"),
        Workspace(id="w2", tenant_id="t2", name="W2"),
        Client(id="c-t1", tenant_id=None, workspace_id="w1", company_name="a"),
        Client(id="c-t2", tenant_id=None, workspace_id="w2", company_name="b"),
        Client(id="c-low", tenant_id=None, workspace_id=None, company_name="c"),
    )

    proposals = await engine_.derive_unresolved(db, "clients", limit=100, tenant_id="t2")

    assert [p.id for p in proposals] == ["c-t2"]


async def test_count_attributable(db, tenants, add_rows, engine_):
    await add_rows(
        Workspace(id="w1", tenant_id="t1", name="W1"),
        Client(id="c1", tenant_id="t1", workspace_id="w1", company_name="a"),
        Project(id="p-a", tenant_id=None, client_id="c1", name="x"),
        Project(id="p-b", tenant_id=None, workspace_id="w1", name="y"),
        Project(id="p-c", tenant_id=None, name="z"),
    )

    count, samples = await engine_.count_attributable(db, "projects", "t1", sample_limit=1)

    assert count == 2
    assert samples == ("p-a",)


def test_unknown_table_is_rejected(engine_):
    with pytest.raises(UnknownTableError) as exc:
        engine_.plan_for("invoices")

    assert exc.value.table == "invoices"
    assert "projects" in exc.value.known
