from __future__ import annotations

import asyncio
from collections import Counter

import pytest
from sqlalchemy import text

from tenant_integrity.core.errors import UnknownTableError
from tenant_integrity.models import Client, Project, Task, Team, User, UserRole, Workspace
from tenant_integrity.schemas.tenancy_health import (
    CheckStatus,
    Confidence,
    RepairApplyRequest,
    RepairPreviewRequest,
    Severity,
)


def _by_id(preview):
    return {u.id: u for u in preview.proposed_updates}


# -----------------------------
# Résumé global
# -----------------------------
async def test_global_summary_counts_missing_rows_and_blocked_tenants(service, tenants, add_rows):
    await add_rows(
        User(id="root", tenant_id=None, email="root@x", role=UserRole.SUPER_USER),
        User(id="u-lost", tenant_id=None, email="lost@x"),
        Project(id="p-lost", tenant_id=None, name="x"),
        Client(id="c1", tenant_id="t1", company_name="A"),
        Project(id="p-bad", tenant_id="t1", client_id="c1", name="y"),
        Task(id="task-bad", tenant_id="t2", project_id="p-bad", title="z"),
    )

    summary = await service.get_global_health_summary()

    assert summary.total_tenants == 2
    assert summary.by_table["users"] == 1
    assert summary.by_table["projects"] == 1
    assert summary.by_table["tasks"] == 0
    assert summary.total_orphan_rows == 2
    assert summary.blocked_tenants == 2
    assert summary.ready_tenants == 0
    assert summary.unknown_checks == []
    assert summary.checked_at is not None


async def test_global_summary_healthy_database(service, tenants):
    summary = await service.get_global_health_summary()

    assert summary.total_tenants == 2
    assert summary.ready_tenants == 2
    assert summary.blocked_tenants == 0
    assert summary.total_orphan_rows == 0
    assert set(summary.by_table) == {"users", "projects", "tasks", "teams", "clients", "workspaces", "time_entries"}


async def test_failed_check_is_reported_unknown_not_zero(service, engine, tenants, add_rows):
    await add_rows(Project(id="p-lost", tenant_id=None, name="x"))
    async with engine.begin() as conn:
        await conn.execute(text("DROP TABLE teams"))

    summary = await service.get_global_health_summary()

    assert summary.by_table["teams"] == -1
    assert summary.by_table["projects"] == 1
    assert summary.total_orphan_rows == 1
    assert "missing_tenant_id_teams" in summary.unknown_checks
    assert "team_workspace_tenant_mismatch" in summary.unknown_checks
    assert summary.ready_tenants == -1
    assert summary.blocked_tenants == -1


# -----------------------------
# Résumé par tenant
# -----------------------------
async def test_unknown_tenant_returns_none(service, tenants):
    assert await service.get_tenant_health_summary("nope") is None


async def test_tenant_with_mismatch_is_blocked(service, tenants, add_rows):
    await add_rows(
        Workspace(id="w1", tenant_id="t1", name="W1"),
        Team(id="team-bad", tenant_id="t2", workspace_id="w1", name="x"),
        Team(id="team-orphan", tenant_id="t1", workspace_id="w-gone", name="y"),
    )

    summary = await service.get_tenant_health_summary("t1")

    assert summary.tenant_name == "Acme"
    assert summary.status == "active"
    assert summary.is_ready is False
    assert summary.blocker_count == 1

    checks = {c.check_name: c for c in summary.checks}
    assert checks["team_workspace_tenant_mismatch"].severity is Severity.CRITICAL
    assert checks["team_workspace_tenant_mismatch"].sample_ids == ["team-bad"]
    assert checks["orphaned_team_workspace_id"].severity is Severity.WARNING
    assert checks["orphaned_team_workspace_id"].recommended_action


async def test_repairable_rows_do_not_block_tenant(service, tenants, add_rows):
    await add_rows(
        Workspace(id="w1", tenant_id="t1", name="W1"),
        Client(id="c-lost", tenant_id=None, workspace_id="w1", company_name="A"),
    )

    summary = await service.get_tenant_health_summary("t1")
    other = await service.get_tenant_health_summary("t2")

    assert summary.is_ready is True
    assert summary.blocker_count == 0
    assert [c.check_name for c in summary.checks] == ["missing_tenant_id_clients"]
    assert summary.checks[0].severity is Severity.INFO
    assert summary.checks[0].count == 1
    assert other.checks == []


async def test_unknown_critical_check_prevents_ready(service, engine, tenants):
    async with engine.begin() as conn:
        await conn.execute(text("DROP TABLE teams"))

    summary = await service.get_tenant_health_summary("t1")

    unknown = [c for c in summary.checks if c.status is CheckStatus.UNKNOWN]
    assert any(c.check_name == "team_workspace_tenant_mismatch" for c in unknown)
    assert all(c.count == -1 for c in unknown)
    assert summary.is_ready is False
    assert summary.blocker_count == 0


# -----------------------------
# Preview
# -----------------------------
async def test_scenario_a_project_derived_from_client(service, tenants, add_rows):
    await add_rows(
        Client(id="c1", tenant_id="t1", company_name="A"),
        Project(id="p1", tenant_id=None, client_id="c1", name="x"),
    )

    preview = await service.generate_repair_preview(RepairPreviewRequest(tables=["projects"]))

    p1 = _by_id(preview)["p1"]
    assert p1.derived_tenant_id == "t1"
    assert p1.confidence is Confidence.HIGH


async def test_scenario_b_and_c_task_chain(service, tenants, add_rows, get_row, actor):
    await add_rows(
        Client(id="c1", tenant_id="t1", company_name="A"),
        Project(id="p1", tenant_id=None, client_id="c1", name="x"),
        Task(id="x1", tenant_id=None, project_id="p1", title="t"),
    )

    # Chaîne cassée : le projet n’a pas encore de tenant
    before = await service.generate_repair_preview(RepairPreviewRequest(tables=["tasks"]))
    x1 = _by_id(before)["x1"]
    assert x1.confidence is Confidence.LOW
    assert x1.notes

    first = await service.apply_repairs(RepairApplyRequest(), actor)
    assert first.updated_count_by_table == {"projects": 1}
    assert first.skipped_low_confidence_count_by_table == {"tasks": 1}
    assert (await get_row(Task, "x1")).tenant_id is None

    # Le projet est réparé : la tâche devient dérivable
    after = await service.generate_repair_preview(RepairPreviewRequest(tables=["tasks"]))
    x1 = _by_id(after)["x1"]
    assert x1.confidence is Confidence.HIGH
    assert x1.derived_tenant_id == "t1"

    second = await service.apply_repairs(RepairApplyRequest(), actor)
    assert second.updated_count_by_table == {"tasks": 1}
    assert (await get_row(Task, "x1")).tenant_id == "t1"


async def test_preview_is_read_only(service, tenants, add_rows):
    await add_rows(
        Workspace(id="w1", tenant_id="t1", name="W1"),
        Team(id="team-1", tenant_id=None, workspace_id="w1", name="x"),
    )
    before = await service.get_global_health_summary()

    for _ in range(3):
        await service.generate_repair_preview()

    after = await service.get_global_health_summary()
    assert after.total_orphan_rows == before.total_orphan_rows == 1


async def test_preview_confidence_partition(service, tenants, add_rows):
    await add_rows(
        Workspace(id="w1", tenant_id="t1", name="W1"),
        Team(id="team-1", tenant_id=None, workspace_id="w1", name="a"),
        Team(id="team-2", tenant_id=None, workspace_id=None, name="b"),
        Client(id="c1", tenant_id=None, workspace_id="w1", company_name="c"),
        Project(id="p1", tenant_id=None, name="d"),
    )

    preview = await service.generate_repair_preview()

    assert preview.high_confidence_count + preview.low_confidence_count == len(preview.proposed_updates)
    for table, tally in preview.by_table.items():
        assert tally.high + tally.low == sum(1 for u in preview.proposed_updates if u.table == table)
    assert preview.by_table["teams"].high == 1
    assert preview.by_table["teams"].low == 1


async def test_preview_filtered_by_tenant_excludes_low(service, tenants, add_rows):
    await add_rows(
        Workspace(id="w1", tenant_id="t1", name="W1"),
        Workspace(id="w2", tenant_id="t2", name="W2"),
        Team(id="team-1", tenant_id=None, workspace_id="w1", name="a"),
        Team(id="team-2", tenant_id=None, workspace_id="w2", name="b"),
        Team(id="team-3", tenant_id=None, workspace_id=None, name="c"),
    )

    preview = await service.generate_repair_preview(RepairPreviewRequest(tenant_id="t2", tables=["teams"]))

    assert [u.id for u in preview.proposed_updates] == ["team-2"]
    assert preview.low_confidence_count == 0


async def test_preview_rejects_unknown_table(service, tenants):
    with pytest.raises(UnknownTableError):
        await service.generate_repair_preview(RepairPreviewRequest(tables=["projects", "invoices"]))


async def test_preview_deduplicates_tables(service, tenants, add_rows):
    await add_rows(Project(id="p1", tenant_id=None, name="x"))

    preview = await service.generate_repair_preview(RepairPreviewRequest(tables=["projects", "projects"]))

    assert len(preview.proposed_updates) == 1
    assert list(preview.by_table) == ["projects"]


async def test_preview_past_deadline_is_truncated(service, tenants, add_rows):
    await add_rows(Project(id="p1", tenant_id=None, name="x"))

    preview = await service.generate_repair_preview(timeout_s=0)

    assert preview.truncated is True
    assert preview.proposed_updates == []


# -----------------------------
# Apply
# -----------------------------
async def test_apply_converges_and_is_idempotent(service, tenants, add_rows, audit, actor):
    await add_rows(
        Workspace(id="w1", tenant_id="t1", name="W1"),
        Team(id="team-1", tenant_id=None, workspace_id="w1", name="a"),
        Client(id="c1", tenant_id=None, workspace_id="w1", company_name="b"),
    )

    first = await service.apply_repairs(RepairApplyRequest(), actor)
    assert first.total_updated == 2
    assert sorted(first.sample_updated_ids) == ["clients:c1", "teams:team-1"]

    preview = await service.generate_repair_preview()
    assert {"team-1", "c1"}.isdisjoint(_by_id(preview))

    second = await service.apply_repairs(RepairApplyRequest(), actor)
    assert second.total_updated == 0
    assert len(audit.events) == 2
    assert {e.request_id for e in audit.events} == {"req-test"}


async def test_scenario_d_low_confidence_never_written(service, tenants, add_rows, get_row, actor):
    await add_rows(Team(id="team-low", tenant_id=None, workspace_id="w-gone", name="x"))

    for _ in range(3):
        result = await service.apply_repairs(RepairApplyRequest(apply_only_high_confidence=True), actor)
        assert result.total_updated == 0
        assert result.skipped_low_confidence_count_by_table == {"teams": 1}

    # Le forçage manuel n’est pas exercé par le moteur
    forced = await service.apply_repairs(RepairApplyRequest(apply_only_high_confidence=False), actor)
    assert forced.total_updated == 0
    assert (await get_row(Team, "team-low")).tenant_id is None


async def test_apply_respects_tenant_filter(service, tenants, add_rows, get_row, actor):
    await add_rows(
        Workspace(id="w1", tenant_id="t1", name="W1"),
        Workspace(id="w2", tenant_id="t2", name="W2"),
        Team(id="team-1", tenant_id=None, workspace_id="w1", name="a"),
        Team(id="team-2", tenant_id=None, workspace_id="w2", name="b"),
    )

    result = await service.apply_repairs(RepairApplyRequest(tenant_id="t1"), actor)

    assert result.updated_count_by_table == {"teams": 1}
    assert (await get_row(Team, "team-1")).tenant_id == "t1"
    assert (await get_row(Team, "team-2")).tenant_id is None


async def test_apply_past_deadline_is_aborted(service, tenants, add_rows, get_row, actor):
    await add_rows(Project(id="p1", tenant_id=None, name="x"))

    result = await service.apply_repairs(RepairApplyRequest(), actor, timeout_s=0)

    assert result.aborted is True
    assert result.total_updated == 0


async def test_preview_waiting_on_semaphore_counts_in_deadline(service, tenants, add_rows):
    await add_rows(Project(id="p1", tenant_id=None, name="x"))

    # Toutes les places du sémaphore sont prises : la preview attend en file
    for _ in range(2):
        await service._semaphore.acquire()
    task = asyncio.create_task(service.generate_repair_preview(RepairPreviewRequest(tables=["projects"]), timeout_s=0.05))
    await asyncio.sleep(0.2)
    for _ in range(2):
        service._semaphore.release()

    preview = await task

    assert preview.truncated is True
    assert preview.proposed_updates == []


# -----------------------------
# Table en échec (preview / apply)
# -----------------------------
async def test_failing_table_does_not_discard_other_tables(service, engine, tenants, add_rows, get_row, actor):
    await add_rows(
        Workspace(id="w1", tenant_id="t1", name="W1"),
        Team(id="team-1", tenant_id=None, workspace_id="w1", name="a"),
        Client(id="c1", tenant_id=None, workspace_id="w1", company_name="b"),
    )
    async with engine.begin() as conn:
        await conn.execute(text("DROP TABLE teams"))

    preview = await service.generate_repair_preview()
    assert preview.failed_tables == ["teams"]
    assert preview.truncated is False
    assert _by_id(preview)["c1"].derived_tenant_id == "t1"

    result = await service.apply_repairs(RepairApplyRequest(), actor)
    assert result.failed_tables == ["teams"]
    assert result.updated_count_by_table == {"clients": 1}
    assert (await get_row(Client, "c1")).tenant_id == "t1"


# -----------------------------
# Apply concurrents
# -----------------------------
async def test_concurrent_repairs_converge(service, tenants, add_rows, get_row, audit, actor):
    await add_rows(
        Workspace(id="w1", tenant_id="t1", name="W1"),
        Workspace(id="w2", tenant_id="t2", name="W2"),
        Team(id="team-1", tenant_id=None, workspace_id="w1", name="a"),
        Team(id="team-2", tenant_id=None, workspace_id="w2", name="b"),
        Client(id="c1", tenant_id=None, workspace_id="w1", company_name="c"),
        Client(id="c2", tenant_id=None, workspace_id="w2", company_name="d"),
    )
    expected = {
        (Team, "team-1"): "t1",
        (Team, "team-2"): "t2",
        (Client, "c1"): "t1",
        (Client, "c2"): "t2",
    }

    first, second = await asyncio.gather(
        service.apply_repairs(RepairApplyRequest(), actor),
        service.apply_repairs(RepairApplyRequest(), actor),
    )

    assert first.total_updated + second.total_updated == len(expected)
    for (model, row_id), tenant_id in expected.items():
        assert (await get_row(model, row_id)).tenant_id == tenant_id

    # Une seule écriture par ligne : l’autre passage voit un conflit
    updated = Counter(e.entity_id for e in audit.events if e.outcome == "updated")
    assert updated == Counter({row_id: 1 for _, row_id in expected})
    assert set(audit.outcomes()) <= {"updated", "conflict"}
    assert len(audit.events) - len(expected) == audit.outcomes().count("conflict")
