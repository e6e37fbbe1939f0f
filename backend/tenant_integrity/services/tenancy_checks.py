from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional, Set, Tuple

from sqlalchemy import func, not_, or_, select, union
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased
from sqlalchemy.sql.elements import ColumnElement

from tenant_integrity.models import Client, Project, Task, Team, Tenant, TimeEntry, User, Workspace

"""
Tenancy Checks (scanner + détecteurs).

Rôle (fonctionnel) :
- Scanner “missing tenant_id” : compte et échantillonne les lignes dont tenant_id est NULL.
- Détecteur de mismatch cross-tenant : lignes enfant dont tenant_id diffère de celui du parent
  (les deux colonnes non nulles ; les NULL relèvent du scanner).
- Détecteur d’orphelins : FK non nulle vers un parent inexistant, avec un prédicat d’exclusion
  explicite (ex : tâches personnelles), jamais déduit.

Principe :
- Chaque check est décrit par un descripteur immuable (dataclass) et exécuté par une fonction
  async qui prend une session : 1 requête count + 1 requête échantillon.
- Ces fonctions lèvent les erreurs SQL telles quelles : c’est le runner du service
  (TenancyHealthService) qui isole chaque check et le dégrade en “unknown”.
"""

# Prédicat SQL construit à partir du modèle enfant (exclusions / filtres configurés)
RowPredicate = Callable[[Any], ColumnElement[bool]]


@dataclass(frozen=True)
class CheckResult:
    """
    Résultat brut d’un check.

    count=None signifie “inconnu” (requête en échec / timeout) : jamais interprété comme sain.
    """
    name: str
    table: str
    description: str
    count: Optional[int]
    sample_ids: Tuple[str, ...] = ()
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.count is not None

    @property
    def reported_count(self) -> int:
        """Count exposé sur le fil : -1 si inconnu."""
        return -1 if self.count is None else self.count

    @classmethod
    def unknown(cls, name: str, table: str, description: str, error: str) -> "CheckResult":
        return cls(name=name, table=table, description=description, count=None, error=error)


# -----------------------------
# Descripteurs
# -----------------------------
@dataclass(frozen=True)
class OwnershipScan:
    """Scan des lignes sans tenant_id d’une table (exclusion optionnelle, ex : super-users)."""
    model: Any
    exclude: Optional[RowPredicate] = None

    @property
    def table(self) -> str:
        return self.model.__tablename__

    @property
    def name(self) -> str:
        return f"missing_tenant_id_{self.table}"

    @property
    def description(self) -> str:
        return f"{self.table} rows with tenant_id IS NULL"


@dataclass(frozen=True)
class MismatchPair:
    """Couple enfant/parent (via join_column) dont les tenant_id doivent être égaux."""
    name: str
    child: Any
    parent: Any
    join_column: str
    description: str
    recommended_action: str

    @property
    def table(self) -> str:
        return self.child.__tablename__


@dataclass(frozen=True)
class OrphanDescriptor:
    """FK enfant -> parent ; exclude marque les lignes légitimement sans parent."""
    name: str
    child: Any
    parent: Any
    fk_column: str
    description: str
    recommended_action: str
    exclude: Optional[RowPredicate] = None

    @property
    def table(self) -> str:
        return self.child.__tablename__


def default_ownership_scans(super_user_role: str) -> Tuple[OwnershipScan, ...]:
    """Tables scannées par le résumé global (users : super-users exclus, sans tenant par construction)."""
    return (
        OwnershipScan(User, exclude=lambda m: m.role == super_user_role),
        OwnershipScan(Project),
        OwnershipScan(Task),
        OwnershipScan(Team),
        OwnershipScan(Client),
        OwnershipScan(Workspace),
        OwnershipScan(TimeEntry),
    )


MISMATCH_PAIRS: Tuple[MismatchPair, ...] = (
    MismatchPair(
        name="project_client_tenant_mismatch",
        child=Project,
        parent=Client,
        join_column="client_id",
        description="project.tenantId != client.tenantId via clientId",
        recommended_action="Review project-client relationships for tenant consistency",
    ),
    MismatchPair(
        name="task_project_tenant_mismatch",
        child=Task,
        parent=Project,
        join_column="project_id",
        description="task.tenantId != project.tenantId via projectId",
        recommended_action="Review task-project relationships for tenant consistency",
    ),
    MismatchPair(
        name="time_entry_project_tenant_mismatch",
        child=TimeEntry,
        parent=Project,
        join_column="project_id",
        description="timeEntry.tenantId != project.tenantId via projectId",
        recommended_action="Review time entry-project relationships for tenant consistency",
    ),
    MismatchPair(
        name="client_workspace_tenant_mismatch",
        child=Client,
        parent=Workspace,
        join_column="workspace_id",
        description="client.tenantId != workspace.tenantId via workspaceId",
        recommended_action="Review client-workspace assignments for tenant consistency",
    ),
    MismatchPair(
        name="team_workspace_tenant_mismatch",
        child=Team,
        parent=Workspace,
        join_column="workspace_id",
        description="team.tenantId != workspace.tenantId via workspaceId",
        recommended_action="Review team-workspace assignments for tenant consistency",
    ),
)


ORPHAN_DESCRIPTORS: Tuple[OrphanDescriptor, ...] = (
    OrphanDescriptor(
        name="orphaned_project_client_id",
        child=Project,
        parent=Client,
        fk_column="client_id",
        description="projects with clientId referencing non-existent client",
        recommended_action="Clear or reassign clientId for orphaned projects",
    ),
    OrphanDescriptor(
        name="orphaned_task_project_id",
        child=Task,
        parent=Project,
        fk_column="project_id",
        description="non-personal tasks with projectId referencing non-existent project",
        recommended_action="Reassign or mark as personal for orphaned tasks",
        exclude=lambda m: m.is_personal.is_(True),
    ),
    OrphanDescriptor(
        name="orphaned_time_entry_project_id",
        child=TimeEntry,
        parent=Project,
        fk_column="project_id",
        description="time entries with projectId referencing non-existent project",
        recommended_action="Reassign time entries to an existing project",
    ),
    OrphanDescriptor(
        name="orphaned_team_workspace_id",
        child=Team,
        parent=Workspace,
        fk_column="workspace_id",
        description="teams with workspaceId referencing non-existent workspace",
        recommended_action="Reassign orphaned teams to an existing workspace",
    ),
)


# -----------------------------
# Helpers
# -----------------------------
async def _count_and_sample(db: AsyncSession, ids_stmt, id_column, *, sample_limit: int) -> Tuple[int, Tuple[str, ...]]:
    """Exécute count(*) sur la requête d’ids puis un échantillon borné (ordre stable par id)."""
    count = int((await db.execute(select(func.count()).select_from(ids_stmt.subquery()))).scalar_one() or 0)

    samples: Tuple[str, ...] = ()
    if count > 0 and sample_limit > 0:
        rows = (await db.execute(ids_stmt.order_by(id_column).limit(sample_limit))).scalars().all()
        samples = tuple(str(r) for r in rows)

    return count, samples


# -----------------------------
# Scanner / détecteurs
# -----------------------------
async def scan_missing_ownership(db: AsyncSession, scan: OwnershipScan, *, sample_limit: int) -> CheckResult:
    """Compte les lignes à tenant_id NULL (hors exclusion configurée) + échantillon d’ids."""
    model = scan.model
    stmt = select(model.id).where(model.tenant_id.is_(None))
    if scan.exclude is not None:
        stmt = stmt.where(not_(scan.exclude(model)))

    count, samples = await _count_and_sample(db, stmt, model.id, sample_limit=sample_limit)
    return CheckResult(
        name=scan.name,
        table=scan.table,
        description=scan.description,
        count=count,
        sample_ids=samples,
    )


def _mismatch_join(pair: MismatchPair):
    child = pair.child
    parent = aliased(pair.parent)
    condition = (
        child.tenant_id.is_not(None)
        & parent.tenant_id.is_not(None)
        & (child.tenant_id != parent.tenant_id)
    )
    return child, parent, condition


async def detect_mismatch(
    db: AsyncSession,
    pair: MismatchPair,
    *,
    sample_limit: int,
    tenant_id: Optional[str] = None,
) -> CheckResult:
    """
    Lignes enfant dont tenant_id != tenant_id du parent (via pair.join_column).

    - Ne considère que les lignes où les deux tenant_id sont renseignés.
    - tenant_id (optionnel) : restreint aux mismatches impliquant ce tenant (côté enfant ou parent).
    """
    child, parent, condition = _mismatch_join(pair)
    stmt = (
        select(child.id)
        .join(parent, getattr(child, pair.join_column) == parent.id)
        .where(condition)
    )
    if tenant_id is not None:
        stmt = stmt.where(or_(child.tenant_id == tenant_id, parent.tenant_id == tenant_id))

    count, samples = await _count_and_sample(db, stmt, child.id, sample_limit=sample_limit)
    return CheckResult(
        name=pair.name,
        table=pair.table,
        description=pair.description,
        count=count,
        sample_ids=samples,
    )


async def mismatch_tenant_ids(db: AsyncSession, pair: MismatchPair) -> Set[str]:
    """Tenants impliqués (enfant ou parent) dans au moins un mismatch de la paire."""
    child, parent, condition = _mismatch_join(pair)
    on = getattr(child, pair.join_column) == parent.id

    stmt = union(
        select(child.tenant_id.label("tenant_id")).select_from(child).join(parent, on).where(condition),
        select(parent.tenant_id.label("tenant_id")).select_from(child).join(parent, on).where(condition),
    )
    rows = (await db.execute(stmt)).scalars().all()
    return {str(r) for r in rows if r}


async def detect_orphans(
    db: AsyncSession,
    descriptor: OrphanDescriptor,
    *,
    sample_limit: int,
    tenant_id: Optional[str] = None,
) -> CheckResult:
    """
    Lignes dont la FK est renseignée mais dont le parent n’existe pas (LEFT JOIN ... IS NULL).

    - descriptor.exclude : lignes légitimement sans parent (configuré, jamais déduit).
    - tenant_id (optionnel) : restreint aux lignes enfant possédées par ce tenant.
    """
    child = descriptor.child
    parent = aliased(descriptor.parent)
    fk = getattr(child, descriptor.fk_column)

    stmt = (
        select(child.id)
        .outerjoin(parent, fk == parent.id)
        .where(fk.is_not(None), parent.id.is_(None))
    )
    if descriptor.exclude is not None:
        stmt = stmt.where(not_(descriptor.exclude(child)))
    if tenant_id is not None:
        stmt = stmt.where(child.tenant_id == tenant_id)

    count, samples = await _count_and_sample(db, stmt, child.id, sample_limit=sample_limit)
    return CheckResult(
        name=descriptor.name,
        table=descriptor.table,
        description=descriptor.description,
        count=count,
        sample_ids=samples,
    )


async def count_tenants(db: AsyncSession) -> int:
    return int((await db.execute(select(func.count(Tenant.id)))).scalar_one() or 0)
