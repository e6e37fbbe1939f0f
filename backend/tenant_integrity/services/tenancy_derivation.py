from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from tenant_integrity.core.errors import UnknownTableError
from tenant_integrity.models import Client, Project, Task, Team, TimeEntry, User, Workspace
from tenant_integrity.schemas.tenancy_health import Confidence, ProposedUpdate

"""
Tenancy Derivation Engine.

Rôle (fonctionnel) :
- Calcule le tenant_id manquant d’une ligne à partir de sa chaîne de relations vers des parents
  déjà possédés par un tenant.
- Pour chaque type d’entité, une liste ORDONNÉE de règles (FK -> parent.tenant_id) :
  la première règle dont le parent existe avec un tenant_id non vide l’emporte (confiance high).
- Si aucune règle n’aboutit : proposition low (derived_tenant_id=None + notes), à revoir
  manuellement, jamais appliquée automatiquement.

Ordre des règles :
- Une relation directe et étroite (ex : client explicite) passe avant une relation large
  (ex : appartenance au workspace), plus souvent périmée ou partagée.

Mise en œuvre (set-based) :
- 1 requête par table : lignes non résolues LEFT OUTER JOIN chaque parent candidat,
  puis évaluation des règles en mémoire (mêmes résultats que l’évaluation ligne à ligne).
"""

NO_DERIVATION_PATH = "no valid derivation path"


@dataclass(frozen=True)
class DerivationRule:
    """Règle : child.<column> -> parent.tenant_id ; only_if = colonne booléenne conditionnant la règle."""
    column: str
    parent: Any
    path: str
    only_if: Optional[str] = None


@dataclass(frozen=True)
class DerivationPlan:
    """Règles ordonnées d’une table + note explicative en cas d’échec (confiance low)."""
    model: Any
    rules: Tuple[DerivationRule, ...]
    notes: str

    @property
    def table(self) -> str:
        return self.model.__tablename__


_WORKSPACE_RULE = DerivationRule("workspace_id", Workspace, "workspaceId -> workspaces.tenantId")

DERIVATION_PLANS: Dict[str, DerivationPlan] = {
    plan.table: plan
    for plan in (
        DerivationPlan(
            model=Project,
            rules=(
                DerivationRule("client_id", Client, "clientId -> clients.tenantId"),
                _WORKSPACE_RULE,
            ),
            notes="manual review required - missing clientId/workspaceId chain",
        ),
        DerivationPlan(
            model=Task,
            rules=(
                DerivationRule("project_id", Project, "projectId -> projects.tenantId"),
                DerivationRule(
                    "created_by",
                    User,
                    "createdBy -> users.tenantId (personal task)",
                    only_if="is_personal",
                ),
            ),
            notes="manual review required - missing projectId or user chain",
        ),
        DerivationPlan(
            model=Team,
            rules=(_WORKSPACE_RULE,),
            notes="manual review required - workspace has no tenantId",
        ),
        DerivationPlan(
            model=Client,
            rules=(_WORKSPACE_RULE,),
            notes="manual review required - workspace has no tenantId",
        ),
        DerivationPlan(
            model=TimeEntry,
            rules=(
                DerivationRule("project_id", Project, "projectId -> projects.tenantId"),
                DerivationRule("user_id", User, "userId -> users.tenantId"),
                _WORKSPACE_RULE,
            ),
            notes="manual review required - missing projectId/userId/workspaceId chain",
        ),
    )
}

DERIVABLE_TABLES: Tuple[str, ...] = tuple(DERIVATION_PLANS)


class DerivationEngine:
    """
    Moteur de dérivation (lecture seule).

    - derive() : une ligne (None si inexistante ou déjà possédée).
    - derive_unresolved() : lot borné de lignes non résolues d’une table (1 requête).
    - count_attributable() : lignes non résolues dérivables vers un tenant donné.
    """

    def __init__(self, plans: Dict[str, DerivationPlan] | None = None) -> None:
        self.plans = plans if plans is not None else DERIVATION_PLANS

    @property
    def tables(self) -> Tuple[str, ...]:
        return tuple(self.plans)

    def plan_for(self, table: str) -> DerivationPlan:
        plan = self.plans.get(table)
        if plan is None:
            raise UnknownTableError(table, self.tables)
        return plan

    # -----------------------------
    # SQL
    # -----------------------------
    def _candidates(self, plan: DerivationPlan):
        """
        SELECT id, tenant_id, rule_0..rule_n FROM <table> LEFT JOIN <parents>.

        rule_i = tenant_id du parent de la règle i (NULL si parent absent, vide,
        ou si la condition only_if n’est pas remplie).
        """
        model = plan.model
        parents = [aliased(rule.parent) for rule in plan.rules]

        exprs = []
        for rule, parent in zip(plan.rules, parents):
            expr = func.nullif(parent.tenant_id, "")
            if rule.only_if is not None:
                expr = case((getattr(model, rule.only_if).is_(True), expr), else_=None)
            exprs.append(expr)

        stmt = select(
            model.id,
            model.tenant_id,
            *(expr.label(f"rule_{i}") for i, expr in enumerate(exprs)),
        ).select_from(model)
        for rule, parent in zip(plan.rules, parents):
            stmt = stmt.outerjoin(parent, getattr(model, rule.column) == parent.id)

        return stmt, exprs

    @staticmethod
    def _first_success(exprs: Sequence[Any]):
        """Tenant dérivé en SQL (même ordre que l’évaluation en mémoire)."""
        if len(exprs) == 1:
            return exprs[0]
        return func.coalesce(*exprs)

    def _unresolved(self, plan: DerivationPlan, tenant_id: Optional[str]):
        stmt, exprs = self._candidates(plan)
        stmt = stmt.where(plan.model.tenant_id.is_(None))
        if tenant_id is not None:
            stmt = stmt.where(self._first_success(exprs) == tenant_id)
        return stmt

    # -----------------------------
    # Évaluation
    # -----------------------------
    def evaluate(self, plan: DerivationPlan, row) -> ProposedUpdate:
        """Applique les règles dans l’ordre sur une ligne candidate (id, tenant_id, rule_i...)."""
        mapping = row._mapping
        for i, rule in enumerate(plan.rules):
            value = mapping[f"rule_{i}"]
            if value:
                return ProposedUpdate(
                    table=plan.table,
                    id=str(mapping["id"]),
                    current_tenant_id=None,
                    derived_tenant_id=str(value),
                    confidence=Confidence.HIGH,
                    derivation_path=rule.path,
                )

        return ProposedUpdate(
            table=plan.table,
            id=str(mapping["id"]),
            current_tenant_id=None,
            derived_tenant_id=None,
            confidence=Confidence.LOW,
            derivation_path=NO_DERIVATION_PATH,
            notes=plan.notes,
        )

    async def derive(self, db: AsyncSession, table: str, entity_id: str) -> Optional[ProposedUpdate]:
        """Dérive une ligne ; None si elle n’existe pas ou possède déjà un tenant_id (no-op)."""
        plan = self.plan_for(table)
        stmt, _ = self._candidates(plan)
        row = (await db.execute(stmt.where(plan.model.id == entity_id))).first()
        # Même critère que l’applicateur (tenant_id IS NULL) : "" n’est pas réparable
        if row is None or row.tenant_id is not None:
            return None
        return self.evaluate(plan, row)

    async def derive_unresolved(
        self,
        db: AsyncSession,
        table: str,
        *,
        limit: int,
        tenant_id: Optional[str] = None,
    ) -> List[ProposedUpdate]:
        """
        Dérive jusqu’à `limit` lignes sans tenant_id (ordre stable par id).

        tenant_id (optionnel) : seules les lignes dont la dérivation aboutit à ce tenant
        (les lignes low, non attribuables, sont donc exclues).
        """
        plan = self.plan_for(table)
        stmt = self._unresolved(plan, tenant_id).order_by(plan.model.id).limit(limit)
        rows = (await db.execute(stmt)).all()
        return [self.evaluate(plan, row) for row in rows]

    async def count_attributable(
        self,
        db: AsyncSession,
        table: str,
        tenant_id: str,
        *,
        sample_limit: int,
    ) -> Tuple[int, Tuple[str, ...]]:
        """Lignes sans tenant_id dont la dérivation aboutit à tenant_id : (count, échantillon d’ids)."""
        plan = self.plan_for(table)
        ids = self._unresolved(plan, tenant_id).with_only_columns(plan.model.id)

        count = int((await db.execute(select(func.count()).select_from(ids.subquery()))).scalar_one() or 0)
        samples: Tuple[str, ...] = ()
        if count > 0 and sample_limit > 0:
            rows = (await db.execute(ids.order_by(plan.model.id).limit(sample_limit))).scalars().all()
            samples = tuple(str(r) for r in rows)
        return count, samples
