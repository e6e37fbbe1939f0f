from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tenant_integrity.schemas.tenancy_health import (
    Confidence,
    ConfidenceTally,
    ProposedUpdate,
    RepairApplyResult,
    RepairPreviewResult,
)

"""
Tenancy Repair (preview + apply).

Rôle (fonctionnel) :
- Agrège les propositions de dérivation en RepairPreviewResult (compteurs high/low par table).
- Applique les propositions high une par une via une mise à jour CONDITIONNELLE :
    UPDATE <table> SET tenant_id = :derived WHERE id = :id AND tenant_id IS NULL
  -> si un autre writer a déjà assigné le tenant entre-temps, la mise à jour ne touche rien
     (aucun écrasement, deux réparations concurrentes convergent).
- Trace chaque écriture (ou échec) dans un sink d’audit injectable (RepairAuditSink).

Règles de sûreté :
- Les propositions low ne sont jamais écrites (comptées en “skipped”).
- Chaque ligne est indépendante : un échec est journalisé puis ignoré, sans rollback
  des lignes déjà réparées (pas de transaction globale).
- Aucune suppression, aucun verrou.
"""


@dataclass(frozen=True)
class RepairActor:
    """Auteur d’une réparation (user id) + correlation id de la requête."""
    user_id: str
    request_id: str


class RepairOutcome:
    UPDATED = "updated"
    # 0 ligne touchée : tenant déjà assigné par un writer concurrent, ou ligne supprimée
    CONFLICT = "conflict"
    FAILED = "failed"


@dataclass(frozen=True)
class RepairAuditEvent:
    """Événement d’audit d’une tentative de réparation (1 par ligne high)."""
    table: str
    entity_id: str
    derived_tenant_id: str
    derivation_path: str
    actor: str
    request_id: str
    outcome: str
    error: Optional[str] = None


class RepairAuditSink(Protocol):
    """Sink d’audit injectable (logs, table d’audit, capture en test…)."""

    def record(self, event: RepairAuditEvent) -> None:
        ...


class LoggingAuditSink:
    """Sink par défaut : 1 log JSON structuré par tentative (logger tenant_integrity.tenancy_repair)."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.log = logger or logging.getLogger("tenant_integrity.tenancy_repair")

    def record(self, event: RepairAuditEvent) -> None:
        level = logging.INFO
        if event.outcome == RepairOutcome.CONFLICT:
            level = logging.WARNING
        elif event.outcome == RepairOutcome.FAILED:
            level = logging.ERROR

        self.log.log(
            level,
            "tenancy_repair",
            extra={
                "table": event.table,
                "entity_id": event.entity_id,
                "derived_tenant_id": event.derived_tenant_id,
                "derivation_path": event.derivation_path,
                "actor": event.actor,
                "request_id": event.request_id,
                "outcome": event.outcome,
                "error": event.error,
            },
        )


# -----------------------------
# Preview
# -----------------------------
def summarize_preview(
    updates_by_table: Dict[str, List[ProposedUpdate]],
    *,
    truncated: bool = False,
    failed_tables: Sequence[str] = (),
) -> RepairPreviewResult:
    """Construit le résultat de preview : liste à plat + compteurs globaux et par table."""
    proposed: List[ProposedUpdate] = []
    by_table: Dict[str, ConfidenceTally] = {}

    for table, updates in updates_by_table.items():
        tally = ConfidenceTally()
        for u in updates:
            if u.confidence is Confidence.HIGH:
                tally.high += 1
            else:
                tally.low += 1
        by_table[table] = tally
        proposed.extend(updates)

    high = sum(t.high for t in by_table.values())
    low = sum(t.low for t in by_table.values())

    return RepairPreviewResult(
        proposed_updates=proposed,
        high_confidence_count=high,
        low_confidence_count=low,
        by_table=by_table,
        truncated=truncated,
        failed_tables=list(failed_tables),
    )


# -----------------------------
# Apply
# -----------------------------
async def apply_one(db: AsyncSession, model: Any, proposal: ProposedUpdate) -> bool:
    """Mise à jour conditionnelle “toujours NULL” + commit ; True si la ligne a été modifiée."""
    stmt = (
        update(model)
        .where(model.id == proposal.id, model.tenant_id.is_(None))
        .values(tenant_id=proposal.derived_tenant_id)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    await db.commit()
    return (result.rowcount or 0) == 1


async def apply_proposals(
    session_factory: async_sessionmaker[AsyncSession],
    models: Dict[str, Any],
    proposals: Iterable[ProposedUpdate],
    actor: RepairActor,
    audit: RepairAuditSink,
    *,
    sample_limit: int,
    deadline: Optional[float] = None,
) -> RepairApplyResult:
    """
    Applique les propositions high (derived_tenant_id non vide), ligne par ligne.

    - Low : comptées dans skipped_low_confidence_count_by_table, jamais écrites.
    - Conflit (0 ligne) ou exception : audités, absents de updated_count_by_table.
    - deadline (loop.time()) : arrêt propre avant la ligne suivante -> aborted=True.
    """
    log = logging.getLogger("tenant_integrity.tenancy_repair")
    loop = asyncio.get_running_loop()

    result = RepairApplyResult()
    pending: List[ProposedUpdate] = []

    for p in proposals:
        if p.confidence is Confidence.HIGH and p.derived_tenant_id:
            pending.append(p)
        elif p.confidence is Confidence.LOW:
            skipped = result.skipped_low_confidence_count_by_table
            skipped[p.table] = skipped.get(p.table, 0) + 1

    async with session_factory() as db:
        for p in pending:
            if deadline is not None and loop.time() >= deadline:
                log.warning(
                    "tenancy_repair_deadline_reached",
                    extra={"actor": actor.user_id, "request_id": actor.request_id, "table": p.table},
                )
                result.aborted = True
                break

            event = dict(
                table=p.table,
                entity_id=p.id,
                derived_tenant_id=p.derived_tenant_id,
                derivation_path=p.derivation_path,
                actor=actor.user_id,
                request_id=actor.request_id,
            )
            try:
                changed = await apply_one(db, models[p.table], p)
            except Exception as exc:
                await db.rollback()
                log.exception(
                    "TENANCY_REPAIR_FAIL",
                    extra={
                        "table": p.table,
                        "entity_id": p.id,
                        "actor": actor.user_id,
                        "request_id": actor.request_id,
                    },
                )
                audit.record(RepairAuditEvent(**event, outcome=RepairOutcome.FAILED, error=str(exc)))
                continue

            if not changed:
                audit.record(RepairAuditEvent(**event, outcome=RepairOutcome.CONFLICT))
                continue

            updated = result.updated_count_by_table
            updated[p.table] = updated.get(p.table, 0) + 1
            if len(result.sample_updated_ids) < sample_limit:
                result.sample_updated_ids.append(f"{p.table}:{p.id}")
            audit.record(RepairAuditEvent(**event, outcome=RepairOutcome.UPDATED))

    result.total_updated = sum(result.updated_count_by_table.values())
    result.total_skipped = sum(result.skipped_low_confidence_count_by_table.values())
    return result
