from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Set, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tenant_integrity.core.settings import settings
from tenant_integrity.models import Tenant
from tenant_integrity.schemas.tenancy_health import (
    UNKNOWN_COUNT,
    CheckStatus,
    GlobalHealthSummary,
    HealthCheckResult,
    ProposedUpdate,
    RepairApplyRequest,
    RepairApplyResult,
    RepairPreviewRequest,
    RepairPreviewResult,
    Severity,
    TenantHealthSummary,
)
from tenant_integrity.services.tenancy_checks import (
    MISMATCH_PAIRS,
    ORPHAN_DESCRIPTORS,
    CheckResult,
    MismatchPair,
    OrphanDescriptor,
    OwnershipScan,
    count_tenants,
    default_ownership_scans,
    detect_mismatch,
    detect_orphans,
    mismatch_tenant_ids,
    scan_missing_ownership,
)
from tenant_integrity.services.tenancy_derivation import DerivationEngine
from tenant_integrity.services.tenancy_repair import (
    LoggingAuditSink,
    RepairActor,
    RepairAuditSink,
    apply_proposals,
    summarize_preview,
)

"""
Tenancy Health Service.

Rôle (fonctionnel) :
- Point d’entrée unique du moteur d’intégrité tenancy (4 opérations) :
  - get_global_health_summary()
  - get_tenant_health_summary(tenant_id)
  - generate_repair_preview(options)   (lecture seule)
  - apply_repairs(options, actor)      (écrit uniquement les dérivations high)
- Orchestre scanners / détecteurs / moteur de dérivation / applicateur.

Concurrence :
- Le service détient explicitement sa factory de sessions (pas d’état global caché).
- Chaque check (ou table) s’exécute dans sa propre session, sous un sémaphore borné
  (TENANCY_MAX_CONCURRENCY) pour ne pas saturer le pool de connexions.
- Chaque check est borné par un timeout ; preview/apply acceptent une deadline (timeout_s).

Erreurs :
- Un check en échec (erreur SQL, timeout) est journalisé et dégradé en “unknown” (-1) :
  un check défaillant n’interrompt jamais un résumé complet.
- Une table dont la dérivation échoue est listée dans failed_tables (preview / apply) :
  les autres tables sont prévisualisées et réparées normalement.
"""

log = logging.getLogger("tenant_integrity.tenancy_health")

MISSING_ACTION = "Run repair preview, then apply high-confidence repairs"


class TenancyHealthService:
    """
    Service d’intégrité tenancy.

    Dépendances injectables (tests / variations) :
    - session_factory : async_sessionmaker (obligatoire)
    - engine : DerivationEngine
    - audit_sink : RepairAuditSink (défaut : LoggingAuditSink)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        engine: DerivationEngine | None = None,
        audit_sink: RepairAuditSink | None = None,
        sample_limit: int = settings.TENANCY_SAMPLE_LIMIT,
        max_concurrency: int = settings.TENANCY_MAX_CONCURRENCY,
        check_timeout_s: float = settings.TENANCY_CHECK_TIMEOUT_S,
        super_user_role: str = settings.TENANCY_SUPER_USER_ROLE,
        scans: Sequence[OwnershipScan] | None = None,
        mismatch_pairs: Sequence[MismatchPair] = MISMATCH_PAIRS,
        orphan_descriptors: Sequence[OrphanDescriptor] = ORPHAN_DESCRIPTORS,
    ) -> None:
        self.session_factory = session_factory
        self.engine = engine or DerivationEngine()
        self.audit_sink = audit_sink or LoggingAuditSink()

        self.sample_limit = sample_limit
        self.check_timeout_s = check_timeout_s
        self._semaphore = asyncio.Semaphore(max(1, int(max_concurrency)))

        self.scans = tuple(scans) if scans is not None else default_ownership_scans(super_user_role)
        self.mismatch_pairs = tuple(mismatch_pairs)
        self.orphan_descriptors = tuple(orphan_descriptors)

    # -----------------------------
    # Runner (isolation par check)
    # -----------------------------
    async def _with_session(self, fn: Callable[[AsyncSession], Awaitable[Any]], *, deadline: Optional[float] = None):
        """
        Exécute fn(session) dans une session dédiée, sous le sémaphore et un timeout.

        deadline (loop.time()) : le temps restant est calculé APRÈS l’acquisition du sémaphore,
        l’attente en file compte donc dans la deadline.
        """
        async with self._semaphore:
            timeout = self.check_timeout_s
            if deadline is not None:
                remaining = deadline - asyncio.get_running_loop().time()
                if remaining <= 0:
                    raise asyncio.TimeoutError()
                timeout = min(timeout, remaining)
            async with self.session_factory() as db:
                return await asyncio.wait_for(fn(db), timeout=timeout)

    async def _run_check(
        self,
        name: str,
        table: str,
        description: str,
        fn: Callable[[AsyncSession], Awaitable[CheckResult]],
    ) -> CheckResult:
        """Exécute un check ; toute erreur le dégrade en résultat “unknown” (jamais propagée)."""
        try:
            return await self._with_session(fn)
        except asyncio.TimeoutError:
            log.error("tenancy_check_timeout", extra={"check": name, "table": table})
            return CheckResult.unknown(name, table, description, "timeout")
        except Exception as exc:
            log.exception("tenancy_check_failed", extra={"check": name, "table": table})
            return CheckResult.unknown(name, table, description, str(exc) or exc.__class__.__name__)

    def _scan(self, scan: OwnershipScan) -> Awaitable[CheckResult]:
        return self._run_check(
            scan.name,
            scan.table,
            scan.description,
            lambda db: scan_missing_ownership(db, scan, sample_limit=self.sample_limit),
        )

    def _mismatch(self, pair: MismatchPair, tenant_id: Optional[str] = None) -> Awaitable[CheckResult]:
        return self._run_check(
            pair.name,
            pair.table,
            pair.description,
            lambda db: detect_mismatch(db, pair, sample_limit=self.sample_limit, tenant_id=tenant_id),
        )

    def _orphans(self, descriptor: OrphanDescriptor, tenant_id: Optional[str] = None) -> Awaitable[CheckResult]:
        return self._run_check(
            descriptor.name,
            descriptor.table,
            descriptor.description,
            lambda db: detect_orphans(db, descriptor, sample_limit=self.sample_limit, tenant_id=tenant_id),
        )

    def _attributable_missing(self, table: str, tenant_id: str) -> Awaitable[CheckResult]:
        name = f"missing_tenant_id_{table}"
        description = f"{table} rows with tenant_id IS NULL derivable to this tenant"

        async def run(db: AsyncSession) -> CheckResult:
            count, samples = await self.engine.count_attributable(
                db, table, tenant_id, sample_limit=self.sample_limit
            )
            return CheckResult(name=name, table=table, description=description, count=count, sample_ids=samples)

        return self._run_check(name, table, description, run)

    async def _blocked_tenants(self, pair: MismatchPair) -> Optional[Set[str]]:
        """Tenants bloqués par une paire ; None si la requête échoue (inconnu)."""
        try:
            return await self._with_session(lambda db: mismatch_tenant_ids(db, pair))
        except asyncio.TimeoutError:
            log.error("tenancy_check_timeout", extra={"check": pair.name, "table": pair.table})
            return None
        except Exception:
            log.exception("tenancy_check_failed", extra={"check": pair.name, "table": pair.table})
            return None

    async def _total_tenants(self) -> Optional[int]:
        try:
            return await self._with_session(count_tenants)
        except asyncio.TimeoutError:
            log.error("tenancy_check_timeout", extra={"check": "tenant_count", "table": "tenants"})
            return None
        except Exception:
            log.exception("tenancy_check_failed", extra={"check": "tenant_count", "table": "tenants"})
            return None

    # -----------------------------
    # Résumés
    # -----------------------------
    async def get_global_health_summary(self) -> GlobalHealthSummary:
        """
        Résumé global :
        - lignes sans tenant_id par table (tous les scans en parallèle),
        - tenants bloqués = impliqués dans au moins un mismatch cross-tenant (critical).
        """
        scans_task = asyncio.gather(*(self._scan(s) for s in self.scans))
        blocked_task = asyncio.gather(*(self._blocked_tenants(p) for p in self.mismatch_pairs))
        scans, blocked_sets, total_tenants = await asyncio.gather(
            scans_task, blocked_task, self._total_tenants()
        )

        unknown_checks = [r.name for r in scans if not r.ok]
        unknown_checks += [p.name for p, s in zip(self.mismatch_pairs, blocked_sets) if s is None]

        blocked: Set[str] = set()
        for s in blocked_sets:
            if s:
                blocked |= s

        # Attribution incomplète : ni “bloqués” ni “prêts” ne peuvent être affirmés
        attribution_known = all(s is not None for s in blocked_sets)
        blocked_count = len(blocked) if attribution_known else UNKNOWN_COUNT

        if total_tenants is None:
            unknown_checks.append("tenant_count")
            total, ready = UNKNOWN_COUNT, UNKNOWN_COUNT
        else:
            total = total_tenants
            ready = max(0, total - len(blocked)) if attribution_known else UNKNOWN_COUNT

        summary = GlobalHealthSummary(
            total_tenants=total,
            ready_tenants=ready,
            blocked_tenants=blocked_count,
            total_orphan_rows=sum(r.count for r in scans if r.count is not None),
            by_table={r.table: r.reported_count for r in scans},
            unknown_checks=unknown_checks,
            checked_at=datetime.now(timezone.utc),
        )

        log.info(
            "tenancy_global_summary",
            extra={"count": summary.total_orphan_rows, "error": ",".join(unknown_checks) or None},
        )
        return summary

    async def get_tenant_health_summary(self, tenant_id: str) -> Optional[TenantHealthSummary]:
        """
        Résumé d’un tenant (None si le tenant n’existe pas).

        Constats (non nuls ou inconnus uniquement) :
        - mismatches impliquant le tenant : critical (bloquants),
        - orphelins possédés par le tenant : warning,
        - lignes sans tenant_id dérivables vers ce tenant : info (réparables).
        """
        async with self.session_factory() as db:
            tenant = (await db.execute(select(Tenant).where(Tenant.id == tenant_id))).scalars().first()
        if tenant is None:
            return None

        mismatches, orphans, missing = await asyncio.gather(
            asyncio.gather(*(self._mismatch(p, tenant_id) for p in self.mismatch_pairs)),
            asyncio.gather(*(self._orphans(d, tenant_id) for d in self.orphan_descriptors)),
            asyncio.gather(*(self._attributable_missing(t, tenant_id) for t in self.engine.tables)),
        )

        actions: Dict[str, str] = {p.name: p.recommended_action for p in self.mismatch_pairs}
        actions.update({d.name: d.recommended_action for d in self.orphan_descriptors})

        checks: List[HealthCheckResult] = []
        for severity, results in (
            (Severity.CRITICAL, mismatches),
            (Severity.WARNING, orphans),
            (Severity.INFO, missing),
        ):
            for r in results:
                finding = _classify(r, severity, actions.get(r.name, MISSING_ACTION))
                if finding is not None:
                    checks.append(finding)

        critical = [c for c in checks if c.severity is Severity.CRITICAL]
        blocker_count = sum(c.count for c in critical if c.status is CheckStatus.OK)
        is_ready = not critical

        return TenantHealthSummary(
            tenant_id=tenant.id,
            tenant_name=tenant.name,
            status=tenant.status,
            is_ready=is_ready,
            blocker_count=blocker_count,
            checks=checks,
        )

    # -----------------------------
    # Preview / apply
    # -----------------------------
    def _resolve_tables(self, tables: Optional[Sequence[str]]) -> Tuple[str, ...]:
        """Tables demandées (défaut : toutes), dédoublonnées ; UnknownTableError si inconnue."""
        if not tables:
            return self.engine.tables
        resolved: List[str] = []
        for t in tables:
            self.engine.plan_for(t)
            if t not in resolved:
                resolved.append(t)
        return tuple(resolved)

    async def _derive_tables(
        self,
        tables: Sequence[str],
        *,
        limit: int,
        tenant_id: Optional[str],
        deadline: Optional[float],
    ) -> Tuple[Dict[str, List[ProposedUpdate]], bool, List[str]]:
        """
        Dérive chaque table dans sa propre session ; une table en échec n’affecte pas les autres.

        Retourne (propositions par table, truncated, tables en échec).
        """
        truncated = False
        failed: List[str] = []

        async def derive(table: str) -> List[ProposedUpdate]:
            nonlocal truncated
            try:
                return await self._with_session(
                    lambda db: self.engine.derive_unresolved(db, table, limit=limit, tenant_id=tenant_id),
                    deadline=deadline,
                )
            except asyncio.TimeoutError:
                log.warning("tenancy_preview_deadline_reached", extra={"table": table})
                truncated = True
            except Exception:
                log.exception("tenancy_preview_table_failed", extra={"table": table})
                failed.append(table)
            return []

        results = await asyncio.gather(*(derive(t) for t in tables))

        updates_by_table = dict(zip(tables, results))
        return updates_by_table, truncated, [t for t in tables if t in failed]

    async def generate_repair_preview(
        self,
        options: RepairPreviewRequest | None = None,
        *,
        timeout_s: Optional[float] = None,
    ) -> RepairPreviewResult:
        """Dry run : dérive les lignes sans tenant_id sans rien écrire (aucun commit)."""
        options = options or RepairPreviewRequest()
        tables = self._resolve_tables(options.tables)

        deadline = None
        if timeout_s is not None:
            deadline = asyncio.get_running_loop().time() + timeout_s

        updates_by_table, truncated, failed = await self._derive_tables(
            tables, limit=options.limit, tenant_id=options.tenant_id, deadline=deadline
        )
        preview = summarize_preview(updates_by_table, truncated=truncated, failed_tables=failed)

        log.info(
            "tenancy_repair_preview",
            extra={"tenant_id": options.tenant_id, "count": len(preview.proposed_updates)},
        )
        return preview

    async def apply_repairs(
        self,
        options: RepairApplyRequest | None,
        actor: RepairActor,
        *,
        timeout_s: Optional[float] = None,
    ) -> RepairApplyResult:
        """
        Rejoue la preview puis applique uniquement les propositions high (mise à jour conditionnelle).

        apply_only_high_confidence=False est réservé à un futur flux de forçage manuel :
        il est journalisé et ignoré, les propositions low ne sont jamais écrites.
        """
        options = options or RepairApplyRequest()
        if not options.apply_only_high_confidence:
            log.warning(
                "tenancy_repair_low_confidence_override_ignored",
                extra={"actor": actor.user_id, "request_id": actor.request_id},
            )

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_s if timeout_s is not None else None

        tables = self._resolve_tables(options.tables)
        updates_by_table, truncated, failed = await self._derive_tables(
            tables, limit=options.limit, tenant_id=options.tenant_id, deadline=deadline
        )
        preview = summarize_preview(updates_by_table, truncated=truncated, failed_tables=failed)

        models = {t: self.engine.plan_for(t).model for t in tables}
        result = await apply_proposals(
            self.session_factory,
            models,
            preview.proposed_updates,
            actor,
            self.audit_sink,
            sample_limit=self.sample_limit,
            deadline=deadline,
        )
        result.aborted = result.aborted or preview.truncated
        result.failed_tables = list(preview.failed_tables)

        log.info(
            "tenancy_repair_applied",
            extra={
                "actor": actor.user_id,
                "request_id": actor.request_id,
                "tenant_id": options.tenant_id,
                "count": result.total_updated,
            },
        )
        return result


def _classify(result: CheckResult, severity: Severity, action: str) -> Optional[HealthCheckResult]:
    """Transforme un CheckResult en constat (None si le check est sain : count == 0)."""
    if result.ok and result.count == 0:
        return None
    return HealthCheckResult(
        check_name=result.name,
        table=result.table,
        severity=severity,
        status=CheckStatus.OK if result.ok else CheckStatus.UNKNOWN,
        count=result.reported_count,
        sample_ids=list(result.sample_ids),
        recommended_action=action,
    )
