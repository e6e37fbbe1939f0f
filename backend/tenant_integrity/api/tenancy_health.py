from __future__ import annotations

import uuid
import logging

from fastapi import APIRouter, Body, Depends, Request

from tenant_integrity.api.deps import AdminAuthDep, get_tenancy_health_service
from tenant_integrity.core.errors import AppHTTPException, UnknownTableError
from tenant_integrity.schemas.tenancy_health import (
    GlobalHealthSummary,
    RepairApplyRequest,
    RepairApplyResult,
    RepairPreviewRequest,
    RepairPreviewResult,
    TenantHealthSummary,
)
from tenant_integrity.services.tenancy_health import TenancyHealthService
from tenant_integrity.services.tenancy_repair import RepairActor

"""
API Tenancy Health (administration).

Rôle (fonctionnel) :
- Expose les 4 opérations du moteur d’intégrité tenancy :
  - GET  /system/health/tenancy                      : résumé global
  - GET  /system/health/tenancy/tenants/{tenant_id}  : résumé d’un tenant (404 si inconnu)
  - POST /system/health/tenancy/repair-preview       : dry run (lecture seule)
  - POST /system/health/tenancy/repair-apply         : applique les dérivations high
- Adaptateur mince : aucune logique métier ici (tout est dans TenancyHealthService).

Sécurité :
- Toutes les routes sont protégées par la clé API (AdminAuthDep).
- repair-apply exige en plus un header de confirmation explicite (X-Confirm-Repair: true).
- Auteur (X-Actor) + request_id propagés dans l’audit des réparations.
"""

router = APIRouter(prefix="/system/health/tenancy", tags=["tenancy-health"], dependencies=[AdminAuthDep])
log = logging.getLogger("tenant_integrity.api.tenancy_health")


def _unknown_table(exc: UnknownTableError) -> AppHTTPException:
    return AppHTTPException(
        400,
        "UNKNOWN_TABLE",
        f"Table inconnue : {exc.table}",
        details={"table": exc.table, "allowed": list(exc.known)},
    )


@router.get("", response_model=GlobalHealthSummary)
async def global_health(svc: TenancyHealthService = Depends(get_tenancy_health_service)):
    return await svc.get_global_health_summary()


@router.get("/tenants/{tenant_id}", response_model=TenantHealthSummary)
async def tenant_health(tenant_id: str, svc: TenancyHealthService = Depends(get_tenancy_health_service)):
    summary = await svc.get_tenant_health_summary(tenant_id)
    if summary is None:
        raise AppHTTPException(404, "TENANT_NOT_FOUND", "Tenant introuvable", details={"tenant_id": tenant_id})
    return summary


@router.post("/repair-preview", response_model=RepairPreviewResult)
async def repair_preview(
    payload: RepairPreviewRequest | None = Body(default=None),
    svc: TenancyHealthService = Depends(get_tenancy_health_service),
):
    try:
        return await svc.generate_repair_preview(payload)
    except UnknownTableError as exc:
        raise _unknown_table(exc)


@router.post("/repair-apply", response_model=RepairApplyResult)
async def repair_apply(
    request: Request,
    payload: RepairApplyRequest | None = Body(default=None),
    svc: TenancyHealthService = Depends(get_tenancy_health_service),
):
    # Confirmation explicite : une écriture ne part jamais “par accident”
    if (request.headers.get("X-Confirm-Repair") or "").strip().lower() != "true":
        raise AppHTTPException(
            400,
            "REPAIR_CONFIRMATION_REQUIRED",
            "Header X-Confirm-Repair: true requis pour appliquer les réparations",
        )

    # Identifiant de requête pour la traçabilité (logs + audit)
    rid = getattr(request.state, "request_id", None) or str(uuid.uuid4())

    # Auteur de l’action (header X-Actor côté panel admin)
    actor = RepairActor(user_id=request.headers.get("X-Actor") or "unknown", request_id=rid)

    log.info(
        "tenancy_repair_requested",
        extra={"request_id": rid, "actor": actor.user_id, "tenant_id": payload.tenant_id if payload else None},
    )

    try:
        return await svc.apply_repairs(payload, actor)
    except UnknownTableError as exc:
        raise _unknown_table(exc)
