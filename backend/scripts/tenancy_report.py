import sys
import json
import asyncio
import argparse

# Windows: compat event loop (évite certains soucis avec drivers async PostgreSQL)
if sys.platform.startswith("win"):
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

from tenant_integrity.core.logging import setup_logging
from tenant_integrity.core.request_id import bind_request_id
from tenant_integrity.core.settings import settings
from tenant_integrity.db.session import AsyncSessionLocal
from tenant_integrity.schemas.tenancy_health import RepairPreviewRequest
from tenant_integrity.services.tenancy_health import TenancyHealthService

"""
Script CLI: tenancy_report

Rôle (fonctionnel) :
- Affiche le résumé global d’intégrité tenancy (tenants prêts / bloqués, lignes sans tenant_id).
- Optionnel : résumé détaillé d’un tenant (--tenant).
- Optionnel : preview des réparations (--preview), sans aucune écriture.

Usage typique :
- Vérification rapide après un import legacy, sans passer par l’API.
- Validation que DB + moteur de dérivation fonctionnent de bout en bout.

Notes :
- Ce script est en lecture seule : l’application des réparations passe par l’API
  (confirmation explicite + audit).
"""


def _dump(model) -> None:
    print(json.dumps(model.model_dump(mode="json", by_alias=True), indent=2, ensure_ascii=False))


async def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--tenant", default=None, help="Id du tenant à détailler")
    parser.add_argument("--preview", action="store_true", help="Affiche la preview des réparations")
    parser.add_argument("--limit", type=int, default=50, help="Lignes examinées par table (preview)")
    args = parser.parse_args()

    setup_logging(settings.LOG_LEVEL)
    svc = TenancyHealthService(AsyncSessionLocal)

    # Correlation id du run : retrouvé dans chaque log JSON des checks
    with bind_request_id(prefix="cli") as rid:
        print("Run:", rid)
        await report(svc, args)


async def report(svc: TenancyHealthService, args) -> None:
    summary = await svc.get_global_health_summary()
    print("Tenants:", summary.total_tenants, "ready:", summary.ready_tenants, "blocked:", summary.blocked_tenants)
    print("Lignes sans tenant_id:", summary.total_orphan_rows)
    for table, count in summary.by_table.items():
        print(f"  - {table}: {'inconnu' if count < 0 else count}")
    if summary.unknown_checks:
        print("Checks en échec:", ", ".join(summary.unknown_checks))

    if args.tenant:
        tenant = await svc.get_tenant_health_summary(args.tenant)
        if tenant is None:
            print("Tenant introuvable:", args.tenant)
        else:
            _dump(tenant)

    if args.preview:
        preview = await svc.generate_repair_preview(
            RepairPreviewRequest(tenant_id=args.tenant, limit=args.limit)
        )
        print("Preview: high", preview.high_confidence_count, "low", preview.low_confidence_count)
        _dump(preview)


if __name__ == "__main__":
    asyncio.run(main())
