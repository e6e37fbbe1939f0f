from __future__ import annotations

from fastapi import Depends, Request

from tenant_integrity.core.security import require_api_key
from tenant_integrity.db.session import AsyncSessionLocal
from tenant_integrity.services.tenancy_health import TenancyHealthService

"""
Dépendances API.

Rôle (fonctionnel) :
- Centralise les dépendances réutilisables sur les routes d’administration tenancy.
- Protection via clé API (header).
- Fournit le TenancyHealthService (surchargeable en test via app.dependency_overrides).
"""


async def require_admin_auth(request: Request) -> None:
    # Garde admin basée sur une API key
    await require_api_key(request)


# Dépendance prête à l’emploi pour protéger un endpoint
AdminAuthDep = Depends(require_admin_auth)


_service: TenancyHealthService | None = None


def get_tenancy_health_service() -> TenancyHealthService:
    """Service partagé par process (le sémaphore borne la concurrence de toutes les requêtes)."""
    global _service
    if _service is None:
        _service = TenancyHealthService(AsyncSessionLocal)
    return _service
