from fastapi import APIRouter

from tenant_integrity.core.settings import settings

"""
API Health.

Rôle (fonctionnel) :
- Endpoint simple pour vérifier que l’API répond (liveness, sans accès DB).
"""

router = APIRouter()


@router.get("/health")
def health():
    return {
        "status": "ok",
        "env": settings.ENV,
        "app": settings.APP_NAME,
    }
