from fastapi import APIRouter

from .health import router as health_router

from tenant_integrity.api.tenancy_health import router as tenancy_health_router

"""
Router principal de l’API.

Rôle (fonctionnel) :
- Regroupe les routeurs par domaine (health, intégrité tenancy).
- Sert de point d’entrée unique pour l’inclusion dans l’application FastAPI.
"""

api_router = APIRouter()

api_router.include_router(health_router, tags=["health"])
api_router.include_router(tenancy_health_router)
