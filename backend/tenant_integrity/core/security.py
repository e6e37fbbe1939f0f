from __future__ import annotations

import secrets
from typing import Optional

from fastapi import Request

from tenant_integrity.core.settings import settings
from tenant_integrity.core.errors import AppHTTPException

"""
Core Security (garde admin).

Rôle (fonctionnel) :
- Protège les routes d’administration tenancy (résumés, preview, apply) par une API key.
- Token accepté via `Authorization: Bearer <token>` ou `X-API-Key: <token>`.

Comportement :
- API_KEY configurée : la clé est requise (401 UNAUTHORIZED sinon).
- API_KEY vide hors prod : accès libre (dev / local).
- API_KEY vide en prod : 500 SERVER_MISCONFIG (un outil capable d’écrire tenant_id
  ne doit jamais être exposé sans garde).

Notes :
- Le contrôle de rôle (super-user) est fait par la plateforme appelante.
"""


def admin_token(request: Request) -> Optional[str]:
    """Token présenté par l’appelant (Bearer prioritaire sur X-API-Key)."""
    scheme, _, value = (request.headers.get("authorization") or "").partition(" ")
    if scheme.lower() == "bearer" and value.strip():
        return value.strip()
    return (request.headers.get("x-api-key") or "").strip() or None


def check_admin_key(token: Optional[str], *, expected: str, env: str) -> None:
    """Lève AppHTTPException si le token ne correspond pas à la clé attendue."""
    if not expected:
        if env.lower() == "prod":
            raise AppHTTPException(500, "SERVER_MISCONFIG", "API_KEY manquante côté serveur")
        return

    if not token or not secrets.compare_digest(token, expected):
        raise AppHTTPException(401, "UNAUTHORIZED", "Clé API invalide ou manquante")


async def require_api_key(request: Request) -> None:
    """Dépendance FastAPI : garde admin des routes tenancy."""
    check_admin_key(admin_token(request), expected=settings.API_KEY or "", env=str(settings.ENV))
