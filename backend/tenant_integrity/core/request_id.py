from __future__ import annotations

import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator

"""
Core Request ID (correlation id).

Rôle (fonctionnel) :
- Porte le correlation id de l’opération en cours dans un ContextVar :
  requête HTTP (header X-Request-Id) ou exécution CLI (scripts).
- Les logs JSON l’injectent automatiquement (RequestIdFilter) ; l’audit des réparations
  le reçoit explicitement via RepairActor.request_id.

Notes :
- bind_request_id() restaure la valeur précédente en sortie (token ContextVar) :
  pas de fuite d’un id entre deux requêtes servies par le même worker.
"""

_request_id: ContextVar[str | None] = ContextVar("request_id", default=None)


def new_request_id(prefix: str | None = None) -> str:
    rid = str(uuid.uuid4())
    return f"{prefix}-{rid}" if prefix else rid


def get_request_id() -> str | None:
    """Correlation id du contexte courant (ou None hors requête)."""
    return _request_id.get()


@contextmanager
def bind_request_id(incoming: str | None = None, *, prefix: str | None = None) -> Iterator[str]:
    """
    Lie un correlation id au contexte courant le temps du bloc.

    - incoming (header entrant) est nettoyé puis réutilisé s’il est non vide,
    - sinon un id est généré (préfixe optionnel, ex : "cli").
    """
    rid = (incoming or "").strip() or new_request_id(prefix)
    token = _request_id.set(rid)
    try:
        yield rid
    finally:
        _request_id.reset(token)
