from __future__ import annotations

from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from tenant_integrity.db.base import Base
from tenant_integrity.models.tenant import new_id

"""
Model Project.

Rôle (fonctionnel) :
- Projet d’un tenant, optionnellement rattaché à un client.
- Dérivation tenant_id (ordre de préférence) :
  1. client_id -> clients.tenant_id (assignation explicite, portée étroite)
  2. workspace_id -> workspaces.tenant_id (portée large, plus souvent périmée)

Note :
- client_id / workspace_id n’ont pas de contrainte FK : une référence pendante est signalée
  par le détecteur d’orphelins.
"""


class Project(Base):
    __tablename__ = "projects"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)

    tenant_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("tenants.id"), nullable=True, index=True
    )

    client_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    workspace_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
