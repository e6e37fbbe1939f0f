from __future__ import annotations

from sqlalchemy import ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from tenant_integrity.db.base import Base
from tenant_integrity.models.tenant import new_id

"""
Model TimeEntry.

Rôle (fonctionnel) :
- Saisie de temps d’un utilisateur, rattachée à un projet et/ou un workspace.
- Dérivation tenant_id (ordre de préférence) :
  1. project_id -> projects.tenant_id
  2. user_id -> users.tenant_id
  3. workspace_id -> workspaces.tenant_id
"""


class TimeEntry(Base):
    __tablename__ = "time_entries"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)

    tenant_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("tenants.id"), nullable=True, index=True
    )

    project_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    user_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    workspace_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)

    duration_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
