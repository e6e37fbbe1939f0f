from __future__ import annotations

from sqlalchemy import Boolean, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from tenant_integrity.db.base import Base
from tenant_integrity.models.tenant import new_id

"""
Model Task.

Rôle (fonctionnel) :
- Tâche de projet, ou tâche personnelle (is_personal=True, sans projet par construction).
- Dérivation tenant_id :
  1. project_id -> projects.tenant_id
  2. created_by -> users.tenant_id (tâches personnelles uniquement)
"""


class Task(Base):
    __tablename__ = "tasks"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)

    tenant_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("tenants.id"), nullable=True, index=True
    )

    project_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    created_by: Mapped[str | None] = mapped_column(String(36), nullable=True)

    # Tâche personnelle : absence de projet légitime (exclue du check orphelins)
    is_personal: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    title: Mapped[str] = mapped_column(String(500), nullable=False)
