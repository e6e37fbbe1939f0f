from __future__ import annotations

from sqlalchemy import Boolean, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from tenant_integrity.db.base import Base
from tenant_integrity.models.tenant import new_id

"""
Model Workspace.

Rôle (fonctionnel) :
- Appartient à exactement un tenant (tenant_id), éventuellement marqué “primary”.
- Parent de dérivation pour clients, teams, projects (fallback) et time entries (fallback).

Note :
- tenant_id reste nullable au niveau stockage : un workspace sans tenant est signalé par le scan
  “missing tenant_id” mais n’est jamais réparé automatiquement (assignation manuelle).
"""


class Workspace(Base):
    __tablename__ = "workspaces"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)

    tenant_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("tenants.id"), nullable=True, index=True
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_primary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
