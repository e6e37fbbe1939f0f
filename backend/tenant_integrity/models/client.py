from __future__ import annotations

from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from tenant_integrity.db.base import Base
from tenant_integrity.models.tenant import new_id

"""
Model Client.

Rôle (fonctionnel) :
- Client (société) d’un tenant, rattaché à un workspace.
- Dérivation tenant_id : workspace_id -> workspaces.tenant_id.
- Parent de dérivation privilégié des projets (client_id).
"""


class Client(Base):
    __tablename__ = "clients"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)

    tenant_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("tenants.id"), nullable=True, index=True
    )

    # Référence parent sans contrainte FK (données importées / historiques)
    workspace_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)

    company_name: Mapped[str] = mapped_column(String(255), nullable=False)
