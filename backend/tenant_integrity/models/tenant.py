from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from tenant_integrity.db.base import Base

"""
Model Tenant.

Rôle (fonctionnel) :
- Frontière de propriété de plus haut niveau : toute ligne tenant-scopée pointe vers un tenant
  via sa colonne tenant_id.
- Immuable une fois créé, hormis le statut (active / inactive / suspended / blocked).
"""


class TenantStatus:
    """Statuts possibles d’un tenant (valeurs stockées en base)."""
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"
    BLOCKED = "blocked"


def new_id() -> str:
    """Identifiant technique (UUID v4 sérialisé)."""
    return str(uuid.uuid4())


class Tenant(Base):
    __tablename__ = "tenants"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(120), nullable=False, unique=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default=TenantStatus.ACTIVE, index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)
