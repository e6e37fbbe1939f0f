from __future__ import annotations

from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from tenant_integrity.db.base import Base
from tenant_integrity.models.tenant import new_id

"""
Model User.

Rôle (fonctionnel) :
- Compte utilisateur rattaché à un tenant (tenant_id nullable = “pas encore assigné”).
- Parent de dérivation pour les tâches personnelles (created_by) et les time entries (user_id).

Note :
- Les comptes super-user sont volontairement sans tenant : ils sont exclus du scan
  “missing tenant_id” (rôle configurable, voir settings.TENANCY_SUPER_USER_ROLE).
"""


class UserRole:
    SUPER_USER = "super_user"
    ADMIN = "admin"
    EMPLOYEE = "employee"
    CLIENT = "client"


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)

    tenant_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("tenants.id"), nullable=True, index=True
    )

    email: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    role: Mapped[str] = mapped_column(String(30), nullable=False, default=UserRole.EMPLOYEE)
