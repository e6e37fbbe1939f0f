"""
tenant_integrity.models

Package ORM (SQLAlchemy) : entités tenant-scopées lues (et, pour tenant_id, écrites) par le moteur.

Rôle (fonctionnel) :
- Centralise les modèles (Tenant, Workspace, User, Client, Project, Task, Team, TimeEntry).
- Permet des imports plus simples depuis tenant_integrity.models.
- Expose explicitement l’API publique du package via __all__ (évite imports implicites).
"""

from tenant_integrity.models.tenant import Tenant, TenantStatus
from tenant_integrity.models.workspace import Workspace
from tenant_integrity.models.user import User, UserRole
from tenant_integrity.models.client import Client
from tenant_integrity.models.project import Project
from tenant_integrity.models.task import Task
from tenant_integrity.models.team import Team
from tenant_integrity.models.time_entry import TimeEntry

__all__ = [
    "Tenant",
    "TenantStatus",
    "Workspace",
    "User",
    "UserRole",
    "Client",
    "Project",
    "Task",
    "Team",
    "TimeEntry",
]
