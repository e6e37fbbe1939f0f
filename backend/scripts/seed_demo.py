# backend/scripts/seed_demo.py
from __future__ import annotations

import argparse
import random
import sys
from pathlib import Path

from sqlalchemy import create_engine, delete
from sqlalchemy.orm import sessionmaker

# Permet de lancer le script depuis backend/ sans souci d'import
BACKEND_DIR = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(BACKEND_DIR))

from tenant_integrity.core.settings import settings
from tenant_integrity.db.base import Base
from tenant_integrity.models import (
    Client,
    Project,
    Task,
    Team,
    Tenant,
    TimeEntry,
    User,
    UserRole,
    Workspace,
)
from tenant_integrity.models.tenant import new_id

"""
Script CLI: seed_demo

Rôle (fonctionnel) :
- Crée des tenants “sains” (workspace, users, clients, projets, tâches, équipes, saisies de temps).
- Injecte volontairement de la dérive d’ownership, pour exercer le moteur d’intégrité :
  - lignes sans tenant_id dérivables (high) : legacy import avant la migration multi-tenant
  - lignes sans tenant_id non dérivables (low) : chaîne de parents cassée
  - mismatches cross-tenant (projet du tenant A rattaché à un client du tenant B)
  - références orphelines (projectId / workspaceId vers un parent supprimé)
- Un super-user sans tenant (exclu du scan users par construction).

Usage :
    python scripts/seed_demo.py --reset --tenants 3 --drift 0.15
"""


# ---- Données de démo ----
COMPANIES = ["Acme", "Globex", "Initech", "Umbrella", "Hooli", "Stark", "Wayne", "Wonka"]
PROJECT_NAMES = ["Refonte site", "Migration ERP", "Audit sécurité", "App mobile", "Data platform", "Support N2"]
TASK_TITLES = ["Cadrage", "Maquettes", "Développement", "Recette", "Mise en prod", "Documentation"]


def _slug(name: str) -> str:
    return name.lower().replace(" ", "-")


def _drop_tenant(row, drift: float) -> None:
    # Dérive : ligne importée sans tenant_id
    if random.random() < drift:
        row.tenant_id = None


def seed_tenant(db, name: str, *, drift: float, users: int, projects: int) -> dict:
    tenant = Tenant(id=new_id(), name=name, slug=_slug(name))
    db.add(tenant)

    ws = Workspace(id=new_id(), tenant_id=tenant.id, name=f"{name} HQ", is_primary=True)
    db.add(ws)

    members = []
    for i in range(users):
        u = User(
            id=new_id(),
            tenant_id=tenant.id,
            email=f"user{i}@{_slug(name)}.example",
            name=f"{name} user {i}",
            role=UserRole.ADMIN if i == 0 else UserRole.EMPLOYEE,
        )
        members.append(u)
        db.add(u)

    client = Client(id=new_id(), tenant_id=tenant.id, workspace_id=ws.id, company_name=f"{name} client")
    _drop_tenant(client, drift)
    db.add(client)

    team = Team(id=new_id(), tenant_id=tenant.id, workspace_id=ws.id, name=f"{name} core team")
    _drop_tenant(team, drift)
    db.add(team)

    project_ids = []
    for _ in range(projects):
        p = Project(
            id=new_id(),
            tenant_id=tenant.id,
            client_id=client.id,
            workspace_id=ws.id,
            name=random.choice(PROJECT_NAMES),
        )
        _drop_tenant(p, drift)
        project_ids.append(p.id)
        db.add(p)

        for title in random.sample(TASK_TITLES, k=3):
            t = Task(id=new_id(), tenant_id=tenant.id, project_id=p.id, created_by=random.choice(members).id, title=title)
            _drop_tenant(t, drift)
            db.add(t)

        for _ in range(random.randint(2, 6)):
            te = TimeEntry(
                id=new_id(),
                tenant_id=tenant.id,
                project_id=p.id,
                user_id=random.choice(members).id,
                workspace_id=ws.id,
                duration_seconds=random.randint(15, 480) * 60,
            )
            _drop_tenant(te, drift)
            db.add(te)

    # Tâche personnelle (sans projet) : dérivable via son auteur
    db.add(
        Task(
            id=new_id(),
            tenant_id=None if random.random() < drift else tenant.id,
            created_by=members[0].id,
            is_personal=True,
            title="Note perso",
        )
    )

    return {"tenant": tenant, "workspace": ws, "client": client, "project_ids": project_ids}


def seed_anomalies(db, tenants: list[dict]) -> dict:
    """Dérive non réparable automatiquement : low confidence, mismatches, orphelins."""
    counts = {"low": 0, "mismatch": 0, "orphan": 0}
    missing_parent = new_id()

    # Low : aucun parent exploitable
    db.add(Project(id=new_id(), tenant_id=None, client_id=None, workspace_id=None, name="Projet legacy"))
    db.add(TimeEntry(id=new_id(), tenant_id=None, project_id=missing_parent, duration_seconds=3600))
    counts["low"] += 2

    # Orphelins : FK vers des parents inexistants
    owner = tenants[0]
    db.add(Task(id=new_id(), tenant_id=owner["tenant"].id, project_id=missing_parent, title="Tâche orpheline"))
    db.add(Team(id=new_id(), tenant_id=owner["tenant"].id, workspace_id=new_id(), name="Équipe orpheline"))
    counts["orphan"] += 2

    # Mismatch : projet du tenant A rattaché au client du tenant B
    if len(tenants) > 1:
        a, b = tenants[0], tenants[1]
        db.add(Project(id=new_id(), tenant_id=a["tenant"].id, client_id=b["client"].id, name="Projet mal rattaché"))
        counts["mismatch"] += 1

    return counts


def seed(reset: bool, n_tenants: int, drift: float, users: int, projects: int) -> None:
    engine = create_engine(settings.DATABASE_URL_SYNC, future=True)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)

    # Pas de migrations : le schéma est créé à partir des modèles ORM
    Base.metadata.create_all(engine)

    with SessionLocal() as db:
        if reset:
            # ordre inverse des FK (tenant_id -> tenants)
            for model in (TimeEntry, Task, Team, Project, Client, User, Workspace, Tenant):
                db.execute(delete(model))
            db.commit()
            print("✅ Reset done (all demo data deleted).")

        tenants = []
        for name in random.sample(COMPANIES, k=min(n_tenants, len(COMPANIES))):
            tenants.append(seed_tenant(db, name, drift=drift, users=users, projects=projects))
            db.commit()
            print(f"… tenant {name} inséré")

        db.add(User(id=new_id(), tenant_id=None, email="root@platform.example", name="Root", role=UserRole.SUPER_USER))
        counts = seed_anomalies(db, tenants)
        db.commit()

        print("✅ Seed terminé.")
        print(f"   - Tenants créés: {len(tenants)}")
        print(f"   - Taux de dérive (tenant_id NULL): {drift:.0%}")
        print(f"   - Lignes non dérivables (low): {counts['low']}")
        print(f"   - Orphelins injectés: {counts['orphan']}")
        print(f"   - Mismatches injectés: {counts['mismatch']}")


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--reset", action="store_true", help="Supprime les données demo avant de reseed")
    parser.add_argument("--tenants", type=int, default=3, help="Nombre de tenants à générer")
    parser.add_argument("--drift", type=float, default=0.15, help="Probabilité qu’une ligne perde son tenant_id")
    parser.add_argument("--users", type=int, default=4, help="Utilisateurs par tenant")
    parser.add_argument("--projects", type=int, default=5, help="Projets par tenant")
    parser.add_argument("--seed", type=int, default=42, help="Seed RNG pour reproductibilité")
    args = parser.parse_args()

    random.seed(args.seed)
    seed(reset=args.reset, n_tenants=args.tenants, drift=args.drift, users=args.users, projects=args.projects)


if __name__ == "__main__":
    main()
