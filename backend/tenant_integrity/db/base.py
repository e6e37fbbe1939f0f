from sqlalchemy.orm import DeclarativeBase

"""
DB Base.

Rôle (fonctionnel) :
- Définit la classe Base SQLAlchemy commune à tous les modèles ORM.
- Sert de point d’ancrage pour :
  - la déclaration des tables (models/*),
  - la création de schéma en test (Base.metadata.create_all),
  - l’introspection ORM.

Note :
- Le schéma est possédé par l’application hôte : ce package ne gère pas de migrations.
"""


class Base(DeclarativeBase):
    """Classe racine ORM (SQLAlchemy Declarative)."""
    pass
