"""
tenant_integrity.db

Package base de données : connexion, session et helpers d’accès DB.

Contenu :
- base : classe Base SQLAlchemy commune aux modèles (entités tenant-scopées).
- session : engine async + factory de sessions (injectée dans TenancyHealthService).
"""
