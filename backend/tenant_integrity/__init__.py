"""
tenant_integrity

Package racine du moteur d’intégrité tenancy (multi-tenant data integrity).

Rôle (fonctionnel) :
- Détecte les lignes sans tenant_id, les incohérences cross-tenant et les références orphelines.
- Dérive le tenant_id manquant depuis les relations parent, prévisualise puis applique les réparations sûres.
- Sert de point d’ancrage pour les imports : `from tenant_integrity...`

Organisation (haute-level) :
- tenant_integrity.api      : routes FastAPI d’administration (adaptateur mince)
- tenant_integrity.core     : briques transverses (settings, errors, logs, sécurité, request_id)
- tenant_integrity.db       : base SQLAlchemy + session async
- tenant_integrity.models   : modèles ORM (entités tenant-scopées)
- tenant_integrity.schemas  : schémas Pydantic (résultats des opérations)
- tenant_integrity.services : checks, dérivation, réparation, résumés (sans dépendance HTTP)
"""
