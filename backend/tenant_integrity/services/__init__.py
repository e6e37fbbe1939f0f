"""
tenant_integrity.services

Package “services” : logique d’intégrité tenancy indépendante des endpoints HTTP.

Rôle (fonctionnel) :
- tenancy_checks     : scanner “missing tenant_id”, détecteurs de mismatch et d’orphelins
- tenancy_derivation : moteur de dérivation (règles ordonnées, confiance high/low)
- tenancy_repair     : agrégation de preview, application conditionnelle, audit
- tenancy_health     : TenancyHealthService (orchestration, concurrence bornée, résumés)

Principe :
- tenant_integrity.api = transport HTTP (routes, validation, dépendances)
- tenant_integrity.services = orchestration métier (réutilisable, testable, sans FastAPI)
- tenant_integrity.models / tenant_integrity.schemas = persistance et contrats
"""
