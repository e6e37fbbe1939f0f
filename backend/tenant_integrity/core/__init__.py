"""
tenant_integrity.core

Package “cœur” de l’application : il regroupe tout ce qui est transversal (cross-cutting concerns),
c’est-à-dire ce qui s’applique à plusieurs endpoints/services et qui ne dépend pas d’un domaine
spécifique (checks tenancy, dérivation, réparations).

On y trouve :

- settings
  Centralise la configuration (variables d’environnement, limites de réparation, parallélisme,
  timeouts des checks, rôle super-user exclu des scans).

- errors
  Format d’erreur API uniforme (code, message, status, request_id, timestamp), exception
  applicative (AppHTTPException) et erreurs domaine (UnknownTableError).

- logging
  Logs JSON (1 ligne = 1 event) enrichis du request_id et des champs d’audit tenancy.

- request_id
  Identifiant de requête (correlation id) pour tracer une requête et les réparations associées.

- security
  Garde API key des routes d’administration.

En résumé :
- tenant_integrity.core = infrastructure + conventions (config, logs, erreurs, sécurité)
- tenant_integrity.api / services / models = endpoints + moteur d’intégrité + persistance
"""
