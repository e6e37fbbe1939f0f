"""
tenant_integrity.schemas

Package des schémas (Pydantic) : contrats d’entrée/sortie du moteur d’intégrité tenancy.

Rôle (fonctionnel) :
- Définit les résultats renvoyés par TenancyHealthService (résumés, preview, apply).
- Sépare clairement :
  - les modèles ORM (tenant_integrity.models) = persistance DB
  - les schémas Pydantic (tenant_integrity.schemas) = contrat consommé par l’API admin / panels

Usage :
- Les endpoints FastAPI déclarent response_model=... avec ces schémas.
- Sérialisation JSON en camelCase (alias), attributs Python en snake_case.
"""
