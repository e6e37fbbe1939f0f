"""
scripts

Package utilitaire pour les scripts de maintenance / data.

Rôle (fonctionnel) :
- Contient des scripts exécutables (CLI) liés au projet :
  - seed_demo : génération de données multi-tenant avec dérive d’ownership volontaire
  - tenancy_report : inspection en lecture seule (résumés + preview de réparation)

Note :
- Les scripts ne doivent pas contenir de logique métier “centrale” :
  ils orchestrent et appellent les modules de `tenant_integrity/` (services, db…).
"""
