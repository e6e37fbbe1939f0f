from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from tenant_integrity.core.settings import settings

"""
Schemas Tenancy Health (Pydantic).

Rôle (fonctionnel) :
- Définit le contrat des 4 opérations du moteur d’intégrité :
  - résumé global (GlobalHealthSummary),
  - résumé par tenant (TenantHealthSummary + HealthCheckResult),
  - preview de réparation (RepairPreviewRequest -> RepairPreviewResult),
  - application des réparations (RepairApplyRequest -> RepairApplyResult).

Notes :
- JSON en camelCase (alias_generator), construction possible en snake_case (populate_by_name).
- Un check en échec reste distinguable d’un vrai zéro : count = -1 ET status = "unknown".
- ProposedUpdate est transitoire : créé et jeté dans un seul appel preview/apply, jamais persisté.
"""


class Confidence(str, Enum):
    """Niveau de confiance d’une dérivation de tenant_id."""
    HIGH = "high"
    LOW = "low"


class Severity(str, Enum):
    """Gravité d’un constat (critical = bloque le tenant)."""
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


class CheckStatus(str, Enum):
    """Issue d’exécution d’un check : ok, ou unknown si la requête a échoué."""
    OK = "ok"
    UNKNOWN = "unknown"


# Count “inconnu” exposé sur le fil (contrat historique)
UNKNOWN_COUNT = -1


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# -----------------------------
# Health checks / résumés
# -----------------------------
class HealthCheckResult(_CamelModel):
    """Constat classé (sévérité + action recommandée) d’un check non nul ou inconnu."""
    check_name: str
    table: str
    severity: Severity
    status: CheckStatus = CheckStatus.OK
    count: int
    sample_ids: List[str] = Field(default_factory=list)
    recommended_action: str


class GlobalHealthSummary(_CamelModel):
    """Vue globale : tenants prêts/bloqués + lignes sans tenant_id par table."""
    total_tenants: int
    ready_tenants: int
    blocked_tenants: int
    total_orphan_rows: int
    by_table: Dict[str, int]
    unknown_checks: List[str] = Field(default_factory=list)
    checked_at: datetime


class TenantHealthSummary(_CamelModel):
    """Vue d’un tenant : statut, bloquants et constats détaillés."""
    tenant_id: str
    tenant_name: str
    status: str
    is_ready: bool
    blocker_count: int
    checks: List[HealthCheckResult] = Field(default_factory=list)


# -----------------------------
# Preview / apply
# -----------------------------
class ProposedUpdate(_CamelModel):
    """Mise à jour proposée pour une ligne sans tenant_id."""
    table: str
    id: str
    current_tenant_id: Optional[str] = None
    derived_tenant_id: Optional[str] = None
    confidence: Confidence
    derivation_path: str
    notes: Optional[str] = None


class ConfidenceTally(_CamelModel):
    high: int = 0
    low: int = 0


class RepairPreviewRequest(_CamelModel):
    """Options de preview : tables (défaut : toutes les tables dérivables), limite, tenant."""
    tenant_id: Optional[str] = None
    tables: Optional[List[str]] = None
    limit: int = Field(
        default=settings.TENANCY_REPAIR_DEFAULT_LIMIT,
        ge=1,
        le=settings.TENANCY_REPAIR_MAX_LIMIT,
    )

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class RepairApplyRequest(RepairPreviewRequest):
    """Options d’application : seules les propositions high sont écrites."""
    apply_only_high_confidence: bool = True


class RepairPreviewResult(_CamelModel):
    proposed_updates: List[ProposedUpdate] = Field(default_factory=list)
    high_confidence_count: int = 0
    low_confidence_count: int = 0
    by_table: Dict[str, ConfidenceTally] = Field(default_factory=dict)

    # Deadline atteinte : certaines tables n’ont pas été examinées
    truncated: bool = False

    # Tables dont la requête de dérivation a échoué (aucune proposition pour elles)
    failed_tables: List[str] = Field(default_factory=list)


class RepairApplyResult(_CamelModel):
    updated_count_by_table: Dict[str, int] = Field(default_factory=dict)
    skipped_low_confidence_count_by_table: Dict[str, int] = Field(default_factory=dict)
    sample_updated_ids: List[str] = Field(default_factory=list)
    total_updated: int = 0
    total_skipped: int = 0

    # Deadline atteinte : arrêt propre avant la ligne suivante
    aborted: bool = False

    # Tables non réparées car leur dérivation a échoué
    failed_tables: List[str] = Field(default_factory=list)
