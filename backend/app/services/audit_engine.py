"""
Compliance/Audit Stamper.

Every released snapshot carries the k that the gate actually applied, the
deployment's legal basis and compliance version, and the computation
instant. Snapshots cannot be built without it (see KpiSnapshot).
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from app.services import hr_config
from app.services.hr_types import AggregationLevel, Audit


def stamp_audit(
    aggregation_level: AggregationLevel,
    k_used: int,
    created_at: Optional[datetime] = None,
) -> Audit:
    return Audit(
        aggregation_level=aggregation_level,
        k_used=k_used,
        legal_basis=hr_config.HR_LEGAL_BASIS,
        created_at=created_at or datetime.now(timezone.utc),
        compliance_version=hr_config.HR_COMPLIANCE_VERSION,
    )


def compliance_info(k_used: int) -> dict:
    """Response-level compliance block."""
    return {
        "version": hr_config.HR_COMPLIANCE_VERSION,
        "kMin": k_used,
        "legalBasis": hr_config.HR_LEGAL_BASIS,
    }
