"""
HR overview pipeline + response assembler.

    raw records ─► cohort aggregates ─► k-anonymity gate ─► KPI metrics
                ─► audit stamp ─► alerts ─► schema-validated response

Each call builds its own aggregates, snapshots and alerts; nothing is
shared between requests. The response is all-or-nothing: any failure
raises before a payload exists.
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from pydantic import ValidationError

from app.models.hr_schemas import HrOverviewResponse
from app.services import hr_config
from app.services.anonymity_engine import apply_gate, assert_no_person_fields
from app.services.audit_engine import compliance_info, stamp_audit
from app.services.cohort_engine import OverviewQuery, build_group_aggregates
from app.services.hr_alert_engine import generate_alerts
from app.services.hr_config import DEFAULT_HR_THRESHOLDS, HrThresholds
from app.services.hr_errors import HrComplianceError, HrInternalError
from app.services.hr_kpi_engine import compute_metrics, resolve_practice_target_fte, role_target_fte
from app.services.hr_types import (
    AggregationLevel,
    Alert,
    KpiSnapshot,
    PracticeDataset,
)

logger = logging.getLogger("praxisflow-hr")

NO_STAFF_WARNING = "No staff records for this practice; no metrics available"


def assemble_overview(
    *,
    timestamp: datetime,
    query: OverviewQuery,
    aggregation_level: AggregationLevel,
    k_used: int,
    snapshots: list[KpiSnapshot],
    alerts: dict[str, list[Alert]],
    warnings: list[str],
) -> HrOverviewResponse:
    """
    Compose the overview payload and validate it against HrOverviewResponse.

    A payload that fails its own schema, or carries a person-level field,
    is a programming error and raises HrInternalError.
    """
    payload = {
        "timestamp": timestamp.isoformat(),
        "periodStart": query.period.start.isoformat(),
        "periodEnd": query.period.end.isoformat(),
        "requestedLevel": query.requested_level.query_value,
        "aggregationLevel": aggregation_level.query_value,
        "snapshots": [s.to_dict() for s in snapshots],
        "alertsBySnapshot": [
            {
                "snapshotId": s.id,
                "groupKey": s.group_key,
                "aggregationLevel": s.aggregation_level.value,
                "alerts": [a.to_dict() for a in alerts.get(s.id, [])],
            }
            for s in snapshots
        ],
        "compliance": compliance_info(k_used),
        "warnings": list(warnings),
    }

    try:
        assert_no_person_fields(payload)
    except HrComplianceError as exc:
        raise HrInternalError(f"Assembled overview leaks person-level data: {exc.message}") from exc

    try:
        return HrOverviewResponse.model_validate(payload)
    except ValidationError as exc:
        raise HrInternalError(f"Assembled overview failed schema validation: {exc}") from exc


def compute_hr_overview(
    practice_id: str,
    query: OverviewQuery,
    dataset: PracticeDataset,
    now: Optional[datetime] = None,
    thresholds: HrThresholds = DEFAULT_HR_THRESHOLDS,
    gate_policy: str = hr_config.HR_GATE_POLICY,
) -> HrOverviewResponse:
    """Run the full pipeline for one practice and one validated query."""
    now = now or datetime.now(timezone.utc)
    period = query.period
    warnings = list(query.warnings)

    if not dataset.staff:
        warnings.append(NO_STAFF_WARNING)

    practice_aggs = build_group_aggregates(dataset, AggregationLevel.PRACTICE, period)
    practice_agg = practice_aggs[0] if practice_aggs else None
    role_aggs = []
    if query.requested_level == AggregationLevel.ROLE:
        role_aggs = build_group_aggregates(dataset, AggregationLevel.ROLE, period)

    gate = apply_gate(
        query.requested_level,
        query.k_min,
        practice_agg,
        role_aggs,
        policy=gate_policy,
    )
    warnings.extend(gate.warnings)

    snapshots: list[KpiSnapshot] = []
    alerts: dict[str, list[Alert]] = {}
    if gate.released:
        practice_target = resolve_practice_target_fte(
            dataset.practice.target_fte, practice_agg.total_fte
        )
        for agg in gate.released:
            if gate.aggregation_level == AggregationLevel.PRACTICE:
                target = practice_target
            else:
                target = role_target_fte(practice_target, agg.size, practice_agg.size)
            metrics = compute_metrics(
                agg, period, target,
                monthly_revenue=dataset.practice.monthly_revenue,
                thresholds=thresholds,
            )
            snapshot = KpiSnapshot(
                id=str(uuid.uuid4()),
                practice_id=practice_id,
                period=period,
                aggregation_level=gate.aggregation_level,
                group_key=agg.group_key,
                group_size=agg.size,
                metrics=metrics,
                audit=stamp_audit(gate.aggregation_level, gate.k_used, now),
            )
            snapshots.append(snapshot)
            alerts[snapshot.id] = generate_alerts(snapshot, thresholds)

    response = assemble_overview(
        timestamp=now,
        query=query,
        aggregation_level=gate.aggregation_level,
        k_used=gate.k_used,
        snapshots=snapshots,
        alerts=alerts,
        warnings=warnings,
    )
    logger.info(
        "hr overview computed",
        extra={
            "practice_id": practice_id,
            "aggregation_level": gate.aggregation_level.value,
            "k_used": gate.k_used,
            "snapshot_count": len(snapshots),
        },
    )
    return response
