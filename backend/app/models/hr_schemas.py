"""
Wire contract for the HR endpoints.

Field names are snake_case in Python and camelCase on the wire
(alias generator). Every model forbids unknown fields, so a person-level
attribute can never ride along in a payload that passes validation.

Usage:
    resp = HrOverviewResponse.model_validate(payload)
    body = resp.model_dump(mode="json", by_alias=True)
"""
from __future__ import annotations

from datetime import date, datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )


# ── Overview ──────────────────────────────────────────────────────────────────

class KpiMetricsSchema(CamelModel):
    fte_quote: float = Field(..., ge=0)
    current_fte: float = Field(..., ge=0)
    target_fte: float = Field(..., ge=0)
    fte_delta: float
    absence_rate_percent: float = Field(..., ge=0, le=100)
    overtime_rate_percent: float = Field(..., ge=0, le=100)
    # Required but nullable: null means "no cost data", distinct from 0
    labor_cost_ratio_percent: Optional[float] = Field(..., ge=0)
    overall_status: Literal["ok", "warning", "critical"]


class AuditSchema(CamelModel):
    aggregation_level: Literal["PRACTICE", "ROLE"]
    k_used: int = Field(..., ge=3)
    legal_basis: str = Field(..., min_length=1)
    created_at: datetime
    compliance_version: str = Field(..., min_length=1)


class KpiSnapshotSchema(CamelModel):
    id: str = Field(..., min_length=1)
    practice_id: str = Field(..., min_length=1)
    period_start: date
    period_end: date
    aggregation_level: Literal["PRACTICE", "ROLE"]
    group_key: str = Field(..., min_length=1)
    group_size: int = Field(..., ge=3)
    metrics: KpiMetricsSchema
    audit: AuditSchema

    @model_validator(mode="after")
    def _check_audit(self):
        if self.group_size < self.audit.k_used:
            raise ValueError(f"groupSize {self.group_size} below kUsed {self.audit.k_used}")
        if self.audit.aggregation_level != self.aggregation_level:
            raise ValueError("audit.aggregationLevel does not match snapshot aggregationLevel")
        if self.period_start > self.period_end:
            raise ValueError("periodStart after periodEnd")
        return self


class AlertSchema(CamelModel):
    code: str = Field(..., min_length=1)
    severity: Literal["info", "warn", "critical"]
    title: str = Field(..., min_length=1)
    explanation: str = Field(..., min_length=1)
    recommended_actions: List[str] = Field(..., min_length=1)
    metric: str
    current_value: float
    threshold_value: float
    aggregation_level: Literal["PRACTICE", "ROLE"]
    group_key: str


class SnapshotAlertsSchema(CamelModel):
    snapshot_id: str
    group_key: str
    aggregation_level: Literal["PRACTICE", "ROLE"]
    alerts: List[AlertSchema]


class ComplianceSchema(CamelModel):
    version: str
    k_min: int = Field(..., ge=3)
    legal_basis: str


class HrOverviewResponse(CamelModel):
    timestamp: datetime
    period_start: date
    period_end: date
    requested_level: Literal["practice", "role"]
    aggregation_level: Literal["practice", "role"]
    snapshots: List[KpiSnapshotSchema]
    alerts_by_snapshot: List[SnapshotAlertsSchema]
    compliance: ComplianceSchema
    warnings: List[str]

    @model_validator(mode="after")
    def _check_consistency(self):
        level = self.aggregation_level.upper()
        for snap in self.snapshots:
            if snap.aggregation_level != level:
                raise ValueError(f"snapshot {snap.id} level {snap.aggregation_level} != {level}")
            if snap.audit.k_used != self.compliance.k_min:
                raise ValueError(f"snapshot {snap.id} kUsed differs from compliance.kMin")
        ids = {s.id for s in self.snapshots}
        for entry in self.alerts_by_snapshot:
            if entry.snapshot_id not in ids:
                raise ValueError(f"alerts reference unknown snapshot {entry.snapshot_id}")
            if entry.aggregation_level != level:
                raise ValueError(f"alerts for snapshot {entry.snapshot_id} carry level {entry.aggregation_level}")
        if self.requested_level != self.aggregation_level and not self.warnings:
            raise ValueError("level fallback without a warning")
        return self


# ── Staffing demand ───────────────────────────────────────────────────────────

class StaffingDemandRequest(CamelModel):
    """POST body: StaffingInput plus optional current FTE per role."""
    patient_volume: float
    operating_hours: float
    avg_service_minutes: dict[str, float]
    utilization_factor: float = 0.8
    avg_contract_fraction: float = 0.8
    current: Optional[dict[str, float]] = None


class StaffingInputSchema(CamelModel):
    patient_volume: float
    operating_hours: float
    avg_service_minutes: dict[str, float]
    utilization_factor: float
    avg_contract_fraction: float


class StaffingFlagSchema(CamelModel):
    id: str
    severity: Literal["red", "yellow", "green"]
    role: str
    message: str


class StaffingResultSchema(CamelModel):
    target_fte: dict[str, float]
    total_target_fte: float
    gaps: Optional[dict[str, float]]
    coverage: Optional[dict[str, float]]
    coverage_score: Optional[float]
    flags: List[StaffingFlagSchema]
    headcount_hint: dict[str, int]
    engine_version: str
    timestamp: datetime


class StaffingDemandResponse(CamelModel):
    timestamp: datetime
    engine_version: str
    input: StaffingInputSchema
    current: Optional[dict[str, float]] = None
    result: StaffingResultSchema
