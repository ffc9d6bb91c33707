"""
HR value types shared by the aggregation pipeline.

All types are immutable. Staff identifiers exist only on the raw records
at the bottom of this module and are dropped by the cohort builder; no
aggregate, snapshot or alert has a field that could hold one. Nothing here
is persisted: snapshots and alerts are recomputed for every request.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Optional

from app.services.hr_errors import HrInternalError, HrValidationError


class AggregationLevel(str, Enum):
    PRACTICE = "PRACTICE"
    ROLE = "ROLE"

    @property
    def query_value(self) -> str:
        """Lowercase spelling used in query strings and response headers."""
        return self.value.lower()

    @classmethod
    def from_query(cls, raw: str) -> "AggregationLevel":
        try:
            return cls(raw.strip().upper())
        except ValueError:
            raise HrValidationError(
                f"Invalid level '{raw}'. Expected 'practice' or 'role'."
            ) from None


class OverallStatus(str, Enum):
    OK = "ok"
    WARNING = "warning"
    CRITICAL = "critical"


STATUS_RANK: dict[OverallStatus, int] = {
    OverallStatus.OK: 0,
    OverallStatus.WARNING: 1,
    OverallStatus.CRITICAL: 2,
}


class AlertSeverity(str, Enum):
    INFO = "info"
    WARN = "warn"
    CRITICAL = "critical"


SEVERITY_RANK: dict[AlertSeverity, int] = {
    AlertSeverity.INFO: 0,
    AlertSeverity.WARN: 1,
    AlertSeverity.CRITICAL: 2,
}


# ── Period ────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Period:
    """Calendar-day reporting window, ``end`` inclusive.

    Equivalent to the half-open instant interval [start 00:00, end+1 00:00).
    """
    start: date
    end: date

    def __post_init__(self):
        if self.start > self.end:
            raise HrValidationError(
                f"periodStart ({self.start.isoformat()}) must not be after "
                f"periodEnd ({self.end.isoformat()})"
            )

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1

    @property
    def weeks(self) -> float:
        return self.days / 7

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end


# ── Aggregates (pre-gate, never serialized) ───────────────────────────────────

@dataclass(frozen=True)
class AbsenceBreakdown:
    sick: float = 0.0
    vacation: float = 0.0
    training: float = 0.0
    other: float = 0.0

    @property
    def total(self) -> float:
        return self.sick + self.vacation + self.training + self.other


@dataclass(frozen=True)
class GroupAggregate:
    """Summed raw figures for one cohort. ``size`` is the staff headcount."""
    group_key: str
    aggregation_level: AggregationLevel
    size: int
    total_fte: float
    total_weekly_hours: float
    total_overtime_minutes: float
    absence_days: AbsenceBreakdown = field(default_factory=AbsenceBreakdown)
    monthly_labor_cost: Optional[float] = None


# ── KPI snapshot ──────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class KpiMetrics:
    fte_quote: float
    current_fte: float
    target_fte: float
    fte_delta: float
    absence_rate_percent: float
    overtime_rate_percent: float
    labor_cost_ratio_percent: Optional[float]
    overall_status: OverallStatus

    def __post_init__(self):
        for name in (
            "fte_quote", "current_fte", "target_fte", "fte_delta",
            "absence_rate_percent", "overtime_rate_percent",
            "labor_cost_ratio_percent",
        ):
            value = getattr(self, name)
            if value is None and name == "labor_cost_ratio_percent":
                continue
            if value is None or not math.isfinite(value):
                raise HrInternalError(f"Metric {name} is not a finite number: {value!r}")

    def to_dict(self) -> dict:
        return {
            "fteQuote": self.fte_quote,
            "currentFte": self.current_fte,
            "targetFte": self.target_fte,
            "fteDelta": self.fte_delta,
            "absenceRatePercent": self.absence_rate_percent,
            "overtimeRatePercent": self.overtime_rate_percent,
            "laborCostRatioPercent": self.labor_cost_ratio_percent,
            "overallStatus": self.overall_status.value,
        }


@dataclass(frozen=True)
class Audit:
    aggregation_level: AggregationLevel
    k_used: int
    legal_basis: str
    created_at: datetime
    compliance_version: str

    def to_dict(self) -> dict:
        return {
            "aggregationLevel": self.aggregation_level.value,
            "kUsed": self.k_used,
            "legalBasis": self.legal_basis,
            "createdAt": self.created_at.isoformat(),
            "complianceVersion": self.compliance_version,
        }


@dataclass(frozen=True)
class KpiSnapshot:
    id: str
    practice_id: str
    period: Period
    aggregation_level: AggregationLevel
    group_key: str
    group_size: int
    metrics: KpiMetrics
    audit: Audit

    def __post_init__(self):
        if not isinstance(self.audit, Audit):
            raise HrInternalError("KpiSnapshot requires audit metadata")
        if self.audit.aggregation_level != self.aggregation_level:
            raise HrInternalError(
                f"Audit level {self.audit.aggregation_level.value} does not match "
                f"snapshot level {self.aggregation_level.value}"
            )
        if self.group_size < self.audit.k_used:
            raise HrInternalError(
                f"Snapshot '{self.group_key}' has groupSize {self.group_size} "
                f"below kUsed {self.audit.k_used}"
            )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "practiceId": self.practice_id,
            "periodStart": self.period.start.isoformat(),
            "periodEnd": self.period.end.isoformat(),
            "aggregationLevel": self.aggregation_level.value,
            "groupKey": self.group_key,
            "groupSize": self.group_size,
            "metrics": self.metrics.to_dict(),
            "audit": self.audit.to_dict(),
        }


@dataclass(frozen=True)
class Alert:
    code: str
    severity: AlertSeverity
    title: str
    explanation: str
    recommended_actions: tuple[str, ...]
    metric: str
    current_value: float
    threshold_value: float
    aggregation_level: AggregationLevel
    group_key: str

    def __post_init__(self):
        if not self.recommended_actions:
            raise HrInternalError(f"Alert {self.code} has no recommended actions")

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "severity": self.severity.value,
            "title": self.title,
            "explanation": self.explanation,
            "recommendedActions": list(self.recommended_actions),
            "metric": self.metric,
            "currentValue": self.current_value,
            "thresholdValue": self.threshold_value,
            "aggregationLevel": self.aggregation_level.value,
            "groupKey": self.group_key,
        }


# ── Staffing demand ───────────────────────────────────────────────────────────

@dataclass(frozen=True)
class StaffingInput:
    patient_volume: float
    operating_hours: float
    avg_service_minutes: dict[str, float]
    utilization_factor: float = 0.8
    avg_contract_fraction: float = 0.8

    def to_dict(self) -> dict:
        return {
            "patientVolume": self.patient_volume,
            "operatingHours": self.operating_hours,
            "avgServiceMinutes": dict(self.avg_service_minutes),
            "utilizationFactor": self.utilization_factor,
            "avgContractFraction": self.avg_contract_fraction,
        }


@dataclass(frozen=True)
class StaffingFlag:
    id: str
    severity: str   # red | yellow | green
    role: str
    message: str

    def to_dict(self) -> dict:
        return {"id": self.id, "severity": self.severity, "role": self.role, "message": self.message}


@dataclass(frozen=True)
class StaffingResult:
    target_fte: dict[str, float]
    total_target_fte: float
    headcount_hint: dict[str, int]
    engine_version: str
    timestamp: datetime
    gaps: Optional[dict[str, float]] = None
    coverage: Optional[dict[str, float]] = None
    coverage_score: Optional[float] = None
    flags: tuple[StaffingFlag, ...] = ()

    def to_dict(self) -> dict:
        return {
            "targetFte": dict(self.target_fte),
            "totalTargetFte": self.total_target_fte,
            "gaps": dict(self.gaps) if self.gaps is not None else None,
            "coverage": dict(self.coverage) if self.coverage is not None else None,
            "coverageScore": self.coverage_score,
            "flags": [f.to_dict() for f in self.flags],
            "headcountHint": dict(self.headcount_hint),
            "engineVersion": self.engine_version,
            "timestamp": self.timestamp.isoformat(),
        }


# ── Raw records (data-access boundary, never serialized) ─────────────────────

@dataclass(frozen=True)
class PracticeRecord:
    id: str
    owner_id: str
    name: str = ""
    target_fte: Optional[float] = None
    monthly_revenue: Optional[float] = None
    operating_hours_per_day: Optional[float] = None


@dataclass(frozen=True)
class StaffRecord:
    staff_id: str
    role: str
    fte: Optional[float] = None
    weekly_hours: Optional[float] = None
    hourly_cost: Optional[float] = None


@dataclass(frozen=True)
class AbsenceRecord:
    staff_id: str
    absence_type: str
    start_date: date
    end_date: date


@dataclass(frozen=True)
class OvertimeRecord:
    staff_id: str
    work_date: date
    minutes: float


@dataclass(frozen=True)
class RoomRecord:
    room_type: str


@dataclass(frozen=True)
class VisitDayRecord:
    visit_date: date
    patient_count: int


@dataclass(frozen=True)
class PracticeDataset:
    """Everything the HR pipeline reads for one practice, fetched in one call."""
    practice: PracticeRecord
    staff: tuple[StaffRecord, ...] = ()
    absences: tuple[AbsenceRecord, ...] = ()
    overtime: tuple[OvertimeRecord, ...] = ()
    rooms: tuple[RoomRecord, ...] = ()
    visit_days: tuple[VisitDayRecord, ...] = ()
