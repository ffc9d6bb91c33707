"""
HR KPI Calculator

Pure functions from one released cohort aggregate to its KpiMetrics.

  fteQuote             = currentFte / targetFte          (0 when targetFte <= 0)
  fteDelta             = currentFte - targetFte          (negative = understaffed)
  absenceRatePercent   = absence workdays / (headcount × workdays in period) × 100
  overtimeRatePercent  = overtime minutes / contracted minutes in period × 100
  laborCostRatioPercent= monthly personnel cost / monthly revenue × 100
                         (PRACTICE level only, None when cost or revenue is missing)

Rates are clamped to [0, 100] and rounded to one decimal; fteQuote to three.
The overall status is the worst status across all metrics, evaluated with
the same breach rules the alert generator uses.
"""
from __future__ import annotations

import logging
import math
from dataclasses import replace
from typing import Optional

from app.services import hr_config
from app.services.hr_config import DEFAULT_HR_THRESHOLDS, HrThresholds
from app.services.hr_errors import HrInternalError
from app.services.hr_types import (
    STATUS_RANK,
    AggregationLevel,
    GroupAggregate,
    KpiMetrics,
    OverallStatus,
    Period,
)

logger = logging.getLogger("praxisflow-hr")

# Metric name → (direction, warn threshold attr, critical threshold attr)
# "low": breach when value < threshold; "high": breach when value >= threshold
METRIC_RULES: dict[str, tuple[str, str, str]] = {
    "fteQuote":              ("low",  "fte_quote_warn",          "fte_quote_critical"),
    "overtimeRatePercent":   ("high", "overtime_warn_percent",   "overtime_critical_percent"),
    "absenceRatePercent":    ("high", "absence_warn_percent",    "absence_critical_percent"),
    "laborCostRatioPercent": ("high", "labor_cost_warn_percent", "labor_cost_critical_percent"),
}


# ── Basic calculators ─────────────────────────────────────────────────────────

def _finite(value: float, name: str) -> float:
    if value is None or not math.isfinite(value):
        raise HrInternalError(f"{name} is not a finite number: {value!r}")
    return value


def _percent(numerator: float, denominator: float) -> float:
    if denominator <= 0:
        return 0.0
    pct = _finite(numerator / denominator * 100, "percentage")
    return round(min(max(pct, 0.0), 100.0), 1)


def workdays_in_period(period: Period, workdays_per_week: float = hr_config.HR_WORKDAYS_PER_WEEK) -> int:
    return round(period.weeks * workdays_per_week)


def contract_minutes_in_period(weekly_hours: float, period: Period) -> float:
    return weekly_hours * 60 * period.weeks


def calculate_fte_quote(current_fte: float, target_fte: float) -> float:
    if target_fte <= 0:
        return 0.0
    return round(_finite(current_fte / target_fte, "fteQuote"), 3)


def calculate_absence_rate(absence_days: float, headcount: int, workdays: int) -> float:
    return _percent(absence_days, headcount * workdays)


def calculate_overtime_rate(overtime_minutes: float, contract_minutes: float) -> float:
    return _percent(overtime_minutes, contract_minutes)


def calculate_labor_cost_ratio(
    monthly_labor_cost: Optional[float],
    monthly_revenue: Optional[float],
) -> Optional[float]:
    if monthly_labor_cost is None or monthly_revenue is None or monthly_revenue <= 0:
        return None
    ratio = _finite(monthly_labor_cost / monthly_revenue * 100, "laborCostRatioPercent")
    return round(max(ratio, 0.0), 1)


# ── Target FTE ────────────────────────────────────────────────────────────────

def resolve_practice_target_fte(configured: Optional[float], current_total_fte: float) -> float:
    """Practice target from its record, else max(current × 0.9, 3)."""
    if configured is not None and configured > 0:
        return float(configured)
    return max(current_total_fte * hr_config.TARGET_FTE_FALLBACK_FACTOR,
               hr_config.TARGET_FTE_FALLBACK_MIN)


def role_target_fte(practice_target: float, role_headcount: int, practice_headcount: int) -> float:
    """Share of the practice target proportional to the role's headcount."""
    if practice_headcount <= 0:
        return 0.0
    return practice_target * role_headcount / practice_headcount


# ── Status classification ─────────────────────────────────────────────────────

def evaluate_metric(
    metric: str,
    value: Optional[float],
    thresholds: HrThresholds = DEFAULT_HR_THRESHOLDS,
) -> tuple[OverallStatus, Optional[float]]:
    """
    Classify one metric value.

    Returns (status, breached threshold). The threshold is None when the
    metric is within range or the value is None (labor cost unavailable).
    """
    if value is None:
        return OverallStatus.OK, None
    direction, warn_attr, crit_attr = METRIC_RULES[metric]
    warn = getattr(thresholds, warn_attr)
    crit = getattr(thresholds, crit_attr)
    if direction == "low":
        if value < crit:
            return OverallStatus.CRITICAL, crit
        if value < warn:
            return OverallStatus.WARNING, warn
    else:
        if value >= crit:
            return OverallStatus.CRITICAL, crit
        if value >= warn:
            return OverallStatus.WARNING, warn
    return OverallStatus.OK, None


def monitored_values(metrics: KpiMetrics) -> dict[str, Optional[float]]:
    """Metric values subject to thresholds. fteQuote is undefined without a target."""
    return {
        "fteQuote": metrics.fte_quote if metrics.target_fte > 0 else None,
        "overtimeRatePercent": metrics.overtime_rate_percent,
        "absenceRatePercent": metrics.absence_rate_percent,
        "laborCostRatioPercent": metrics.labor_cost_ratio_percent,
    }


def determine_overall_status(
    values: dict[str, Optional[float]],
    thresholds: HrThresholds = DEFAULT_HR_THRESHOLDS,
) -> OverallStatus:
    """Worst status across all monitored metrics (critical > warning > ok)."""
    worst = OverallStatus.OK
    for metric in METRIC_RULES:
        status, _ = evaluate_metric(metric, values.get(metric), thresholds)
        if STATUS_RANK[status] > STATUS_RANK[worst]:
            worst = status
    return worst


# ── Cohort metrics ────────────────────────────────────────────────────────────

def compute_metrics(
    aggregate: GroupAggregate,
    period: Period,
    target_fte: float,
    monthly_revenue: Optional[float] = None,
    thresholds: HrThresholds = DEFAULT_HR_THRESHOLDS,
) -> KpiMetrics:
    current = round(aggregate.total_fte, 2)
    target = round(max(target_fte, 0.0), 2)

    fte_quote = calculate_fte_quote(current, target)
    absence = calculate_absence_rate(
        aggregate.absence_days.total,
        aggregate.size,
        workdays_in_period(period),
    )
    overtime = calculate_overtime_rate(
        aggregate.total_overtime_minutes,
        contract_minutes_in_period(aggregate.total_weekly_hours, period),
    )
    labor_cost = None
    if aggregate.aggregation_level == AggregationLevel.PRACTICE:
        labor_cost = calculate_labor_cost_ratio(aggregate.monthly_labor_cost, monthly_revenue)

    metrics = KpiMetrics(
        fte_quote=fte_quote,
        current_fte=current,
        target_fte=target,
        fte_delta=round(current - target, 2),
        absence_rate_percent=absence,
        overtime_rate_percent=overtime,
        labor_cost_ratio_percent=labor_cost,
        overall_status=OverallStatus.OK,
    )
    status = determine_overall_status(monitored_values(metrics), thresholds)
    return replace(metrics, overall_status=status)
