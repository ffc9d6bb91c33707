"""
HR Alert Generator

Turns one KpiSnapshot into an ordered list of person-free alerts.

Rules:
  - Metrics are visited in a fixed priority order (ALERT_METRIC_ORDER),
    never in discovery order, so the same snapshot always yields the same
    alert sequence.
  - Per metric at most one alert: a critical breach wins over a warning.
  - Breach semantics are shared with the KPI calculator
    (hr_kpi_engine.evaluate_metric), so alert severities agree with the
    snapshot's overallStatus.
  - An fteQuote above the overstaffing limit adds an informational alert.

All texts describe work organisation, never individuals, and are checked
with anonymity_engine.assert_text_compliance before release.
"""
from __future__ import annotations

import logging
from typing import Optional

from app.services.anonymity_engine import assert_text_compliance
from app.services.hr_config import DEFAULT_HR_THRESHOLDS, HrThresholds
from app.services.hr_kpi_engine import evaluate_metric, monitored_values
from app.services.hr_types import (
    SEVERITY_RANK,
    Alert,
    AlertSeverity,
    KpiSnapshot,
    OverallStatus,
)

logger = logging.getLogger("praxisflow-hr")

# KPI field → alert metric name, in alert priority order
ALERT_METRIC_ORDER: tuple[tuple[str, str], ...] = (
    ("fteQuote", "fteQuote"),
    ("overtimeRatePercent", "overtimeRate"),
    ("absenceRatePercent", "absenceRate"),
    ("laborCostRatioPercent", "laborCostRatio"),
)


# ── Alert catalogue ───────────────────────────────────────────────────────────
# Texts use str.format placeholders: {value} (display value), {group} (cohort label)

ALERT_CATALOGUE: dict[str, dict] = {
    "fteQuote": {
        "code": "UNDERSTAFFING",
        "critical": {
            "title": "Critical capacity gap",
            "explanation": (
                "Available staffing capacity in {group} is {value}% of the target. "
                "A deficit of this size requires immediate organisational measures "
                "to keep the practice running."
            ),
            "actions": (
                "Review capacity planning and update the target staffing level",
                "Open vacancies for the most affected functional areas",
                "Evaluate temporary support from external service providers",
                "Temporarily align appointment volume with available capacity",
                "Evaluate process optimisation to raise efficiency",
            ),
        },
        "warn": {
            "title": "Capacity gap detected",
            "explanation": (
                "With a staffing level of {value}% in {group} there is a moderate deficit. "
                "Unplanned absences could lead to bottlenecks."
            ),
            "actions": (
                "Review staffing plans against medium-term demand",
                "Evaluate increasing contracted hours of part-time positions",
                "Update cover arrangements",
                "Check shift planning for optimal coverage",
            ),
        },
    },
    "overtimeRatePercent": {
        "code": "OVERTIME_ELEVATED",
        "critical": {
            "title": "Systemic overload detected",
            "explanation": (
                "An overtime rate of {value}% in {group} points to structural capacity "
                "bottlenecks. Sustained additional work endangers operational stability."
            ),
            "actions": (
                "Analyse working time to locate process bottlenecks",
                "Extend capacity through new hires or service providers",
                "Reduce non-value-adding tasks through process optimisation",
                "Adjust scheduling to include buffer times",
                "Enable timely time-off in lieu (ArbZG compliance)",
            ),
        },
        "warn": {
            "title": "Overtime above normal level",
            "explanation": (
                "The aggregated overtime rate of {value}% in {group} shows increased "
                "workload. Acceptable short term, but should not become the norm."
            ),
            "actions": (
                "Document overtime causes (seasonal vs. structural)",
                "Plan timely time-off in lieu",
                "Optimise task distribution and shift staffing",
                "Check scheduling for load peaks",
            ),
        },
    },
    "absenceRatePercent": {
        "code": "ABSENCE_ELEVATED",
        "critical": {
            "title": "Critically elevated absence rate",
            "explanation": (
                "With an absence rate of {value}% in {group}, a significant share of "
                "planned working time is lost. Organisational measures are required."
            ),
            "actions": (
                "Analyse the distribution of absence reasons",
                "Evaluate a cover pool or floater concept",
                "Coordinate holiday planning to avoid bottlenecks",
                "Strengthen preventive workplace health management",
                "Review work organisation for load-reducing design",
            ),
        },
        "warn": {
            "title": "Elevated absence rate",
            "explanation": (
                "The absence rate of {value}% in {group} is above the sector average. "
                "Early measures can prevent escalation."
            ),
            "actions": (
                "Analyse absence patterns by weekday and period",
                "Coordinate holiday planning more closely",
                "Evaluate preventive health offerings",
                "Consider flexible working-time models",
            ),
        },
    },
    "laborCostRatioPercent": {
        "code": "LABOR_COST_ELEVATED",
        "critical": {
            "title": "Personnel cost ratio critical",
            "explanation": (
                "Personnel costs amount to {value}% of monthly revenue in {group}. "
                "At this level practice profitability is at risk."
            ),
            "actions": (
                "Review the staffing mix against treatment volume",
                "Check appointment utilisation and billing completeness",
                "Plan a revenue and cost review with the tax advisor",
            ),
        },
        "warn": {
            "title": "Personnel cost ratio elevated",
            "explanation": (
                "Personnel costs amount to {value}% of monthly revenue in {group}, "
                "above the recommended range."
            ),
            "actions": (
                "Monitor the cost ratio over the next reporting periods",
                "Check appointment utilisation and idle times",
            ),
        },
    },
}

OVERSTAFFING_ALERT = {
    "code": "OVERSTAFFING",
    "title": "Capacity above target",
    "explanation": (
        "Available staffing capacity in {group} is {value}% of the target. "
        "Reserve capacity can be used for growth or training."
    ),
    "actions": (
        "Review the target staffing level against current demand",
        "Use reserve capacity for training or additional appointment slots",
    ),
}


def _group_label(snapshot: KpiSnapshot) -> str:
    if snapshot.group_key == "practice":
        return "the practice"
    return f"the {snapshot.group_key} group"


def _display_value(kpi_field: str, value: float) -> str:
    if kpi_field == "fteQuote":
        return f"{value * 100:.0f}"
    return f"{value:.1f}"


def _build_alert(
    snapshot: KpiSnapshot,
    code: str,
    severity: AlertSeverity,
    texts: dict,
    metric: str,
    kpi_field: str,
    value: float,
    threshold: float,
) -> Alert:
    fmt = {"value": _display_value(kpi_field, value), "group": _group_label(snapshot)}
    title = texts["title"]
    explanation = texts["explanation"].format(**fmt)
    actions = tuple(texts["actions"])
    for text in (title, explanation, *actions):
        assert_text_compliance(text)
    return Alert(
        code=code,
        severity=severity,
        title=title,
        explanation=explanation,
        recommended_actions=actions,
        metric=metric,
        current_value=value,
        threshold_value=threshold,
        aggregation_level=snapshot.aggregation_level,
        group_key=snapshot.group_key,
    )


def generate_alerts(
    snapshot: KpiSnapshot,
    thresholds: HrThresholds = DEFAULT_HR_THRESHOLDS,
) -> list[Alert]:
    """Evaluate one snapshot. Returns alerts in ALERT_METRIC_ORDER (possibly empty)."""
    values = monitored_values(snapshot.metrics)
    alerts: list[Alert] = []

    for kpi_field, metric in ALERT_METRIC_ORDER:
        value = values[kpi_field]
        status, threshold = evaluate_metric(kpi_field, value, thresholds)
        entry = ALERT_CATALOGUE[kpi_field]
        if status == OverallStatus.CRITICAL:
            alerts.append(_build_alert(
                snapshot, entry["code"], AlertSeverity.CRITICAL, entry["critical"],
                metric, kpi_field, value, threshold,
            ))
        elif status == OverallStatus.WARNING:
            alerts.append(_build_alert(
                snapshot, entry["code"], AlertSeverity.WARN, entry["warn"],
                metric, kpi_field, value, threshold,
            ))
        elif (kpi_field == "fteQuote" and value is not None
              and value > thresholds.fte_quote_overstaffed):
            alerts.append(_build_alert(
                snapshot, OVERSTAFFING_ALERT["code"], AlertSeverity.INFO, OVERSTAFFING_ALERT,
                metric, kpi_field, value, thresholds.fte_quote_overstaffed,
            ))

    return alerts


def has_critical_alerts(alerts: list[Alert]) -> bool:
    return any(a.severity == AlertSeverity.CRITICAL for a in alerts)


def highest_severity(alerts: list[Alert]) -> Optional[AlertSeverity]:
    if not alerts:
        return None
    return max((a.severity for a in alerts), key=lambda s: SEVERITY_RANK[s])
