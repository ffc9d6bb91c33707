"""
HR analytics configuration — single source of truth for anonymity limits,
KPI thresholds, compliance metadata and staffing defaults.

Import from here in all HR services rather than hardcoding values.
Deployment-specific values are read from the environment once at import.
"""
from __future__ import annotations

import os
from dataclasses import dataclass


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "")
    return int(raw) if raw.strip() else default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "")
    return float(raw) if raw.strip() else default


# ── k-anonymity ────────────────────────────────────────────────────────────────

# Hard floor: requests with kMin below this are rejected outright.
K_ABSOLUTE_MIN: int = 3

# Below this a request is accepted but flagged with a warning.
HR_RECOMMENDED_K_MIN: int = max(_env_int("HR_RECOMMENDED_K_MIN", 5), K_ABSOLUTE_MIN)

HR_DEFAULT_K_MIN: int = max(_env_int("HR_DEFAULT_K_MIN", 3), K_ABSOLUTE_MIN)

# "merge": any small role cohort folds the whole release into the practice aggregate.
# "drop":  small role cohorts are withheld, the rest are released per role.
GATE_POLICIES: tuple[str, ...] = ("merge", "drop")
HR_GATE_POLICY: str = os.getenv("HR_GATE_POLICY", "merge").strip().lower()
if HR_GATE_POLICY not in GATE_POLICIES:
    raise RuntimeError(
        f"HR_GATE_POLICY must be one of {GATE_POLICIES}, got {HR_GATE_POLICY!r}"
    )


# ── Reporting period ───────────────────────────────────────────────────────────

HR_DEFAULT_PERIOD_DAYS: int = _env_int("HR_DEFAULT_PERIOD_DAYS", 30)
HR_WORKDAYS_PER_WEEK: float = _env_float("HR_WORKDAYS_PER_WEEK", 5.0)


# ── Compliance metadata (static per deployment) ────────────────────────────────

HR_COMPLIANCE_VERSION: str = os.getenv("HR_COMPLIANCE_VERSION", "1.0.0")
HR_LEGAL_BASIS: str = os.getenv(
    "HR_LEGAL_BASIS",
    "Art. 6 Abs. 1 lit. f DSGVO (berechtigtes Interesse an der Praxisorganisation); "
    "Art. 5 Abs. 1 lit. c DSGVO (Datenminimierung); "
    "ArbSchG §5 (Gefährdungsbeurteilung)",
)


# ── Staff record defaults ──────────────────────────────────────────────────────

DEFAULT_STAFF_FTE: float = 1.0
DEFAULT_WEEKLY_HOURS: float = 40.0

# Practice target FTE when the practice record carries none: max(current × 0.9, 3)
TARGET_FTE_FALLBACK_FACTOR: float = 0.9
TARGET_FTE_FALLBACK_MIN: float = 3.0

# Applied when a staff member has no hourly cost on file but others do.
DEFAULT_HOURLY_COST_EUR: float = _env_float("HR_DEFAULT_HOURLY_COST_EUR", 30.0)
WEEKS_PER_MONTH: float = 52 / 12


# ── KPI thresholds ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class HrThresholds:
    """Warning / critical limits per monitored metric.

    fteQuote is lower-is-worse, every other metric is higher-is-worse.
    """
    fte_quote_warn: float = 0.95
    fte_quote_critical: float = 0.80
    fte_quote_overstaffed: float = 1.15
    absence_warn_percent: float = 5.0
    absence_critical_percent: float = 10.0
    overtime_warn_percent: float = 10.0
    overtime_critical_percent: float = 20.0
    labor_cost_warn_percent: float = 35.0
    labor_cost_critical_percent: float = 45.0


DEFAULT_HR_THRESHOLDS = HrThresholds()


# ── Staffing demand ────────────────────────────────────────────────────────────

STAFFING_ENGINE_VERSION: str = "2.0.0"

DEFAULT_UTILIZATION_FACTOR: float = 0.8
DEFAULT_AVG_CONTRACT_FRACTION: float = 0.8
DEFAULT_OPERATING_HOURS: float = 8.0

# Patients per treatment room per day when no visit history exists
DEFAULT_PATIENTS_PER_ROOM: float = 18.0

# Minutes of each role's time consumed per patient visit
DEFAULT_SERVICE_MINUTES: dict[str, float] = {
    "doctor":         20.0,
    "assistant":      25.0,
    "hygienist":      10.0,   # Only applied when a prophylaxis room exists
    "reception":       6.0,
    "administration":  4.0,
}

# Coverage traffic light (current / target)
COVERAGE_RED_BELOW: float = 0.80
COVERAGE_YELLOW_BELOW: float = 0.95
COVERAGE_OVERSTAFFED_ABOVE: float = 1.20

# Visit history window for the automatic entry point
STAFFING_VISIT_LOOKBACK_DAYS: int = 28
