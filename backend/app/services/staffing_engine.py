"""
Staffing-Demand Engine — deterministic target FTE per role.

    targetFte[role] = patientVolume × avgServiceMinutes[role]
                      ─────────────────────────────────────────
                      operatingHours × 60 × utilizationFactor

rounded to two decimals. With current FTE supplied, each role also gets a
gap (current − target), a coverage ratio and a traffic-light flag, and the
result carries an overall coverage score.

Two entry points:
  compute_staffing        manual / what-if, caller-supplied StaffingInput
  derive_staffing_input   automatic, from the practice's visit history,
                          rooms and staff records

Every result is stamped with STAFFING_ENGINE_VERSION and a timestamp so a
recommendation stays attributable to the formula that produced it.
"""
from __future__ import annotations

import logging
import math
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from app.services import hr_config
from app.services.hr_errors import HrValidationError
from app.services.hr_types import PracticeDataset, StaffingFlag, StaffingInput, StaffingResult
from app.services.role_types import (
    STAFFING_ROLES,
    TREATMENT_ROOM_TYPES,
    is_known_room_type,
    is_staffing_role,
    normalize_role,
    normalize_room_type,
)

logger = logging.getLogger("praxisflow-staffing")


# ── Validation ────────────────────────────────────────────────────────────────

def _require_finite(value: float, name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise HrValidationError(f"{name} must be a finite number")
    return float(value)


def validate_staffing_input(
    staffing_input: StaffingInput,
    current: Optional[dict[str, float]] = None,
) -> None:
    """Raise HrValidationError for negative volume, non-positive hours or unknown roles."""
    volume = _require_finite(staffing_input.patient_volume, "patientVolume")
    if volume < 0:
        raise HrValidationError("patientVolume must be >= 0")

    hours = _require_finite(staffing_input.operating_hours, "operatingHours")
    if hours <= 0:
        raise HrValidationError("operatingHours must be > 0")
    if hours > 24:
        raise HrValidationError("operatingHours must not exceed 24 per day")

    utilization = _require_finite(staffing_input.utilization_factor, "utilizationFactor")
    if not 0 < utilization <= 1:
        raise HrValidationError("utilizationFactor must be in (0, 1]")

    fraction = _require_finite(staffing_input.avg_contract_fraction, "avgContractFraction")
    if not 0 < fraction <= 1:
        raise HrValidationError("avgContractFraction must be in (0, 1]")

    for role, minutes in staffing_input.avg_service_minutes.items():
        if not is_staffing_role(role):
            raise HrValidationError(
                f"Unknown role '{role}' in avgServiceMinutes. Known roles: {', '.join(STAFFING_ROLES)}"
            )
        if _require_finite(minutes, f"avgServiceMinutes.{role}") < 0:
            raise HrValidationError(f"avgServiceMinutes.{role} must be >= 0")

    for role, fte in (current or {}).items():
        if not is_staffing_role(role):
            raise HrValidationError(
                f"Unknown role '{role}' in current. Known roles: {', '.join(STAFFING_ROLES)}"
            )
        if role not in staffing_input.avg_service_minutes:
            raise HrValidationError(
                f"current references role '{role}' without an avgServiceMinutes entry"
            )
        if _require_finite(fte, f"current.{role}") < 0:
            raise HrValidationError(f"current.{role} must be >= 0")


# ── Core computation ──────────────────────────────────────────────────────────

def calculate_target_fte(
    patient_volume: float,
    service_minutes: float,
    operating_hours: float,
    utilization_factor: float,
) -> float:
    demand_minutes = patient_volume * service_minutes
    capacity_minutes = operating_hours * 60 * utilization_factor
    return round(demand_minutes / capacity_minutes, 2)


def headcount_hint(target_fte: float, avg_contract_fraction: float) -> int:
    """People needed to cover target_fte at the average contract fraction."""
    if target_fte <= 0:
        return 0
    return math.ceil(round(target_fte / avg_contract_fraction, 6))


def coverage_flag(role: str, coverage: float) -> StaffingFlag:
    pct = f"{coverage * 100:.0f}%"
    if coverage < hr_config.COVERAGE_RED_BELOW:
        return StaffingFlag(f"UNDERSTAFFED_{role.upper()}", "red", role,
                            f"{role} coverage at {pct} of target")
    if coverage < hr_config.COVERAGE_YELLOW_BELOW:
        return StaffingFlag(f"UNDERSTAFFED_{role.upper()}", "yellow", role,
                            f"{role} coverage slightly below target ({pct})")
    if coverage > hr_config.COVERAGE_OVERSTAFFED_ABOVE:
        return StaffingFlag(f"OVERSTAFFED_{role.upper()}", "yellow", role,
                            f"{role} coverage above target ({pct})")
    return StaffingFlag(f"COVERAGE_OK_{role.upper()}", "green", role,
                        f"{role} coverage within target range ({pct})")


def compute_staffing(
    staffing_input: StaffingInput,
    current: Optional[dict[str, float]] = None,
    now: Optional[datetime] = None,
) -> StaffingResult:
    """
    Compute target FTE per role and, when ``current`` is given, the gaps.

    Roles are reported in STAFFING_ROLES order. Roles absent from
    ``current`` count as 0 FTE.

    Raises:
        HrValidationError: invalid input (see validate_staffing_input).
    """
    validate_staffing_input(staffing_input, current)

    roles = [r for r in STAFFING_ROLES if r in staffing_input.avg_service_minutes]
    target = {
        role: calculate_target_fte(
            staffing_input.patient_volume,
            staffing_input.avg_service_minutes[role],
            staffing_input.operating_hours,
            staffing_input.utilization_factor,
        )
        for role in roles
    }
    total_target = round(sum(target.values()), 2)
    hints = {role: headcount_hint(target[role], staffing_input.avg_contract_fraction) for role in roles}

    gaps = coverage = score = None
    flags: list[StaffingFlag] = []
    if current is not None:
        have = {role: float(current.get(role, 0.0)) for role in roles}
        gaps = {role: round(have[role] - target[role], 2) for role in roles}
        coverage = {
            role: round(have[role] / target[role], 2)
            for role in roles
            if target[role] > 0
        }
        covered = sum(min(have[role], target[role]) for role in roles)
        score = round(covered / total_target, 2) if total_target > 0 else 1.0
        flags = [coverage_flag(role, coverage[role]) for role in roles if role in coverage]

    return StaffingResult(
        target_fte=target,
        total_target_fte=total_target,
        headcount_hint=hints,
        engine_version=hr_config.STAFFING_ENGINE_VERSION,
        timestamp=now or datetime.now(timezone.utc),
        gaps=gaps,
        coverage=coverage,
        coverage_score=score,
        flags=tuple(flags),
    )


# ── Automatic entry point ─────────────────────────────────────────────────────

def current_fte_by_role(dataset: PracticeDataset) -> dict[str, float]:
    """Summed FTE per staffing role. Trainees and unmapped roles are not counted."""
    totals: dict[str, float] = {}
    for member in dataset.staff:
        role = normalize_role(member.role)
        if role not in STAFFING_ROLES:
            continue
        fte = hr_config.DEFAULT_STAFF_FTE if member.fte is None else float(member.fte)
        totals[role] = totals.get(role, 0.0) + fte
    return {role: round(totals[role], 2) for role in STAFFING_ROLES if role in totals}


def estimate_patient_volume(dataset: PracticeDataset, today: date) -> float:
    """
    Average patients per operating day over the lookback window.

    Falls back to treatment rooms × DEFAULT_PATIENTS_PER_ROOM when no visit
    history exists in the window. Only rooms explicitly labelled as exam or
    prophylaxis rooms count; unrecognised labels are ignored.
    """
    since = today - timedelta(days=hr_config.STAFFING_VISIT_LOOKBACK_DAYS - 1)
    recent = [v for v in dataset.visit_days if since <= v.visit_date <= today]
    if recent:
        return round(sum(v.patient_count for v in recent) / len(recent), 1)

    treatment_rooms = sum(
        1 for r in dataset.rooms
        if is_known_room_type(r.room_type) and normalize_room_type(r.room_type) in TREATMENT_ROOM_TYPES
    )
    unknown = sum(1 for r in dataset.rooms if not is_known_room_type(r.room_type))
    if unknown:
        logger.debug(f"{unknown} room label(s) not recognised, ignored for the patient estimate")
    return treatment_rooms * hr_config.DEFAULT_PATIENTS_PER_ROOM


def derive_staffing_input(
    dataset: PracticeDataset,
    today: Optional[date] = None,
) -> tuple[StaffingInput, dict[str, float]]:
    """Build StaffingInput and current FTE from the practice's own records."""
    today = today or date.today()
    current = current_fte_by_role(dataset)

    has_prophylaxis = any(
        normalize_room_type(r.room_type) == "prophylaxis" for r in dataset.rooms
    )
    minutes = {
        role: m for role, m in hr_config.DEFAULT_SERVICE_MINUTES.items()
        if role != "hygienist" or has_prophylaxis or "hygienist" in current
    }

    practice = dataset.practice
    hours = practice.operating_hours_per_day or hr_config.DEFAULT_OPERATING_HOURS

    staffing_input = StaffingInput(
        patient_volume=estimate_patient_volume(dataset, today),
        operating_hours=float(hours),
        avg_service_minutes=minutes,
        utilization_factor=hr_config.DEFAULT_UTILIZATION_FACTOR,
        avg_contract_fraction=hr_config.DEFAULT_AVG_CONTRACT_FRACTION,
    )
    logger.debug(
        f"Derived staffing input for practice {practice.id}: "
        f"{staffing_input.patient_volume} patients/day over {hours}h"
    )
    return staffing_input, current
