"""
Period & Grouping Normalizer

Validates the overview query (level, kMin, period) and folds raw staff,
absence and overtime records into cohort aggregates at PRACTICE or ROLE
level. Staff identifiers are used only as a transient join key inside
``build_group_aggregates`` and never reach the returned aggregates.
"""
from __future__ import annotations

import logging
import re
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Iterable, Optional

from app.services import hr_config
from app.services.hr_errors import HrValidationError
from app.services.hr_types import (
    AbsenceBreakdown,
    AggregationLevel,
    GroupAggregate,
    Period,
    PracticeDataset,
    StaffRecord,
)
from app.services.role_types import CANONICAL_ROLES, normalize_role

logger = logging.getLogger("praxisflow-hr")

ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
PRACTICE_GROUP_KEY = "practice"

ABSENCE_TYPE_MAP: dict[str, str] = {
    "sick": "sick",
    "illness": "sick",
    "krank": "sick",
    "krankheit": "sick",
    "vacation": "vacation",
    "holiday": "vacation",
    "urlaub": "vacation",
    "training": "training",
    "fortbildung": "training",
    "schulung": "training",
}


@dataclass(frozen=True)
class OverviewQuery:
    requested_level: AggregationLevel
    k_min: int
    period: Period
    warnings: tuple[str, ...] = field(default_factory=tuple)


# ── Query parsing ─────────────────────────────────────────────────────────────

def parse_iso_date(raw: str, param: str) -> date:
    """Parse a strict ``YYYY-MM-DD`` string."""
    value = raw.strip()
    if not ISO_DATE_RE.match(value):
        raise HrValidationError(f"{param} must match YYYY-MM-DD, got '{raw}'")
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise HrValidationError(f"{param} is not a valid calendar date: '{raw}'") from None


def coerce_k_min(raw) -> int:
    """Coerce a query value to an integer kMin (>= K_ABSOLUTE_MIN)."""
    if isinstance(raw, bool):
        raise HrValidationError("kMin must be an integer")
    if isinstance(raw, int):
        k = raw
    else:
        text = str(raw).strip()
        if not re.fullmatch(r"[+-]?\d+", text):
            raise HrValidationError(f"kMin must be an integer, got '{raw}'")
        k = int(text)
    if k < hr_config.K_ABSOLUTE_MIN:
        raise HrValidationError(
            f"kMin must be at least {hr_config.K_ABSOLUTE_MIN}, got {k}"
        )
    return k


def resolve_period(
    period_start: Optional[str],
    period_end: Optional[str],
    today: Optional[date] = None,
    window_days: int = hr_config.HR_DEFAULT_PERIOD_DAYS,
) -> Period:
    """
    Resolve the reporting window.

    Missing bounds are derived from a trailing window of ``window_days``
    (inclusive) ending today, or anchored on whichever bound was given.
    """
    start = parse_iso_date(period_start, "periodStart") if period_start else None
    end = parse_iso_date(period_end, "periodEnd") if period_end else None
    span = timedelta(days=max(window_days, 1) - 1)

    if start is None and end is None:
        end = today or date.today()
        start = end - span
    elif start is None:
        start = end - span
    elif end is None:
        end = start + span

    return Period(start=start, end=end)


def parse_overview_query(
    level: Optional[str] = None,
    k_min=None,
    period_start: Optional[str] = None,
    period_end: Optional[str] = None,
    *,
    today: Optional[date] = None,
) -> OverviewQuery:
    """
    Validate every overview query parameter before any aggregation runs.

    Raises HrValidationError for an unknown level, a non-integer or too
    small kMin, malformed dates or periodStart > periodEnd.
    """
    requested = AggregationLevel.from_query(level) if level else AggregationLevel.PRACTICE

    warnings: list[str] = []
    if k_min is None or (isinstance(k_min, str) and not k_min.strip()):
        k = hr_config.HR_DEFAULT_K_MIN
    else:
        k = coerce_k_min(k_min)
        if k < hr_config.HR_RECOMMENDED_K_MIN:
            warnings.append(
                f"kMin={k} is below the recommended minimum of "
                f"{hr_config.HR_RECOMMENDED_K_MIN}"
            )

    period = resolve_period(period_start, period_end, today=today)
    return OverviewQuery(
        requested_level=requested,
        k_min=k,
        period=period,
        warnings=tuple(warnings),
    )


# ── Cohort aggregation ────────────────────────────────────────────────────────

def map_absence_type(raw: str) -> str:
    return ABSENCE_TYPE_MAP.get((raw or "").strip().lower(), "other")


def count_workdays(start: date, end: date) -> int:
    """Mon–Fri days in [start, end] inclusive."""
    if start > end:
        return 0
    total = (end - start).days + 1
    full_weeks, remainder = divmod(total, 7)
    days = full_weeks * 5
    for offset in range(remainder):
        if (start + timedelta(days=full_weeks * 7 + offset)).weekday() < 5:
            days += 1
    return days


def _staff_fte(member: StaffRecord) -> float:
    return hr_config.DEFAULT_STAFF_FTE if member.fte is None else float(member.fte)


def _staff_weekly_hours(member: StaffRecord) -> float:
    return hr_config.DEFAULT_WEEKLY_HOURS if member.weekly_hours is None else float(member.weekly_hours)


def _monthly_labor_cost(members: Iterable[StaffRecord]) -> Optional[float]:
    """Monthly personnel cost; None when no member has cost data on file."""
    members = list(members)
    if not any(m.hourly_cost is not None for m in members):
        return None
    total = 0.0
    for m in members:
        rate = hr_config.DEFAULT_HOURLY_COST_EUR if m.hourly_cost is None else float(m.hourly_cost)
        total += _staff_weekly_hours(m) * hr_config.WEEKS_PER_MONTH * rate
    return total


def build_group_aggregates(
    dataset: PracticeDataset,
    level: AggregationLevel,
    period: Period,
) -> list[GroupAggregate]:
    """
    Fold raw records into one aggregate per practice or per normalized role.

    Absences count the Mon–Fri days overlapping the period; overtime counts
    entries dated inside the period. Records for unknown staff are ignored.
    Role aggregates come back in CANONICAL_ROLES order.
    """
    if not dataset.staff:
        return []

    if level == AggregationLevel.PRACTICE:
        key_of = {m.staff_id: PRACTICE_GROUP_KEY for m in dataset.staff}
    else:
        key_of = {m.staff_id: normalize_role(m.role) for m in dataset.staff}

    members: dict[str, list[StaffRecord]] = defaultdict(list)
    for m in dataset.staff:
        members[key_of[m.staff_id]].append(m)

    absence: dict[str, dict[str, float]] = defaultdict(lambda: defaultdict(float))
    for a in dataset.absences:
        key = key_of.get(a.staff_id)
        if key is None:
            continue
        lo, hi = max(a.start_date, period.start), min(a.end_date, period.end)
        days = count_workdays(lo, hi)
        if days:
            absence[key][map_absence_type(a.absence_type)] += days

    overtime: dict[str, float] = defaultdict(float)
    for o in dataset.overtime:
        key = key_of.get(o.staff_id)
        if key is None or not period.contains(o.work_date):
            continue
        overtime[key] += max(float(o.minutes), 0.0)

    ordered_keys = sorted(
        members,
        key=lambda k: CANONICAL_ROLES.index(k) if k in CANONICAL_ROLES else -1,
    )
    aggregates = []
    for key in ordered_keys:
        group = members[key]
        by_type = absence.get(key, {})
        aggregates.append(GroupAggregate(
            group_key=key,
            aggregation_level=level,
            size=len(group),
            total_fte=sum(_staff_fte(m) for m in group),
            total_weekly_hours=sum(_staff_weekly_hours(m) for m in group),
            total_overtime_minutes=overtime.get(key, 0.0),
            absence_days=AbsenceBreakdown(
                sick=by_type.get("sick", 0.0),
                vacation=by_type.get("vacation", 0.0),
                training=by_type.get("training", 0.0),
                other=by_type.get("other", 0.0),
            ),
            monthly_labor_cost=_monthly_labor_cost(group),
        ))

    logger.debug(
        f"Built {len(aggregates)} {level.value} aggregate(s) from {len(dataset.staff)} staff records"
    )
    return aggregates
