"""
K-Anonymity Gate + person-data guards.

The gate decides which cohort aggregates may be released for a request:
every released cohort has at least ``k_min`` members, checked as a hard
postcondition before any KPI is computed on it.

Fallback policy when a ROLE cohort is too small (HR_GATE_POLICY):

  merge  The whole release falls back to the single PRACTICE cohort, which
         already contains every member of the small role. Releasing the
         other roles next to it would let the small role be recovered by
         subtraction, so no role cohort is released at all.
  drop   The small role cohorts are withheld and the remaining roles are
         released at ROLE level. If none remain, fall back to PRACTICE.
         The practice total minus the released roles equals the withheld
         roles combined, so drop only applies when the withheld roles
         together have at least ``k_min`` members; otherwise the request
         is handled as under merge.

A PRACTICE cohort below ``k_min`` releases nothing.

The guards reject structures with person-level keys and alert texts with
person-referencing phrases (DSGVO Art. 5 data minimisation, ArbSchG).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Sequence

from app.services import hr_config
from app.services.hr_errors import HrComplianceError, HrInternalError, HrValidationError
from app.services.hr_types import AggregationLevel, GroupAggregate

logger = logging.getLogger("praxisflow-hr")


# ── Forbidden vocabularies ────────────────────────────────────────────────────

# Keys compared after lowercasing and stripping "_" / "-"
FORBIDDEN_ID_FIELDS: frozenset[str] = frozenset({
    "staffid", "employeeid", "personid", "memberid", "workerid", "userid",
    "mitarbeiterid", "personalnummer", "sozialversicherungsnummer", "ssn",
})

FORBIDDEN_PERSONAL_FIELDS: frozenset[str] = frozenset({
    "firstname", "lastname", "fullname", "staffname", "employeename",
    "vorname", "nachname", "email", "phone", "telefon", "address", "adresse",
    "birthdate", "dateofbirth", "geburtsdatum",
    "individual", "person", "employee", "mitarbeiter", "staff", "staffmember",
})

# Case-insensitive substrings never allowed in alert titles, explanations or actions
FORBIDDEN_PERSONAL_TERMS: tuple[str, ...] = (
    "mitarbeiter ", "mitarbeiterin ", "kollege", "kollegin",
    "person x", "herr ", "frau ",
    "employee ", "colleague", "mr. ", "mrs. ", "ms. ",
    "risikoprofil", "gesundheitsprofil", "risk profile", "health profile",
    "überfordert", "ueberfordert", "überforderung", "ueberforderung", "overwhelmed",
    "depression", "psychisch krank", "mentally ill",
)

# "stress"/"burnout" are allowed as systemic factors, not attributed to someone
CONTEXT_SENSITIVE_PATTERNS: tuple[str, ...] = (
    "hat stress", "leidet unter stress", "has stress", "suffers from stress",
    "his stress", "her stress",
    "hat burnout", "burnout bei", "has burnout", "his burnout", "her burnout",
)


def _normalize_key(key: str) -> str:
    return key.replace("_", "").replace("-", "").lower()


def assert_no_person_fields(obj: Any, path: str = "$") -> None:
    """Walk mappings and sequences; raise HrComplianceError on any person-level key."""
    if isinstance(obj, dict):
        for key, value in obj.items():
            norm = _normalize_key(str(key))
            if norm in FORBIDDEN_ID_FIELDS or norm in FORBIDDEN_PERSONAL_FIELDS:
                raise HrComplianceError(
                    f"Person-level field '{key}' is not allowed in HR analytics ({path})"
                )
            assert_no_person_fields(value, f"{path}.{key}")
    elif isinstance(obj, (list, tuple)):
        for idx, item in enumerate(obj):
            assert_no_person_fields(item, f"{path}[{idx}]")


def find_text_violations(text: str) -> list[str]:
    lowered = text.lower()
    hits = [t.strip() for t in FORBIDDEN_PERSONAL_TERMS if t in lowered]
    hits.extend(p for p in CONTEXT_SENSITIVE_PATTERNS if p in lowered)
    return hits


def assert_text_compliance(text: str) -> None:
    hits = find_text_violations(text)
    if hits:
        raise HrComplianceError(f"Text contains person-referencing terms: {', '.join(hits)}")


# ── k-anonymity gate ──────────────────────────────────────────────────────────

@dataclass(frozen=True)
class GateResult:
    released: tuple[GroupAggregate, ...]
    aggregation_level: AggregationLevel
    k_used: int
    warnings: tuple[str, ...]


def validate_k_min(k_min: int) -> int:
    if k_min < hr_config.K_ABSOLUTE_MIN:
        raise HrValidationError(
            f"kMin must be at least {hr_config.K_ABSOLUTE_MIN}, got {k_min}"
        )
    return k_min


def assert_k_anonymous(released: Iterable[GroupAggregate], k_min: int) -> None:
    """Postcondition: no released cohort is smaller than k_min."""
    for agg in released:
        if agg.size < k_min:
            raise HrInternalError(
                f"k-anonymity violated: cohort '{agg.group_key}' has size {agg.size} < k={k_min}"
            )


def apply_gate(
    requested_level: AggregationLevel,
    k_min: int,
    practice: Optional[GroupAggregate],
    roles: Sequence[GroupAggregate] = (),
    policy: str = hr_config.HR_GATE_POLICY,
) -> GateResult:
    """
    Release the cohorts for a request under k-anonymity.

    Args:
        requested_level: level the caller asked for.
        k_min: validated minimum cohort size.
        practice: the PRACTICE aggregate, or None when the practice has no staff.
        roles: ROLE aggregates; only consulted when ROLE level was requested.
        policy: "merge" or "drop" (see module docstring).

    Returns:
        GateResult with the released cohorts, the effective level, the k that
        was applied and one warning per withheld or merged cohort.
    """
    validate_k_min(k_min)
    if policy not in hr_config.GATE_POLICIES:
        raise HrInternalError(f"Unknown gate policy '{policy}'")

    warnings: list[str] = []

    if practice is None:
        return GateResult((), requested_level, k_min, ())

    if practice.size < k_min:
        warnings.append(
            f"Practice headcount below k-anonymity threshold (k={k_min}); no metrics released"
        )
        return GateResult((), AggregationLevel.PRACTICE, k_min, tuple(warnings))

    if requested_level == AggregationLevel.PRACTICE:
        released: tuple[GroupAggregate, ...] = (practice,)
        level = AggregationLevel.PRACTICE
    else:
        small = [r for r in roles if r.size < k_min]
        large = [r for r in roles if r.size >= k_min]

        if not small:
            released, level = tuple(roles), AggregationLevel.ROLE
        elif policy == "merge" or sum(r.size for r in small) < k_min:
            if policy == "drop":
                warnings.append(
                    f"Withheld roles total fewer than {k_min} members and could be "
                    f"derived from the practice total; role-level release refused"
                )
            for r in small:
                warnings.append(
                    f"Role {r.group_key} below k-anonymity threshold (k={k_min}); "
                    f"merged into practice-level aggregate"
                )
            released, level = (practice,), AggregationLevel.PRACTICE
        else:
            for r in small:
                warnings.append(
                    f"Role {r.group_key} below k-anonymity threshold (k={k_min}); "
                    f"dropped from role-level release"
                )
            if large:
                released, level = tuple(large), AggregationLevel.ROLE
            else:
                warnings.append(
                    "No role cohort meets the k-anonymity threshold; "
                    "falling back to practice-level aggregate"
                )
                released, level = (practice,), AggregationLevel.PRACTICE

    assert_k_anonymous(released, k_min)

    if level != requested_level:
        logger.info(
            f"k-anonymity gate fell back from {requested_level.value} to {level.value} (k={k_min})"
        )
    return GateResult(released, level, k_min, tuple(warnings))
