"""
Role and room vocabularies for dental / medical practices.

Free-text role titles and room labels (German and English) are mapped onto
small canonical sets. Unknown roles collapse to ``other`` so that a rare
job title can never form a cohort that singles out one person.
"""
from __future__ import annotations

import re


# ── Roles ─────────────────────────────────────────────────────────────────────

CANONICAL_ROLES: tuple[str, ...] = (
    "doctor",
    "assistant",
    "hygienist",
    "reception",
    "administration",
    "trainee",
    "other",
)

# Roles the staffing-demand engine computes a target for
STAFFING_ROLES: tuple[str, ...] = (
    "doctor",
    "assistant",
    "hygienist",
    "reception",
    "administration",
)

ROLE_ALIASES: dict[str, str] = {
    # doctor
    "doctor": "doctor",
    "dentist": "doctor",
    "physician": "doctor",
    "arzt": "doctor",
    "ärztin": "doctor",
    "zahnarzt": "doctor",
    "zahnärztin": "doctor",
    "behandler": "doctor",
    # assistant
    "assistant": "assistant",
    "nurse": "assistant",
    "zfa": "assistant",
    "mfa": "assistant",
    "assistenz": "assistant",
    "stuhlassistenz": "assistant",
    "chairside": "assistant",
    "sterilisation": "assistant",
    "steri": "assistant",
    # hygienist
    "hygienist": "hygienist",
    "dental hygienist": "hygienist",
    "dh": "hygienist",
    "zmp": "hygienist",
    "prophylaxe": "hygienist",
    "prophylaxis": "hygienist",
    # reception
    "reception": "reception",
    "receptionist": "reception",
    "frontdesk": "reception",
    "front desk": "reception",
    "empfang": "reception",
    "rezeption": "reception",
    "rezeptionist": "reception",
    "rezeptionistin": "reception",
    "anmeldung": "reception",
    # administration
    "administration": "administration",
    "admin": "administration",
    "administrator": "administration",
    "manager": "administration",
    "managerin": "administration",
    "practice manager": "administration",
    "praxismanager": "administration",
    "praxismanagerin": "administration",
    "pm": "administration",
    "verwaltung": "administration",
    "praxismanagement": "administration",
    "abrechnung": "administration",
    "buchhaltung": "administration",
    # trainee
    "trainee": "trainee",
    "apprentice": "trainee",
    "azubi": "trainee",
    "auszubildende": "trainee",
    "auszubildender": "trainee",
}


# Fragments for compound titles ("Empfangsmitarbeiterin", "Office Manager"),
# checked in order after the exact aliases
ROLE_PATTERNS: tuple[tuple[re.Pattern, str], ...] = (
    (re.compile(r"empfang|rezept|anmeld|front|^reception|termin"), "reception"),
    (re.compile(r"manager|admin|verwalt|buchhalt|geschaeftsfuehr|geschäftsführ"), "administration"),
)


def normalize_role(raw: str | None) -> str:
    """Map a free-text role onto CANONICAL_ROLES (fallback ``other``)."""
    if not raw:
        return "other"
    key = " ".join(raw.strip().lower().replace("_", " ").replace("-", " ").split())
    if key in ROLE_ALIASES:
        return ROLE_ALIASES[key]
    for pattern, role in ROLE_PATTERNS:
        if pattern.search(key):
            return role
    return "other"


def is_staffing_role(role: str) -> bool:
    return role in STAFFING_ROLES


# ── Rooms ─────────────────────────────────────────────────────────────────────

CANONICAL_ROOM_TYPES: tuple[str, ...] = (
    "reception",
    "waiting",
    "exam",
    "prophylaxis",
    "lab",
    "office",
    "storage",
    "other",
)

ROOM_TYPE_ALIASES: dict[str, str] = {
    "reception": "reception",
    "empfang": "reception",
    "empfangsbereich": "reception",
    "rezeption": "reception",

    "waiting": "waiting",
    "wartebereich": "waiting",
    "wartezimmer": "waiting",
    "warten": "waiting",

    "exam": "exam",
    "treatment": "exam",
    "behandlung": "exam",
    "behandlungsraum": "exam",
    "behandlungszimmer": "exam",
    "untersuchung": "exam",
    "untersuchungsraum": "exam",

    "prophylaxis": "prophylaxis",
    "prophylaxe": "prophylaxis",
    "prophylaxeraum": "prophylaxis",
    "pzr": "prophylaxis",
    "prophy": "prophylaxis",
    "hygiene": "prophylaxis",

    "lab": "lab",
    "labor": "lab",
    "laboratory": "lab",

    "office": "office",
    "büro": "office",
    "buero": "office",
    "verwaltung": "office",
    "personalraum": "office",

    "storage": "storage",
    "lager": "storage",
    "sterilisation": "storage",
    "sterilisationsraum": "storage",
}

# Rooms in which patients are treated and therefore generate staffing demand
TREATMENT_ROOM_TYPES: frozenset[str] = frozenset({"exam", "prophylaxis"})


def normalize_room_type(raw: str | None) -> str:
    """Map a room label onto CANONICAL_ROOM_TYPES. Unknown labels map to ``other``."""
    if not raw:
        return "other"
    return ROOM_TYPE_ALIASES.get(raw.strip().lower(), "other")


def is_known_room_type(raw: str | None) -> bool:
    return bool(raw) and raw.strip().lower() in ROOM_TYPE_ALIASES
