"""
conftest.py — Shared pytest fixtures for the PraxisFlow HR backend test suite.

No database is needed: route tests swap the SQL repository for the
in-memory ``FakeHrRepository`` below through FastAPI dependency overrides.

Import-path bootstrapping:
    The ``backend/`` directory is inserted into sys.path so that all
    ``app.*`` imports resolve correctly regardless of where pytest is invoked.

Environment:
    Rate limiting is disabled and a fixed JWT secret is set *before* any
    ``app.*`` module is imported, because both are read at import time.
"""

import sys
import os
from datetime import date, datetime, timedelta, timezone

import pytest

# ---------------------------------------------------------------------------
# Ensure ``backend/`` is on the import path before any app imports occur.
# ---------------------------------------------------------------------------
_BACKEND_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _BACKEND_DIR not in sys.path:
    sys.path.insert(0, _BACKEND_DIR)

os.environ["RATE_LIMIT_PER_MINUTE"] = "0"
os.environ["JWT_SECRET_KEY"] = "test-secret-key-for-praxisflow-hr-suite"
os.environ.setdefault("LOG_FORMAT", "text")
os.environ.pop("DATABASE_URL", None)
os.environ.pop("HR_GATE_POLICY", None)

OWNER_ID = "11111111-1111-1111-1111-111111111111"
OTHER_USER_ID = "22222222-2222-2222-2222-222222222222"
PRACTICE_ID = "aaaaaaaa-aaaa-aaaa-aaaa-aaaaaaaaaaaa"

# Fixed reporting window used across the suite: 28 days, Mon 2024-03-04 .. Sun 2024-03-31
PERIOD_START = date(2024, 3, 4)
PERIOD_END = date(2024, 3, 31)


# ---------------------------------------------------------------------------
# Record builders
# ---------------------------------------------------------------------------

def make_staff(role_counts: dict, fte: float = 1.0, weekly_hours: float = 40.0,
               hourly_cost=None):
    """
    Build StaffRecords from {role: count}. Ids are "<role>-<n>".

    e.g. make_staff({"ZFA": 4, "Zahnarzt": 2}) → 6 records
    """
    from app.services.hr_types import StaffRecord
    records = []
    for role, count in role_counts.items():
        for n in range(count):
            records.append(StaffRecord(
                staff_id=f"{role.lower()}-{n}",
                role=role,
                fte=fte,
                weekly_hours=weekly_hours,
                hourly_cost=hourly_cost,
            ))
    return tuple(records)


def make_dataset(staff=(), absences=(), overtime=(), rooms=(), visit_days=(),
                 target_fte=None, monthly_revenue=None, operating_hours=None,
                 practice_id=PRACTICE_ID, owner_id=OWNER_ID):
    from app.services.hr_types import PracticeDataset, PracticeRecord
    practice = PracticeRecord(
        id=practice_id,
        owner_id=owner_id,
        name="Zahnarztpraxis Musterstadt",
        target_fte=target_fte,
        monthly_revenue=monthly_revenue,
        operating_hours_per_day=operating_hours,
    )
    return PracticeDataset(
        practice=practice,
        staff=tuple(staff),
        absences=tuple(absences),
        overtime=tuple(overtime),
        rooms=tuple(rooms),
        visit_days=tuple(visit_days),
    )


def make_token(user_id: str, expires_in_minutes: int = 30) -> str:
    from jose import jwt
    from app.api.deps import SECRET_KEY, ALGORITHM
    exp = datetime.now(timezone.utc) + timedelta(minutes=expires_in_minutes)
    return jwt.encode({"sub": user_id, "exp": exp}, SECRET_KEY, algorithm=ALGORITHM)


# ---------------------------------------------------------------------------
# In-memory repository
# ---------------------------------------------------------------------------

class FakeHrRepository:
    """Implements the HrRepository protocol over plain dicts."""

    def __init__(self):
        from app.services.hr_repository import UserRecord
        self.users = {
            OWNER_ID: UserRecord(id=OWNER_ID),
            OTHER_USER_ID: UserRecord(id=OTHER_USER_ID),
        }
        self.datasets = {}
        self.load_calls = []

    def put(self, dataset):
        self.datasets[dataset.practice.id] = dataset

    async def get_user(self, user_id):
        return self.users.get(user_id)

    async def get_practice(self, practice_id):
        ds = self.datasets.get(practice_id)
        return ds.practice if ds else None

    async def load_practice_dataset(self, practice, period=None, visits_since=None):
        self.load_calls.append((practice.id, period, visits_since))
        return self.datasets[practice.id]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def fake_repo():
    return FakeHrRepository()


@pytest.fixture
def client(fake_repo):
    """TestClient with the SQL repository replaced by ``fake_repo``."""
    from fastapi.testclient import TestClient
    from app.main import app
    from app.api.deps import get_hr_repository
    from app.services.perf_monitor import tracker

    tracker.reset()
    app.dependency_overrides[get_hr_repository] = lambda: fake_repo
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def owner_headers():
    return {"Authorization": f"Bearer {make_token(OWNER_ID)}"}


@pytest.fixture
def other_user_headers():
    return {"Authorization": f"Bearer {make_token(OTHER_USER_ID)}"}


@pytest.fixture
def period():
    from app.services.hr_types import Period
    return Period(start=PERIOD_START, end=PERIOD_END)


@pytest.fixture
def mixed_practice_dataset():
    """
    9 staff, no absences/overtime:
      ZFA × 4  → assistant
      Zahnarzt × 3 → doctor
      Empfang × 2  → reception (below k=3)
    """
    return make_dataset(staff=make_staff({"ZFA": 4, "Zahnarzt": 3, "Empfang": 2}))
