"""
HR data access — the only place that touches the database.

Routes depend on the ``HrRepository`` protocol; ``SqlHrRepository`` is the
async SQLAlchemy implementation. Rows are converted into the plain records
of ``hr_types`` so the pipeline never sees ORM objects. No retries here:
a failing query propagates to the request.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.orm_models import (
    PatientVisitDay,
    Practice,
    Room,
    StaffAbsence,
    StaffMember,
    StaffOvertime,
    User,
)
from app.services.perf_monitor import timed_async
from app.services.hr_types import (
    AbsenceRecord,
    OvertimeRecord,
    Period,
    PracticeDataset,
    PracticeRecord,
    RoomRecord,
    StaffRecord,
    VisitDayRecord,
)

logger = logging.getLogger("praxisflow-db")


@dataclass(frozen=True)
class UserRecord:
    id: str
    is_active: bool = True


class HrRepository(Protocol):
    async def get_user(self, user_id: str) -> Optional[UserRecord]: ...

    async def get_practice(self, practice_id: str) -> Optional[PracticeRecord]: ...

    async def load_practice_dataset(
        self,
        practice: PracticeRecord,
        period: Optional[Period] = None,
        visits_since: Optional[date] = None,
    ) -> PracticeDataset: ...


def _num(value) -> Optional[float]:
    return None if value is None else float(value)


class SqlHrRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_user(self, user_id: str) -> Optional[UserRecord]:
        result = await self.db.execute(select(User).where(User.id == user_id))
        user = result.scalar_one_or_none()
        if user is None:
            return None
        return UserRecord(id=str(user.id), is_active=bool(user.is_active))

    async def get_practice(self, practice_id: str) -> Optional[PracticeRecord]:
        result = await self.db.execute(select(Practice).where(Practice.id == practice_id))
        practice = result.scalar_one_or_none()
        if practice is None:
            return None
        return PracticeRecord(
            id=str(practice.id),
            owner_id=str(practice.owner_id),
            name=practice.name,
            target_fte=_num(practice.target_fte),
            monthly_revenue=_num(practice.monthly_revenue_eur),
            operating_hours_per_day=_num(practice.operating_hours_per_day),
        )

    @timed_async
    async def load_practice_dataset(
        self,
        practice: PracticeRecord,
        period: Optional[Period] = None,
        visits_since: Optional[date] = None,
    ) -> PracticeDataset:
        """
        Fetch everything the HR pipeline needs for one practice.

        Absences and overtime are limited to ``period`` (skipped when None);
        visit days to ``visits_since`` onwards (skipped when None).
        """
        staff_rows = (await self.db.execute(
            select(StaffMember).where(
                StaffMember.practice_id == practice.id,
                StaffMember.is_active.is_(True),
            )
        )).scalars().all()
        staff = tuple(
            StaffRecord(
                staff_id=str(s.id),
                role=s.role,
                fte=_num(s.fte),
                weekly_hours=_num(s.weekly_hours),
                hourly_cost=_num(s.hourly_cost_eur),
            )
            for s in staff_rows
        )

        absences: tuple[AbsenceRecord, ...] = ()
        overtime: tuple[OvertimeRecord, ...] = ()
        if period is not None:
            absence_rows = (await self.db.execute(
                select(StaffAbsence).where(
                    StaffAbsence.practice_id == practice.id,
                    StaffAbsence.start_date <= period.end,
                    StaffAbsence.end_date >= period.start,
                )
            )).scalars().all()
            absences = tuple(
                AbsenceRecord(
                    staff_id=str(a.staff_id),
                    absence_type=a.absence_type,
                    start_date=a.start_date,
                    end_date=a.end_date,
                )
                for a in absence_rows
            )
            overtime_rows = (await self.db.execute(
                select(StaffOvertime).where(
                    StaffOvertime.practice_id == practice.id,
                    StaffOvertime.work_date >= period.start,
                    StaffOvertime.work_date <= period.end,
                )
            )).scalars().all()
            overtime = tuple(
                OvertimeRecord(staff_id=str(o.staff_id), work_date=o.work_date, minutes=float(o.minutes))
                for o in overtime_rows
            )

        room_rows = (await self.db.execute(
            select(Room).where(Room.practice_id == practice.id)
        )).scalars().all()
        rooms = tuple(
            RoomRecord(room_type=r.type) for r in room_rows
        )

        visits: tuple[VisitDayRecord, ...] = ()
        if visits_since is not None:
            visit_rows = (await self.db.execute(
                select(PatientVisitDay).where(
                    PatientVisitDay.practice_id == practice.id,
                    PatientVisitDay.visit_date >= visits_since,
                )
            )).scalars().all()
            visits = tuple(
                VisitDayRecord(visit_date=v.visit_date, patient_count=int(v.patient_count))
                for v in visit_rows
            )

        logger.debug(
            f"Loaded dataset for practice {practice.id}: {len(staff)} staff, "
            f"{len(absences)} absences, {len(overtime)} overtime entries"
        )
        return PracticeDataset(
            practice=practice,
            staff=staff,
            absences=absences,
            overtime=overtime,
            rooms=rooms,
            visit_days=visits,
        )
