"""
HR analytics routes.

Every endpoint is scoped to one practice: the caller must hold a valid
bearer token (401) for the account that owns the practice (403); unknown
practices are 404. Core computation never starts before these checks and
query validation have passed.
"""
import logging
import time
from datetime import date, timedelta
from typing import Optional
from fastapi import APIRouter, Depends, Query
from app.api.deps import get_hr_repository, require_practice_access
from app.models.hr_schemas import StaffingDemandRequest, StaffingDemandResponse
from app.services import hr_config
from app.services.anonymity_engine import assert_no_person_fields
from app.services.cohort_engine import parse_overview_query
from app.services.hr_overview_engine import compute_hr_overview
from app.services.hr_repository import HrRepository
from app.services.hr_types import PracticeRecord, StaffingInput, StaffingResult
from app.services.perf_monitor import tracker as perf_tracker
from app.services.staffing_engine import compute_staffing, derive_staffing_input

router = APIRouter(prefix="/api/practices", tags=["HR Analytics"])
logger = logging.getLogger("praxisflow-hr")


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)


def _staffing_response(
    staffing_input: StaffingInput,
    current: Optional[dict[str, float]],
    result: StaffingResult,
) -> dict:
    payload = {
        "timestamp": result.timestamp.isoformat(),
        "engineVersion": result.engine_version,
        "input": staffing_input.to_dict(),
        "current": current,
        "result": result.to_dict(),
    }
    assert_no_person_fields(payload)
    return StaffingDemandResponse.model_validate(payload).model_dump(mode="json", by_alias=True)


@router.get("/{practice_id}/hr/overview")
async def get_hr_overview(
    practice_id: str,
    level: Optional[str] = Query(None, description="practice | role"),
    k_min: Optional[str] = Query(None, alias="kMin", description="Minimum cohort size, >= 3"),
    period_start: Optional[str] = Query(None, alias="periodStart", description="YYYY-MM-DD"),
    period_end: Optional[str] = Query(None, alias="periodEnd", description="YYYY-MM-DD"),
    practice: PracticeRecord = Depends(require_practice_access),
    repo: HrRepository = Depends(get_hr_repository),
):
    """
    k-anonymous KPI snapshots, alerts and compliance metadata for one practice.

    The effective aggregation level may be coarser than the requested one
    when a role cohort is below kMin; the response then carries both levels
    and a warning naming the affected role.
    """
    start = time.perf_counter()
    query = parse_overview_query(level, k_min, period_start, period_end)

    dataset = await repo.load_practice_dataset(practice, period=query.period)
    response = compute_hr_overview(practice.id, query, dataset)

    perf_tracker.record_computation("hr_overview", _elapsed_ms(start))
    if response.aggregation_level != response.requested_level:
        perf_tracker.record_level_fallback()
    return response.model_dump(mode="json", by_alias=True)


@router.get("/{practice_id}/hr/staffing-demand")
async def get_staffing_demand(
    practice: PracticeRecord = Depends(require_practice_access),
    repo: HrRepository = Depends(get_hr_repository),
):
    """Automatic staffing demand from the practice's visit history, rooms and staff."""
    start = time.perf_counter()
    today = date.today()
    visits_since = today - timedelta(days=hr_config.STAFFING_VISIT_LOOKBACK_DAYS - 1)

    dataset = await repo.load_practice_dataset(practice, visits_since=visits_since)
    staffing_input, current = derive_staffing_input(dataset, today)
    result = compute_staffing(staffing_input, current)

    perf_tracker.record_computation("staffing_demand", _elapsed_ms(start))
    logger.info(
        f"Automatic staffing demand: total target {result.total_target_fte} FTE",
        extra={"practice_id": practice.id},
    )
    return _staffing_response(staffing_input, current, result)


@router.post("/{practice_id}/hr/staffing-demand")
async def post_staffing_demand(
    req: StaffingDemandRequest,
    practice: PracticeRecord = Depends(require_practice_access),
):
    """What-if staffing demand for caller-supplied operating parameters."""
    start = time.perf_counter()
    staffing_input = StaffingInput(
        patient_volume=req.patient_volume,
        operating_hours=req.operating_hours,
        avg_service_minutes=dict(req.avg_service_minutes),
        utilization_factor=req.utilization_factor,
        avg_contract_fraction=req.avg_contract_fraction,
    )
    result = compute_staffing(staffing_input, req.current)

    perf_tracker.record_computation("staffing_demand", _elapsed_ms(start))
    return _staffing_response(staffing_input, req.current, result)
