"""
test_staffing_engine.py — Unit tests for the staffing-demand engine.

Tests cover:
  - calculate_target_fte: the reference formula and rounding
  - headcount_hint: contract fraction, exact multiples, zero target
  - coverage_flag: red / yellow / green boundaries, overstaffing
  - compute_staffing: gaps, coverage, coverage score, role order,
    version stamp, zero volume
  - validate_staffing_input: every rejection rule
  - Automatic path: current FTE by role, patient volume estimate,
    hygienist inclusion, operating hours fallback

All tests are pure unit tests; no database or external services required.
"""

from datetime import date, datetime, timezone

import pytest

from conftest import make_dataset, make_staff
from app.services.hr_errors import HrValidationError
from app.services.hr_types import RoomRecord, StaffingInput, StaffRecord, VisitDayRecord
from app.services.staffing_engine import (
    calculate_target_fte,
    compute_staffing,
    coverage_flag,
    current_fte_by_role,
    derive_staffing_input,
    estimate_patient_volume,
    headcount_hint,
)


# ---------------------------------------------------------------------------
# Constants mirrored from hr_config
# ---------------------------------------------------------------------------
ENGINE_VERSION = "2.0.0"
DEFAULT_MINUTES = {"doctor": 20.0, "assistant": 25.0, "reception": 6.0, "administration": 4.0}
PATIENTS_PER_ROOM = 18.0
TODAY = date(2024, 3, 31)


def _input(volume=100, hours=8, minutes=None, utilization=0.8, fraction=0.8):
    return StaffingInput(
        patient_volume=volume,
        operating_hours=hours,
        avg_service_minutes=dict(DEFAULT_MINUTES if minutes is None else minutes),
        utilization_factor=utilization,
        avg_contract_fraction=fraction,
    )


# ===========================================================================
# Class 1: Formula
# ===========================================================================

class TestCalculateTargetFte:

    def test_reference_value(self):
        """100 patients × 20 min / (8 h × 60 × 0.8) = 2000 / 384 = 5.208 → 5.21"""
        assert calculate_target_fte(100, 20, 8, 0.8) == 5.21

    def test_zero_volume(self):
        assert calculate_target_fte(0, 20, 8, 0.8) == 0.0

    def test_full_utilization(self):
        """48 × 10 / (8 × 60 × 1.0) = 1.0"""
        assert calculate_target_fte(48, 10, 8, 1.0) == 1.0


class TestHeadcountHint:

    def test_rounds_up(self):
        """5.21 / 0.8 = 6.51 → 7 people"""
        assert headcount_hint(5.21, 0.8) == 7

    def test_exact_multiple_not_inflated(self):
        """1.6 / 0.8 = 2.0000000000000004 in floating point → still 2"""
        assert headcount_hint(1.6, 0.8) == 2

    def test_zero_target(self):
        assert headcount_hint(0.0, 0.8) == 0


class TestCoverageFlag:

    @pytest.mark.parametrize("coverage,flag_id,severity", [
        (0.5, "UNDERSTAFFED_DOCTOR", "red"),
        (0.79, "UNDERSTAFFED_DOCTOR", "red"),
        (0.8, "UNDERSTAFFED_DOCTOR", "yellow"),
        (0.94, "UNDERSTAFFED_DOCTOR", "yellow"),
        (0.95, "COVERAGE_OK_DOCTOR", "green"),
        (1.2, "COVERAGE_OK_DOCTOR", "green"),
        (1.25, "OVERSTAFFED_DOCTOR", "yellow"),
    ])
    def test_traffic_light(self, coverage, flag_id, severity):
        flag = coverage_flag("doctor", coverage)
        assert flag.id == flag_id
        assert flag.severity == severity
        assert flag.role == "doctor"

    def test_message_has_percentage(self):
        assert "77%" in coverage_flag("assistant", 0.77).message


# ===========================================================================
# Class 2: compute_staffing
# ===========================================================================

class TestComputeStaffing:

    def test_reference_single_role(self):
        result = compute_staffing(_input(minutes={"doctor": 20}))
        assert result.target_fte == {"doctor": 5.21}
        assert result.total_target_fte == 5.21
        assert result.headcount_hint == {"doctor": 7}
        assert result.gaps is None
        assert result.coverage is None
        assert result.coverage_score is None
        assert result.flags == ()

    def test_default_roles(self):
        """
        capacity = 8 × 60 × 0.8 = 384 min per FTE
          doctor         2000 / 384 = 5.21
          assistant      2500 / 384 = 6.51
          reception       600 / 384 = 1.56
          administration  400 / 384 = 1.04
          total                      = 14.32
        """
        result = compute_staffing(_input())
        assert result.target_fte == {
            "doctor": 5.21, "assistant": 6.51, "reception": 1.56, "administration": 1.04,
        }
        assert result.total_target_fte == 14.32
        assert result.headcount_hint == {
            "doctor": 7, "assistant": 9, "reception": 2, "administration": 2,
        }

    def test_roles_reported_in_canonical_order(self):
        minutes = {"administration": 4, "doctor": 20, "assistant": 25}
        result = compute_staffing(_input(minutes=minutes))
        assert list(result.target_fte) == ["doctor", "assistant", "administration"]

    def test_gaps_and_coverage(self):
        """
        doctor: current 4.0 vs target 5.21
          gap      = 4.0 − 5.21 = −1.21
          coverage = 4.0 / 5.21 = 0.768 → 0.77 → red
          score    = 4.0 / 5.21 = 0.77
        """
        result = compute_staffing(_input(minutes={"doctor": 20}), current={"doctor": 4.0})
        assert result.gaps == {"doctor": -1.21}
        assert result.coverage == {"doctor": 0.77}
        assert result.coverage_score == 0.77
        assert [f.id for f in result.flags] == ["UNDERSTAFFED_DOCTOR"]
        assert result.flags[0].severity == "red"

    def test_missing_current_role_counts_as_zero(self):
        result = compute_staffing(
            _input(minutes={"doctor": 20, "assistant": 25}), current={"doctor": 6.0},
        )
        assert result.gaps["assistant"] == -6.51
        assert result.coverage["assistant"] == 0.0

    def test_overstaffing_capped_in_score(self):
        """
        doctor 10.0 vs 5.21 counts only 5.21, assistant 0 vs 6.51:
          score = 5.21 / 11.72 = 0.4445 → 0.44
        """
        result = compute_staffing(
            _input(minutes={"doctor": 20, "assistant": 25}),
            current={"doctor": 10.0, "assistant": 0.0},
        )
        assert result.coverage_score == 0.44
        assert result.flags[0].id == "OVERSTAFFED_DOCTOR"

    def test_zero_volume_with_current(self):
        result = compute_staffing(_input(volume=0, minutes={"doctor": 20}), current={"doctor": 1.0})
        assert result.target_fte == {"doctor": 0.0}
        assert result.headcount_hint == {"doctor": 0}
        assert result.coverage == {}
        assert result.coverage_score == 1.0
        assert result.flags == ()

    def test_version_and_timestamp(self):
        now = datetime(2024, 3, 31, 12, 0, tzinfo=timezone.utc)
        result = compute_staffing(_input(), now=now)
        assert result.engine_version == ENGINE_VERSION
        assert result.timestamp == now

    def test_deterministic(self):
        now = datetime(2024, 3, 31, tzinfo=timezone.utc)
        a = compute_staffing(_input(), {"doctor": 3.0, "assistant": 5.0}, now=now)
        b = compute_staffing(_input(), {"doctor": 3.0, "assistant": 5.0}, now=now)
        assert a.to_dict() == b.to_dict()


# ===========================================================================
# Class 3: Validation
# ===========================================================================

class TestValidation:

    @pytest.mark.parametrize("kwargs,match", [
        ({"volume": -1}, "patientVolume"),
        ({"volume": float("nan")}, "patientVolume"),
        ({"hours": 0}, "operatingHours"),
        ({"hours": 25}, "operatingHours"),
        ({"utilization": 0}, "utilizationFactor"),
        ({"utilization": 1.5}, "utilizationFactor"),
        ({"fraction": 0}, "avgContractFraction"),
        ({"minutes": {"surgeon": 30}}, "Unknown role"),
        ({"minutes": {"doctor": -5}}, "avgServiceMinutes.doctor"),
    ])
    def test_invalid_input_rejected(self, kwargs, match):
        with pytest.raises(HrValidationError, match=match):
            compute_staffing(_input(**kwargs))

    def test_unknown_current_role_rejected(self):
        with pytest.raises(HrValidationError, match="Unknown role"):
            compute_staffing(_input(), current={"janitor": 1.0})

    def test_current_role_without_minutes_rejected(self):
        with pytest.raises(HrValidationError, match="without an avgServiceMinutes entry"):
            compute_staffing(_input(minutes={"doctor": 20}), current={"assistant": 2.0})

    def test_negative_current_rejected(self):
        with pytest.raises(HrValidationError, match="current.doctor"):
            compute_staffing(_input(), current={"doctor": -1.0})

    def test_boundaries_accepted(self):
        result = compute_staffing(_input(hours=24, utilization=1.0, fraction=1.0))
        assert result.total_target_fte > 0


# ===========================================================================
# Class 4: Automatic path
# ===========================================================================

class TestAutomaticInput:

    def test_current_fte_by_role(self):
        staff = make_staff({"ZFA": 4, "Zahnarzt": 2}, fte=0.75) + (
            StaffRecord("azubi-0", "Azubi", fte=1.0),
            StaffRecord("dr-x", "Zahnarzt", fte=None),
        )
        current = current_fte_by_role(make_dataset(staff=staff))
        assert current == {"doctor": 2.5, "assistant": 3.0}

    def test_volume_from_visit_history(self):
        """Visits inside the 28-day window: (40 + 50) / 2 = 45.0; 2024-03-01 is outside."""
        visits = (
            VisitDayRecord(date(2024, 3, 1), 100),
            VisitDayRecord(date(2024, 3, 4), 40),
            VisitDayRecord(date(2024, 3, 5), 50),
        )
        assert estimate_patient_volume(make_dataset(visit_days=visits), TODAY) == 45.0

    def test_volume_from_treatment_rooms(self):
        """2 treatment rooms × 18 = 36; waiting room does not count."""
        rooms = (RoomRecord("Behandlungsraum"), RoomRecord("Prophylaxe"), RoomRecord("Wartezimmer"))
        assert estimate_patient_volume(make_dataset(rooms=rooms), TODAY) == 2 * PATIENTS_PER_ROOM

    def test_volume_ignores_non_treatment_rooms(self):
        """Only the exam room counts: 1 × 18 = 18.0; WC, hallway, kitchen, X-ray add nothing."""
        rooms = tuple(RoomRecord(label) for label in ("exam", "WC", "Flur", "Küche", "Röntgen"))
        assert estimate_patient_volume(make_dataset(rooms=rooms), TODAY) == 18.0

    def test_volume_without_treatment_rooms_is_zero(self):
        rooms = (RoomRecord("Lager"), RoomRecord("Abstellkammer"))
        assert estimate_patient_volume(make_dataset(rooms=rooms), TODAY) == 0.0

    def test_prophy_room_enables_hygienist(self):
        """exam + prophy: 2 × 18 = 36 patients/day and a hygienist target."""
        ds = make_dataset(staff=make_staff({"ZFA": 2}), rooms=(RoomRecord("exam"), RoomRecord("prophy")))
        staffing_input, _ = derive_staffing_input(ds, TODAY)
        assert "hygienist" in staffing_input.avg_service_minutes
        assert staffing_input.patient_volume == 36.0

    def test_receptionist_title_counted_as_reception(self):
        staff = (StaffRecord("r-0", "receptionist", fte=1.0), StaffRecord("pm-0", "Praxismanagerin", fte=0.5))
        assert current_fte_by_role(make_dataset(staff=staff)) == {"reception": 1.0, "administration": 0.5}

    def test_derive_without_prophylaxis_room(self, mixed_practice_dataset):
        staffing_input, current = derive_staffing_input(mixed_practice_dataset, TODAY)
        assert "hygienist" not in staffing_input.avg_service_minutes
        assert staffing_input.operating_hours == 8.0
        assert staffing_input.utilization_factor == 0.8
        assert current == {"doctor": 3.0, "assistant": 4.0, "reception": 2.0}

    def test_derive_with_prophylaxis_room(self):
        ds = make_dataset(
            staff=make_staff({"ZFA": 3}),
            rooms=(RoomRecord("exam"), RoomRecord("PZR")),
            operating_hours=9.5,
        )
        staffing_input, _ = derive_staffing_input(ds, TODAY)
        assert staffing_input.avg_service_minutes["hygienist"] == 10.0
        assert staffing_input.operating_hours == 9.5
        assert staffing_input.patient_volume == 36.0

    def test_derived_input_is_computable(self, mixed_practice_dataset):
        staffing_input, current = derive_staffing_input(mixed_practice_dataset, TODAY)
        result = compute_staffing(staffing_input, current)
        assert set(result.coverage) <= set(result.target_fte)
        assert result.coverage_score is not None
