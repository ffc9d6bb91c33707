"""
test_hr_routes.py — HTTP tests for the HR endpoints (FastAPI TestClient).

Tests cover:
  - Auth: missing token, invalid token → 401; foreign practice → 403;
    unknown practice → 404
  - GET /hr/overview: kMin boundary (2 → 400, 3 → 200), malformed dates,
    unknown level, ROLE → PRACTICE fallback with warning, error envelope
  - GET /hr/staffing-demand: automatic input from rooms and staff
  - POST /hr/staffing-demand: what-if input, unknown role, malformed body,
    unknown fields
  - /health, /metrics and the security headers

The SQL repository is replaced by FakeHrRepository (see conftest.py).
"""

import json

import pytest

from conftest import PERIOD_END, PERIOD_START, PRACTICE_ID, make_dataset, make_staff, make_token
from app.services.hr_types import RoomRecord

OVERVIEW_URL = f"/api/practices/{PRACTICE_ID}/hr/overview"
STAFFING_URL = f"/api/practices/{PRACTICE_ID}/hr/staffing-demand"
PERIOD_PARAMS = {"periodStart": PERIOD_START.isoformat(), "periodEnd": PERIOD_END.isoformat()}


@pytest.fixture
def seeded_repo(fake_repo, mixed_practice_dataset):
    fake_repo.put(mixed_practice_dataset)
    return fake_repo


# ===========================================================================
# Class 1: Access control
# ===========================================================================

class TestAccessControl:

    def test_missing_token_is_401(self, client, seeded_repo):
        resp = client.get(OVERVIEW_URL)
        assert resp.status_code == 401
        assert resp.json()["code"] == "UNAUTHENTICATED"
        assert resp.headers["WWW-Authenticate"] == "Bearer"

    def test_invalid_token_is_401(self, client, seeded_repo):
        resp = client.get(OVERVIEW_URL, headers={"Authorization": "Bearer not-a-jwt"})
        assert resp.status_code == 401
        assert resp.json()["code"] == "INVALID_TOKEN"

    def test_unknown_user_is_401(self, client, seeded_repo):
        headers = {"Authorization": f"Bearer {make_token('33333333-3333-3333-3333-333333333333')}"}
        assert client.get(OVERVIEW_URL, headers=headers).status_code == 401

    def test_foreign_practice_is_403(self, client, seeded_repo, other_user_headers):
        resp = client.get(OVERVIEW_URL, headers=other_user_headers)
        assert resp.status_code == 403
        assert resp.json()["code"] == "FORBIDDEN"

    def test_unknown_practice_is_404(self, client, seeded_repo, owner_headers):
        resp = client.get("/api/practices/does-not-exist/hr/overview", headers=owner_headers)
        assert resp.status_code == 404
        assert resp.json()["code"] == "PRACTICE_NOT_FOUND"

    def test_no_data_loaded_before_auth(self, client, seeded_repo, other_user_headers):
        client.get(OVERVIEW_URL, headers=other_user_headers)
        client.get(STAFFING_URL, headers=other_user_headers)
        assert seeded_repo.load_calls == []

    def test_staffing_post_requires_auth(self, client, seeded_repo):
        body = {"patientVolume": 100, "operatingHours": 8, "avgServiceMinutes": {"doctor": 20}}
        assert client.post(STAFFING_URL, json=body).status_code == 401


# ===========================================================================
# Class 2: Overview endpoint
# ===========================================================================

class TestOverviewEndpoint:

    def test_k_min_two_rejected(self, client, seeded_repo, owner_headers):
        resp = client.get(OVERVIEW_URL, params={"kMin": "2"}, headers=owner_headers)
        assert resp.status_code == 400
        body = resp.json()
        assert body["code"] == "HR_VALIDATION_ERROR"
        assert body["error"] == "Validation error"
        assert "kMin" in body["message"]
        assert seeded_repo.load_calls == []

    def test_k_min_three_accepted(self, client, seeded_repo, owner_headers):
        resp = client.get(OVERVIEW_URL, params={"kMin": "3", **PERIOD_PARAMS}, headers=owner_headers)
        assert resp.status_code == 200
        body = resp.json()
        assert body["compliance"]["kMin"] == 3
        assert any("recommended minimum" in w for w in body["warnings"])

    @pytest.mark.parametrize("params", [
        {"kMin": "abc"},
        {"periodStart": "2024-13-01"},
        {"periodEnd": "31.03.2024"},
        {"periodStart": "2024-03-31", "periodEnd": "2024-03-01"},
        {"level": "person"},
    ])
    def test_invalid_query_is_400(self, client, seeded_repo, owner_headers, params):
        resp = client.get(OVERVIEW_URL, params=params, headers=owner_headers)
        assert resp.status_code == 400
        assert resp.json()["code"] == "HR_VALIDATION_ERROR"

    def test_practice_level_default(self, client, seeded_repo, owner_headers):
        resp = client.get(OVERVIEW_URL, params=PERIOD_PARAMS, headers=owner_headers)
        assert resp.status_code == 200
        body = resp.json()
        assert body["aggregationLevel"] == "practice"
        assert body["periodStart"] == "2024-03-04"
        assert body["periodEnd"] == "2024-03-31"
        assert len(body["snapshots"]) == 1
        assert body["snapshots"][0]["groupSize"] == 9
        practice_id, period, _ = seeded_repo.load_calls[0]
        assert practice_id == PRACTICE_ID
        assert period.start == PERIOD_START

    def test_role_level_falls_back_with_warning(self, client, seeded_repo, owner_headers):
        """Empfang × 2 is below k=3 → ROLE request answered at PRACTICE level."""
        resp = client.get(OVERVIEW_URL, params={"level": "role", **PERIOD_PARAMS}, headers=owner_headers)
        assert resp.status_code == 200
        body = resp.json()
        assert body["requestedLevel"] == "role"
        assert body["aggregationLevel"] == "practice"
        assert any("reception" in w for w in body["warnings"])
        assert all(s["groupSize"] >= 3 for s in body["snapshots"])

    def test_role_level_released(self, client, fake_repo, owner_headers):
        fake_repo.put(make_dataset(staff=make_staff({"ZFA": 4, "Zahnarzt": 3})))
        resp = client.get(OVERVIEW_URL, params={"level": "role", **PERIOD_PARAMS}, headers=owner_headers)
        body = resp.json()
        assert body["aggregationLevel"] == "role"
        assert [s["groupKey"] for s in body["snapshots"]] == ["doctor", "assistant"]

    def test_response_has_no_staff_ids(self, client, seeded_repo, owner_headers):
        resp = client.get(OVERVIEW_URL, params={"level": "role", **PERIOD_PARAMS}, headers=owner_headers)
        text = json.dumps(resp.json())
        assert "zfa-0" not in text
        assert "staffId" not in text

    def test_fallback_counted_in_metrics(self, client, seeded_repo, owner_headers):
        client.get(OVERVIEW_URL, params={"level": "role"}, headers=owner_headers)
        metrics = client.get("/metrics").json()
        assert metrics["level_fallbacks"] == 1
        assert metrics["computations"]["hr_overview"] == 1


# ===========================================================================
# Class 3: Staffing demand endpoints
# ===========================================================================

class TestStaffingDemandEndpoints:

    def test_get_automatic(self, client, fake_repo, owner_headers):
        """2 treatment rooms × 18 patients = 36 patients/day; no prophylaxis room."""
        fake_repo.put(make_dataset(
            staff=make_staff({"ZFA": 4, "Zahnarzt": 2}),
            rooms=(RoomRecord("Behandlungsraum"), RoomRecord("Behandlungsraum"), RoomRecord("Empfang")),
        ))
        resp = client.get(STAFFING_URL, headers=owner_headers)
        assert resp.status_code == 200
        body = resp.json()
        assert body["input"]["patientVolume"] == 36.0
        assert "hygienist" not in body["input"]["avgServiceMinutes"]
        assert body["current"] == {"doctor": 2.0, "assistant": 4.0}
        assert body["engineVersion"] == "2.0.0"
        assert body["result"]["engineVersion"] == "2.0.0"
        assert set(body["result"]["coverage"]) == {"doctor", "assistant", "reception", "administration"}
        _, period, visits_since = fake_repo.load_calls[0]
        assert period is None
        assert visits_since is not None

    def test_post_what_if(self, client, seeded_repo, owner_headers):
        body = {
            "patientVolume": 100,
            "operatingHours": 8,
            "avgServiceMinutes": {"doctor": 20},
            "utilizationFactor": 0.8,
            "current": {"doctor": 4.0},
        }
        resp = client.post(STAFFING_URL, json=body, headers=owner_headers)
        assert resp.status_code == 200
        result = resp.json()["result"]
        assert result["targetFte"] == {"doctor": 5.21}
        assert result["gaps"] == {"doctor": -1.21}
        assert result["coverageScore"] == 0.77
        assert result["flags"][0]["severity"] == "red"
        assert seeded_repo.load_calls == []

    def test_post_without_current(self, client, seeded_repo, owner_headers):
        body = {"patientVolume": 100, "operatingHours": 8, "avgServiceMinutes": {"doctor": 20}}
        resp = client.post(STAFFING_URL, json=body, headers=owner_headers)
        result = resp.json()["result"]
        assert result["gaps"] is None
        assert result["coverageScore"] is None
        assert result["flags"] == []

    def test_post_unknown_role_is_400(self, client, seeded_repo, owner_headers):
        body = {"patientVolume": 100, "operatingHours": 8, "avgServiceMinutes": {"surgeon": 30}}
        resp = client.post(STAFFING_URL, json=body, headers=owner_headers)
        assert resp.status_code == 400
        assert "Unknown role" in resp.json()["message"]

    def test_post_zero_hours_is_400(self, client, seeded_repo, owner_headers):
        body = {"patientVolume": 100, "operatingHours": 0, "avgServiceMinutes": {"doctor": 20}}
        assert client.post(STAFFING_URL, json=body, headers=owner_headers).status_code == 400

    def test_post_malformed_body_is_400(self, client, seeded_repo, owner_headers):
        resp = client.post(STAFFING_URL, json={"patientVolume": "many"}, headers=owner_headers)
        assert resp.status_code == 400
        assert resp.json()["code"] == "HR_VALIDATION_ERROR"

    def test_post_unknown_field_is_400(self, client, seeded_repo, owner_headers):
        body = {
            "patientVolume": 100, "operatingHours": 8, "avgServiceMinutes": {"doctor": 20},
            "staffId": "zfa-0",
        }
        assert client.post(STAFFING_URL, json=body, headers=owner_headers).status_code == 400


# ===========================================================================
# Class 4: Operational endpoints and headers
# ===========================================================================

class TestOperational:

    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "active"

    def test_metrics_shape(self, client):
        body = client.get("/metrics").json()
        for key in ("uptime_seconds", "computations", "avg_duration_ms",
                    "level_fallbacks", "error_count", "error_count_by_code"):
            assert key in body

    def test_errors_counted_by_code(self, client, seeded_repo, owner_headers):
        client.get(OVERVIEW_URL, params={"kMin": "1"}, headers=owner_headers)
        client.get(OVERVIEW_URL)
        body = client.get("/metrics").json()
        assert body["error_count_by_code"]["HR_VALIDATION_ERROR"] == 1
        assert body["error_count_by_code"]["UNAUTHENTICATED"] == 1

    def test_security_headers(self, client, seeded_repo, owner_headers):
        resp = client.get(OVERVIEW_URL, headers=owner_headers)
        assert resp.headers["Cache-Control"] == "no-store"
        assert resp.headers["X-Content-Type-Options"] == "nosniff"
        assert "X-Request-ID" in resp.headers

    def test_unknown_route_uses_envelope(self, client):
        resp = client.get("/api/unknown")
        assert resp.status_code == 404
        assert resp.json()["code"] == "HTTP_404"

    def test_request_id_reused_when_well_formed(self, client):
        resp = client.get("/health", headers={"X-Request-ID": "trace-12345678"})
        assert resp.headers["X-Request-ID"] == "trace-12345678"

    def test_malformed_request_id_replaced(self, client):
        resp = client.get("/health", headers={"X-Request-ID": "bad id!"})
        assert resp.headers["X-Request-ID"] != "bad id!"
