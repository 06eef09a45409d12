"""HTTP adapter tests using FastAPI's TestClient."""

import pytest
from fastapi.testclient import TestClient

from factdrill.main import app


@pytest.fixture
def client(monkeypatch):
    monkeypatch.delenv("FACTDRILL_DB_PATH", raising=False)
    monkeypatch.setenv("FACTDRILL_RANDOM_SEED", "3")
    with TestClient(app) as test_client:
        yield test_client


SMALL_CONFIG = {
    "min_factor": 2,
    "max_factor": 5,
    "recent_problem_count": 3,
    "target_response_time": 5000,
}


class TestProblemEndpoints:
    def test_next_problem_within_range(self, client):
        response = client.post("/v1/problems/next", json={"user_id": 1, "config": SMALL_CONFIG})
        assert response.status_code == 200
        body = response.json()
        assert 2 <= body["factor1"] <= 5
        assert 2 <= body["factor2"] <= 5
        assert body["problem_type"] == "multiplication"
        assert body["missing_operand_position"] is None

    def test_missing_factor_uses_preset(self, client):
        response = client.post(
            "/v1/problems/next", json={"user_id": 1, "problem_type": "missing_factor"}
        )
        assert response.status_code == 200
        body = response.json()
        assert body["problem_type"] == "missing_factor"
        assert body["missing_operand_position"] in ("first", "second")
        assert max(body["factor1"], body["factor2"]) <= 12

    def test_attempt_then_state(self, client):
        problem = {"factor1": 4, "factor2": 3}
        response = client.post(
            "/v1/problems/attempts",
            json={
                "user_id": 7,
                "problem": problem,
                "correct": False,
                "response_time_ms": 2500,
                "config": SMALL_CONFIG,
            },
        )
        assert response.status_code == 200
        assert response.json()["weight"] == 15

        state = client.post(
            "/v1/problems/state", json={"user_id": 7, "problem": {"factor1": 3, "factor2": 4}}
        )
        assert state.status_code == 200
        assert state.json()["weight"] == 15
        assert state.json()["last_seen"] > 0

    def test_invalid_config_is_rejected(self, client):
        config = dict(SMALL_CONFIG, min_factor=9)
        response = client.post("/v1/problems/next", json={"user_id": 1, "config": config})
        assert response.status_code == 400

    def test_missing_position_fails_validation(self, client):
        response = client.post(
            "/v1/problems/state",
            json={
                "user_id": 1,
                "problem": {"factor1": 3, "factor2": 4, "problem_type": "missing_factor"},
            },
        )
        assert response.status_code == 422

    def test_mastery_grid(self, client):
        response = client.get("/v1/users/1/mastery")
        assert response.status_code == 200
        cells = response.json()["cells"]
        # factors 2..10: 9 squares plus 36 mixed pairs in both orders
        assert len(cells) == 81
        assert all(cell["weight"] == 10 for cell in cells)

    def test_problem_type_applies_to_partial_config(self, client):
        response = client.post(
            "/v1/problems/next",
            json={"user_id": 1, "problem_type": "missing_factor", "config": {"max_factor": 5}},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["problem_type"] == "missing_factor"
        assert body["missing_operand_position"] in ("first", "second")
        assert max(body["factor1"], body["factor2"]) <= 5

    def test_conflicting_problem_type_is_rejected(self, client):
        response = client.post(
            "/v1/problems/next",
            json={
                "user_id": 1,
                "problem_type": "multiplication",
                "config": {"problem_type": "missing_factor"},
            },
        )
        assert response.status_code == 400

    def test_missing_factor_attempt_uses_missing_factor_target(self, client):
        problem = {
            "factor1": 6,
            "factor2": 7,
            "problem_type": "missing_factor",
            "missing_operand_position": "second",
        }
        response = client.post(
            "/v1/problems/attempts",
            json={
                "user_id": 3,
                "problem": problem,
                "correct": True,
                "response_time_ms": 7500,
                "config": {"recent_problem_count": 5},
            },
        )
        assert response.status_code == 200
        # 7.5s is under the 8s missing factor target, so the fast decrease applies
        assert response.json()["weight"] == 7
