"""Tests for the public generation endpoints."""

from fastapi.testclient import TestClient

from meal_planner.api.app import create_app
from meal_planner.containers import AppContainer
from meal_planner.domain.errors import TruncatedResponseError
from meal_planner.domain.generation import JobStatus
from meal_planner.domain.profile import UserProfile

from tests.conftest import (
    ROSTER,
    FakeOracle,
    InMemoryJobRepository,
    InMemoryMealPlanRepository,
    grocery_payload,
    prep_payload,
    reply,
    week_meals_payload,
)

_HEADERS = {"X-Service-Token": "service-token"}


def _queue_full_run(oracle: FakeOracle, profile: UserProfile) -> None:
    oracle.queue("select_core_ingredients", reply(ROSTER))
    oracle.queue("generate_meals", reply(week_meals_payload(profile)))
    oracle.queue("generate_grocery_list", reply(grocery_payload()))
    oracle.queue("generate_prep_sessions", reply(prep_payload()))


def test_health(container: AppContainer) -> None:
    client = TestClient(create_app(container))

    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_generation_requires_service_token(
    container: AppContainer, oracle: FakeOracle
) -> None:
    client = TestClient(create_app(container))

    response = client.post("/users/user-1/meal-plans", json={})

    assert response.status_code == 401
    assert oracle.calls == []


def test_generate_meal_plan_returns_stored_plan(
    container: AppContainer,
    oracle: FakeOracle,
    profile: UserProfile,
    plan_repository: InMemoryMealPlanRepository,
) -> None:
    _queue_full_run(oracle, profile)
    body = {
        "theme": {
            "display_name": "Tex-Mex",
            "description": "Smoky and bright",
            "ingredient_guidance": {"flavor_profile": "Chili and lime"},
        }
    }

    with TestClient(create_app(container)) as client:
        response = client.post(
            f"/users/{profile.id}/meal-plans", json=body, headers=_HEADERS
        )

    assert response.status_code == 200
    data = response.json()
    assert data["meal_plan_id"] in plan_repository.created
    assert plan_repository.theme_names[data["meal_plan_id"]] == "Tex-Mex"
    assert data["plan"]["title"] == "Lean Week"
    assert len(data["plan"]["days"]) == 7
    assert "THIS WEEK'S THEME: Tex-Mex" in oracle.prompts("select_core_ingredients")[0]


def test_generate_for_unknown_user_is_not_found(container: AppContainer) -> None:
    client = TestClient(create_app(container))

    response = client.post("/users/nobody/meal-plans", json={}, headers=_HEADERS)

    assert response.status_code == 404
    assert response.json() == {"error": "User profile not found."}


def test_truncated_generation_is_a_server_error(
    container: AppContainer, oracle: FakeOracle, profile: UserProfile
) -> None:
    oracle.queue("select_core_ingredients", reply(ROSTER))
    oracle.queue(
        "generate_meals",
        reply(week_meals_payload(profile), stop_reason="max_output_tokens"),
    )

    with TestClient(create_app(container)) as client:
        response = client.post(
            f"/users/{profile.id}/meal-plans", json={}, headers=_HEADERS
        )

    assert response.status_code == 500
    assert response.json() == {"error": TruncatedResponseError.reason}


def test_contract_violation_is_a_bad_gateway(
    container: AppContainer, oracle: FakeOracle, profile: UserProfile
) -> None:
    short_roster = {**ROSTER, "proteins": ROSTER["proteins"][:1]}
    oracle.queue("select_core_ingredients", reply(short_roster))

    with TestClient(create_app(container)) as client:
        response = client.post(
            f"/users/{profile.id}/meal-plans", json={}, headers=_HEADERS
        )

    assert response.status_code == 502
    assert "error" in response.json()


def test_meal_plan_job_runs_in_background(
    container: AppContainer,
    oracle: FakeOracle,
    profile: UserProfile,
    job_repository: InMemoryJobRepository,
) -> None:
    _queue_full_run(oracle, profile)

    with TestClient(create_app(container)) as client:
        started = client.post(
            f"/users/{profile.id}/meal-plan-jobs", json={}, headers=_HEADERS
        )
        job_id = started.json()["job"]["id"]
        polled = client.get(f"/meal-plan-jobs/{job_id}", headers=_HEADERS)

    assert started.status_code == 202
    assert started.json()["job"]["status"] == "pending"
    assert polled.status_code == 200
    assert polled.json()["job"]["id"] == job_id
    job = job_repository.jobs[job_id]
    assert job.status == JobStatus.COMPLETED
    assert job.meal_plan_id is not None


def test_unknown_job_is_not_found(container: AppContainer) -> None:
    client = TestClient(create_app(container))

    response = client.get("/meal-plan-jobs/missing", headers=_HEADERS)

    assert response.status_code == 404


def test_regenerate_prep_for_unknown_plan(
    container: AppContainer, oracle: FakeOracle, profile: UserProfile
) -> None:
    client = TestClient(create_app(container))

    response = client.post(
        f"/users/{profile.id}/meal-plans/missing/prep", headers=_HEADERS
    )

    assert response.status_code == 404
    assert oracle.calls == []
