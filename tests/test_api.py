"""Tests for the HTTP API."""

import json

from fastapi.testclient import TestClient

from pantry_planner.api.app import create_app

OATS_REQUEST = {
    "foods": [
        {
            "name": "Oats",
            "nutrientsPerServing": {"calories": 500},
            "servingsOnHand": 100,
        }
    ],
    "targets": {"calories": {"min": 2000, "max": 2000}},
    "horizonDays": 1,
    "startDate": "2025-03-03",
    "seed": 3,
}


def test_health(container) -> None:
    client = TestClient(create_app(container))

    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_nutrients_lists_registry(container) -> None:
    client = TestClient(create_app(container))

    response = client.get("/nutrients")

    body = response.json()
    keys = [entry["key"] for entry in body["nutrients"]]
    assert "calories" in keys
    assert "trans_fat" in keys
    assert body["defaultTargets"]["calories"] == {"min": 1900, "max": 2100}
    assert "trans_fat" not in body["defaultTargets"]


def test_create_plan_returns_schedule(container) -> None:
    client = TestClient(create_app(container))

    response = client.post("/plans", json=OATS_REQUEST)

    assert response.status_code == 200
    body = response.json()
    assert body["feasible"] is True
    assert body["dailySchedule"] == [["Oats"] * 4]
    assert body["consumption"] == {"Oats": 4}
    assert body["consumptionByOrigin"] == {"Oats": {"onHand": 4, "virtual": 0}}
    assert body["shoppingList"] == []
    assert body["wasteReport"] == {"definite": [], "atRisk": []}
    assert body["startDate"] == "2025-03-03"
    assert body["dailyTotals"][0]["calories"] == 2000.0
    assert body["meals"][0]["Breakfast"] == ["Oats"]


def test_create_plan_reports_shopping(container) -> None:
    client = TestClient(create_app(container))
    payload = {
        "foods": [
            {
                "name": "Milk",
                "nutrientsPerServing": {"calories": 500},
                "shoppable": True,
                "servingsPerPackage": 1,
            }
        ],
        "targets": {"calories": {"min": 1000, "max": 1000}},
        "horizonDays": 2,
        "startDate": "2025-03-03",
        "allowShopping": True,
    }

    body = client.post("/plans", json=payload).json()

    assert body["shoppingList"] == [
        {
            "foodName": "Milk",
            "packagesToBuy": 4,
            "servingsPerPackage": 1,
            "totalServings": 4,
        }
    ]


def test_create_plan_infeasible_is_not_an_error(container) -> None:
    client = TestClient(create_app(container))
    payload = {"foods": [], "targets": {}, "horizonDays": 2}

    response = client.post("/plans", json=payload)

    assert response.status_code == 200
    assert response.json()["feasible"] is False
    assert response.json()["dailySchedule"] == [[], []]


def test_create_plan_rejects_bad_horizon(container) -> None:
    client = TestClient(create_app(container))

    response = client.post("/plans", json={**OATS_REQUEST, "horizonDays": 0})

    assert response.status_code == 422
    assert "Horizon" in response.json()["detail"]


def test_create_plan_rejects_unknown_nutrient(container) -> None:
    client = TestClient(create_app(container))
    payload = {**OATS_REQUEST, "targets": {"unobtainium": {"min": 1}}}

    response = client.post("/plans", json=payload)

    assert response.status_code == 422
    assert response.json()["detail"] == "Unknown nutrient: unobtainium"


def test_create_plan_rejects_two_budgets(container) -> None:
    client = TestClient(create_app(container))
    payload = {
        **OATS_REQUEST,
        "searchBudget": {"generationsOrRestarts": 5, "wallClockSeconds": 1},
    }

    response = client.post("/plans", json=payload)

    assert response.status_code == 422


def test_stream_plan_emits_ndjson(container) -> None:
    client = TestClient(create_app(container))
    payload = {**OATS_REQUEST, "searchBudget": {"generationsOrRestarts": 10}}

    response = client.post("/plans/stream", json=payload)

    assert response.status_code == 200
    lines = [json.loads(line) for line in response.text.splitlines() if line]
    assert [line["type"] for line in lines] == ["progress", "progress", "result"]
    assert lines[0]["generation"] == 0
    assert lines[0]["budgetMs"] is None
    assert lines[-1]["dailySchedule"] == [["Oats"] * 4]


def test_stream_plan_rejects_bad_horizon(container) -> None:
    client = TestClient(create_app(container))

    response = client.post("/plans/stream", json={**OATS_REQUEST, "horizonDays": -1})

    assert response.status_code == 422


def test_stream_plan_reports_errors_inline(container) -> None:
    client = TestClient(create_app(container))
    payload = {**OATS_REQUEST, "targets": {"unobtainium": {"min": 1}}}

    response = client.post("/plans/stream", json=payload)

    lines = [json.loads(line) for line in response.text.splitlines() if line]
    assert lines == [{"type": "error", "detail": "Unknown nutrient: unobtainium"}]


def test_commit_inventory(container) -> None:
    client = TestClient(create_app(container))
    payload = {
        "foods": [
            {
                "name": "Oats",
                "nutrientsPerServing": {"calories": 500},
                "servingsOnHand": 5,
            },
            {"name": "Eggs", "servingsOnHand": 1, "shoppable": True},
        ],
        "consumption": {"Oats": 4, "Eggs": 3},
        "purchased": {"Eggs": 6},
    }

    response = client.post("/inventory/commit", json=payload)

    assert response.status_code == 200
    foods = {food["name"]: food for food in response.json()["foods"]}
    assert foods["Oats"]["servingsOnHand"] == 1
    assert foods["Eggs"]["servingsOnHand"] == 4
    assert foods["Eggs"]["shoppable"] is True


def test_asgi_module_exposes_app() -> None:
    from pantry_planner.api.asgi import app

    client = TestClient(app)

    assert client.get("/health").json() == {"status": "ok"}


def test_create_plan_rejects_malformed_already_consumed(container) -> None:
    client = TestClient(create_app(container))
    payload = {
        **OATS_REQUEST,
        "alreadyConsumed": {"nutrients": {"kalories": 1500}, "itemCounts": {}},
    }

    response = client.post("/plans", json=payload)

    assert response.status_code == 422
    assert response.json()["detail"] == "Unknown nutrient: kalories"
