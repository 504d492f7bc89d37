"""Tests for the HTTP API."""

from fastapi.testclient import TestClient

from menu_planner.api.app import create_app
from tests.conftest import InMemoryShoppingListRepository

HEADERS = {"X-Admin-Token": "admin-token"}
SLOTS = [{"date": "2025-01-01", "meal_type": "dinner"}]


def test_health(container) -> None:
    client = TestClient(create_app(container))

    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_requires_service_token(container) -> None:
    client = TestClient(create_app(container))

    missing = client.post("/menus/requests", json={})
    wrong = client.get("/shopping-lists/requests/x", headers={"X-Admin-Token": "no"})

    assert missing.status_code == 401
    assert wrong.status_code == 401


def test_menu_request_runs_to_completion(container) -> None:
    client = TestClient(create_app(container))

    created = client.post(
        "/menus/requests",
        headers=HEADERS,
        json={"user_id": "user-1", "start_date": "2025-01-01", "target_slots": SLOTS},
    )
    request_id = created.json()["request_id"]
    state = client.get(f"/menus/requests/{request_id}/status", headers=HEADERS)
    result = client.get(f"/menus/requests/{request_id}/result", headers=HEADERS)

    assert created.status_code == 202
    assert created.json()["status"] == "queued"
    assert state.json()["status"] == "completed"
    assert state.json()["progress"]["message"] == "completed"
    meal = result.json()["generated_meals"]["2025-01-01:dinner"]
    assert meal["nutrition"]["calories_kcal"] == 375
    assert result.json()["stats"]["generated_slots"] == 1


def test_menu_request_validation(container) -> None:
    client = TestClient(create_app(container))

    bad_slots = client.post(
        "/menus/requests",
        headers=HEADERS,
        json={
            "user_id": "user-1",
            "start_date": "2025-01-01",
            "target_slots": [{"date": "someday", "meal_type": "dinner"}],
        },
    )
    bad_date = client.post(
        "/menus/requests",
        headers=HEADERS,
        json={"user_id": "user-1", "start_date": "01/01/2025", "target_slots": SLOTS},
    )

    assert bad_slots.status_code == 400
    assert bad_date.status_code == 422


def test_menu_result_before_completion(container) -> None:
    client = TestClient(create_app(container))
    job = container.orchestrator.submit(
        user_id="user-1", start_date="2025-01-01", target_slots=SLOTS
    )

    pending = client.get(f"/menus/requests/{job.id}/result", headers=HEADERS)
    unknown = client.get("/menus/requests/missing/status", headers=HEADERS)

    assert pending.status_code == 409
    assert pending.json()["detail"] == "job is not completed"
    assert unknown.status_code == 404


def test_menu_resume_and_cancel(container) -> None:
    client = TestClient(create_app(container))
    resumed_job = container.orchestrator.submit(
        user_id="user-1", start_date="2025-01-01", target_slots=SLOTS
    )
    cancelled_job = container.orchestrator.submit(
        user_id="user-1", start_date="2025-01-02", target_slots=SLOTS
    )

    resumed = client.post(f"/menus/requests/{resumed_job.id}/resume", headers=HEADERS)
    cancelled = client.post(
        f"/menus/requests/{cancelled_job.id}/cancel", headers=HEADERS
    )

    assert resumed.status_code == 202
    assert container.orchestrator.status(resumed_job.id)["status"] == "completed"
    assert cancelled.json() == {
        "request_id": cancelled_job.id,
        "status": "failed",
        "error": "cancelled by request",
    }


def test_resolve_ingredients(container) -> None:
    client = TestClient(create_app(container))

    response = client.post(
        "/ingredients/resolve",
        headers=HEADERS,
        json={
            "ingredients": [
                {"name": "豚ひき肉", "amount_g": 150},
                {"name": "水", "amount_g": 200},
            ]
        },
    )

    data = response.json()
    assert response.status_code == 200
    assert data["nutrition"]["calories_kcal"] == 375
    assert data["stats"]["mapping_rate"] == 1.0
    assert [match["skip"] for match in data["matches"]] == [False, True]
    assert data["matches"][0]["method"] == "exact"


def test_shopping_regenerate_and_status(container) -> None:
    client = TestClient(create_app(container))
    lists = container.shopping_service.lists
    assert isinstance(lists, InMemoryShoppingListRepository)
    lists.planned_meals = [
        {
            "date": "2025-01-06",
            "meal_type": "dinner",
            "dishes": [{"name": "鍋", "ingredients": ["白菜 200g", "豚バラ肉 150g"]}],
        }
    ]

    created = client.post(
        "/shopping-lists/regenerate",
        headers=HEADERS,
        json={
            "user_id": "user-1",
            "start_date": "2025-01-06",
            "end_date": "2025-01-12",
            "servings_config": {"default": 2},
        },
    )
    request_id = created.json()["request_id"]
    state = client.get(f"/shopping-lists/requests/{request_id}", headers=HEADERS)

    assert created.status_code == 202
    assert state.json()["status"] == "completed"
    assert state.json()["stats"]["output_count"] == 2
    assert state.json()["stats"]["total_servings"] == 2
    items = lists.lists[state.json()["shopping_list_id"]]
    displays = [item.quantity_variants[0].display for item in items]
    assert displays == ["400g", "300g"]


def test_shopping_regenerate_validation(container) -> None:
    client = TestClient(create_app(container))

    reversed_range = client.post(
        "/shopping-lists/regenerate",
        headers=HEADERS,
        json={
            "user_id": "user-1",
            "start_date": "2025-01-12",
            "end_date": "2025-01-06",
        },
    )
    unknown = client.get("/shopping-lists/requests/missing", headers=HEADERS)

    assert reversed_range.status_code == 400
    assert unknown.status_code == 404


def test_normalize_items(container) -> None:
    client = TestClient(create_app(container))

    response = client.post(
        "/shopping-lists/normalize",
        headers=HEADERS,
        json={
            "existing": [
                {"item_name": "milk", "quantity": "1 carton", "source": "manual"}
            ],
            "new": [{"item_name": "牛乳", "quantity": "500 ml"}],
        },
    )

    items = response.json()["items"]
    assert response.status_code == 200
    assert len(items) == 1
    assert items[0]["item_name"] == "milk"
    assert items[0]["source"] == "manual"
    assert items[0]["category"] == "乳製品"
    assert [variant["display"] for variant in items[0]["quantity_variants"]] == [
        "1 carton",
        "500ml",
    ]


def test_normalize_keeps_unparseable_quantity_text(container) -> None:
    client = TestClient(create_app(container))

    response = client.post(
        "/shopping-lists/normalize",
        headers=HEADERS,
        json={"new": [{"item_name": "卵", "quantity": "1/0個"}]},
    )

    assert response.status_code == 200
    variant = response.json()["items"][0]["quantity_variants"][0]
    assert variant == {"display": "1/0個", "unit": "", "value": None}


def test_ultimate_menu_request_reports_six_steps(container) -> None:
    client = TestClient(create_app(container))

    created = client.post(
        "/menus/requests",
        headers=HEADERS,
        json={
            "user_id": "user-1",
            "start_date": "2025-01-01",
            "target_slots": SLOTS,
            "ultimate_mode": True,
        },
    )
    request_id = created.json()["request_id"]
    state = client.get(f"/menus/requests/{request_id}/status", headers=HEADERS)
    result = client.get(f"/menus/requests/{request_id}/result", headers=HEADERS)

    assert state.json()["status"] == "completed"
    assert state.json()["total_steps"] == 6
    assert state.json()["ultimate_mode"] is True
    assert state.json()["progress"]["message"] == "completed: 彩りが豊かです"
    assert "2025-01-01" in result.json()["feedback"]
