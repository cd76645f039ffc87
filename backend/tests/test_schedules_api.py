from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from habitmap.main import create_app


@pytest.fixture()
def client():
    with TestClient(create_app()) as test_client:
        yield test_client


def test_expand_returns_sorted_window(client) -> None:
    response = client.post(
        "/schedules/expand",
        json={
            "schedule": {
                "span": "day",
                "span_value": 1,
                "days_indexed": [{"index": 1, "title": "Calm", "steps": [{"text": "Meditate"}]}],
            },
            "start": "2024-03-01",
            "view": "daily",
            "window_start": "2024-03-01",
            "window_end": "2024-03-05",
        },
        headers={"X-Request-Id": "expand-req"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["count"] == 5
    assert body["request_id"] == "expand-req"
    assert [item["date"] for item in body["occurrences"]] == [f"2024-03-0{day}" for day in range(1, 6)]
    assert all(item["steps"][0]["text"] == "Meditate" for item in body["occurrences"])


def test_expand_accepts_suggestion_payload_aliases(client) -> None:
    response = client.post(
        "/schedules/expand",
        json={
            "schedule": {
                "span": "day",
                "spanValue": 1,
                "habit_repeat_count": 3,
                "program": [
                    {"days_indexed": [{"index": 1, "content": [{"step": "Stretch", "clock": "07:00"}]}]}
                ],
            },
            "start": "2024-01-01",
        },
    )

    assert response.status_code == 200
    body = response.json()
    assert body["count"] == 3
    assert body["occurrences"][0]["steps"] == [
        {"text": "Stretch", "clock_time": "07:00", "weekday": None, "day_of_month": None}
    ]


def test_expand_applies_first_occurrence_push(client) -> None:
    response = client.post(
        "/schedules/expand",
        json={
            "schedule": {
                "repeat_count": 2,
                "days_indexed": [{"index": 1, "steps": [{"text": "Run", "clock_time": "09:00"}]}],
            },
            "start": "2024-01-01T18:00:00",
        },
    )

    assert response.status_code == 200
    assert [item["date"] for item in response.json()["occurrences"]] == ["2024-01-02", "2024-01-03"]


@pytest.mark.parametrize(
    "schedule",
    [
        {"repeat_count": 2, "schedule_horizon_days": 30},
        {"span_value": 0},
        {"days_indexed": [{"index": 1}, {"index": 1}]},
        {"days_indexed": [{"index": 0}]},
        {"span": "fortnight"},
        {"repeat_count": 10_001},
        {"schedule_horizon_days": 36_501},
    ],
)
def test_structural_violations_are_rejected(client, schedule) -> None:
    response = client.post("/schedules/expand", json={"schedule": schedule, "start": "2024-01-01"})

    assert response.status_code == 422


def test_reversed_window_is_rejected(client) -> None:
    response = client.post(
        "/schedules/expand",
        json={
            "schedule": {"days_indexed": [{"index": 1}]},
            "start": "2024-01-01",
            "window_start": "2024-02-01",
            "window_end": "2024-01-01",
        },
    )

    assert response.status_code == 422


def test_window_past_supported_range_is_rejected(client) -> None:
    response = client.post(
        "/schedules/expand",
        json={
            "schedule": {"days_indexed": [{"index": 1}]},
            "start": "2024-01-01",
            "window_start": "9999-12-01",
            "window_end": "9999-12-31",
        },
    )

    assert response.status_code == 422


def test_distant_window_is_expanded_from_window_start(client) -> None:
    response = client.post(
        "/schedules/expand",
        json={
            "schedule": {"days_indexed": [{"index": 1, "steps": [{"text": "Walk"}]}]},
            "start": "2024-01-01",
            "window_start": "2600-03-01",
            "window_end": "2600-03-05",
        },
    )

    assert response.status_code == 200
    assert [item["date"] for item in response.json()["occurrences"]] == [f"2600-03-0{day}" for day in range(1, 6)]
