from pathlib import Path
from random import Random

import pytest
from fastapi.testclient import TestClient

from kanban_sim.api import app, board_from_env, get_board
from kanban_sim.board import SimulationBoard


@pytest.fixture
def board():
    return SimulationBoard(persist_path=None, random=lambda: 0)


@pytest.fixture
def client(board, monkeypatch):
    """Test client over one in-memory board; start-up never touches disk."""
    monkeypatch.setenv("KANBAN_SIM_STATE_PATH", "")
    app.dependency_overrides[get_board] = lambda: board

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


def add_workers(client, *specs):
    for worker_id, worker_type in specs:
        response = client.post("/workers", json={"id": worker_id, "type": worker_type})
        assert response.status_code == 201


# ---------------------------------------------------------------------------
# Cards
# ---------------------------------------------------------------------------


def test_create_card(client):
    response = client.post("/cards", json={})

    assert response.status_code == 201
    data = response.json()
    assert data["id"] == "A"
    assert data["stage"] == "options"
    assert data["content"] == "Create user interface"
    assert data["workItems"]["red"] == {"total": 1, "completed": 0}
    assert data["assignedWorkers"] == []


def test_create_card_with_content(client):
    response = client.post("/cards", json={"content": "Ship it"})
    assert response.json()["content"] == "Ship it"


def test_create_card_content_too_long(client):
    response = client.post("/cards", json={"content": "x" * 201})
    assert response.status_code == 422


def test_get_card(client):
    client.post("/cards", json={})

    assert client.get("/cards/A").json()["id"] == "A"
    assert client.get("/cards/Q").status_code == 404


def test_list_cards_by_stage(client):
    for _ in range(3):
        client.post("/cards", json={})
    client.post("/cards/B/move")

    all_ids = [c["id"] for c in client.get("/cards").json()]
    active = client.get("/cards", params={"stage": "red-active"}).json()

    assert all_ids == ["A", "B", "C"]
    assert [c["id"] for c in active] == ["B"]
    assert client.get("/cards", params={"stage": "purple"}).status_code == 422


def test_move_card(client):
    client.post("/cards", json={})

    response = client.post("/cards/A/move")

    assert response.status_code == 200
    assert response.json()["card"]["stage"] == "red-active"
    assert response.json()["alertMessage"] is None


def test_move_card_refused_by_wip(client):
    client.put("/wip-limits/redActive", json={"max": 1})
    client.post("/cards", json={})
    client.post("/cards", json={})
    client.post("/cards/A/move")

    response = client.post("/cards/B/move")

    assert response.status_code == 200
    assert response.json()["card"]["stage"] == "options"
    assert response.json()["alertMessage"] == (
        "Cannot move card to Red Active: Max WIP limit of 1 would be exceeded."
    )


def test_move_missing_card(client):
    assert client.post("/cards/Q/move").status_code == 404


def test_block_and_unblock(client):
    client.post("/cards", json={})

    blocked = client.post("/cards/A/block", json={"reason": "legal review"}).json()
    move = client.post("/cards/A/move").json()
    unblocked = client.post("/cards/A/unblock").json()

    assert blocked["isBlocked"] is True
    assert blocked["blockReason"] == "legal review"
    assert move["card"]["stage"] == "options"
    assert move["alertMessage"] is None
    assert unblocked["isBlocked"] is False
    assert unblocked["blockReason"] is None


# ---------------------------------------------------------------------------
# Workers
# ---------------------------------------------------------------------------


def test_add_worker(client):
    response = client.post("/workers", json={"id": "R1", "type": "red"})

    assert response.status_code == 201
    assert response.json() == {"id": "R1", "type": "red"}
    assert client.get("/board").json()["workers"] == [{"id": "R1", "type": "red"}]


def test_add_duplicate_worker(client):
    add_workers(client, ("R1", "red"))
    response = client.post("/workers", json={"id": "R1", "type": "blue"})
    assert response.status_code == 422


def test_add_worker_invalid_type(client):
    response = client.post("/workers", json={"id": "Y1", "type": "yellow"})
    assert response.status_code == 422


def test_assign_worker(client):
    add_workers(client, ("R1", "red"))
    client.post("/cards", json={})
    client.post("/cards/A/move")

    response = client.post("/cards/A/workers", json={"workerId": "R1"})

    assert response.status_code == 200
    assert response.json()["assignedWorkers"] == [{"id": "R1", "type": "red"}]


def test_assign_unknown_worker(client):
    client.post("/cards", json={})
    response = client.post("/cards/A/workers", json={"workerId": "R9"})
    assert response.status_code == 404


def test_remove_worker(client):
    add_workers(client, ("G1", "green"))

    assert client.delete("/workers/G1").status_code == 204
    assert client.delete("/workers/G1").status_code == 404


# ---------------------------------------------------------------------------
# Days
# ---------------------------------------------------------------------------


def test_advance_day(client):
    client.post("/cards", json={})

    response = client.post("/days/advance")

    assert response.status_code == 200
    assert response.json()["currentDay"] == 1
    assert [d["day"] for d in response.json()["historicalData"]] == [0, 1]


def test_run_policy_to_done(client):
    add_workers(client, ("R1", "red"), ("B1", "blue"), ("G1", "green"))
    client.post("/cards", json={})

    for _ in range(3):
        response = client.post("/days/policy", json={"policyType": "siloted-expert"})
        assert response.status_code == 200

    card = response.json()["cards"][0]
    assert response.json()["currentDay"] == 3
    assert card["stage"] == "done"
    assert card["completionDay"] == 3


def test_run_policy_default_type(client):
    assert client.post("/days/policy", json={}).json()["currentDay"] == 1


def test_unknown_policy(client):
    response = client.post("/days/policy", json={"policyType": "push"})
    assert response.status_code == 422


def test_history(client):
    client.post("/cards", json={})
    client.post("/days/advance")

    history = client.get("/history").json()

    assert [d["day"] for d in history] == [0, 1]
    assert history[1]["columnData"]["options"] == 1
    assert history[1]["columnData"]["redActive"] == 0


# ---------------------------------------------------------------------------
# Settings and undo
# ---------------------------------------------------------------------------


def test_set_wip_limit(client):
    response = client.put("/wip-limits/green", json={"min": 1, "max": 3})

    assert response.status_code == 200
    assert response.json()["green"] == {"min": 1, "max": 3}
    assert client.get("/board").json()["wipLimits"]["green"] == {"min": 1, "max": 3}


def test_set_wip_limit_invalid(client):
    assert client.put("/wip-limits/green", json={"min": 4, "max": 2}).status_code == 422
    assert client.put("/wip-limits/green", json={"min": -1}).status_code == 422
    assert client.put("/wip-limits/purple", json={"max": 2}).status_code == 422


def test_undo_redo(client):
    client.post("/cards", json={})

    undone = client.post("/undo")
    redone = client.post("/redo")

    assert undone.status_code == 200
    assert undone.json()["cards"] == []
    assert [c["id"] for c in redone.json()["cards"]] == ["A"]


def test_undo_with_nothing_to_undo(client):
    assert client.post("/undo").status_code == 409
    assert client.post("/redo").status_code == 409


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


def test_board_from_env(monkeypatch, tmp_path):
    state = tmp_path / "state.json"
    monkeypatch.setenv("KANBAN_SIM_STATE_PATH", str(state))
    monkeypatch.setenv("KANBAN_SIM_SEED", "7")
    monkeypatch.setenv("KANBAN_SIM_HISTORY_DEPTH", "5")

    board = board_from_env()

    assert board._persist_path == Path(state)
    assert board._history.max_depth == 5
    assert board._random() == Random(7).random()


def test_board_from_env_without_persistence(monkeypatch):
    monkeypatch.setenv("KANBAN_SIM_STATE_PATH", "")
    monkeypatch.delenv("KANBAN_SIM_SEED", raising=False)

    assert board_from_env()._persist_path is None


# ---------------------------------------------------------------------------
# Metrics and undo labels
# ---------------------------------------------------------------------------


def test_metrics_on_a_new_board(client):
    data = client.get("/metrics").json()

    assert data["currentDay"] == 0
    assert data["completed"] == 0
    assert data["throughputByDay"] == []
    assert data["predictedLeadTime"] == 0.0
    assert [a["stage"] for a in data["agesByStage"]] == [
        "options",
        "red-active",
        "red-finished",
        "blue-active",
        "blue-finished",
        "green",
        "done",
    ]


def test_metrics_after_a_card_is_done(client):
    add_workers(client, ("R1", "red"), ("B1", "blue"), ("G1", "green"))
    client.post("/cards", json={})
    for _ in range(3):
        client.post("/days/policy", json={})

    data = client.get("/metrics").json()

    assert data["currentDay"] == 3
    assert data["completed"] == 1
    assert data["throughputByDay"] == [
        {"day": 1, "count": 0},
        {"day": 2, "count": 0},
        {"day": 3, "count": 1},
    ]
    assert data["rollingThroughput"] == []
    assert data["totalWip"] == 0
    assert data["agesByStage"][-1] == {"stage": "done", "ages": [3]}


def test_history_actions(client):
    client.post("/cards", json={})
    client.post("/cards/A/move")

    assert client.get("/history/actions").json() == [
        "start",
        "add card A",
        "move card A",
    ]
