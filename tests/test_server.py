import os

import pytest

from server import create_app


@pytest.fixture
def app(tmp_path):
    app = create_app(str(tmp_path / "net.json"))
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


def test_new_battle_returns_a_snapshot(client):
    resp = client.post("/battle/new", json={"player": True, "seed": 1})
    assert resp.status_code == 200
    snap = resp.get_json()
    assert len(snap["tanks"]) == 4
    assert snap["tanks"][0]["name"] == "Player"
    assert snap["tick"] == 0
    assert resp.headers["Access-Control-Allow-Origin"] == "*"


def test_step_advances_the_battle(client):
    client.post("/battle/new", json={"player": False, "seed": 2})
    snap = client.post("/battle/step", json={"ticks": 5}).get_json()
    assert snap["tick"] == 5
    assert client.get("/battle/state").get_json()["tick"] == 5


def test_player_fires_once_per_turn(client):
    client.post("/battle/new", json={"player": True, "seed": 3})
    client.post("/battle/step", json={"ticks": 1})
    first = client.post("/battle/fire", json={"weapon": "mega", "angle": 70, "power": 0.9})
    second = client.post("/battle/fire", json={"weapon": "mega", "angle": 70, "power": 0.9})
    assert first.get_json() == {"fired": True}
    assert second.get_json() == {"fired": False}


def test_unknown_weapon_is_a_bad_request(client):
    client.post("/battle/new", json={"player": True, "seed": 4})
    resp = client.post("/battle/fire", json={"weapon": "railgun"})
    assert resp.status_code == 400
    assert "railgun" in resp.get_json()["error"]


def test_status_before_training(client):
    status = client.get("/train/status").get_json()
    assert status["running"] is False
    assert status["state"] == "idle"
    assert status["bestFitness"] is None


def test_invalid_training_config_is_rejected(client):
    resp = client.post("/train/start", json={"population": 0})
    assert resp.status_code == 400
    assert resp.get_json()["status"] == "error"


def test_short_training_run_publishes_and_checkpoints(app, client, tmp_path):
    resp = client.post("/train/start", json={
        "population": 2, "maxGenerations": 1, "episodes": 1,
        "ticksPerEpisode": 50, "seed": 1,
    })
    assert resp.status_code == 200
    assert resp.get_json()["status"] == "started"

    ctx = app.config["TANKEVO"]
    ctx.thread.join(timeout=120)
    assert not ctx.thread.is_alive()

    status = client.get("/train/status").get_json()
    assert status["running"] is False
    assert status["state"] == "done"
    assert status["bestFitness"] is not None
    assert os.path.isfile(tmp_path / "net.json")

    body = client.get("/train/stream").get_data(as_text=True)
    assert '"type": "connected"' in body
    assert '"type": "generation"' in body
    assert body.rstrip().endswith('"state": "done"}')
