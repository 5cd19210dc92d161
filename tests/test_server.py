from fastapi.testclient import TestClient

from kaibrain import GameMaster
from server.main import create_app


def _client(clock):
    master = GameMaster(random_seed=3, clock=clock, player_id="web")
    return TestClient(create_app(master)), master


def test_session_lifecycle(clock):
    client, master = _client(clock)
    with client:
        r = client.post("/session/start")
        assert r.status_code == 200
        assert r.json()["active"] is True

        r = client.post("/move", json={
            "direction": "UP", "head": [5, 4], "length": 3,
            "objective": [1, 1], "board_width": 20, "board_height": 20,
        })
        assert r.json() == {"accepted": True}

        clock.advance(11_000)
        r = client.post("/tick", json={"body": [[5, 4], [5, 5], [5, 6]], "objective": [1, 1], "width": 20, "height": 20})
        body = r.json()
        assert body["snapshot"]["escalation_level"] == 1
        assert any(e["source"] == "escalation" for e in body["commentary_events"])

        r = client.post("/session/end", json={"final_score": 20, "termination_cause": "wall"})
        data = r.json()
        assert data["active"] is False
        assert data["post_mortem"]["score_note"].startswith("Score: 20")

        assert client.get("/healthz").json() == {"ok": True, "active": False}
    assert master.recorder.sessions[0].final_score == 20


def test_rejected_move_and_bad_payload(clock):
    client, _ = _client(clock)
    with client:
        client.post("/session/start")
        r = client.post("/move", json={
            "direction": "SIDEWAYS", "head": [5, 4], "length": 1,
            "objective": [1, 1], "board_width": 20, "board_height": 20,
        })
        assert r.json() == {"accepted": False}
        assert client.post("/tick", json={"body": [[1]], "objective": [1, 1], "width": 5, "height": 5}).status_code == 422


def test_effect_endpoints(clock):
    client, _ = _client(clock)
    with client:
        client.post("/session/start")
        assert client.post("/objective/consumed").json() == {"ok": True}
        assert client.post("/decoy/consumed", json={"position": [3, 3]}).json() == {"event": None}
        placed = client.post("/objective/place", json={
            "body": [[5, 5], [5, 6]], "width": 20, "height": 20, "default": [9, 9],
        }).json()
        assert placed == {"position": [9, 9]}
        assert client.get("/decoy/visible").json() == {"visible": False}
        assert client.get("/snapshot").json()["session_id"]
