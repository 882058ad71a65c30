import time
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from conftest import FakeRunner
from voicetracks.main import app
from voicetracks.registry import StreamRegistry
from voicetracks.stitch.stitcher import Stitcher


@pytest.fixture
def client(settings, encoder_factory):
    runner = FakeRunner()
    with TestClient(app) as c:
        app.state.registry = StreamRegistry(
            settings,
            stitcher=Stitcher(settings, runner=runner),
            encoder_factory=encoder_factory,
        )
        c.runner = runner
        yield c


def wait_for_status(client, predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while True:
        body = client.get("/api/recording/status").json()
        if predicate(body):
            return body
        if time.monotonic() > deadline:
            raise AssertionError(f"status never matched: {body}")
        time.sleep(0.02)


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_status_before_any_capture(client):
    body = client.get("/api/recording/status").json()

    assert body == {"session_clock_ms": None, "users": []}


def test_websocket_capture_then_finalize(client, settings):
    with client.websocket_connect("/ws/capture/alice") as ws:
        hello = ws.receive_json()
        assert hello["type"] == "capture"
        assert hello["user"] == "alice"
        ws.send_bytes(bytes(3840))
        ws.send_bytes(bytes(100))

    wait_for_status(client, lambda b: b["users"] and not b["users"][0]["capturing"])
    body = client.post("/api/recording/finalize").json()

    assert [t["user"] for t in body["tracks"]] == ["alice"]
    track = body["tracks"][0]
    assert track["success"]
    assert Path(track["output_path"]).parent == Path(settings.RECORDINGS_DIR)
    assert track["clips"] == [f"alice-{hello['start_ms']}.wav"]
    assert client.get("/api/recording/status").json()["users"] == []


def test_second_connection_for_same_user_is_rejected(client):
    with client.websocket_connect("/ws/capture/bob") as first:
        first.receive_json()
        with client.websocket_connect("/ws/capture/bob") as second:
            error = second.receive_json()
            assert error["type"] == "error"
            assert "Already capturing" in error["error"]
        status = client.get("/api/recording/status").json()
        assert status["users"] == [{"user": "bob", "capturing": True, "fragments": 1}]


def test_stop_endpoint_reports_each_capture(client):
    with client.websocket_connect("/ws/capture/carol") as ws:
        ws.receive_json()
        body = client.post("/api/recording/stop").json()

        assert [r["user"] for r in body["reports"]] == ["carol"]
        assert body["reports"][0]["success"]
        assert client.post("/api/recording/stop").json() == {"reports": []}
