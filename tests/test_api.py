"""
HTTP API Tests
==============

Tests for the FastAPI routes using TestClient.
"""

import asyncio

import cv2
import pytest
from fastapi.testclient import TestClient

from tests.conftest import FakeSource, ScriptedAnalyzer, gradient_image, make_job, noise_image


def _png(image) -> bytes:
    ok, buffer = cv2.imencode(".png", image)
    assert ok
    return buffer.tobytes()


def _settings(**sections):
    from carbonlens.config import Settings

    return Settings.model_validate(sections)


@pytest.fixture
def client():
    """Client for an app with the mock analyzer and a stalled fake source."""
    from carbonlens.analysis import MockAnalyzer
    from carbonlens.main import create_app

    app = create_app(
        _settings(capture={"sample_interval_seconds": 0, "frame_retry_delay_seconds": 0.01}),
        analyzer=MockAnalyzer(),
        source_factory=lambda: FakeSource([noise_image(1)], after="stall"),
    )
    with TestClient(app) as test_client:
        yield test_client


class TestServiceRoutes:
    """Tests for info and probe endpoints."""

    def test_root_and_health(self, client):
        info = client.get("/").json()
        assert info["service"] == "CarbonLens"
        assert info["analyzer_backend"] == "mock"

        health = client.get("/health")
        assert health.status_code == 200
        assert health.json()["status"] == "healthy"

    def test_ready_with_mock(self, client):
        response = client.get("/ready")
        assert response.status_code == 200
        assert response.json()["status"] == "ready"

    def test_ready_without_credential(self):
        """A Gemini backend with no key is alive but not ready."""
        from carbonlens.analysis import GeminiAnalyzer
        from carbonlens.main import create_app

        app = create_app(_settings(), analyzer=GeminiAnalyzer(api_key=None))
        with TestClient(app) as test_client:
            response = test_client.get("/ready")

        assert response.status_code == 503
        assert response.json()["analyzer_ready"] is False

    def test_metrics(self, client):
        body = client.get("/metrics").json()
        assert body["queue"]["capacity"] == 3
        assert body["admission"]["threshold"] == 20
        assert body["analyzer"]["backend"] == "mock"
        assert body["capture"]["active"] is False


class TestCheckImage:
    """Tests for /check-image."""

    def test_first_then_duplicate(self, client):
        image = _png(gradient_image())

        first = client.post("/check-image", files={"image": ("a.png", image, "image/png")})
        assert first.status_code == 200
        assert first.json() == {
            "shouldProcess": True,
            "distance": None,
            "message": "First image — accepted",
        }

        second = client.post("/check-image", files={"image": ("b.png", image, "image/png")})
        assert second.json() == {
            "shouldProcess": False,
            "distance": 0,
            "message": "Too similar (distance: 0)",
        }

    def test_reset(self, client):
        image = _png(gradient_image())
        client.post("/check-image", files={"image": ("a.png", image, "image/png")})

        reset = client.delete("/check-image")
        assert reset.json() == {"message": "Hash cache cleared"}

        again = client.post("/check-image", files={"image": ("a.png", image, "image/png")})
        assert again.json()["shouldProcess"] is True
        assert again.json()["distance"] is None

    def test_missing_image(self, client):
        response = client.post("/check-image", data={"note": "no file"})
        assert response.status_code == 400
        assert response.json() == {"error": "No image provided"}

    def test_undecodable_image(self, client):
        response = client.post(
            "/check-image",
            files={"image": ("x.jpg", b"not really a jpeg", "image/jpeg")},
        )
        assert response.status_code == 422


class TestAnalyzeGrid:
    """Tests for /analyze-grid."""

    def test_grid_round_trip(self, client):
        """POST analyzes, GET reports the score, DELETE clears it."""
        from carbonlens.imaging import encode_data_url

        body = {
            "gridImage": encode_data_url(gradient_image(320, 180)),
            "startTime": "12:00:00",
            "endTime": "12:00:11",
        }
        response = client.post("/analyze-grid", json=body)
        assert response.status_code == 200

        result = response.json()
        assert result["totalCO2Kg"] == 0.85
        assert result["scoreChange"] == 6.61
        assert result["cumulativeScore"] == 6.61
        assert result["batchNumber"] == 1
        assert result["startTime"] == "12:00:00"
        assert result["endTime"] == "12:00:11"
        assert result["activities"][0] == {
            "activity": "Driving",
            "estimatedQuantity": "~5km",
            "co2Kg": 0.85,
        }

        second = client.post("/analyze-grid", json=body).json()
        assert second["cumulativeScore"] == round(6.61 * 2, 2)
        assert second["batchNumber"] == 2

        assert client.get("/analyze-grid").json() == {"cumulativeScore": 13.22, "totalBatches": 2}

        cleared = client.delete("/analyze-grid")
        assert cleared.status_code == 200
        assert client.get("/analyze-grid").json() == {"cumulativeScore": 0.0, "totalBatches": 0}

    def test_per_frame_mode(self, client):
        """Twelve ordered frames with timestamps are accepted."""
        from carbonlens.imaging import encode_data_url

        body = {
            "images": [encode_data_url(noise_image(i)) for i in range(12)],
            "timestamps": [f"09:00:{i:02d}" for i in range(12)],
        }
        result = client.post("/analyze-grid", json=body).json()

        assert result["startTime"] == "09:00:00"
        assert result["endTime"] == "09:00:11"

    def test_per_frame_wrong_count(self, client):
        from carbonlens.imaging import encode_data_url

        body = {"images": [encode_data_url(noise_image(0))], "timestamps": ["09:00:00"]}
        assert client.post("/analyze-grid", json=body).status_code == 400

    def test_no_image(self, client):
        response = client.post("/analyze-grid", json={"startTime": "a", "endTime": "b"})
        assert response.status_code == 400

    def test_bad_data_url(self, client):
        response = client.post(
            "/analyze-grid",
            json={"gridImage": "data:image/jpeg;base64,bm90IGFuIGltYWdl", "startTime": "a", "endTime": "b"},
        )
        assert response.status_code == 422

    def test_analyzer_failure(self):
        """A failed analysis is a 502 and leaves the score alone."""
        from carbonlens.imaging import encode_data_url
        from carbonlens.main import create_app

        app = create_app(_settings(), analyzer=ScriptedAnalyzer(fail_on={0}))
        body = {"gridImage": encode_data_url(gradient_image()), "startTime": "a", "endTime": "b"}

        with TestClient(app) as test_client:
            response = test_client.post("/analyze-grid", json=body)
            score = test_client.get("/analyze-grid").json()

        assert response.status_code == 502
        assert "scripted failure" in response.json()["error"]
        assert score == {"cumulativeScore": 0.0, "totalBatches": 0}

    def test_missing_credential(self):
        from carbonlens.analysis import GeminiAnalyzer
        from carbonlens.imaging import encode_data_url
        from carbonlens.main import create_app

        app = create_app(_settings(), analyzer=GeminiAnalyzer(api_key=None))
        body = {"gridImage": encode_data_url(gradient_image()), "startTime": "a", "endTime": "b"}

        with TestClient(app) as test_client:
            response = test_client.post("/analyze-grid", json=body)

        assert response.status_code == 503

    def test_queue_full(self):
        """With the queue at capacity the request is refused with 429."""
        from carbonlens.imaging import encode_data_url
        from carbonlens.main import create_app

        gate = asyncio.Event()
        app = create_app(_settings(queue={"capacity": 1}), analyzer=ScriptedAnalyzer(gate=gate))
        body = {"gridImage": encode_data_url(gradient_image()), "startTime": "a", "endTime": "b"}

        with TestClient(app) as test_client:
            assert test_client.portal.call(app.state.batch_queue.enqueue, make_job()) is True

            response = test_client.post("/analyze-grid", json=body)
            jobs = test_client.get("/jobs").json()

            test_client.portal.call(gate.set)

        assert response.status_code == 429
        assert jobs["capacity"] == 1
        assert jobs["active"] == 1
        assert jobs["jobs"][0]["status"] == "Analyzing"


class TestCaptureRoutes:
    """Tests for capture control."""

    def test_start_stop(self, client):
        started = client.post("/capture/start", json={"policy": "continuous"}).json()
        assert started["started"] is True
        assert started["status"]["active"] is True
        assert started["status"]["policy"] == "continuous"

        again = client.post("/capture/start", json={"policy": "bounded"}).json()
        assert again["started"] is False
        assert again["status"]["policy"] == "continuous"

        stopped = client.post("/capture/stop").json()
        assert stopped["stopped"] is True
        assert stopped["status"]["active"] is False

        assert client.post("/capture/stop").json()["stopped"] is False
        assert client.get("/capture/status").json()["run_id"] == 1

    def test_unknown_policy(self, client):
        response = client.post("/capture/start", json={"policy": "forever"})
        assert response.status_code == 400

    def test_start_without_body_uses_config(self, client):
        started = client.post("/capture/start").json()
        assert started["started"] is True
        assert started["status"]["policy"] == "continuous"
        client.post("/capture/stop")


class TestJobStream:
    """Tests for the /ws/jobs WebSocket."""

    def test_pushes_score_and_jobs(self, client):
        with client.websocket_connect("/ws/jobs") as websocket:
            message = websocket.receive_json()

        assert message["score"] == {"cumulativeScore": 0.0, "totalBatches": 0}
        assert message["jobs"] == []
