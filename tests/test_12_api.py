"""
Tests for the native REST API.

The service is injected through FastAPI dependency overrides with a
mocked backend client, so no network access happens.

Tests cover:
- POST /api/v1/tts/synthesize success, cache flag and error mapping
- GET /api/v1/audio/{filename} serving, 404 and 400
- GET /api/v1/voices, /api/v1/health, /metrics
"""
import pytest
from fastapi.testclient import TestClient

from tts_relay.api.dependencies import get_tts_service
from tts_relay.main import create_app
from tts_relay.tts.errors import TransportError


@pytest.fixture
def client(service):
    app = create_app()
    app.dependency_overrides[get_tts_service] = lambda: service
    with TestClient(app) as c:
        yield c


class TestSynthesizeEndpoint:

    def test_success(self, client, mock_client):
        r = client.post("/api/v1/tts/synthesize", json={"text": "Hello there"})
        assert r.status_code == 200

        body = r.json()
        assert body["code"] == 200
        assert body["message"] == "ok"
        assert body["data"]["audio_url"].startswith("/api/v1/audio/")
        assert body["data"]["audio_url"].endswith(".mp3")
        assert body["data"]["size"] == len(mock_client.synthesize.return_value)
        assert body["data"]["cached"] is False
        assert body["data"]["task_id"] == r.headers["X-Request-Id"]

    def test_second_request_cached(self, client, mock_client):
        first = client.post("/api/v1/tts/synthesize", json={"text": "Hello there"}).json()
        second = client.post("/api/v1/tts/synthesize", json={"text": "Hello there"}).json()

        assert second["data"]["cached"] is True
        assert second["data"]["audio_url"] == first["data"]["audio_url"]
        assert mock_client.synthesize.call_count == 1

    def test_all_fields_accepted(self, client, mock_client):
        r = client.post("/api/v1/tts/synthesize", json={
            "text": "Hello there",
            "voice": "en-US-GuyNeural",
            "format": "wav",
            "speed": 1.2,
            "pitch": 10,
            "volume": 0.8,
            "style": "cheerful",
        })
        assert r.status_code == 200
        assert r.json()["data"]["audio_url"].endswith(".wav")
        mock_client.synthesize.assert_called_once_with(
            "Hello there", "en-US-GuyNeural", "wav", speed=1.2, pitch=10, ssml=False
        )

    def test_blank_text(self, client):
        r = client.post("/api/v1/tts/synthesize", json={"text": "   "})
        assert r.status_code == 400
        assert r.json()["error"] == "INVALID_INPUT"
        assert "request_id" in r.json()

    def test_missing_text(self, client):
        r = client.post("/api/v1/tts/synthesize", json={"voice": "en-US-GuyNeural"})
        assert r.status_code == 422

    def test_speed_out_of_range(self, client):
        r = client.post("/api/v1/tts/synthesize", json={"text": "Hi", "speed": 9})
        assert r.status_code == 400

    def test_backend_failure(self, client, mock_client):
        mock_client.synthesize.side_effect = TransportError("connect failed: refused")
        r = client.post("/api/v1/tts/synthesize", json={"text": "Hello there"})
        assert r.status_code == 502
        assert r.json()["error"] == "SYNTHESIS_FAILED"

    def test_unexpected_failure(self, client, service):
        service.synthesize = lambda *a, **kw: (_ for _ in ()).throw(KeyError("boom"))
        r = client.post("/api/v1/tts/synthesize", json={"text": "Hello there"})
        assert r.status_code == 500
        assert r.json()["error"] == "INTERNAL_ERROR"


class TestAudioEndpoint:

    def test_serves_file(self, client, mock_client):
        url = client.post("/api/v1/tts/synthesize", json={"text": "Hello there"}).json()["data"]["audio_url"]
        r = client.get(url)

        assert r.status_code == 200
        assert r.content == mock_client.synthesize.return_value
        assert r.headers["content-type"] == "audio/mpeg"
        assert r.headers["cache-control"] == "public, max-age=3600"

    def test_wav_content_type(self, client):
        url = client.post(
            "/api/v1/tts/synthesize", json={"text": "Hello there", "format": "wav"}
        ).json()["data"]["audio_url"]
        assert client.get(url).headers["content-type"] == "audio/wav"

    def test_missing_file(self, client):
        r = client.get("/api/v1/audio/0123456789abcdef.mp3")
        assert r.status_code == 404
        assert r.json()["error"] == "NOT_FOUND"

    def test_invalid_name(self, client):
        r = client.get("/api/v1/audio/...")
        assert r.status_code == 400
        assert r.json()["error"] == "INVALID_FILENAME"


class TestInfoEndpoints:

    def test_voices(self, client):
        body = client.get("/api/v1/voices").json()
        assert body["code"] == 200
        assert body["message"] == "success"
        names = [v["name"] for v in body["data"]]
        assert names == [
            "zh-CN-XiaoxiaoNeural",
            "zh-CN-YunxiNeural",
            "en-US-JennyNeural",
            "en-US-GuyNeural",
        ]
        assert set(body["data"][0]) == {"name", "language", "gender", "description"}

    def test_health(self, client):
        from tts_relay import __version__

        body = client.get("/api/v1/health").json()
        assert body["status"] == "ok"
        assert body["service"] == "tts-relay"
        assert body["version"] == __version__
        assert "fast_cache" in body

    def test_metrics(self, client):
        client.post("/api/v1/tts/synthesize", json={"text": "Hello there"})
        r = client.get("/metrics")
        assert r.status_code == 200
        assert "tts_requests_total" in r.text
        assert "tts_cache_misses_total" in r.text
