"""Tests for cached cost estimates."""

import httpx
import pytest

from photobooth.costs import CostEstimate, CostEstimator
from photobooth.costs.estimator import parse_cost
from photobooth.errors import EstimateError
from photobooth.workflows.camera_angles import CAMERA_ANGLE_MODEL

from tests.conftest import FakeBackend, quote_transport


def test_parse_cost():
    assert parse_cost("1.5") == 1.5
    assert parse_cost(2) == 2.0
    assert parse_cost(None) is None
    assert parse_cost("NaN") is None
    assert parse_cost("abc") is None


def test_formatted_cost():
    assert CostEstimate(3.14159).formatted == "3.14"
    assert CostEstimate(None).to_dict() == {"cost": None, "costInUSD": None, "formattedCost": "—"}


class TestCostEstimator:

    async def test_video_quote_is_cached(self):
        calls = []
        estimator = CostEstimator(socket_url="https://socket.test", transport=quote_transport(calls))

        first = await estimator.estimate_video(1024, 1536, "480p", "fast")
        second = await estimator.estimate_video(1024, 1536, "480p", "fast")

        assert first == second == CostEstimate(3.25, 0.013)
        assert calls == ["/api/v1/job-video/estimate/spark/wan_v2.2-14b-fp8_i2v_lightx2v/480/720/81/32/4/1"]
        await estimator.close()

    async def test_video_quote_in_sogni_tokens(self):
        estimator = CostEstimator(transport=quote_transport())
        estimate = await estimator.estimate_video(512, 512, token_type="sogni")
        assert estimate.cost == 6.5

    async def test_video_needs_source_size(self):
        estimator = CostEstimator(transport=quote_transport())
        assert await estimator.estimate_video(None, 512) is None

    async def test_video_invalid_quality(self):
        calls = []
        estimator = CostEstimator(transport=quote_transport(calls))
        with pytest.raises(ValueError, match="Invalid quality preset"):
            await estimator.estimate_video(512, 512, quality="ultra")
        assert calls == []

    async def test_audio_quote(self):
        calls = []
        estimator = CostEstimator(transport=quote_transport(calls))

        estimate = await estimator.estimate_audio("ace_step", 30, 8)

        assert estimate.formatted == "3.25"
        assert calls == ["/api/v1/job-audio/estimate/spark/ace_step/30/8/1"]
        assert await estimator.estimate_audio(None, 30, 8) is None

    async def test_http_error_raises(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(503))
        estimator = CostEstimator(transport=transport)
        with pytest.raises(EstimateError) as exc_info:
            await estimator.estimate_audio("ace_step", 10, 4)
        assert exc_info.value.code == 503

    async def test_image_estimate_uses_backend(self):
        backend = FakeBackend()
        estimator = CostEstimator(transport=quote_transport())

        estimate = await estimator.estimate_image(backend, {"model": "flux", "imageCount": 4})

        assert estimate == CostEstimate(12.5, 0.05)
        assert estimator.cached("image", {
            "network": "fast", "model": "flux", "imageCount": 4, "previewCount": 10, "stepCount": 7,
            "scheduler": "DPM++ SDE", "guidance": 2, "contextImages": 0, "cnEnabled": False,
            "guideImage": False, "denoiseStrength": None, "tokenType": "spark",
        }) == estimate
        assert await estimator.estimate_image(backend, {"model": "flux"}) is None

    async def test_camera_angle_estimate(self):
        backend = FakeBackend()
        seen = []

        async def estimate_cost(params):
            seen.append(params)
            return {"token": 1.2, "usd": 0.004}

        backend.estimate_cost = estimate_cost
        estimator = CostEstimator(transport=quote_transport())

        first = await estimator.estimate_camera_angle(backend, 1024, 1024, 4)
        await estimator.estimate_camera_angle(backend, 1024, 1024, 4)

        assert first.cost == 1.2
        assert len(seen) == 1
        assert seen[0]["model"] == CAMERA_ANGLE_MODEL
        assert seen[0]["imageCount"] == 4

    async def test_clear(self):
        calls = []
        estimator = CostEstimator(transport=quote_transport(calls))
        await estimator.estimate_audio("ace_step", 30, 8)
        estimator.clear()
        await estimator.estimate_audio("ace_step", 30, 8)
        assert len(calls) == 2


class TestCostRoutes:

    def test_video(self, client):
        data = client.get("/api/costs/video?width=1024&height=1024&quality=balanced").json()
        assert data == {"cost": 3.25, "costInUSD": 0.013, "formattedCost": "3.25"}

    def test_video_without_size(self, client):
        assert client.get("/api/costs/video").json()["formattedCost"] == "—"

    def test_video_bad_resolution(self, client):
        assert client.get("/api/costs/video?width=512&height=512&resolution=4k").status_code == 400

    def test_video_bad_quality(self, client):
        resp = client.get("/api/costs/video?width=512&height=512&quality=ultra")
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Invalid quality preset: ultra"

    def test_audio(self, client):
        assert client.get("/api/costs/audio?modelId=ace_step").json()["cost"] == 3.25

    def test_camera_angle(self, client):
        assert client.get("/api/costs/camera-angle?jobCount=2").json()["cost"] == 12.5
