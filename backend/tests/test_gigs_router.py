"""
Tests for the gigs router — parse (upload / text / observations), evaluate
and pickup distance.

The recogniser, geocoder client and vehicle defaults are swapped through
FastAPI dependency overrides, so neither Tesseract nor the network is needed.
"""
import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from models.schemas import VehicleSettings


GEOCODER_HITS = {
    "Oakland, CA": [{"lat": "37.8044", "lon": "-122.2712"}],
}


def geocoder_handler(request):
    return httpx.Response(200, json=GEOCODER_HITS.get(request.url.params.get("q"), []))


# ── Fixture ──────────────────────────────────────────────────────────────────

@pytest.fixture
def recognizer(recognizer_factory, superscript_observations):
    return recognizer_factory(superscript_observations)


@pytest.fixture
def app(recognizer):
    from fastapi import FastAPI
    from routers.gigs import router
    from services.location_service import get_geocoder_client
    from services.ocr_service import get_recognizer
    from services.settings_service import get_vehicle_settings

    test_app = FastAPI()
    test_app.include_router(router, prefix="/api/gigs")

    async def override_geocoder_client():
        async with httpx.AsyncClient(transport=httpx.MockTransport(geocoder_handler)) as client:
            yield client

    test_app.dependency_overrides[get_recognizer] = lambda: recognizer
    test_app.dependency_overrides[get_geocoder_client] = override_geocoder_client
    test_app.dependency_overrides[get_vehicle_settings] = lambda: VehicleSettings(
        mpg=25, gas_price_usd_per_gallon=5.0
    )
    return test_app


def client_for(app):
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


# ── POST /api/gigs/parse ─────────────────────────────────────────────────────

class TestParseScreenshot:

    @pytest.mark.asyncio
    async def test_upload_extracts_fields(self, app, png_bytes, recognizer):
        async with client_for(app) as client:
            resp = await client.post(
                "/api/gigs/parse", files={"file": ("offer.png", png_bytes, "image/png")}
            )

        assert resp.status_code == 200
        data = resp.json()
        assert data["pay_usd"] == 15.80
        assert data["gig_miles"] == 11.0
        assert data["pickup_query"] == "Oakland, CA"
        assert data["pay_display"] == "15.80"
        assert data["miles_display"] == "11.0"
        assert "Oakland, CA" in data["raw_text"]
        assert recognizer.calls == 1

    @pytest.mark.asyncio
    async def test_undecodable_image_returns_empty_result(self, app, recognizer):
        async with client_for(app) as client:
            resp = await client.post(
                "/api/gigs/parse", files={"file": ("offer.png", b"not an image", "image/png")}
            )

        assert resp.status_code == 200
        assert resp.json() == {
            "pay_usd": None, "gig_miles": None, "pickup_query": None,
            "raw_text": "", "pay_display": "", "miles_display": "",
        }
        assert recognizer.calls == 0

    @pytest.mark.asyncio
    async def test_empty_upload_rejected(self, app):
        async with client_for(app) as client:
            resp = await client.post(
                "/api/gigs/parse", files={"file": ("offer.png", b"", "image/png")}
            )
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_missing_file(self, app):
        async with client_for(app) as client:
            resp = await client.post("/api/gigs/parse")
        assert resp.status_code == 422


class TestParseText:

    @pytest.mark.asyncio
    async def test_text_tiers(self, app):
        async with client_for(app) as client:
            resp = await client.post(
                "/api/gigs/parse-text", json={"text": "Pay $15 80\nOakland, CA\n11 mi"}
            )

        assert resp.status_code == 200
        data = resp.json()
        assert data["pay_usd"] == 15.80
        assert data["gig_miles"] == 11.0
        assert data["pickup_query"] == "Oakland, CA"

    @pytest.mark.asyncio
    async def test_nothing_found(self, app):
        async with client_for(app) as client:
            resp = await client.post("/api/gigs/parse-text", json={"text": "hello"})
        data = resp.json()
        assert data["pay_usd"] is None
        assert data["pay_display"] == ""
        assert data["raw_text"] == "hello"


class TestParseObservations:

    @pytest.mark.asyncio
    async def test_superscript_cents_from_word_boxes(self, app):
        body = {"observations": [
            {"text": "$15", "words": [
                {"start": 0, "end": 3, "min_x": 0.10, "min_y": 0.475, "max_x": 0.20, "max_y": 0.525},
            ]},
            {"text": "80", "words": [
                {"start": 0, "end": 2, "min_x": 0.205, "min_y": 0.565, "max_x": 0.24, "max_y": 0.595},
            ]},
        ]}
        async with client_for(app) as client:
            resp = await client.post("/api/gigs/parse-observations", json=body)

        assert resp.status_code == 200
        assert resp.json()["pay_usd"] == 15.80

    @pytest.mark.asyncio
    async def test_box_outside_unit_square_rejected(self, app):
        body = {"observations": [
            {"text": "$15", "words": [
                {"start": 0, "end": 3, "min_x": 0.1, "min_y": 0.4, "max_x": 1.5, "max_y": 0.5},
            ]},
        ]}
        async with client_for(app) as client:
            resp = await client.post("/api/gigs/parse-observations", json=body)
        assert resp.status_code == 422


# ── POST /api/gigs/evaluate ──────────────────────────────────────────────────

class TestEvaluate:

    @pytest.mark.asyncio
    async def test_explicit_vehicle(self, app):
        async with client_for(app) as client:
            resp = await client.post("/api/gigs/evaluate", json={
                "pay": 15.80, "gig_miles": 11, "extra_miles_to_pickup": 4.2,
                "mpg": 28, "gas_price": 4.80,
            })

        assert resp.status_code == 200
        data = resp.json()
        assert data["total_miles"] == pytest.approx(15.2)
        assert data["fuel_cost"] == pytest.approx(2.6057, abs=1e-4)
        assert data["dollars_per_mile"] == pytest.approx(0.868, abs=1e-3)
        assert data["verdict"] == "bad"
        assert data["mpg"] == 28

    @pytest.mark.asyncio
    async def test_vehicle_defaults_fill_in(self, app):
        async with client_for(app) as client:
            resp = await client.post("/api/gigs/evaluate", json={"pay": 40, "gig_miles": 10})

        data = resp.json()
        assert data["mpg"] == 25
        assert data["gas_price"] == 5.0
        assert data["fuel_cost"] == pytest.approx(2.0)
        assert data["dollars_per_mile"] == pytest.approx(3.8)
        assert data["verdict"] == "good"

    @pytest.mark.asyncio
    async def test_zero_miles(self, app):
        async with client_for(app) as client:
            resp = await client.post("/api/gigs/evaluate", json={"pay": 40, "gig_miles": 0})
        data = resp.json()
        assert data["dollars_per_mile"] == 0
        assert data["verdict"] == "bad"

    @pytest.mark.asyncio
    async def test_missing_pay_rejected(self, app):
        async with client_for(app) as client:
            resp = await client.post("/api/gigs/evaluate", json={"gig_miles": 10})
        assert resp.status_code == 422


# ── POST /api/gigs/pickup-distance ───────────────────────────────────────────

class TestPickupDistance:

    @pytest.mark.asyncio
    async def test_known_place(self, app):
        async with client_for(app) as client:
            resp = await client.post("/api/gigs/pickup-distance", json={
                "pickup_query": "Oakland, CA", "latitude": 37.7749, "longitude": -122.4194,
            })

        assert resp.status_code == 200
        data = resp.json()
        assert data["coordinate"] == {"latitude": 37.8044, "longitude": -122.2712}
        assert data["miles"] == pytest.approx(8.3, abs=0.2)
        assert data["miles_display"] == f"{data['miles']:.1f}"

    @pytest.mark.asyncio
    async def test_unknown_place_is_not_an_error(self, app):
        async with client_for(app) as client:
            resp = await client.post("/api/gigs/pickup-distance", json={
                "pickup_query": "Atlantis, ZZ", "latitude": 37.7749, "longitude": -122.4194,
            })

        assert resp.status_code == 200
        data = resp.json()
        assert data["coordinate"] is None
        assert data["miles"] is None
        assert data["miles_display"] == ""

    @pytest.mark.asyncio
    async def test_invalid_latitude(self, app):
        async with client_for(app) as client:
            resp = await client.post("/api/gigs/pickup-distance", json={
                "pickup_query": "Oakland, CA", "latitude": 123, "longitude": 0,
            })
        assert resp.status_code == 422
