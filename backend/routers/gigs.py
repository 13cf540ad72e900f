"""
Gigs Router

POST /api/gigs/parse                — upload a screenshot, extract pay / miles / pickup
POST /api/gigs/parse-text           — same extraction over text the client already has
POST /api/gigs/parse-observations   — same, over on-device OCR lines with word boxes
POST /api/gigs/evaluate             — fuel cost, net $/mi and verdict
POST /api/gigs/pickup-distance      — geocode the pickup guess, miles from the driver
"""
import logging

import httpx
from fastapi import APIRouter, Depends, File, HTTPException, UploadFile

from models.schemas import (
    CoordinateOut, EvaluateRequest, GigComputationOut, ObservationsParseRequest,
    ParseResult, PickupDistanceRequest, PickupDistanceResult, TextParseRequest,
    VehicleSettings,
)
from services.evaluator_service import evaluate
from services.gig_parser import Parsed, parse_observations
from services.location_service import Coordinate, distance_miles, get_geocoder_client, resolve_coordinate
from services.ocr_service import (
    TextRecognizer, WordBox, WordBoxObservation, get_recognizer, observations_from_text, parse_image,
)
from services.settings_service import get_vehicle_settings

logger = logging.getLogger("gigcheck.gigs")
router = APIRouter()


def to_parse_result(parsed: Parsed) -> ParseResult:
    return ParseResult(
        pay_usd=parsed.pay_usd,
        gig_miles=parsed.gig_miles,
        pickup_query=parsed.pickup_query,
        raw_text=parsed.raw_text,
        pay_display=f"{parsed.pay_usd:.2f}" if parsed.pay_usd is not None else "",
        miles_display=f"{parsed.gig_miles:.1f}" if parsed.gig_miles is not None else "",
    )


# ── Parse ─────────────────────────────────────────────────────────────────────

@router.post("/parse", response_model=ParseResult)
async def parse_screenshot(
    file: UploadFile = File(...),
    recognizer: TextRecognizer = Depends(get_recognizer),
):
    """
    Run OCR on an uploaded screenshot.  An image that can't be decoded, or a
    recogniser that finds nothing, yields a result with every field empty, and
    the driver fills the form in by hand.
    """
    contents = await file.read()
    if not contents:
        raise HTTPException(status_code=400, detail="Empty upload")

    parsed = await parse_image(contents, recognizer)
    return to_parse_result(parsed)


@router.post("/parse-text", response_model=ParseResult)
async def parse_text(body: TextParseRequest):
    """Text-only extraction; the geometric cents tier never fires here."""
    return to_parse_result(parse_observations(observations_from_text(body.text)))


@router.post("/parse-observations", response_model=ParseResult)
async def parse_with_observations(body: ObservationsParseRequest):
    observations = [
        WordBoxObservation(
            text=o.text,
            words=tuple(
                WordBox(start=w.start, end=w.end,
                        min_x=w.min_x, min_y=w.min_y, max_x=w.max_x, max_y=w.max_y)
                for w in o.words
            ),
        )
        for o in body.observations
    ]
    return to_parse_result(parse_observations(observations))


# ── Evaluate ──────────────────────────────────────────────────────────────────

@router.post("/evaluate", response_model=GigComputationOut)
async def evaluate_gig(
    body: EvaluateRequest,
    vehicle: VehicleSettings = Depends(get_vehicle_settings),
):
    mpg = body.mpg if body.mpg is not None else vehicle.mpg
    gas_price = body.gas_price if body.gas_price is not None else vehicle.gas_price_usd_per_gallon

    result = evaluate(
        pay=body.pay,
        gig_miles=body.gig_miles,
        extra_miles_to_pickup=body.extra_miles_to_pickup,
        mpg=mpg,
        gas_price=gas_price,
    )
    logger.debug("Evaluated %s → %.2f $/mi (%s)", body, result.dollars_per_mile, result.verdict.value)
    return GigComputationOut(
        total_miles=result.total_miles,
        dollars_per_mile=result.dollars_per_mile,
        fuel_cost=result.fuel_cost,
        profit_after_fuel=result.profit_after_fuel,
        verdict=result.verdict,
        mpg=mpg,
        gas_price=gas_price,
    )


# ── Pickup distance ───────────────────────────────────────────────────────────

@router.post("/pickup-distance", response_model=PickupDistanceResult)
async def pickup_distance(
    body: PickupDistanceRequest,
    client: httpx.AsyncClient = Depends(get_geocoder_client),
):
    """A geocoding miss is not an error: coordinate and miles come back empty."""
    coord = await resolve_coordinate(body.pickup_query, client=client)
    if coord is None:
        return PickupDistanceResult(pickup_query=body.pickup_query)

    here = Coordinate(latitude=body.latitude, longitude=body.longitude)
    miles = distance_miles(here, coord)
    return PickupDistanceResult(
        pickup_query=body.pickup_query,
        coordinate=CoordinateOut(latitude=coord.latitude, longitude=coord.longitude),
        miles=miles,
        miles_display=f"{miles:.1f}",
    )
