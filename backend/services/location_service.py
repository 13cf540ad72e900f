"""
Location Service — pickup geocoding and straight-line distance.

Geocoding goes to a Nominatim-compatible search endpoint.  Failures of any
kind (network, HTTP status, bad JSON, no hits) come back as None so the
driver simply keeps typing the pickup distance by hand.
"""
import logging
import math
import os
from dataclasses import dataclass
from typing import Optional

import httpx

logger = logging.getLogger("gigcheck.location")

GEOCODER_URL = os.environ.get("GEOCODER_URL", "https://nominatim.openstreetmap.org/search")
GEOCODER_USER_AGENT = os.environ.get("GEOCODER_USER_AGENT", "gigcheck/0.1")
GEOCODER_TIMEOUT = float(os.environ.get("GEOCODER_TIMEOUT", "10"))

METERS_PER_MILE = 1609.34
EARTH_RADIUS_M = 6_371_008.8


@dataclass(frozen=True)
class Coordinate:
    latitude: float
    longitude: float


def distance_miles(origin: Coordinate, destination: Coordinate) -> float:
    """Great-circle (haversine) distance in miles."""
    lat1, lat2 = math.radians(origin.latitude), math.radians(destination.latitude)
    dlat = lat2 - lat1
    dlon = math.radians(destination.longitude - origin.longitude)
    a = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    meters = 2 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(a)))
    return meters / METERS_PER_MILE


def _first_coordinate(payload) -> Optional[Coordinate]:
    if not isinstance(payload, list) or not payload:
        return None
    hit = payload[0]
    try:
        return Coordinate(latitude=float(hit["lat"]), longitude=float(hit["lon"]))
    except (KeyError, TypeError, ValueError):
        return None


async def resolve_coordinate(
    query: str,
    client: Optional[httpx.AsyncClient] = None,
) -> Optional[Coordinate]:
    """Geocode a free-text place like "Oakland, CA".  None on any failure."""
    query = (query or "").strip()
    if not query:
        return None

    params = {"q": query, "format": "json", "limit": 1}
    headers = {"User-Agent": GEOCODER_USER_AGENT}
    try:
        if client is None:
            async with httpx.AsyncClient(timeout=GEOCODER_TIMEOUT) as own_client:
                resp = await own_client.get(GEOCODER_URL, params=params, headers=headers)
        else:
            resp = await client.get(GEOCODER_URL, params=params, headers=headers)
        resp.raise_for_status()
        payload = resp.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.warning("Geocoding %r failed: %s", query, e)
        return None

    coord = _first_coordinate(payload)
    if coord is None:
        logger.info("Geocoding %r returned no usable result", query)
    return coord


async def get_geocoder_client():
    """Dependency: yields a shared AsyncClient for one request."""
    async with httpx.AsyncClient(timeout=GEOCODER_TIMEOUT) as client:
        yield client
