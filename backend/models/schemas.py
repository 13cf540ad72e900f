from pydantic import BaseModel, Field, field_validator
from typing import Optional, List

from services.evaluator_service import Verdict


# ── Vehicle ────────────────────────────────────────────
class VehicleSettings(BaseModel):
    mpg: float = Field(28.0, ge=5, le=80)
    gas_price_usd_per_gallon: float = Field(4.80, ge=0)

    @field_validator("mpg")
    @classmethod
    def mpg_half_steps(cls, v: float) -> float:
        # The app's stepper moves in 0.5 mpg increments
        if abs(v * 2 - round(v * 2)) > 1e-9:
            raise ValueError("mpg must be a multiple of 0.5")
        return v


# ── Parsing ────────────────────────────────────────────
class ParseResult(BaseModel):
    pay_usd: Optional[float] = None
    gig_miles: Optional[float] = None
    pickup_query: Optional[str] = None
    raw_text: str = ""
    # Prefills for the editable form ("" when nothing was found)
    pay_display: str = ""
    miles_display: str = ""

class TextParseRequest(BaseModel):
    text: str

class WordBoxIn(BaseModel):
    """Word span in `text` plus its box (0–1, origin bottom-left)."""
    start: int = Field(ge=0)
    end: int = Field(ge=0)
    min_x: float = Field(ge=0, le=1)
    min_y: float = Field(ge=0, le=1)
    max_x: float = Field(ge=0, le=1)
    max_y: float = Field(ge=0, le=1)

class ObservationIn(BaseModel):
    text: str
    words: List[WordBoxIn] = []

class ObservationsParseRequest(BaseModel):
    """Observations from an on-device recogniser that reports word geometry."""
    observations: List[ObservationIn]


# ── Evaluation ─────────────────────────────────────────
class EvaluateRequest(BaseModel):
    pay: float
    gig_miles: float
    extra_miles_to_pickup: float = 0.0
    # Omitted → configured vehicle defaults
    mpg: Optional[float] = None
    gas_price: Optional[float] = None

class GigComputationOut(BaseModel):
    total_miles: float
    dollars_per_mile: float
    fuel_cost: float
    profit_after_fuel: float
    verdict: Verdict
    mpg: float
    gas_price: float


# ── Pickup distance ────────────────────────────────────
class CoordinateOut(BaseModel):
    latitude: float
    longitude: float

class PickupDistanceRequest(BaseModel):
    pickup_query: str
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)

class PickupDistanceResult(BaseModel):
    pickup_query: str
    coordinate: Optional[CoordinateOut] = None
    miles: Optional[float] = None
    miles_display: str = ""
