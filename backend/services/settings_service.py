"""
Vehicle defaults.  Saving a per-driver profile is the client's job; the
service only knows the fallback used when a request omits mpg / gas price.
"""
import logging
import os

from pydantic import ValidationError

from models.schemas import VehicleSettings

logger = logging.getLogger("gigcheck.settings")

DEFAULT_MPG = os.environ.get("DEFAULT_MPG", "28")
DEFAULT_GAS_PRICE = os.environ.get("DEFAULT_GAS_PRICE", "4.80")


def get_vehicle_settings() -> VehicleSettings:
    """Dependency: configured default vehicle profile."""
    try:
        return VehicleSettings(mpg=DEFAULT_MPG, gas_price_usd_per_gallon=DEFAULT_GAS_PRICE)
    except ValidationError as e:
        logger.warning("Invalid DEFAULT_MPG/DEFAULT_GAS_PRICE (%s) — using built-in defaults",
                       e.errors()[0].get("msg"))
        return VehicleSettings()
