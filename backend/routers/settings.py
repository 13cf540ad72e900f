"""
Settings Router

GET /api/settings/vehicle  — configured default vehicle profile (mpg, gas price)
"""
from fastapi import APIRouter, Depends

from models.schemas import VehicleSettings
from services.settings_service import get_vehicle_settings

router = APIRouter()


@router.get("/vehicle", response_model=VehicleSettings)
async def vehicle_defaults(vehicle: VehicleSettings = Depends(get_vehicle_settings)):
    return vehicle
