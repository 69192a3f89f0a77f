# routers/cars.py

from fastapi import APIRouter, HTTPException

from core.errors import supabase_error, extract_supabase_error
from core.logging_config import logger
from core.supabase_client import get_supabase_client
from core.supabase_helpers import rows


router = APIRouter(
    prefix="/api/cars",
    tags=["Cars"],
)

DEFAULT_CAR_IMAGE = "/hero-car.png"


def to_car_card(vehicle: dict) -> dict:
    """Vehicle row → the card shape the marketplace listing renders."""
    pricing = vehicle.get("pricing") or {}
    partner = vehicle.get("partners") or {}
    image_urls = vehicle.get("image_urls") or []
    sale_per_day = vehicle.get("sale_price_per_day")

    return {
        "id": vehicle.get("id"),
        "name": vehicle.get("name") or f"{vehicle.get('make')} {vehicle.get('model')}",
        "make": vehicle.get("make"),
        "model": vehicle.get("model"),
        "pricePerWeek": (vehicle.get("price_per_day") or 0) * 7,
        "salePricePerWeek": sale_per_day * 7 if sale_per_day else None,
        "imageUrl": image_urls[0] if image_urls else DEFAULT_CAR_IMAGE,
        "imageUrls": image_urls,
        "category": vehicle.get("category"),
        "fuelType": vehicle.get("fuel_type"),
        "partnerId": vehicle.get("partner_id"),
        "partnerName": partner.get("company_name") or "Partner",
        "description": vehicle.get("description"),
        "specifications": {
            "year": vehicle.get("year") or 2024,
            "mileage": vehicle.get("mileage") or 0,
            "transmission": vehicle.get("transmission") or "Automatic",
            "doors": vehicle.get("doors") or 4,
            "seats": vehicle.get("seats") or 5,
        },
        "availability": vehicle.get("is_available"),
        "features": vehicle.get("features") or [],
        "valueScore": vehicle.get("value_score") or 0,
        "isPopular": vehicle.get("is_popular") or False,
        "insuranceIncluded": vehicle.get("insurance_included") or False,
        "pricing": {
            "minTermMonths": pricing.get("min_term_months") or 1,
            "depositRequired": pricing.get("deposit_required") or False,
            "depositAmount": pricing.get("deposit_amount") or 0,
        },
        "status": "active" if vehicle.get("is_approved") else "pending",
    }


def _listed_vehicles(client, select: str):
    return (
        client.table("vehicles")
        .select(select)
        .eq("is_active", True)
        .eq("is_approved", True)
        .eq("visible_on_platform", True)
        .order("created_at", desc=True)
        .execute()
    )


@router.get("/available", summary="Vehicles listed on the marketplace")
def available_cars():
    client = get_supabase_client()
    if not client:
        raise HTTPException(500, "Supabase client not configured")

    try:
        result = _listed_vehicles(client, "*, partners(id, company_name, email)")
    except Exception as e:
        detail = extract_supabase_error(e)
        if "relationship" not in detail:
            supabase_error(e, "Failed to fetch cars")

        # Schemas without the partners foreign key
        logger.info("Retrying vehicle listing without partners join")
        try:
            result = _listed_vehicles(client, "*")
        except Exception as retry_error:
            supabase_error(retry_error, "Failed to fetch cars")

    return {"success": True, "cars": [to_car_card(v) for v in rows(result)]}
