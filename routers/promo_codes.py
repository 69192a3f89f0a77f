# routers/promo_codes.py

from fastapi import APIRouter, Depends, HTTPException, Path

from core.errors import supabase_error, handle_supabase_error
from core.logging_config import logger
from core.partners import partner_scope, ensure_partner_access
from core.supabase_client import get_supabase_client
from core.supabase_helpers import first_row, rows
from core.utils import utc_now_iso
from dependencies.auth import get_current_user, CurrentUser
from models.promo_code import PromoCodeCreate, PromoCodeUpdate, PromoCodeToggle


router = APIRouter(
    prefix="/api/partner/marketing/promo-codes",
    tags=["Promo Codes"],
)


def _update_owned(client, partner_id: str, promo_code_id: str, changes: dict) -> dict:
    """
    Update a promo code only when it belongs to partner_id.
    A foreign or unknown id matches no row and yields 404.
    """
    try:
        result = (
            client.table("promo_codes")
            .update({**changes, "updated_at": utc_now_iso()})
            .eq("id", promo_code_id)
            .eq("partner_id", partner_id)
            .execute()
        )
    except Exception as e:
        supabase_error(e, "Failed to update promo code")

    promo_code = first_row(result)
    if not promo_code:
        raise HTTPException(404, "Promo code not found")
    return promo_code


# -----------------------------------------------------
# LIST
# -----------------------------------------------------
@router.get("", summary="Promo codes for the caller's partner")
def list_promo_codes(scope=Depends(partner_scope)):
    client, partner_id = scope

    try:
        result = (
            client.table("promo_codes")
            .select("*")
            .eq("partner_id", partner_id)
            .order("created_at", desc=True)
            .execute()
        )
    except Exception as e:
        supabase_error(e, "Failed to fetch promo codes")

    return {"success": True, "promoCodes": rows(result)}


# -----------------------------------------------------
# CREATE
# -----------------------------------------------------
@router.post("", summary="Create a promo code")
def create_promo_code(
    payload: PromoCodeCreate,
    current_user: CurrentUser = Depends(get_current_user),
):
    client = get_supabase_client()
    if not client:
        raise HTTPException(500, "Supabase client not configured")

    ensure_partner_access(client, current_user, payload.partner_id)

    now = utc_now_iso()
    record = payload.model_dump(exclude_none=True, mode="json")
    record.update({"used_count": 0, "created_at": now, "updated_at": now})

    try:
        promo_code = first_row(client.table("promo_codes").insert(record).execute())
    except Exception as e:
        raise handle_supabase_error(e, "Failed to create promo code")

    logger.info(f"Promo code {payload.code} created for partner {payload.partner_id}")
    return {
        "success": True,
        "promoCode": promo_code,
        "message": "Promo code created successfully",
    }


# -----------------------------------------------------
# TOGGLE / UPDATE / DELETE (partner-owned rows only)
# -----------------------------------------------------
@router.patch("/{promo_code_id}", summary="Activate or deactivate a promo code")
def toggle_promo_code(
    payload: PromoCodeToggle,
    promo_code_id: str = Path(...),
    scope=Depends(partner_scope),
):
    client, partner_id = scope
    promo_code = _update_owned(client, partner_id, promo_code_id, {"is_active": payload.is_active})
    return {"success": True, "promoCode": promo_code}


@router.put("/{promo_code_id}", summary="Update promo code fields")
def update_promo_code(
    payload: PromoCodeUpdate,
    promo_code_id: str = Path(...),
    scope=Depends(partner_scope),
):
    client, partner_id = scope

    changes = payload.model_dump(exclude_none=True, mode="json")
    if not changes:
        raise HTTPException(400, "No fields to update")

    promo_code = _update_owned(client, partner_id, promo_code_id, changes)
    return {
        "success": True,
        "promoCode": promo_code,
        "message": "Promo code updated successfully",
    }


@router.delete("/{promo_code_id}", summary="Delete a promo code")
def delete_promo_code(promo_code_id: str = Path(...), scope=Depends(partner_scope)):
    client, partner_id = scope

    try:
        result = (
            client.table("promo_codes")
            .delete()
            .eq("id", promo_code_id)
            .eq("partner_id", partner_id)
            .execute()
        )
    except Exception as e:
        supabase_error(e, "Failed to delete promo code")

    if not rows(result):
        raise HTTPException(404, "Promo code not found")

    return {"success": True, "message": "Promo code deleted successfully"}
