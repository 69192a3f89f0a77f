# tests/test_promo_codes.py

"""
Tests for partner promo codes: every mutation is scoped to the caller's partner.
"""

import pytest
from fastapi.testclient import TestClient


PROMO_URL = "/api/partner/marketing/promo-codes"


@pytest.fixture
def partner_session(login_as, use_supabase, mock_partner_user):
    login_as(mock_partner_user)
    fake = use_supabase("routers.promo_codes", "core.partners")
    fake.set("partner_staff", [])
    fake.set("partners", [{"id": "partner-1"}])
    return fake


def test_list_is_filtered_by_partner(client: TestClient, partner_session, mock_partner_user):
    promo = partner_session.set("promo_codes", [{"id": "pc1", "code": "SPRING10"}])

    response = client.get(PROMO_URL, params={"userId": mock_partner_user.id})

    assert response.status_code == 200
    assert response.json()["promoCodes"] == [{"id": "pc1", "code": "SPRING10"}]
    promo.eq.assert_any_call("partner_id", "partner-1")


def test_user_id_is_required(client: TestClient, partner_session):
    response = client.get(PROMO_URL)

    assert response.status_code == 400
    assert response.json()["error"] == "User ID is required"


def test_partner_cannot_act_for_another_user(client: TestClient, partner_session):
    response = client.get(PROMO_URL, params={"userId": "someone-else"})

    assert response.status_code == 403


def test_toggle_foreign_promo_code_is_404(client: TestClient, partner_session, mock_partner_user):
    promo = partner_session.set("promo_codes", [])

    response = client.patch(
        f"{PROMO_URL}/foreign-code",
        params={"userId": mock_partner_user.id},
        json={"is_active": False},
    )

    assert response.status_code == 404
    assert response.json()["error"] == "Promo code not found"
    promo.eq.assert_any_call("id", "foreign-code")
    promo.eq.assert_any_call("partner_id", "partner-1")


def test_update_own_promo_code(client: TestClient, partner_session, mock_partner_user):
    promo = partner_session.set("promo_codes", [{"id": "pc1", "discount_value": 15}])

    response = client.put(
        f"{PROMO_URL}/pc1",
        params={"userId": mock_partner_user.id},
        json={"discountValue": 15},
    )

    assert response.status_code == 200
    changes = promo.update.call_args[0][0]
    assert changes["discount_value"] == 15
    assert "updated_at" in changes


def test_update_without_fields_is_400(client: TestClient, partner_session, mock_partner_user):
    response = client.put(f"{PROMO_URL}/pc1", params={"userId": mock_partner_user.id}, json={})

    assert response.status_code == 400


def test_delete_foreign_promo_code_is_404(client: TestClient, partner_session, mock_partner_user):
    partner_session.set("promo_codes", [])

    response = client.delete(f"{PROMO_URL}/pc9", params={"userId": mock_partner_user.id})

    assert response.status_code == 404


def test_create_for_other_partner_is_forbidden(client: TestClient, partner_session):
    response = client.post(
        PROMO_URL,
        json={
            "partnerId": "partner-2",
            "code": "free",
            "discountType": "percentage",
            "discountValue": 10,
        },
    )

    assert response.status_code == 403
    assert "promo_codes" not in partner_session.tables


def test_create_uppercases_code(client: TestClient, partner_session):
    promo = partner_session.set("promo_codes", [{"id": "new"}])

    response = client.post(
        PROMO_URL,
        json={
            "partnerId": "partner-1",
            "code": "spring10",
            "discountType": "percentage",
            "discountValue": 10,
        },
    )

    assert response.status_code == 200
    record = promo.insert.call_args[0][0]
    assert record["code"] == "SPRING10"
    assert record["used_count"] == 0


def test_duplicate_code_is_400(client: TestClient, partner_session):
    partner_session.set("promo_codes").execute.side_effect = Exception(
        'duplicate key value violates unique constraint "promo_codes_code_key"'
    )

    response = client.post(
        PROMO_URL,
        json={
            "partnerId": "partner-1",
            "code": "SPRING10",
            "discountType": "fixed",
            "discountValue": 20,
        },
    )

    assert response.status_code == 400
    assert response.json()["error"] == "Failed to create promo code: Record already exists"
