# tests/test_booking_lifecycle.py

"""
Tests for the booking lifecycle after creation: partner response,
activation, returns, finishing, issue reports and deadline checks.
"""

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from models.enums import AdjustmentType
from routers.booking_lifecycle import activation_requirements, final_settlement, vehicle_adjustment


def make_booking(**overrides):
    booking = {
        "id": "b1",
        "driver_id": "driver-user-id",
        "partner_id": "partner-user-id",
        "vehicle_id": "v1",
        "status": "pending_partner_approval",
        "payment_status": "pending",
        "weekly_rate": 100,
        "start_date": (datetime.now(timezone.utc) - timedelta(days=3)).isoformat(),
        "end_date": (datetime.now(timezone.utc) + timedelta(days=25)).isoformat(),
        "created_at": (datetime.now(timezone.utc) - timedelta(minutes=30)).isoformat(),
        "car": {"make": "Toyota", "model": "Prius", "registration_number": "AB12CDE"},
        "driver": {"full_name": "Dee Driver", "email": "dee@example.com"},
    }
    booking.update(overrides)
    return booking


@pytest.fixture
def lifecycle(use_supabase):
    def _setup(booking):
        fake = use_supabase("routers.booking_lifecycle")
        fake.set("bookings", [booking])
        return fake
    return _setup


def notification_types(fake):
    return [c[0][0]["type"] for c in fake.tables["notifications"].insert.call_args_list]


# -----------------------------------------------------
# Partner response
# -----------------------------------------------------
def respond(client, action, **extra):
    return client.post("/api/bookings/partner-response", json={"bookingId": "b1", "action": action, **extra})


def test_driver_cannot_respond_for_partner(client: TestClient, login_as, lifecycle, mock_driver_user):
    login_as(mock_driver_user)
    fake = lifecycle(make_booking())

    response = respond(client, "accept")

    assert response.status_code == 403
    fake.tables["bookings"].update.assert_not_called()


def test_unrelated_partner_is_forbidden(client: TestClient, login_as, lifecycle, mock_partner_user):
    login_as(mock_partner_user)
    fake = lifecycle(make_booking(partner_id="someone-else"))

    response = respond(client, "accept")

    assert response.status_code == 403
    fake.tables["bookings"].update.assert_not_called()


def test_response_needs_pending_approval(client: TestClient, login_as, lifecycle, mock_partner_user):
    login_as(mock_partner_user)
    lifecycle(make_booking(status="active"))

    response = respond(client, "accept")

    assert response.status_code == 400
    assert response.json()["error"] == "Booking is no longer pending approval. Current status: active"


def test_unknown_action_is_400(client: TestClient, login_as, mock_partner_user):
    login_as(mock_partner_user)

    response = respond(client, "maybe")

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid field: action"


def test_accept_waits_for_insurance(client: TestClient, login_as, lifecycle, mock_partner_user):
    login_as(mock_partner_user)
    fake = lifecycle(make_booking(insurance_required=True, driver_insurance_valid=False))

    response = respond(client, "accept")

    assert response.status_code == 200
    assert response.json()["status"] == "pending_insurance_upload"
    assert fake.tables["bookings"].update.call_args[0][0]["status"] == "pending_insurance_upload"


def test_insurance_override_lets_acceptance_through(client: TestClient, login_as, lifecycle, mock_partner_user):
    login_as(mock_partner_user)
    fake = lifecycle(make_booking(insurance_required=True, driver_insurance_valid=False))

    response = respond(client, "accept", overrideInsurance=True)

    assert response.json()["status"] == "partner_accepted"
    update = fake.tables["bookings"].update.call_args[0][0]
    assert update["driver_insurance_valid"] is True


def test_accept_of_unpaid_booking(client: TestClient, login_as, lifecycle, mock_partner_user):
    login_as(mock_partner_user)
    fake = lifecycle(make_booking())

    response = respond(client, "accept")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "partner_accepted"
    assert body["response_time"] == 30
    fake.tables["partner_drivers"].upsert.assert_called_once()
    fake.tables["drivers"].upsert.assert_called_once()
    assert "booking_accepted" in notification_types(fake)
    assert "booking_accepted_admin" in notification_types(fake)


def test_accept_of_paid_booking_activates(client: TestClient, login_as, lifecycle, mock_partner_user):
    login_as(mock_partner_user)
    fake = lifecycle(make_booking(payment_status="paid"))

    response = respond(client, "accept")

    assert response.json()["status"] == "active"
    update = fake.tables["bookings"].update.call_args[0][0]
    assert update["activated_trigger"] == "auto_on_acceptance"
    assert update["activated_by"] == mock_partner_user.id


def test_reject_frees_vehicle_and_queues_refunds(client: TestClient, login_as, lifecycle, mock_partner_user):
    login_as(mock_partner_user)
    fake = lifecycle(make_booking())
    instructions = fake.set("payment_instructions", [
        {"amount": 300, "status": "deposit_received", "type": "deposit"},
        {"amount": 100, "status": "completed", "type": "weekly_rent"},
        {"amount": 100, "status": "pending", "type": "weekly_rent"},
    ])

    response = respond(client, "reject", rejectionReason="Car in service")

    assert response.status_code == 200
    assert response.json()["status"] == "partner_rejected"

    update = fake.tables["bookings"].update.call_args[0][0]
    assert update["rejection_reason"] == "Car in service"

    vehicle_update = fake.tables["vehicles"].update.call_args[0][0]
    assert vehicle_update["status"] == "available"
    assert vehicle_update["current_booking_id"] is None

    refunds = {c[0][0]["method"]: c[0][0] for c in instructions.insert.call_args_list}
    assert refunds["deposit"]["amount"] == 300
    assert refunds["weekly"]["amount"] == 100
    assert all(r["type"] == "refund" and r["status"] == "pending" for r in refunds.values())


# -----------------------------------------------------
# Activation
# -----------------------------------------------------
def test_activation_requirements_list_unmet_conditions():
    booking = make_booking(
        status="partner_accepted",
        insurance_required=True,
        requires_document_verification=True,
    )
    assert activation_requirements(booking) == [
        "Payment must be confirmed",
        "Valid insurance certificate required",
        "Document verification must be completed",
    ]
    ready = {**booking, "payment_status": "active", "partner_provides_insurance": True, "all_documents_approved": True}
    assert activation_requirements(ready) == []


def test_readiness_reports_missing_payment(client: TestClient, login_as, lifecycle, mock_driver_user):
    login_as(mock_driver_user)
    lifecycle(make_booking(status="partner_accepted"))

    response = client.get("/api/bookings/start-active", params={"bookingId": "b1"})

    assert response.status_code == 200
    body = response.json()
    assert body["can_activate"] is False
    assert body["checks"]["valid_status"] is True
    assert body["requirements"] == ["Payment must be confirmed"]


def test_start_active_blocks_unmet_requirements(client: TestClient, login_as, lifecycle, mock_partner_user):
    login_as(mock_partner_user)
    fake = lifecycle(make_booking(status="partner_accepted"))

    response = client.post("/api/bookings/start-active", json={"bookingId": "b1"})

    assert response.status_code == 400
    assert "Payment must be confirmed" in response.json()["error"]
    fake.tables["bookings"].update.assert_not_called()


def test_start_active_bypass_books_vehicle(client: TestClient, login_as, lifecycle, mock_partner_user):
    login_as(mock_partner_user)
    fake = lifecycle(make_booking(status="partner_accepted"))

    response = client.post("/api/bookings/start-active", json={"bookingId": "b1", "bypassRequirements": True})

    assert response.status_code == 200
    assert fake.tables["bookings"].update.call_args[0][0]["status"] == "active"
    vehicle_update = fake.tables["vehicles"].update.call_args[0][0]
    assert vehicle_update["status"] == "booked"
    assert vehicle_update["current_booking_id"] == "b1"
    history = fake.tables["booking_history"].insert.call_args[0][0]
    assert history["details"]["bypass_requirements"] is True


def test_start_active_wrong_status(client: TestClient, login_as, lifecycle, mock_partner_user):
    login_as(mock_partner_user)
    lifecycle(make_booking(status="pending_payment"))

    response = client.post("/api/bookings/start-active", json={"bookingId": "b1", "bypassRequirements": True})

    assert response.status_code == 400
    assert response.json()["error"] == "Cannot activate booking with status: pending_payment"


def test_start_active_twice_is_noop(client: TestClient, login_as, lifecycle, mock_partner_user):
    login_as(mock_partner_user)
    fake = lifecycle(make_booking(status="active"))

    response = client.post("/api/bookings/start-active", json={"bookingId": "b1"})

    assert response.json()["status"] == "already_active"
    fake.tables["bookings"].update.assert_not_called()


def test_driver_cannot_activate(client: TestClient, login_as, lifecycle, mock_driver_user):
    login_as(mock_driver_user)
    lifecycle(make_booking(status="partner_accepted", payment_status="paid"))

    response = client.post("/api/bookings/start-active", json={"bookingId": "b1"})

    assert response.status_code == 403


# -----------------------------------------------------
# Returns
# -----------------------------------------------------
def test_driver_requests_return(client: TestClient, login_as, lifecycle, mock_driver_user):
    login_as(mock_driver_user)
    fake = lifecycle(make_booking(status="active"))

    response = client.post("/api/bookings/request-return", json={"bookingId": "b1", "reason": "Moving away"})

    assert response.status_code == 200
    update = fake.tables["bookings"].update.call_args[0][0]
    assert update["return_requested"] is True
    assert update["return_requested_by_type"] == "driver"
    first = fake.tables["notifications"].insert.call_args_list[0][0][0]
    assert first["recipient_type"] == "partner"
    assert first["recipient_id"] == "partner-user-id"


def test_return_requested_twice_is_400(client: TestClient, login_as, lifecycle, mock_driver_user):
    login_as(mock_driver_user)
    lifecycle(make_booking(status="active", return_requested=True))

    response = client.post("/api/bookings/request-return", json={"bookingId": "b1"})

    assert response.status_code == 400
    assert response.json()["error"] == "Return already requested"


def test_requester_cannot_approve_own_return(client: TestClient, login_as, lifecycle, mock_driver_user):
    login_as(mock_driver_user)
    lifecycle(make_booking(status="active", return_requested=True, return_requested_by_type="driver"))

    response = client.post("/api/bookings/request-return", json={"bookingId": "b1", "action": "approve"})

    assert response.status_code == 403


def test_partner_approves_return(client: TestClient, login_as, lifecycle, mock_partner_user):
    login_as(mock_partner_user)
    fake = lifecycle(make_booking(status="active", return_requested=True, return_requested_by_type="driver"))

    response = client.post("/api/bookings/request-return", json={"bookingId": "b1", "action": "approve"})

    assert response.status_code == 200
    assert response.json()["status"] == "completed"
    assert fake.tables["vehicles"].update.call_args[0][0]["status"] == "available"
    notification = fake.tables["notifications"].insert.call_args[0][0]
    assert notification["type"] == "return_approved"
    assert notification["recipient_id"] == "driver-user-id"


def test_nothing_to_reject(client: TestClient, login_as, lifecycle, mock_partner_user):
    login_as(mock_partner_user)
    lifecycle(make_booking(status="active"))

    response = client.post("/api/bookings/request-return", json={"bookingId": "b1", "action": "reject"})

    assert response.status_code == 400
    assert response.json()["error"] == "No return request to reject"


# -----------------------------------------------------
# Finish
# -----------------------------------------------------
class TestFinalSettlement:
    now = datetime(2026, 3, 11, tzinfo=timezone.utc)

    def test_partial_week_bills_whole_week(self):
        booking = {"start_date": "2026-03-01T00:00:00Z", "weekly_rate": 70}
        result = final_settlement(booking, 70, self.now)
        assert result["total_days"] == 10
        assert result["total_weeks"] == 2
        assert result["final_amount"] == 140
        assert result["outstanding_amount"] == 70

    def test_overpaid_owes_nothing(self):
        booking = {"start_date": "2026-03-04T00:00:00Z", "weekly_rate": 70}
        result = final_settlement(booking, 500, self.now)
        assert result["outstanding_amount"] == 0

    def test_finish_before_start_bills_nothing(self):
        booking = {"start_date": "2026-03-20T00:00:00Z", "weekly_rate": 70}
        result = final_settlement(booking, 0, self.now)
        assert result["total_weeks"] == 0
        assert result["final_amount"] == 0


def test_finish_records_outstanding_balance(client: TestClient, login_as, lifecycle, mock_partner_user):
    login_as(mock_partner_user)
    start = datetime.now(timezone.utc) - timedelta(days=9, hours=12)
    fake = lifecycle(make_booking(status="active", start_date=start.isoformat()))
    instructions = fake.set("payment_instructions", [{"amount": 100, "status": "completed"}])

    response = client.post("/api/bookings/finish", json={"bookingId": "b1", "finalMileage": 42000})

    assert response.status_code == 200
    body = response.json()
    assert body["total_weeks"] == 2
    assert body["final_amount"] == 200
    assert body["outstanding_amount"] == 100

    update = fake.tables["bookings"].update.call_args[0][0]
    assert update["status"] == "completed"
    assert update["payment_status"] == "outstanding"
    assert update["finished_by_type"] == "partner"

    final_payment = instructions.insert.call_args[0][0]
    assert final_payment["type"] == "final_payment"
    assert final_payment["amount"] == 100

    ledger = fake.tables["transactions"].insert.call_args[0][0]
    assert ledger["category"] == "Vehicle Rental"
    assert ledger["amount"] == 200
    assert fake.tables["vehicles"].update.call_args[0][0]["final_mileage"] == 42000


def test_finish_wrong_status(client: TestClient, login_as, lifecycle, mock_driver_user):
    login_as(mock_driver_user)
    lifecycle(make_booking(status="cancelled"))

    response = client.post("/api/bookings/finish", json={"bookingId": "b1"})

    assert response.status_code == 400
    assert response.json()["error"] == "Cannot finish booking with status: cancelled"


def test_stranger_cannot_finish(client: TestClient, login_as, lifecycle, mock_driver_user):
    login_as(mock_driver_user)
    fake = lifecycle(make_booking(status="active", driver_id="someone-else"))

    response = client.post("/api/bookings/finish", json={"bookingId": "b1"})

    assert response.status_code == 403
    fake.tables["bookings"].update.assert_not_called()


# -----------------------------------------------------
# Issues
# -----------------------------------------------------
def test_unknown_issue_type_is_400(client: TestClient, login_as, mock_driver_user):
    login_as(mock_driver_user)

    response = client.post(
        "/api/bookings/report-issue",
        json={"bookingId": "b1", "issueType": "aliens", "description": "Odd noises"},
    )

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid field: issueType"


def test_driver_reports_critical_issue(client: TestClient, login_as, lifecycle, mock_driver_user):
    login_as(mock_driver_user)
    fake = lifecycle(make_booking(status="active", issues=[{"id": "issue_old"}]))

    response = client.post(
        "/api/bookings/report-issue",
        json={"bookingId": "b1", "issueType": "mechanical", "description": "Brakes grinding", "severity": "critical"},
    )

    assert response.status_code == 200
    issue_id = response.json()["issue_id"]
    assert issue_id.startswith("issue_")

    issues = fake.tables["bookings"].update.call_args[0][0]["issues"]
    assert [i["id"] for i in issues] == ["issue_old", issue_id]
    assert issues[1]["reported_by_type"] == "driver"

    sent = [c[0][0] for c in fake.tables["notifications"].insert.call_args_list]
    assert {n.get("recipient_type") for n in sent} == {"partner", None}
    assert all(n["priority"] == "high" for n in sent)


# -----------------------------------------------------
# Vehicle release and change
# -----------------------------------------------------
VEHICLE_TWO = {
    "id": "v2",
    "make": "Kia",
    "model": "Niro",
    "registration_number": "CD34EFG",
    "status": "available",
    "price_per_week": 150,
}


def test_driver_releases_vehicle(client: TestClient, login_as, lifecycle, mock_driver_user):
    login_as(mock_driver_user)
    fake = lifecycle(make_booking(status="active"))
    fake.set("vehicles", [{"id": "v1", "make": "Toyota", "model": "Prius", "registration_number": "AB12CDE"}])

    response = client.post("/api/bookings/release-vehicle", json={"bookingId": "b1", "reason": "Accident"})

    assert response.status_code == 200
    assert response.json()["vehicle"]["registration_number"] == "AB12CDE"

    update = fake.tables["bookings"].update.call_args[0][0]
    assert update["vehicle_id"] is None
    assert update["car"] is None
    assert update["vehicle_released_by_type"] == "driver"
    assert update["vehicle_release_reason"] == "Accident"
    assert fake.tables["vehicles"].update.call_args[0][0]["status"] == "available"
    assert notification_types(fake) == ["vehicle_released", "vehicle_released", "vehicle_released_admin"]


def test_release_without_vehicle_is_400(client: TestClient, login_as, lifecycle, mock_driver_user):
    login_as(mock_driver_user)
    lifecycle(make_booking(status="active", vehicle_id=None))

    response = client.post("/api/bookings/release-vehicle", json={"bookingId": "b1"})

    assert response.status_code == 400
    assert response.json()["error"] == "No vehicle assigned to this booking"


def test_release_of_finished_booking_is_400(client: TestClient, login_as, lifecycle, mock_partner_user):
    login_as(mock_partner_user)
    fake = lifecycle(make_booking(status="completed"))

    response = client.post("/api/bookings/release-vehicle", json={"bookingId": "b1"})

    assert response.status_code == 400
    fake.tables["bookings"].update.assert_not_called()


class TestVehicleAdjustment:
    now = datetime(2026, 3, 11, tzinfo=timezone.utc)
    booking = {"status": "active", "start_date": "2026-03-07T12:00:00Z"}

    def test_prorated_charges_unused_paid_days(self):
        # 2 paid weeks = 14 days, 4 used
        result = vehicle_adjustment(self.booking, 100, 150, 200, AdjustmentType.prorated, self.now)
        assert result["days_used"] == 4
        assert result["remaining_days"] == 10
        assert result["adjustment_amount"] == pytest.approx(71.43)

    def test_cheaper_vehicle_refunds(self):
        result = vehicle_adjustment(self.booking, 150, 100, 300, AdjustmentType.prorated, self.now)
        assert result["adjustment_amount"] < 0
        assert "-£50/week" in result["adjustment_reason"]

    def test_immediate_is_one_week_difference(self):
        result = vehicle_adjustment(self.booking, 100, 130, 200, AdjustmentType.immediate, self.now)
        assert result["adjustment_amount"] == 30

    def test_next_cycle_charges_nothing_now(self):
        result = vehicle_adjustment(self.booking, 100, 130, 200, AdjustmentType.next_cycle, self.now)
        assert result["adjustment_amount"] == 0

    def test_days_only_count_once_active(self):
        booking = {**self.booking, "status": "partner_accepted"}
        result = vehicle_adjustment(booking, 100, 150, 100, AdjustmentType.prorated, self.now)
        assert result["days_used"] == 0
        assert result["remaining_days"] == 7


def test_partner_changes_vehicle(client: TestClient, login_as, lifecycle, mock_partner_user):
    login_as(mock_partner_user)
    fake = lifecycle(make_booking(status="partner_accepted"))
    vehicles = fake.set("vehicles", [VEHICLE_TWO])
    instructions = fake.set("payment_instructions", [{"amount": 100, "status": "completed"}])

    response = client.post(
        "/api/bookings/change-vehicle",
        json={"bookingId": "b1", "newVehicleId": "v2", "reason": "Upgrade"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["new_vehicle"]["id"] == "v2"
    assert body["adjustment_amount"] == 50

    update = fake.tables["bookings"].update.call_args[0][0]
    assert update["vehicle_id"] == "v2"
    assert update["car_name"] == "Kia Niro"
    assert update["weekly_rate"] == 150
    assert update["vehicle_history"][0]["previous_vehicle_id"] == "v1"

    statuses = [(c[0][0]["status"], c[0][0]["current_booking_id"]) for c in vehicles.update.call_args_list]
    assert statuses == [("available", None), ("booked", "b1")]

    charge = instructions.insert.call_args[0][0]
    assert charge["type"] == "vehicle_change"
    assert charge["amount"] == 50


def test_change_to_booked_vehicle_is_400(client: TestClient, login_as, lifecycle, mock_partner_user):
    login_as(mock_partner_user)
    fake = lifecycle(make_booking(status="active"))
    fake.set("vehicles", [{**VEHICLE_TWO, "status": "booked"}])

    response = client.post(
        "/api/bookings/change-vehicle",
        json={"bookingId": "b1", "newVehicleId": "v2", "reason": "Upgrade"},
    )

    assert response.status_code == 400
    assert response.json()["error"] == "Selected vehicle is not available"
    fake.tables["bookings"].update.assert_not_called()


def test_driver_cannot_change_vehicle(client: TestClient, login_as, lifecycle, mock_driver_user):
    login_as(mock_driver_user)
    lifecycle(make_booking(status="active"))

    response = client.post(
        "/api/bookings/change-vehicle",
        json={"bookingId": "b1", "newVehicleId": "v2", "reason": "Prefer a Kia"},
    )

    assert response.status_code == 403


# -----------------------------------------------------
# Deadlines
# -----------------------------------------------------
def test_missed_acceptance_deadline_auto_rejects(client: TestClient, login_as, lifecycle, mock_driver_user):
    login_as(mock_driver_user)
    deadline = (datetime.now(timezone.utc) - timedelta(minutes=5)).isoformat()
    fake = lifecycle(make_booking(partner_acceptance_deadline=deadline))

    response = client.post("/api/bookings/check-deadlines", json={"bookingId": "b1"})

    assert response.status_code == 200
    assert response.json()["actions_taken"] == ["booking_auto_rejected"]
    update = fake.tables["bookings"].update.call_args[0][0]
    assert update["status"] == "auto_rejected"
    assert "auto_rejected_at" in update
    assert fake.tables["vehicles"].update.call_args[0][0]["status"] == "available"
    history = fake.tables["booking_history"].insert.call_args[0][0]
    assert history["performed_by_type"] == "system"


def test_close_deadline_reminds_partner(client: TestClient, login_as, lifecycle, mock_driver_user):
    login_as(mock_driver_user)
    deadline = (datetime.now(timezone.utc) + timedelta(hours=1)).isoformat()
    fake = lifecycle(make_booking(partner_acceptance_deadline=deadline))

    response = client.post("/api/bookings/check-deadlines", json={"bookingId": "b1"})

    assert response.status_code == 200
    assert response.json()["notifications_sent"] == ["partner_reminder"]
    fake.tables["bookings"].update.assert_not_called()
    reminder = fake.tables["notifications"].insert.call_args[0][0]
    assert reminder["recipient_id"] == "partner-user-id"


def test_overdue_active_booking(client: TestClient, login_as, lifecycle, mock_admin_user):
    login_as(mock_admin_user)
    ended = (datetime.now(timezone.utc) - timedelta(days=1)).isoformat()
    fake = lifecycle(make_booking(status="active", end_date=ended))

    response = client.post("/api/bookings/check-deadlines", json={"bookingId": "b1"})

    assert response.json()["actions_taken"] == ["booking_overdue"]
    assert fake.tables["bookings"].update.call_args[0][0]["status"] == "overdue"
    assert "vehicles" not in fake.tables


def test_nothing_due_changes_nothing(client: TestClient, login_as, lifecycle, mock_driver_user):
    login_as(mock_driver_user)
    fake = lifecycle(make_booking(status="completed"))

    response = client.post("/api/bookings/check-deadlines", json={"bookingId": "b1"})

    assert response.status_code == 200
    assert response.json()["checks_performed"] == []
    fake.tables["bookings"].update.assert_not_called()
