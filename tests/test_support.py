# tests/test_support.py

"""
Tests for support tickets, live chat and support notifications.
"""

from fastapi.testclient import TestClient

from core.roles import Role
from dependencies.auth import CurrentUser


def test_notification_missing_title_is_400(client: TestClient, login_as, use_supabase, mock_admin_user):
    login_as(mock_admin_user)
    fake = use_supabase("routers.support_notifications")

    response = client.post(
        "/api/support/notifications",
        json={"user_id": "u1", "type": "ticket_update", "message": "Your ticket was updated"},
    )

    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "Missing required fields: title"}
    assert "support_notifications" not in fake.tables


def test_notification_empty_strings_count_as_missing(client: TestClient, login_as, mock_admin_user):
    login_as(mock_admin_user)

    response = client.post(
        "/api/support/notifications",
        json={"user_id": "u1", "type": "", "title": "", "message": "hi"},
    )

    assert response.status_code == 400
    assert response.json()["error"] == "Missing required fields: type, title"


def test_notification_create_defaults(client: TestClient, login_as, use_supabase, mock_admin_user):
    login_as(mock_admin_user)
    fake = use_supabase("routers.support_notifications")
    table = fake.set("support_notifications", [{"id": "n1"}])

    response = client.post(
        "/api/support/notifications",
        json={"user_id": "u1", "type": "ticket_update", "title": "Update", "message": "Done"},
    )

    assert response.status_code == 200
    record = table.insert.call_args[0][0]
    assert record["is_read"] is False
    assert record["data"] == {}


def test_driver_cannot_send_support_notifications(client: TestClient, login_as, mock_driver_user):
    login_as(mock_driver_user)

    response = client.post(
        "/api/support/notifications",
        json={"user_id": "u1", "type": "t", "title": "x", "message": "y"},
    )

    assert response.status_code == 403


def test_notification_list_scoped_to_caller(client: TestClient, login_as, use_supabase, mock_driver_user):
    login_as(mock_driver_user)
    fake = use_supabase("routers.support_notifications")
    table = fake.set("support_notifications", [])

    response = client.get("/api/support/notifications", params={"user_id": "someone-else"})

    assert response.status_code == 200
    table.eq.assert_any_call("user_id", mock_driver_user.id)


def test_ticket_created_open(client: TestClient, login_as, use_supabase, mock_driver_user):
    login_as(mock_driver_user)
    fake = use_supabase("routers.support_tickets")
    table = fake.set("support_tickets", [{"id": "t1", "status": "open"}])

    response = client.post(
        "/api/support/tickets",
        json={
            "user_id": mock_driver_user.id,
            "user_type": "driver",
            "subject": "Car won't start",
            "description": "Battery flat",
            "category": "vehicle",
            "priority": "high",
        },
    )

    assert response.status_code == 200
    assert table.insert.call_args[0][0]["status"] == "open"


def test_ticket_list_is_admin_only(client: TestClient, login_as, mock_partner_user):
    login_as(mock_partner_user)

    response = client.get("/api/support/tickets")

    assert response.status_code == 403


def test_ticket_list_skips_all_filter(client: TestClient, login_as, use_supabase):
    login_as(CurrentUser(id="staff-1", role=Role.ADMIN_STAFF))
    fake = use_supabase("routers.support_tickets")
    table = fake.set("support_tickets", [])

    response = client.get("/api/support/tickets", params={"status": "all", "priority": "urgent"})

    assert response.status_code == 200
    table.eq.assert_called_once_with("priority", "urgent")
    table.range.assert_called_once_with(0, 49)


def test_ticket_resolve_stamps_resolved_at(client: TestClient, login_as, use_supabase, mock_admin_user):
    login_as(mock_admin_user)
    fake = use_supabase("routers.support_tickets")
    table = fake.set("support_tickets", [{"id": "t1"}])

    response = client.put("/api/support/tickets/t1", json={"status": "resolved", "assigned_to": "agent-1"})

    assert response.status_code == 200
    update = table.update.call_args[0][0]
    assert update["status"] == "resolved"
    assert "resolved_at" in update
    assert update["assigned_to"] == "agent-1"
    assert "assigned_at" in update


def test_chat_messages_require_session_id(client: TestClient, login_as, mock_admin_user):
    login_as(mock_admin_user)

    response = client.get("/api/support/chat/messages")

    assert response.status_code == 400
    assert response.json()["error"] == "Chat session ID is required"


def test_message_to_unknown_chat_is_404(client: TestClient, login_as, use_supabase, mock_driver_user):
    login_as(mock_driver_user)
    fake = use_supabase("routers.support_chat")
    fake.set("chat_sessions", [])

    response = client.post(
        "/api/support/chat/messages",
        json={
            "chat_session_id": "missing",
            "sender_id": mock_driver_user.id,
            "sender_type": "customer",
            "message": "hello?",
        },
    )

    assert response.status_code == 404
    assert "chat_messages" not in fake.tables


def test_message_bumps_session_counter(client: TestClient, login_as, use_supabase, mock_driver_user):
    login_as(mock_driver_user)
    fake = use_supabase("routers.support_chat")
    sessions = fake.set("chat_sessions", [{"id": "c1", "customer_id": mock_driver_user.id, "message_count": 4}])
    fake.set("chat_messages", [{"id": "m1"}])

    response = client.post(
        "/api/support/chat/messages",
        json={
            "chat_session_id": "c1",
            "sender_id": mock_driver_user.id,
            "sender_type": "customer",
            "message": "hello",
        },
    )

    assert response.status_code == 200
    assert sessions.update.call_args[0][0]["message_count"] == 5


def test_message_into_another_customers_chat_is_forbidden(client: TestClient, login_as, use_supabase, mock_driver_user):
    login_as(mock_driver_user)
    fake = use_supabase("routers.support_chat")
    sessions = fake.set("chat_sessions", [{"id": "cs1", "customer_id": "someone-else", "message_count": 2}])

    response = client.post(
        "/api/support/chat/messages",
        json={
            "chat_session_id": "cs1",
            "sender_id": mock_driver_user.id,
            "sender_type": "customer",
            "message": "let me in",
        },
    )

    assert response.status_code == 403
    assert "chat_messages" not in fake.tables
    sessions.update.assert_not_called()


def test_agent_can_reply_in_any_chat(client: TestClient, login_as, use_supabase, mock_admin_user):
    login_as(mock_admin_user)
    fake = use_supabase("routers.support_chat")
    fake.set("chat_sessions", [{"id": "cs1", "customer_id": "someone-else", "message_count": 0}])
    messages = fake.set("chat_messages", [{"id": "m2"}])

    response = client.post(
        "/api/support/chat/messages",
        json={
            "chat_session_id": "cs1",
            "sender_id": mock_admin_user.id,
            "sender_type": "agent",
            "message": "How can I help?",
        },
    )

    assert response.status_code == 200
    messages.insert.assert_called_once()


def test_new_chat_session_waits(client: TestClient, login_as, use_supabase, mock_driver_user):
    login_as(mock_driver_user)
    fake = use_supabase("routers.support_chat")
    table = fake.set("chat_sessions", [{"id": "c1"}])

    response = client.post(
        "/api/support/chat",
        json={
            "customer_id": mock_driver_user.id,
            "customer_type": "driver",
            "category": "billing",
            "priority": "low",
        },
    )

    assert response.status_code == 200
    assert table.insert.call_args[0][0]["status"] == "waiting"
