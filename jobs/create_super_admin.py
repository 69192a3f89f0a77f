# jobs/create_super_admin.py

import argparse
import sys

from core.activity_log import create_notification
from core.errors import extract_supabase_error
from core.logging_config import logger
from core.permissions import ADMIN_SIDEBAR_SECTIONS
from core.roles import Role
from core.supabase_client import get_supabase_client
from core.utils import utc_now_iso


def create_super_admin(client, email: str, password: str, name: str) -> str:
    """Auth user, users row and admin_staff row for a new SUPER_ADMIN. Returns the user id."""
    email = email.strip().lower()

    created = client.auth.admin.create_user({
        "email": email,
        "password": password,
        "email_confirm": True,
        "user_metadata": {"role": Role.SUPER_ADMIN.value, "name": name, "email": email},
        "app_metadata": {"role": Role.SUPER_ADMIN.value},
    })
    user_id = created.user.id
    now = utc_now_iso()

    # The route gate reads the role from here
    client.table("users").insert({
        "id": user_id,
        "email": email,
        "first_name": name,
        "role": Role.SUPER_ADMIN.value,
        "is_active": True,
        "is_verified": True,
        "created_at": now,
        "updated_at": now,
    }).execute()

    client.table("admin_staff").insert({
        "user_id": user_id,
        "name": name,
        "email": email,
        "role": Role.SUPER_ADMIN.value,
        "department": "Management",
        "position": "Super Administrator",
        "sidebar_access": {section: True for section in ADMIN_SIDEBAR_SECTIONS},
        "is_active": True,
        "is_online": False,
        "created_at": now,
        "updated_at": now,
    }).execute()

    create_notification(
        client,
        "welcome",
        "Welcome to ComparePCO",
        "Your super admin account has been created successfully. You now have full access to the system.",
        recipient_id=user_id,
        recipient_type="admin",
    )

    return user_id


def run(argv=None):
    parser = argparse.ArgumentParser(description="Create a SUPER_ADMIN account")
    parser.add_argument("--email", required=True)
    parser.add_argument("--password", required=True)
    parser.add_argument("--name", default="Super Admin")
    args = parser.parse_args(argv)

    client = get_supabase_client()
    if not client:
        logger.error("Supabase not configured; set SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY")
        sys.exit(1)

    try:
        user_id = create_super_admin(client, args.email, args.password, args.name)
    except Exception as e:
        logger.error(f"Failed to create super admin: {extract_supabase_error(e)}")
        sys.exit(1)

    logger.info(f"Super admin created: {args.email} ({user_id})")


if __name__ == "__main__":
    run()
