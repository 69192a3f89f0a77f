# jobs/check_drivers.py

import sys

from core.errors import extract_supabase_error
from core.logging_config import logger
from core.roles import Role
from core.supabase_client import get_supabase_client
from core.supabase_helpers import rows


def driver_report(client) -> dict:
    """
    Drivers rows against users carrying the driver role.
    Older sign-ups stored the role lowercase, so both spellings count.
    """
    drivers = rows(client.table("drivers").select("id, user_id, created_at").execute())
    users = rows(
        client.table("users")
        .select("id, email, role, created_at")
        .in_("role", [Role.DRIVER.value, Role.DRIVER.value.lower()])
        .execute()
    )

    driver_user_ids = {d.get("user_id") for d in drivers}
    return {
        "drivers": len(drivers),
        "driver_users": len(users),
        "users_without_driver_row": [u["id"] for u in users if u.get("id") not in driver_user_ids],
    }


def run():
    client = get_supabase_client()
    if not client:
        logger.error("Supabase not configured; set SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY")
        sys.exit(1)

    try:
        report = driver_report(client)
    except Exception as e:
        logger.error(f"Driver check failed: {extract_supabase_error(e)}")
        sys.exit(1)

    logger.info(f"Found {report['drivers']} drivers and {report['driver_users']} users with the driver role")
    for user_id in report["users_without_driver_row"]:
        logger.warning(f"User {user_id} has the driver role but no drivers row")


if __name__ == "__main__":
    run()
