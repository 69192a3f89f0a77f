# jobs/create_claim_bucket.py

import sys

from core.config import settings
from core.errors import extract_supabase_error
from core.logging_config import logger
from core.supabase_client import get_supabase_client


CLAIM_BUCKET_OPTIONS = {
    "public": True,
    "allowed_mime_types": ["image/*", "application/pdf", "text/*"],
    "file_size_limit": 50 * 1024 * 1024,
}


def run():
    client = get_supabase_client()
    if not client:
        logger.error("Supabase not configured; set SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY")
        sys.exit(1)

    try:
        client.storage.create_bucket(settings.CLAIMS_BUCKET, options=CLAIM_BUCKET_OPTIONS)
    except Exception as e:
        logger.error(f"Error creating bucket {settings.CLAIMS_BUCKET}: {extract_supabase_error(e)}")
        sys.exit(1)

    logger.info(f"Bucket {settings.CLAIMS_BUCKET} created")


if __name__ == "__main__":
    run()
