from typing import List, Optional
from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    # -------------------------------------------------
    # General
    # -------------------------------------------------
    PROJECT_NAME: str = "ComparePCO API"
    ENV: str = "development"

    # -------------------------------------------------
    # Frontend Domains (CORS)
    # -------------------------------------------------
    FRONTEND_ORIGINS: List[str] = [
        "https://comparepco.co.uk",
        "https://www.comparepco.co.uk",
        "http://localhost:3000",
    ]

    # Auto-built below
    BACKEND_CORS_ORIGINS: List[str] = []

    # -------------------------------------------------
    # Supabase (Primary DB, Auth & Storage)
    # -------------------------------------------------
    SUPABASE_URL: Optional[str] = None
    SUPABASE_ANON_KEY: Optional[str] = None
    SUPABASE_SERVICE_ROLE_KEY: Optional[str] = None

    # -------------------------------------------------
    # Session / route gate
    # -------------------------------------------------
    SESSION_COOKIE_NAME: str = "sb-access-token"
    SESSION_COOKIE_SECURE: bool = True
    SESSION_COOKIE_MAX_AGE: int = Field(
        60 * 60 * 24 * 7,
        description="Lifetime of the session cookie in seconds (default: 7 days)",
    )
    LOGIN_PATH: str = "/auth/login"

    # -------------------------------------------------
    # Storage
    # -------------------------------------------------
    STORAGE_BUCKET: str = "vehicle-documents"
    CLAIMS_BUCKET: str = "claim-attachments"
    UPLOAD_MAX_BYTES: int = Field(
        10 * 1024 * 1024,
        description="Maximum accepted upload size in bytes (default: 10MB)",
    )

    # -------------------------------------------------
    # Model Config
    # -------------------------------------------------
    class Config:
        case_sensitive = True


# Instantiate settings
settings = Settings()

# -------------------------------------------------
# Build CORS list after loading settings
# -------------------------------------------------
settings.BACKEND_CORS_ORIGINS = sorted(
    {origin.rstrip("/") for origin in settings.FRONTEND_ORIGINS}
)
