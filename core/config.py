from typing import List, Optional
from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    # -------------------------------------------------
    # General
    # -------------------------------------------------
    PROJECT_NAME: str = "Document Control API"
    ENV: str = "development"

    # Frontend base URL (invitation links point here)
    APP_URL: str = "http://localhost:3000"

    # -------------------------------------------------
    # CORS
    # -------------------------------------------------
    BACKEND_CORS_ORIGINS: List[str] = []

    # -------------------------------------------------
    # Supabase (document store + identity provider)
    # -------------------------------------------------
    SUPABASE_URL: Optional[str] = None
    SUPABASE_SERVICE_ROLE_KEY: Optional[str] = None

    # Upper bound for a single PostgREST call
    STORE_TIMEOUT_SECONDS: int = Field(10, description="Timeout for document store calls")

    # -------------------------------------------------
    # Push gateway
    # -------------------------------------------------
    PUSH_GATEWAY_URL: Optional[str] = None
    PUSH_SERVER_KEY: Optional[str] = None
    PUSH_TIMEOUT_SECONDS: int = Field(5, description="Timeout per push endpoint")

    # -------------------------------------------------
    # Invitations / policy
    # -------------------------------------------------
    INVITATION_TTL_DAYS: int = Field(7, description="Days an invitation token stays valid")
    POLICY_CACHE_TTL_SECONDS: int = Field(60, description="How long site policy reads are cached")

    # -------------------------------------------------
    # SMTP (invitation e-mail)
    # -------------------------------------------------
    SMTP_HOST: Optional[str] = None
    SMTP_PORT: Optional[int] = None
    SMTP_USER: Optional[str] = None
    SMTP_PASS: Optional[str] = None

    # -------------------------------------------------
    # S3 attachment staging
    # -------------------------------------------------
    AWS_ACCESS_KEY_ID: Optional[str] = None
    AWS_SECRET_ACCESS_KEY: Optional[str] = None
    AWS_BUCKET_NAME: Optional[str] = None
    AWS_REGION: str = "ap-southeast-1"
    BLOB_PUBLIC_BASE_URL: Optional[str] = None

    # -------------------------------------------------
    # Scheduler
    # -------------------------------------------------
    ENABLE_SCHEDULER: bool = False

    # -------------------------------------------------
    # Model Config
    # -------------------------------------------------
    class Config:
        case_sensitive = True


# Instantiate settings
settings = Settings()

# -------------------------------------------------
# Always allow the frontend origin
# -------------------------------------------------
cors_origins = list(settings.BACKEND_CORS_ORIGINS)
if settings.APP_URL:
    cors_origins.append(settings.APP_URL.rstrip("/"))

settings.BACKEND_CORS_ORIGINS = sorted(list(set(cors_origins)))
