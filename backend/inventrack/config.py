"""
Configuration settings for InvenTrack
"""
import os
from pathlib import Path
from typing import List

import dotenv
from pydantic_settings import BaseSettings

# Resolve .env paths relative to this file so settings load regardless of cwd.
_CONFIG_DIR = Path(__file__).resolve().parent.parent  # backend/
_PROJECT_ROOT = _CONFIG_DIR.parent
_ENV_CANDIDATES = [
    _CONFIG_DIR / ".env",
    _PROJECT_ROOT / ".env",
]
_ENV_FILE = [str(p) for p in _ENV_CANDIDATES if p.is_file()]

# Load .env into os.environ so the os.getenv defaults below see it too.
for _p in _ENV_CANDIDATES:
    if _p.is_file():
        dotenv.load_dotenv(_p, override=False)
        break


class Settings(BaseSettings):
    """Application settings"""

    # App
    APP_NAME: str = "InvenTrack"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = os.getenv("DEBUG", "False").lower() == "true"

    # Database (Supabase Postgres in production)
    DATABASE_URL: str = os.getenv("DATABASE_URL", "")
    SUPABASE_DB_PASSWORD: str = os.getenv("SUPABASE_DB_PASSWORD", "")
    SUPABASE_DB_HOST: str = os.getenv("SUPABASE_DB_HOST", "localhost")
    SUPABASE_DB_NAME: str = os.getenv("SUPABASE_DB_NAME", "postgres")
    SUPABASE_DB_PORT: int = int(os.getenv("SUPABASE_DB_PORT", "5432"))
    SUPABASE_DB_USER: str = os.getenv("SUPABASE_DB_USER", "postgres")

    @property
    def database_connection_string(self) -> str:
        """Build database connection string"""
        if self.DATABASE_URL:
            return self.DATABASE_URL

        return (
            f"postgresql://{self.SUPABASE_DB_USER}:{self.SUPABASE_DB_PASSWORD}"
            f"@{self.SUPABASE_DB_HOST}:{self.SUPABASE_DB_PORT}/{self.SUPABASE_DB_NAME}"
        )

    # CORS - comma-separated list
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173,http://localhost:8080"

    @property
    def cors_origins_list(self) -> List[str]:
        """Get CORS origins as a list (deduped, order preserved)."""
        origins = [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]
        return list(dict.fromkeys(o for o in origins if o != "*"))

    # Security
    SECRET_KEY: str = os.getenv("SECRET_KEY", "change-me-in-production")
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "480"))
    REFRESH_TOKEN_EXPIRE_DAYS: int = int(os.getenv("REFRESH_TOKEN_EXPIRE_DAYS", "30"))
    # Role given to profiles created on first login from a known email domain
    AUTO_PROVISION_ROLE: str = os.getenv("AUTO_PROVISION_ROLE", "admin")

    # CSV imports
    MAX_UPLOAD_MB: int = int(os.getenv("MAX_UPLOAD_MB", "10"))
    CSV_BATCH_SIZE: int = int(os.getenv("CSV_BATCH_SIZE", "10"))
    OPENING_STOCK_BATCH_SIZE: int = int(os.getenv("OPENING_STOCK_BATCH_SIZE", "50"))

    # Integrations
    OPENAI_API_KEY: str = os.getenv("OPENAI_API_KEY", "")
    OPENAI_BASE_URL: str = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1")
    OPENAI_MODEL: str = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
    OPENAI_TIMEOUT_SECONDS: int = int(os.getenv("OPENAI_TIMEOUT_SECONDS", "60"))
    # Email notifications (SMTP); only reported by the API status check for now
    SMTP_HOST: str = os.getenv("SMTP_HOST", "")

    class Config:
        env_file = _ENV_FILE if _ENV_FILE else [".env", "../.env"]
        case_sensitive = True
        extra = "ignore"


settings = Settings()
