"""
Application configuration

Environment variables and .env are read through pydantic-settings.
"""
from functools import lru_cache
from pathlib import Path
from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator
import json

# Project root (the directory holding pyproject.toml)
BASE_DIR = Path(__file__).resolve().parent.parent.parent


class Settings(BaseSettings):
    """Application settings"""

    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Application
    app_name: str = "Alumni-Platform-API"
    app_env: str = "development"
    debug: bool = True

    # Database
    database_url: str = f"sqlite+aiosqlite:///{BASE_DIR / 'data' / 'alumni.db'}"

    # CORS
    cors_origins: List[str] = ["*"]

    # Tenancy: subdomains of this domain resolve to tenant slugs
    base_domain: str = "alumni.test"

    # Auth
    bcrypt_rounds: int = 12
    token_ttl_minutes: int = 60 * 24 * 30
    login_max_attempts: int = 5
    login_block_minutes: int = 15
    session_ttl_hours: int = 24

    # Cache TTLs (seconds)
    timeline_active_ttl: int = 900
    timeline_idle_ttl: int = 3600
    recommendation_ttl: int = 86400
    matching_stats_ttl: int = 3600
    personalization_ttl: int = 1800

    # Payments
    payment_gateway: str = "sandbox"
    stripe_secret_key: str = ""
    stripe_api_base: str = "https://api.stripe.com/v1"

    # Virtual events
    jitsi_domain: str = "meet.jit.si"

    # Federation
    federation_enabled: bool = False
    federation_protocols: List[str] = ["activitypub", "matrix"]
    federation_server_name: str = "alumni.test"
    federation_base_url: str = "https://alumni.test"

    # Email
    email_provider: str = "log"
    mail_from: str = "no-reply@alumni.test"

    # Webhooks
    webhook_user_agent: str = "AlumniPlatform-Webhook/1.0"

    # Queue: "background" runs jobs after the response
    queue_driver: str = "background"

    @field_validator("cors_origins", "federation_protocols", mode="before")
    @classmethod
    def parse_list(cls, v):
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                return [item.strip() for item in v.split(",") if item.strip()]
        return v

    @field_validator("database_url", mode="before")
    @classmethod
    def fix_database_path(cls, v):
        if isinstance(v, str) and "./data/" in v:
            return v.replace("./data/", str(BASE_DIR / "data") + "/")
        return v

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"


@lru_cache
def get_settings() -> Settings:
    """Cached settings instance"""
    return Settings()


settings = get_settings()
