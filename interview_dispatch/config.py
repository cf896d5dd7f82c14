"""
Service configuration loaded from the environment (and .env)
"""
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    database_url: str = "sqlite:///./interview_dispatch.db"

    # Text-generation provider
    anthropic_api_key: str = ""
    generation_model: str = "claude-3-5-sonnet-20241022"
    generation_temperature: float = 0.7
    generation_max_tokens: int = 500
    generation_use_tools: bool = True

    # Email delivery provider (Resend-compatible HTTP API)
    resend_api_key: str = ""
    resend_api_url: str = "https://api.resend.com"
    email_from: str = "onboarding@resend.dev"

    # Links and branding
    app_url: str = "http://localhost:3000"
    brand_name: str = "BNJ Teammaker"

    # Reminder sweep
    reminder_sweep_secret: str = ""  # Optional: shared secret for the scheduled trigger
    reminder_sweep_delay: float = 1.0
    max_reminders_per_sweep: int = 50

    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8004

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    """Get the cached settings instance"""
    return Settings()
