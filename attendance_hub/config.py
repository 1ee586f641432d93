"""Application configuration using Pydantic Settings."""
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # App
    app_name: str = "Attendance Hub"
    debug: bool = False
    log_level: str = "INFO"

    # MongoDB (remote store)
    mongodb_url: str = "mongodb://localhost:27017"
    mongodb_db_name: str = "attendance"
    mongodb_timeout_ms: int = 3000  # server selection; a timeout counts as "remote unavailable"

    # SQLite (local fallback store)
    local_db_path: str = "data/attendance-local.db"

    # Initial network reachability before any up/down event arrives
    assume_online: bool = True

    # JWT
    jwt_secret_key: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    jwt_access_token_expire_minutes: int = 60

    # CORS (comma-separated origins)
    cors_origins: str = "http://localhost:5173"

    @model_validator(mode="after")
    def _validate_production_secrets(self):
        if not self.debug:
            if self.jwt_secret_key in ("change-me-in-production", ""):
                raise ValueError(
                    "JWT_SECRET_KEY must be set to a strong secret when DEBUG is not enabled. "
                    "Generate one with: python -c \"import secrets; print(secrets.token_hex(32))\""
                )
        return self


settings = Settings()
