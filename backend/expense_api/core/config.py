from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "Team Expense Tracker API"
    app_env: str = "dev"
    log_level: str = "INFO"
    secret_key: str = "change-me"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24
    password_reset_expire_minutes: int = 60
    database_url: str = "sqlite+aiosqlite:///./expense_tracker.db"
    cors_allow_origins: str = "http://localhost:5173"
    storage_base_url: str = "https://storage.example.com"
    receipt_max_upload_mb: int = 5
    notification_list_limit: int = 50

    @property
    def cors_origins(self) -> list[str]:
        return [x.strip() for x in self.cors_allow_origins.split(",") if x.strip()]

    @property
    def public_storage_url(self) -> str:
        return self.storage_base_url.rstrip("/")


@lru_cache
def get_settings() -> Settings:
    return Settings()
