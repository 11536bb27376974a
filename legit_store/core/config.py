from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Legit Store Payments API"
    database_url: str = "sqlite:///legit_store.db"
    log_level: str = "INFO"

    ercaspay_base_url: str = "https://api.ercaspay.com"
    ercaspay_secret_key: str = ""
    gateway_timeout_seconds: float = 10.0

    frontend_url: str = "http://localhost:5173"
    default_currency: str = "NGN"
    # gateway amounts are major units (naira); wallets hold minor units (kobo)
    minor_units_per_major: int = 100

    jwt_secret: str = "change-this-secret"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 8

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="LEGIT_",
        extra="ignore",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
