"""
Configuration module - loads all env vars using pydantic-settings.
This is the SINGLE SOURCE OF TRUTH for all config values.
"""

from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # MongoDB (must be a replica set: transitions use multi-document transactions)
    mongodb_uri: str = "mongodb://localhost:27017"
    mongodb_db: str = "placement_kyc"

    # JWT Auth (tokens are issued by the login service, we only verify them)
    jwt_secret_key: str = "change-this-secret"
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 1440

    # Logging
    environment: str = "development"
    log_level: str = "INFO"

    # Transition engine
    transaction_max_retries: int = 3

    # Reconciliation job
    reconcile_concurrency: int = 4
    system_actor_id: str = "system:kyc-reconciler"

    # App
    debug: bool = True
    # X-Forwarded-For is only read from these peers (JSON list in env)
    trusted_proxies: List[str] = []

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    # Pydantic v2 config
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8"
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()
