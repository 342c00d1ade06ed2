# mpbot/config.py
"""
Runtime configuration.

Every field can be set through an ``MPBOT_``-prefixed environment variable
(``MPBOT_DATABASE_URL``, ``MPBOT_ADMIN_TOKEN`` ...) or a ``.env`` file.
"""

from typing import List, Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_ADMIN_TOKEN = "CHANGE_ME_ADMIN_TOKEN"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="MPBOT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Storage
    storage_backend: Literal["sql", "json"] = "sql"
    database_url: str = "sqlite:///./mpbot.db"
    json_store_path: str = "./mpbot.json"

    # Admin routes are gated by this shared secret
    admin_token: str = DEFAULT_ADMIN_TOKEN

    # Challenge defaults for keys that have never been written
    default_theta_deg: float = 270.0
    default_phi_deg: float = 90.0
    default_tolerance: float = 10.0

    # Oldest observations beyond this count are dropped on insert
    max_observations_per_key: int = 5000
    recompute_on_observe: bool = False

    # Legacy popup style name returned by /aloha
    ui_bundle: str = "bundle"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"
    cors_origins: str = "*"

    @property
    def cors_origin_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


def get_settings() -> Settings:
    return Settings()
