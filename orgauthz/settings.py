from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    App settings.

    Notes:
    - Defaults are local and deterministic (SQLite file next to the repo, YAML under config/).
    - Everything can be overridden with `APP_*` env vars.
    - `empty_status_scope_policy` decides what a permission with an empty status scope means:
      `allow_all` keeps it for every department, `deny` drops it for non-executives.
    """

    model_config = SettingsConfigDict(env_prefix="APP_", extra="ignore")

    db_url: str | None = None
    security_config_path: str | None = None
    catalog_path: str | None = None
    log_level: str = "INFO"

    permission_cache_ttl_seconds: int = 0
    empty_status_scope_policy: Literal["allow_all", "deny"] = "allow_all"

    notification_webhook_url: str | None = None
    notification_timeout_seconds: float = 5.0

    celery_broker_url: str = "redis://localhost:6379/0"
    sweep_interval_seconds: int = 900

    def resolved_db_url(self) -> str:
        if self.db_url:
            return self.db_url

        repo_root = Path(__file__).resolve().parents[1]
        db_path = repo_root / "orgauthz.db"
        return f"sqlite:///{db_path}"

    def resolved_security_config_path(self) -> Path:
        if self.security_config_path:
            return Path(self.security_config_path)

        repo_root = Path(__file__).resolve().parents[1]
        return repo_root / "config" / "security_config.yaml"

    def resolved_catalog_path(self) -> Path:
        if self.catalog_path:
            return Path(self.catalog_path)

        repo_root = Path(__file__).resolve().parents[1]
        return repo_root / "config" / "org_catalog.yaml"


@lru_cache
def get_settings() -> Settings:
    return Settings()
