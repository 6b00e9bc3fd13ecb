from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    App settings.

    Every field can be overridden with an ``ORGSCOPE_``-prefixed env var, e.g.
    ``ORGSCOPE_FANOUT_TIMEOUT_SECONDS=10``.
    """

    model_config = SettingsConfigDict(env_prefix="ORGSCOPE_", extra="ignore")

    db_url: str | None = None
    security_config_path: str | None = None
    # Anything other than "development" refuses the dev-bearer auth provider.
    environment: str = "development"
    log_level: str = "INFO"
    seed_demo_data: bool = True

    # Notification cascade
    cascade_workers: int = 8
    dispatcher_workers: int = 2
    fanout_timeout_seconds: float = 30.0
    cascade_max_attempts: int = 3
    cascade_retry_base_delay: float = 0.2
    cascade_retry_max_delay: float = 2.0

    def resolved_db_url(self) -> str:
        if self.db_url:
            return self.db_url

        repo_root = Path(__file__).resolve().parents[1]
        db_path = repo_root / "orgscope.db"
        return f"sqlite:///{db_path}"

    def resolved_security_config_path(self) -> Path:
        if self.security_config_path:
            return Path(self.security_config_path)

        repo_root = Path(__file__).resolve().parents[1]
        return repo_root / "config" / "security_config.yaml"


@lru_cache
def get_settings() -> Settings:
    return Settings()
