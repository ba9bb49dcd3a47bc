from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Engine settings.

    Notes:
    - Defaults are local and deterministic (SQLite file next to the package).
    - Every field can be overridden with an `AUTHZ_` env var, e.g. `AUTHZ_CACHE_TTL_SECONDS=60`.
    """

    model_config = SettingsConfigDict(env_prefix="AUTHZ_", extra="ignore")

    db_url: str | None = None
    log_level: str = "INFO"

    cache_ttl_seconds: float = 300
    tag_rule_order: Literal["descending", "ascending"] = "descending"

    field_sensitivity_path: str | None = None
    default_table: str = "core_users"

    def resolved_db_url(self) -> str:
        if self.db_url:
            return self.db_url

        repo_root = Path(__file__).resolve().parents[1]
        db_path = repo_root / "authz.db"
        return f"sqlite:///{db_path}"

    def resolved_field_sensitivity_path(self) -> Path:
        if self.field_sensitivity_path:
            return Path(self.field_sensitivity_path)

        repo_root = Path(__file__).resolve().parents[1]
        return repo_root / "config" / "field_sensitivity.yaml"


@lru_cache
def get_settings() -> Settings:
    return Settings()
