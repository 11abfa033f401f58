from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="LINEAGE_", env_file=".env", extra="ignore")

    # Upstream
    sleeper_api_url: str = "https://api.sleeper.app/v1"
    cache_ttl_seconds: int = 604800  # 7 days
    rate_limit_per_min: int = 600
    max_retries: int = 5
    backoff_base_seconds: float = 2.0
    backoff_cap_seconds: float = 15.0
    request_timeout_seconds: float = 30.0
    weeks_per_season: int = 18
    sync_players: bool = True

    # Storage
    database_path: str = "lineage.db"

    # Queries
    trade_tree_max_depth: int = 10
    network_min_depth: int = 1
    network_max_depth: int = 5
    importance_floor: float = 0.1
    importance_ceiling: float = 1.0

    # App
    log_level: str = "INFO"
    allowed_origins: Optional[str] = None  # Comma-separated list

    @property
    def min_request_interval(self) -> float:
        """Seconds every upstream request must wait after the previous one."""
        return 60.0 / max(1, self.rate_limit_per_min)

    def get_allowed_origins(self) -> List[str]:
        if self.allowed_origins:
            return [url.strip() for url in self.allowed_origins.split(",") if url.strip()]
        return ["http://localhost:3000", "http://127.0.0.1:3000"]


@lru_cache
def get_settings() -> Settings:
    return Settings()
