"""Application configuration using pydantic settings with structured sections."""

from functools import lru_cache
from typing import Literal, Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServerSettings(BaseModel):
    host: str = "0.0.0.0"
    port: int = 8000
    reload: bool = False


class DatabaseSettings(BaseModel):
    url: str = Field(default="sqlite+aiosqlite:///./rubis.db", alias="url")
    echo: bool = False
    pool_size: Optional[int] = None
    max_overflow: Optional[int] = None


class SecuritySettings(BaseModel):
    secret_key: str = Field(default="change-me", min_length=8)
    algorithm: str = "HS256"


def _default_origin_weights() -> dict[str, int]:
    return {
        "paid_topup": 10000,
        "farm_watch": 3500,
        "wheel_daily": 3000,
        "achievement": 3000,
        "chest_auto": 2500,
        "chest_streamer": 2000,
        "event_platform": 1000,
        "earn_support": 10000,
        "legacy": 3500,
    }


class EconomySettings(BaseModel):
    # Weights are stamped on lots at mint time; editing them only affects future mints.
    origin_weights: dict[str, int] = Field(default_factory=_default_origin_weights)
    platform_fee_bp: int = Field(default=1000, ge=0, le=10000)
    chest_max_out_weight_bp: int = Field(default=2000, ge=0, le=2000)
    heartbeat_ttl_seconds: int = 45
    chest_default_duration_seconds: int = 30
    chest_min_duration_seconds: int = 5
    chest_default_min_watch_minutes: int = 5


class JobSettings(BaseModel):
    enabled: bool = True
    auto_close_interval: float = 5.0
    auto_close_batch: int = 10
    auto_mint_interval: float = 60.0
    auto_mint_minutes: int = 5
    auto_mint_rubis: int = 3


class Settings(BaseSettings):
    """Top-level application settings with nested sections."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_nested_delimiter="__",
        extra="ignore",
        case_sensitive=False,
    )

    environment: Literal["development", "staging", "production", "test"] = "development"
    debug: bool = False
    log_level: str = "INFO"
    project_name: str = "Rubis Economy Server"
    api_prefix: str = "/api"

    server: ServerSettings = ServerSettings()
    database: DatabaseSettings = DatabaseSettings()
    security: SecuritySettings = SecuritySettings()
    economy: EconomySettings = EconomySettings()
    jobs: JobSettings = JobSettings()

    @property
    def database_url(self) -> str:
        return self.database.url

    @property
    def host(self) -> str:
        return self.server.host

    @property
    def port(self) -> int:
        return self.server.port

    @property
    def secret_key(self) -> str:
        return self.security.secret_key

    @property
    def algorithm(self) -> str:
        return self.security.algorithm


@lru_cache()
def get_settings() -> Settings:
    return Settings()
