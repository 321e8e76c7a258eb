from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


class Settings(BaseSettings):
    app_name: str = "narramorph"
    env: str = "dev"

    log_level: str = "INFO"
    log_format: str = "%(asctime)s %(levelname)s %(name)s: %(message)s"

    condition_cache_capacity: int = Field(default=500, ge=1)
    transformation_cache_capacity: int = Field(default=200, ge=1)
    batch_cache_capacity: int = Field(default=100, ge=1)
    master_cache_capacity: int = Field(default=100, ge=1)
    content_cache_capacity: int = Field(default=200, ge=1)
    content_cache_ttl_s: float = Field(default=300.0, gt=0)
    attractor_cache_capacity: int = Field(default=64, ge=1)
    attractor_cache_ttl_s: float = Field(default=5.0, gt=0)

    transform_guard_max_chars: int = 10000
    batch_guard_max_chars: int = 15000
    batch_guard_max_transformations: int = 20

    significant_engagement_threshold: float = 50.0
    significant_pattern_strength: float = 0.6
    significant_pattern_limit: int = 5

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


def normalize_log_level(value: str | None) -> str:
    candidate = str(value or "").strip().upper()
    if candidate == "WARN":
        candidate = "WARNING"
    if candidate not in _LOG_LEVELS:
        return "INFO"
    return candidate


settings = Settings()
settings.log_level = normalize_log_level(settings.log_level)
