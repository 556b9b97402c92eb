from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache

class Settings(BaseSettings):
    PROJECT_NAME: str = "midgard-history-api"
    DATABASE_URL: str
    DB_POOL_SIZE: int = 5
    DB_POOL_TIMEOUT: float = 3.0
    DB_ECHO: bool = False

    # Upstream
    MIDGARD_API_URL: str = "https://midgard.ninerealms.com/v2"
    DEPTH_POOL: str = "ETH.ETH"

    # Synchronizer
    SYNC_START_TIMESTAMP: int = 1648771200
    SYNC_BATCH_SIZE: int = 400
    SYNC_RETRY_DELAY_SECONDS: float = 5.0
    SYNC_CYCLE_DELAY_SECONDS: float = 3.0
    SYNC_MAX_ATTEMPTS: int = 0  # 0 retries forever
    LATEST_HOUR_MAX_ATTEMPTS: int = 5
    HOURLY_STEP_DELAY_SECONDS: float = 3.0
    HOURLY_CHECK_SECONDS: float = 60.0

    # Feature Flags
    ENABLE_CONTINUOUS_SYNC: bool = False
    ENABLE_HOURLY_SYNC: bool = True
    ENABLE_INITIAL_BACKFILL: bool = False

    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    model_config = SettingsConfigDict(
        case_sensitive=True,
        env_file=".env",
        extra="ignore"
    )

@lru_cache()
def get_settings():
    return Settings()
