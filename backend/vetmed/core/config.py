from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    APP_NAME: str = "VetMed Tracker"
    VERSION: str = "1.0.0"
    LOG_LEVEL: str = "INFO"

    DATABASE_URL: str = "sqlite:///./vetmed.db"
    SEED_DEMO_DATA: bool = True

    # Identity provider tokens (HS256, shared secret)
    AUTH_JWT_SECRET: str = "change-me-in-production-use-strong-random-key"
    AUTH_JWT_ALGORITHM: str = "HS256"
    AUTH_JWT_ISSUER: Optional[str] = None
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # Due-status defaults
    DEFAULT_CUTOFF_MINUTES: int = 240
    DEFAULT_ANIMAL_TIMEZONE: str = "America/New_York"

    # Co-sign requests expire after this many hours
    COSIGN_REQUEST_TTL_HOURS: int = 24

    # Offline mutation queue (device side)
    OFFLINE_QUEUE_DATABASE_URL: str = "sqlite:///./vetmed-offline.db"
    OFFLINE_QUEUE_MAX_RETRIES: int = 3
    OFFLINE_QUEUE_RETRY_DELAY_SECONDS: float = 1.0
    OFFLINE_QUEUE_LEASE_SECONDS: int = 120

    # Remote API used by the offline queue when replaying
    API_BASE_URL: str = "http://localhost:8000/api/v1"
    API_TIMEOUT: float = 10.0

    class Config:
        env_file = ".env"


settings = Settings()
