from pydantic_settings import BaseSettings
from typing import List

class Settings(BaseSettings):
    # Database - supports both SQLite (dev) and PostgreSQL (prod)
    DATABASE_URL: str = "sqlite:///./ridehail.db"

    # Upper bound for a single store call, in seconds
    STORE_TIMEOUT_SECONDS: float = 5.0

    # CORS
    BACKEND_CORS_ORIGINS: List[str] = ["*"]

    LOG_LEVEL: str = "INFO"

    # Fare estimation
    AVERAGE_SPEED_KMH: float = 35.0
    DEFAULT_NIGHT_START_HOUR: int = 22
    DEFAULT_NIGHT_END_HOUR: int = 6

    # Driver client tracking
    TRACKING_INTERVAL_SECONDS: float = 10.0
    TRACKING_DISTANCE_INTERVAL_M: float = 10.0
    API_BASE_URL: str = "http://localhost:8000"
    HTTP_TIMEOUT_SECONDS: float = 5.0

    class Config:
        env_file = ".env"

settings = Settings()
