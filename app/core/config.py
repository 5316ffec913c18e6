"""Application configuration"""
from typing import List, Optional
from pydantic_settings import BaseSettings
from pydantic import field_validator


class Settings(BaseSettings):
    """Application settings"""

    # Application
    APP_NAME: str = "WAF Decision Engine"
    APP_ENV: str = "development"
    DEBUG: bool = True

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./data/waf.db"
    DATABASE_ECHO: bool = False

    # Redis
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_CACHE_DB: int = 1

    # Celery
    CELERY_BROKER_URL: str = "redis://localhost:6379/2"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/3"

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:8000"]

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",")]
        return v

    # Request inspection
    TOP_BLOCKED_LIMIT: int = 10

    # Threat analysis
    ANALYSIS_WINDOW_SIZE: int = 50
    INSIGHT_LIKELIHOOD_THRESHOLD: float = 0.2
    THREAT_MODEL_PATH: Optional[str] = None  # joblib file produced by train_threat_model
    THREAT_NOISE_SCALE: float = 0.0  # 0 keeps the model path deterministic
    THREAT_NOISE_SEED: Optional[int] = None
    THREAT_ANALYSIS_INTERVAL_MINUTES: int = 5

    # Snapshot persistence
    SNAPSHOT_RETRY_ATTEMPTS: int = 5
    SNAPSHOT_RETRY_BACKOFF: float = 0.5  # seconds, doubled per attempt

    # Logging
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
