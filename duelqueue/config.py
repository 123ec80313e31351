import logging
from logging.config import dictConfig
from pathlib import Path
from typing import List, Tuple

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Application
    ENVIRONMENT: str = "local"

    # API SERVER
    API_SERVER_PORT: int = 8000
    API_SERVER_HOST: str = "0.0.0.0"

    # Main DB (Duel Queue)
    POSTGRES_DRIVER: str = "postgresql+asyncpg"
    POSTGRES_USER: str = "postgres"
    DUEL_DB: str = "duel_queue"
    DUEL_DB_PASSWORD: str = "postgres"
    DUEL_DB_PORT: int = 5432
    DUEL_DB_HOST_PROD: str = "postgres"

    # Redis
    REDIS_HOST_PROD: str = "redis"
    REDIS_PORT: int = 6379
    REDIS_PASSWORD: str = ""
    REDIS_KEY_PREFIX: str = "mmq"

    # Kafka
    KAFKA_ENABLED: bool = False
    KAFKA_HOST: str = "kafka"
    KAFKA_PORT: int = 9092
    MATCH_EVENTS_TOPIC: str = "match_events"

    # Matchmaking
    QUEUE_BACKEND: str = "memory"
    MATCHMAKING_MODES: List[str] = ["ranked", "casual"]
    MATCHMAKING_TICK_SECONDS: float = 2.0
    MATCHMAKER_AUTOSTART: bool = True
    MAX_WAIT_SECONDS: float = 300.0
    # Starts after the last step so the 300 ceiling applies for a while first
    DESPERATION_TIMEOUT_SECONDS: float = 125.0
    CLOSE_RANGE: int = 50
    # (elapsed seconds, allowed rating distance)
    RATING_RANGE_STEPS: List[Tuple[float, int]] = [(0, 50), (60, 200), (120, 300)]
    MATCH_CREATION_MAX_FAILURES: int = 3
    # How long a finished search stays readable through the wait endpoint
    OUTCOME_RETENTION_SECONDS: float = 300.0
    QUEUE_MODE_SWITCH_POLICY: str = "reject"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = "logs/app.log"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def DUEL_DB_URL(self) -> str:
        return f"{self.POSTGRES_DRIVER}://{self.POSTGRES_USER}:{self.DUEL_DB_PASSWORD}@{self.DUEL_DB_HOST}:{self.DUEL_DB_PORT}/{self.DUEL_DB}"

    @property
    def API_BASE_URL(self) -> str:
        return f"http://{self.API_SERVER_HOST}:{self.API_SERVER_PORT}"

    @property
    def REDIS_HOST(self) -> str:
        if self.ENVIRONMENT == "local":
            return "localhost"
        return self.REDIS_HOST_PROD

    @property
    def DUEL_DB_HOST(self) -> str:
        if self.ENVIRONMENT == "local":
            return "localhost"
        return self.DUEL_DB_HOST_PROD

    @property
    def KAFKA_BOOTSTRAP_SERVERS(self) -> str:
        return f"{self.KAFKA_HOST}:{self.KAFKA_PORT}"


Config = Settings()

# Ensure logs directory exists
log_dir = Path(Config.LOG_FILE).parent
log_dir.mkdir(parents=True, exist_ok=True)


def configure_logging():
    """Configure logging for the application."""
    log_config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            },
            "detailed": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(module)s - %(funcName)s - %(lineno)d - %(message)s",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "level": Config.LOG_LEVEL,
            },
            "file": {
                "class": "logging.handlers.RotatingFileHandler",
                "formatter": "detailed",
                "filename": Config.LOG_FILE,
                "maxBytes": 10485760,  # 10MB
                "backupCount": 5,
                "level": Config.LOG_LEVEL,
            },
        },
        "loggers": {
            "app": {
                "handlers": ["console", "file"],
                "level": Config.LOG_LEVEL,
                "propagate": False,
            },
            "kafka_consumer": {
                "handlers": ["console", "file"],
                "level": Config.LOG_LEVEL,
                "propagate": False,
            },
        },
        "root": {
            "handlers": ["console", "file"],
            "level": Config.LOG_LEVEL,
        },
    }
    dictConfig(log_config)
    return logging.getLogger("app")


# Initialize logger
logger = configure_logging()
