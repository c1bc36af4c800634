from functools import lru_cache
from typing import Optional
from pydantic import Field, validator
from pydantic_settings import BaseSettings


SINK_BACKENDS = ("oracle", "log")
SINK_FAILURE_POLICIES = ("drop", "requeue", "dead_letter")
SATURATION_POLICIES = ("drop", "reject", "block")


class Settings(BaseSettings):
    # Application
    APP_NAME: str = "Notify Relay"
    VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False

    # Intake HTTP listener
    APP_LISTEN_ADDR: str = "0.0.0.0"
    APP_LISTEN_PORT: int = 8080
    APP_HANDLER_URI: str = "/send"

    # Redis queue backend
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: Optional[str] = None
    REDIS_QUEUE: str = "notifications"
    REDIS_MAX_ACTIVE_CONNECTIONS: int = Field(default=10, ge=1)
    REDIS_MAX_IDLE_CONNECTIONS: int = Field(default=3, ge=0)
    REDIS_POOL_WAIT: bool = True
    REDIS_POOL_TIMEOUT: Optional[float] = 5.0
    REDIS_SOCKET_TIMEOUT: Optional[float] = 5.0

    # Oracle delivery sink
    ORACLE_HOST: str = "localhost"
    ORACLE_PORT: int = 1521
    ORACLE_USER: str = "notify"
    ORACLE_PASSWORD: str = ""
    ORACLE_SID: str = "ORCL"
    ORACLE_MAX_OPEN_CONNECTIONS: int = Field(default=5, ge=1)
    ORACLE_MAX_IDLE_CONNECTIONS: int = Field(default=2, ge=0)
    ORACLE_PROCEDURE: str = "MFM.TCS_NOTIFICATIONS.SEND_NOTIFICATION"
    ORACLE_SYSTEM_ID: str = "NAGIOS"
    ORACLE_MESSAGE_TYPE: str = "NagiosInfo"

    # Delivery
    SINK_BACKEND: str = "oracle"
    SINK_TIMEOUT_SECONDS: float = 30.0
    SINK_FAILURE_POLICY: str = "drop"

    # Intake dispatch
    TOKEN_LENGTH: int = Field(default=12, ge=1)
    DISPATCH_QUEUE_SIZE: int = Field(default=1000, ge=1)
    DISPATCH_WORKERS: int = Field(default=4, ge=1)
    DISPATCH_SATURATION_POLICY: str = "drop"

    # Worker polling and recovery
    POLL_INTERVAL_SECONDS: float = 1.0
    DEQUEUE_MAX_RETRIES: int = Field(default=5, ge=0)
    DEQUEUE_BASE_DELAY_SECONDS: float = 1.0
    DEQUEUE_MAX_DELAY_SECONDS: float = 60.0

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_PATH: Optional[str] = None

    @validator("LOG_LEVEL")
    def validate_log_level(cls, v):
        allowed_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed_levels:
            raise ValueError(f"Log level must be one of: {allowed_levels}")
        return v.upper()

    @validator("SINK_BACKEND")
    def validate_sink_backend(cls, v):
        if v not in SINK_BACKENDS:
            raise ValueError(f"Sink backend must be one of: {list(SINK_BACKENDS)}")
        return v

    @validator("SINK_FAILURE_POLICY")
    def validate_sink_failure_policy(cls, v):
        if v not in SINK_FAILURE_POLICIES:
            raise ValueError(f"Sink failure policy must be one of: {list(SINK_FAILURE_POLICIES)}")
        return v

    @validator("DISPATCH_SATURATION_POLICY")
    def validate_saturation_policy(cls, v):
        if v not in SATURATION_POLICIES:
            raise ValueError(f"Saturation policy must be one of: {list(SATURATION_POLICIES)}")
        return v

    @validator("APP_HANDLER_URI")
    def validate_handler_uri(cls, v):
        if not v.startswith("/"):
            raise ValueError("Handler URI must start with '/'")
        return v

    @validator("REDIS_QUEUE")
    def validate_queue_name(cls, v):
        if not v or " " in v:
            raise ValueError("Queue name must be a non-empty string without spaces")
        return v

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Load settings once per process."""
    return Settings()
