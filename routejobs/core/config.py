from pydantic_settings import BaseSettings
from pydantic import field_validator


class Settings(BaseSettings):
    APP_NAME: str = "Route Jobs API"
    LOG_LEVEL: str = "INFO"

    # REQUIRED in .env
    JWT_SECRET: str
    JWT_ALG: str = "HS256"
    JWT_EXPIRE_MINUTES: int = 60 * 24  # 1 day

    DATABASE_URL: str = "sqlite:///./routejobs.db"

    # Route optimization provider
    OPTIMO_BASE_URL: str = "https://api.optimoroute.com/v1"
    OPTIMO_API_KEY: str = ""
    OPTIMO_TIMEOUT_S: float = 10.0

    # Driver event feed
    EVENT_FEED_ENABLED: bool = False
    EVENT_POLL_INTERVAL_S: float = 15.0
    EVENT_BUFFER_SIZE: int = 200

    # Planning runs
    PLANNING_POLL_INTERVAL_S: float = 2.0
    PLANNING_MAX_POLLS: int = 300

    # Pickup day auto-assignment
    PICKUP_OPTIMIZATION_WINDOW_DAYS: int = 7
    PICKUP_OPTIMIZATION_METRIC: str = "distance"  # distance, time, both
    PICKUP_AUTO_ASSIGN: bool = False
    PICKUP_AUTO_APPROVE: bool = False
    PICKUP_AUTO_APPROVE_MAX_MILES: float | None = None  # 0 / empty = no limit
    PICKUP_AUTO_APPROVE_MAX_MINUTES: float | None = None
    AVG_SPEED_MPH: float = 25.0

    class Config:
        env_file = ".env"

    @field_validator("JWT_SECRET")
    @classmethod
    def validate_secret(cls, v: str) -> str:
        if not v or len(v.strip()) < 32:
            raise ValueError("JWT_SECRET must be set and at least 32 characters.")
        if "CHANGE_ME" in v.upper():
            raise ValueError("JWT_SECRET looks like a placeholder. Set a real secret.")
        return v.strip()

    @field_validator("PICKUP_OPTIMIZATION_METRIC")
    @classmethod
    def validate_metric(cls, v: str) -> str:
        v = (v or "distance").strip().lower()
        if v not in ("distance", "time", "both"):
            raise ValueError("PICKUP_OPTIMIZATION_METRIC must be distance, time or both.")
        return v

    @field_validator("PICKUP_AUTO_APPROVE_MAX_MILES", "PICKUP_AUTO_APPROVE_MAX_MINUTES", mode="before")
    @classmethod
    def blank_threshold(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v


settings = Settings()
