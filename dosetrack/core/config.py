from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator, model_validator
from urllib.parse import quote_plus
from enum import Enum


class Environment(str, Enum):
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class Settings(BaseSettings):
    # Environment Configuration
    ENVIRONMENT: Environment = Environment.DEVELOPMENT

    # Project Information
    PROJECT_NAME: str = "dosetrack"
    VERSION: str = "0.1.0"
    API_V1_STR: str = "/api/v1"
    SERVER_HOST: str = "0.0.0.0"
    SERVER_PORT: int = 8000

    # Database - PostgreSQL in deployments, SQLite fallback for local runs
    POSTGRES_SERVER: Optional[str] = None
    POSTGRES_PORT: Optional[int] = None
    POSTGRES_USER: Optional[str] = None
    POSTGRES_PASSWORD: Optional[str] = None
    POSTGRES_DB: Optional[str] = None
    SQLALCHEMY_DATABASE_URI: Optional[str] = None

    # Timezone configuration (used for user-facing timestamps)
    DEFAULT_TIMEZONE: str = "UTC"

    # Dose lifecycle
    MISSED_DOSE_GRACE_MINUTES: int = 30
    STREAK_LOOKBACK: int = 30

    # Stock projection
    STOCK_TRAILING_DAYS: int = 7
    STOCK_MIN_DAILY_RATE: float = 0.1
    LOW_STOCK_HORIZON_DAYS: int = 7
    LOW_STOCK_ALERT_COOLDOWN_HOURS: int = 24

    # Scheduling
    SCHEDULER_SCAN_INTERVAL_SECONDS: int = 60
    SCHEDULER_BATCH_SIZE: int = 50
    CLAIM_LEASE_SECONDS: int = 600
    REMINDER_HORIZON_HOURS: int = 24
    MISSED_SWEEP_INTERVAL_SECONDS: int = 300
    LOW_STOCK_SCAN_INTERVAL_SECONDS: int = 3600

    # Celery configuration
    CELERY_BROKER_URL: Optional[str] = None
    CELERY_RESULT_BACKEND: Optional[str] = None
    WORKER_CONCURRENCY: int = 4

    # Channels
    CHANNEL_TIMEOUT_SECONDS: float = 10.0

    # FCM
    FCM_PROJECT_ID: Optional[str] = None
    FCM_CREDENTIALS_JSON: Optional[str] = None  # path or inline JSON via env

    # Email
    SMTP_SERVER: Optional[str] = None
    SMTP_PORT: int = 465
    SMTP_USERNAME: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    FROM_EMAIL: Optional[str] = None
    APP_URL: str = "http://localhost:3000"

    # Chat transport (Evolution API WhatsApp gateway)
    EVOLUTION_API_URL: Optional[str] = None
    EVOLUTION_API_KEY: Optional[str] = None
    EVOLUTION_INSTANCE: str = "dosetrack"

    # API Security
    VALID_API_KEYS: str = ""  # comma-separated
    REQUIRE_API_KEY: bool = True

    # Metrics
    METRICS_ENABLED: bool = False

    # --- Validators & Derived Settings ---
    @field_validator("DEFAULT_TIMEZONE", mode="before")
    @classmethod
    def default_timezone_when_blank(cls, v: Optional[str]) -> str:
        if v is None or (isinstance(v, str) and v.strip() == ""):
            return "UTC"
        return v

    @model_validator(mode="after")
    def _finalize_and_validate(self) -> "Settings":
        # Derive SQLALCHEMY_DATABASE_URI if not provided
        if not self.SQLALCHEMY_DATABASE_URI:
            user = self.POSTGRES_USER
            server = self.POSTGRES_SERVER
            port = self.POSTGRES_PORT
            db = self.POSTGRES_DB
            if user and server and port and db:
                safe_user = quote_plus(user)
                if self.POSTGRES_PASSWORD:
                    safe_password = quote_plus(self.POSTGRES_PASSWORD)
                    self.SQLALCHEMY_DATABASE_URI = (
                        f"postgresql://{safe_user}:{safe_password}@{server}:{port}/{db}"
                    )
                else:
                    self.SQLALCHEMY_DATABASE_URI = f"postgresql://{safe_user}@{server}:{port}/{db}"
            else:
                self.SQLALCHEMY_DATABASE_URI = "sqlite:///./dosetrack.db"

        if self.SCHEDULER_BATCH_SIZE < 1:
            raise ValueError("SCHEDULER_BATCH_SIZE must be at least 1")
        if self.STOCK_MIN_DAILY_RATE <= 0:
            raise ValueError("STOCK_MIN_DAILY_RATE must be positive")
        return self

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == Environment.PRODUCTION

    @property
    def api_keys(self) -> List[str]:
        return [key.strip() for key in self.VALID_API_KEYS.split(",") if key.strip()]

    @property
    def smtp_configured(self) -> bool:
        return bool(self.SMTP_SERVER and self.SMTP_USERNAME and self.SMTP_PASSWORD and self.FROM_EMAIL)

    @property
    def evolution_configured(self) -> bool:
        return bool(self.EVOLUTION_API_URL and self.EVOLUTION_API_KEY)

    model_config = SettingsConfigDict(case_sensitive=True, env_file=".env", extra="ignore")


settings = Settings()
