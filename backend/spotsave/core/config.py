from typing import Annotated, List, Optional, Any
from pathlib import Path
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict
import secrets
import json


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # API Settings
    PROJECT_NAME: str = "SpotSave"
    API_PREFIX: str = "/api"

    # Environment
    ENVIRONMENT: str = Field(default="development")
    DEBUG: bool = Field(default=False)
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FORMAT: str = Field(default="json")

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Security
    SECRET_KEY: str = Field(default_factory=lambda: secrets.token_urlsafe(32))
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24  # 24 hours

    # AWS Configuration
    AWS_REGION: str = Field(default="us-east-1")
    AWS_ACCESS_KEY_ID: Optional[str] = None
    AWS_SECRET_ACCESS_KEY: Optional[str] = None
    COST_EXPLORER_REGION: str = "us-east-1"  # Cost Explorer only lives in us-east-1

    # Role assumption
    ROLE_SESSION_NAME: str = "SpotSaveSession"
    ROLE_SESSION_DURATION_SECONDS: int = 1800  # 30 minutes
    DEFAULT_ROLE_NAME: str = "SpotSaveReadOnlyRole"
    SERVICE_ACCOUNT_ID: Optional[str] = None

    # Credential lifecycle
    CREDENTIAL_REFRESH_INTERVAL_SECONDS: int = 25 * 60  # refresh before the 30 minute expiry
    CREDENTIAL_POLL_INTERVAL_SECONDS: int = 60
    CREDENTIAL_EXPIRY_BUFFER_MINUTES: int = 5
    SESSION_IDLE_TIMEOUT_MINUTES: int = 60 * 24  # matches the access token lifetime

    # Retry policy
    RETRY_MAX_ATTEMPTS: int = 3
    RETRY_INITIAL_DELAY_SECONDS: float = 1.0

    # Cost Analysis Settings
    COST_HISTORY_DAYS: int = 365
    FORECAST_DAYS: int = 90
    TOP_SERVICES_LIMIT: int = 10
    DEFAULT_CURRENCY: str = "USD"

    # Persisted role bindings
    STATE_DIR: Path = Field(default_factory=lambda: Path.home() / ".spotsave")

    # Feature Flags
    MOCK_MODE: bool = False

    # CORS Settings
    BACKEND_CORS_ORIGINS: Annotated[List[str], NoDecode] = Field(
        default=["http://localhost:3000", "https://localhost:3000", "http://localhost"]
    )

    @field_validator("BACKEND_CORS_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v: Any) -> List[str]:
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",")]
        elif isinstance(v, (list, str)):
            if isinstance(v, str):
                v = json.loads(v)
            return v
        raise ValueError("Invalid CORS origins format")

    # Monitoring
    SENTRY_DSN: Optional[str] = None

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT.lower() == "development"

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def is_testing(self) -> bool:
        return self.ENVIRONMENT.lower() == "testing"


settings = Settings()
