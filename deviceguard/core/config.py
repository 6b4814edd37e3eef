"""Application configuration using pydantic settings with structured sections."""

from functools import lru_cache
from typing import Literal, Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServerSettings(BaseModel):
    host: str = "0.0.0.0"
    port: int = 8000
    reload: bool = False


class DatabaseSettings(BaseModel):
    url: str = Field(default="sqlite+aiosqlite:///./deviceguard.db", alias="url")
    echo: bool = False
    pool_size: Optional[int] = None
    max_overflow: Optional[int] = None


class SecuritySettings(BaseModel):
    secret_key: str = Field(default="change-me", min_length=8)
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24 * 7


class OtpSettings(BaseModel):
    code_length: Literal[8] = 8
    ttl_seconds: int = Field(default=600, gt=0)
    max_attempts: int = Field(default=5, gt=0)
    resend_cooldown_seconds: int = Field(default=30, ge=0)
    delivery_timeout_seconds: float = Field(default=5.0, gt=0)
    # Development only: lets the logging channel print the code itself.
    log_codes: bool = False


class TransferSettings(BaseModel):
    attempt_ttl_seconds: int = Field(default=60 * 60 * 24, gt=0)
    sweep_interval_seconds: float = Field(default=60.0, gt=0)
    sweep_enabled: bool = True


class LockSettings(BaseModel):
    acquire_timeout_seconds: float = Field(default=5.0, gt=0)


class LoggingSettings(BaseModel):
    level: str = "INFO"
    format: str = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


class Settings(BaseSettings):
    """Top-level application settings with nested sections."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_nested_delimiter="__",
        extra="ignore",
        case_sensitive=False,
    )

    environment: Literal["development", "staging", "production", "test"] = "development"
    debug: bool = False
    project_name: str = "DeviceGuard"
    api_prefix: str = "/api"

    server: ServerSettings = ServerSettings()
    database: DatabaseSettings = DatabaseSettings()
    security: SecuritySettings = SecuritySettings()
    otp: OtpSettings = OtpSettings()
    transfers: TransferSettings = TransferSettings()
    locks: LockSettings = LockSettings()
    logging: LoggingSettings = LoggingSettings()

    @property
    def database_url(self) -> str:
        return self.database.url

    @property
    def host(self) -> str:
        return self.server.host

    @property
    def port(self) -> int:
        return self.server.port

    @property
    def secret_key(self) -> str:
        return self.security.secret_key

    @property
    def algorithm(self) -> str:
        return self.security.algorithm

    @property
    def access_token_expire_minutes(self) -> int:
        return self.security.access_token_expire_minutes


@lru_cache()
def get_settings() -> Settings:
    return Settings()
