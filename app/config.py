from dataclasses import dataclass
from functools import lru_cache
from typing import List, Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


@dataclass(frozen=True)
class DispatcherConfig:
    """Everything the notification dispatcher needs, passed in at construction."""

    destination_url: Optional[str] = None
    timeout_ms: int = 30_000
    region: Optional[str] = None
    auth_token: Optional[str] = None

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000


class Settings(BaseSettings):
    """Simulator configuration loaded from environment variables (or .env)."""

    project_name: str = Field(default="Pagador Simulator API")
    version: str = Field(default="1.0.0")
    environment: str = Field(default="development")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    database_url: str = Field(default="sqlite:///./payments.db")
    seed_on_startup: bool = Field(default=False)
    default_currency: Literal["ARS", "USD", "EUR", "BRL"] = "ARS"

    # Notification delivery
    notification_url: Optional[str] = Field(default=None)
    notification_timeout_ms: int = Field(default=30_000, gt=0)
    notification_region: Optional[str] = Field(default=None)
    notification_auth_token: Optional[str] = Field(default=None)
    notify_statuses: str = Field(default="approved,rejected,pending")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"

    def notify_status_list(self) -> List[str]:
        return [s.strip() for s in self.notify_statuses.split(",") if s.strip()]

    def dispatcher_config(self) -> DispatcherConfig:
        return DispatcherConfig(
            destination_url=self.notification_url,
            timeout_ms=self.notification_timeout_ms,
            region=self.notification_region,
            auth_token=self.notification_auth_token,
        )


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings."""
    return Settings()


settings = get_settings()
