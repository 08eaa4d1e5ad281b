import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv(".env")


def _default_dataset_path() -> Path | None:
    env_path = os.getenv("BOOKSTORE_DATASET_PATH") or os.getenv("BOOKS_DATASET")
    return Path(env_path) if env_path else None


class Settings(BaseSettings):
    app_name: str = "Bookstore Reports"
    version: str = "1.0.0"
    dataset_path: Path | None = Field(default_factory=_default_dataset_path)
    page_size: int = Field(default=5, gt=0, le=1000)
    log_level: str = "INFO"
    otel_enabled: bool = False
    otel_service_name: str = "bookstore-reports"
    otel_endpoint: str = "http://otel-collector:4318"
    cors_origins: str = ""

    model_config = SettingsConfigDict(
        env_prefix="BOOKSTORE_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def allowed_origins(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


def get_settings() -> Settings:
    settings = Settings()
    if settings.dataset_path is not None:
        settings.dataset_path = settings.dataset_path.expanduser()
        if not settings.dataset_path.is_file():
            raise RuntimeError(f"Configured dataset not found: {settings.dataset_path}")
    return settings
