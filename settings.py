"""Runtime configuration for the library desk client."""
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    backend_uri: str = Field(default="http://localhost:5000")
    request_timeout: float = Field(default=15.0)
    app_dir: Path = Field(default=Path.home() / ".library_desk")
    search_debounce: float = Field(default=0.3)
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(
        env_prefix="LIBRARY_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("backend_uri")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @property
    def state_path(self) -> Path:
        return self.app_dir / "state.json"

    @property
    def covers_dir(self) -> Path:
        return self.app_dir / "covers"


@lru_cache
def get_settings() -> Settings:
    return Settings()
