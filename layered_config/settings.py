"""
Settings for the configuration service itself
Read from LAYERED_CONFIG_* environment variables at construction time
"""

from pathlib import Path
from typing import List, Optional

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigServiceSettings(BaseSettings):
    """Where overlays and key material live, and how the service behaves"""

    model_config = SettingsConfigDict(
        env_prefix="LAYERED_CONFIG_",
        case_sensitive=False,
        extra="ignore",
    )

    config_dir: Path = Field(default_factory=lambda: Path.cwd() / "config", description="Overlay directory")
    key_file: Path = Field(default_factory=lambda: Path.cwd() / ".encryption-key", description="Persisted key material")
    encryption_key: Optional[SecretStr] = Field(default=None, description="Injected key material (64 hex chars)")
    history_capacity: int = Field(default=100, ge=1, description="Change journal capacity")
    watch_overlays: Optional[bool] = Field(default=None, description="Live-reload overlays; defaults to development only")
    production_environments: List[str] = Field(default_factory=lambda: ["production"])
    environment_key: str = Field(default="environment", description="Key holding the active environment name")

    @field_validator('production_environments')
    @classmethod
    def normalize_environments(cls, v):
        return [name.strip().lower() for name in v if name.strip()]

    def is_production(self, environment: str) -> bool:
        return environment.strip().lower() in self.production_environments

    def should_watch(self, environment: str) -> bool:
        if self.watch_overlays is not None:
            return self.watch_overlays
        return environment.strip().lower() == "development"
