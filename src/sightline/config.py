"""Runtime settings for sightline.

Values resolve in this order, first match wins:
  1. keyword arguments passed to ``Settings(...)`` (tests, embedding code)
  2. SIGHTLINE_<SECTION>__<KEY> environment variables
  3. the TOML file named by SIGHTLINE_CONFIG_FILE, else conf/settings.toml
  4. the defaults declared below

For example, to audit tenant-less service events from an old gateway build
while debugging locally:

  SIGHTLINE_INGEST__LEGACY_PLACEHOLDER_TENANT=true
  SIGHTLINE_LOGGING__LEVEL=DEBUG
  SIGHTLINE_LOGGING__FORMAT=text
"""

import os
import uuid
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    TomlConfigSettingsSource,
)

_REPO_ROOT = Path(__file__).resolve().parents[2]
_BUNDLED_CONFIG = _REPO_ROOT / "conf" / "settings.toml"

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _config_file() -> Path:
    """The TOML file settings are read from.

    SIGHTLINE_CONFIG_FILE must name an existing file when set; a typo there
    should fail loudly rather than silently fall back to the bundled file.
    """
    override = os.environ.get("SIGHTLINE_CONFIG_FILE")
    if not override:
        return _BUNDLED_CONFIG
    path = Path(override)
    if not path.is_file():
        raise FileNotFoundError(f"SIGHTLINE_CONFIG_FILE not found: {path}")
    return path


# ---------------------------------------------------------------------------
# [paths] [ingest] [logging]
# ---------------------------------------------------------------------------


class PathsSettings(BaseModel):
    """Where sightline keeps its warehouse."""

    data_root: Path = Path("./var/sightline")

    @field_validator("data_root", mode="after")
    @classmethod
    def _expand_home(cls, v: Path) -> Path:
        return v.expanduser()


class IngestSettings(BaseModel):
    """Identity policy switches read by the event handler."""

    # Off: service events without a valid tenant are dropped and audited.
    # On: generic audit rows are written under placeholder_tenant_id instead.
    legacy_placeholder_tenant: bool = False
    placeholder_tenant_id: str = "00000000-0000-0000-0000-000000000001"

    @field_validator("placeholder_tenant_id")
    @classmethod
    def _must_be_uuid(cls, v: str) -> str:
        try:
            return str(uuid.UUID(v))
        except ValueError as exc:
            raise ValueError(f"placeholder_tenant_id must be a UUID, got {v!r}") from exc


class LoggingSettings(BaseModel):
    """Log level and renderer."""

    level: str = "INFO"
    format: Literal["json", "text"] = "json"

    @field_validator("level", mode="before")
    @classmethod
    def _known_level(cls, v: str) -> str:
        level = str(v).upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"level must be one of {', '.join(_LOG_LEVELS)}; got {v!r}")
        return level


class Settings(BaseSettings):
    """Every sightline setting after all sources are merged."""

    paths: PathsSettings = PathsSettings()
    ingest: IngestSettings = IngestSettings()
    logging: LoggingSettings = LoggingSettings()

    model_config = SettingsConfigDict(
        env_prefix="SIGHTLINE_",
        env_nested_delimiter="__",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # No .env or secrets directory.
        return (
            init_settings,
            env_settings,
            TomlConfigSettingsSource(settings_cls, toml_file=_config_file()),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings once per process.

    Call ``get_settings.cache_clear()`` after changing the environment.
    """
    return Settings()
