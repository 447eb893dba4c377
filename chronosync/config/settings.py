"""Configuration settings for chronosync."""

import logging
from pathlib import Path
from typing import Any, Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from pydantic import AliasChoices, Field, SecretStr, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..caldav.exceptions import ConfigurationError
from ..caldav.fetcher import MAX_FETCH_CONCURRENCY
from ..caldav.models import Credentials

logger = logging.getLogger(__name__)

DEFAULT_CALDAV_URL = "https://caldav.icloud.com/"
VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class SyncSettings(BaseSettings):
    """Sync settings with environment variable support.

    Every field reads ``CHRONOSYNC_<NAME>``; the credential pair is also
    accepted as ``ICLOUD_EMAIL`` / ``ICLOUD_PASSWORD``.
    """

    # Credentials
    username: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("chronosync_username", "icloud_email"),
        description="Account identity (usually an email address)",
    )
    password: Optional[SecretStr] = Field(
        default=None,
        validation_alias=AliasChoices("chronosync_password", "icloud_password"),
        description="Account secret or app-specific password",
    )

    # Service endpoints
    caldav_url: str = Field(default=DEFAULT_CALDAV_URL, description="CalDAV service root")
    calendar_home_template: str = Field(
        default="{root}{local_part}/calendars/",
        description="Calendar home used when the server omits calendar-home-set; "
        "placeholders: root, local_part, principal",
    )

    # Timeouts (seconds)
    request_timeout: float = Field(default=5.0, gt=0, description="Per-request timeout")
    probe_timeout: float = Field(default=2.0, gt=0, description="Reachability probe timeout")
    session_timeout: float = Field(default=20.0, gt=0, description="Whole live-path budget")

    # Fetching
    fetch_concurrency: int = Field(default=3, description="Concurrent collection fetches (1-5)")
    window_past_days: int = Field(default=30, ge=0, description="Days before now to query")
    window_future_days: int = Field(default=30, ge=0, description="Days after now to query")

    # Normalization
    timezone: Optional[str] = Field(
        default=None, description="IANA zone for floating times and output (system local if unset)"
    )
    fallback_ics_path: Optional[Path] = Field(
        default=None, description="Calendar file used instead of the built-in fallback dataset"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Console log level")

    model_config = SettingsConfigDict(
        env_prefix="CHRONOSYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("fetch_concurrency")
    @classmethod
    def _clamp_concurrency(cls, value: int) -> int:
        return max(1, min(value, MAX_FETCH_CONCURRENCY))

    @field_validator("calendar_home_template")
    @classmethod
    def _check_template(cls, value: str) -> str:
        try:
            value.format(root="", local_part="", principal="")
        except (KeyError, IndexError, ValueError) as e:
            raise ValueError(f"invalid calendar_home_template placeholder: {e}") from e
        return value

    @field_validator("timezone")
    @classmethod
    def _check_timezone(cls, value: Optional[str]) -> Optional[str]:
        if not value:
            return None
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"unknown timezone {value!r}") from e
        return value

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in VALID_LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(VALID_LOG_LEVELS)}")
        return level

    @property
    def has_credentials(self) -> bool:
        return bool(self.username) and self.password is not None and bool(
            self.password.get_secret_value()
        )

    def get_credentials(self) -> Credentials:
        """Build the credential pair for one sync call.

        Raises:
            ConfigurationError: Identity or secret is missing
        """
        missing = []
        if not self.username:
            missing.append("CHRONOSYNC_USERNAME (or ICLOUD_EMAIL)")
        if self.password is None or not self.password.get_secret_value():
            missing.append("CHRONOSYNC_PASSWORD (or ICLOUD_PASSWORD)")
        if missing:
            raise ConfigurationError(f"Missing credentials: {', '.join(missing)}")
        return Credentials(username=self.username, password=self.password)


def _read_yaml_config(config_file: Path) -> dict[str, Any]:
    try:
        with config_file.open(encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigurationError(f"Cannot read config file {config_file}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {config_file}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {config_file} must contain a mapping")
    return data


def load_settings(config_file: Optional[Union[str, Path]] = None) -> SyncSettings:
    """Load settings from the environment, optionally layered over a YAML file.

    Environment variables (and ``.env``) win over YAML values, YAML values
    win over defaults. YAML keys are field names, e.g. ``request_timeout``.

    Raises:
        ConfigurationError: The file is unreadable, has unknown keys, or a value is invalid
    """
    file_data: dict[str, Any] = {}
    if config_file is not None:
        path = Path(config_file).expanduser()
        file_data = _read_yaml_config(path)
        unknown = sorted(set(file_data) - set(SyncSettings.model_fields))
        if unknown:
            raise ConfigurationError(f"Unknown setting(s) in {path}: {', '.join(unknown)}")
        logger.debug("Loaded %d setting(s) from %s", len(file_data), path)

    try:
        from_env = SyncSettings()
        overrides = {k: v for k, v in file_data.items() if k not in from_env.model_fields_set}
        return SyncSettings(**overrides) if overrides else from_env
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e
