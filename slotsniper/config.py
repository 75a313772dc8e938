"""
Configuration management using Pydantic models loaded from YAML.
"""

from __future__ import annotations

import logging
import os
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

import pendulum
import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

CONFIG_PATH_ENV = "SLOTSNIPER_CONFIG"
REQUIRED_FIELDS = ("user_id", "department_id", "member_id", "session_id")


class PortalConfig(BaseModel):
    """Fixed identifiers of the registration portal and the targeted clinic."""
    base_url: str = "https://wxis.91160.com/wxis"
    unit_id: str = "21"
    unit_name: str = "北京大学深圳医院"
    department_name: str = "牙槽外科（拔牙）"
    amount: str = "33.0"
    rise_amount: str = "37.95"
    pay_way: str = "14"
    timezone: str = "Asia/Shanghai"
    request_timeout_seconds: float = 10.0

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        """Schedule dates and periods are local to the portal."""
        try:
            pendulum.timezone(value)
        except (ValueError, KeyError) as exc:
            raise ValueError(f"Unknown timezone: {value}") from exc
        return value

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        """Normalise the base URL so paths can be appended with a single slash."""
        return value.rstrip("/")

    @field_validator("request_timeout_seconds")
    @classmethod
    def validate_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("request_timeout_seconds must be greater than zero")
        return value


class ScheduleConfig(BaseModel):
    """Tick rates of the periodic tasks and the pause between portal queries."""
    discovery_interval_seconds: float = 300.0
    availability_interval_seconds: float = 5.0
    acquisition_interval_seconds: float = 1.0
    request_delay_seconds: float = 0.2

    @field_validator(
        "discovery_interval_seconds",
        "availability_interval_seconds",
        "acquisition_interval_seconds",
    )
    @classmethod
    def validate_interval(cls, value: float) -> float:
        """Ensure every tick rate is positive."""
        if value <= 0:
            raise ValueError(f"Interval must be greater than zero, got {value}")
        return value

    @field_validator("request_delay_seconds")
    @classmethod
    def validate_delay(cls, value: float) -> float:
        if value < 0:
            raise ValueError(f"request_delay_seconds must not be negative, got {value}")
        return value


class AppConfig(BaseModel):
    """Application configuration."""
    user_id: str
    department_id: str
    member_id: str
    session_id: str
    portal: PortalConfig = Field(default_factory=PortalConfig)
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)

    @field_validator("user_id", "department_id", "member_id", "session_id", mode="before")
    @classmethod
    def validate_identifier(cls, value):
        """Accept numbers from YAML but reject blanks."""
        if value is None:
            raise ValueError("value is required")
        value = str(value).strip()
        if not value:
            raise ValueError("value must not be empty")
        return value

    @classmethod
    def load_from_yaml(cls, config_path: Path) -> "AppConfig":
        """
        Read and validate a slotsniper YAML file.

        Raises:
            FileNotFoundError: If there is no file at ``config_path``
            ValueError: If the file is not a YAML mapping or fails validation
        """
        if not config_path.is_file():
            raise FileNotFoundError(
                f"No slotsniper config at {config_path}. Copy config.example.yaml there "
                f"and fill in {', '.join(REQUIRED_FIELDS)} from your portal account."
            )

        try:
            data = yaml.safe_load(config_path.read_text(encoding="utf-8"))
        except yaml.YAMLError as exc:
            raise ValueError(f"{config_path} is not valid YAML: {exc}") from exc

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ValueError(
                f"{config_path} must be a mapping of settings such as user_id and session_id, "
                f"got a {type(data).__name__}."
            )

        return cls(**data)


class ConfigProvider:
    """
    Holds the current configuration snapshot and reloads it when the file changes.

    A tick wraps its requests in ``pinned()`` so that a reload running on
    another thread cannot change credentials halfway through the tick.
    A broken edit on disk is logged and the previous snapshot stays in effect.
    """

    def __init__(self, config: AppConfig, config_path: Optional[Path] = None):
        self._config = config
        self._path = config_path
        self._mtime = self._stat_mtime()
        self._lock = threading.Lock()
        self._local = threading.local()

    @classmethod
    def from_path(cls, config_path: Path) -> "ConfigProvider":
        """Load the initial snapshot; failures here are fatal to the caller."""
        return cls(AppConfig.load_from_yaml(config_path), config_path)

    @property
    def current(self) -> AppConfig:
        """The snapshot pinned on this thread, else the latest one."""
        pinned = getattr(self._local, "config", None)
        return pinned if pinned is not None else self._config

    @contextmanager
    def pinned(self) -> Iterator[AppConfig]:
        """
        Freeze ``current`` for the calling thread until the block exits.

        Nested blocks reuse the outer snapshot.
        """
        outer = getattr(self._local, "config", None)
        if outer is not None:
            yield outer
            return

        self._local.config = self._config
        try:
            yield self._local.config
        finally:
            self._local.config = None

    def _stat_mtime(self) -> Optional[float]:
        if self._path is None:
            return None
        try:
            return self._path.stat().st_mtime
        except OSError:
            return None

    def reload_if_changed(self) -> bool:
        """
        Re-read the config file if its modification time moved.

        Returns:
            True if a new snapshot was installed
        """
        if self._path is None:
            return False

        with self._lock:
            mtime = self._stat_mtime()
            if mtime is None or mtime == self._mtime:
                return False
            self._mtime = mtime

            try:
                config = AppConfig.load_from_yaml(self._path)
            except (OSError, ValueError, ValidationError) as exc:
                logger.warning("Config reload failed, keeping previous settings: %s", exc)
                return False

            self._config = config
            logger.info("Configuration reloaded from %s", self._path)
            return True


def get_default_config_path() -> Path:
    """
    Resolve where ``run`` looks for its config when ``--config`` is not given.

    ``$SLOTSNIPER_CONFIG`` wins; otherwise ``config.yaml`` in the working directory.
    """
    override = os.environ.get(CONFIG_PATH_ENV)
    if override:
        return Path(override).expanduser()
    return Path.cwd() / "config.yaml"
