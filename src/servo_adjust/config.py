"""Configuration loading for servo-adjust.

Settings come from a YAML file and are then overridden by ``SERVO_ADJUST_*``
environment variables. The CLI applies its flags on top of the result.
"""

import os
import sys
from collections.abc import Callable
from pathlib import Path

import yaml

from servo_adjust.models.config import AppConfig

CONFIG_PATH_ENV = "SERVO_ADJUST_CONFIG_PATH"


def _as_bool(value: str) -> bool:
    return value.strip().lower() in ("true", "1", "yes")


def _as_log_level(value: str) -> str | None:
    level = value.strip().upper()
    return level if level in ("INFO", "DEBUG", "TRACE") else None


# (variable names, section, field, converter); the first variable set wins and a
# converter returning None ignores the value. The unprefixed names are the ones
# older deployments of the server read.
ENV_OVERRIDES: list[tuple[tuple[str, ...], str, str, Callable[[str], object]]] = [
    (("SERVO_ADJUST_SERVER_HOST", "HOST"), "server", "host", str),
    (("SERVO_ADJUST_SERVER_PORT", "PORT"), "server", "port", int),
    (("SERVO_ADJUST_CALIB_ROOT", "CALIB_ROOT"), "storage", "calib_root", lambda v: Path(v).expanduser()),
    (("SERVO_ADJUST_READ_ONLY", "READ_ONLY"), "storage", "read_only", _as_bool),
    (("SERVO_ADJUST_LOG_LEVEL",), "advanced", "log_level", _as_log_level),
]


def default_config_path() -> Path:
    """Return the platform location of ``config.yaml``."""
    if sys.platform == "win32":
        base = Path(os.getenv("APPDATA", str(Path.home()))) / "ServoAdjust"
    elif sys.platform == "darwin":
        base = Path.home() / "Library" / "Application Support" / "ServoAdjust"
    else:
        base = Path.home() / ".config" / "servo-adjust"
    return base / "config.yaml"


class ConfigManager:
    """Loads, caches and saves the application configuration."""

    def __init__(self, config_path: Path | None = None) -> None:
        """
        Args:
            config_path: YAML file to use. Defaults to ``$SERVO_ADJUST_CONFIG_PATH``
                or the platform config directory.
        """
        if config_path is None:
            env_path = os.getenv(CONFIG_PATH_ENV)
            config_path = Path(env_path).expanduser() if env_path else default_config_path()
        self.config_path = config_path
        self._config: AppConfig | None = None

    def load(self) -> AppConfig:
        """Read the YAML file (if any) and apply environment overrides.

        Raises:
            pydantic.ValidationError: when the file holds invalid settings
        """
        raw: dict = {}
        if self.config_path.is_file():
            with open(self.config_path, encoding="utf-8") as f:
                raw = yaml.safe_load(f) or {}
        return self._apply_env_overrides(AppConfig.model_validate(raw))

    def save(self, config: AppConfig) -> None:
        """Write ``config`` to the YAML file, creating its directory."""
        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        # JSON mode turns paths into plain strings
        data = config.model_dump(mode="json")
        with open(self.config_path, "w", encoding="utf-8") as f:
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)

    @staticmethod
    def _apply_env_overrides(config: AppConfig) -> AppConfig:
        for env_names, section, field, convert in ENV_OVERRIDES:
            raw = next((value for value in map(os.getenv, env_names) if value), None)
            if raw is None:
                continue
            value = convert(raw)
            if value is not None:
                setattr(getattr(config, section), field, value)
        return config

    def get_config(self) -> AppConfig:
        """Return the cached configuration, loading it on first use."""
        if self._config is None:
            self._config = self.load()
        return self._config

    def reload(self) -> AppConfig:
        self._config = self.load()
        return self._config


_config_manager = ConfigManager()


def get_config() -> AppConfig:
    """Return the process-wide configuration."""
    return _config_manager.get_config()


def reload_config() -> AppConfig:
    return _config_manager.reload()


def save_config(config: AppConfig) -> None:
    _config_manager.save(config)
