"""
core/config.py -- Application configuration via pydantic-settings.

All configuration reads for Twinsight Auth happen here. No other module should
call os.getenv() or open the config file -- call load_settings() once at
startup and pass the resulting Settings object down.

Two sources, selected by a single switch:

  USE_ENVIRONMENTAL_VARIABLES=TRUE (exact value): read MYSQL_HOST,
      MYSQL_DATABASE, MYSQL_USERNAME, MYSQL_PASSWORD and PASSWORD_PEPPER (plus
      the optional tuning fields) from the environment. This is the container
      deployment mode.

  Anything else: read a YAML file from the platform config path. On first run
      the file does not exist yet; a template with placeholder MySQL values and
      a freshly generated pepper is written and ConfigTemplateCreated is raised
      so the operator can edit it and restart.

Missing or invalid values raise ConfigError naming every offending field.
Startup never continues with a partially populated Settings object.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

from __future__ import annotations

import logging
import os
import secrets
import string
import sys
from pathlib import Path

import yaml
from pydantic import ValidationError, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

logger = logging.getLogger("twinsight.config")

ENV_SWITCH = "USE_ENVIRONMENTAL_VARIABLES"

_PEPPER_LENGTH = 64
_MIN_PEPPER_LENGTH = 32
_ALPHANUMERIC = string.ascii_letters + string.digits
_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

_TEMPLATE_PLACEHOLDERS = {
    "mysql_host": "YOUR_MYSQL_HOST",
    "mysql_database": "YOUR_MYSQL_DATABASE",
    "mysql_username": "YOUR_MYSQL_USERNAME",
    "mysql_password": "YOUR_MYSQL_PASSWORD",
}


class ConfigError(Exception):
    """Configuration is missing, unreadable, or invalid. Startup must abort."""


class ConfigTemplateCreated(Exception):
    """First run: a template config file was written and needs operator edits."""

    def __init__(self, path: Path) -> None:
        super().__init__(f"Template configuration written to {path}; edit it and restart.")
        self.path = path


class Settings(BaseSettings):
    """Application settings.

    Field names map to upper-cased environment variable names in env mode
    (mysql_host -> MYSQL_HOST) and to top-level keys of the YAML file in file
    mode.

    database_url overrides the MySQL URL assembled from the mysql_* fields.
    It exists for development and tests (e.g. sqlite:///twinsight.db); the
    mysql_* fields are still required so a production config is never
    silently incomplete.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Database
    # ------------------------------------------------------------------

    mysql_host: str
    mysql_database: str
    mysql_username: str
    mysql_password: str
    database_url: str = ""
    db_pool_size: int = 5
    # Upper bound for a pool checkout and for each driver round trip.
    db_timeout_seconds: int = 10

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    password_pepper: str

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------

    log_level: str = "INFO"

    @field_validator("password_pepper")
    @classmethod
    def validate_pepper(cls, value: str) -> str:
        if len(value) < _MIN_PEPPER_LENGTH:
            raise ValueError(f"password_pepper must be at least {_MIN_PEPPER_LENGTH} characters.")
        return value

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(_LOG_LEVELS)}.")
        return level

    @field_validator("db_pool_size", "db_timeout_seconds")
    @classmethod
    def validate_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be a positive integer.")
        return value


class _FileSettings(Settings):
    """Settings populated only from the parsed YAML mapping.

    Environment variables and .env are ignored in file mode so the file is
    the single source of truth.
    """

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (init_settings,)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def generate_pepper(length: int = _PEPPER_LENGTH) -> str:
    """Return a random alphanumeric pepper from the OS CSPRNG."""
    return "".join(secrets.choice(_ALPHANUMERIC) for _ in range(length))


def default_config_path() -> Path:
    """Return the platform config file location.

    Windows:        C:\\Program Files\\TwinsightAuth\\config.yml
    Linux/FreeBSD:  /etc/twinsight-auth/config.yml
    Other:          config.yml next to the running program
    """
    if sys.platform == "win32":
        return Path(r"C:\Program Files\TwinsightAuth\config.yml")
    if sys.platform.startswith(("linux", "freebsd")):
        return Path("/etc/twinsight-auth/config.yml")
    logger.warning("Platform %s is not officially supported; config.yml is read from the program directory", sys.platform)
    return Path(sys.argv[0]).resolve().parent / "config.yml"


def _format_validation_error(exc: ValidationError, env_mode: bool) -> str:
    problems = []
    for err in exc.errors():
        field = ".".join(str(part) for part in err["loc"]) or "<root>"
        if env_mode:
            field = field.upper()
        if err["type"] == "missing":
            problems.append(f"{field} is not set")
        else:
            problems.append(f"{field}: {err['msg']}")
    return "; ".join(problems)


def write_template(path: Path) -> None:
    """Write a template config file with placeholders and a fresh pepper."""
    template = dict(_TEMPLATE_PLACEHOLDERS)
    template["password_pepper"] = generate_pepper()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(yaml.safe_dump(template, sort_keys=False), encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Could not create configuration file {path}: {exc}") from exc


# ---------------------------------------------------------------------------
# Loaders
# ---------------------------------------------------------------------------


def settings_from_env() -> Settings:
    """Build Settings from environment variables only."""
    try:
        return Settings()
    except ValidationError as exc:
        raise ConfigError(f"Invalid environment configuration: {_format_validation_error(exc, True)}") from exc


def settings_from_file(path: Path) -> Settings:
    """Build Settings from a YAML file, writing a template on first run.

    Raises ConfigTemplateCreated when the file did not exist, ConfigError when
    it cannot be read or parsed or fails validation.
    """
    if not path.exists():
        write_template(path)
        logger.info("Example configuration written to %s", path)
        raise ConfigTemplateCreated(path)

    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Could not read configuration file {path}: {exc}") from exc

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError(f"Configuration file {path} must contain a mapping at the top level.")

    try:
        return _FileSettings(**raw)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration file {path}: {_format_validation_error(exc, False)}") from exc


def load_settings(config_path: Path | None = None) -> Settings:
    """Load settings from the source selected by USE_ENVIRONMENTAL_VARIABLES.

    Only the exact value TRUE selects env mode; anything else (including
    unset) selects file mode, reading config_path or the platform default.
    """
    if os.environ.get(ENV_SWITCH) == "TRUE":
        logger.info("Loading configuration from environment variables")
        return settings_from_env()

    path = config_path or default_config_path()
    logger.info("Loading configuration from %s", path)
    return settings_from_file(path)
