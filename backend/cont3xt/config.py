"""Cont3xt configuration management.

Settings are read once at startup from an INI file (``[cont3xt]``,
``[cache]`` and one ``[integration:<id>]`` section per lookup source) and
validated into a frozen settings object that is threaded explicitly to every
component that needs it. Environment variables of the form
``CONT3XT_<SECTION>__<KEY>`` override file values.
"""

import configparser
import os
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from cont3xt.exceptions import ConfigError
from cont3xt.indicators import IndicatorType

DEFAULT_CONFIG_FILE = "/opt/arkime/etc/cont3xt.ini"
INTEGRATION_SECTION_PREFIX = "integration:"


def _split_csv(v: Any) -> Any:
    if isinstance(v, str):
        return [item.strip() for item in v.split(",") if item.strip()]
    return v


class Cont3xtConfig(BaseModel):
    """The ``[cont3xt]`` section."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    # Document store
    elasticsearch: list[str] = ["http://localhost:9200"]
    elasticsearch_api_key: str | None = None
    elasticsearch_basic_auth: str | None = None  # "user:password"
    users_elasticsearch: list[str] | None = None
    users_elasticsearch_api_key: str | None = None
    users_elasticsearch_basic_auth: str | None = None
    users_prefix: str = ""

    # Listener
    port: int = Field(default=3218, ge=1, le=65535)
    key_file: str | None = None
    cert_file: str | None = None
    web_base_path: str = "/"

    # Auth
    user_name_header: str = "anonymous"  # anonymous, jwt, or a header name
    password_secret: str = "password"
    anonymous_roles: list[str] = ["cont3xtUser", "cont3xtAdmin"]
    jwt_algorithm: str = "HS256"

    # Orchestration
    max_concurrent_fetches: int = Field(default=16, ge=1)

    # Application
    log_level: str = "INFO"
    debug: bool = False
    insecure: bool = False

    @field_validator(
        "elasticsearch", "users_elasticsearch", "anonymous_roles", mode="before"
    )
    @classmethod
    def parse_csv(cls, v: Any) -> Any:
        return _split_csv(v)

    @field_validator("log_level")
    @classmethod
    def check_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level: {v}")
        return level

    @property
    def tls_enabled(self) -> bool:
        return bool(self.key_file and self.cert_file)


class CacheConfig(BaseModel):
    """The ``[cache]`` section."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: str = "memory"  # memory, redis
    cache_size: int = Field(default=100000, ge=1)
    cache_timeout: int = Field(default=3600, ge=1)  # default TTL in seconds
    redis_url: str = "redis://localhost:6379"

    @field_validator("type")
    @classmethod
    def check_type(cls, v: str) -> str:
        v = v.lower()
        if v not in {"memory", "redis"}:
            raise ValueError(f"unsupported cache type: {v}")
        return v


class IntegrationConfig(BaseModel):
    """One ``[integration:<id>]`` section describing an HTTP JSON source."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    url: str
    itypes: list[IndicatorType]
    description: str = ""
    method: str = "GET"
    cacheable: bool = True
    timeout: float = Field(default=10.0, gt=0)
    rate_limit: int = Field(default=0, ge=0)  # calls per minute, 0 = unlimited
    retries: int = Field(default=0, ge=0)
    retry_backoff: float = Field(default=1.0, ge=0)
    priority: int = 100
    cache_ttl: int | None = Field(default=None, ge=1)
    secret_setting: str | None = None  # user setting holding the API key
    secret_header: str = "Authorization"
    verify_ssl: bool = True

    @field_validator("itypes", mode="before")
    @classmethod
    def parse_itypes(cls, v: Any) -> Any:
        return _split_csv(v)

    @field_validator("method")
    @classmethod
    def check_method(cls, v: str) -> str:
        v = v.upper()
        if v not in {"GET", "POST"}:
            raise ValueError(f"unsupported method: {v}")
        return v


class Settings(BaseSettings):
    """Application settings, immutable once loaded."""

    model_config = SettingsConfigDict(
        env_prefix="CONT3XT_",
        env_nested_delimiter="__",
        case_sensitive=False,
        frozen=True,
    )

    cont3xt: Cont3xtConfig = Cont3xtConfig()
    cache: CacheConfig = CacheConfig()
    integrations: dict[str, IntegrationConfig] = {}

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # Environment wins over values read from the INI file
        return env_settings, init_settings, dotenv_settings, file_secret_settings


def _field_names(values: dict[str, str], model: type[BaseModel], section: str) -> dict[str, str]:
    """Map keys onto field names, accepting ``camelCase`` spellings.

    configparser lowercases keys, so ``passwordSecret`` arrives as
    ``passwordsecret`` and is matched against ``password_secret`` with the
    underscores removed. Unmatched keys are left for validation to reject.
    """
    fields = {name.replace("_", ""): name for name in model.model_fields}
    mapped: dict[str, str] = {}
    for key, value in values.items():
        name = fields.get(key.replace("_", ""), key)
        if name in mapped:
            raise ConfigError(f"Setting '{name}' given twice in [{section}]")
        mapped[name] = value
    return mapped


def read_ini(path: str | Path) -> dict[str, Any]:
    """Read an INI file into the nested dict shape ``Settings`` expects.

    Raises:
        ConfigError: If the file is missing or cannot be parsed.
    """
    parser = configparser.ConfigParser(interpolation=None)
    try:
        found = parser.read(path, encoding="utf-8")
    except configparser.Error as e:
        raise ConfigError(f"Cannot parse config file {path}: {e}") from e
    if not found:
        raise ConfigError(f"Cannot read config file {path}")

    data: dict[str, Any] = {"integrations": {}}
    for section in parser.sections():
        values = dict(parser.items(section))
        if section.startswith(INTEGRATION_SECTION_PREFIX):
            name = section[len(INTEGRATION_SECTION_PREFIX):].strip()
            if not name:
                raise ConfigError(f"Integration section without a name in {path}")
            data["integrations"][name] = _field_names(values, IntegrationConfig, section)
        elif section == "cont3xt":
            data[section] = _field_names(values, Cont3xtConfig, section)
        elif section == "cache":
            data[section] = _field_names(values, CacheConfig, section)
    return data


def load_settings(path: str | Path | None = None) -> Settings:
    """Load and validate settings from an INI file.

    Raises:
        ConfigError: On any unreadable or invalid configuration.
    """
    path = path or os.environ.get("CONT3XT_CONFIG_FILE", DEFAULT_CONFIG_FILE)
    raw = read_ini(path)
    try:
        return Settings(**raw)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {path}: {e}") from e


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return load_settings()
