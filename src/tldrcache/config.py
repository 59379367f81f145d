"""Configuration loading.

Settings are loaded in priority order (highest first):
  1. Constructor arguments
  2. Environment variables  (TLDRCACHE__CACHE__MIRROR=https://...)
  3. tldrcache.yaml         (--config, $TLDRCACHE_CONFIG, cwd, then platform config dir)
  4. Hardcoded defaults

The config file is optional; all fields have sensible defaults. The cache
core never reads configuration itself; it is handed plain values.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal

import platformdirs
import structlog
import yaml
from pydantic import BaseModel, ValidationError, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    SettingsError,
    YamlConfigSettingsSource,
)

from tldrcache import __version__
from tldrcache.errors import ErrorCode, TldrCacheError
from tldrcache.layout import ENGLISH

if TYPE_CHECKING:
    from collections.abc import Mapping

log = structlog.get_logger()

APP_NAME = "tldrcache"
CONFIG_ENV_VAR = "TLDRCACHE_CONFIG"
CONFIG_FILENAME = "tldrcache.yaml"

_DEFAULT_CACHE_DIR = platformdirs.user_cache_dir(APP_NAME)
_DEFAULT_MIRROR = "https://github.com/tldr-pages/tldr/releases/latest/download"
_TWO_WEEKS_HOURS = 24 * 7 * 2


def _find_config_file(explicit: Path | None = None) -> str | None:
    """Return the path of the config file to load, or None."""
    if explicit is not None:
        if explicit.is_file():
            return str(explicit)
        log.warning("config_path_not_a_file", path=str(explicit))
        return None

    env_path = os.environ.get(CONFIG_ENV_VAR)
    candidates = [Path(env_path)] if env_path else []
    candidates += [
        Path(CONFIG_FILENAME),
        Path(platformdirs.user_config_dir(APP_NAME)) / CONFIG_FILENAME,
    ]
    for path in candidates:
        if path.is_file():
            return str(path)
    return None


class CacheSettings(BaseModel):
    dir: Path = Path(_DEFAULT_CACHE_DIR)
    mirror: str = _DEFAULT_MIRROR
    # Update automatically once the cache is older than max_age_hours.
    auto_update: bool = True
    max_age_hours: int = _TWO_WEEKS_HOURS
    # Empty means: derive from $LANGUAGE / $LANG.
    languages: list[str] = []

    @field_validator("dir")
    @classmethod
    def expand_home(cls, v: Path) -> Path:
        return v.expanduser()

    @field_validator("mirror")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


class FetcherSettings(BaseModel):
    connect_timeout_seconds: float = 5.0
    read_timeout_seconds: float = 60.0
    max_response_bytes: int = 1024 * 1024 * 1024
    user_agent: str = f"tldrcache/{__version__}"


class LoggingSettings(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["json", "text"] = "text"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Double-underscore separates nesting: TLDRCACHE__CACHE__AUTO_UPDATE=false
        env_prefix="TLDRCACHE__",
        env_nested_delimiter="__",
        yaml_file=_find_config_file(),
        yaml_file_encoding="utf-8",
    )

    cache: CacheSettings = CacheSettings()
    fetcher: FetcherSettings = FetcherSettings()
    logging: LoggingSettings = LoggingSettings()

    @property
    def max_age_seconds(self) -> float:
        return self.cache.max_age_hours * 3600.0

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
        **kwargs: Any,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,  # Constructor args (highest priority)
            env_settings,  # Environment variables
            YamlConfigSettingsSource(settings_cls),  # YAML file
            # dotenv and file secrets intentionally excluded
        )


def load_settings(config_path: Path | None = None) -> Settings:
    """Build Settings, reading the YAML file at config_path if given.

    Raises TldrCacheError(PARSE_CONFIG) when the file or the environment
    holds values that do not parse or validate.
    """
    yaml_file = _find_config_file(config_path)

    class _FileSettings(Settings):
        model_config = SettingsConfigDict(yaml_file=yaml_file)

    try:
        settings = _FileSettings()
    except (ValidationError, SettingsError, yaml.YAMLError) as exc:
        raise TldrCacheError(
            code=ErrorCode.PARSE_CONFIG,
            message=f"invalid configuration ({yaml_file or 'environment'}): {exc}",
            suggestion="Fix the reported fields or remove the config file to use the defaults.",
        ) from exc

    return settings


def languages_from_env(environ: Mapping[str, str] | None = None) -> list[str]:
    """Derive a language priority list from $LANGUAGE and $LANG.

    ``ll_CC`` values contribute both ``ll_CC`` and ``ll``; bare two-letter
    codes contribute themselves. Nothing is derived when $LANG is unset.
    Duplicates are kept; callers deduplicate.
    """
    env = os.environ if environ is None else environ
    var_lang = env.get("LANG")
    if var_lang is None:
        log.debug("languages_env_missing", reason="LANG is not set")
        return []

    candidates = [part for part in env.get("LANGUAGE", "").split(":") if part]
    candidates.append(var_lang)

    languages: list[str] = []
    for lang in candidates:
        if len(lang) >= 5 and lang[2] == "_":
            languages.append(lang[:5])
            languages.append(lang[:2])
        elif len(lang) == 2:
            languages.append(lang)
        else:
            log.debug("languages_env_invalid", value=lang)
    return languages


def effective_languages(
    configured: list[str],
    environ: Mapping[str, str] | None = None,
) -> list[str]:
    """Return the configured languages (or the env-derived ones) with English last."""
    languages = list(configured) if configured else languages_from_env(environ)
    # English pages are always downloaded and searched.
    languages.append(ENGLISH)
    return languages
