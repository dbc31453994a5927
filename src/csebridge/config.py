"""
Bridge settings — environment variables with optional YAML overrides.

Example settings file (cse.yaml):
    api_base: https://www.cse.lk/api/
    cache_ttl: 30
    timeout: 15
    warm_up: true
    log_level: DEBUG

Environment variables (read by Settings.from_env):
    CSE_API_BASE, CSE_CDN_BASE, CSE_CACHE_TTL, CSE_TIMEOUT,
    CSE_WARM_UP, CSE_LOG_LEVEL
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping

import yaml

from .cache import DEFAULT_TTL
from .normalize import CDN_BASE, CDN_PREFIX

logger = logging.getLogger(__name__)

DEFAULT_API_BASE = "https://www.cse.lk/api/"
DEFAULT_TIMEOUT = 15.0
DEFAULT_USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"

ENV_VARS = {
    "api_base": "CSE_API_BASE",
    "cdn_base": "CSE_CDN_BASE",
    "cache_ttl": "CSE_CACHE_TTL",
    "timeout": "CSE_TIMEOUT",
    "warm_up": "CSE_WARM_UP",
    "log_level": "CSE_LOG_LEVEL",
}

_FALSE_STRINGS = {"0", "false", "no", "off"}


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() not in _FALSE_STRINGS
    return bool(value)


def _as_seconds(name: str, value: Any) -> float:
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"Setting '{name}' must be a number, got {value!r}")
    if seconds <= 0:
        raise ValueError(f"Setting '{name}' must be positive, got {seconds}")
    return seconds


@dataclass
class Settings:
    """
    Runtime configuration for the bridge.

    Fields:
        api_base: Base URL of the CSE API (endpoints are appended to it)
        cdn_base: Host serving financial report PDFs
        cdn_prefix: Directory every CDN path must start with
        cache_ttl: Seconds a cached response stays valid
        timeout: Total seconds allowed per upstream request
        warm_up: Load the symbol directory in the background at startup
        log_level: Root log level for the server process
        user_agent: Browser User-Agent sent upstream
    """
    api_base: str = DEFAULT_API_BASE
    cdn_base: str = CDN_BASE
    cdn_prefix: str = CDN_PREFIX
    cache_ttl: float = DEFAULT_TTL
    timeout: float = DEFAULT_TIMEOUT
    warm_up: bool = True
    log_level: str = "INFO"
    user_agent: str = DEFAULT_USER_AGENT

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], base: Settings | None = None) -> Settings:
        """Build settings from a mapping; unknown keys are ignored with a warning."""
        base = base or cls()
        known = {f.name for f in fields(cls)}
        updates: dict[str, Any] = {}

        for key, value in data.items():
            if key not in known:
                logger.warning(f"Ignoring unknown setting: {key}")
                continue
            if value is None:
                continue
            if key in ("cache_ttl", "timeout"):
                value = _as_seconds(key, value)
            elif key == "warm_up":
                value = _as_bool(value)
            elif key == "log_level":
                value = str(value).upper()
            else:
                value = str(value)
            updates[key] = value

        return replace(base, **updates)

    @classmethod
    def from_yaml(cls, path: str | Path, base: Settings | None = None) -> Settings:
        """Load settings from a YAML file, layered over ``base``."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Settings file not found: {path}")

        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ValueError(f"Settings file must be a YAML mapping, got {type(data).__name__}")

        return cls.from_dict(data, base=base)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        environ = os.environ if environ is None else environ
        data = {
            key: environ[var]
            for key, var in ENV_VARS.items()
            if environ.get(var, "").strip()
        }
        return cls.from_dict(data)
