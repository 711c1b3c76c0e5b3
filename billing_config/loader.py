"""
Settings loader (``billing_config.loader``).

Responsibility
--------------
Reads an optional YAML file and environment overrides and parses them into
a frozen ``BillingSettings``.  Precedence, lowest first: dataclass
defaults, YAML file, environment variables.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``ConfigurationError`` naming the file.
* Unknown keys or invalid values  -> ``ConfigurationError``.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from billing_config.schema import BillingSettings, SchedulerSettings
from billing_kernel.db.types import normalize_currency
from billing_kernel.exceptions import ConfigurationError

CONFIG_PATH_ENV = "BILLING_CONFIG"

_ENV_OVERRIDES: dict[str, str] = {
    "BILLING_DATABASE_URL": "database_url",
    "BILLING_DEFAULT_CURRENCY": "default_currency",
    "BILLING_DEFAULT_EMAIL_APP": "default_email_app",
    "BILLING_LOG_LEVEL": "log_level",
    "BILLING_SCHEDULER_ENABLED": "scheduler.enabled",
    "BILLING_GENERATION_INTERVAL_SECONDS": "scheduler.generation_interval_seconds",
}

_TOP_LEVEL_KEYS = frozenset(
    {"database_url", "default_currency", "default_email_app", "log_level", "scheduler"}
)
_SCHEDULER_KEYS = frozenset({"enabled", "generation_interval_seconds"})
_TRUE_STRINGS = frozenset({"1", "true", "yes", "on"})
_FALSE_STRINGS = frozenset({"0", "false", "no", "off"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        ConfigurationError: if the file is not valid YAML or the document
            is not a mapping.
    """
    with open(path) as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ConfigurationError(str(path), f"invalid YAML: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(str(path), "top-level YAML document must be a mapping")
    return data


def _parse_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_STRINGS:
        return True
    if text in _FALSE_STRINGS:
        return False
    raise ConfigurationError(key, f"expected a boolean, got {value!r}")


def _parse_positive_int(key: str, value: Any) -> int:
    if isinstance(value, bool):
        raise ConfigurationError(key, f"expected a positive integer, got {value!r}")
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(key, f"expected a positive integer, got {value!r}") from exc
    if number <= 0:
        raise ConfigurationError(key, f"must be positive, got {number}")
    return number


def _parse_log_level(value: Any) -> str:
    level = str(value).strip().upper()
    if not isinstance(logging.getLevelName(level), int):
        raise ConfigurationError("log_level", f"unknown log level {value!r}")
    return level


def parse_settings(data: Mapping[str, Any]) -> BillingSettings:
    """
    Parse a raw mapping (YAML document with overrides applied).

    Raises:
        ConfigurationError: on unknown keys or invalid values.
    """
    unknown = set(data) - _TOP_LEVEL_KEYS
    if unknown:
        raise ConfigurationError(", ".join(sorted(unknown)), "unknown setting")

    raw_scheduler = data.get("scheduler") or {}
    if not isinstance(raw_scheduler, Mapping):
        raise ConfigurationError("scheduler", "must be a mapping")
    unknown = set(raw_scheduler) - _SCHEDULER_KEYS
    if unknown:
        raise ConfigurationError(
            ", ".join(f"scheduler.{k}" for k in sorted(unknown)), "unknown setting"
        )

    defaults = BillingSettings()
    scheduler = SchedulerSettings(
        enabled=_parse_bool(
            "scheduler.enabled",
            raw_scheduler.get("enabled", defaults.scheduler.enabled),
        ),
        generation_interval_seconds=_parse_positive_int(
            "scheduler.generation_interval_seconds",
            raw_scheduler.get(
                "generation_interval_seconds",
                defaults.scheduler.generation_interval_seconds,
            ),
        ),
    )

    database_url = str(data.get("database_url", defaults.database_url)).strip()
    if not database_url:
        raise ConfigurationError("database_url", "must not be empty")

    try:
        currency = normalize_currency(
            str(data.get("default_currency", defaults.default_currency))
        )
    except ValueError as exc:
        raise ConfigurationError("default_currency", str(exc)) from exc

    email_app = str(data.get("default_email_app", defaults.default_email_app)).strip()
    if not email_app:
        raise ConfigurationError("default_email_app", "must not be empty")

    return BillingSettings(
        database_url=database_url,
        default_currency=currency,
        default_email_app=email_app,
        log_level=_parse_log_level(data.get("log_level", defaults.log_level)),
        scheduler=scheduler,
    )


def apply_env_overrides(
    data: Mapping[str, Any], environ: Mapping[str, str]
) -> dict[str, Any]:
    """Return a copy of ``data`` with BILLING_* environment values applied."""
    merged: dict[str, Any] = dict(data)
    scheduler = dict(merged.get("scheduler") or {})
    for env_name, key in _ENV_OVERRIDES.items():
        if env_name not in environ:
            continue
        value = environ[env_name]
        if key.startswith("scheduler."):
            scheduler[key.split(".", 1)[1]] = value
        else:
            merged[key] = value
    if scheduler:
        merged["scheduler"] = scheduler
    return merged


def load_settings(
    path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> BillingSettings:
    """
    Load settings from an optional YAML file plus environment overrides.

    Args:
        path: YAML file.  Falls back to ``$BILLING_CONFIG``; with neither,
            only defaults and environment overrides apply.
        environ: Environment mapping (defaults to ``os.environ``).
    """
    env = os.environ if environ is None else environ
    config_path = path or env.get(CONFIG_PATH_ENV)
    data: dict[str, Any] = load_yaml_file(Path(config_path)) if config_path else {}
    return parse_settings(apply_env_overrides(data, env))
