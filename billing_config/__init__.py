"""
billing_config -- single public entrypoint for runtime settings.

Callers obtain settings through ``get_active_settings()``; no other
component reads configuration files or BILLING_* environment variables.
The kernel never imports from this package.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path

from billing_config.loader import load_settings
from billing_config.schema import BillingSettings, SchedulerSettings

_logger = logging.getLogger("billing.config")

__all__ = [
    "BillingSettings",
    "SchedulerSettings",
    "get_active_settings",
]


def get_active_settings(
    path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> BillingSettings:
    """Load, validate and return the active settings."""
    settings = load_settings(path, environ)
    _logger.info(
        "billing_settings_loaded",
        extra={
            "config_path": str(path) if path else None,
            "default_currency": settings.default_currency,
            "scheduler_enabled": settings.scheduler.enabled,
            "generation_interval_seconds": settings.scheduler.generation_interval_seconds,
        },
    )
    return settings
