"""
Settings schema (``billing_config.schema``).

Frozen dataclasses describing runtime settings.  Instances are produced
only by ``billing_config.loader``; every field has a default so an empty
configuration is valid.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class SchedulerSettings:
    """Background generation loop settings."""

    enabled: bool = True
    generation_interval_seconds: int = 3600


@dataclass(frozen=True)
class BillingSettings:
    """Top-level settings for the billing CLI and scheduler daemon."""

    database_url: str = "sqlite:///billing.db"
    default_currency: str = "USD"
    default_email_app: str = "gmail"
    log_level: str = "INFO"
    scheduler: SchedulerSettings = field(default_factory=SchedulerSettings)
