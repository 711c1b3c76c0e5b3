"""
Generation-cycle key utilities.

A generation-cycle key names one scheduled occurrence of one recurring
template.  Two invoices carrying the same key were produced for the same
cycle.  The key is recorded on every generated invoice but is not (yet)
enforced by a unique constraint; see DESIGN.md.
"""

from datetime import date, datetime
from uuid import UUID

_PRODUCER = "recurring"


def generation_cycle_key(template_id: UUID | str, cycle_date: date | datetime) -> str:
    """
    Build the key for one template cycle.

    Format: recurring:<template_id>:<YYYY-MM-DD>

    Example:
        >>> generation_cycle_key(uuid, date(2024, 3, 15))
        "recurring:550e8400-e29b-41d4-a716-446655440000:2024-03-15"
    """
    if isinstance(cycle_date, datetime):
        cycle_date = cycle_date.date()
    return f"{_PRODUCER}:{template_id}:{cycle_date.isoformat()}"


def parse_generation_cycle_key(key: str) -> tuple[str, date]:
    """
    Split a generation-cycle key into (template_id, cycle_date).

    Raises:
        ValueError: If key format is invalid.
    """
    parts = key.split(":")
    if len(parts) != 3 or parts[0] != _PRODUCER:
        raise ValueError(f"Invalid generation cycle key format: {key}")
    return parts[1], date.fromisoformat(parts[2])
