"""Tests for billing_kernel.utils.idempotency."""

from datetime import date, datetime
from uuid import uuid4

import pytest

from billing_kernel.utils.idempotency import (
    generation_cycle_key,
    parse_generation_cycle_key,
)


class TestGenerationCycleKey:
    def test_format(self):
        template_id = uuid4()
        key = generation_cycle_key(template_id, date(2024, 3, 15))
        assert key == f"recurring:{template_id}:2024-03-15"

    def test_datetime_uses_calendar_day(self):
        template_id = uuid4()
        assert generation_cycle_key(template_id, datetime(2024, 3, 15, 23, 59)) == (
            generation_cycle_key(template_id, date(2024, 3, 15))
        )

    def test_parse(self):
        template_id = uuid4()
        key = generation_cycle_key(template_id, date(2024, 3, 15))
        assert parse_generation_cycle_key(key) == (str(template_id), date(2024, 3, 15))

    @pytest.mark.parametrize("key", ["", "recurring:abc", "other:abc:2024-03-15"])
    def test_parse_rejects_bad_keys(self, key):
        with pytest.raises(ValueError):
            parse_generation_cycle_key(key)
