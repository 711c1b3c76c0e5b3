"""Recurring invoice services. None of them commit; callers own transactions."""
