"""
Billing kernel: infrastructure shared by every billing subsystem.

Contents:
    logging_config  -- structured JSON logging and request-scoped context.
    exceptions      -- typed exception hierarchy with machine-readable codes.
    domain.clock    -- injectable clock (system and deterministic).
    db              -- declarative base, column types, engine and sessions.
    utils           -- idempotency key helpers.

Nothing in this package imports from billing_config or billing_recurring.
"""
