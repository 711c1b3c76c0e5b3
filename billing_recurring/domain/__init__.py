"""Pure domain layer for recurring invoices. ZERO I/O."""
