"""
billing_recurring -- recurring invoice templates and their generation.

Layers, leaf first:
    domain/       pure types and recurrence arithmetic
    models/       SQLAlchemy ORM models
    selectors/    read-only queries (due templates, listing)
    services/     template store, invoice collaborators, hooks,
                  generation pipeline, task scheduler
    orchestrator  composition root used by the CLI and the daemon

Invariants:
    - Paused templates are never selected; their next date stays frozen.
    - Resume recomputes the next date from the current instant.
    - generated_count grows by exactly one per generated invoice.
    - One SAVEPOINT per template: a failure never affects later templates.
    - PDF and email failures are warnings; the invoice is kept.
"""
