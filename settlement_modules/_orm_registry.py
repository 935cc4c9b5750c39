"""
Module ORM Registry (``settlement_modules._orm_registry``).

Ensures every module-level ORM model is imported so ``Base.metadata``
contains its table before ``create_tables()`` runs.
"""


def import_all_orm_models() -> None:
    """Import every ``settlement_modules.*.orm`` module.  Idempotent."""
    # fmt: off
    import settlement_modules.lease.orm  # noqa: F401
    import settlement_modules.signature.orm  # noqa: F401
    import settlement_modules.billing.orm  # noqa: F401
    import settlement_modules.pdc.orm  # noqa: F401
