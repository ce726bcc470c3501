# storefront/db/errors.py

from typing import Sequence

from sqlalchemy.exc import IntegrityError


def is_unique_violation(exc: IntegrityError, constraint_name: str, columns: Sequence[str]) -> bool:
    """
    True if `exc` was raised by the named unique constraint.
    PostgreSQL reports the constraint name; SQLite only lists the columns
    ("UNIQUE constraint failed: table.col_a, table.col_b"), given as "table.col".
    """
    orig = exc.orig
    diag = getattr(orig, "diag", None)
    if diag is not None and getattr(diag, "constraint_name", None):
        return diag.constraint_name == constraint_name

    message = str(orig)
    if constraint_name in message:
        return True
    return message.startswith("UNIQUE constraint failed") and message.endswith(", ".join(columns))
