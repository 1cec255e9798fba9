"""Helpers for classifying database errors."""

from sqlalchemy.exc import IntegrityError

# PostgreSQL SQLSTATE for unique_violation
PG_UNIQUE_VIOLATION = "23505"


def is_unique_violation(error: IntegrityError) -> bool:
    """
    Check whether an IntegrityError was caused by a uniqueness constraint.

    Works for PostgreSQL (SQLSTATE 23505) and SQLite ("UNIQUE constraint failed").

    Args:
        error: The IntegrityError raised by SQLAlchemy.

    Returns:
        True if the error is a unique/primary-key violation.
    """
    orig = error.orig
    pgcode = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if pgcode is not None:
        return pgcode == PG_UNIQUE_VIOLATION

    message = str(orig).lower()
    return "unique constraint" in message or "duplicate key" in message
