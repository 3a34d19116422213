"""Identify which constraint an IntegrityError violated.

PostgreSQL reports the constraint name directly. SQLite only reports the
offending columns ("UNIQUE constraint failed: referral_codes.code"), so those
are mapped back to the named unique constraint declared on the table.
"""

import re

from sqlalchemy import UniqueConstraint
from sqlalchemy.exc import IntegrityError

from creditwise.storage.models import Base

_PG_CONSTRAINT = re.compile(r'constraint "(?P<name>[^"]+)"')
_SQLITE_UNIQUE = re.compile(r"UNIQUE constraint failed: (?P<columns>.+)$", re.MULTILINE)


def _sqlite_constraint(columns: str) -> str | None:
    qualified = [c.strip() for c in columns.split(",")]
    table_name = qualified[0].split(".", 1)[0]
    column_names = {c.split(".", 1)[1] for c in qualified if "." in c}

    table = Base.metadata.tables.get(table_name)
    if table is None:
        return None

    for constraint in table.constraints:
        if isinstance(constraint, UniqueConstraint):
            if {c.name for c in constraint.columns} == column_names:
                return constraint.name
    for index in table.indexes:
        if index.unique and {c.name for c in index.columns} == column_names:
            return index.name
    if {c.name for c in table.primary_key.columns} == column_names:
        return table.primary_key.name
    return None


def violated_constraint(exc: IntegrityError) -> str | None:
    """Return the name of the constraint behind an IntegrityError.

    Args:
        exc: Error raised by the driver on flush/commit

    Returns:
        Constraint name, or None if it cannot be determined
    """
    orig = exc.orig

    diag = getattr(orig, "diag", None)
    name = getattr(diag, "constraint_name", None)
    if name:
        return name

    message = str(orig)

    match = _PG_CONSTRAINT.search(message)
    if match:
        return match.group("name")

    match = _SQLITE_UNIQUE.search(message)
    if match:
        return _sqlite_constraint(match.group("columns"))

    return None
