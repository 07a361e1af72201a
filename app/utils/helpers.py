"""Shared utility functions for the lifecycle services and blueprint.

dialect_insert:  INSERT construct that supports ON CONFLICT on the active backend
as_int:          lenient integer coercion (returns None on bad input)
parse_bool:      query-string flag parsing ("true" / "1" / "yes")
"""
import logging

logger = logging.getLogger(__name__)

_TRUE_STRINGS = frozenset({"true", "1", "yes", "on"})


def dialect_insert(conn, table):
    """Return a dialect-specific ``insert(table)`` exposing ``on_conflict_do_*``.

    PostgreSQL and SQLite share the same ``on_conflict_do_update`` /
    ``on_conflict_do_nothing`` API; any other backend is rejected because
    the value and attachment upserts depend on it.
    """
    name = conn.dialect.name
    if name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise NotImplementedError(f"Upsert is not supported on dialect {name!r}")
    return insert(table)


def as_int(value):
    """Coerce to int, returning None for empty or non-numeric input."""
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def parse_bool(value) -> bool:
    """Interpret a query-string or JSON flag."""
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in _TRUE_STRINGS
