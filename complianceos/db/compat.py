"""
Column types portable between PostgreSQL (production) and SQLite (tests).

- GUID: native UUID on PostgreSQL, 36-char text elsewhere
- JSONType: JSONB on PostgreSQL, JSON elsewhere
- StringList: JSONType holding an ordered list of unique, non-blank strings
  (data categories, evidence links, active modules)
- insert_or_ignore: INSERT ... ON CONFLICT DO NOTHING on either backend
"""

import uuid

from sqlalchemy import JSON, String, TypeDecorator
from sqlalchemy.dialects import postgresql, sqlite


def _is_postgres(dialect) -> bool:
    return dialect.name == "postgresql"


def insert_or_ignore(dialect, table):
    """INSERT that silently skips rows whose key already exists."""
    backend = postgresql if _is_postgres(dialect) else sqlite
    return backend.insert(table).on_conflict_do_nothing()


class GUID(TypeDecorator):
    impl = String(36)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if _is_postgres(dialect):
            return dialect.type_descriptor(postgresql.UUID(as_uuid=True))
        return dialect.type_descriptor(String(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        value = value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))
        return value if _is_postgres(dialect) else str(value)

    def process_result_value(self, value, dialect):
        if value is None or isinstance(value, uuid.UUID):
            return value
        return uuid.UUID(str(value))


class JSONType(TypeDecorator):
    impl = JSON
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if _is_postgres(dialect):
            return dialect.type_descriptor(postgresql.JSONB)
        return dialect.type_descriptor(JSON)


def normalize_string_list(values) -> list[str]:
    """Strip entries, drop blanks and duplicates, keep first-seen order."""
    seen: dict[str, None] = {}
    for value in values or ():
        text = str(value).strip()
        if text:
            seen.setdefault(text, None)
    return list(seen)


class StringList(JSONType):
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else normalize_string_list(value)

    def process_result_value(self, value, dialect):
        return [] if value is None else list(value)
