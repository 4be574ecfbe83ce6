"""
Custom SQLAlchemy column types for Irtiqa.

Keeps the schema portable between PostgreSQL (production) and SQLite (tests).
"""

from sqlalchemy import JSON, TypeDecorator
from sqlalchemy.dialects.postgresql import JSONB


class JSONDocument(TypeDecorator):
    """
    JSON column stored as JSONB on PostgreSQL and plain JSON elsewhere.

    Usage:
        screening_answers: Mapped[list] = mapped_column(JSONDocument, default=list)
    """

    impl = JSON
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(JSONB())
        return dialect.type_descriptor(JSON())

    def process_bind_param(self, value, dialect):
        # Tuples come from frozen dataclasses (risk flags)
        if isinstance(value, tuple):
            return list(value)
        return value
