"""
Database subsystem for Guildhall.

Provides the async SQLAlchemy engine, session and transaction management,
plus ORM base classes, mixins and portable column types for model definitions.
"""

from src.core.database.base import (
    Base,
    IdMixin,
    JsonType,
    TimestampMixin,
    UtcDateTime,
    enum_column,
    utc_now,
)
from src.core.database.service import (
    DatabaseInitializationError,
    DatabaseNotInitializedError,
    DatabaseService,
)

__all__ = [
    # ORM Base & Mixins
    "Base",
    "IdMixin",
    "TimestampMixin",
    "UtcDateTime",
    "JsonType",
    "utc_now",
    "enum_column",
    # Main service
    "DatabaseService",
    # Exceptions
    "DatabaseInitializationError",
    "DatabaseNotInitializedError",
]
