"""
Database infrastructure: declarative base, mixins and the async
`DatabaseService` that owns engine, sessions and transactions.
"""

from idleguild.core.database.base import Base, IdMixin, TimestampMixin, as_utc, utc_now
from idleguild.core.database.service import (
    DatabaseInitializationError,
    DatabaseNotInitializedError,
    DatabaseService,
)

__all__ = [
    # ORM Base & Mixins
    "Base",
    "IdMixin",
    "TimestampMixin",
    "utc_now",
    "as_utc",
    # Main service
    "DatabaseService",
    # Exceptions
    "DatabaseInitializationError",
    "DatabaseNotInitializedError",
]
