"""
Module: gem_kernel.db.base
Responsibility: Declarative base classes for all SQLAlchemy ORM models.  Provides
    the UUID primary key convention, the type annotation map for consistent
    column types, and the TrackedBase mixin for creation metadata.
Architecture position: Kernel > DB.  Lowest-level import target within the
    kernel.  This module MUST NOT import from models/, services/, selectors/,
    or domain/.

Invariants enforced:
    - UUID primary keys: every model inherits a uuid4-generated primary key,
      stored as String(36) so SQLite and PostgreSQL behave identically.
    - Decimal precision: Decimal maps to Numeric(18, 4).  Prices and weights
      are NEVER stored as float.
    - Creation metadata: TrackedBase provides created_at and created_by_id.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """
    UUID type stored as String(36) for cross-database portability.

    Converts between Python UUID objects and their 36-character string
    representation on the way in and out of the database.
    """

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None:
            return str(value)
        return None

    def process_result_value(self, value, dialect):
        if value is not None:
            return PyUUID(value)
        return None


class Base(DeclarativeBase):
    """
    Declarative base for all SQLAlchemy models.

    Guarantees:
        - id is always a uuid4-generated UUID stored as String(36).
        - Decimal maps to Numeric(18, 4).
        - datetime maps to DateTime(timezone=True).
        - int maps to BigInteger -- safe for counters.
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(18, 4),
        datetime: DateTime(timezone=True),
        PyUUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=uuid4,
    )


class TrackedBase(Base):
    """
    Abstract base with creation timestamp and creator.

    Guarantees:
        - created_at is set to server NOW() on INSERT and never changes.
        - created_by_id is required -- every document has a creator.  It is
          the identity provider's user id, which is an opaque string.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    created_by_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )


UUID = PyUUID
