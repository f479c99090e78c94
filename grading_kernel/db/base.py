"""
Module: grading_kernel.db.base
Responsibility: Declarative base for all SQLAlchemy ORM models.  Provides the
    integer primary key convention, the type annotation map for consistent
    column types, and the portable UTC timestamp and JSON column types.
Architecture position: Kernel > DB.  This is the lowest-level import target
    within the kernel.  ALL model files import from here.  This module MUST NOT
    import from models/, services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - Integer primary keys assigned by the store.  A submission's public
      ``uid`` is derived from this value.
    - Grades map to Numeric(5, 2); never float.
    - Timestamps are always returned timezone-aware (UTC), including on
      SQLite which stores them naive.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import ClassVar

from sqlalchemy import JSON, BigInteger, DateTime, Integer, Numeric
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

# BIGINT autoincrement is only honoured by SQLite on INTEGER PRIMARY KEY
BigIntegerType = BigInteger().with_variant(Integer, "sqlite")

JSONType = JSON().with_variant(JSONB(), "postgresql")


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware timestamp stored as UTC.

    Guarantees:
        - process_bind_param: aware datetimes are converted to UTC; SQLite
          receives them naive.
        - process_result_value: naive values are tagged as UTC.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    """
    Declarative base for all SQLAlchemy models.

    Guarantees:
        - id is a store-assigned integer.
        - Decimal maps to Numeric(5, 2).
        - datetime maps to UTCDateTime -- always timezone-aware.
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(5, 2),
        datetime: UTCDateTime(),
        int: BigIntegerType,
    }

    id: Mapped[int] = mapped_column(
        BigIntegerType,
        primary_key=True,
        autoincrement=True,
    )
