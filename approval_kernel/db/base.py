"""
Declarative base and portable column types for the approval store.

The same models run on PostgreSQL and SQLite, so UUIDs are stored as
36-character strings and timestamps are normalized to UTC on the way in and
re-tagged as UTC on the way out.  Money columns are ``Numeric(38, 9)``: tier
thresholds and request amounts are compared as ``Decimal``, never float.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import BigInteger, DateTime, Numeric, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class UUIDString(TypeDecorator):
    """UUID stored as its canonical string form."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else UUID(value)


class UTCDateTime(TypeDecorator):
    """
    Aware UTC timestamps on every backend.

    SQLite drops the offset, so loaded values are re-tagged; delegation
    windows then compare correctly in SQL and in Python.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return _as_utc(value)

    def process_result_value(self, value, dialect):
        return _as_utc(value)


class Base(DeclarativeBase):
    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9),
        datetime: UTCDateTime(),
        UUID: UUIDString(),
        int: BigInteger,
    }

    # Surrogate key; domain identifiers live in their own columns
    id: Mapped[UUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)
