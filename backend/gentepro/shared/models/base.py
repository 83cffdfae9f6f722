"""Base model classes with common functionality."""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import DateTime
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import Mapped, declared_attr, mapped_column

from gentepro.core.database import Base


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TimestampMixin:
    """Mixin for created_at and updated_at timestamps."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        onupdate=utc_now,
        nullable=True,
    )


class UUIDPrimaryKeyMixin:
    """Mixin for a client-generated UUID primary key."""

    id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )


class CompanyScopedBase(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """Base class for rows owned by a single company (empresa)."""

    __abstract__ = True

    @declared_attr
    def company_id(cls) -> Mapped[UUID]:
        return mapped_column(
            "empresa_id",
            PGUUID(as_uuid=True),
            nullable=False,
            index=True,
        )
