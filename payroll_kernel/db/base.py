"""
Module: payroll_kernel.db.base
Responsibility: Declarative base and column types shared by every payroll
    model: UUID keys stored as text, money columns quantized to centavos,
    and the creator/updater audit columns.
Architecture position: Kernel > DB.  Imported by every model file; imports
    nothing from models/, services/ or selectors/.

Invariants enforced:
    - Primary keys are uuid4 values stored as String(36).
    - Columns annotated ``Mapped[Money]`` store and return amounts rounded
      half-up to 2 places, so a total read back from the database equals
      the total the engine produced.  Floats are refused at bind time.
    - Other Decimal columns (rates, percentages) keep Numeric(38, 9).
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import Date, DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from payroll_kernel.domain.money import round_money


class UUIDString(TypeDecorator):
    """UUID bound as its 36-character text form, loaded back as ``uuid.UUID``."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else PyUUID(value)


class MoneyAmount(TypeDecorator):
    """Numeric(38, 9) column holding centavo-rounded amounts."""

    impl = Numeric(38, 9)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else round_money(value)

    def process_result_value(self, value, dialect):
        return None if value is None else round_money(value)


Money = Annotated[Decimal, "money"]


class Base(DeclarativeBase):
    type_annotation_map: ClassVar[dict] = {
        Money: MoneyAmount(),
        Decimal: Numeric(38, 9),
        datetime: DateTime(timezone=True),
        date: Date,
        PyUUID: UUIDString(),
    }

    id: Mapped[PyUUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """
    Abstract base carrying who created a row and who last touched it.

    ``updated_at`` and ``updated_by_id`` are audit metadata: the
    immutability listeners let them change on rows whose business fields
    are frozen (a superseded calculation still records who superseded it).
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False,
    )
    created_by_id: Mapped[PyUUID] = mapped_column(UUIDString(), nullable=False)
    updated_by_id: Mapped[PyUUID | None] = mapped_column(UUIDString(), nullable=True)


AUDIT_METADATA_FIELDS: frozenset[str] = frozenset({"updated_at", "updated_by_id"})
