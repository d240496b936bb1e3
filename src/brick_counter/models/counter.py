"""SQLAlchemy models for the shared counter and its history log."""

from datetime import UTC, datetime

from sqlalchemy import BigInteger, DateTime, Index, Integer
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# The single global counter always lives in this row.
COUNTER_ROW_ID = 1


class Base(DeclarativeBase):
    """Shared declarative base for all ORM models."""


class Counter(Base):
    """The number of bricks placed so far."""

    __tablename__ = "counters"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    count: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    def __repr__(self) -> str:
        return f"<Counter id={self.id} count={self.count}>"


class CounterLogEntry(Base):
    """Periodic snapshot of the counter value, written by maintenance."""

    __tablename__ = "counter_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    logged_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    value: Mapped[int] = mapped_column(BigInteger, nullable=False)

    __table_args__ = (Index("ix_counter_log_logged_at", "logged_at"),)

    def __repr__(self) -> str:
        return f"<CounterLogEntry logged_at={self.logged_at!s} value={self.value}>"
