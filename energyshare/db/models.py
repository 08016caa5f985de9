"""
SQLAlchemy ORM models for the shared-device database.

Defines the Device, Usage and ActiveDevice models. A device is "busy"
exactly when an ActiveDevice row references it; that row points at the
open Usage record of the current session.

Column types carry SQLite variants so the same metadata can be created on
an in-memory aiosqlite engine for tests.

CHANGELOG:
- 2026-10-04: Add relationship back-references for status listings (STORY-107)
- 2026-09-27: Initial creation (STORY-102)

TODO:
- None
"""

import datetime
from decimal import Decimal

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    func,
)
from sqlalchemy.dialects.postgresql import ARRAY, CITEXT
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

# BIGSERIAL on PostgreSQL; SQLite only autoincrements INTEGER PRIMARY KEY.
UsageIdType = BigInteger().with_variant(Integer(), "sqlite")
EmailType = String(320).with_variant(CITEXT(), "postgresql")
AliasListType = ARRAY(String(60)).with_variant(JSON(), "sqlite")


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all ORM models."""

    pass


class Device(Base):
    """A shared smart device (plug) that household members can switch.

    Devices are archived rather than deleted; archived devices are hidden
    from listings but keep their usage history.

    Attributes:
        id: Device identifier.
        mac_address: Hardware address, unique.
        ip_address: LAN address used by the device-control endpoint, unique.
        alias: Unique display name.
        is_archived: Hidden from listings when True.
        previous_aliases: Aliases the device was known by before.
    """

    __tablename__ = "device"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    mac_address: Mapped[str] = mapped_column(String(17), unique=True, nullable=False)
    ip_address: Mapped[str] = mapped_column(String(45), unique=True, nullable=False)
    alias: Mapped[str] = mapped_column(String(60), unique=True, nullable=False)
    is_archived: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    previous_aliases: Mapped[list[str] | None] = mapped_column(
        AliasListType, nullable=True,
    )

    active_device: Mapped["ActiveDevice | None"] = relationship(
        back_populates="device", uselist=False,
    )
    usages: Mapped[list["Usage"]] = relationship(back_populates="device")

    def __repr__(self) -> str:
        """Return string representation of the Device."""
        return f"Device(id={self.id!r}, alias={self.alias!r}, ip_address={self.ip_address!r})"


class Usage(Base):
    """One start-to-end usage session of a device.

    While the session is open, ``end_date`` equals ``start_date`` and
    ``consumption`` holds the device meter reading taken at turn-on.
    At turn-off the reading delta replaces it.

    Attributes:
        id: Monotonic record identifier.
        user_email: Email of the user who turned the device on.
        start_date: Session start (UTC).
        end_date: Session end (UTC), never before start_date.
        estimated_use_time: User-supplied estimate of the session end.
        consumption: Energy used in kWh.
        charge: Amount charged for the session.
        device_id: Device the session belongs to.
    """

    __tablename__ = "usage"
    __table_args__ = (
        CheckConstraint("end_date >= start_date", name="check_end_date_after_start_date"),
    )

    id: Mapped[int] = mapped_column(UsageIdType, primary_key=True, autoincrement=True)
    user_email: Mapped[str] = mapped_column(EmailType, nullable=False)
    start_date: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(),
    )
    end_date: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(),
    )
    estimated_use_time: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    consumption: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("0.00"),
    )
    charge: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("0.00"),
    )
    device_id: Mapped[str] = mapped_column(
        String(255), ForeignKey("device.id", ondelete="RESTRICT"), nullable=False,
    )

    device: Mapped[Device] = relationship(back_populates="usages")

    def __repr__(self) -> str:
        """Return string representation of the Usage."""
        return (
            f"Usage(id={self.id!r}, device_id={self.device_id!r}, "
            f"user_email={self.user_email!r}, start_date={self.start_date!r})"
        )


class ActiveDevice(Base):
    """Marker row for a device with an open usage session.

    The primary key on ``device_id`` guarantees at most one open session
    per device; ``usage_record_id`` is unique so a usage record backs at
    most one marker.

    Attributes:
        device_id: The busy device.
        usage_record_id: The open Usage record.
    """

    __tablename__ = "active_device"

    device_id: Mapped[str] = mapped_column(
        String(255), ForeignKey("device.id", ondelete="RESTRICT"), primary_key=True,
    )
    usage_record_id: Mapped[int] = mapped_column(
        UsageIdType,
        ForeignKey("usage.id", ondelete="RESTRICT"),
        unique=True,
        nullable=False,
    )

    device: Mapped[Device] = relationship(back_populates="active_device")
    usage: Mapped[Usage] = relationship()

    def __repr__(self) -> str:
        """Return string representation of the ActiveDevice."""
        return (
            f"ActiveDevice(device_id={self.device_id!r}, "
            f"usage_record_id={self.usage_record_id!r})"
        )
