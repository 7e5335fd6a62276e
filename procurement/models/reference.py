"""
Reference entities: Site, Location, Stage, Supplier.

These are the mergeable lookup tables that purchase orders point at.
They are physically deleted only when nothing references them, or as the
losing side of a merge (see services/merge).
"""

from typing import Optional

from sqlalchemy import Boolean, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from procurement.models.base import Base, IntPrimaryKeyMixin, TimestampMixin


class Site(Base, IntPrimaryKeyMixin, TimestampMixin):
    """A construction site. The letter prefixes every PO number raised for it."""

    __tablename__ = "sites"

    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    site_letter: Mapped[str] = mapped_column(
        String(1),
        nullable=False,
        unique=True,
        comment="Single uppercase letter; locked once POs exist",
    )
    address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default="1"
    )

    def __repr__(self) -> str:
        return f"<Site name={self.name!r} letter={self.site_letter!r}>"


class Location(Base, IntPrimaryKeyMixin, TimestampMixin):
    """A plot, house or area within a site."""

    __tablename__ = "locations"

    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    type: Mapped[Optional[str]] = mapped_column(
        String(100), nullable=True, comment="e.g. 'system' for the default Site location"
    )
    site_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("sites.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default="1"
    )

    site: Mapped["Site"] = relationship("Site")

    def __repr__(self) -> str:
        return f"<Location name={self.name!r} site_id={self.site_id}>"


class Stage(Base, IntPrimaryKeyMixin, TimestampMixin):
    """A construction phase classification (foundations, first fix, ...)."""

    __tablename__ = "stages"

    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default="1"
    )

    def __repr__(self) -> str:
        return f"<Stage name={self.name!r}>"


class Supplier(Base, IntPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "suppliers"

    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    contact_person: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default="1"
    )

    def __repr__(self) -> str:
        return f"<Supplier name={self.name!r}>"
