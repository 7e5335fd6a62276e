"""
User — the people who act on the system.

Credentials live with the upstream identity provider; this table only holds
what the core needs to attribute and authorize a mutation.
"""

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from procurement.models.base import Base, IntPrimaryKeyMixin, TimestampMixin


class UserRole:
    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    STAFF = "staff"
    VIEWER = "viewer"

    ALL = [SUPER_ADMIN, ADMIN, STAFF, VIEWER]


class User(Base, IntPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "users"

    email: Mapped[str] = mapped_column(
        String(255), nullable=False, unique=True, index=True
    )
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    role: Mapped[str] = mapped_column(
        String(32), nullable=False, default=UserRole.STAFF, index=True
    )
    active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default="1"
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __repr__(self) -> str:
        return f"<User email={self.email!r} role={self.role!r}>"
