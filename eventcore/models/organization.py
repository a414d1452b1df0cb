"""
Organization model.

Represents a tenant. Every rule, subscription and action target is owned by
exactly one organization.
"""
from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column
from eventcore.models.base import Base, TimestampMixin, uuid_pk


class Organization(Base, TimestampMixin):
    """Tenant organization."""
    __tablename__ = "organizations"

    id: Mapped[str] = uuid_pk()
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    domain: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)

    def __repr__(self):
        return f"<Organization(id={self.id}, name={self.name}, domain={self.domain})>"
