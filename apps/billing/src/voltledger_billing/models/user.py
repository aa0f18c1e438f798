"""Account records and their billing provider link."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, String, func
from sqlalchemy.dialects.postgresql import UUID

from voltledger_billing.db.base import Base


class UserStatusEnum(str, Enum):
    ACTIVE = "active"
    PENDING = "pending"
    BLOCKED = "blocked"
    INACTIVE = "inactive"


@dataclass(slots=True, frozen=True)
class ProviderLink:
    """Mapping from a local account to its billing provider customer."""

    customer_id: str
    live_mode: bool

    def __bool__(self) -> bool:
        return bool(self.customer_id)


class User(Base):
    __tablename__ = "users"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    email = Column(String, nullable=False, unique=True, index=True)
    first_name = Column(String, nullable=True)
    name = Column(String, nullable=True)
    locale = Column(String(16), nullable=False, default="en_US", server_default="en_US")
    status = Column(
        String(length=16),
        nullable=False,
        default=UserStatusEnum.ACTIVE.value,
        server_default=UserStatusEnum.ACTIVE.value,
    )
    free_access = Column(Boolean, nullable=False, default=False, server_default="false")
    billing_customer_id = Column(String, nullable=True, index=True)
    billing_live_mode = Column(Boolean, nullable=True)
    billing_last_changed_on = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    @property
    def provider_link(self) -> ProviderLink | None:
        if not self.billing_customer_id:
            return None
        return ProviderLink(
            customer_id=self.billing_customer_id,
            live_mode=bool(self.billing_live_mode),
        )

    @property
    def is_billable(self) -> bool:
        return bool(self.provider_link)

    @property
    def full_name(self) -> str:
        parts = [part for part in (self.first_name, self.name) if part]
        return " ".join(parts) or self.email
