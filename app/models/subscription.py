"""
Subscriptions mirrored from Stripe. Written only by the webhook synchronizer.
"""
from enum import Enum
from typing import Any, Dict, Optional
from datetime import datetime, timezone
from sqlalchemy import Column, JSON
from sqlmodel import Field, SQLModel


def _utc_now() -> datetime:
    """Get current UTC time (timezone-aware)."""
    return datetime.now(timezone.utc)


class SubscriptionStatus(str, Enum):
    """Stripe's subscription status vocabulary, uppercased."""
    INCOMPLETE = "INCOMPLETE"
    INCOMPLETE_EXPIRED = "INCOMPLETE_EXPIRED"
    TRIALING = "TRIALING"
    ACTIVE = "ACTIVE"
    PAST_DUE = "PAST_DUE"
    CANCELED = "CANCELED"
    UNPAID = "UNPAID"
    PAUSED = "PAUSED"


class Subscription(SQLModel, table=True):
    __tablename__ = "subscription"

    id: Optional[int] = Field(default=None, primary_key=True)
    stripe_subscription_id: str = Field(unique=True, index=True)
    customer_id: int = Field(foreign_key="customer.id", index=True)
    product_id: int = Field(foreign_key="product.id", index=True)
    price_id: int = Field(foreign_key="price.id", index=True)

    # Stored as the uppercased processor string so statuses Stripe adds later still persist
    status: str = Field(index=True)
    current_period_start: Optional[datetime] = Field(default=None, nullable=True)
    current_period_end: Optional[datetime] = Field(default=None, nullable=True)
    quantity: int = Field(default=1)
    canceled_at: Optional[datetime] = Field(default=None, nullable=True)
    metadata_: Dict[str, Any] = Field(default_factory=dict, sa_column=Column("metadata", JSON, nullable=False))

    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)
