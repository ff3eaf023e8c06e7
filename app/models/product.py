"""
Catalog models: products and their prices, dual-written to Stripe.
"""
from enum import Enum
from typing import Optional
from datetime import datetime, timezone
from sqlmodel import Field, SQLModel


def _utc_now() -> datetime:
    """Get current UTC time (timezone-aware)."""
    return datetime.now(timezone.utc)


class PricingModel(str, Enum):
    STANDARD_SUBSCRIPTION = "STANDARD_SUBSCRIPTION"
    METERED_BILLING = "METERED_BILLING"
    PREPAID_CREDITS = "PREPAID_CREDITS"


class BillingInterval(str, Enum):
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"

    @property
    def stripe_interval(self) -> str:
        return "month" if self is BillingInterval.MONTHLY else "year"


class TrialType(str, Enum):
    FREE = "FREE"
    PAID = "PAID"


class Product(SQLModel, table=True):
    __tablename__ = "product"

    id: Optional[int] = Field(default=None, primary_key=True)
    stripe_product_id: str = Field(unique=True, index=True)
    name: str
    description: Optional[str] = Field(default=None, nullable=True)
    pricing_model: PricingModel
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)


class Price(SQLModel, table=True):
    """A price point of a product. Amount is in minor currency units (cents)."""
    __tablename__ = "price"

    id: Optional[int] = Field(default=None, primary_key=True)
    stripe_price_id: str = Field(unique=True, index=True)
    product_id: int = Field(foreign_key="product.id", index=True)
    amount: int  # minor units
    currency: str  # ISO code, uppercase (USD, EUR, GBP)
    billing_interval: BillingInterval
    interval_count: int = Field(default=1)

    # Trial configuration (only set when the product offers a trial)
    trial_days: Optional[int] = Field(default=None, nullable=True)
    trial_type: Optional[TrialType] = Field(default=None, nullable=True)

    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=_utc_now)
