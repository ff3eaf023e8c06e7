from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from datetime import datetime

from app.models.product import PricingModel, BillingInterval, TrialType


# ============== CATALOG ==============

class ProductCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = None
    pricing_model: PricingModel
    amount: Decimal = Field(ge=0, le=999999)  # major units, e.g. 19.99
    currency: Literal["USD", "EUR", "GBP"]
    interval: BillingInterval
    interval_count: int = Field(default=1, ge=1, le=12)
    trial_days: Optional[int] = Field(default=None, ge=0, le=365)
    require_payment: bool = False  # trial requires a payment method up front

    @property
    def unit_amount(self) -> int:
        """Amount in minor units as Stripe expects it."""
        return int((self.amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    @property
    def has_trial(self) -> bool:
        return bool(self.trial_days and self.trial_days > 0)


class PriceOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    stripe_price_id: str
    amount: int
    currency: str
    billing_interval: BillingInterval
    interval_count: int
    trial_days: Optional[int] = None
    trial_type: Optional[TrialType] = None
    is_active: bool


class ProductOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    stripe_product_id: str
    name: str
    description: Optional[str] = None
    pricing_model: PricingModel
    is_active: bool
    created_at: datetime
    prices: List[PriceOut] = []
    subscription_count: int = 0


class ProductList(BaseModel):
    products: List[ProductOut]


# ============== CUSTOMERS ==============

class CustomerCreate(BaseModel):
    email: EmailStr
    name: str = Field(min_length=1)
    metadata: Optional[Dict[str, str]] = None


class CustomerSubscriptionOut(BaseModel):
    stripe_subscription_id: str
    status: str
    product_name: Optional[str] = None
    amount: Optional[int] = None
    currency: Optional[str] = None
    current_period_end: Optional[datetime] = None
    quantity: int


class CustomerOut(BaseModel):
    id: int
    stripe_customer_id: str
    email: str
    name: Optional[str] = None
    metadata: Dict[str, Any] = {}
    created_at: datetime
    subscriptions: List[CustomerSubscriptionOut] = []
    subscription_count: int = 0


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class CustomerList(BaseModel):
    customers: List[CustomerOut]
    pagination: Pagination


# ============== STRIPE EVENTS ==============
# Only the fields each handler reads are declared; everything else is ignored.

def _expandable_id(value: Any) -> Any:
    """Stripe references are either an id string or an expanded object."""
    if isinstance(value, dict):
        return value.get("id")
    return value


class EventData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    object: Dict[str, Any]


class StripeEvent(BaseModel):
    """Event envelope. `data.object` stays untyped until dispatch picks a variant."""
    model_config = ConfigDict(extra="ignore")

    id: str = Field(min_length=1)
    type: str = Field(min_length=1)
    data: EventData


class PriceRef(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str


class SubscriptionItem(BaseModel):
    model_config = ConfigDict(extra="ignore")

    price: Optional[PriceRef] = None
    quantity: Optional[int] = None
    current_period_start: Optional[int] = None
    current_period_end: Optional[int] = None


class SubscriptionItemList(BaseModel):
    model_config = ConfigDict(extra="ignore")

    data: List[SubscriptionItem] = []


class SubscriptionObject(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    customer: Optional[str] = None
    status: str
    current_period_start: Optional[int] = None
    current_period_end: Optional[int] = None
    items: SubscriptionItemList = SubscriptionItemList()
    metadata: Dict[str, Any] = {}

    @field_validator("customer", mode="before")
    @classmethod
    def _customer_ref(cls, value: Any) -> Any:
        return _expandable_id(value)

    @field_validator("metadata", mode="before")
    @classmethod
    def _metadata_default(cls, value: Any) -> Any:
        return value or {}

    @property
    def first_item(self) -> Optional[SubscriptionItem]:
        return self.items.data[0] if self.items.data else None

    @property
    def price_id(self) -> Optional[str]:
        item = self.first_item
        return item.price.id if item and item.price else None

    @property
    def quantity(self) -> int:
        item = self.first_item
        return (item.quantity if item else None) or 1

    @property
    def period_start(self) -> Optional[int]:
        # Newer API versions report billing periods per item
        if self.current_period_start is not None:
            return self.current_period_start
        item = self.first_item
        return item.current_period_start if item else None

    @property
    def period_end(self) -> Optional[int]:
        if self.current_period_end is not None:
            return self.current_period_end
        item = self.first_item
        return item.current_period_end if item else None


class InvoiceObject(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    subscription: Optional[str] = None
    parent: Optional[Dict[str, Any]] = None
    customer: Optional[str] = None
    customer_email: Optional[str] = None
    customer_name: Optional[str] = None
    amount_due: Optional[int] = None
    currency: Optional[str] = None

    @field_validator("subscription", "customer", mode="before")
    @classmethod
    def _expandable_refs(cls, value: Any) -> Any:
        return _expandable_id(value)

    @property
    def subscription_id(self) -> Optional[str]:
        if self.subscription:
            return self.subscription
        details = (self.parent or {}).get("subscription_details") or {}
        return _expandable_id(details.get("subscription"))


class CustomerObject(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    email: Optional[str] = None
    name: Optional[str] = None
    metadata: Dict[str, Any] = {}

    @field_validator("metadata", mode="before")
    @classmethod
    def _metadata_default(cls, value: Any) -> Any:
        return value or {}
