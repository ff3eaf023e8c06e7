from .customer import Customer
from .product import Product, Price, PricingModel, BillingInterval, TrialType
from .subscription import Subscription, SubscriptionStatus
from .webhook_log import WebhookLog

__all__ = [
    "Customer",
    "Product",
    "Price",
    "PricingModel",
    "BillingInterval",
    "TrialType",
    "Subscription",
    "SubscriptionStatus",
    "WebhookLog",
]
