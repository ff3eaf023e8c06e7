"""
Stripe integration for the catalog and customer admin routes.

Every function takes the StripeClient explicitly so routes can inject a
configured client and tests can pass a fake.
"""
import logging
from typing import Any, Dict, Optional, Tuple

import stripe

from app.core.config import settings
from app.core.errors import ProcessorError, ProcessorNotConfigured
from app.models.product import PricingModel
from app.schemas import ProductCreate

logger = logging.getLogger(__name__)

# Metadata key linking a Stripe product back to the local row
PRODUCT_ID_METADATA_KEY = "hydrus_product_id"


def get_stripe_client() -> stripe.StripeClient:
    """Get configured Stripe client."""
    if not settings.STRIPE_SECRET_KEY:
        raise ProcessorNotConfigured("STRIPE_SECRET_KEY is not set")

    return stripe.StripeClient(
        settings.STRIPE_SECRET_KEY,
        stripe_version=settings.STRIPE_API_VERSION,
    )


def _processor_error(action: str, exc: stripe.StripeError) -> ProcessorError:
    logger.error("Stripe call failed", extra={"action": action, "code": exc.code, "error": str(exc)})
    return ProcessorError(exc.user_message or str(exc), code=exc.code)


def build_price_params(stripe_product_id: str, data: ProductCreate) -> Dict[str, Any]:
    """
    Build Stripe price parameters for a pricing model.

    - STANDARD_SUBSCRIPTION: licensed recurring price
    - METERED_BILLING: per-unit recurring price billed on reported usage
    - PREPAID_CREDITS: one-time price
    """
    params: Dict[str, Any] = {
        "product": stripe_product_id,
        "unit_amount": data.unit_amount,
        "currency": data.currency.lower(),
        "metadata": {"pricing_model": data.pricing_model.value},
    }

    if data.pricing_model == PricingModel.PREPAID_CREDITS:
        return params

    recurring: Dict[str, Any] = {
        "interval": data.interval.stripe_interval,
        "interval_count": data.interval_count,
    }
    if data.pricing_model == PricingModel.METERED_BILLING:
        recurring["usage_type"] = "metered"
        params["billing_scheme"] = "per_unit"

    params["recurring"] = recurring
    return params


def create_product_with_price(client: stripe.StripeClient, data: ProductCreate) -> Tuple[Any, Any]:
    """
    Create the Stripe product and its price.

    The product is tagged with a pending local id; call tag_product once the
    local row exists.
    """
    product_params: Dict[str, Any] = {
        "name": data.name,
        "metadata": {PRODUCT_ID_METADATA_KEY: "pending"},
    }
    if data.description:
        product_params["description"] = data.description

    try:
        stripe_product = client.products.create(params=product_params)
        stripe_price = client.prices.create(params=build_price_params(stripe_product.id, data))
    except stripe.StripeError as e:
        raise _processor_error("create_product", e) from e

    return stripe_product, stripe_price


def tag_product(client: stripe.StripeClient, stripe_product_id: str, product_id: int) -> None:
    """Write the local product id into the Stripe product's metadata."""
    try:
        client.products.update(
            stripe_product_id,
            params={"metadata": {PRODUCT_ID_METADATA_KEY: str(product_id)}},
        )
    except stripe.StripeError as e:
        raise _processor_error("tag_product", e) from e


def create_customer(
    client: stripe.StripeClient,
    email: str,
    name: str,
    metadata: Optional[Dict[str, str]] = None,
) -> Any:
    """Create a Stripe customer and return it."""
    try:
        return client.customers.create(
            params={
                "email": email,
                "name": name,
                "metadata": metadata or {},
            }
        )
    except stripe.StripeError as e:
        raise _processor_error("create_customer", e) from e
