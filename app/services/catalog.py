"""
Catalog and customer administration.

Products, prices and customers are authored here: written to Stripe first,
then persisted locally keyed by the ids Stripe returned.
"""
import logging
import math
from typing import Dict, List, Optional

import stripe
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, select

from app.core.errors import ProcessorError
from app.models.customer import Customer
from app.models.product import Price, Product, TrialType
from app.models.subscription import Subscription
from app.schemas import (
    CustomerCreate,
    CustomerList,
    CustomerOut,
    CustomerSubscriptionOut,
    Pagination,
    PriceOut,
    ProductCreate,
    ProductOut,
)
from app.services import stripe_billing

logger = logging.getLogger(__name__)


def _product_out(product: Product, prices: List[Price], subscription_count: int = 0) -> ProductOut:
    return ProductOut(
        id=product.id,
        stripe_product_id=product.stripe_product_id,
        name=product.name,
        description=product.description,
        pricing_model=product.pricing_model,
        is_active=product.is_active,
        created_at=product.created_at,
        prices=[PriceOut.model_validate(p) for p in prices],
        subscription_count=subscription_count,
    )


def create_product(session: Session, client: stripe.StripeClient, data: ProductCreate) -> ProductOut:
    """
    Create a product with its first price in Stripe, then persist both.

    Raises:
        ProcessorError: Stripe rejected the product or price (nothing persisted)
    """
    stripe_product, stripe_price = stripe_billing.create_product_with_price(client, data)

    product = Product(
        stripe_product_id=stripe_product.id,
        name=data.name,
        description=data.description,
        pricing_model=data.pricing_model,
        is_active=True,
    )
    session.add(product)
    session.flush()

    price = Price(
        stripe_price_id=stripe_price.id,
        product_id=product.id,
        amount=data.unit_amount,
        currency=data.currency,
        billing_interval=data.interval,
        interval_count=data.interval_count,
        is_active=True,
    )
    if data.has_trial:
        price.trial_days = data.trial_days
        price.trial_type = TrialType.PAID if data.require_payment else TrialType.FREE

    session.add(price)
    session.commit()
    session.refresh(product)
    session.refresh(price)

    logger.info(
        "Product created",
        extra={"product_id": product.id, "stripe_product_id": product.stripe_product_id,
               "pricing_model": product.pricing_model.value},
    )

    # Link the Stripe product back to the local row
    try:
        stripe_billing.tag_product(client, product.stripe_product_id, product.id)
    except ProcessorError:
        logger.warning("Could not tag Stripe product with local id", extra={"product_id": product.id})

    return _product_out(product, [price])


def list_products(session: Session) -> List[ProductOut]:
    """All products, newest first, with their active prices and subscription counts."""
    products = session.exec(
        select(Product).order_by(col(Product.created_at).desc(), col(Product.id).desc())
    ).all()
    if not products:
        return []

    product_ids = [p.id for p in products]
    prices_by_product: Dict[int, List[Price]] = {pid: [] for pid in product_ids}
    for price in session.exec(
        select(Price).where(col(Price.product_id).in_(product_ids), Price.is_active == True)  # noqa: E712
    ).all():
        prices_by_product[price.product_id].append(price)

    counts = dict(session.exec(
        select(Subscription.product_id, func.count(Subscription.id))
        .where(col(Subscription.product_id).in_(product_ids))
        .group_by(Subscription.product_id)
    ).all())

    return [_product_out(p, prices_by_product[p.id], counts.get(p.id, 0)) for p in products]


def _customer_out(customer: Customer, subscriptions: List[CustomerSubscriptionOut]) -> CustomerOut:
    return CustomerOut(
        id=customer.id,
        stripe_customer_id=customer.stripe_customer_id,
        email=customer.email,
        name=customer.name,
        metadata=customer.metadata_ or {},
        created_at=customer.created_at,
        subscriptions=subscriptions,
        subscription_count=len(subscriptions),
    )


def create_customer(session: Session, client: stripe.StripeClient, data: CustomerCreate) -> CustomerOut:
    """
    Create the customer in Stripe, then persist it keyed by the Stripe id.

    Raises:
        ProcessorError: Stripe rejected the customer (nothing persisted)
    """
    stripe_customer = stripe_billing.create_customer(client, data.email, data.name, data.metadata)

    customer = Customer(
        stripe_customer_id=stripe_customer.id,
        email=data.email,
        name=data.name,
        metadata_=dict(data.metadata or {}),
    )
    session.add(customer)
    try:
        session.commit()
    except IntegrityError:
        # customer.created webhook mirrored the row first
        session.rollback()
        customer = session.exec(
            select(Customer).where(Customer.stripe_customer_id == stripe_customer.id)
        ).one()
        logger.info(
            "Customer already mirrored from webhook",
            extra={"customer_id": customer.id, "stripe_customer_id": customer.stripe_customer_id},
        )
        return _customer_out(customer, [])
    session.refresh(customer)

    logger.info("Customer created", extra={"customer_id": customer.id, "stripe_customer_id": customer.stripe_customer_id})
    return _customer_out(customer, [])


def list_customers(session: Session, page: int = 1, limit: int = 10, search: Optional[str] = None) -> CustomerList:
    """Paginated customers, newest first, optionally filtered by email or name (case-insensitive)."""
    query = select(Customer)
    if search:
        pattern = f"%{search}%"
        query = query.where(or_(col(Customer.email).ilike(pattern), col(Customer.name).ilike(pattern)))

    total = session.exec(select(func.count()).select_from(query.subquery())).one()

    customers = session.exec(
        query.order_by(col(Customer.created_at).desc(), col(Customer.id).desc())
        .offset((page - 1) * limit)
        .limit(limit)
    ).all()

    subscriptions: Dict[int, List[CustomerSubscriptionOut]] = {c.id: [] for c in customers}
    if customers:
        rows = session.exec(
            select(Subscription, Product, Price)
            .join(Product, col(Product.id) == Subscription.product_id)
            .join(Price, col(Price.id) == Subscription.price_id)
            .where(col(Subscription.customer_id).in_(list(subscriptions)))
            .order_by(col(Subscription.created_at).desc())
        ).all()
        for sub, product, price in rows:
            subscriptions[sub.customer_id].append(CustomerSubscriptionOut(
                stripe_subscription_id=sub.stripe_subscription_id,
                status=sub.status,
                product_name=product.name,
                amount=price.amount,
                currency=price.currency,
                current_period_end=sub.current_period_end,
                quantity=sub.quantity,
            ))

    return CustomerList(
        customers=[_customer_out(c, subscriptions[c.id]) for c in customers],
        pagination=Pagination(
            page=page,
            limit=limit,
            total=total,
            total_pages=math.ceil(total / limit) if limit else 0,
        ),
    )
