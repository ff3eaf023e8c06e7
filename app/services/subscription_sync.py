"""
Stripe webhook synchronizer.

Mirrors processor-side subscription lifecycle events into the local store:

1. Verify the Stripe-Signature header against the raw body
2. Parse the event envelope and the typed object its handler needs
3. Record the event id in the webhook log (unique, so each event applies once)
4. Dispatch on event type and apply the effect
5. Flip the log row to processed and commit everything in one transaction
6. Send post-commit notifications (dunning)

Handlers absorb missing local references (logged, zero effects) because
Stripe delivers events asynchronously and out of order. Storage errors
roll back the whole event and surface as PersistenceFailure so the
processor redelivers it.
"""
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple, Type

import stripe
from pydantic import BaseModel, ValidationError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from app.core.context import set_event_id
from app.core.logging_config import get_logger
from app.core.errors import (
    DuplicateEvent,
    ErrorHandler,
    InvalidSignature,
    MalformedPayload,
    MissingReference,
    PersistenceFailure,
)
from app.models.customer import Customer
from app.models.product import Price
from app.models.subscription import Subscription, SubscriptionStatus
from app.models.webhook_log import WebhookLog
from app.schemas import CustomerObject, InvoiceObject, StripeEvent, SubscriptionObject
from app.services.dunning import DunningNotice, DunningNotifier

logger = get_logger(__name__)


def _utc_now() -> datetime:
    """Get current UTC time (timezone-aware)."""
    return datetime.now(timezone.utc)


def from_epoch(seconds: Optional[int]) -> Optional[datetime]:
    """Convert Stripe epoch seconds to an aware UTC datetime."""
    if seconds is None:
        return None
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


def verify_stripe_signature(
    payload: bytes,
    header: Optional[str],
    secret: str,
    tolerance: int = 300,
) -> None:
    """
    Verify a Stripe-Signature header ("t=<ts>,v1=<hex>[,v1=<hex>...]") with
    the SDK's WebhookSignature check. Any matching v1 entry passes; with
    tolerance > 0 signatures older than that many seconds are rejected.

    Raises:
        InvalidSignature: header missing, malformed, stale or not matching
    """
    if not header:
        raise InvalidSignature("Missing Stripe-Signature header")
    if not secret:
        raise InvalidSignature("Webhook secret not configured")

    try:
        stripe.WebhookSignature.verify_header(payload.decode("utf-8"), header, secret, tolerance)
    except UnicodeDecodeError as e:
        raise InvalidSignature("Body is not valid UTF-8") from e
    except stripe.SignatureVerificationError as e:
        raise InvalidSignature(str(e)) from e


def parse_event(payload: bytes) -> Tuple[StripeEvent, Dict[str, Any]]:
    """Parse the raw body into the event envelope plus the raw dict for the audit log."""
    try:
        raw = json.loads(payload)
    except ValueError as e:
        raise MalformedPayload("Body is not valid JSON") from e

    try:
        event = StripeEvent.model_validate(raw)
    except ValidationError as e:
        raise MalformedPayload(f"Invalid event envelope: {e.error_count()} error(s)") from e

    return event, raw


@dataclass
class SyncResult:
    event_id: str
    event_type: str
    status: str  # "processed", "duplicate", "ignored"
    effects: int = 0  # rows inserted or updated


class SubscriptionSynchronizer:
    """
    Applies one Stripe event per call to handle(), inside the given session.

    The session, the dunning notifier and the webhook secret are injected so a
    request gets its own session and tests can substitute fakes.
    """

    # event type -> (object model, handler method)
    HANDLERS: Dict[str, Tuple[Type[BaseModel], str]] = {
        "customer.subscription.created": (SubscriptionObject, "_subscription_created"),
        "customer.subscription.updated": (SubscriptionObject, "_subscription_updated"),
        "customer.subscription.deleted": (SubscriptionObject, "_subscription_deleted"),
        "invoice.payment_succeeded": (InvoiceObject, "_payment_succeeded"),
        "invoice.payment_failed": (InvoiceObject, "_payment_failed"),
        "customer.created": (CustomerObject, "_customer_created"),
    }

    def __init__(
        self,
        session: Session,
        notifier: DunningNotifier,
        webhook_secret: str,
        tolerance: int = 300,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.session = session
        self.notifier = notifier
        self.webhook_secret = webhook_secret
        self.tolerance = tolerance
        self.clock = clock
        self._notices: List[DunningNotice] = []

    def handle(self, payload: bytes, signature: Optional[str]) -> SyncResult:
        """
        Verify, record and apply one event.

        Raises:
            InvalidSignature, MalformedPayload: rejected before any store access
            PersistenceFailure: the transaction was rolled back
        """
        verify_stripe_signature(payload, signature, self.webhook_secret, self.tolerance)
        event, raw = parse_event(payload)
        set_event_id(event.id)

        route = self.HANDLERS.get(event.type)
        obj: Optional[BaseModel] = None
        if route:
            model, _ = route
            try:
                obj = model.model_validate(event.data.object)
            except ValidationError as e:
                raise MalformedPayload(f"Invalid {event.type} object: {e.error_count()} error(s)") from e

        log = logger.bind(event_id=event.id, event_type=event.type)
        log.info("Webhook received")
        self._notices = []

        try:
            log_row = self._record_event(event, raw)

            if route is None:
                log.info("Unhandled event type")
                status, effects = "ignored", 0
            else:
                status, effects = "processed", self._dispatch(getattr(self, route[1]), obj, log)

            log_row.processed = True
            self.session.add(log_row)
            self.session.commit()
        except DuplicateEvent:
            self.session.rollback()
            log.info("Duplicate webhook event, skipping")
            return SyncResult(event_id=event.id, event_type=event.type, status="duplicate")
        except SQLAlchemyError as e:
            self.session.rollback()
            raise PersistenceFailure(f"Could not apply event {event.id}") from e

        for notice in self._notices:
            self._send_dunning(notice)

        return SyncResult(event_id=event.id, event_type=event.type, status=status, effects=effects)

    # ============== AUDIT LOG ==============

    def _record_event(self, event: StripeEvent, raw: Dict[str, Any]) -> WebhookLog:
        """Insert the audit row. Raises DuplicateEvent if the id is already recorded."""
        existing = self.session.exec(
            select(WebhookLog).where(WebhookLog.event_id == event.id)
        ).first()
        if existing is not None:
            raise DuplicateEvent(event.id)

        log_row = WebhookLog(event_id=event.id, event_type=event.type, processed=False, payload=raw)
        self.session.add(log_row)
        try:
            self.session.flush()
        except IntegrityError as e:
            # A concurrent delivery of the same event won the insert
            raise DuplicateEvent(event.id) from e
        return log_row

    def _dispatch(self, handler: Callable[[Any], int], obj: Any, log) -> int:
        try:
            return handler(obj)
        except MissingReference as e:
            log.warning("Missing local reference, event skipped", entity=e.entity, external_id=e.external_id)
            return 0

    # ============== LOOKUPS ==============

    def _customer(self, stripe_customer_id: Optional[str]) -> Customer:
        customer = None
        if stripe_customer_id:
            customer = self.session.exec(
                select(Customer).where(Customer.stripe_customer_id == stripe_customer_id)
            ).first()
        if customer is None:
            raise MissingReference("Customer", stripe_customer_id)
        return customer

    def _price(self, stripe_price_id: Optional[str]) -> Price:
        price = None
        if stripe_price_id:
            price = self.session.exec(
                select(Price).where(Price.stripe_price_id == stripe_price_id)
            ).first()
        if price is None:
            raise MissingReference("Price", stripe_price_id)
        return price

    def _find_subscription(self, stripe_subscription_id: str) -> Optional[Subscription]:
        return self.session.exec(
            select(Subscription).where(Subscription.stripe_subscription_id == stripe_subscription_id)
        ).first()

    def _subscription(self, stripe_subscription_id: str) -> Subscription:
        subscription = self._find_subscription(stripe_subscription_id)
        if subscription is None:
            raise MissingReference("Subscription", stripe_subscription_id)
        return subscription

    # ============== HANDLERS ==============

    def _apply_subscription_fields(self, row: Subscription, sub: SubscriptionObject) -> None:
        row.status = sub.status.upper()
        if sub.period_start is not None:
            row.current_period_start = from_epoch(sub.period_start)
        if sub.period_end is not None:
            row.current_period_end = from_epoch(sub.period_end)
        row.quantity = sub.quantity
        row.metadata_ = dict(sub.metadata)
        row.updated_at = self.clock()

    def _subscription_created(self, sub: SubscriptionObject) -> int:
        customer = self._customer(sub.customer)
        price = self._price(sub.price_id)

        row = self._find_subscription(sub.id)
        if row is not None:
            # Already mirrored (e.g. an update arrived first); refresh it instead of inserting twice
            self._apply_subscription_fields(row, sub)
            self.session.add(row)
            logger.info("Subscription already mirrored, refreshed", subscription_id=sub.id, status=row.status)
            return 1

        row = Subscription(
            stripe_subscription_id=sub.id,
            customer_id=customer.id,
            product_id=price.product_id,
            price_id=price.id,
            status=sub.status.upper(),
            current_period_start=from_epoch(sub.period_start),
            current_period_end=from_epoch(sub.period_end),
            quantity=sub.quantity,
            metadata_=dict(sub.metadata),
        )
        self.session.add(row)
        logger.info("Subscription created", subscription_id=sub.id, status=row.status)
        return 1

    def _subscription_updated(self, sub: SubscriptionObject) -> int:
        row = self._subscription(sub.id)
        self._apply_subscription_fields(row, sub)
        self.session.add(row)
        logger.info("Subscription updated", subscription_id=sub.id, status=row.status)
        return 1

    def _subscription_deleted(self, sub: SubscriptionObject) -> int:
        row = self._subscription(sub.id)
        row.status = SubscriptionStatus.CANCELED.value
        row.canceled_at = self.clock()
        row.updated_at = row.canceled_at
        self.session.add(row)
        logger.info("Subscription canceled", subscription_id=sub.id)
        return 1

    def _set_invoice_status(self, invoice: InvoiceObject, status: SubscriptionStatus) -> Optional[Subscription]:
        subscription_id = invoice.subscription_id
        if not subscription_id:
            # One-time purchase, nothing to mirror
            logger.info("Invoice has no subscription", invoice_id=invoice.id)
            return None

        row = self._subscription(subscription_id)
        row.status = status.value
        row.updated_at = self.clock()
        self.session.add(row)
        logger.info("Subscription status set from invoice", invoice_id=invoice.id,
                    subscription_id=subscription_id, status=row.status)
        return row

    def _payment_succeeded(self, invoice: InvoiceObject) -> int:
        row = self._set_invoice_status(invoice, SubscriptionStatus.ACTIVE)
        return 1 if row is not None else 0

    def _payment_failed(self, invoice: InvoiceObject) -> int:
        row = self._set_invoice_status(invoice, SubscriptionStatus.PAST_DUE)
        if row is None:
            return 0

        email, name = invoice.customer_email, invoice.customer_name
        if not email or not name:
            customer = self.session.get(Customer, row.customer_id)
            if customer is not None:
                email = email or customer.email or None
                name = name or customer.name

        self._notices.append(DunningNotice(
            invoice_id=invoice.id,
            stripe_subscription_id=row.stripe_subscription_id,
            customer_email=email,
            customer_name=name,
            amount_due=invoice.amount_due,
            currency=invoice.currency,
        ))
        return 1

    def _customer_created(self, cust: CustomerObject) -> int:
        existing = self.session.exec(
            select(Customer).where(Customer.stripe_customer_id == cust.id)
        ).first()
        if existing is not None:
            # Created locally through the admin API before the event arrived
            return 0

        self.session.add(Customer(
            stripe_customer_id=cust.id,
            email=cust.email or "",
            name=cust.name,
            metadata_=dict(cust.metadata),
        ))
        logger.info("Customer created", customer_id=cust.id)
        return 1

    # ============== POST-COMMIT ==============

    def _send_dunning(self, notice: DunningNotice) -> None:
        with ErrorHandler(
            "dunning_notification",
            context={"invoice_id": notice.invoice_id, "subscription_id": notice.stripe_subscription_id},
        ):
            self.notifier.notify_payment_failed(notice)
