"""
Dunning notifications triggered by failed invoice payments.
"""
from dataclasses import dataclass
from typing import Optional, Protocol

import structlog

from app.services.email import format_currency, send_payment_failed_email

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class DunningNotice:
    """Everything needed to tell a customer their payment failed."""
    invoice_id: str
    stripe_subscription_id: str
    customer_email: Optional[str]
    customer_name: Optional[str]
    amount_due: Optional[int]  # minor units
    currency: Optional[str]


class DunningNotifier(Protocol):
    def notify_payment_failed(self, notice: DunningNotice) -> bool: ...


class ResendDunningNotifier:
    """Sends the payment failed email through Resend."""

    def notify_payment_failed(self, notice: DunningNotice) -> bool:
        if not notice.customer_email:
            logger.warning(
                "No email for dunning notice",
                invoice_id=notice.invoice_id,
                subscription_id=notice.stripe_subscription_id,
            )
            return False

        name = notice.customer_name or notice.customer_email.split("@")[0]
        if notice.amount_due is not None:
            amount = format_currency(notice.amount_due, notice.currency or "USD")
        else:
            amount = "your latest invoice"

        sent = send_payment_failed_email(notice.customer_email, name, amount)
        logger.info(
            "Dunning notice dispatched",
            invoice_id=notice.invoice_id,
            subscription_id=notice.stripe_subscription_id,
            sent=sent,
        )
        return sent
