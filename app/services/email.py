"""
Email Service using Resend

Handles the transactional emails sent by the billing backend:
- Payment failed (dunning) notice
"""

import html
import logging
from decimal import Decimal

import resend
from app.core.config import settings

logger = logging.getLogger(__name__)

# Initialize Resend
resend.api_key = settings.RESEND_API_KEY

CURRENCY_SYMBOLS = {"USD": "$", "EUR": "€", "GBP": "£"}


def format_currency(amount: int, currency: str = "USD") -> str:
    """Format an amount in minor units, e.g. (1999, "usd") -> "$19.99"."""
    code = (currency or "USD").upper()
    major = (Decimal(amount) / 100).quantize(Decimal("0.01"))
    symbol = CURRENCY_SYMBOLS.get(code)
    if symbol:
        return f"{symbol}{major:,}"
    return f"{major:,} {code}"


def send_payment_failed_email(to_email: str, customer_name: str, amount: str) -> bool:
    """
    Send the dunning notice asking the customer to update their payment method.
    Returns True if sent successfully, False otherwise.
    """
    if not settings.RESEND_API_KEY:
        logger.warning("Skipping payment failed email - RESEND_API_KEY not configured")
        return False

    try:
        resend.Emails.send({
            "from": settings.FROM_EMAIL,
            "to": [to_email],
            "subject": "Payment Failed - Action Required",
            "html": f"""
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
    <h2 style="color: #dc2626;">Payment Failed</h2>
    <p>Hi {html.escape(customer_name)},</p>
    <p>We were unable to process your payment of {amount}. Please update your payment method to continue using our service.</p>
    <p>
        <a href="{settings.FRONTEND_URL}/billing" style="background-color: #3b82f6; color: white; padding: 12px 24px; text-decoration: none; border-radius: 6px;">
            Update Payment Method
        </a>
    </p>
    <p>If you have any questions, please don't hesitate to contact our support team.</p>
    <p>Best regards,<br>The Billing Team</p>
</div>
            """,
        })
        logger.info("Payment failed email sent", extra={"to_email": to_email})
        return True
    except Exception:
        logger.exception("Failed to send payment failed email", extra={"to_email": to_email})
        return False
