"""
Unified error handling with Sentry integration.

Provides:
- The webhook error taxonomy used by the subscription synchronizer
- Processor (Stripe) error wrappers for the admin dual-write routes
- Automatic Sentry error tracking (when configured)
- Structured logging with context enrichment

Usage:
    # Capture an exception
    capture_exception(exc, context={"event_id": "evt_123"})

    # Best-effort side effect, errors captured and suppressed
    with ErrorHandler("dunning_notification", context={"subscription_id": "sub_123"}):
        notifier.notify_payment_failed(notice)
"""

from typing import Optional, Any, Dict
from datetime import datetime, timezone
import structlog

from app.core.context import get_context_dict

logger = structlog.get_logger(__name__)

__all__ = [
    "WebhookError",
    "InvalidSignature",
    "MalformedPayload",
    "DuplicateEvent",
    "MissingReference",
    "PersistenceFailure",
    "ProcessorNotConfigured",
    "ProcessorError",
    "init_sentry",
    "capture_exception",
    "ErrorHandler",
]


# ============== WEBHOOK ERROR TAXONOMY ==============


class WebhookError(Exception):
    """Base class for errors raised while synchronizing a processor event."""


class InvalidSignature(WebhookError):
    """Signature header missing, malformed, stale, or not matching the body."""


class MalformedPayload(WebhookError):
    """Body is not a well-formed event of the shape its type requires."""


class DuplicateEvent(WebhookError):
    """Event id already recorded. Treated as success by callers."""

    def __init__(self, event_id: str):
        super().__init__(f"Event {event_id} already recorded")
        self.event_id = event_id


class MissingReference(WebhookError):
    """A local row referenced by the event does not exist. Absorbed by handlers."""

    def __init__(self, entity: str, external_id: Optional[str]):
        super().__init__(f"{entity} not found: {external_id}")
        self.entity = entity
        self.external_id = external_id


class PersistenceFailure(WebhookError):
    """The local store rejected a write. The event stays eligible for redelivery."""


# ============== PROCESSOR ERRORS ==============


class ProcessorNotConfigured(Exception):
    """STRIPE_SECRET_KEY is not set."""


class ProcessorError(Exception):
    """A Stripe API call failed during a dual write."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code


# ============== ERROR TRACKING ==============

_sentry_initialized: bool = False


def init_sentry(dsn: str, environment: str = "production", traces_sample_rate: float = 0.1) -> bool:
    """
    Initialize sentry-sdk. Returns False (and leaves Sentry off) without a DSN
    or when initialization fails.
    """
    global _sentry_initialized

    if not dsn:
        logger.info("Sentry disabled (no DSN provided)")
        return False

    import logging
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.logging import LoggingIntegration
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

    try:
        sentry_sdk.init(
            dsn=dsn,
            environment=environment,
            traces_sample_rate=traces_sample_rate,
            integrations=[
                FastApiIntegration(transaction_style="endpoint"),
                SqlalchemyIntegration(),
                LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
            ],
            before_send=_before_send,
        )
    except Exception as e:
        logger.error("Failed to initialize Sentry", error=str(e))
        return False

    _sentry_initialized = True
    logger.info("Sentry initialized", environment=environment)
    return True


def _before_send(event: Dict[str, Any], hint: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Drop health checks; tag everything else with the request and Stripe event ids."""
    if "/health" in event.get("request", {}).get("url", ""):
        return None

    tags = event.setdefault("tags", {})
    for key, value in get_context_dict().items():
        if value:
            tags[key] = value
    return event


def capture_exception(
    exc: BaseException,
    context: Optional[Dict[str, Any]] = None,
    level: str = "error",
    fingerprint: Optional[list[str]] = None,
) -> Optional[str]:
    """
    Log an exception through structlog and forward it to Sentry when enabled.

    Returns the Sentry event id, or None when nothing was sent.
    """
    details = {
        **get_context_dict(),
        "error_type": type(exc).__name__,
        "captured_at": datetime.now(timezone.utc).isoformat(),
        **(context or {}),
    }
    logger.error("Exception captured", exc_info=exc, **details)

    if not _sentry_initialized:
        return None

    import sentry_sdk

    try:
        with sentry_sdk.push_scope() as scope:
            for key, value in details.items():
                if value is not None:
                    scope.set_extra(key, value)
            if fingerprint:
                scope.fingerprint = fingerprint
            scope.level = level
            return sentry_sdk.capture_exception(exc)
    except Exception as e:
        logger.warning("Failed to send exception to Sentry", error=str(e))
        return None


class ErrorHandler:
    """
    Context manager for best-effort side effects.

    Exceptions raised inside the block are recorded on `.error`, captured
    (or just logged with capture=False) and suppressed unless reraise=True.

        with ErrorHandler("dunning_notification", context={"invoice_id": "in_123"}):
            notifier.notify_payment_failed(notice)
    """

    def __init__(
        self,
        operation: str,
        context: Optional[Dict[str, Any]] = None,
        capture: bool = True,
        reraise: bool = False,
    ):
        self.operation = operation
        self.context = context or {}
        self.capture = capture
        self.reraise = reraise
        self.event_id: Optional[str] = None
        self.error: Optional[BaseException] = None

    def __enter__(self) -> "ErrorHandler":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if exc_val is None:
            return False

        self.error = exc_val
        if self.capture:
            self.event_id = capture_exception(
                exc_val,
                context={"operation": self.operation, **self.context},
                fingerprint=[self.operation, type(exc_val).__name__],
            )
        else:
            logger.warning("Operation failed", operation=self.operation, error=str(exc_val), **self.context)

        return not self.reraise
