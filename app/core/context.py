"""
Per-request context shared by logs and error reports.

A webhook delivery carries two ids worth correlating: the request id
assigned at the edge and the Stripe event id being applied. Both live in
contextvars so they follow the request through threadpool hops.
"""

import uuid
from contextvars import ContextVar
from typing import Dict, Optional

_request_id: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
_correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)
_event_id: ContextVar[Optional[str]] = ContextVar("stripe_event_id", default=None)


def generate_request_id() -> str:
    """req_ followed by 16 hex chars."""
    return "req_" + uuid.uuid4().hex[:16]


def set_request_id(request_id: str) -> None:
    _request_id.set(request_id)


def get_request_id() -> Optional[str]:
    return _request_id.get()


def set_correlation_id(correlation_id: str) -> None:
    _correlation_id.set(correlation_id)


def get_correlation_id() -> Optional[str]:
    return _correlation_id.get()


def set_event_id(event_id: Optional[str]) -> None:
    """Stripe event currently being synchronized in this request."""
    _event_id.set(event_id)


def get_event_id() -> Optional[str]:
    return _event_id.get()


def clear_context() -> None:
    for var in (_request_id, _correlation_id, _event_id):
        var.set(None)


def get_context_dict() -> Dict[str, Optional[str]]:
    return {
        "request_id": get_request_id(),
        "correlation_id": get_correlation_id(),
        "stripe_event_id": get_event_id(),
    }
