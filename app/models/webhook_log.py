"""
Append-only audit log of received Stripe events.

The unique constraint on event_id is what makes redelivery idempotent:
two concurrent deliveries of one event race on the insert and exactly
one of them proceeds.
"""
from typing import Any, Dict, Optional
from datetime import datetime, timezone
from sqlalchemy import Column, JSON
from sqlmodel import Field, SQLModel


def _utc_now() -> datetime:
    """Get current UTC time (timezone-aware)."""
    return datetime.now(timezone.utc)


class WebhookLog(SQLModel, table=True):
    __tablename__ = "webhook_log"

    id: Optional[int] = Field(default=None, primary_key=True)

    # Event identification
    event_id: str = Field(unique=True, index=True)  # Stripe event id (evt_...)
    event_type: str = Field(index=True)  # e.g., "customer.subscription.created"

    processed: bool = Field(default=False)
    payload: Dict[str, Any] = Field(default_factory=dict, sa_column=Column("data", JSON, nullable=False))
    received_at: datetime = Field(default_factory=_utc_now)
