"""
Customers mirrored from (or created through) Stripe.
"""
from typing import Any, Dict, Optional
from datetime import datetime, timezone
from sqlalchemy import Column, JSON
from sqlmodel import Field, SQLModel


def _utc_now() -> datetime:
    """Get current UTC time (timezone-aware)."""
    return datetime.now(timezone.utc)


class Customer(SQLModel, table=True):
    """
    A billing customer keyed by its Stripe customer id.

    Created by the admin API or by a customer.created webhook, whichever
    arrives first. Never deleted, only referenced.
    """
    __tablename__ = "customer"

    id: Optional[int] = Field(default=None, primary_key=True)
    stripe_customer_id: str = Field(unique=True, index=True)
    email: str = Field(default="", index=True)
    name: Optional[str] = Field(default=None, nullable=True)
    metadata_: Dict[str, Any] = Field(default_factory=dict, sa_column=Column("metadata", JSON, nullable=False))
    created_at: datetime = Field(default_factory=_utc_now)
