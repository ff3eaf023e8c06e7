"""
Customer API Endpoints
"""

import logging
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status

import stripe
from sqlmodel import Session

from app.api import deps
from app.core.errors import ProcessorError
from app.db import get_session
from app.schemas import CustomerCreate, CustomerList, CustomerOut
from app.services import catalog

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/customers", tags=["customers"])


@router.post("", response_model=CustomerOut, status_code=status.HTTP_201_CREATED)
def create_customer(
    data: CustomerCreate,
    current: deps.SessionData = Depends(deps.get_current_session),
    session: Session = Depends(get_session),
    client: stripe.StripeClient = Depends(deps.get_stripe),
):
    try:
        customer = catalog.create_customer(session, client, data)
    except ProcessorError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"Stripe error: {e.message}")

    logger.info("Admin created customer", extra={"admin": current.email, "customer_id": customer.id})
    return customer


@router.get("", response_model=CustomerList)
def list_customers(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    search: Optional[str] = Query(default=None, max_length=100),
    current: deps.SessionData = Depends(deps.get_current_session),
    session: Session = Depends(get_session),
):
    """Paginated customers with their subscriptions. `search` matches email or name."""
    return catalog.list_customers(session, page=page, limit=limit, search=search or None)
