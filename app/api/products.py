"""
Product catalog API Endpoints

Products are created in Stripe first and mirrored locally.
"""

import logging
from fastapi import APIRouter, Depends, HTTPException, status

import stripe
from sqlmodel import Session

from app.api import deps
from app.core.errors import ProcessorError
from app.db import get_session
from app.schemas import ProductCreate, ProductList, ProductOut
from app.services import catalog

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/products", tags=["products"])


@router.post("", response_model=ProductOut, status_code=status.HTTP_201_CREATED)
def create_product(
    data: ProductCreate,
    current: deps.SessionData = Depends(deps.get_current_session),
    session: Session = Depends(get_session),
    client: stripe.StripeClient = Depends(deps.get_stripe),
):
    """Create a product with its first price (Stripe + local)."""
    try:
        product = catalog.create_product(session, client, data)
    except ProcessorError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"Stripe error: {e.message}")

    logger.info("Admin created product", extra={"admin": current.email, "product_id": product.id})
    return product


@router.get("", response_model=ProductList)
def list_products(
    current: deps.SessionData = Depends(deps.get_current_session),
    session: Session = Depends(get_session),
):
    """All products, newest first, with active prices and subscription counts."""
    return ProductList(products=catalog.list_products(session))
