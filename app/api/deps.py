from typing import Optional
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer

import stripe
from pydantic import BaseModel
from sqlmodel import Session

from app.db import get_session
from app.core.config import settings
from app.core.errors import ProcessorNotConfigured
from app.core.jwt import decode_token_subject
from app.services.dunning import ResendDunningNotifier
from app.services.stripe_billing import get_stripe_client
from app.services.subscription_sync import SubscriptionSynchronizer

# Cookie name for the session token issued by the magic-link provider
COOKIE_NAME = "access_token"

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/signin", auto_error=False)


class SessionData(BaseModel):
    email: str


def get_token_from_request(request: Request, header_token: Optional[str] = None) -> Optional[str]:
    """
    Extract token from Authorization header or cookie.
    Priority: Header > Cookie
    """
    if header_token:
        return header_token

    cookie_token = request.cookies.get(COOKIE_NAME)
    if cookie_token:
        return cookie_token

    return None


def get_current_session(
    request: Request, header_token: Optional[str] = Depends(oauth2_scheme)
) -> SessionData:
    """
    Require an authenticated admin session (header or cookie).
    """
    token = get_token_from_request(request, header_token)

    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )

    email = decode_token_subject(token)
    if not email:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return SessionData(email=email)


def get_stripe() -> stripe.StripeClient:
    """Stripe client for admin dual writes."""
    try:
        return get_stripe_client()
    except ProcessorNotConfigured:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Stripe is not configured",
        )


def get_synchronizer(session: Session = Depends(get_session)) -> SubscriptionSynchronizer:
    """Request-scoped webhook synchronizer bound to this request's session."""
    return SubscriptionSynchronizer(
        session,
        notifier=ResendDunningNotifier(),
        webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
        tolerance=settings.STRIPE_WEBHOOK_TOLERANCE,
    )
