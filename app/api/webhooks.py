"""
Webhook handlers for external services (Stripe).

Authenticity comes from the Stripe-Signature header, not from a session,
so this router is never behind get_current_session.
"""
import logging
from fastapi import APIRouter, Depends, HTTPException, Request

from app.api.deps import get_synchronizer
from app.core.errors import InvalidSignature, MalformedPayload, PersistenceFailure, capture_exception
from app.services.subscription_sync import SubscriptionSynchronizer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    synchronizer: SubscriptionSynchronizer = Depends(get_synchronizer),
):
    """
    Handle Stripe webhook events for the subscription lifecycle.

    Events handled:
    - customer.subscription.created: Mirror a new subscription
    - customer.subscription.updated: Refresh status, period, quantity, metadata
    - customer.subscription.deleted: Mark canceled
    - invoice.payment_succeeded: Mark active
    - invoice.payment_failed: Mark past due and send a dunning notice
    - customer.created: Mirror a customer created outside the admin

    Any other type is acknowledged and logged only. A 500 asks Stripe to
    redeliver; a 200 (including duplicates) does not.
    """
    # Raw body for signature verification
    body = await request.body()
    signature = request.headers.get("stripe-signature")

    try:
        result = synchronizer.handle(body, signature)
    except InvalidSignature as e:
        logger.warning("Webhook signature verification failed", extra={"reason": str(e)})
        raise HTTPException(status_code=400, detail="Invalid signature")
    except MalformedPayload as e:
        logger.warning("Malformed webhook payload", extra={"reason": str(e)})
        raise HTTPException(status_code=400, detail="Malformed payload")
    except PersistenceFailure as e:
        capture_exception(e, context={"operation": "stripe_webhook"})
        raise HTTPException(status_code=500, detail="Webhook processing failed")

    logger.info(
        "Webhook handled",
        extra={"event_id": result.event_id, "status": result.status, "effects": result.effects},
    )
    return {"received": True}
