"""
Billing Router - Stripe webhook that keeps profiles in sync with subscriptions
"""
import logging
from typing import Optional, Tuple

from fastapi import APIRouter, Request, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession
import stripe

from config.settings import settings
from database import get_db
from services.billing_service import BillingService

logger = logging.getLogger(__name__)

billing_router = APIRouter(prefix="/api/billing", tags=["billing"])


def _ack(ok: bool, **extra) -> JSONResponse:
    # Stripe retries anything that is not a 2xx
    return JSONResponse(status_code=200, content={"ok": ok, "received": True, **extra})


def _verify_event(payload: bytes, signature: Optional[str]) -> Tuple[Optional[dict], Optional[str]]:
    """Returns (event, None) for a verified event, or (None, reason) otherwise."""
    secret = settings.stripe_webhook_secret
    if not secret:
        logger.error("STRIPE_WEBHOOK_SECRET is not set; ignoring webhook")
        return None, "Webhook secret not configured"
    if not signature:
        logger.warning("Webhook received without Stripe-Signature header")
        return None, "Missing signature header"

    try:
        return stripe.Webhook.construct_event(payload, signature, secret), None
    except stripe.SignatureVerificationError as e:
        logger.warning(f"Stripe signature verification failed: {e}")
        return None, "Invalid webhook signature"
    except ValueError as e:
        logger.warning(f"Unreadable webhook payload: {e}")
        return None, "Invalid payload format"


@billing_router.post("/webhook")
async def stripe_webhook(request: Request, db: AsyncSession = Depends(get_db)):
    """Apply a verified Stripe subscription event to the matching profile."""
    event, rejection = _verify_event(await request.body(), request.headers.get("stripe-signature"))
    if event is None:
        return _ack(False, error=rejection)

    event_type = event["type"]
    result = await BillingService(db).process_webhook(event)
    if result.get("is_error"):
        logger.warning(f"Webhook {event_type} not applied: {result.get('error')}")
        return _ack(False, event_type=event_type, error=result.get("error"))
    return _ack(True, event_type=event_type)
