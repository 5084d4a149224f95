"""Billing routes: Stripe checkout creation and the Stripe webhook."""

import json
import logging

import stripe
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from manxhive.app.config import get_settings
from manxhive.app.routes.auth import get_current_user_dep
from manxhive.domain.models import User
from manxhive.domain.schemas import CheckoutRequest, CheckoutResponse, TopupRequest
from manxhive.infra.database import get_db
from manxhive.services.auth_service import get_profile
from manxhive.services.billing_service import BillingError, BillingService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["billing"])


async def _profile_or_400(db: AsyncSession, user: User):
    profile = await get_profile(db, user.id)
    if profile is None:
        raise HTTPException(status_code=400, detail="Profile not found.")
    return profile


@router.post("/api/billing/create-checkout", response_model=CheckoutResponse)
async def create_checkout(
    data: CheckoutRequest,
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    """Start a premium/pro subscription checkout."""
    profile = await _profile_or_400(db, user)
    try:
        url = await BillingService(db).create_subscription_checkout(user, profile, data.plan)
    except BillingError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc))
    except stripe.StripeError as exc:
        logger.error("[billing/create-checkout] Stripe error for %s: %s", user.id, exc)
        raise HTTPException(status_code=502, detail="Could not create checkout session.")
    return CheckoutResponse(url=url)


@router.post("/api/credits/topup", response_model=CheckoutResponse)
async def topup_credits(
    data: TopupRequest,
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    """Start a one-off checkout for a credit pack."""
    profile = await _profile_or_400(db, user)
    try:
        url = await BillingService(db).create_credit_checkout(user, profile, data.pack)
    except BillingError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc))
    except stripe.StripeError as exc:
        logger.error("[credits/topup] Stripe error for %s: %s", user.id, exc)
        raise HTTPException(status_code=502, detail="Could not create checkout session.")
    return CheckoutResponse(url=url)


@router.post("/api/billing/webhook")
async def stripe_webhook(request: Request, db: AsyncSession = Depends(get_db)):
    """Receive Stripe events. Signature is verified against the raw body."""
    settings = get_settings()
    if not settings.stripe_webhook_secret:
        logger.warning("[billing/webhook] STRIPE_WEBHOOK_SECRET not set; ignoring event")
        return {"ok": True}

    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")
    if not sig_header:
        raise HTTPException(status_code=400, detail="Missing signature")

    try:
        stripe.WebhookSignature.verify_header(
            payload.decode("utf-8"), sig_header, settings.stripe_webhook_secret
        )
        event = json.loads(payload)
    except (ValueError, stripe.SignatureVerificationError) as exc:
        logger.warning("[billing/webhook] signature verification failed: %s", exc)
        raise HTTPException(status_code=400, detail="Invalid signature")

    outcome = await BillingService(db).handle_event(event)
    logger.info("[billing/webhook] %s %s: %s", event.get("type"), event.get("id"), outcome)
    return {"received": True, "outcome": outcome}
