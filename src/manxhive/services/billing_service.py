"""Stripe billing: plan checkout, credit top-ups and webhook application.

Credits are only ever added with ``credits = credits + n`` in a single
UPDATE, and each webhook event id is recorded so redelivery is a no-op.
The Stripe SDK is synchronous and is called via asyncio.to_thread.
"""

import asyncio
import logging
from dataclasses import dataclass

import stripe
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from manxhive.app.config import get_settings
from manxhive.domain.enums import CreditPack, Plan
from manxhive.domain.models import BillingEvent, SellerProfile, User

logger = logging.getLogger(__name__)

SUBSCRIPTION_EVENTS = {
    "customer.subscription.created",
    "customer.subscription.updated",
    "customer.subscription.deleted",
}
CHECKOUT_COMPLETED = "checkout.session.completed"

PACK_CREDITS = {
    CreditPack.CREDITS_10: 10,
    CreditPack.CREDITS_50: 50,
}


class BillingError(Exception):
    """Invalid billing request (bad plan, bad pack, missing profile)."""

    status_code = 400


class BillingNotConfigured(BillingError):
    status_code = 501


@dataclass(frozen=True)
class PlanLimits:
    plan: Plan
    max_boosts: int
    max_listings: int


STANDARD_LIMITS = PlanLimits(Plan.STANDARD, 1, 10)


def _plan_prices() -> dict[str, PlanLimits]:
    settings = get_settings()
    return {
        settings.stripe_price_premium: PlanLimits(Plan.PREMIUM, 5, 100),
        settings.stripe_price_pro: PlanLimits(Plan.PRO, 20, 999),
    }


def _pack_prices() -> dict[CreditPack, str]:
    settings = get_settings()
    return {
        CreditPack.CREDITS_10: settings.stripe_price_credits_10,
        CreditPack.CREDITS_50: settings.stripe_price_credits_50,
    }


def plan_for_price(price_id: str | None, status: str | None = "active") -> PlanLimits:
    """Resolve the plan a subscription grants. Inactive or unknown -> standard."""
    tier = _plan_prices().get(price_id or "")
    if status != "active" or tier is None:
        return STANDARD_LIMITS
    return tier


class BillingService:
    """Applies Stripe outcomes to SellerProfile rows."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ------------------------------------------------------------------
    # Profile mutations
    # ------------------------------------------------------------------

    async def add_credits(self, profile_id: str, amount: int) -> bool:
        """Atomically add ``amount`` credits. Returns False if no such profile.

        Does not commit.
        """
        if amount <= 0:
            raise ValueError(f"Credit top-up must be positive, got {amount}")
        result = await self.db.execute(
            update(SellerProfile)
            .where(SellerProfile.id == profile_id)
            .values(credits=SellerProfile.credits + amount)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.error("Credit top-up: profile %s not found", profile_id)
            return False
        logger.info("Added %d credits to profile %s", amount, profile_id)
        return True

    async def apply_subscription(
        self,
        customer_id: str,
        subscription_id: str | None,
        status: str | None,
        price_id: str | None,
    ) -> str | None:
        """Set plan and limits on the profile owning ``customer_id``.

        Returns the profile id, or None when no profile matches. Does not commit.
        """
        result = await self.db.execute(
            select(SellerProfile.id).where(SellerProfile.stripe_customer_id == customer_id)
        )
        profile_id = result.scalar_one_or_none()
        if profile_id is None:
            logger.error("Subscription event: no profile for customer %s", customer_id)
            return None

        limits = plan_for_price(price_id, status)
        await self.db.execute(
            update(SellerProfile)
            .where(SellerProfile.id == profile_id)
            .values(
                plan=limits.plan.value,
                max_boosts=limits.max_boosts,
                max_listings=limits.max_listings,
                subscription_status=status,
                stripe_subscription_id=subscription_id,
            )
            .execution_options(synchronize_session=False)
        )
        logger.info(
            "Profile %s plan set to %s (subscription %s, status %s)",
            profile_id, limits.plan.value, subscription_id, status,
        )
        return profile_id

    # ------------------------------------------------------------------
    # Webhooks
    # ------------------------------------------------------------------

    async def handle_event(self, event: dict) -> str:
        """Apply a verified Stripe event.

        Returns "applied", "skipped", "duplicate" or "ignored".
        """
        event_id = event["id"]
        event_type = event.get("type", "")
        if event_type not in SUBSCRIPTION_EVENTS and event_type != CHECKOUT_COMPLETED:
            return "ignored"

        record = BillingEvent(stripe_event_id=event_id, event_type=event_type)
        self.db.add(record)
        try:
            await self.db.flush()
        except IntegrityError:
            await self.db.rollback()
            logger.info("Stripe event %s already processed", event_id)
            return "duplicate"

        obj = (event.get("data") or {}).get("object") or {}
        if event_type in SUBSCRIPTION_EVENTS:
            profile_id = await self._apply_subscription_object(obj)
        else:
            profile_id = await self._apply_checkout_session(obj)

        record.profile_id = profile_id
        await self.db.commit()
        return "applied" if profile_id else "skipped"

    async def _apply_subscription_object(self, subscription: dict) -> str | None:
        items = (subscription.get("items") or {}).get("data") or []
        price_id = ((items[0] if items else {}).get("price") or {}).get("id")
        customer = subscription.get("customer")
        customer_id = customer.get("id") if isinstance(customer, dict) else customer
        if not price_id or not customer_id:
            return None
        return await self.apply_subscription(
            customer_id,
            subscription.get("id"),
            subscription.get("status"),
            price_id,
        )

    async def _apply_checkout_session(self, session: dict) -> str | None:
        if session.get("mode") != "payment" or session.get("payment_status") != "paid":
            return None
        metadata = session.get("metadata") or {}
        profile_id = metadata.get("manxhive_user_id")
        try:
            amount = int(metadata.get("credits") or 0)
        except (TypeError, ValueError):
            amount = 0
        if not profile_id or amount <= 0:
            logger.warning("Checkout session %s has no credit metadata", session.get("id"))
            return None
        if not await self.add_credits(profile_id, amount):
            return None
        return profile_id

    # ------------------------------------------------------------------
    # Checkout
    # ------------------------------------------------------------------

    async def create_subscription_checkout(
        self, user: User, profile: SellerProfile, plan: str | None
    ) -> str:
        """Create a Stripe subscription checkout for premium or pro."""
        settings = get_settings()
        if not settings.stripe_configured:
            raise BillingNotConfigured("Billing not configured yet.")
        if plan not in (Plan.PREMIUM.value, Plan.PRO.value):
            raise BillingError("Invalid or missing plan.")

        price_id = (
            settings.stripe_price_premium if plan == Plan.PREMIUM.value else settings.stripe_price_pro
        )
        customer_id = await self._ensure_customer(user, profile)
        site = settings.site_url.rstrip("/")
        session = await asyncio.to_thread(
            stripe.checkout.Session.create,
            api_key=settings.stripe_secret_key,
            mode="subscription",
            customer=customer_id,
            line_items=[{"price": price_id, "quantity": 1}],
            success_url=f"{site}/account?upgrade=success",
            cancel_url=f"{site}/account?upgrade=cancelled",
            metadata={"manxhive_user_id": user.id, "plan": plan},
        )
        logger.info("Subscription checkout %s created for %s (%s)", session.id, user.id, plan)
        return session.url

    async def create_credit_checkout(
        self, user: User, profile: SellerProfile, pack: str | None
    ) -> str:
        """Create a one-off Stripe checkout for a credit pack."""
        settings = get_settings()
        if not settings.stripe_configured:
            raise BillingNotConfigured("Credits top-up not configured.")
        try:
            credit_pack = CreditPack(pack)
        except ValueError:
            raise BillingError("Invalid or missing credit pack.")

        customer_id = await self._ensure_customer(user, profile)
        site = settings.site_url.rstrip("/")
        session = await asyncio.to_thread(
            stripe.checkout.Session.create,
            api_key=settings.stripe_secret_key,
            mode="payment",
            customer=customer_id,
            line_items=[{"price": _pack_prices()[credit_pack], "quantity": 1}],
            success_url=f"{site}/account?credits=success",
            cancel_url=f"{site}/account?credits=cancelled",
            metadata={
                "manxhive_user_id": user.id,
                "pack": credit_pack.value,
                "credits": str(PACK_CREDITS[credit_pack]),
            },
        )
        logger.info("Credit checkout %s created for %s (%s)", session.id, user.id, credit_pack.value)
        return session.url

    async def _ensure_customer(self, user: User, profile: SellerProfile) -> str:
        if profile.stripe_customer_id:
            return profile.stripe_customer_id

        settings = get_settings()
        customer = await asyncio.to_thread(
            stripe.Customer.create,
            api_key=settings.stripe_secret_key,
            email=user.email,
            metadata={"manxhive_user_id": user.id},
        )
        profile.stripe_customer_id = customer.id
        await self.db.commit()
        logger.info("Stripe customer %s created for %s", customer.id, user.id)
        return customer.id
