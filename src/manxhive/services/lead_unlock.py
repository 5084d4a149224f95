"""Lead Unlock Ledger: gates buyer contact details behind plan quota or credits.

Funding rules per unlock:
- pro: free and unlimited, profile untouched
- premium: PREMIUM_FREE_LEADS_PER_MONTH free unlocks per calendar month, then 1 credit
- standard (and any unrecognised plan): 1 credit

The funding decision is a pure function of the profile snapshot. The commit
flips the enquiry and charges the profile inside one transaction, using
conditional UPDATEs whose rowcount decides who won a concurrent race.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from manxhive.domain.enums import Plan
from manxhive.domain.models import Enquiry, MarketplaceListing, SellerProfile

logger = logging.getLogger(__name__)

PREMIUM_FREE_LEADS_PER_MONTH = 10
MAX_COMMIT_ATTEMPTS = 3
DEFAULT_LISTING_TITLE = "Listing"


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class LeadUnlockError(Exception):
    """Base class for unlock failures. Carries the HTTP-equivalent status."""

    status_code = 500
    detail = "Failed to unlock."

    def __init__(self, detail: str | None = None):
        if detail is not None:
            self.detail = detail
        super().__init__(self.detail)


class NotFound(LeadUnlockError):
    status_code = 404
    detail = "Not found"


class EnquiryNotFound(NotFound):
    detail = "Enquiry not found"


class ProfileNotFound(NotFound):
    detail = "Profile not found"


class Forbidden(LeadUnlockError):
    status_code = 403
    detail = "Not your enquiry"


class InsufficientCredits(LeadUnlockError):
    """Expected business outcome: the seller must buy credits or upgrade."""

    status_code = 402
    detail = "No credits left. Buy credits or upgrade for unlimited."


class CommitFailed(LeadUnlockError):
    """Outcome indeterminate at the storage layer; safe to retry."""

    status_code = 503
    detail = "Failed to unlock. Please try again."


# ---------------------------------------------------------------------------
# Pure funding decision
# ---------------------------------------------------------------------------


def current_month_key(now: datetime | None = None) -> str:
    """Return the server-local calendar month as YYYYMM."""
    return (now or datetime.now()).strftime("%Y%m")


def normalize_plan(value: Any) -> Plan:
    """Map a stored plan value to a Plan, defaulting to STANDARD."""
    try:
        return Plan(value)
    except ValueError:
        return Plan.STANDARD


@dataclass(frozen=True)
class FundingDecision:
    """How a single unlock is paid for, and the counter values to persist."""

    plan: Plan
    charge_credit: bool
    free_leads_used: int
    free_leads_month: str | None
    consumed_free_lead: bool = False


def decide_funding(
    plan: Any,
    free_leads_used: int | None,
    free_leads_month: str | None,
    now: datetime | None = None,
) -> FundingDecision:
    """Decide the funding source for one unlock.

    A stored month other than the current one means the counter is logically
    zero. A missing month is read as the current month.
    """
    tier = normalize_plan(plan)
    used = free_leads_used or 0

    if tier is Plan.PRO:
        return FundingDecision(tier, False, used, free_leads_month)

    month_key = current_month_key(now)
    if free_leads_month is not None and free_leads_month != month_key:
        used = 0

    if tier is Plan.PREMIUM and used < PREMIUM_FREE_LEADS_PER_MONTH:
        return FundingDecision(tier, False, used + 1, month_key, consumed_free_lead=True)

    return FundingDecision(tier, True, used, month_key)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass
class UnlockResult:
    already_unlocked: bool
    credits_remaining: int
    free_leads_used: int
    plan: str
    ok: bool = True


@dataclass
class EnquiryRow:
    """One enquiry as shown to its seller, contact fields possibly masked."""

    id: str
    listing_id: str | None
    listing_title: str
    message: str
    buyer_name: str | None
    buyer_email: str | None
    buyer_phone: str | None
    unlocked: bool
    contact_visible: bool
    created_at: datetime | None


@dataclass
class EnquiryListing:
    plan: str
    enquiries: list[EnquiryRow] = field(default_factory=list)


def _matches(column, value):
    return column.is_(None) if value is None else column == value


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class LeadUnlockService:
    """Unlocks enquiries for their owning seller and lists them with masking."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def unlock(
        self,
        enquiry_id: str,
        seller_id: str,
        now: datetime | None = None,
    ) -> UnlockResult:
        """Unlock ``enquiry_id`` for ``seller_id``.

        Raises EnquiryNotFound, ProfileNotFound, Forbidden,
        InsufficientCredits or CommitFailed. Repeated calls on an unlocked
        enquiry return ``already_unlocked=True`` and change nothing.
        """
        now = now or datetime.now()

        for attempt in range(1, MAX_COMMIT_ATTEMPTS + 1):
            enquiry = await self._load_enquiry(enquiry_id)
            if enquiry is None:
                raise EnquiryNotFound()
            if enquiry.seller_user_id != seller_id:
                logger.warning(
                    "Unlock refused: seller %s does not own enquiry %s",
                    seller_id, enquiry_id,
                )
                raise Forbidden()

            profile = await self._load_profile(seller_id)
            if enquiry.unlocked:
                return self._result(profile, already_unlocked=True)
            if profile is None:
                raise ProfileNotFound()

            decision = decide_funding(
                profile.plan, profile.free_leads_used, profile.free_leads_month, now
            )
            if decision.charge_credit and (profile.credits or 0) <= 0:
                logger.info(
                    "Unlock refused: seller %s (%s) has no credits for enquiry %s",
                    seller_id, decision.plan.value, enquiry_id,
                )
                raise InsufficientCredits()

            result = await self._commit(enquiry_id, seller_id, profile, decision, now)
            if result is not None:
                return result

            logger.info(
                "Profile %s changed during unlock of %s (attempt %d/%d), re-evaluating",
                seller_id, enquiry_id, attempt, MAX_COMMIT_ATTEMPTS,
            )

        logger.error("Unlock of %s gave up after %d attempts", enquiry_id, MAX_COMMIT_ATTEMPTS)
        raise CommitFailed()

    async def list_enquiries(self, seller_id: str) -> EnquiryListing:
        """Return the seller's enquiries, newest first, with contacts masked.

        Contacts are visible when the row is unlocked or the seller is pro.
        Read-only.
        """
        profile = await self._load_profile(seller_id)
        plan = normalize_plan(profile.plan if profile is not None else None)
        is_pro = plan is Plan.PRO

        result = await self.db.execute(
            select(Enquiry, MarketplaceListing.title)
            .outerjoin(MarketplaceListing, MarketplaceListing.id == Enquiry.listing_id)
            .where(Enquiry.seller_user_id == seller_id)
            .order_by(Enquiry.created_at.desc())
        )

        rows = []
        for enquiry, title in result.all():
            visible = is_pro or bool(enquiry.unlocked)
            rows.append(
                EnquiryRow(
                    id=enquiry.id,
                    listing_id=enquiry.listing_id,
                    listing_title=title or DEFAULT_LISTING_TITLE,
                    message=enquiry.message,
                    buyer_name=enquiry.buyer_name if visible else None,
                    buyer_email=enquiry.buyer_email if visible else None,
                    buyer_phone=enquiry.buyer_phone if visible else None,
                    unlocked=bool(enquiry.unlocked),
                    contact_visible=visible,
                    created_at=enquiry.created_at,
                )
            )
        return EnquiryListing(plan=plan.value, enquiries=rows)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _load_enquiry(self, enquiry_id: str):
        result = await self.db.execute(
            select(Enquiry.id, Enquiry.seller_user_id, Enquiry.unlocked).where(
                Enquiry.id == enquiry_id
            )
        )
        return result.one_or_none()

    async def _load_profile(self, seller_id: str):
        result = await self.db.execute(
            select(
                SellerProfile.id,
                SellerProfile.plan,
                SellerProfile.credits,
                SellerProfile.free_leads_used,
                SellerProfile.free_leads_month,
            ).where(SellerProfile.id == seller_id)
        )
        return result.one_or_none()

    async def _commit(
        self,
        enquiry_id: str,
        seller_id: str,
        profile,
        decision: FundingDecision,
        now: datetime,
    ) -> UnlockResult | None:
        """Apply the enquiry flip and profile charge as one transaction.

        Returns None when the profile no longer matches ``profile`` and the
        decision must be re-evaluated. Nothing is persisted in that case.
        """
        credits = profile.credits or 0
        try:
            flipped = await self.db.execute(
                update(Enquiry)
                .where(Enquiry.id == enquiry_id, Enquiry.unlocked.is_(False))
                .values(unlocked=True, unlocked_at=now, unlocked_by=seller_id)
                .execution_options(synchronize_session=False)
            )
            if flipped.rowcount != 1:
                await self.db.rollback()
                logger.info("Enquiry %s was unlocked concurrently; not charging", enquiry_id)
                return self._result(await self._load_profile(seller_id), already_unlocked=True)

            if self._profile_changes(profile, decision):
                charged = await self.db.execute(
                    self._profile_update(seller_id, profile, decision)
                )
                if charged.rowcount != 1:
                    await self.db.rollback()
                    return None
                if decision.charge_credit:
                    credits -= 1

            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            logger.error("Unlock commit failed for enquiry %s: %s", enquiry_id, exc)
            raise CommitFailed() from exc

        logger.info(
            "Enquiry %s unlocked by %s (plan=%s, credit=%s, free_used=%d)",
            enquiry_id, seller_id, decision.plan.value,
            decision.charge_credit, decision.free_leads_used,
        )
        # Re-read so a concurrent top-up is reflected in the balance shown.
        latest = await self._load_profile(seller_id)
        return UnlockResult(
            already_unlocked=False,
            credits_remaining=latest.credits if latest is not None else credits,
            free_leads_used=decision.free_leads_used,
            plan=decision.plan.value,
        )

    @staticmethod
    def _profile_changes(profile, decision: FundingDecision) -> bool:
        if decision.charge_credit:
            return True
        return (decision.free_leads_used, decision.free_leads_month) != (
            profile.free_leads_used,
            profile.free_leads_month,
        )

    @staticmethod
    def _profile_update(seller_id: str, profile, decision: FundingDecision):
        """Compare-and-swap on the snapshot the decision was made from."""
        stmt = update(SellerProfile).where(
            SellerProfile.id == seller_id,
            _matches(SellerProfile.plan, profile.plan),
            _matches(SellerProfile.free_leads_used, profile.free_leads_used),
            _matches(SellerProfile.free_leads_month, profile.free_leads_month),
        )
        values = {
            "free_leads_used": decision.free_leads_used,
            "free_leads_month": decision.free_leads_month,
        }
        if decision.charge_credit:
            stmt = stmt.where(SellerProfile.credits > 0)
            values["credits"] = SellerProfile.credits - 1
        return stmt.values(**values).execution_options(synchronize_session=False)

    @staticmethod
    def _result(profile, *, already_unlocked: bool) -> UnlockResult:
        if profile is None:
            return UnlockResult(
                already_unlocked=already_unlocked,
                credits_remaining=0,
                free_leads_used=0,
                plan=Plan.STANDARD.value,
            )
        return UnlockResult(
            already_unlocked=already_unlocked,
            credits_remaining=profile.credits or 0,
            free_leads_used=profile.free_leads_used or 0,
            plan=normalize_plan(profile.plan).value,
        )
