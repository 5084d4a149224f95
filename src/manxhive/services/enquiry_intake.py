"""Enquiry intake: buyers register interest in an approved marketplace listing."""

import logging
import re
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from manxhive.domain.enums import EnquiryStatus
from manxhive.domain.models import Enquiry, MarketplaceListing, User
from manxhive.services.email_service import send_new_enquiry_email

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_MESSAGE_LENGTH = 5


class EnquiryValidationError(Exception):
    """Raised when the submitted enquiry is incomplete or malformed."""

    status_code = 400


class ListingNotFound(Exception):
    """Raised when the listing does not exist or is not approved."""

    status_code = 404


class EnquiryIntakeService:
    """Creates locked Enquiry rows for the listing's seller."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def submit(
        self,
        listing_id: str,
        name: str,
        reply_to: str,
        message: str,
        phone: str | None = None,
    ) -> Enquiry:
        name = (name or "").strip()
        reply_to = (reply_to or "").strip()
        message = (message or "").strip()
        phone = (phone or "").strip() or None

        if not listing_id or not name or not reply_to or not message:
            raise EnquiryValidationError("Missing fields")
        if not EMAIL_RE.match(reply_to):
            raise EnquiryValidationError("Invalid email")
        if len(message) < MIN_MESSAGE_LENGTH:
            raise EnquiryValidationError("Message too short")

        result = await self.db.execute(
            select(MarketplaceListing, User)
            .join(User, User.id == MarketplaceListing.seller_user_id)
            .where(MarketplaceListing.id == listing_id)
        )
        row = result.one_or_none()
        if row is None or not row[0].approved:
            raise ListingNotFound("Listing not found")
        listing, seller = row

        enquiry = Enquiry(
            id=str(uuid.uuid4()),
            listing_id=listing.id,
            seller_user_id=listing.seller_user_id,
            buyer_name=name,
            buyer_email=reply_to,
            buyer_phone=phone,
            message=message,
            status=EnquiryStatus.OPEN.value,
            unlocked=False,
        )
        self.db.add(enquiry)
        await self.db.commit()
        logger.info("Enquiry %s created for listing %s", enquiry.id, listing.id)

        # Notification failure must not lose the enquiry
        await send_new_enquiry_email(seller.email, seller.name, listing.title, message)
        return enquiry
