"""Tests for EnquiryIntakeService.submit."""

from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import select

from manxhive.domain.models import Enquiry
from manxhive.services.enquiry_intake import (
    EnquiryIntakeService,
    EnquiryValidationError,
    ListingNotFound,
)

SEND_PATH = "manxhive.services.enquiry_intake.send_new_enquiry_email"


class TestValidation:

    @pytest.mark.parametrize("kwargs,message", [
        ({"listing_id": ""}, "Missing fields"),
        ({"name": "   "}, "Missing fields"),
        ({"reply_to": ""}, "Missing fields"),
        ({"message": ""}, "Missing fields"),
        ({"reply_to": "not-an-email"}, "Invalid email"),
        ({"reply_to": "a@b"}, "Invalid email"),
        ({"message": "hey"}, "Message too short"),
    ])
    async def test_rejects_bad_input(self, db_session, kwargs, message):
        fields = {
            "listing_id": "listing-1",
            "name": "Jane",
            "reply_to": "jane@buyer.test",
            "message": "Is this still available?",
        }
        fields.update(kwargs)

        with pytest.raises(EnquiryValidationError, match=message):
            await EnquiryIntakeService(db_session).submit(**fields)


class TestSubmit:

    async def test_creates_locked_enquiry_and_notifies_seller(
        self, db_session, make_seller, make_listing
    ):
        seller, _ = await make_seller(email="seller@manxhive.test", name="Sam Seller")
        listing = await make_listing(seller.id, title="Garden shed")

        with patch(SEND_PATH, new_callable=AsyncMock, return_value=True) as send:
            enquiry = await EnquiryIntakeService(db_session).submit(
                listing_id=listing.id,
                name=" Jane ",
                reply_to="jane@buyer.test",
                message="Is the shed still available?",
                phone="+441624111111",
            )

        result = await db_session.execute(select(Enquiry).where(Enquiry.id == enquiry.id))
        stored = result.scalar_one()
        assert stored.seller_user_id == seller.id
        assert stored.listing_id == listing.id
        assert stored.buyer_name == "Jane"
        assert stored.buyer_phone == "+441624111111"
        assert stored.unlocked is False
        assert stored.unlocked_at is None
        assert stored.status == "open"

        send.assert_awaited_once_with(
            "seller@manxhive.test", "Sam Seller", "Garden shed", "Is the shed still available?"
        )

    async def test_email_failure_keeps_enquiry(self, db_session, make_seller, make_listing):
        seller, _ = await make_seller()
        listing = await make_listing(seller.id)

        with patch(SEND_PATH, new_callable=AsyncMock, return_value=False):
            enquiry = await EnquiryIntakeService(db_session).submit(
                listing_id=listing.id,
                name="Jane",
                reply_to="jane@buyer.test",
                message="Still for sale?",
            )

        result = await db_session.execute(select(Enquiry.id).where(Enquiry.id == enquiry.id))
        assert result.scalar_one() == enquiry.id

    async def test_unapproved_listing_is_not_found(
        self, db_session, make_seller, make_listing
    ):
        seller, _ = await make_seller()
        listing = await make_listing(seller.id, approved=False)

        with patch(SEND_PATH, new_callable=AsyncMock) as send:
            with pytest.raises(ListingNotFound):
                await EnquiryIntakeService(db_session).submit(
                    listing_id=listing.id,
                    name="Jane",
                    reply_to="jane@buyer.test",
                    message="Still for sale?",
                )
        send.assert_not_awaited()

    async def test_missing_listing_is_not_found(self, db_session):
        with pytest.raises(ListingNotFound):
            await EnquiryIntakeService(db_session).submit(
                listing_id="missing",
                name="Jane",
                reply_to="jane@buyer.test",
                message="Still for sale?",
            )
