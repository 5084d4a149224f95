"""Public marketplace routes: buyer enquiry submission."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from manxhive.domain.schemas import EnquirySubmit
from manxhive.infra.database import get_db
from manxhive.services.enquiry_intake import (
    EnquiryIntakeService,
    EnquiryValidationError,
    ListingNotFound,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/marketplace", tags=["marketplace"])


@router.post("/enquiry")
async def submit_enquiry(data: EnquirySubmit, db: AsyncSession = Depends(get_db)):
    """Record a buyer's interest in an approved listing and notify the seller."""
    try:
        enquiry = await EnquiryIntakeService(db).submit(
            listing_id=data.listing_id,
            name=data.name,
            reply_to=data.reply_to,
            message=data.message,
            phone=data.phone,
        )
    except (EnquiryValidationError, ListingNotFound) as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc))

    return {"ok": True, "id": enquiry.id}
