"""Seller enquiry routes: masked listing and paid contact unlock."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from manxhive.app.config import get_settings
from manxhive.app.routes.auth import get_current_user_dep
from manxhive.domain.models import User
from manxhive.domain.schemas import EnquiryListResponse, UnlockResponse
from manxhive.infra.database import get_db
from manxhive.services.lead_unlock import (
    CommitFailed,
    InsufficientCredits,
    LeadUnlockError,
    LeadUnlockService,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/enquiries", tags=["enquiries"])


@router.get("", response_model=EnquiryListResponse)
async def list_enquiries(
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    """Enquiries for the current seller, contacts masked unless unlocked or pro."""
    listing = await LeadUnlockService(db).list_enquiries(user.id)
    return EnquiryListResponse.model_validate(listing)


@router.post("/{enquiry_id}/unlock", response_model=UnlockResponse)
async def unlock_enquiry(
    enquiry_id: str,
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    """Reveal buyer contact details, paying from free allowance or credits.

    CommitFailed is retried here; each retry re-checks the unlocked flag so a
    commit that actually landed is reported as already unlocked.
    """
    service = LeadUnlockService(db)
    retries = max(get_settings().unlock_commit_retries, 0)
    last_error = CommitFailed()

    for attempt in range(retries + 1):
        try:
            result = await service.unlock(enquiry_id, user.id)
            return UnlockResponse.model_validate(result)
        except InsufficientCredits as exc:
            return JSONResponse(
                status_code=exc.status_code,
                content={
                    "detail": exc.detail,
                    "code": "insufficient_credits",
                    "actions": ["buy_credits", "upgrade"],
                },
            )
        except CommitFailed as exc:
            logger.warning(
                "Unlock of %s failed to commit (attempt %d/%d)",
                enquiry_id, attempt + 1, retries + 1,
            )
            last_error = exc
        except LeadUnlockError as exc:
            raise HTTPException(status_code=exc.status_code, detail=exc.detail)

    raise HTTPException(status_code=last_error.status_code, detail=last_error.detail)
