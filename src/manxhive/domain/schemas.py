"""Pydantic v2 schemas for API request/response validation."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class UserCreate(BaseModel):
    """Schema for creating a new user."""

    email: str
    password: str
    name: str


class UserLogin(BaseModel):
    """Schema for user login."""

    email: str
    password: str


class UserResponse(BaseModel):
    """Schema for user API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    name: str
    is_active: bool


class ProfileSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    plan: str | None = None
    credits: int = 0
    free_leads_used: int = 0
    free_leads_month: str | None = None
    subscription_status: str | None = None


class MeResponse(BaseModel):
    user: UserResponse
    profile: ProfileSummary | None = None


class TokenResponse(BaseModel):
    """Schema for JWT token responses."""

    access_token: str
    token_type: str = "bearer"
    user: UserResponse


# ---------------------------------------------------------------------------
# Enquiries
# ---------------------------------------------------------------------------


class UnlockResponse(BaseModel):
    """Successful unlock (or already-unlocked) payload."""

    model_config = ConfigDict(from_attributes=True)

    ok: bool = True
    already_unlocked: bool
    credits_remaining: int
    free_leads_used: int
    plan: str


class EnquiryOut(BaseModel):
    """Enquiry row as shown to the seller; contacts are null when masked."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    listing_id: str | None = None
    listing_title: str
    message: str
    buyer_name: str | None = None
    buyer_email: str | None = None
    buyer_phone: str | None = None
    unlocked: bool
    contact_visible: bool
    created_at: datetime | None = None


class EnquiryListResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    plan: str
    enquiries: list[EnquiryOut]


class EnquirySubmit(BaseModel):
    """Buyer interest in a marketplace listing."""

    listing_id: str = Field(default="", alias="listingId")
    name: str = ""
    reply_to: str = Field(default="", alias="replyTo")
    message: str = ""
    phone: str | None = None

    model_config = ConfigDict(populate_by_name=True)


# ---------------------------------------------------------------------------
# Billing
# ---------------------------------------------------------------------------


class CheckoutRequest(BaseModel):
    plan: str | None = None


class TopupRequest(BaseModel):
    pack: str | None = None


class CheckoutResponse(BaseModel):
    url: str


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    service: str
