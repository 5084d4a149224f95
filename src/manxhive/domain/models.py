"""SQLAlchemy ORM models for the ManxHive lead pipeline.

All models use SQLite-compatible types:
- String(36) for UUID primary keys
- DateTime for timestamps (no TIMESTAMPTZ)
"""

import uuid

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from manxhive.infra.database import Base


# ---------------------------------------------------------------------------
# Auth / User
# ---------------------------------------------------------------------------


class User(Base):
    """Platform user for authentication."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    name = Column(String(255), nullable=False)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=func.now())

    # Relationships
    profile = relationship("SellerProfile", back_populates="user", uselist=False)


class SellerProfile(Base):
    """Plan, credit balance and monthly free-lead usage for a seller.

    Shares its primary key with the owning User. ``credits`` is mutated only
    through conditional/atomic UPDATE statements, never read-modify-write on
    the ORM object.
    """

    __tablename__ = "profiles"
    __table_args__ = (
        CheckConstraint("credits >= 0", name="ck_profiles_credits_non_negative"),
        CheckConstraint("free_leads_used >= 0", name="ck_profiles_free_leads_non_negative"),
    )

    id = Column(String(36), ForeignKey("users.id"), primary_key=True)
    plan = Column(String(20), nullable=True, default="standard")  # standard, premium, pro
    credits = Column(Integer, nullable=False, default=0)
    free_leads_used = Column(Integer, nullable=False, default=0)
    free_leads_month = Column(String(6), nullable=True)  # YYYYMM

    # Billing
    stripe_customer_id = Column(String(255), nullable=True, unique=True, index=True)
    stripe_subscription_id = Column(String(255), nullable=True)
    subscription_status = Column(String(50), nullable=True)
    max_boosts = Column(Integer, default=1)
    max_listings = Column(Integer, default=10)

    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    # Relationships
    user = relationship("User", back_populates="profile")


# ---------------------------------------------------------------------------
# Marketplace
# ---------------------------------------------------------------------------


class MarketplaceListing(Base):
    """Classified listing owned by a seller."""

    __tablename__ = "marketplace_listings"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    seller_user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    price = Column(Numeric(10, 2), nullable=True)
    approved = Column(Boolean, default=False)
    created_at = Column(DateTime, default=func.now())

    enquiries = relationship("Enquiry", back_populates="listing")


class Enquiry(Base):
    """Buyer interest in a listing.

    ``unlocked`` flips false -> true exactly once; ``unlocked_at`` and
    ``unlocked_by`` are populated in the same UPDATE.
    """

    __tablename__ = "marketplace_enquiries"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    listing_id = Column(String(36), ForeignKey("marketplace_listings.id"), nullable=True, index=True)
    seller_user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    buyer_name = Column(String(255), nullable=False)
    buyer_email = Column(String(255), nullable=False)
    buyer_phone = Column(String(50), nullable=True)
    message = Column(Text, nullable=False)
    status = Column(String(20), default="open")
    created_at = Column(DateTime, default=func.now())
    unlocked = Column(Boolean, nullable=False, default=False)
    unlocked_at = Column(DateTime, nullable=True)
    unlocked_by = Column(String(36), ForeignKey("users.id"), nullable=True)

    listing = relationship("MarketplaceListing", back_populates="enquiries")


# ---------------------------------------------------------------------------
# Billing
# ---------------------------------------------------------------------------


class BillingEvent(Base):
    """Stripe webhook deliveries already applied. Guards against redelivery."""

    __tablename__ = "billing_events"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    stripe_event_id = Column(String(255), unique=True, nullable=False)
    event_type = Column(String(100), nullable=False)
    profile_id = Column(String(36), nullable=True)
    processed_at = Column(DateTime, default=func.now())
