"""Shared test infrastructure for the ManxHive test suite.

Provides:
- db_session: async SQLite in-memory session with all tables created
- make_seller: factory for User + SellerProfile rows
- make_listing: factory for MarketplaceListing rows
- make_enquiry: factory for locked Enquiry rows
- auth_headers: Bearer header for a user id
- build_client: HTTPX AsyncClient over a FastAPI app with selected routers

Factories commit, because the unlock service owns its own transaction and
a rollback inside it must not discard fixture rows.
"""

import uuid
from datetime import datetime

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Import Base first, then models to register all tables
from manxhive.infra.database import Base

import manxhive.domain.models  # noqa: F401

from manxhive.domain.models import Enquiry, MarketplaceListing, SellerProfile, User
from manxhive.services.auth_service import create_access_token


# ---------------------------------------------------------------------------
# Database session fixture
# ---------------------------------------------------------------------------

@pytest.fixture
async def db_session():
    """Async SQLite in-memory session with all tables created.

    Creates a fresh engine + tables for each test, yields a session,
    then rolls back and tears down.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False,
    )

    async with session_factory() as session:
        yield session
        await session.rollback()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


# ---------------------------------------------------------------------------
# Seller factory
# ---------------------------------------------------------------------------

@pytest.fixture
def make_seller(db_session):
    """Factory that creates a User and its SellerProfile.

    Usage:
        user, profile = await make_seller(plan="premium", credits=3)
    """
    async def _factory(
        plan: str | None = "standard",
        credits: int = 0,
        free_leads_used: int = 0,
        free_leads_month: str | None = None,
        email: str | None = None,
        name: str = "Test Seller",
        stripe_customer_id: str | None = None,
    ) -> tuple[User, SellerProfile]:
        user_id = str(uuid.uuid4())
        user = User(
            id=user_id,
            email=email or f"seller-{user_id[:8]}@test.com",
            password_hash="not-a-real-hash",
            name=name,
            is_active=True,
        )
        db_session.add(user)
        await db_session.flush()

        profile = SellerProfile(
            id=user_id,
            plan=plan,
            credits=credits,
            free_leads_used=free_leads_used,
            free_leads_month=free_leads_month,
            stripe_customer_id=stripe_customer_id,
        )
        db_session.add(profile)
        await db_session.commit()
        return user, profile

    return _factory


# ---------------------------------------------------------------------------
# Listing factory
# ---------------------------------------------------------------------------

@pytest.fixture
def make_listing(db_session):
    """Factory that creates a MarketplaceListing owned by ``seller_id``."""
    async def _factory(
        seller_id: str,
        title: str = "Mountain bike, barely used",
        approved: bool = True,
    ) -> MarketplaceListing:
        listing = MarketplaceListing(
            id=str(uuid.uuid4()),
            seller_user_id=seller_id,
            title=title,
            approved=approved,
        )
        db_session.add(listing)
        await db_session.commit()
        return listing

    return _factory


# ---------------------------------------------------------------------------
# Enquiry factory
# ---------------------------------------------------------------------------

@pytest.fixture
def make_enquiry(db_session):
    """Factory that creates a locked Enquiry for ``seller_id``.

    Usage:
        enquiry = await make_enquiry(seller.id, listing_id=listing.id)
    """
    async def _factory(
        seller_id: str,
        listing_id: str | None = None,
        buyer_name: str = "Jane Buyer",
        buyer_email: str = "jane@buyer.test",
        buyer_phone: str | None = "+441624000000",
        message: str = "Is this still available?",
        unlocked: bool = False,
        created_at: datetime | None = None,
    ) -> Enquiry:
        enquiry = Enquiry(
            id=str(uuid.uuid4()),
            listing_id=listing_id,
            seller_user_id=seller_id,
            buyer_name=buyer_name,
            buyer_email=buyer_email,
            buyer_phone=buyer_phone,
            message=message,
            unlocked=unlocked,
            unlocked_at=datetime.now() if unlocked else None,
            unlocked_by=seller_id if unlocked else None,
            created_at=created_at or datetime.now(),
        )
        db_session.add(enquiry)
        await db_session.commit()
        return enquiry

    return _factory


# ---------------------------------------------------------------------------
# HTTP helpers
# ---------------------------------------------------------------------------

@pytest.fixture
def auth_headers():
    """Return a function building a Bearer Authorization header for a user id."""
    def _headers(user_id: str) -> dict:
        return {"Authorization": f"Bearer {create_access_token(user_id)}"}

    return _headers


@pytest.fixture
def build_client(db_session):
    """Build an HTTPX AsyncClient wired to a test FastAPI app.

    Uses a fresh FastAPI app with only the given routers so the production
    lifespan (init_db against the configured database) never runs.
    """
    def _build(*routers) -> AsyncClient:
        from fastapi import FastAPI
        from manxhive.infra.database import get_db

        test_app = FastAPI()
        for router in routers:
            test_app.include_router(router)

        async def _override_get_db():
            yield db_session

        test_app.dependency_overrides[get_db] = _override_get_db

        return AsyncClient(
            transport=ASGITransport(app=test_app),
            base_url="http://testserver",
        )

    return _build
