"""Shared test fixtures for the DevMarket Engine test suite.

Provides:
    - A file-backed SQLite database per test (two sessions can race on it)
    - Caller identities for each role
    - Factory fixtures for products, requests and proposals
    - Async test support via pytest-asyncio (asyncio_mode = auto)
"""

from __future__ import annotations

import pytest

from devmarket.domain.access import Caller
from devmarket.domain.enums import RequestCategory, Role
from devmarket.infrastructure.database import (
    Product,
    ProductRepository,
    build_engine,
    build_session_factory,
    create_tables,
)
from devmarket.schemas.marketplace import CreateProposalInput, CreateRequestInput
from devmarket.services.proposal_service import ProposalService
from devmarket.services.request_service import RequestService

# ---------------------------------------------------------------------------
# Database Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'devmarket.db'}")
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Caller Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def buyer() -> Caller:
    return Caller("buyer-1", Role.BUYER)


@pytest.fixture
def seller() -> Caller:
    return Caller("seller-1", Role.SELLER)


@pytest.fixture
def rival_seller() -> Caller:
    return Caller("seller-2", Role.SELLER)


@pytest.fixture
def verifier() -> Caller:
    return Caller("verifier-1", Role.VERIFIER)


@pytest.fixture
def admin() -> Caller:
    return Caller("admin-1", Role.ADMIN)


# ---------------------------------------------------------------------------
# Data Factories
# ---------------------------------------------------------------------------


@pytest.fixture
def make_product(session, seller):
    """Insert a catalog product; defaults pass every level-0 check."""

    async def _make(owner: Caller | None = None, **overrides) -> Product:
        data = {
            "seller_id": (owner or seller).caller_id,
            "name": "Invoice OCR pipeline",
            "description": (
                "A complete automation that extracts invoice fields with OCR and "
                "pushes them into the accounting system."
            ),
            "category": "ai_agent",
            "files": [{"name": "pipeline.zip", "size": 1024}],
        }
        data.update(overrides)
        return await ProductRepository(session).add(Product(**data))

    return _make


@pytest.fixture
def make_request(session, buyer):
    """Post a request with budget 100,000 - 300,000 unless overridden."""

    async def _make(caller: Caller | None = None, **overrides):
        data = {
            "title": "Slack approval workflow",
            "description": "Route purchase approvals through Slack.",
            "category": RequestCategory.N8N,
            "budget_min": 100_000,
            "budget_max": 300_000,
            "timeline": "2 weeks",
        }
        data.update(overrides)
        return await RequestService(session).create(caller or buyer, CreateRequestInput(**data))

    return _make


@pytest.fixture
def make_proposal(session, seller):
    async def _make(request_id, caller: Caller | None = None, price: int = 200_000):
        return await ProposalService(session).create(
            caller or seller,
            request_id,
            CreateProposalInput(price=price, timeline="10 days", description="Done this before."),
        )

    return _make
