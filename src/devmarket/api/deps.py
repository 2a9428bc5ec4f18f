"""FastAPI dependency injection providers.

These are used with Depends() in route handlers to inject database sessions,
the authenticated caller and the payout provider.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import Depends, Header

from devmarket.domain import access
from devmarket.domain.access import Caller
from devmarket.domain.enums import Role
from devmarket.domain.exceptions import ForbiddenError
from devmarket.infrastructure.database.engine import get_async_session
from devmarket.services.payout_service import (
    HttpPayoutProvider,
    PayoutProvider,
    build_payout_provider,
)

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from sqlalchemy.ext.asyncio import AsyncSession


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session for a request."""
    async for session in get_async_session():
        yield session


def get_caller(
    x_caller_id: str | None = Header(default=None),
    x_caller_role: str | None = Header(default=None),
) -> Caller:
    """Identity verified by the upstream auth layer and forwarded as headers."""
    if not x_caller_id or not x_caller_role:
        raise ForbiddenError("missing caller identity", code="UNAUTHENTICATED")
    try:
        role = Role(x_caller_role.upper())
    except ValueError as err:
        raise ForbiddenError(f"unknown role: {x_caller_role}", code="UNAUTHENTICATED") from err
    return Caller(caller_id=x_caller_id, role=role)


def require_admin(caller: Caller = Depends(get_caller)) -> Caller:
    access.require(access.is_admin(caller), "admin only")
    return caller


_payout_provider: PayoutProvider | None = None


def get_payout_provider() -> PayoutProvider:
    """Provider shared across requests so its HTTP connection pool is reused."""
    global _payout_provider
    if _payout_provider is None:
        _payout_provider = build_payout_provider()
    return _payout_provider


async def close_payout_provider() -> None:
    """Release the provider's HTTP client. Called during app shutdown."""
    global _payout_provider
    if isinstance(_payout_provider, HttpPayoutProvider):
        await _payout_provider.aclose()
    _payout_provider = None
