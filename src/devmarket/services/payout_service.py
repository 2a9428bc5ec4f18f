"""Payout Service: hands a finalized settlement to the funds-transfer provider.

Two providers:
    - SimulatedPayoutProvider: fake transfer ids, for development and tests.
    - HttpPayoutProvider: POSTs to the provider's transfer API with httpx,
      retrying transport errors and 5xx responses with exponential backoff.

Every transfer carries the idempotency key ``settlement-<id>``, so a retry of
the same settlement can never pay twice on the provider's side.

``dispatch`` does not raise on a provider failure. It marks the settlement
FAILED (payout amount untouched) and returns the outcome, so the caller's unit
of work still commits the FAILED state and the retry stays visible.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Protocol

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from devmarket.config import get_settings
from devmarket.domain.enums import NotificationType, SettlementStatus
from devmarket.domain.exceptions import (
    ConflictError,
    ExternalDependencyError,
    InvalidStateTransitionError,
    NotFoundError,
)
from devmarket.domain.state_machine import SettlementStateMachine, apply_event
from devmarket.infrastructure.database.repositories import SettlementRepository
from devmarket.logging_config import get_logger
from devmarket.services.notification_service import NotificationService

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from devmarket.config import Settings
    from devmarket.infrastructure.database.orm_models import Settlement

logger = get_logger(__name__)


def idempotency_key_for(settlement_id: uuid.UUID) -> str:
    return f"settlement-{settlement_id}"


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TransferReceipt:
    transfer_id: str


class PayoutProvider(Protocol):
    async def transfer(
        self,
        destination_account_ref: str,
        amount: int,
        currency: str,
        idempotency_key: str,
    ) -> TransferReceipt:
        """Move ``amount`` to the destination; raises ExternalDependencyError."""
        ...


class SimulatedPayoutProvider:
    """Generates fake transfer ids; repeated keys return the same id."""

    def __init__(self) -> None:
        self._transfers: dict[str, str] = {}

    async def transfer(
        self,
        destination_account_ref: str,
        amount: int,
        currency: str,
        idempotency_key: str,
    ) -> TransferReceipt:
        transfer_id = self._transfers.setdefault(idempotency_key, f"sim_{uuid.uuid4().hex[:24]}")
        logger.info(
            "payout.transfer_simulated",
            transfer_id=transfer_id,
            amount=amount,
            currency=currency,
            destination=destination_account_ref,
        )
        return TransferReceipt(transfer_id=transfer_id)


class _ServerError(Exception):
    def __init__(self, status_code: int) -> None:
        super().__init__(f"payout provider returned {status_code}")
        self.status_code = status_code


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, httpx.TransportError | _ServerError)


class HttpPayoutProvider:
    """Transfer API client.

    Expects ``POST {base_url}/transfers`` to answer with ``{"transfer_id": ...}``.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 10.0,
        max_attempts: int = 3,
        client: httpx.AsyncClient | None = None,
        backoff_multiplier: float = 0.5,
    ) -> None:
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)
        self._api_key = api_key
        self._max_attempts = max_attempts
        self._backoff_multiplier = backoff_multiplier

    async def transfer(
        self,
        destination_account_ref: str,
        amount: int,
        currency: str,
        idempotency_key: str,
    ) -> TransferReceipt:
        body = {
            "destination": destination_account_ref,
            "amount": amount,
            "currency": currency,
        }
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Idempotency-Key": idempotency_key,
        }
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._max_attempts),
                wait=wait_exponential(multiplier=self._backoff_multiplier, max=8),
                retry=retry_if_exception(_is_retryable),
                reraise=True,
            ):
                with attempt:
                    response = await self._client.post("/transfers", json=body, headers=headers)
                    if response.status_code >= 500:
                        raise _ServerError(response.status_code)
        except _ServerError as exc:
            raise ExternalDependencyError(str(exc), status_code=exc.status_code) from exc
        except httpx.TransportError as exc:
            raise ExternalDependencyError(f"payout provider unreachable: {exc}") from exc

        if response.status_code >= 400:
            raise ExternalDependencyError(
                f"payout provider rejected transfer: {response.text[:200]}",
                status_code=response.status_code,
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise ExternalDependencyError(
                "payout provider returned invalid JSON", status_code=response.status_code
            ) from exc
        transfer_id = payload.get("transfer_id") if isinstance(payload, dict) else None
        if not transfer_id:
            raise ExternalDependencyError("payout provider returned no transfer id")
        return TransferReceipt(transfer_id=str(transfer_id))

    async def aclose(self) -> None:
        await self._client.aclose()


def build_payout_provider(settings: Settings | None = None) -> PayoutProvider:
    settings = settings or get_settings()
    if settings.payout_provider == "http":
        return HttpPayoutProvider(
            base_url=settings.payout_api_url,
            api_key=settings.payout_api_key,
            timeout=settings.payout_timeout_seconds,
            max_attempts=settings.payout_max_attempts,
        )
    return SimulatedPayoutProvider()


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PayoutOutcome:
    settlement: Settlement
    succeeded: bool
    transfer_id: str | None = None
    error: str | None = None


class PayoutService:
    """Issues exactly one transfer per settlement payout attempt."""

    def __init__(self, session: AsyncSession, provider: PayoutProvider | None = None) -> None:
        self._session = session
        self._settlements = SettlementRepository(session)
        self._notifications = NotificationService(session)
        self._provider = provider or build_payout_provider()

    async def dispatch(self, settlement_id: uuid.UUID, destination_account_ref: str) -> PayoutOutcome:
        """Pay out a PENDING (or previously FAILED) settlement.

        Raises:
            NotFoundError: unknown settlement.
            ConflictError: "settlement not payable" (PROCESSING, PAID, or lost race).
        """
        settlement = await self._settlements.get(settlement_id)
        if settlement is None:
            raise NotFoundError("settlement", settlement_id)

        log = logger.bind(settlement_id=str(settlement_id), seller_id=settlement.seller_id)
        try:
            processing = apply_event(SettlementStateMachine, settlement.status, "start_payout")
        except InvalidStateTransitionError as err:
            raise ConflictError("settlement not payable") from err

        if not await self._settlements.compare_and_set(
            settlement_id,
            settlement.status,
            status=processing,
            updated_at=datetime.now(UTC),
        ):
            log.warning("payout.lost_race")
            raise ConflictError("settlement not payable")

        if settlement.payout_amount <= 0:
            log.info("payout.nothing_to_transfer")
            return await self._mark_paid(settlement_id, transfer_id=None)

        try:
            receipt = await self._provider.transfer(
                destination_account_ref,
                settlement.payout_amount,
                settlement.currency,
                idempotency_key_for(settlement_id),
            )
        except ExternalDependencyError as exc:
            failed = apply_event(SettlementStateMachine, processing, "mark_failed")
            await self._settlements.compare_and_set(
                settlement_id,
                processing,
                status=failed,
                failure_reason=exc.message,
                updated_at=datetime.now(UTC),
            )
            log.error("payout.failed", error=exc.message, status_code=exc.status_code)
            return PayoutOutcome(
                settlement=await self._reload(settlement_id),
                succeeded=False,
                error=exc.message,
            )

        return await self._mark_paid(settlement_id, transfer_id=receipt.transfer_id)

    async def _mark_paid(self, settlement_id: uuid.UUID, transfer_id: str | None) -> PayoutOutcome:
        now = datetime.now(UTC)
        paid = apply_event(SettlementStateMachine, SettlementStatus.PROCESSING.value, "mark_paid")
        await self._settlements.compare_and_set(
            settlement_id,
            SettlementStatus.PROCESSING.value,
            status=paid,
            payout_date=now,
            payout_reference=transfer_id,
            failure_reason=None,
            updated_at=now,
        )
        settlement = await self._reload(settlement_id)
        await self._notifications.notify(
            NotificationType.SETTLEMENT_PAID,
            [settlement.seller_id],
            {
                "settlement_id": settlement_id,
                "payout_amount": settlement.payout_amount,
                "currency": settlement.currency,
                "transfer_id": transfer_id,
            },
        )
        logger.info(
            "payout.paid",
            settlement_id=str(settlement_id),
            payout_amount=settlement.payout_amount,
            transfer_id=transfer_id,
        )
        return PayoutOutcome(settlement=settlement, succeeded=True, transfer_id=transfer_id)

    async def _reload(self, settlement_id: uuid.UUID) -> Settlement:
        settlement = await self._settlements.reload(settlement_id)
        if settlement is None:
            raise NotFoundError("settlement", settlement_id)
        return settlement
