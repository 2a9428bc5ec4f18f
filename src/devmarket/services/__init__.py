"""Application services: use case orchestration."""

from devmarket.services.notification_service import NotificationService, OutboxRelay
from devmarket.services.payment_capture_service import PaymentCaptureService
from devmarket.services.payout_service import PayoutService
from devmarket.services.proposal_service import ProposalService
from devmarket.services.request_service import RequestService
from devmarket.services.selection_service import SelectionService
from devmarket.services.settlement_service import SettlementService
from devmarket.services.verification_service import VerificationService

__all__ = [
    "NotificationService",
    "OutboxRelay",
    "PaymentCaptureService",
    "PayoutService",
    "ProposalService",
    "RequestService",
    "SelectionService",
    "SettlementService",
    "VerificationService",
]
