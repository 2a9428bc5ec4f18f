"""Tests for domain enumerations."""

from __future__ import annotations

from devmarket.domain.enums import (
    EscrowStatus,
    NotificationType,
    ProposalStatus,
    RequestCategory,
    RequestStatus,
    SettlementStatus,
    VerificationStatus,
)


class TestRequestStatus:
    def test_all_statuses_exist(self) -> None:
        assert {s.value for s in RequestStatus} == {"OPEN", "IN_PROGRESS", "COMPLETED", "CANCELLED"}

    def test_status_is_str_enum(self) -> None:
        assert isinstance(RequestStatus.OPEN, str)
        assert RequestStatus.OPEN == "OPEN"


class TestProposalAndEscrowStatus:
    def test_proposal_statuses(self) -> None:
        assert {s.value for s in ProposalStatus} == {"PENDING", "ACCEPTED", "REJECTED", "WITHDRAWN"}

    def test_escrow_statuses(self) -> None:
        assert {s.value for s in EscrowStatus} == {"PENDING", "FUNDED", "RELEASED", "REFUNDED"}


class TestVerificationStatus:
    def test_all_statuses_exist(self) -> None:
        expected = {
            "PENDING", "ASSIGNED", "IN_PROGRESS", "COMPLETED",
            "APPROVED", "REJECTED", "CANCELLED",
        }
        assert {s.value for s in VerificationStatus} == expected

    def test_active_statuses_block_new_requests(self) -> None:
        active = set(VerificationStatus.active())
        assert VerificationStatus.PENDING in active
        assert VerificationStatus.APPROVED not in active
        assert VerificationStatus.CANCELLED not in active

    def test_earning_statuses(self) -> None:
        assert set(VerificationStatus.earning()) == {VerificationStatus.APPROVED, VerificationStatus.COMPLETED}


class TestMisc:
    def test_settlement_statuses(self) -> None:
        assert {s.value for s in SettlementStatus} == {"PENDING", "PROCESSING", "PAID", "FAILED"}

    def test_categories_are_lowercase(self) -> None:
        assert RequestCategory.AI_AGENT == "ai_agent"
        assert all(c.value == c.value.lower() for c in RequestCategory)

    def test_notification_types(self) -> None:
        assert len(NotificationType) == 6
