"""SQLAlchemy 2.0 ORM models for the development marketplace.

Tables:
    1. products              Catalog reference rows (owner + verification level).
    2. development_requests  Buyer-posted requests for custom work.
    3. proposals             Competing seller bids against a request.
    4. escrows               Ledger entry created when a proposal is accepted.
    5. verifications         Product verification jobs and their fee split.
    6. orders                Paid product orders reported by payment capture.
    7. settlements           Per-seller, per-period payout aggregates.
    8. settlement_items      Per-product breakdown of a settlement.
    9. outbox_events         Notifications waiting for the relay.

Design decisions:
    - UUIDs as primary keys; user ids are opaque strings from the auth layer.
    - Money is integer minor currency units (BigInteger), never floats.
    - CHECK constraints on every status column mirror the domain enums.
    - Partial unique indexes carry the "one live proposal per seller per request"
      and "one accepted proposal per request" invariants down to the store, so
      a race that slips past a service check still fails at flush time.
    - Timestamps are always timezone-aware UTC, including on SQLite.
"""

from __future__ import annotations

import enum
import uuid
from datetime import UTC, datetime
from decimal import Decimal  # noqa: TC003 - needed at runtime by SQLAlchemy Mapped[]

from sqlalchemy import (
    JSON,
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from devmarket.domain.enums import (
    EscrowStatus,
    OrderStatus,
    ProposalStatus,
    RequestStatus,
    SettlementStatus,
    VerificationStatus,
)

JSONType = JSON().with_variant(JSONB(), "postgresql")


class UTCDateTime(TypeDecorator):
    """DateTime that always round-trips as an aware UTC datetime.

    SQLite drops tzinfo on storage; naive values read back are tagged UTC.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):  # noqa: ANN001
        if value is None:
            return value
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value, dialect):  # noqa: ANN001
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value


def utcnow() -> datetime:
    return datetime.now(UTC)


def _status_check(enum_cls: type[enum.StrEnum], name: str) -> CheckConstraint:
    values = ", ".join(f"'{member.value}'" for member in enum_cls)
    return CheckConstraint(f"status IN ({values})", name=name)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# ---------------------------------------------------------------------------
# 1. products
# ---------------------------------------------------------------------------
class Product(Base):
    """Catalog reference row. The catalog itself is managed elsewhere."""

    __tablename__ = "products"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    seller_id: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    category: Mapped[str | None] = mapped_column(String(40), nullable=True)
    files: Mapped[list] = mapped_column(
        JSONType,
        nullable=False,
        default=list,
        comment='Delivered files, e.g. [{"name": "bot.zip", "size": 1024}]',
    )
    verification_level: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Highest approved verification level (0 = none or automated only)",
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint("verification_level BETWEEN 0 AND 3", name="ck_product_level"),
        Index("idx_product_seller", "seller_id"),
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} seller={self.seller_id} level={self.verification_level}>"


# ---------------------------------------------------------------------------
# 2. development_requests
# ---------------------------------------------------------------------------
class DevelopmentRequest(Base):
    """A buyer's posted request for custom development work."""

    __tablename__ = "development_requests"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    buyer_id: Mapped[str] = mapped_column(String(64), nullable=False)

    # --- Buyer-editable (locked once a proposal exists) ---
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(40), nullable=False)
    budget_min: Mapped[int] = mapped_column(BigInteger, nullable=False)
    budget_max: Mapped[int] = mapped_column(BigInteger, nullable=False)
    timeline: Mapped[str] = mapped_column(String(100), nullable=False)
    requirements: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    attachments: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)

    # --- Status ---
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=RequestStatus.OPEN.value,
        comment="Guarded by RequestStateMachine",
    )
    selected_proposal_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        nullable=True,
        default=None,
        comment="Set only while status is IN_PROGRESS or COMPLETED",
    )

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        _status_check(RequestStatus, "ck_request_valid_status"),
        CheckConstraint("budget_min > 0 AND budget_min <= budget_max", name="ck_request_budget"),
        CheckConstraint(
            "(selected_proposal_id IS NULL AND status IN ('OPEN', 'CANCELLED')) "
            "OR (selected_proposal_id IS NOT NULL "
            "AND status IN ('IN_PROGRESS', 'COMPLETED'))",
            name="ck_request_selection",
        ),
        Index("idx_request_status", "status"),
        Index("idx_request_buyer", "buyer_id"),
        Index("idx_request_category", "category"),
        Index("idx_request_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<DevelopmentRequest id={self.id} status={self.status}>"


# ---------------------------------------------------------------------------
# 3. proposals
# ---------------------------------------------------------------------------
class Proposal(Base):
    """A seller's bid against a development request."""

    __tablename__ = "proposals"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    request_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("development_requests.id", ondelete="CASCADE"),
        nullable=False,
    )
    seller_id: Mapped[str] = mapped_column(String(64), nullable=False)
    price: Mapped[int] = mapped_column(BigInteger, nullable=False)
    timeline: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ProposalStatus.PENDING.value
    )
    selected_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True, default=None)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        _status_check(ProposalStatus, "ck_proposal_valid_status"),
        CheckConstraint("price > 0", name="ck_proposal_positive_price"),
        Index(
            "uq_proposal_live_seller",
            "request_id",
            "seller_id",
            unique=True,
            postgresql_where=text("status <> 'WITHDRAWN'"),
            sqlite_where=text("status <> 'WITHDRAWN'"),
        ),
        Index(
            "uq_proposal_accepted",
            "request_id",
            unique=True,
            postgresql_where=text("status = 'ACCEPTED'"),
            sqlite_where=text("status = 'ACCEPTED'"),
        ),
        Index("idx_proposal_request", "request_id"),
        Index("idx_proposal_seller", "seller_id"),
    )

    def __repr__(self) -> str:
        return f"<Proposal id={self.id} request={self.request_id} status={self.status}>"


# ---------------------------------------------------------------------------
# 4. escrows
# ---------------------------------------------------------------------------
class Escrow(Base):
    """Funds held against an accepted proposal. Owned by neither party."""

    __tablename__ = "escrows"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    request_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("development_requests.id", ondelete="CASCADE"), nullable=False
    )
    proposal_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("proposals.id", ondelete="CASCADE"), nullable=False
    )
    buyer_id: Mapped[str] = mapped_column(String(64), nullable=False)
    seller_id: Mapped[str] = mapped_column(String(64), nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=EscrowStatus.PENDING.value)
    payment_reference: Mapped[str | None] = mapped_column(String(128), nullable=True, default=None)
    funded_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True, default=None)
    closed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True, default=None)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        _status_check(EscrowStatus, "ck_escrow_valid_status"),
        CheckConstraint("amount > 0", name="ck_escrow_positive_amount"),
        UniqueConstraint("request_id", name="uq_escrow_request"),
        Index("idx_escrow_buyer", "buyer_id"),
        Index("idx_escrow_seller", "seller_id"),
    )

    def __repr__(self) -> str:
        return f"<Escrow id={self.id} status={self.status} amount={self.amount}>"


# ---------------------------------------------------------------------------
# 5. verifications
# ---------------------------------------------------------------------------
class Verification(Base):
    """A paid (or automated, level 0) review of a product."""

    __tablename__ = "verifications"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    product_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("products.id", ondelete="CASCADE"), nullable=False
    )
    seller_id: Mapped[str] = mapped_column(
        String(64), nullable=False, comment="Product owner when the verification was requested"
    )
    verifier_id: Mapped[str | None] = mapped_column(String(64), nullable=True, default=None)
    level: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=VerificationStatus.PENDING.value
    )

    # --- Fee split (fee = platform_share + verifier_share) ---
    fee: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    platform_share: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    verifier_share: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    # --- Outcome ---
    score: Mapped[int | None] = mapped_column(Integer, nullable=True, default=None)
    report: Mapped[dict | None] = mapped_column(
        JSONType,
        nullable=True,
        default=None,
        comment="Automated check results and the manual review",
    )

    requested_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    assigned_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True, default=None)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True, default=None)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        _status_check(VerificationStatus, "ck_verification_valid_status"),
        CheckConstraint("level BETWEEN 0 AND 3", name="ck_verification_level"),
        CheckConstraint("fee = platform_share + verifier_share", name="ck_verification_split"),
        CheckConstraint("score IS NULL OR (score BETWEEN 0 AND 100)", name="ck_verification_score"),
        Index("idx_verification_status", "status"),
        Index("idx_verification_product", "product_id"),
        Index("idx_verification_verifier_completed", "verifier_id", "completed_at"),
    )

    def __repr__(self) -> str:
        return f"<Verification id={self.id} level={self.level} status={self.status}>"


# ---------------------------------------------------------------------------
# 6. orders
# ---------------------------------------------------------------------------
class Order(Base):
    """A product sale. The platform fee is fixed when payment is captured."""

    __tablename__ = "orders"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    product_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("products.id", ondelete="RESTRICT"), nullable=False
    )
    seller_id: Mapped[str] = mapped_column(String(64), nullable=False)
    buyer_id: Mapped[str] = mapped_column(String(64), nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    platform_fee_rate: Mapped[Decimal] = mapped_column(Numeric(5, 4), nullable=False)
    platform_fee: Mapped[int] = mapped_column(BigInteger, nullable=False)
    seller_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=OrderStatus.PENDING.value)
    payment_reference: Mapped[str | None] = mapped_column(String(128), nullable=True, unique=True)
    paid_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True, default=None)
    refunded_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True, default=None)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    __table_args__ = (
        _status_check(OrderStatus, "ck_order_valid_status"),
        CheckConstraint("amount > 0", name="ck_order_positive_amount"),
        CheckConstraint("seller_amount = amount - platform_fee", name="ck_order_split"),
        Index("idx_order_seller_status_paid", "seller_id", "status", "paid_at"),
    )

    def __repr__(self) -> str:
        return f"<Order id={self.id} status={self.status} amount={self.amount}>"


# ---------------------------------------------------------------------------
# 7. settlements
# ---------------------------------------------------------------------------
class Settlement(Base):
    """One payable figure per seller per half-open period [start, end)."""

    __tablename__ = "settlements"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    seller_id: Mapped[str] = mapped_column(String(64), nullable=False)
    period_start: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    period_end: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    total_amount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    platform_fee: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    verification_earnings: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    payout_amount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SettlementStatus.PENDING.value
    )
    payout_date: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True, default=None)
    payout_reference: Mapped[str | None] = mapped_column(String(128), nullable=True, default=None)
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True, default=None)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    items: Mapped[list[SettlementItem]] = relationship(
        "SettlementItem",
        back_populates="settlement",
        cascade="all, delete-orphan",
        order_by="SettlementItem.product_id",
        lazy="selectin",
    )

    __table_args__ = (
        _status_check(SettlementStatus, "ck_settlement_valid_status"),
        CheckConstraint("period_start < period_end", name="ck_settlement_period"),
        CheckConstraint(
            "payout_amount = total_amount - platform_fee + verification_earnings",
            name="ck_settlement_reconciles",
        ),
        UniqueConstraint("seller_id", "period_start", "period_end", name="uq_settlement_period"),
        Index("idx_settlement_seller_period", "seller_id", "period_start"),
        Index("idx_settlement_status", "status"),
    )

    def __repr__(self) -> str:
        return (
            f"<Settlement id={self.id} seller={self.seller_id} "
            f"payout={self.payout_amount} status={self.status}>"
        )


# ---------------------------------------------------------------------------
# 8. settlement_items
# ---------------------------------------------------------------------------
class SettlementItem(Base):
    """Per-product breakdown row of a settlement."""

    __tablename__ = "settlement_items"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    settlement_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("settlements.id", ondelete="CASCADE"), nullable=False
    )
    product_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    order_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    platform_fee: Mapped[int] = mapped_column(BigInteger, nullable=False)
    payout_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)

    settlement: Mapped[Settlement] = relationship("Settlement", back_populates="items")

    __table_args__ = (
        UniqueConstraint("settlement_id", "product_id", name="uq_settlement_item_product"),
    )


# ---------------------------------------------------------------------------
# 9. outbox_events
# ---------------------------------------------------------------------------
class OutboxEvent(Base):
    """Notification recorded in the same unit of work as its transition.

    The relay delivers it later; delivery failures only bump ``attempts``.
    """

    __tablename__ = "outbox_events"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    event_type: Mapped[str] = mapped_column(String(40), nullable=False)
    recipients: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    payload: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True, default=None)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    delivered_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True, default=None)

    __table_args__ = (
        Index("idx_outbox_pending", "delivered_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<OutboxEvent id={self.id} type={self.event_type} attempts={self.attempts}>"
