"""Database infrastructure: engine, ORM models, and repositories."""

from devmarket.infrastructure.database.engine import (
    build_engine,
    build_session_factory,
    close_db,
    create_tables,
    get_async_session,
    get_session_factory,
    init_db,
)
from devmarket.infrastructure.database.orm_models import (
    Base,
    DevelopmentRequest,
    Escrow,
    Order,
    OutboxEvent,
    Product,
    Proposal,
    Settlement,
    SettlementItem,
    Verification,
)
from devmarket.infrastructure.database.repositories import (
    EscrowRepository,
    OrderRepository,
    OutboxRepository,
    ProductRepository,
    ProposalRepository,
    RequestRepository,
    SettlementRepository,
    VerificationRepository,
)

__all__ = [
    "Base",
    "DevelopmentRequest",
    "Escrow",
    "Order",
    "OutboxEvent",
    "Product",
    "Proposal",
    "Settlement",
    "SettlementItem",
    "Verification",
    "EscrowRepository",
    "OrderRepository",
    "OutboxRepository",
    "ProductRepository",
    "ProposalRepository",
    "RequestRepository",
    "SettlementRepository",
    "VerificationRepository",
    "build_engine",
    "build_session_factory",
    "close_db",
    "create_tables",
    "get_async_session",
    "get_session_factory",
    "init_db",
]
