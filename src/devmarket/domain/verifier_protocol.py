"""Automated Check Protocol.

Defines the interface that every level-0 automated product check implements.
This is a Protocol (structural subtyping) so concrete checks don't need to
inherit from a base class; they just need to match the shape.

The domain layer has ZERO imports from storage or any external service.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class ProductFile:
    """A file attached to a product listing."""

    name: str
    size: int
    content_preview: str = ""


@dataclass(frozen=True)
class ProductSnapshot:
    """Input to an automated check.

    Attributes:
        product_id: UUID of the product, as a string.
        name: Listing title.
        description: Listing description.
        files: Files delivered with the product.
        metadata: Free-form listing metadata (category, tags, version, ...).
    """

    product_id: str
    name: str
    description: str
    files: tuple[ProductFile, ...] = ()
    metadata: dict = field(default_factory=dict)


@dataclass(frozen=True)
class CheckResult:
    """Output from an automated check.

    Attributes:
        name: Short identifier of the check (e.g. "file_format").
        passed: Whether the product satisfies the check.
        message: Human-readable explanation.
        details: Extra structured information (offending files, counts).
    """

    name: str
    passed: bool
    message: str = ""
    details: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Serialize for storage in the verification report JSON column."""
        return {
            "name": self.name,
            "passed": self.passed,
            "message": self.message,
            "details": self.details,
        }


@runtime_checkable
class AutomatedCheck(Protocol):
    """Protocol that all automated checks must satisfy.

    Concrete implementations live in verifiers/level0.py.
    """

    name: str

    def run(self, product: ProductSnapshot) -> CheckResult:
        """Run the check against a product snapshot."""
        ...
