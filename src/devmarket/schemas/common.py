"""Shared schema pieces: pagination envelope, errors, health."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Generic, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


@dataclass(frozen=True)
class Page(Generic[T]):
    """One page of a listing as returned by the services."""

    items: list[T]
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


class PageResponse(BaseModel, Generic[T]):
    """Pagination envelope for list endpoints."""

    items: list[T]
    page: int
    limit: int
    total: int
    total_pages: int


class ErrorResponse(BaseModel):
    """Body of every non-2xx response produced by the error middleware."""

    error: str = Field(..., description="Stable machine-readable code")
    message: str


class HealthResponse(BaseModel):
    """Response for the health check endpoint."""

    status: str = Field(..., description="ok or degraded")
    version: str
    database: str
    redis: str
