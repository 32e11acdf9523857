# File: sparkle_api/schemas/common.py

from typing import Any, Dict, Generic, List, Literal, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class PageMeta(BaseModel):
    total: int
    page: int
    limit: int
    total_pages: int
    has_next_page: bool
    has_prev_page: bool


class PaginatedResult(BaseModel, Generic[T]):
    data: List[T]
    meta: PageMeta


class HealthStatus(BaseModel):
    status: Literal["healthy", "unhealthy"]
    latency: float
    details: Dict[str, Any]
