from __future__ import annotations

from pydantic import BaseModel, Field


class PaginationParams(BaseModel):
    """Common pagination query parameters."""

    page: int = Field(default=1, ge=1)
    per_page: int = Field(default=20, ge=1, le=100)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.per_page


class PaginationMeta(BaseModel):
    """Metadata describing a paginated response."""

    page: int
    per_page: int
    total: int
    has_more: bool
