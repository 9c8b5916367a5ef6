from __future__ import annotations

from collections.abc import Sequence
from typing import TypeVar

from ..domain.pagination import PaginationMeta, PaginationParams

T = TypeVar("T")


def build_meta(params: PaginationParams, total: int) -> PaginationMeta:
    return PaginationMeta(
        page=params.page,
        per_page=params.per_page,
        total=total,
        has_more=params.offset + params.per_page < total,
    )


def paginate_sequence(
    items: Sequence[T],
    params: PaginationParams,
) -> tuple[list[T], int]:
    """Slice a sequence according to the provided pagination params."""

    start = params.offset
    end = start + params.per_page
    return list(items[start:end]), len(items)
