"""Offset and cursor paging strategies.

Each strategy is a pair of pure functions: one turns a cursor into query
parameters, the other turns a raw response into a :class:`PageResult`
carrying the cursor of the following page (or ``None`` when done).
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Generic, List, NamedTuple, Optional, TypeVar, Union

from .config import PaginationConfig, PaginationStrategy

T = TypeVar("T")


@dataclass(frozen=True)
class OffsetCursor:
    page: int = 1
    per_page: int = 50


@dataclass(frozen=True)
class TokenCursor:
    cursor: Optional[str] = None
    limit: int = 50


PaginationCursor = Union[OffsetCursor, TokenCursor]


@dataclass
class PageResult(Generic[T]):
    """One normalized page."""

    items: List[T] = field(default_factory=list)
    has_more: bool = False
    next_cursor: Optional[PaginationCursor] = None
    total_count: Optional[int] = None


def extract_items(response: Any) -> List[Any]:
    """Pull the item list out of any of the accepted response shapes.

    Accepted: ``{"data": [...]}``, ``{"data": {"data": [...]}}`` or a bare
    list. Anything else yields an empty page.
    """
    if isinstance(response, list):
        return response
    if not isinstance(response, dict):
        return []
    data = response.get("data")
    if isinstance(data, list):
        return data
    if isinstance(data, dict) and isinstance(data.get("data"), list):
        return data["data"]
    return []


def _pagination_meta(response: Any) -> Dict[str, Any]:
    if not isinstance(response, dict):
        return {}
    meta = response.get("pagination")
    if isinstance(meta, dict):
        return meta
    data = response.get("data")
    if isinstance(data, dict) and isinstance(data.get("pagination"), dict):
        return data["pagination"]
    return {}


def _total_count(meta: Dict[str, Any]) -> Optional[int]:
    for key in ("total_count", "count"):
        value = meta.get(key)
        if isinstance(value, int):
            return value
    return None


def clamp_page_size(config: PaginationConfig, page_size: Optional[int]) -> int:
    size = page_size if page_size else config.default_limit
    return max(1, min(size, config.max_limit))


def initial_cursor(config: PaginationConfig, page_size: Optional[int] = None) -> PaginationCursor:
    size = clamp_page_size(config, page_size)
    if config.strategy is PaginationStrategy.CURSOR:
        return TokenCursor(cursor=None, limit=size)
    return OffsetCursor(page=1, per_page=size)


# Offset


def build_offset_params(config: PaginationConfig, cursor: OffsetCursor) -> Dict[str, Any]:
    return {config.page_param: cursor.page, config.size_param: cursor.per_page}


def parse_offset_page(
    config: PaginationConfig, cursor: OffsetCursor, response: Any
) -> PageResult:
    items = extract_items(response)
    # a short page is the last one
    has_more = len(items) >= cursor.per_page
    return PageResult(
        items=items,
        has_more=has_more,
        next_cursor=OffsetCursor(cursor.page + 1, cursor.per_page) if has_more else None,
        total_count=_total_count(_pagination_meta(response)),
    )


# Cursor


def build_cursor_params(config: PaginationConfig, cursor: TokenCursor) -> Dict[str, Any]:
    params: Dict[str, Any] = {config.size_param: cursor.limit}
    if cursor.cursor:
        params[config.cursor_param] = cursor.cursor
    return params


def parse_cursor_page(
    config: PaginationConfig, cursor: TokenCursor, response: Any
) -> PageResult:
    items = extract_items(response)
    meta = _pagination_meta(response)

    token = meta.get("next_cursor") or meta.get(config.cursor_param)
    if token == cursor.cursor:
        token = None
    has_more = bool(token) and meta.get("has_more") is not False

    return PageResult(
        items=items,
        has_more=has_more,
        next_cursor=TokenCursor(str(token), cursor.limit) if has_more else None,
        total_count=_total_count(meta),
    )


class Strategy(NamedTuple):
    build_params: Callable[[PaginationConfig, Any], Dict[str, Any]]
    parse_page: Callable[[PaginationConfig, Any, Any], PageResult]


STRATEGIES: Dict[PaginationStrategy, Strategy] = {
    PaginationStrategy.OFFSET: Strategy(build_offset_params, parse_offset_page),
    PaginationStrategy.CURSOR: Strategy(build_cursor_params, parse_cursor_page),
}


def get_strategy(strategy: PaginationStrategy) -> Strategy:
    return STRATEGIES[strategy]
