"""Uniform pagination over offset- and cursor-paged Cakemail resources."""

from .config import (
    PaginationConfig,
    PaginationConfigRegistry,
    PaginationStrategy,
)
from .iterator import IteratorOptions, PaginatedIterator, PaginationManager
from .strategies import (
    OffsetCursor,
    PageResult,
    TokenCursor,
    extract_items,
)

__all__ = [
    "PaginationStrategy",
    "PaginationConfig",
    "PaginationConfigRegistry",
    "OffsetCursor",
    "TokenCursor",
    "PageResult",
    "extract_items",
    "PaginationManager",
    "PaginatedIterator",
    "IteratorOptions",
]
