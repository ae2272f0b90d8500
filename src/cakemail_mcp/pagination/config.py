"""Pagination configuration registry for Cakemail API resources.

Most Cakemail collections are paged with ``page``/``per_page``; the log
endpoints use an opaque continuation cursor instead. Resources that are
not registered fall back to offset paging with 50 items per page.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional


class PaginationStrategy(str, Enum):
    """How a resource addresses its pages."""

    OFFSET = "offset"
    CURSOR = "cursor"


@dataclass(frozen=True)
class PaginationConfig:
    """Paging parameters of one resource."""

    strategy: PaginationStrategy = PaginationStrategy.OFFSET
    default_limit: int = 50
    max_limit: int = 100
    page_param: str = "page"
    size_param: str = "per_page"
    cursor_param: str = "cursor"


DEFAULT_CONFIG = PaginationConfig()


def _offset(default_limit: int = 50, max_limit: int = 100) -> PaginationConfig:
    return PaginationConfig(
        strategy=PaginationStrategy.OFFSET,
        default_limit=default_limit,
        max_limit=max_limit,
    )


def _cursor(default_limit: int = 50, max_limit: int = 100) -> PaginationConfig:
    return PaginationConfig(
        strategy=PaginationStrategy.CURSOR,
        default_limit=default_limit,
        max_limit=max_limit,
    )


_BUILTIN_CONFIGS: Dict[str, PaginationConfig] = {
    "lists": _offset(),
    "contacts": _offset(),
    "campaigns": _offset(default_limit=10, max_limit=50),
    "templates": _offset(),
    "senders": _offset(),
    "sub_accounts": _offset(),
    "logs": _cursor(),
    "campaign_logs": _cursor(),
    "email_logs": _offset(),
    "email_stats": _offset(),
    "actions": _offset(),
    "workflows": _offset(),
    "campaign_reports": _offset(),
    "exports": _offset(),
}


class PaginationConfigRegistry:
    """Registry of per-resource pagination configuration."""

    _configs: Dict[str, PaginationConfig] = dict(_BUILTIN_CONFIGS)

    @classmethod
    def get_config(cls, resource: str) -> PaginationConfig:
        """Return the configuration of ``resource`` or the offset default."""
        return cls._configs.get(resource, DEFAULT_CONFIG)

    @classmethod
    def register(cls, resource: str, config: PaginationConfig) -> None:
        cls._configs[resource] = config

    @classmethod
    def has_config(cls, resource: str) -> bool:
        return resource in cls._configs

    @classmethod
    def remove(cls, resource: str) -> Optional[PaginationConfig]:
        return cls._configs.pop(resource, None)

    @classmethod
    def all_configs(cls) -> Dict[str, PaginationConfig]:
        return dict(cls._configs)

    @classmethod
    def reset(cls) -> None:
        """Restore the built-in table."""
        cls._configs = dict(_BUILTIN_CONFIGS)
