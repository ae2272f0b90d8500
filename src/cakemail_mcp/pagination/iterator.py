"""Page fetching and lazy iteration over paginated Cakemail resources."""

import inspect
import logging
from dataclasses import dataclass
from typing import (
    Any,
    AsyncIterator,
    Awaitable,
    Callable,
    Dict,
    Generic,
    List,
    Optional,
    TypeVar,
)

from ..exceptions import CakemailError
from .config import PaginationConfig, PaginationConfigRegistry, PaginationStrategy
from .strategies import (
    OffsetCursor,
    PageResult,
    PaginationCursor,
    TokenCursor,
    clamp_page_size,
    get_strategy,
    initial_cursor,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

PageFetcher = Callable[[Dict[str, Any]], Awaitable[Any]]
ErrorHook = Callable[[Exception, int], Any]


@dataclass
class IteratorOptions:
    """Options controlling a :class:`PaginatedIterator`.

    :param page_size: Items requested per page, clamped to the resource limit
    :param max_results: Stop after this many items
    :param max_retries: Retries of a failed page before the error propagates
    :param on_error: Called with ``(error, attempt)`` for every failed page
                     fetch; may be a coroutine function
    :param validate_response: Predicate a raw page response must satisfy
    """

    page_size: Optional[int] = None
    max_results: Optional[int] = None
    max_retries: int = 3
    on_error: Optional[ErrorHook] = None
    validate_response: Optional[Callable[[Any], bool]] = None


class PaginationManager:
    """Build parameters for and normalize pages of one resource."""

    def __init__(self, resource: str, config: Optional[PaginationConfig] = None):
        self.resource = resource
        self.config = config or PaginationConfigRegistry.get_config(resource)
        self._strategy = get_strategy(self.config.strategy)

    def cursor_from_options(self, options: Optional[Dict[str, Any]] = None) -> PaginationCursor:
        """Translate caller options (``page``, ``per_page``, ``cursor``,
        ``limit``) into a cursor for this resource's strategy."""
        options = options or {}
        size = clamp_page_size(
            self.config, options.get("per_page") or options.get("limit")
        )
        if self.config.strategy is PaginationStrategy.CURSOR:
            return TokenCursor(cursor=options.get("cursor"), limit=size)
        return OffsetCursor(page=max(1, int(options.get("page") or 1)), per_page=size)

    def build_query_params(
        self,
        options: Optional[Dict[str, Any]] = None,
        cursor: Optional[PaginationCursor] = None,
    ) -> Dict[str, Any]:
        if cursor is None:
            cursor = self.cursor_from_options(options)
        return self._strategy.build_params(self.config, cursor)

    def parse_response(self, response: Any, cursor: PaginationCursor) -> PageResult:
        return self._strategy.parse_page(self.config, cursor, response)

    async def fetch_page(
        self, fetch: PageFetcher, options: Optional[Dict[str, Any]] = None
    ) -> PageResult:
        """Fetch and normalize a single page.

        :param fetch: Coroutine function taking query parameters and
                      returning the raw API response
        :param options: Page addressing options
        :return: Normalized page
        """
        cursor = self.cursor_from_options(options)
        response = await fetch(self.build_query_params(cursor=cursor))
        return self.parse_response(response, cursor)


class PaginatedIterator(Generic[T]):
    """Lazy, restartable sequence of items across pages.

    Pages are requested one at a time and only as items are consumed.
    Iterating again starts over from the first page.
    """

    def __init__(
        self,
        manager: PaginationManager,
        fetch: PageFetcher,
        options: Optional[IteratorOptions] = None,
    ):
        self.manager = manager
        self.fetch = fetch
        self.options = options or IteratorOptions()

    def __aiter__(self) -> AsyncIterator[T]:
        return self._items()

    async def _items(self) -> AsyncIterator[T]:
        async for batch in self.batches():
            for item in batch:
                yield item

    async def batches(self) -> AsyncIterator[List[T]]:
        """Yield whole pages as lists."""
        cursor: Optional[PaginationCursor] = initial_cursor(
            self.manager.config, self.options.page_size
        )
        max_results = self.options.max_results
        yielded = 0
        page_number = 0

        while cursor is not None:
            page = await self._fetch_with_retries(cursor)
            page_number += 1
            items = page.items
            if max_results is not None:
                items = items[: max(0, max_results - yielded)]

            if items:
                yield items
                yielded += len(items)

            if max_results is not None and yielded >= max_results:
                logger.debug(
                    "%s: reached max_results=%d after %d page(s)",
                    self.manager.resource,
                    max_results,
                    page_number,
                )
                return
            cursor = page.next_cursor if page.has_more else None

    async def to_list(self) -> List[T]:
        """Exhaust the iterator, keeping arrival order."""
        return [item async for item in self]

    async def _fetch_with_retries(self, cursor: PaginationCursor) -> PageResult:
        params = self.manager.build_query_params(cursor=cursor)
        attempt = 0
        while True:
            try:
                response = await self.fetch(params)
                validate = self.options.validate_response
                if validate is not None and not validate(response):
                    raise CakemailError(
                        f"Invalid page response for {self.manager.resource}",
                        code="INVALID_RESPONSE",
                        details={"resource": self.manager.resource, "params": params},
                    )
                return self.manager.parse_response(response, cursor)
            except CakemailError as e:
                attempt += 1
                logger.warning(
                    "%s: page fetch failed (attempt %d): %s",
                    self.manager.resource,
                    attempt,
                    e.message,
                )
                if self.options.on_error is not None:
                    result = self.options.on_error(e, attempt)
                    if inspect.isawaitable(result):
                        await result
                if attempt > self.options.max_retries:
                    raise
