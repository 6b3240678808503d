"""
Exhaustive cursor pagination with a safety cap.

Pagination is a fold: ``collect_step`` takes an immutable ``CollectState``
and returns the next one, and a small driver loop applies it until the
source runs dry or the cap is reached. Pages are fetched strictly in
sequence because each cursor comes from the previous response.

Reaching the cap is not an error. The accumulated records are returned
as-is and callers treat the resulting counts as an approximation.
"""

import asyncio
from dataclasses import dataclass, replace
from typing import Awaitable, Callable, Optional

import structlog

from cohortlens.connectors.base import RecordSource
from cohortlens.engine.failures import SourceError, raise_for_errors
from cohortlens.models import Page, RawRecord, RecordKind, RecordQuery

logger = structlog.get_logger()

DEFAULT_PAGE_SIZE = 250

FetchPage = Callable[[Optional[str], int], Awaitable[Page]]


@dataclass(frozen=True)
class CollectState:
    """Accumulated pagination state between two page fetches."""

    records: tuple[RawRecord, ...] = ()
    cursor: Optional[str] = None
    has_next_page: bool = True
    pages: int = 0
    capped: bool = False

    @property
    def done(self) -> bool:
        return self.capped or not self.has_next_page


async def collect_step(
    fetch_page: FetchPage,
    state: CollectState,
    *,
    cap: int,
    kind: RecordKind,
    feature: str,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> CollectState:
    """
    Fetch the page after ``state`` and fold it in.

    Raises:
        RestrictedAccessError: If the page reports a governance refusal
        SourceError: If the page reports any other error
    """
    page = await fetch_page(state.cursor, page_size)
    raise_for_errors(page.errors, kind, feature)

    records = state.records + tuple(page.records)
    has_next = page.has_next_page

    if has_next and not page.end_cursor:
        logger.warning("pagination_cursor_missing", feature=feature, pages=state.pages + 1)
        has_next = False
    elif has_next and not page.records:
        logger.warning("pagination_empty_page", feature=feature, pages=state.pages + 1)
        has_next = False

    capped = has_next and len(records) >= cap
    if len(records) > cap:
        records = records[:cap]
        capped = True

    return replace(
        state,
        records=records,
        cursor=page.end_cursor,
        has_next_page=has_next,
        pages=state.pages + 1,
        capped=capped,
    )


async def run_collection(
    fetch_page: FetchPage,
    *,
    cap: int,
    kind: RecordKind,
    feature: str,
    page_size: int = DEFAULT_PAGE_SIZE,
    timeout: Optional[float] = None,
) -> CollectState:
    """
    Drive ``collect_step`` to completion.

    Args:
        fetch_page: Cursor-driven page fetcher
        cap: Safety cap on accumulated records
        kind: Entity kind being queried (for failure classification)
        feature: Metric or feature name carried by restricted-access signals
        page_size: Records requested per page
        timeout: Optional deadline in seconds for the whole loop

    Returns:
        Final CollectState

    Raises:
        RestrictedAccessError: On a governance refusal from any page
        SourceError: On any other failure, or when the deadline passes
    """
    if cap < 1:
        raise ValueError("cap must be at least 1")

    async def loop() -> CollectState:
        state = CollectState()
        while not state.done:
            state = await collect_step(
                fetch_page,
                state,
                cap=cap,
                kind=kind,
                feature=feature,
                page_size=page_size,
            )
        return state

    if timeout is None:
        state = await loop()
    else:
        try:
            state = await asyncio.wait_for(loop(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.error("collection_timed_out", feature=feature, timeout_seconds=timeout)
            raise SourceError(f"Collection for {feature} exceeded {timeout}s")

    if state.capped:
        logger.warning(
            "collection_capped",
            feature=feature,
            kind=kind.value,
            cap=cap,
            pages=state.pages,
        )
    else:
        logger.debug(
            "collection_complete",
            feature=feature,
            kind=kind.value,
            records=len(state.records),
            pages=state.pages,
        )
    return state


async def collect_records(
    fetch_page: FetchPage,
    *,
    cap: int,
    kind: RecordKind,
    feature: str,
    page_size: int = DEFAULT_PAGE_SIZE,
    timeout: Optional[float] = None,
) -> list[RawRecord]:
    """Collect every record (up to ``cap``) from a cursor-driven fetcher."""
    state = await run_collection(
        fetch_page,
        cap=cap,
        kind=kind,
        feature=feature,
        page_size=page_size,
        timeout=timeout,
    )
    return list(state.records)


class PagedCollector:
    """
    Collects ``RecordQuery`` results from a ``RecordSource``.

    Holds no state between calls; one instance can serve concurrent
    collections.
    """

    def __init__(
        self,
        source: RecordSource,
        page_size: int = DEFAULT_PAGE_SIZE,
        timeout: Optional[float] = None,
    ):
        self.source = source
        self.page_size = page_size
        self.timeout = timeout

    async def collect(self, query: RecordQuery, *, cap: int, feature: str) -> list[RawRecord]:
        """
        Collect all records matching ``query`` up to ``cap``.

        Raises:
            RestrictedAccessError: On a governance refusal
            SourceError: On any other failure
        """

        async def fetch_page(cursor: Optional[str], first: int) -> Page:
            return await self.source.fetch_page(query, cursor=cursor, first=first)

        return await collect_records(
            fetch_page,
            cap=cap,
            kind=query.kind,
            feature=feature,
            page_size=self.page_size,
            timeout=self.timeout,
        )
