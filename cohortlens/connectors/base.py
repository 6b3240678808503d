"""
Abstract record source interface.

The engine only ever talks to a cursor-paginated query. Concrete sources
(the GraphQL adapter, in-memory fixtures) implement this interface so the
engine never depends on a vendor schema.
"""

from abc import ABC, abstractmethod
from typing import Optional

from cohortlens.models import Page, RecordQuery


class RecordSource(ABC):
    """
    Cursor-paginated record source.

    Implementations must report query-level problems through
    ``Page.errors`` (free-text messages) and raise ``SourceError`` only for
    transport failures or malformed payloads.
    """

    @abstractmethod
    async def fetch_page(
        self,
        query: RecordQuery,
        cursor: Optional[str] = None,
        first: int = 250,
    ) -> Page:
        """
        Fetch one page of records.

        Args:
            query: Entity kind and created-at bounds
            cursor: Cursor returned by the previous page (None for the first)
            first: Page size

        Returns:
            Page with records, pagination info and any error messages
        """
        pass
