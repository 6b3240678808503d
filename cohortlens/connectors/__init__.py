"""
Record source connectors.

Main Components:
    RecordSource: Abstract cursor-paginated query interface
    GraphQLSource: Store admin API client over httpx

Usage:
    >>> from cohortlens.connectors import GraphQLSource
    >>> from cohortlens.models import RecordKind, RecordQuery
    >>>
    >>> async with GraphQLSource.from_settings() as source:
    ...     page = await source.fetch_page(RecordQuery(kind=RecordKind.CUSTOMER))
    ...     print(len(page.records), page.has_next_page)
"""

from cohortlens.connectors.base import RecordSource
from cohortlens.connectors.graphql_client import GraphQLSource

__all__ = ["RecordSource", "GraphQLSource"]
