"""
FastAPI dependencies.

Routers receive the record source and dashboard through ``Depends`` so
tests can swap the GraphQL source for an in-memory one via
``app.dependency_overrides``.
"""

from functools import lru_cache

from fastapi import Depends

from cohortlens.config import get_settings
from cohortlens.connectors import GraphQLSource, RecordSource
from cohortlens.engine import Dashboard, MetricComputer


@lru_cache
def get_record_source() -> RecordSource:
    """
    Get cached record source instance (singleton).

    The underlying HTTP client is opened lazily and closed on shutdown.
    """
    return GraphQLSource.from_settings()


def get_dashboard(source: RecordSource = Depends(get_record_source)) -> Dashboard:
    """Request-scoped dashboard over the configured record source."""
    settings = get_settings()
    return Dashboard(MetricComputer(source, settings), settings)
