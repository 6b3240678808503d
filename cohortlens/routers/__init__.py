"""API routers for CohortLens."""

from . import metrics, sections

__all__ = ["metrics", "sections"]
