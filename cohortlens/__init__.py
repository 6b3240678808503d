"""
CohortLens - customer & order segmentation analytics for merchant dashboards.

The engine resolves a dashboard date range, paginates the store's record
source, classifies records into deduplicated identity sets and reports a
two-point trend per metric.
"""

__version__ = "0.1.0"
