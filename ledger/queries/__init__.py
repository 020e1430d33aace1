"""Query package - read-side summaries."""

from ledger.queries.summary import SummaryAggregator

__all__ = ["SummaryAggregator"]
