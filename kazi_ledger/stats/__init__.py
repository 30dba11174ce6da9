"""Statistics package."""

from kazi_ledger.stats.engine import (
    StatisticsEngine,
    filter_by_timeframe,
    in_timeframe,
    net_debt,
    summarize,
)

__all__ = [
    "StatisticsEngine",
    "filter_by_timeframe",
    "in_timeframe",
    "net_debt",
    "summarize",
]
