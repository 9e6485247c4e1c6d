"""Aggregators that combine stored records into summaries and views."""

from productivity.aggregators.calendar import CalendarAssembler
from productivity.aggregators.daily import DashboardAssembler
from productivity.aggregators.summary import (
    DailySummaryEngine,
    DayInfo,
    local_today,
    progress_percentage,
)

__all__ = [
    "DailySummaryEngine",
    "DashboardAssembler",
    "CalendarAssembler",
    "DayInfo",
    "local_today",
    "progress_percentage",
]
