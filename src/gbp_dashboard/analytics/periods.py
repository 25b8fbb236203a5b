"""
Date ranges and period-over-period comparisons
"""
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from .metrics import metrics_frame, as_number
from ..utils import utcnow


def get_date_range(days: int, now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    """(now - days, now)"""
    end = now or utcnow()
    return end - timedelta(days=days), end


def get_previous_period_range(start: datetime, end: datetime) -> Tuple[datetime, datetime]:
    """
    The period of equal length ending just before start

    Returns:
        (previous_start, previous_end) with previous_end one millisecond before start
    """
    length = end - start
    previous_end = start - timedelta(milliseconds=1)
    return previous_end - length, previous_end


def calculate_percent_change(current: float, previous: float) -> float:
    """Percent change rounded to 1 decimal; 100 when growing from zero"""
    current = float(current or 0)
    previous = float(previous or 0)
    if previous == 0:
        return 100.0 if current > 0 else 0.0
    return round((current - previous) / previous * 100, 1)


def compare_periods(
    current_metrics: List[Dict[str, Any]],
    previous_metrics: List[Dict[str, Any]],
    metric_type: str
) -> Dict[str, Any]:
    """Totals of one metric type in two periods and how they differ"""
    current_df = metrics_frame(current_metrics)
    previous_df = metrics_frame(previous_metrics)

    current = float(current_df.loc[current_df["metric_type"] == metric_type, "metric_value"].sum())
    previous = float(previous_df.loc[previous_df["metric_type"] == metric_type, "metric_value"].sum())

    return {
        "current": as_number(current),
        "previous": as_number(previous),
        "change": as_number(current - previous),
        "changePercent": calculate_percent_change(current, previous),
    }


def _short(value: datetime) -> str:
    return f"{value.strftime('%b')} {value.day}"


def get_comparison_period_label(
    preset: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None
) -> str:
    """
    Human readable label for the comparison period

    Args:
        preset: "7d", "30d", "90d" or "custom"
        start: Custom range start
        end: Custom range end

    Returns:
        "vs previous 30 days", "vs Apr 1 - Apr 30" or "vs last period"
    """
    if preset and preset != "custom":
        try:
            days = int(preset.rstrip("d"))
        except ValueError:
            return "vs last period"
        return f"vs previous {days} days"

    if start and end:
        diff_days = (end - start).days
        previous_start = start - timedelta(days=diff_days + 1)
        previous_end = start - timedelta(days=1)
        return f"vs {_short(previous_start)} - {_short(previous_end)}"

    return "vs last period"
