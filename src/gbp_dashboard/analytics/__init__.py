"""
Analytics helpers for the GBP Dashboard
Pure functions over rows loaded from the database
"""
from .locations import (
    deduplicate_and_sort_locations,
    get_location_status,
    calculate_metadata_completeness,
    get_location_highlights,
)
from .health import (
    calculate_health_score,
    calculate_location_health_score,
    calculate_dashboard_health,
    calculate_rating_trend,
)
from .metrics import (
    calculate_engagement_rate,
    calculate_response_rate,
    calculate_satisfaction,
    aggregate_metrics_by_type,
    aggregate_metrics_by_date,
    calculate_ctr,
    get_impressions_breakdown,
    get_device_split,
    get_source_split,
    calculate_bookings_rate,
    build_weekly_performance,
)
from .periods import (
    get_date_range,
    get_previous_period_range,
    compare_periods,
    calculate_percent_change,
    get_comparison_period_label,
)

__all__ = [
    "deduplicate_and_sort_locations",
    "get_location_status",
    "calculate_metadata_completeness",
    "get_location_highlights",
    "calculate_health_score",
    "calculate_location_health_score",
    "calculate_dashboard_health",
    "calculate_rating_trend",
    "calculate_engagement_rate",
    "calculate_response_rate",
    "calculate_satisfaction",
    "aggregate_metrics_by_type",
    "aggregate_metrics_by_date",
    "calculate_ctr",
    "get_impressions_breakdown",
    "get_device_split",
    "get_source_split",
    "calculate_bookings_rate",
    "build_weekly_performance",
    "get_date_range",
    "get_previous_period_range",
    "compare_periods",
    "calculate_percent_change",
    "get_comparison_period_label",
]
