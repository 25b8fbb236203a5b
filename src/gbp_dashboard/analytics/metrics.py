"""
Performance calculations over daily metric rows and reviews
Rows look like {"metric_date": ..., "metric_type": ..., "metric_value": ...}
"""
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

import pandas as pd

from ..database.models import IMPRESSION_METRICS, ACTION_METRICS
from ..utils import to_number

DateLike = Union[date, datetime, str]

WEEKDAY_NAMES = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]


# =========================
# Frame Helpers
# =========================
def as_number(value: float) -> Union[int, float]:
    value = float(value)
    return int(value) if value.is_integer() else value


def _day(value: DateLike) -> pd.Timestamp:
    ts = pd.Timestamp(value)
    if ts.tzinfo is not None:
        ts = ts.tz_convert("UTC").tz_localize(None)
    return ts.normalize()


def metrics_frame(
    metrics: Iterable[Dict[str, Any]],
    start: Optional[DateLike] = None,
    end: Optional[DateLike] = None
) -> pd.DataFrame:
    """
    Normalise metric rows into a DataFrame

    Values are coerced to numbers (unparseable -> 0) and dates to midnight
    timestamps; start/end filter inclusively by day.
    """
    df = pd.DataFrame(list(metrics), columns=["metric_date", "metric_type", "metric_value"])
    df["metric_value"] = df["metric_value"].map(to_number).astype(float)
    df["metric_date"] = (
        pd.to_datetime(df["metric_date"], errors="coerce", utc=True)
        .dt.tz_localize(None)
        .dt.normalize()
    )
    df["metric_type"] = df["metric_type"].fillna("").astype(str)

    if start is not None:
        df = df[df["metric_date"] >= _day(start)]
    if end is not None:
        df = df[df["metric_date"] <= _day(end)]
    return df


def _sum_types(df: pd.DataFrame, types: List[str]) -> float:
    return float(df.loc[df["metric_type"].isin(types), "metric_value"].sum())


def _sum_impressions(df: pd.DataFrame) -> float:
    return float(df.loc[df["metric_type"].str.contains("IMPRESSIONS"), "metric_value"].sum())


# =========================
# Rates
# =========================
def calculate_engagement_rate(metrics: List[Dict[str, Any]], start: DateLike, end: DateLike) -> float:
    """(clicks + conversations + direction requests) / impressions * 100"""
    df = metrics_frame(metrics, start, end)
    impressions = _sum_types(df, IMPRESSION_METRICS)
    if impressions == 0:
        return 0.0
    return _sum_types(df, ACTION_METRICS) / impressions * 100


def calculate_ctr(metrics: List[Dict[str, Any]], start: DateLike, end: DateLike) -> float:
    """(website clicks + call clicks) / impressions * 100"""
    df = metrics_frame(metrics, start, end)
    impressions = _sum_impressions(df)
    if impressions == 0:
        return 0.0
    return _sum_types(df, ["WEBSITE_CLICKS", "CALL_CLICKS"]) / impressions * 100


def calculate_bookings_rate(metrics: List[Dict[str, Any]], start: DateLike, end: DateLike) -> float:
    df = metrics_frame(metrics, start, end)
    impressions = _sum_impressions(df)
    if impressions == 0:
        return 0.0
    return _sum_types(df, ["BUSINESS_BOOKINGS"]) / impressions * 100


def calculate_response_rate(reviews: List[Dict[str, Any]]) -> float:
    """Percent of reviews with a non-blank reply"""
    if not reviews:
        return 0.0
    replied = sum(1 for r in reviews if str(r.get("reply_text") or "").strip())
    return replied / len(reviews) * 100


def calculate_satisfaction(reviews: List[Dict[str, Any]]) -> float:
    """Average rating of rated reviews as a percentage of 5 stars"""
    ratings = [r.get("rating") for r in reviews if r.get("rating")]
    if not ratings:
        return 0.0
    return sum(ratings) / len(ratings) / 5 * 100


# =========================
# Aggregations
# =========================
def aggregate_metrics_by_type(
    metrics: List[Dict[str, Any]],
    date_range: Optional[Tuple[DateLike, DateLike]] = None
) -> Dict[str, Union[int, float]]:
    """Total per metric type, optionally within (start, end)"""
    start, end = date_range if date_range else (None, None)
    df = metrics_frame(metrics, start, end)
    if df.empty:
        return {}
    totals = df.groupby("metric_type")["metric_value"].sum()
    return {metric_type: as_number(value) for metric_type, value in totals.items()}


def aggregate_metrics_by_date(
    metrics: List[Dict[str, Any]],
    metric_types: List[str]
) -> List[Dict[str, Any]]:
    """
    Chart rows: one entry per date with a column per requested metric type

    Only rows of the requested types are counted; every requested type is
    present on every date (0 when missing). Dates are formatted YYYY-MM-DD
    and ascending. A date that does not parse is kept under its raw text.
    """
    raw_dates = pd.DataFrame(list(metrics), columns=["metric_date"])["metric_date"]
    df = metrics_frame(metrics)
    df["date_key"] = df["metric_date"].dt.strftime("%Y-%m-%d").fillna(raw_dates.fillna("").astype(str))
    df = df[df["metric_type"].isin(metric_types)]
    if df.empty:
        return []

    pivot = df.pivot_table(
        index="date_key",
        columns="metric_type",
        values="metric_value",
        aggfunc="sum",
        fill_value=0
    )
    pivot = pivot.reindex(columns=metric_types, fill_value=0).sort_index()

    rows = []
    for day, values in pivot.iterrows():
        row: Dict[str, Any] = {"date": day}
        for metric_type in metric_types:
            row[metric_type] = as_number(values[metric_type])
        rows.append(row)
    return rows


def get_impressions_breakdown(
    metrics: List[Dict[str, Any]],
    start: Optional[DateLike] = None,
    end: Optional[DateLike] = None
) -> Dict[str, Union[int, float]]:
    """Impressions split by device and surface, with subtotals"""
    if start is None or end is None:
        start = end = None
    df = metrics_frame(metrics, start, end)

    desktop_maps = _sum_types(df, ["BUSINESS_IMPRESSIONS_DESKTOP_MAPS"])
    desktop_search = _sum_types(df, ["BUSINESS_IMPRESSIONS_DESKTOP_SEARCH"])
    mobile_maps = _sum_types(df, ["BUSINESS_IMPRESSIONS_MOBILE_MAPS"])
    mobile_search = _sum_types(df, ["BUSINESS_IMPRESSIONS_MOBILE_SEARCH"])

    return {
        "desktopMaps": as_number(desktop_maps),
        "desktopSearch": as_number(desktop_search),
        "mobileMaps": as_number(mobile_maps),
        "mobileSearch": as_number(mobile_search),
        "total": as_number(desktop_maps + desktop_search + mobile_maps + mobile_search),
        "mapsTotal": as_number(desktop_maps + mobile_maps),
        "searchTotal": as_number(desktop_search + mobile_search),
        "desktopTotal": as_number(desktop_maps + desktop_search),
        "mobileTotal": as_number(mobile_maps + mobile_search),
    }


def get_device_split(
    metrics: List[Dict[str, Any]],
    start: Optional[DateLike] = None,
    end: Optional[DateLike] = None
) -> Dict[str, float]:
    breakdown = get_impressions_breakdown(metrics, start, end)
    total = breakdown["total"]
    if total == 0:
        return {"desktop": 0, "mobile": 0, "desktopPercent": 0, "mobilePercent": 0}
    return {
        "desktop": breakdown["desktopTotal"],
        "mobile": breakdown["mobileTotal"],
        "desktopPercent": breakdown["desktopTotal"] / total * 100,
        "mobilePercent": breakdown["mobileTotal"] / total * 100,
    }


def get_source_split(
    metrics: List[Dict[str, Any]],
    start: Optional[DateLike] = None,
    end: Optional[DateLike] = None
) -> Dict[str, float]:
    breakdown = get_impressions_breakdown(metrics, start, end)
    total = breakdown["total"]
    if total == 0:
        return {"maps": 0, "search": 0, "mapsPercent": 0, "searchPercent": 0}
    return {
        "maps": breakdown["mapsTotal"],
        "search": breakdown["searchTotal"],
        "mapsPercent": breakdown["mapsTotal"] / total * 100,
        "searchPercent": breakdown["searchTotal"] / total * 100,
    }


# =========================
# Weekly Performance
# =========================
def build_weekly_performance(
    metrics: List[Dict[str, Any]],
    today: Optional[date] = None
) -> Dict[str, Any]:
    """
    Views, website clicks and calls for the 7 days ending today, plus a hint

    Returns:
        {"data": [{"day": "Mon", "date": "YYYY-MM-DD", "views", "clicks", "calls"}, ...],
         "aiInsight": str}
    """
    today = today or date.today()
    if isinstance(today, datetime):
        today = today.date()
    first = today - timedelta(days=6)
    df = metrics_frame(metrics, first, today)

    week = []
    for offset in range(6, -1, -1):
        day = today - timedelta(days=offset)
        day_df = df[df["metric_date"] == pd.Timestamp(day)]
        week.append({
            "day": WEEKDAY_NAMES[day.weekday()],
            "date": day.isoformat(),
            "views": as_number(_sum_impressions(day_df)),
            "clicks": as_number(_sum_types(day_df, ["WEBSITE_CLICKS"])),
            "calls": as_number(_sum_types(day_df, ["CALL_CLICKS"])),
        })

    weekend_views = sum(d["views"] for d in week if d["day"] in ("Sat", "Sun"))
    weekday_views = sum(d["views"] for d in week if d["day"] not in ("Sat", "Sun"))
    avg_weekend = weekend_views / 2
    avg_weekday = weekday_views / 5

    if avg_weekend > avg_weekday * 1.15:
        insight = "Weekends show 15%+ higher engagement. Consider posting on Friday evenings."
    elif avg_weekday > avg_weekend * 1.15:
        insight = "Weekdays perform better. Focus content scheduling for Tuesday-Thursday."
    else:
        peak = week[0]
        for d in week[1:]:
            if d["views"] > peak["views"]:
                peak = d
        insight = f"{peak['day']} was your peak day. Replicate successful content from that day."

    return {"data": week, "aiInsight": insight}
