"""
Dashboard read models
Headline stats, the overview snapshot, per-location stats, weekly performance and activity
"""
import logging
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

import pandas as pd

from . import config
from .analytics import (
    deduplicate_and_sort_locations,
    get_location_status,
    calculate_metadata_completeness,
    calculate_health_score,
    get_location_highlights,
    calculate_location_health_score,
    calculate_dashboard_health,
    calculate_rating_trend,
    calculate_engagement_rate,
    calculate_response_rate,
    calculate_satisfaction,
    aggregate_metrics_by_type,
    aggregate_metrics_by_date,
    calculate_ctr,
    calculate_bookings_rate,
    get_impressions_breakdown,
    get_device_split,
    get_source_split,
    build_weekly_performance,
    get_date_range,
    get_previous_period_range,
    calculate_percent_change,
    compare_periods,
    get_comparison_period_label,
)
from .base import BaseService, user_action
from .database.models import ReviewStatus, LocationStatus, IMPRESSION_METRICS, ACTION_METRICS
from .database.queries import DashboardQueries
from .errors import ActionResult
from .utils import utcnow, parse_timestamp, loads_json

logger = logging.getLogger(__name__)

REPLIED_STATUSES = (ReviewStatus.RESPONDED.value, ReviewStatus.REPLIED.value)


def frame_records(df: pd.DataFrame) -> List[Dict[str, Any]]:
    """DataFrame rows as dicts with NaN/NaT turned into None"""
    if df.empty:
        return []
    return df.astype(object).where(pd.notna(df), None).to_dict("records")


class DashboardService(BaseService):
    """Everything the dashboard pages read"""

    def __init__(self, db, clock: Optional[Callable[[], datetime]] = None, **kwargs):
        super().__init__(db, **kwargs)
        self.clock = clock or utcnow
        self.queries = DashboardQueries(db)

    # =========================
    # Headline Stats
    # =========================
    @user_action
    def get_dashboard_stats(self, user_id: str) -> ActionResult:
        """
        Totals shown at the top of the dashboard

        The response rate counts reviews whose status is responded or replied.
        """
        locations = self.db.list_locations(user_id, include_archived=False)
        reviews = self.db.get_reviews_for_user(user_id)
        total = len(reviews)

        ratings = [r["rating"] for r in reviews if r.get("rating")]
        replied = sum(1 for r in reviews if r.get("status") in REPLIED_STATUSES)
        questions = self.queries.get_question_summary(user_id)

        return ActionResult.ok(data={
            "totalLocations": len(deduplicate_and_sort_locations(locations)),
            "totalReviews": total,
            "averageRating": round(sum(ratings) / len(ratings), 1) if ratings else 0.0,
            "responseRate": round(replied / total * 100, 1) if total else 0.0,
            "pendingReviews": sum(1 for r in reviews if r.get("status") == ReviewStatus.PENDING.value),
            "unansweredQuestions": questions["unanswered"],
            "recentActivity": self.db.get_recent_activity(user_id, limit=5),
        })

    # =========================
    # Overview Snapshot
    # =========================
    def _locations(self, user_id: str) -> List[Dict[str, Any]]:
        rows = frame_records(self.queries.get_location_stats(user_id))
        for row in rows:
            row["status"] = get_location_status(row)
            row["review_count"] = row.get("total_reviews") or 0
            if row.get("avg_rating") is not None:
                row["rating"] = row["avg_rating"]
            row["health_score"] = calculate_health_score(
                row.get("rating"), row.get("response_rate"), row["review_count"] > 0
            )
        return deduplicate_and_sort_locations(rows)

    def _stale_count(self, locations: List[Dict[str, Any]], now: datetime) -> int:
        cutoff = now - timedelta(hours=config.SYNC_CONFIG["dashboard_stale_hours"])
        stale = 0
        for loc in locations:
            if loc["status"] != LocationStatus.ACTIVE.value:
                continue
            synced = parse_timestamp(loc.get("last_synced_at"))
            if synced is None or synced < cutoff:
                stale += 1
        return stale

    @user_action
    def get_overview(self, user_id: str, days: int = 30) -> ActionResult:
        """
        Snapshot for the overview page

        KPIs compare the last `days` days with the period of equal length
        before it. Health score and bottlenecks cover all current data.
        """
        now = self.clock()
        start, end = get_date_range(days, now)
        prev_start, prev_end = get_previous_period_range(start, end)

        overall = self.queries.get_review_summary(user_id)
        current = self.queries.get_review_summary(user_id, start=start, end=end)
        previous = self.queries.get_review_summary(user_id, start=prev_start, end=prev_end)

        current_metrics = self.db.get_metrics(user_id, start_date=start.date(), end_date=end.date())
        previous_metrics = self.db.get_metrics(user_id, start_date=prev_start.date(), end_date=prev_end.date())
        impressions = get_impressions_breakdown(current_metrics)["total"]
        previous_impressions = get_impressions_breakdown(previous_metrics)["total"]

        rating_change = None
        if current["total"] and previous["total"]:
            rating_change = round(current["avg_rating"] - previous["avg_rating"], 1)

        questions = self.queries.get_question_summary(user_id)
        posts = self.queries.get_post_summary(user_id)
        locations = self._locations(user_id)

        health_score, bottlenecks = calculate_dashboard_health(
            pending_reviews=overall["pending"],
            unanswered_questions=questions["unanswered"],
            average_rating=overall["avg_rating"],
            total_reviews=overall["total"],
            response_rate=overall["response_rate"],
            stale_locations=self._stale_count(locations, now),
        )

        snapshot = {
            "generatedAt": now.isoformat(),
            "period": {"days": days, "start": start.isoformat(), "end": end.isoformat()},
            "comparisonLabel": get_comparison_period_label(f"{days}d"),
            "kpis": {
                "totalReviews": {
                    "value": overall["total"],
                    "period": current["total"],
                    "change": calculate_percent_change(current["total"], previous["total"]),
                },
                "averageRating": {
                    "value": round(overall["avg_rating"], 1),
                    "change": rating_change,
                },
                "responseRate": {
                    "value": overall["response_rate"],
                    "change": calculate_percent_change(current["response_rate"], previous["response_rate"]),
                },
                "impressions": {
                    "value": impressions,
                    "change": calculate_percent_change(impressions, previous_impressions),
                },
                "engagementRate": {
                    "value": round(calculate_engagement_rate(current_metrics, start, end), 1),
                },
            },
            "reviewStats": {
                **overall,
                "ratingDistribution": self.queries.get_rating_distribution(user_id),
            },
            "questionStats": questions,
            "postStats": {
                **posts,
                "lastPeriod": self.queries.count_posts_since(user_id, start),
            },
            "locations": locations,
            "locationHighlights": get_location_highlights(locations, overall["avg_rating"], rating_change),
            "bottlenecks": bottlenecks,
            "healthScore": health_score,
        }
        return ActionResult.ok(data=snapshot)

    # =========================
    # Location Stats
    # =========================
    @user_action
    def get_location_stats(self, user_id: str, location_id: int) -> ActionResult:
        location = self.require_location(user_id, location_id)
        now = self.clock()
        reviews = self.db.get_reviews_for_user(user_id, location_id)
        posts = self.db.get_posts_for_user(user_id, location_id)

        metadata = loads_json(location.get("metadata"))
        attributes = metadata.get("attributes") if isinstance(metadata, dict) else None

        month_ago = now - timedelta(days=30)
        recent_posts = [
            p for p in posts
            if (parse_timestamp(p.get("created_at")) or datetime.min) >= month_ago
        ]

        return ActionResult.ok(data={
            "id": location["id"],
            "name": location.get("location_name"),
            "status": get_location_status(location),
            "healthScore": calculate_location_health_score(
                location, reviews, posts, attributes_count=len(attributes or []), now=now
            ),
            "completeness": calculate_metadata_completeness(location),
            "ratingTrend": calculate_rating_trend(reviews, now),
            "responseRate": round(calculate_response_rate(reviews), 1),
            "satisfaction": round(calculate_satisfaction(reviews), 1),
            "totalReviews": len(reviews),
            "recentPosts": len(recent_posts),
            "lastSyncedAt": location.get("last_synced_at"),
        })

    # =========================
    # Performance
    # =========================
    @user_action
    def get_weekly_performance(
        self,
        user_id: str,
        location_id: Optional[int] = None,
        today: Optional[date] = None
    ) -> ActionResult:
        """Views, clicks and calls for the last 7 days plus a scheduling hint"""
        today = today or self.clock().date()
        metrics = self.db.get_metrics(
            user_id,
            location_id=location_id,
            start_date=today - timedelta(days=6),
            end_date=today,
        )
        return ActionResult.ok(data=build_weekly_performance(metrics, today))

    @user_action
    def get_performance(self, user_id: str, days: int = 30, location_id: Optional[int] = None) -> ActionResult:
        """
        Chart data and rates for the performance page

        Action metrics are also compared with the preceding period of the
        same length.
        """
        start, end = get_date_range(days, self.clock())
        prev_start, prev_end = get_previous_period_range(start, end)
        metrics = self.db.get_metrics(
            user_id,
            location_id=location_id,
            start_date=start.date(),
            end_date=end.date(),
        )
        previous = self.db.get_metrics(
            user_id,
            location_id=location_id,
            start_date=prev_start.date(),
            end_date=prev_end.date(),
        )
        return ActionResult.ok(data={
            "impressionsByDate": aggregate_metrics_by_date(metrics, IMPRESSION_METRICS),
            "actionsByDate": aggregate_metrics_by_date(metrics, ACTION_METRICS),
            "totals": aggregate_metrics_by_type(metrics),
            "comparison": {m: compare_periods(metrics, previous, m) for m in ACTION_METRICS},
            "impressions": get_impressions_breakdown(metrics),
            "deviceSplit": get_device_split(metrics),
            "sourceSplit": get_source_split(metrics),
            "ctr": round(calculate_ctr(metrics, start, end), 2),
            "bookingsRate": round(calculate_bookings_rate(metrics, start, end), 2),
            "engagementRate": round(calculate_engagement_rate(metrics, start, end), 2),
        })

    # =========================
    # Activity
    # =========================
    @user_action
    def log_activity(
        self,
        user_id: str,
        activity_type: str,
        message: str,
        metadata: Optional[Dict[str, Any]] = None
    ) -> ActionResult:
        activity_id = self.db.log_activity(user_id, activity_type, message, metadata)
        self.refresh_dashboard(action="activity", activity_id=activity_id)
        return ActionResult.ok(data={"id": activity_id})

    @user_action
    def get_recent_activity(self, user_id: str, limit: int = 10) -> ActionResult:
        return ActionResult.ok(data=self.db.get_recent_activity(user_id, limit))
