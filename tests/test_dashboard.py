"""
Tests for the dashboard read models
"""
import sys
from datetime import date, datetime
from pathlib import Path
from unittest.mock import MagicMock

import pandas as pd
import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from gbp_dashboard.dashboard import DashboardService, frame_records
from gbp_dashboard.database import PerformanceMetric
from gbp_dashboard.events import DASHBOARD_REFRESH

USER = "user-1"
NOW = datetime(2024, 6, 10, 12, 0)


@pytest.fixture
def dashboard(db):
    return DashboardService(db, clock=lambda: NOW)


@pytest.fixture
def seeded(make_review, make_question):
    make_review(rating=5, review_date=datetime(2024, 6, 1, 10))
    make_review(
        rating=3, review_date=datetime(2024, 6, 2, 10),
        has_reply=True, reply_text="Thanks", status="replied",
    )
    make_question()


def add_metrics(db, location_id, rows):
    db.upsert_metrics([
        PerformanceMetric(user_id=USER, location_id=location_id, metric_date=d, metric_type=t, metric_value=v)
        for d, t, v in rows
    ])


@pytest.mark.unit
class TestFrameRecords:

    def test_empty(self):
        assert frame_records(pd.DataFrame()) == []

    def test_nan_becomes_none(self):
        df = pd.DataFrame({"a": [1.0, None], "b": ["x", None]})
        assert frame_records(df) == [{"a": 1.0, "b": "x"}, {"a": None, "b": None}]


@pytest.mark.integration
class TestDashboardStats:

    def test_headline_stats(self, dashboard, location_id, seeded):
        data = dashboard.get_dashboard_stats(USER).data

        assert data["totalLocations"] == 1
        assert data["totalReviews"] == 2
        assert data["averageRating"] == 4.0
        assert data["responseRate"] == 50.0
        assert data["pendingReviews"] == 1
        assert data["unansweredQuestions"] == 1

    def test_empty_user(self, dashboard):
        data = dashboard.get_dashboard_stats(USER).data
        assert data["totalReviews"] == 0
        assert data["averageRating"] == 0.0
        assert data["recentActivity"] == []

    def test_requires_user(self, dashboard):
        assert dashboard.get_dashboard_stats("").error_code == "UNAUTHORIZED"


@pytest.mark.integration
class TestOverview:

    def test_snapshot(self, db, dashboard, location_id, seeded):
        add_metrics(db, location_id, [
            (date(2024, 6, 1), "BUSINESS_IMPRESSIONS_MOBILE_MAPS", 120),
            (date(2024, 6, 2), "BUSINESS_IMPRESSIONS_DESKTOP_SEARCH", 30),
            (date(2024, 4, 20), "BUSINESS_IMPRESSIONS_MOBILE_MAPS", 100),
        ])

        data = dashboard.get_overview(USER, days=30).data

        assert data["period"]["days"] == 30
        kpis = data["kpis"]
        assert kpis["totalReviews"]["value"] == 2
        assert kpis["totalReviews"]["period"] == 2
        assert kpis["impressions"]["value"] == 150
        assert kpis["impressions"]["change"] == 50.0
        assert data["reviewStats"]["ratingDistribution"][5] == 1
        assert data["questionStats"]["unanswered"] == 1
        assert [loc["location_name"] for loc in data["locations"]] == ["Acme Downtown"]

    def test_health_bottlenecks(self, dashboard, location_id, seeded):
        data = dashboard.get_overview(USER).data

        # one pending review, one unanswered question, one never-synced location
        assert data["healthScore"] == 93
        assert [b["type"] for b in data["bottlenecks"]] == ["Reviews", "Response", "Compliance"]

    def test_synced_location_not_stale(self, db, dashboard, location_id):
        db.update_location(USER, location_id, last_synced_at=datetime(2024, 6, 10, 11))
        data = dashboard.get_overview(USER).data
        assert data["healthScore"] == 100
        assert data["bottlenecks"] == []


@pytest.mark.integration
class TestLocationAndPerformance:

    def test_location_stats(self, dashboard, location_id, seeded):
        data = dashboard.get_location_stats(USER, location_id).data

        assert data["name"] == "Acme Downtown"
        assert data["status"] == "active"
        assert data["totalReviews"] == 2
        assert data["responseRate"] == 50.0
        assert data["satisfaction"] == 80.0
        assert 0 <= data["healthScore"] <= 100

    def test_location_stats_unknown(self, dashboard):
        assert dashboard.get_location_stats(USER, 404).error_code == "LOCATION_NOT_FOUND"

    def test_weekly_performance(self, db, dashboard, location_id):
        add_metrics(db, location_id, [
            (date(2024, 6, 10), "BUSINESS_IMPRESSIONS_MOBILE_SEARCH", 40),
            (date(2024, 6, 10), "CALL_CLICKS", 3),
            (date(2024, 6, 1), "CALL_CLICKS", 9),
        ])

        data = dashboard.get_weekly_performance(USER).data

        assert len(data["data"]) == 7
        today = data["data"][-1]
        assert today["date"] == "2024-06-10"
        assert today["views"] == 40
        assert today["calls"] == 3
        assert sum(d["calls"] for d in data["data"]) == 3
        assert data["aiInsight"]

    def test_performance(self, db, dashboard, location_id):
        add_metrics(db, location_id, [
            (date(2024, 6, 5), "WEBSITE_CLICKS", 10),
            (date(2024, 4, 25), "WEBSITE_CLICKS", 5),
            (date(2024, 6, 5), "BUSINESS_IMPRESSIONS_MOBILE_MAPS", 200),
        ])

        data = dashboard.get_performance(USER, days=30).data

        assert data["totals"]["WEBSITE_CLICKS"] == 10
        assert data["impressions"]["total"] == 200
        assert data["actionsByDate"][0]["date"] == "2024-06-05"
        assert data["actionsByDate"][0]["WEBSITE_CLICKS"] == 10


@pytest.mark.unit
class TestActivity:

    def test_log_and_read(self, db, dashboard):
        refreshed = MagicMock()
        db.events.subscribe(DASHBOARD_REFRESH, refreshed)

        result = dashboard.log_activity(USER, "note", "Checked the dashboard", {"page": "overview"})

        assert result.success
        refreshed.assert_called_once()
        activity = dashboard.get_recent_activity(USER).data
        assert activity[0]["activity_type"] == "note"
        assert activity[0]["metadata"] == {"page": "overview"}
