"""
Pre-built analytical queries for the GBP Dashboard
Aggregations over reviews, questions, posts and performance metrics, always per user
"""
import logging
from typing import Optional, List, Dict, Any
from datetime import datetime

import pandas as pd

logger = logging.getLogger(__name__)


class DashboardQueries:
    """
    Collection of analytical queries for dashboard pages
    Uses DuckDB's columnar engine for aggregations
    """

    def __init__(self, db_manager):
        """
        Initialize with database manager

        Args:
            db_manager: DatabaseManager instance
        """
        self.db = db_manager
        self.conn = db_manager.connection

    @staticmethod
    def _location_filter(alias: str, location_id: Optional[int], params: List[Any]) -> str:
        if location_id is None:
            return ""
        params.append(location_id)
        return f" AND {alias}.location_id = ?"

    # =========================
    # Overview Statistics
    # =========================
    def get_review_summary(
        self,
        user_id: str,
        location_id: Optional[int] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """
        Review counts and averages for a user, optionally windowed by review date

        Returns:
            Dict with total, replied, pending, flagged, avg_rating, response_rate
        """
        params: List[Any] = [user_id]
        where = "r.user_id = ? AND NOT COALESCE(r.is_archived, FALSE)"
        where += self._location_filter("r", location_id, params)
        if start is not None:
            where += " AND r.review_date >= ?"
            params.append(start)
        if end is not None:
            where += " AND r.review_date < ?"
            params.append(end)

        sql = f"""
        SELECT
            COUNT(*) AS total,
            COUNT(CASE WHEN r.has_reply OR r.status IN ('responded', 'replied') THEN 1 END) AS replied,
            COUNT(CASE WHEN NOT COALESCE(r.has_reply, FALSE) THEN 1 END) AS pending,
            COUNT(CASE WHEN r.status = 'flagged' THEN 1 END) AS flagged,
            AVG(r.rating) AS avg_rating
        FROM reviews r
        WHERE {where}
        """
        total, replied, pending, flagged, avg_rating = self.conn.execute(sql, params).fetchone()

        return {
            "total": int(total or 0),
            "replied": int(replied or 0),
            "pending": int(pending or 0),
            "flagged": int(flagged or 0),
            "avg_rating": round(float(avg_rating), 2) if avg_rating is not None else 0.0,
            "response_rate": round(replied * 100.0 / total, 1) if total else 0.0,
        }

    def get_rating_distribution(self, user_id: str, location_id: Optional[int] = None) -> Dict[int, int]:
        """Count of reviews per star rating, every rating 1-5 present"""
        params: List[Any] = [user_id]
        where = "r.user_id = ? AND NOT COALESCE(r.is_archived, FALSE)"
        where += self._location_filter("r", location_id, params)

        rows = self.conn.execute(f"""
            SELECT r.rating, COUNT(*) FROM reviews r
            WHERE {where}
            GROUP BY r.rating
        """, params).fetchall()

        distribution = {star: 0 for star in range(1, 6)}
        for rating, count in rows:
            if rating in distribution:
                distribution[rating] = int(count)
        return distribution

    def get_question_summary(self, user_id: str, location_id: Optional[int] = None) -> Dict[str, int]:
        params: List[Any] = [user_id]
        where = "q.user_id = ? AND NOT COALESCE(q.is_archived, FALSE)"
        where += self._location_filter("q", location_id, params)

        total, unanswered, answered = self.conn.execute(f"""
            SELECT
                COUNT(*),
                COUNT(CASE WHEN q.answer_status IN ('unanswered', 'pending') THEN 1 END),
                COUNT(CASE WHEN q.answer_status = 'answered' THEN 1 END)
            FROM questions q
            WHERE {where}
        """, params).fetchone()
        return {
            "total": int(total or 0),
            "unanswered": int(unanswered or 0),
            "answered": int(answered or 0),
        }

    def get_post_summary(self, user_id: str, location_id: Optional[int] = None) -> Dict[str, int]:
        params: List[Any] = [user_id]
        where = "p.user_id = ? AND NOT COALESCE(p.is_archived, FALSE)"
        where += self._location_filter("p", location_id, params)

        rows = self.conn.execute(f"""
            SELECT p.status, COUNT(*) FROM posts p
            WHERE {where}
            GROUP BY p.status
        """, params).fetchall()

        summary = {"total": 0, "published": 0, "draft": 0, "queued": 0, "failed": 0}
        for status, count in rows:
            summary["total"] += int(count)
            if status in summary:
                summary[status] = int(count)
        return summary

    # =========================
    # Location Analytics
    # =========================
    def get_location_stats(self, user_id: str) -> pd.DataFrame:
        """
        Per-location review and question counts

        Returns:
            DataFrame with one row per location of the user
        """
        sql = """
        WITH review_stats AS (
            SELECT
                location_id,
                COUNT(*) AS total_reviews,
                ROUND(AVG(rating), 2) AS avg_rating,
                COUNT(CASE WHEN NOT COALESCE(has_reply, FALSE) THEN 1 END) AS pending_reviews,
                ROUND(COUNT(CASE WHEN has_reply THEN 1 END) * 100.0 / NULLIF(COUNT(*), 0), 1) AS response_rate
            FROM reviews
            WHERE user_id = ? AND NOT COALESCE(is_archived, FALSE)
            GROUP BY location_id
        ),
        question_stats AS (
            SELECT
                location_id,
                COUNT(CASE WHEN answer_status IN ('unanswered', 'pending') THEN 1 END) AS unanswered_questions
            FROM questions
            WHERE user_id = ? AND NOT COALESCE(is_archived, FALSE)
            GROUP BY location_id
        )
        SELECT
            l.id,
            l.location_id,
            l.location_name,
            l.address,
            l.category,
            l.is_active,
            l.is_archived,
            l.last_synced_at,
            l.updated_at,
            l.rating,
            COALESCE(rs.total_reviews, 0) AS total_reviews,
            rs.avg_rating,
            COALESCE(rs.pending_reviews, 0) AS pending_reviews,
            COALESCE(rs.response_rate, 0) AS response_rate,
            COALESCE(qs.unanswered_questions, 0) AS unanswered_questions
        FROM locations l
        LEFT JOIN review_stats rs ON rs.location_id = l.id
        LEFT JOIN question_stats qs ON qs.location_id = l.id
        WHERE l.user_id = ?
        ORDER BY total_reviews DESC, l.location_name
        """
        return self.conn.execute(sql, [user_id, user_id, user_id]).fetchdf()

    def count_posts_since(self, user_id: str, since: datetime, location_id: Optional[int] = None) -> int:
        """Published posts since a point in time"""
        params: List[Any] = [user_id, since]
        where = "p.user_id = ? AND p.status = 'published' AND p.published_at >= ?"
        where += self._location_filter("p", location_id, params)
        return int(self.conn.execute(f"SELECT COUNT(*) FROM posts p WHERE {where}", params).fetchone()[0])
