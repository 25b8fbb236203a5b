"""
Database Manager for the GBP Dashboard
Handles DuckDB connections, user-scoped CRUD and change notifications
"""
import logging
import json
from pathlib import Path
from datetime import datetime
from typing import Optional, List, Dict, Any, Union, Tuple, Iterable
from contextlib import contextmanager
from enum import Enum

import duckdb

from .models import (
    Account, Location, Review, Question, Post, PerformanceMetric,
    SCHEMA_SQL, TABLES, JSON_COLUMNS, SyncStatus, ReviewStatus,
)
from ..events import EventBus, table_topic
from ..utils import utcnow, loads_json, dumps_json

logger = logging.getLogger(__name__)


# Columns a caller may change through the generic update helpers
UPDATABLE_COLUMNS = {
    "accounts": {
        "account_name", "email", "access_token", "refresh_token", "token_expires_at",
        "is_active", "last_sync", "disconnected_at", "settings",
    },
    "locations": {
        "location_name", "address", "phone", "website", "category", "description",
        "business_hours", "rating", "review_count", "response_rate", "latitude",
        "longitude", "is_active", "is_archived", "archived_at", "metadata",
        "last_synced_at",
    },
    "reviews": {
        "rating", "review_text", "reviewer_name", "reviewer_profile_photo_url",
        "reply_text", "reply_date", "has_reply", "status", "ai_sentiment",
        "ai_suggested_reply", "flagged_reason", "review_url", "is_archived",
        "is_anonymized", "archived_at", "synced_at",
    },
    "questions": {
        "question_text", "author_name", "answer_text", "answered_at", "answered_by",
        "answer_id", "answer_status", "priority", "upvote_count",
        "total_answer_count", "is_archived", "archived_at", "synced_at",
    },
    "posts": {
        "provider_post_id", "post_type", "title", "content", "media_url",
        "call_to_action", "call_to_action_url", "start_date", "end_date",
        "scheduled_at", "published_at", "status", "error_message", "metadata",
        "is_archived", "archived_at",
    },
}

TABLES_WITH_UPDATED_AT = {"accounts", "locations", "reviews", "questions", "posts"}


class DatabaseManager:
    """
    Manages the DuckDB database for the dashboard

    Features:
    - Schema management
    - CRUD for accounts, locations, reviews, questions, posts and metrics
    - Every read and write scoped by user_id
    - Change events published per table
    - Sync run tracking and activity log
    """

    def __init__(
        self,
        db_path: Optional[Union[str, Path]] = None,
        read_only: bool = False,
        event_bus: Optional[EventBus] = None
    ):
        """
        Initialize database manager

        Args:
            db_path: Path to DuckDB file, or ":memory:" for an in-memory
                     database. Defaults to config.DB_PATH
            read_only: Open database in read-only mode
            event_bus: Bus receiving table change events
        """
        if db_path is None:
            from .. import config
            db_path = config.DB_PATH

        self.db_path = None if str(db_path) == ":memory:" else Path(db_path)
        self.read_only = read_only
        self.events = event_bus or EventBus()
        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        self._pending_events: Optional[List[Tuple[str, Dict[str, Any]]]] = None

        # Ensure directory exists
        if self.db_path:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        logger.info(f"DatabaseManager initialized: {self.db_path or 'in-memory'}")

    @property
    def connection(self) -> duckdb.DuckDBPyConnection:
        """Get or create database connection"""
        if self._connection is None:
            if self.db_path:
                self._connection = duckdb.connect(
                    str(self.db_path),
                    read_only=self.read_only
                )
            else:
                self._connection = duckdb.connect(":memory:")
        return self._connection

    def close(self):
        """Close database connection"""
        if self._connection:
            self._connection.close()
            self._connection = None
            logger.debug("Database connection closed")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    @contextmanager
    def transaction(self):
        """
        Context manager for transactions

        Writes made through the manager inside the block commit together.
        Change events are held back until the commit and dropped on
        rollback. A nested block joins the outer transaction.
        """
        if self._pending_events is not None:
            yield self.connection
            return

        self.connection.begin()
        self._pending_events = []
        try:
            yield self.connection
            self.connection.commit()
        except Exception:
            self.connection.rollback()
            self._pending_events = None
            raise

        pending, self._pending_events = self._pending_events, None
        for topic, payload in pending:
            self.events.publish(topic, payload)

    def _commit(self):
        # inside transaction() the outer block commits
        if self._pending_events is None:
            self.connection.commit()

    # =========================
    # Low-level Helpers
    # =========================
    def _rows(self, sql: str, params: Optional[List[Any]] = None) -> List[Dict[str, Any]]:
        """Run a query and return rows as dicts with JSON columns decoded"""
        cursor = self.connection.execute(sql, params or [])
        columns = [d[0] for d in cursor.description]
        return [self._decode(dict(zip(columns, row))) for row in cursor.fetchall()]

    def _row(self, sql: str, params: Optional[List[Any]] = None) -> Optional[Dict[str, Any]]:
        rows = self._rows(sql, params)
        return rows[0] if rows else None

    def _scalar(self, sql: str, params: Optional[List[Any]] = None) -> Any:
        result = self.connection.execute(sql, params or []).fetchone()
        return result[0] if result else None

    @staticmethod
    def _decode(row: Dict[str, Any]) -> Dict[str, Any]:
        for col in JSON_COLUMNS:
            if col in row:
                row[col] = loads_json(row[col])
        return row

    @staticmethod
    def _encode(column: str, value: Any) -> Any:
        if column in JSON_COLUMNS and not isinstance(value, str):
            return dumps_json(value)
        if isinstance(value, Enum):
            return value.value
        return value

    def _notify(self, table: str, action: str, **payload):
        topic = table_topic(table)
        payload = {"table": table, "action": action, **payload}
        if self._pending_events is not None:
            self._pending_events.append((topic, payload))
        else:
            self.events.publish(topic, payload)

    def _update(
        self,
        table: str,
        user_id: str,
        row_id: int,
        fields: Dict[str, Any]
    ) -> bool:
        """Update allowed columns of one owned row, returns True if a row matched"""
        allowed = UPDATABLE_COLUMNS[table]
        unknown = set(fields) - allowed
        if unknown:
            raise ValueError(f"Cannot update {table} columns: {sorted(unknown)}")
        if not fields:
            return False

        assignments = [f"{col} = ?" for col in fields]
        params = [self._encode(col, val) for col, val in fields.items()]
        if table in TABLES_WITH_UPDATED_AT:
            assignments.append("updated_at = ?")
            params.append(utcnow())

        sql = (
            f"UPDATE {table} SET {', '.join(assignments)} "
            f"WHERE id = ? AND user_id = ? RETURNING id"
        )
        result = self.connection.execute(sql, params + [row_id, user_id]).fetchall()
        self._commit()

        if result:
            self._notify(table, "update", user_id=user_id, id=row_id)
        return bool(result)

    def _update_many(
        self,
        table: str,
        user_id: str,
        column: str,
        values: Iterable[Any],
        fields: Dict[str, Any]
    ) -> int:
        """Update allowed columns on every owned row whose column is in values"""
        values = list(values)
        if not values or not fields:
            return 0
        allowed = UPDATABLE_COLUMNS[table]
        unknown = set(fields) - allowed
        if unknown:
            raise ValueError(f"Cannot update {table} columns: {sorted(unknown)}")

        assignments = [f"{col} = ?" for col in fields]
        params = [self._encode(col, val) for col, val in fields.items()]
        if table in TABLES_WITH_UPDATED_AT:
            assignments.append("updated_at = ?")
            params.append(utcnow())

        placeholders = ", ".join(["?"] * len(values))
        sql = (
            f"UPDATE {table} SET {', '.join(assignments)} "
            f"WHERE user_id = ? AND {column} IN ({placeholders}) RETURNING id"
        )
        result = self.connection.execute(sql, params + [user_id] + values).fetchall()
        self._commit()
        if result:
            self._notify(table, "update", user_id=user_id, count=len(result))
        return len(result)

    def _delete_many(self, table: str, user_id: str, column: str, values: Iterable[Any]) -> int:
        values = list(values)
        if not values:
            return 0
        placeholders = ", ".join(["?"] * len(values))
        count = self._scalar(
            f"SELECT COUNT(*) FROM {table} WHERE user_id = ? AND {column} IN ({placeholders})",
            [user_id] + values
        )
        self.connection.execute(
            f"DELETE FROM {table} WHERE user_id = ? AND {column} IN ({placeholders})",
            [user_id] + values
        )
        self._commit()
        if count:
            self._notify(table, "delete", user_id=user_id, count=count)
        return int(count or 0)

    # =========================
    # Schema Management
    # =========================
    def initialize_schema(self):
        """Create database schema if not exists"""
        logger.info("Initializing database schema...")

        # Split schema into individual statements
        statements = [s.strip() for s in SCHEMA_SQL.split(";") if s.strip()]

        for stmt in statements:
            self.connection.execute(stmt)

        self._commit()
        logger.info("Database schema initialized")

    def get_table_stats(self) -> Dict[str, int]:
        """Get row counts for all tables"""
        stats = {}
        for table in TABLES:
            result = self.connection.execute(f"SELECT COUNT(*) FROM {table}").fetchone()
            stats[table] = result[0] if result else 0
        return stats

    # =========================
    # Account Operations
    # =========================
    def upsert_account(self, account: Account) -> int:
        """Insert or update an account by (user_id, account_id), returns local id"""
        sql = """
        INSERT INTO accounts (
            id, user_id, account_id, account_name, email, access_token,
            refresh_token, token_expires_at, is_active, last_sync, settings,
            created_at, updated_at
        ) VALUES (
            nextval('seq_accounts_id'), ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?
        )
        ON CONFLICT (user_id, account_id) DO UPDATE SET
            account_name = EXCLUDED.account_name,
            email = EXCLUDED.email,
            access_token = EXCLUDED.access_token,
            refresh_token = COALESCE(EXCLUDED.refresh_token, accounts.refresh_token),
            token_expires_at = EXCLUDED.token_expires_at,
            is_active = EXCLUDED.is_active,
            settings = EXCLUDED.settings,
            disconnected_at = NULL,
            updated_at = EXCLUDED.updated_at
        RETURNING id
        """
        now = utcnow()
        result = self.connection.execute(sql, [
            account.user_id, account.account_id, account.account_name,
            account.email, account.access_token, account.refresh_token,
            account.token_expires_at, account.is_active, account.last_sync,
            dumps_json(account.settings), now, now
        ]).fetchone()
        self._commit()

        account_id = result[0] if result else None
        self._notify("accounts", "upsert", user_id=account.user_id, id=account_id)
        return account_id

    def get_account(self, user_id: str, account_id: int) -> Optional[Dict[str, Any]]:
        """Get an account owned by the user"""
        return self._row(
            "SELECT * FROM accounts WHERE id = ? AND user_id = ?",
            [account_id, user_id]
        )

    def list_accounts(self, user_id: str, active_only: bool = False) -> List[Dict[str, Any]]:
        sql = "SELECT * FROM accounts WHERE user_id = ?"
        if active_only:
            sql += " AND is_active"
        sql += " ORDER BY created_at, id"
        return self._rows(sql, [user_id])

    def update_account(self, user_id: str, account_id: int, **fields) -> bool:
        return self._update("accounts", user_id, account_id, fields)

    def deactivate_account(self, user_id: str, account_id: int) -> bool:
        """Mark an account inactive and drop its credentials"""
        return self._update("accounts", user_id, account_id, {
            "is_active": False,
            "disconnected_at": utcnow(),
            "access_token": None,
            "refresh_token": None,
            "token_expires_at": None,
        })

    # =========================
    # Location Operations
    # =========================
    def upsert_location(self, location: Location) -> int:
        """Insert or update a location by (user_id, location_id), returns local id"""
        sql = """
        INSERT INTO locations (
            id, user_id, gmb_account_id, location_id, location_name, address,
            phone, website, category, description, business_hours, rating,
            review_count, response_rate, latitude, longitude, is_active,
            metadata, created_at, updated_at
        ) VALUES (
            nextval('seq_locations_id'), ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?
        )
        ON CONFLICT (user_id, location_id) DO UPDATE SET
            gmb_account_id = EXCLUDED.gmb_account_id,
            location_name = EXCLUDED.location_name,
            address = EXCLUDED.address,
            phone = EXCLUDED.phone,
            website = EXCLUDED.website,
            category = EXCLUDED.category,
            description = EXCLUDED.description,
            business_hours = EXCLUDED.business_hours,
            rating = EXCLUDED.rating,
            review_count = EXCLUDED.review_count,
            latitude = EXCLUDED.latitude,
            longitude = EXCLUDED.longitude,
            is_active = EXCLUDED.is_active,
            is_archived = FALSE,
            archived_at = NULL,
            metadata = EXCLUDED.metadata,
            updated_at = EXCLUDED.updated_at
        RETURNING id
        """
        now = utcnow()
        result = self.connection.execute(sql, [
            location.user_id, location.gmb_account_id, location.location_id,
            location.location_name, location.address, location.phone,
            location.website, location.category, location.description,
            dumps_json(location.business_hours), location.rating,
            location.review_count, location.response_rate, location.latitude,
            location.longitude, location.is_active, dumps_json(location.metadata),
            now, now
        ]).fetchone()
        self._commit()

        location_id = result[0] if result else None
        self._notify("locations", "upsert", user_id=location.user_id, id=location_id)
        return location_id

    def get_location(self, user_id: str, location_id: int) -> Optional[Dict[str, Any]]:
        """Get a location owned by the user, with its account's Google id"""
        return self._row("""
            SELECT l.*, a.account_id AS google_account_id, a.is_active AS account_active
            FROM locations l
            LEFT JOIN accounts a ON a.id = l.gmb_account_id
            WHERE l.id = ? AND l.user_id = ?
        """, [location_id, user_id])

    def list_locations(
        self,
        user_id: str,
        account_id: Optional[int] = None,
        active_only: bool = False,
        include_archived: bool = True
    ) -> List[Dict[str, Any]]:
        """List a user's locations with optional filters"""
        conditions = ["user_id = ?"]
        params: List[Any] = [user_id]

        if account_id is not None:
            conditions.append("gmb_account_id = ?")
            params.append(account_id)
        if active_only:
            conditions.append("is_active")
        if not include_archived:
            conditions.append("NOT COALESCE(is_archived, FALSE)")

        sql = f"SELECT * FROM locations WHERE {' AND '.join(conditions)} ORDER BY id"
        return self._rows(sql, params)

    def update_location(self, user_id: str, location_id: int, **fields) -> bool:
        return self._update("locations", user_id, location_id, fields)

    def get_location_ids_for_account(self, user_id: str, account_id: int) -> List[int]:
        rows = self.connection.execute(
            "SELECT id FROM locations WHERE user_id = ? AND gmb_account_id = ? ORDER BY id",
            [user_id, account_id]
        ).fetchall()
        return [r[0] for r in rows]

    def archive_locations(self, user_id: str, location_ids: List[int]) -> int:
        return self._update_many("locations", user_id, "id", location_ids, {
            "is_active": False,
            "is_archived": True,
            "archived_at": utcnow(),
            "last_synced_at": None,
        })

    def delete_locations(self, user_id: str, location_ids: List[int]) -> int:
        return self._delete_many("locations", user_id, "id", location_ids)

    # =========================
    # Review Operations
    # =========================
    def upsert_review(self, review: Review) -> Tuple[int, bool]:
        """
        Insert or update a review keyed by its Google id

        Locally flagged or archived reviews keep their status, as do AI
        drafts awaiting approval while Google still shows no reply.

        Returns:
            (review id, True if the review was new)
        """
        now = utcnow()
        existing = self._row(
            "SELECT id, status FROM reviews WHERE user_id = ? AND external_review_id = ?",
            [review.user_id, review.external_review_id]
        )

        if existing:
            status = review.status
            if existing["status"] in (ReviewStatus.FLAGGED.value, ReviewStatus.ARCHIVED.value):
                status = existing["status"]
            elif existing["status"] == ReviewStatus.IN_PROGRESS.value and not review.has_reply:
                status = existing["status"]
            self.connection.execute("""
                UPDATE reviews SET
                    rating = ?, review_text = ?, reviewer_name = ?,
                    reviewer_profile_photo_url = ?, reply_text = ?, reply_date = ?,
                    has_reply = ?, status = ?, google_resource_name = ?,
                    review_url = ?, synced_at = ?, updated_at = ?
                WHERE id = ? AND user_id = ?
            """, [
                review.rating, review.review_text, review.reviewer_name,
                review.reviewer_profile_photo_url, review.reply_text,
                review.reply_date, review.has_reply, status,
                review.google_resource_name, review.review_url, now, now,
                existing["id"], review.user_id
            ])
            self._commit()
            self._notify("reviews", "update", user_id=review.user_id, id=existing["id"])
            return existing["id"], False

        result = self.connection.execute("""
            INSERT INTO reviews (
                id, user_id, location_id, external_review_id, rating, review_text,
                reviewer_name, reviewer_profile_photo_url, review_date, reply_text,
                reply_date, has_reply, status, ai_sentiment, google_resource_name,
                review_url, synced_at, created_at, updated_at
            ) VALUES (
                nextval('seq_reviews_id'), ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?
            )
            RETURNING id
        """, [
            review.user_id, review.location_id, review.external_review_id,
            review.rating, review.review_text, review.reviewer_name,
            review.reviewer_profile_photo_url, review.review_date,
            review.reply_text, review.reply_date, review.has_reply,
            review.status, review.ai_sentiment, review.google_resource_name,
            review.review_url, now, now, now
        ]).fetchone()
        self._commit()

        review_id = result[0]
        self._notify("reviews", "insert", user_id=review.user_id, id=review_id)
        return review_id, True

    def get_review(self, user_id: str, review_id: int) -> Optional[Dict[str, Any]]:
        """Get a review with the Google ids needed to act on it"""
        return self._row("""
            SELECT r.*, l.location_id AS google_location_id, l.location_name,
                   l.gmb_account_id, a.account_id AS google_account_id
            FROM reviews r
            LEFT JOIN locations l ON l.id = r.location_id
            LEFT JOIN accounts a ON a.id = l.gmb_account_id
            WHERE r.id = ? AND r.user_id = ?
        """, [review_id, user_id])

    def list_reviews(
        self,
        user_id: str,
        location_id: Optional[int] = None,
        rating: Optional[int] = None,
        has_reply: Optional[bool] = None,
        status: Optional[str] = None,
        sentiment: Optional[str] = None,
        search_query: Optional[str] = None,
        sort_by: str = "newest",
        limit: Optional[int] = 50,
        offset: int = 0
    ) -> Tuple[List[Dict[str, Any]], int]:
        """
        Filtered, sorted, paginated reviews

        Returns:
            (rows for the page, total matching count)
        """
        conditions = ["r.user_id = ?"]
        params: List[Any] = [user_id]

        if location_id is not None:
            conditions.append("r.location_id = ?")
            params.append(location_id)
        if rating is not None:
            conditions.append("r.rating = ?")
            params.append(rating)
        if has_reply is not None:
            conditions.append("COALESCE(r.has_reply, FALSE) = ?")
            params.append(has_reply)
        if status:
            conditions.append("r.status = ?")
            params.append(status)
        if sentiment:
            conditions.append("r.ai_sentiment = ?")
            params.append(sentiment)
        if search_query:
            conditions.append("(r.review_text ILIKE ? OR r.reviewer_name ILIKE ?)")
            pattern = f"%{search_query}%"
            params.extend([pattern, pattern])

        where = " AND ".join(conditions)
        order = {
            "newest": "r.review_date DESC NULLS LAST, r.id DESC",
            "oldest": "r.review_date ASC NULLS LAST, r.id ASC",
            "highest": "r.rating DESC, r.review_date DESC NULLS LAST",
            "lowest": "r.rating ASC, r.review_date DESC NULLS LAST",
        }.get(sort_by, "r.review_date DESC NULLS LAST, r.id DESC")

        total = self._scalar(f"SELECT COUNT(*) FROM reviews r WHERE {where}", params)

        sql = f"""
            SELECT r.*, l.location_name, l.address AS location_address
            FROM reviews r
            LEFT JOIN locations l ON l.id = r.location_id
            WHERE {where}
            ORDER BY {order}
        """
        page_params = list(params)
        if limit:
            sql += " LIMIT ? OFFSET ?"
            page_params.extend([limit, offset])

        return self._rows(sql, page_params), int(total or 0)

    def get_reviews_for_user(
        self,
        user_id: str,
        location_id: Optional[int] = None,
        include_archived: bool = False
    ) -> List[Dict[str, Any]]:
        """All reviews of a user (optionally one location), newest first"""
        sql = "SELECT * FROM reviews WHERE user_id = ?"
        params: List[Any] = [user_id]
        if location_id is not None:
            sql += " AND location_id = ?"
            params.append(location_id)
        if not include_archived:
            sql += " AND NOT COALESCE(is_archived, FALSE)"
        sql += " ORDER BY review_date DESC NULLS LAST, id DESC"
        return self._rows(sql, params)

    def update_review(self, user_id: str, review_id: int, **fields) -> bool:
        return self._update("reviews", user_id, review_id, fields)

    def archive_reviews_for_locations(self, user_id: str, location_ids: List[int]) -> int:
        """Archive reviews and strip reviewer identity"""
        return self._update_many("reviews", user_id, "location_id", location_ids, {
            "is_archived": True,
            "is_anonymized": True,
            "archived_at": utcnow(),
            "reviewer_name": "Anonymous User",
            "reviewer_profile_photo_url": None,
        })

    def delete_reviews_for_locations(self, user_id: str, location_ids: List[int]) -> int:
        return self._delete_many("reviews", user_id, "location_id", location_ids)

    # =========================
    # Question Operations
    # =========================
    def upsert_question(self, question: Question, answer_id: Optional[str] = None) -> Tuple[int, bool]:
        """Insert or update a question keyed by its Google id"""
        now = utcnow()
        existing = self._row(
            "SELECT id FROM questions WHERE user_id = ? AND question_id = ?",
            [question.user_id, question.question_id]
        )

        if existing:
            self.connection.execute("""
                UPDATE questions SET
                    question_text = ?, author_name = ?, answer_text = ?,
                    answered_at = ?, answered_by = ?, answer_id = ?,
                    answer_status = ?, upvote_count = ?, total_answer_count = ?,
                    google_resource_name = ?, synced_at = ?, updated_at = ?
                WHERE id = ? AND user_id = ?
            """, [
                question.question_text, question.author_name, question.answer_text,
                question.answered_at, question.answered_by, answer_id,
                question.answer_status, question.upvote_count,
                question.total_answer_count, question.google_resource_name,
                now, now, existing["id"], question.user_id
            ])
            self._commit()
            self._notify("questions", "update", user_id=question.user_id, id=existing["id"])
            return existing["id"], False

        result = self.connection.execute("""
            INSERT INTO questions (
                id, user_id, location_id, question_id, question_text, author_name,
                asked_at, answer_text, answered_at, answered_by, answer_id,
                answer_status, priority, upvote_count, total_answer_count,
                google_resource_name, synced_at, created_at, updated_at
            ) VALUES (
                nextval('seq_questions_id'), ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?
            )
            RETURNING id
        """, [
            question.user_id, question.location_id, question.question_id,
            question.question_text, question.author_name, question.asked_at,
            question.answer_text, question.answered_at, question.answered_by,
            answer_id, question.answer_status, question.priority,
            question.upvote_count, question.total_answer_count,
            question.google_resource_name, now, now, now
        ]).fetchone()
        self._commit()

        question_id = result[0]
        self._notify("questions", "insert", user_id=question.user_id, id=question_id)
        return question_id, True

    def get_question(self, user_id: str, question_id: int) -> Optional[Dict[str, Any]]:
        return self._row("""
            SELECT q.*, l.location_id AS google_location_id, l.location_name,
                   l.gmb_account_id, a.account_id AS google_account_id
            FROM questions q
            LEFT JOIN locations l ON l.id = q.location_id
            LEFT JOIN accounts a ON a.id = l.gmb_account_id
            WHERE q.id = ? AND q.user_id = ?
        """, [question_id, user_id])

    def list_questions(
        self,
        user_id: str,
        location_id: Optional[int] = None,
        status: str = "all",
        priority: Optional[str] = None,
        search_query: Optional[str] = None,
        sort_by: str = "newest",
        limit: Optional[int] = 50,
        offset: int = 0
    ) -> Tuple[List[Dict[str, Any]], int]:
        """Filtered, sorted, paginated questions with total count"""
        conditions = ["q.user_id = ?"]
        params: List[Any] = [user_id]

        if location_id is not None:
            conditions.append("q.location_id = ?")
            params.append(location_id)
        if status == "unanswered":
            conditions.append("q.answer_status IN ('unanswered', 'pending')")
        elif status == "answered":
            conditions.append("q.answer_status = 'answered'")
        if priority:
            conditions.append("q.priority = ?")
            params.append(priority)
        if search_query:
            conditions.append("(q.question_text ILIKE ? OR q.answer_text ILIKE ?)")
            pattern = f"%{search_query}%"
            params.extend([pattern, pattern])

        where = " AND ".join(conditions)
        order = {
            "newest": "q.asked_at DESC NULLS LAST, q.id DESC",
            "oldest": "q.asked_at ASC NULLS LAST, q.id ASC",
            "most_upvoted": "q.upvote_count DESC, q.id DESC",
            "urgent": (
                "CASE q.priority WHEN 'urgent' THEN 0 WHEN 'high' THEN 1 "
                "WHEN 'medium' THEN 2 ELSE 3 END, q.asked_at DESC NULLS LAST"
            ),
        }.get(sort_by, "q.created_at DESC, q.id DESC")

        total = self._scalar(f"SELECT COUNT(*) FROM questions q WHERE {where}", params)

        sql = f"""
            SELECT q.*, l.location_name, l.address AS location_address
            FROM questions q
            LEFT JOIN locations l ON l.id = q.location_id
            WHERE {where}
            ORDER BY {order}
        """
        page_params = list(params)
        if limit:
            sql += " LIMIT ? OFFSET ?"
            page_params.extend([limit, offset])

        return self._rows(sql, page_params), int(total or 0)

    def get_questions_for_user(self, user_id: str, location_id: Optional[int] = None) -> List[Dict[str, Any]]:
        sql = "SELECT * FROM questions WHERE user_id = ? AND NOT COALESCE(is_archived, FALSE)"
        params: List[Any] = [user_id]
        if location_id is not None:
            sql += " AND location_id = ?"
            params.append(location_id)
        return self._rows(sql + " ORDER BY id", params)

    def update_question(self, user_id: str, question_id: int, **fields) -> bool:
        return self._update("questions", user_id, question_id, fields)

    def archive_questions_for_locations(self, user_id: str, location_ids: List[int]) -> int:
        return self._update_many("questions", user_id, "location_id", location_ids, {
            "is_archived": True,
            "archived_at": utcnow(),
            "author_name": "Anonymous User",
        })

    def delete_questions_for_locations(self, user_id: str, location_ids: List[int]) -> int:
        return self._delete_many("questions", user_id, "location_id", location_ids)

    # =========================
    # Post Operations
    # =========================
    def insert_post(self, post: Post) -> int:
        now = utcnow()
        result = self.connection.execute("""
            INSERT INTO posts (
                id, user_id, location_id, provider_post_id, post_type, title,
                content, media_url, call_to_action, call_to_action_url,
                start_date, end_date, scheduled_at, published_at, status,
                metadata, created_at, updated_at
            ) VALUES (
                nextval('seq_posts_id'), ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?
            )
            RETURNING id
        """, [
            post.user_id, post.location_id, post.provider_post_id, post.post_type,
            post.title, post.content, post.media_url, post.call_to_action,
            post.call_to_action_url, post.start_date, post.end_date,
            post.scheduled_at, post.published_at, post.status,
            dumps_json(post.metadata), now, now
        ]).fetchone()
        self._commit()

        post_id = result[0]
        self._notify("posts", "insert", user_id=post.user_id, id=post_id)
        return post_id

    def get_post(self, user_id: str, post_id: int) -> Optional[Dict[str, Any]]:
        return self._row("""
            SELECT p.*, l.location_id AS google_location_id, l.location_name,
                   l.gmb_account_id, a.account_id AS google_account_id
            FROM posts p
            LEFT JOIN locations l ON l.id = p.location_id
            LEFT JOIN accounts a ON a.id = l.gmb_account_id
            WHERE p.id = ? AND p.user_id = ?
        """, [post_id, user_id])

    def find_post_by_provider_id(self, user_id: str, provider_post_id: str) -> Optional[Dict[str, Any]]:
        return self._row(
            "SELECT * FROM posts WHERE user_id = ? AND provider_post_id = ?",
            [user_id, provider_post_id]
        )

    def list_posts(
        self,
        user_id: str,
        location_id: Optional[int] = None,
        post_type: str = "all",
        status: str = "all",
        search_query: Optional[str] = None,
        sort_by: str = "newest",
        limit: Optional[int] = 50,
        offset: int = 0
    ) -> Tuple[List[Dict[str, Any]], int]:
        conditions = ["p.user_id = ?"]
        params: List[Any] = [user_id]

        if location_id is not None:
            conditions.append("p.location_id = ?")
            params.append(location_id)
        if post_type and post_type != "all":
            conditions.append("p.post_type = ?")
            params.append(post_type)
        if status and status != "all":
            conditions.append("p.status = ?")
            params.append(status)
        if search_query:
            conditions.append("(p.title ILIKE ? OR p.content ILIKE ?)")
            pattern = f"%{search_query}%"
            params.extend([pattern, pattern])

        where = " AND ".join(conditions)
        order = {
            "newest": "p.created_at DESC, p.id DESC",
            "oldest": "p.created_at ASC, p.id ASC",
            "scheduled": "p.scheduled_at ASC NULLS LAST, p.id ASC",
        }.get(sort_by, "p.created_at DESC, p.id DESC")

        total = self._scalar(f"SELECT COUNT(*) FROM posts p WHERE {where}", params)

        sql = f"""
            SELECT p.*, l.location_name
            FROM posts p
            LEFT JOIN locations l ON l.id = p.location_id
            WHERE {where}
            ORDER BY {order}
        """
        page_params = list(params)
        if limit:
            sql += " LIMIT ? OFFSET ?"
            page_params.extend([limit, offset])

        return self._rows(sql, page_params), int(total or 0)

    def get_posts_for_user(self, user_id: str, location_id: Optional[int] = None) -> List[Dict[str, Any]]:
        sql = "SELECT * FROM posts WHERE user_id = ? AND NOT COALESCE(is_archived, FALSE)"
        params: List[Any] = [user_id]
        if location_id is not None:
            sql += " AND location_id = ?"
            params.append(location_id)
        return self._rows(sql + " ORDER BY id", params)

    def get_due_posts(self, now: datetime, user_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """Queued posts whose scheduled time has passed"""
        sql = "SELECT * FROM posts WHERE status = 'queued' AND scheduled_at <= ?"
        params: List[Any] = [now]
        if user_id is not None:
            sql += " AND user_id = ?"
            params.append(user_id)
        return self._rows(sql + " ORDER BY scheduled_at, id", params)

    def update_post(self, user_id: str, post_id: int, **fields) -> bool:
        return self._update("posts", user_id, post_id, fields)

    def delete_post(self, user_id: str, post_id: int) -> bool:
        return self._delete_many("posts", user_id, "id", [post_id]) > 0

    def archive_posts_for_locations(self, user_id: str, location_ids: List[int]) -> int:
        return self._update_many("posts", user_id, "location_id", location_ids, {
            "is_archived": True,
            "archived_at": utcnow(),
        })

    def delete_posts_for_locations(self, user_id: str, location_ids: List[int]) -> int:
        return self._delete_many("posts", user_id, "location_id", location_ids)

    # =========================
    # Performance Metrics
    # =========================
    def upsert_metrics(self, metrics: List[PerformanceMetric]) -> int:
        """Insert or replace daily metric values"""
        if not metrics:
            return 0

        sql = """
        INSERT INTO performance_metrics (
            user_id, location_id, metric_date, metric_type, metric_value, created_at
        ) VALUES (?, ?, ?, ?, ?, ?)
        ON CONFLICT (location_id, metric_date, metric_type) DO UPDATE SET
            metric_value = EXCLUDED.metric_value
        """
        now = utcnow()
        with self.transaction() as conn:
            for m in metrics:
                conn.execute(sql, [
                    m.user_id, m.location_id, m.metric_date, m.metric_type,
                    m.metric_value, now
                ])

        self._notify("performance_metrics", "upsert", user_id=metrics[0].user_id, count=len(metrics))
        return len(metrics)

    def get_metrics(
        self,
        user_id: str,
        location_id: Optional[int] = None,
        start_date: Optional[Any] = None,
        end_date: Optional[Any] = None,
        metric_types: Optional[List[str]] = None
    ) -> List[Dict[str, Any]]:
        """Metric rows as dicts (location_id, metric_date, metric_type, metric_value)"""
        conditions = ["user_id = ?"]
        params: List[Any] = [user_id]

        if location_id is not None:
            conditions.append("location_id = ?")
            params.append(location_id)
        if start_date is not None:
            conditions.append("metric_date >= ?")
            params.append(start_date)
        if end_date is not None:
            conditions.append("metric_date <= ?")
            params.append(end_date)
        if metric_types:
            conditions.append(f"metric_type IN ({', '.join(['?'] * len(metric_types))})")
            params.extend(metric_types)

        sql = f"""
            SELECT location_id, metric_date, metric_type, metric_value
            FROM performance_metrics
            WHERE {' AND '.join(conditions)}
            ORDER BY metric_date, metric_type
        """
        return self._rows(sql, params)

    def delete_metrics_for_locations(self, user_id: str, location_ids: List[int]) -> int:
        return self._delete_many("performance_metrics", user_id, "location_id", location_ids)

    # =========================
    # Activity Log
    # =========================
    def log_activity(
        self,
        user_id: str,
        activity_type: str,
        message: str,
        metadata: Optional[Dict[str, Any]] = None
    ) -> int:
        result = self.connection.execute("""
            INSERT INTO activity_logs (id, user_id, activity_type, message, metadata, created_at)
            VALUES (nextval('seq_activity_id'), ?, ?, ?, ?, ?)
            RETURNING id
        """, [user_id, activity_type, message, dumps_json(metadata or {}), utcnow()]).fetchone()
        self._commit()
        self._notify("activity_logs", "insert", user_id=user_id, id=result[0])
        return result[0]

    def get_recent_activity(self, user_id: str, limit: int = 10) -> List[Dict[str, Any]]:
        return self._rows("""
            SELECT * FROM activity_logs
            WHERE user_id = ?
            ORDER BY created_at DESC, id DESC
            LIMIT ?
        """, [user_id, limit])

    # =========================
    # Sync Run Operations
    # =========================
    def start_sync_run(self, user_id: str, location_id: Optional[int] = None) -> int:
        """Start a new sync run, returns run ID"""
        result = self.connection.execute("""
            INSERT INTO sync_runs (id, user_id, location_id, status, started_at)
            VALUES (nextval('seq_sync_runs_id'), ?, ?, ?, ?)
            RETURNING id
        """, [user_id, location_id, SyncStatus.IN_PROGRESS.value, utcnow()]).fetchone()
        self._commit()

        run_id = result[0] if result else None
        logger.debug(f"Started sync run {run_id} for location {location_id}")
        return run_id

    def finish_sync_run(
        self,
        run_id: int,
        status: str,
        stats_dict: Optional[Dict] = None,
        error_message: Optional[str] = None
    ):
        self.connection.execute("""
            UPDATE sync_runs
            SET status = ?, completed_at = ?, stats_json = ?, error_message = ?
            WHERE id = ?
        """, [status, utcnow(), json.dumps(stats_dict or {}), error_message, run_id])
        self._commit()

    def get_last_sync_run(self, user_id: str, location_id: Optional[int] = None) -> Optional[Dict[str, Any]]:
        sql = "SELECT * FROM sync_runs WHERE user_id = ?"
        params: List[Any] = [user_id]
        if location_id is not None:
            sql += " AND location_id = ?"
            params.append(location_id)
        return self._row(sql + " ORDER BY started_at DESC, id DESC LIMIT 1", params)

    # =========================
    # Answer Templates
    # =========================
    def insert_template(
        self,
        user_id: str,
        category: Optional[str],
        question_pattern: str,
        template_answer: str
    ) -> int:
        result = self.connection.execute("""
            INSERT INTO answer_templates (id, user_id, category, question_pattern, template_answer, created_at)
            VALUES (nextval('seq_templates_id'), ?, ?, ?, ?, ?)
            RETURNING id
        """, [user_id, category, question_pattern.lower(), template_answer, utcnow()]).fetchone()
        self._commit()
        return result[0]

    def list_templates(self, user_id: str, category: Optional[str] = None) -> List[Dict[str, Any]]:
        sql = "SELECT * FROM answer_templates WHERE user_id = ?"
        params: List[Any] = [user_id]
        if category:
            sql += " AND category = ?"
            params.append(category)
        return self._rows(sql + " ORDER BY usage_count DESC, id", params)

    def increment_template_usage(self, user_id: str, template_id: int):
        self.connection.execute(
            "UPDATE answer_templates SET usage_count = usage_count + 1 WHERE id = ? AND user_id = ?",
            [template_id, user_id]
        )
        self._commit()

    # =========================
    # User Settings
    # =========================
    def get_user_settings(self, user_id: str) -> Dict[str, Any]:
        row = self._row("SELECT settings FROM user_settings WHERE user_id = ?", [user_id])
        return row["settings"] if row else {}

    def save_user_settings(self, user_id: str, settings: Dict[str, Any]):
        self.connection.execute("""
            INSERT INTO user_settings (user_id, settings, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT (user_id) DO UPDATE SET
                settings = EXCLUDED.settings,
                updated_at = EXCLUDED.updated_at
        """, [user_id, dumps_json(settings), utcnow()])
        self._commit()
        self._notify("user_settings", "upsert", user_id=user_id)
