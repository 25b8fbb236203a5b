"""
Location sync
Pulls reviews, questions, posts and daily metrics from Google into DuckDB
"""
import logging
import time
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional

from . import config
from .ai import analyze_sentiment, sentiment_from_rating
from .base import BaseService, user_action
from .database.models import (
    Review, Question, PerformanceMetric,
    ReviewStatus, AnswerStatus, SyncStatus,
)
from .database.queries import DashboardQueries
from .errors import ActionResult, DashboardError
from .events import SYNC_COMPLETE
from .google_client import star_rating_to_int
from .posts import store_google_posts
from .utils import utcnow, parse_timestamp, last_path_segment, minutes_between

logger = logging.getLogger(__name__)


# =========================
# Google Payload Mapping
# =========================
def review_from_google(item: Dict[str, Any], user_id: str, location_id: int) -> Review:
    """Map a v4 review onto a Review row"""
    reviewer = item.get("reviewer") or {}
    reply = item.get("reviewReply") or {}
    text = item.get("comment")
    rating = star_rating_to_int(item.get("starRating"))
    has_reply = bool(reply.get("comment"))

    return Review(
        user_id=user_id,
        location_id=location_id,
        external_review_id=item.get("reviewId") or last_path_segment(item.get("name")),
        rating=rating,
        review_text=text,
        reviewer_name=reviewer.get("displayName") or "Anonymous",
        reviewer_profile_photo_url=reviewer.get("profilePhotoUrl"),
        review_date=parse_timestamp(item.get("createTime")),
        reply_text=reply.get("comment"),
        reply_date=parse_timestamp(reply.get("updateTime")),
        has_reply=has_reply,
        status=ReviewStatus.REPLIED.value if has_reply else ReviewStatus.PENDING.value,
        ai_sentiment=analyze_sentiment(text).sentiment if text else sentiment_from_rating(rating),
        google_resource_name=item.get("name"),
    )


def question_from_google(item: Dict[str, Any], user_id: str, location_id: int) -> Question:
    """Map a Q&A question (with at most one top answer) onto a Question row"""
    answers = item.get("topAnswers") or []
    top = answers[0] if answers else {}

    return Question(
        user_id=user_id,
        location_id=location_id,
        question_id=last_path_segment(item.get("name")),
        question_text=item.get("text") or "",
        author_name=(item.get("author") or {}).get("displayName") or "Anonymous",
        asked_at=parse_timestamp(item.get("createTime")),
        answer_text=top.get("text"),
        answered_at=parse_timestamp(top.get("updateTime") or top.get("createTime")),
        answered_by=(top.get("author") or {}).get("displayName"),
        answer_status=AnswerStatus.ANSWERED.value if top else AnswerStatus.UNANSWERED.value,
        upvote_count=int(item.get("upvoteCount") or 0),
        total_answer_count=int(item.get("totalAnswerCount") or 0),
        google_resource_name=item.get("name"),
    )


class SyncEngine(BaseService):
    """
    Synchronises locations with Google

    Each location sync runs four independent steps (reviews, questions,
    posts, metrics). A failing step is recorded and the others still run.
    """

    STEPS = ("reviews", "questions", "posts", "metrics")

    def __init__(
        self,
        db,
        auto_reply=None,
        metrics_days: int = 30,
        sleep: Optional[Callable[[float], None]] = None,
        clock: Optional[Callable[[], Any]] = None,
        **kwargs
    ):
        """
        Args:
            db: DatabaseManager instance
            auto_reply: AutoReplyEngine handed every new unreplied review
            metrics_days: How many days of metrics to fetch per sync
            sleep: Delay function between locations (time.sleep)
            clock: Returns naive UTC now
        """
        super().__init__(db, **kwargs)
        self.auto_reply = auto_reply
        self.metrics_days = metrics_days
        self.sleep = sleep or time.sleep
        self.clock = clock or utcnow
        self.queries = DashboardQueries(db)

    # =========================
    # Steps
    # =========================
    def _sync_reviews(self, user_id: str, location: Dict[str, Any], client) -> Dict[str, Any]:
        items = client.list_reviews(location["google_account_id"], location["location_id"])
        if not items:
            logger.info(f"No reviews found for location {location['id']}")
            return {"synced": 0, "new": 0, "autoReplied": 0}

        new_unreplied: List[int] = []
        new_count = 0
        for item in items:
            review = review_from_google(item, user_id, location["id"])
            review_id, is_new = self.db.upsert_review(review)
            if is_new:
                new_count += 1
                if not review.has_reply:
                    new_unreplied.append(review_id)

        auto_replied = 0
        if self.auto_reply is not None:
            for review_id in new_unreplied:
                if self.auto_reply.process_review(user_id, review_id).success:
                    auto_replied += 1

        logger.info(f"Synced {len(items)} reviews for location {location['id']}")
        return {"synced": len(items), "new": new_count, "autoReplied": auto_replied}

    def _sync_questions(self, user_id: str, location: Dict[str, Any], client) -> Dict[str, Any]:
        items = client.list_questions(location["location_id"])
        for item in items:
            answers = item.get("topAnswers") or []
            answer_id = last_path_segment(answers[0].get("name")) if answers else None
            self.db.upsert_question(question_from_google(item, user_id, location["id"]), answer_id=answer_id)

        logger.info(f"Synced {len(items)} questions successfully for location {location['id']}")
        return {"synced": len(items)}

    def _sync_posts(self, user_id: str, location: Dict[str, Any], client) -> Dict[str, Any]:
        items = client.list_local_posts(location["google_account_id"], location["location_id"])
        return store_google_posts(self.db, user_id, location["id"], items)

    def _sync_metrics(self, user_id: str, location: Dict[str, Any], client) -> Dict[str, Any]:
        end = self.clock().date()
        start = end - timedelta(days=self.metrics_days)
        rows = client.fetch_daily_metrics(location["location_id"], start, end)
        count = self.db.upsert_metrics([
            PerformanceMetric(
                user_id=user_id,
                location_id=location["id"],
                metric_date=row["metric_date"],
                metric_type=row["metric_type"],
                metric_value=row["metric_value"],
            )
            for row in rows
        ])
        return {"synced": count}

    def _update_location_summary(self, user_id: str, location_id: int):
        summary = self.queries.get_review_summary(user_id, location_id)
        fields: Dict[str, Any] = {
            "last_synced_at": self.clock(),
            "review_count": summary["total"],
            "response_rate": summary["response_rate"],
        }
        if summary["total"]:
            fields["rating"] = summary["avg_rating"]
        self.db.update_location(user_id, location_id, **fields)

    # =========================
    # Operations
    # =========================
    @user_action
    def sync_location(self, user_id: str, location_id: int) -> ActionResult:
        """
        Sync one location

        Succeeds when at least one step worked. When some steps failed the
        result is still a success, with a partial message listing them.
        """
        location = self.require_location(user_id, location_id)
        if location.get("is_archived") or location.get("account_active") is False:
            return ActionResult.fail("Account is inactive", "ACCOUNT_INACTIVE")

        run_id = self.db.start_sync_run(user_id, location_id)
        try:
            client = self.google_client(user_id, location["gmb_account_id"])
        except DashboardError as e:
            self.db.finish_sync_run(run_id, SyncStatus.FAILED.value, error_message=str(e))
            raise

        steps = {
            "reviews": self._sync_reviews,
            "questions": self._sync_questions,
            "posts": self._sync_posts,
            "metrics": self._sync_metrics,
        }
        stats: Dict[str, Any] = {}
        failures: Dict[str, DashboardError] = {}
        for name in self.STEPS:
            try:
                stats[name] = steps[name](user_id, location, client)
            except DashboardError as e:
                logger.warning(f"Sync step {name} failed for location {location_id}: {e}")
                failures[name] = e

        errors = {name: str(e) for name, e in failures.items()}

        if len(failures) == len(self.STEPS):
            self.db.finish_sync_run(run_id, SyncStatus.FAILED.value, {"errors": errors},
                                    error_message="; ".join(errors.values()))
            first = next(iter(failures.values()))
            return ActionResult.from_exception(first, data={"errors": errors})

        self._update_location_summary(user_id, location_id)
        self.db.update_account(user_id, location["gmb_account_id"], last_sync=self.clock())

        if failures:
            status = SyncStatus.PARTIAL
            message = f"Location partially synced. Failed: {', '.join(failures)}"
        else:
            status = SyncStatus.COMPLETED
            message = "Location synced successfully"

        self.db.finish_sync_run(run_id, status.value, {"stats": stats, "errors": errors},
                                error_message="; ".join(errors.values()) or None)
        self.db.log_activity(user_id, "sync", f"Synced {location.get('location_name') or location_id}",
                             {"location_id": location_id, "status": status.value})

        self.events.publish(SYNC_COMPLETE, {"user_id": user_id, "location_id": location_id, "stats": stats})
        self.refresh_dashboard(action="sync", location_id=location_id)

        logger.info(f"{message} (location {location_id})")
        return ActionResult.ok(message, {"stats": stats, "errors": errors, "status": status.value})

    @user_action
    def sync_all_locations(self, user_id: str) -> ActionResult:
        """Sync every active location, pausing between them"""
        locations = self.db.list_locations(user_id, active_only=True, include_archived=False)
        if not locations:
            return ActionResult.ok("No active locations to sync", {"synced": 0, "total": 0, "results": []})

        results = []
        synced = 0
        for i, location in enumerate(locations):
            if i > 0:
                self.sleep(config.SYNC_CONFIG["delay_between_locations"])
            result = self.sync_location(user_id, location["id"])
            if result.success:
                synced += 1
            results.append({"location_id": location["id"], **result.to_dict()})

        message = f"Successfully synced {synced} of {len(locations)} locations"
        data = {"synced": synced, "total": len(locations), "results": results}
        logger.info(message)
        if synced == 0:
            return ActionResult.fail(message, "SYNC_FAILED", data)
        return ActionResult.ok(message, data)

    @user_action
    def get_sync_status(self, user_id: str, location_id: int) -> ActionResult:
        """Last sync time and whether the location's data is stale"""
        location = self.require_location(user_id, location_id)
        last_synced = parse_timestamp(location.get("last_synced_at"))
        minutes = minutes_between(last_synced, self.clock())
        last_run = self.db.get_last_sync_run(user_id, location_id)

        return ActionResult.ok(data={
            "location_id": location_id,
            "last_synced_at": last_synced,
            "minutes_since_sync": minutes,
            "is_stale": minutes is None or minutes > config.SYNC_CONFIG["stale_after_minutes"],
            "last_run_status": last_run["status"] if last_run else None,
        })
