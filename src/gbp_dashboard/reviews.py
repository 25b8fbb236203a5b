"""
Review management
Listing, replying (single and bulk), flagging, stats and AI drafts
"""
import logging
import time
from typing import Any, Callable, Dict, List, Optional

from . import config
from .ai import ContentGenerator, calculate_review_stats, extract_keywords
from .base import BaseService, user_action
from .database.models import ReviewStatus, Sentiment
from .errors import ActionResult, NotFoundError
from .google_client import build_review_resource_name
from .utils import utcnow
from .validation import ReplyInput, ReviewFilter

logger = logging.getLogger(__name__)


def review_resource_name(review: Dict[str, Any]) -> str:
    """Google resource name of a stored review (joined row from get_review)"""
    if review.get("google_resource_name"):
        return review["google_resource_name"]
    return build_review_resource_name(
        review["google_account_id"],
        review["google_location_id"],
        review["external_review_id"]
    )


def has_reply(review: Dict[str, Any]) -> bool:
    return bool(review.get("has_reply")) or bool(str(review.get("reply_text") or "").strip())


class ReviewManager(BaseService):
    """Review actions for one user at a time"""

    def __init__(
        self,
        db,
        generator: Optional[ContentGenerator] = None,
        sleep: Optional[Callable[[float], None]] = None,
        **kwargs
    ):
        super().__init__(db, **kwargs)
        self._generator = generator
        self.sleep = sleep or time.sleep

    @property
    def generator(self) -> ContentGenerator:
        """OpenAI content generator, created on first use"""
        if self._generator is None:
            self._generator = ContentGenerator()
        return self._generator

    def _get(self, user_id: str, review_id: int) -> Dict[str, Any]:
        review = self.db.get_review(user_id, review_id)
        if not review:
            raise NotFoundError("Review not found")
        return review

    # =========================
    # Listing
    # =========================
    @user_action
    def get_reviews(self, user_id: str, **filters) -> ActionResult:
        """
        Filtered page of reviews

        Keyword args are the ReviewFilter fields (location_id, rating,
        has_reply, status, sentiment, search_query, sort_by, limit, offset).
        """
        f = ReviewFilter(**filters)
        rows, total = self.db.list_reviews(user_id, **f.model_dump())
        return ActionResult.ok(data={
            "reviews": rows,
            "total": total,
            "limit": f.limit,
            "offset": f.offset,
            "hasMore": f.offset + len(rows) < total,
        })

    # =========================
    # Replies
    # =========================
    @user_action
    def reply_to_review(self, user_id: str, review_id: int, reply_text: str) -> ActionResult:
        """Post a reply on Google and record it"""
        data = ReplyInput(review_id=review_id, reply_text=reply_text)
        review = self._get(user_id, data.review_id)
        if has_reply(review):
            return ActionResult.fail("This review already has a reply.", "ALREADY_REPLIED")

        client = self.google_client(user_id, review["gmb_account_id"])
        client.reply_to_review(review_resource_name(review), data.reply_text)

        self.db.update_review(
            user_id, review["id"],
            reply_text=data.reply_text,
            reply_date=utcnow(),
            has_reply=True,
            status=ReviewStatus.RESPONDED.value,
            ai_suggested_reply=None,
        )
        self.db.log_activity(user_id, "review_reply", f"Replied to a review from {review.get('reviewer_name')}",
                             {"review_id": review["id"]})
        self.refresh_dashboard(action="review_reply", review_id=review["id"])
        logger.info(f"Replied to review {review['id']}")
        return ActionResult.ok("Reply posted successfully", {"id": review["id"]})

    @user_action
    def update_reply(self, user_id: str, review_id: int, reply_text: str) -> ActionResult:
        """Replace an existing reply"""
        data = ReplyInput(review_id=review_id, reply_text=reply_text)
        review = self._get(user_id, data.review_id)
        if not has_reply(review):
            return ActionResult.fail("This review has no reply to update.", "NO_REPLY")

        client = self.google_client(user_id, review["gmb_account_id"])
        client.reply_to_review(review_resource_name(review), data.reply_text)

        self.db.update_review(user_id, review["id"], reply_text=data.reply_text, reply_date=utcnow())
        self.refresh_dashboard(action="review_reply_updated", review_id=review["id"])
        return ActionResult.ok("Reply updated successfully", {"id": review["id"]})

    @user_action
    def delete_reply(self, user_id: str, review_id: int) -> ActionResult:
        review = self._get(user_id, review_id)
        if not has_reply(review):
            return ActionResult.fail("This review has no reply to delete.", "NO_REPLY")

        client = self.google_client(user_id, review["gmb_account_id"])
        client.delete_review_reply(review_resource_name(review))

        self.db.update_review(
            user_id, review["id"],
            reply_text=None,
            reply_date=None,
            has_reply=False,
            status=ReviewStatus.PENDING.value,
        )
        self.refresh_dashboard(action="review_reply_deleted", review_id=review["id"])
        return ActionResult.ok("Reply deleted successfully", {"id": review["id"]})

    @user_action
    def bulk_reply(self, user_id: str, review_ids: List[int], reply_text: str) -> ActionResult:
        """
        Send the same reply to several reviews

        At most SYNC_CONFIG["max_bulk_reviews"] at once, with a short pause
        between Google calls. Succeeds when at least one reply went out.
        """
        if not review_ids:
            return ActionResult.fail("No reviews selected", "VALIDATION_ERROR")
        limit = config.SYNC_CONFIG["max_bulk_reviews"]
        if len(review_ids) > limit:
            return ActionResult.fail(f"Cannot reply to more than {limit} reviews at once", "VALIDATION_ERROR")

        results = []
        replied = 0
        for i, review_id in enumerate(review_ids):
            if i > 0:
                self.sleep(config.SYNC_CONFIG["bulk_reply_delay"])
            result = self.reply_to_review(user_id, review_id, reply_text)
            if result.success:
                replied += 1
            results.append({"review_id": review_id, "success": result.success, "error": result.error})

        message = f"Replied to {replied} of {len(review_ids)} reviews"
        logger.info(message)
        if replied == 0:
            return ActionResult.fail(message, "BULK_REPLY_FAILED", {"results": results})
        return ActionResult.ok(message, {"replied": replied, "total": len(review_ids), "results": results})

    # =========================
    # Moderation
    # =========================
    @user_action
    def flag_review(self, user_id: str, review_id: int, reason: Optional[str] = None) -> ActionResult:
        review = self._get(user_id, review_id)
        self.db.update_review(user_id, review["id"], status=ReviewStatus.FLAGGED.value, flagged_reason=reason)
        self.refresh_dashboard(action="review_flagged", review_id=review["id"])
        return ActionResult.ok("Review flagged", {"id": review["id"]})

    @user_action
    def archive_review(self, user_id: str, review_id: int) -> ActionResult:
        review = self._get(user_id, review_id)
        self.db.update_review(
            user_id, review["id"],
            status=ReviewStatus.ARCHIVED.value,
            is_archived=True,
            archived_at=utcnow(),
        )
        self.refresh_dashboard(action="review_archived", review_id=review["id"])
        return ActionResult.ok("Review archived", {"id": review["id"]})

    # =========================
    # Stats
    # =========================
    @user_action
    def get_review_stats(self, user_id: str, location_id: Optional[int] = None) -> ActionResult:
        reviews = self.db.get_reviews_for_user(user_id, location_id)
        total = len(reviews)

        by_rating = {star: 0 for star in range(1, 6)}
        by_sentiment = {s.value: 0 for s in Sentiment}
        for review in reviews:
            if review.get("rating") in by_rating:
                by_rating[review["rating"]] += 1
            if review.get("ai_sentiment") in by_sentiment:
                by_sentiment[review["ai_sentiment"]] += 1

        replied = sum(1 for r in reviews if has_reply(r))
        ratings = [r["rating"] for r in reviews if r.get("rating")]

        return ActionResult.ok(data={
            "total": total,
            "pending": sum(1 for r in reviews if r.get("status") == ReviewStatus.PENDING.value),
            "replied": replied,
            "flagged": sum(1 for r in reviews if r.get("status") == ReviewStatus.FLAGGED.value),
            "byRating": by_rating,
            "bySentiment": by_sentiment,
            "averageRating": round(sum(ratings) / len(ratings), 1) if ratings else 0.0,
            "responseRate": round(replied / total * 100, 1) if total else 0.0,
            "avgResponseHours": calculate_review_stats(reviews)["avgTime"],
            "topKeywords": extract_keywords(reviews),
        })

    # =========================
    # AI
    # =========================
    @user_action
    def generate_ai_reply(
        self,
        user_id: str,
        review_id: int,
        tone: str = "friendly",
        save: bool = True
    ) -> ActionResult:
        """Draft a reply with OpenAI, optionally storing it as the suggestion"""
        review = self._get(user_id, review_id)
        reply = self.generator.generate_review_reply(
            review.get("review_text"),
            review.get("rating") or 0,
            tone=tone,
            location_name=review.get("location_name"),
        )
        if save:
            self.db.update_review(user_id, review["id"], ai_suggested_reply=reply)
        return ActionResult.ok("AI reply generated", {"id": review["id"], "reply": reply})

    @user_action
    def approve_ai_reply(self, user_id: str, review_id: int) -> ActionResult:
        """Send the stored AI suggestion as the reply"""
        review = self._get(user_id, review_id)
        suggestion = (review.get("ai_suggested_reply") or "").strip()
        if not suggestion:
            return ActionResult.fail("No AI reply awaiting approval", "NO_SUGGESTION")
        return self.reply_to_review(user_id, review_id, suggestion)
