"""
Automatic replies to new reviews
Settings are stored per user; replies are drafted with OpenAI
"""
import logging
from typing import Optional

from .base import BaseService, user_action
from .database.models import ReviewStatus
from .errors import ActionResult, NotFoundError
from .reviews import ReviewManager, has_reply
from .validation import AutoReplySettings

logger = logging.getLogger(__name__)

SETTINGS_KEY = "auto_reply"


class AutoReplyEngine(BaseService):
    """
    Decides whether a review gets an automatic reply and produces it

    With require_approval the draft is stored on the review (status
    in_progress) for a person to send; otherwise it is posted straight away.
    """

    def __init__(self, db, review_manager: Optional[ReviewManager] = None, **kwargs):
        super().__init__(db, **kwargs)
        self.reviews = review_manager or ReviewManager(
            db,
            token_manager=self.tokens,
            client_factory=self.client_factory,
            event_bus=self.events,
        )

    def load_settings(self, user_id: str) -> AutoReplySettings:
        stored = self.db.get_user_settings(user_id).get(SETTINGS_KEY) or {}
        return AutoReplySettings(**stored)

    @user_action
    def get_settings(self, user_id: str) -> ActionResult:
        return ActionResult.ok(data=self.load_settings(user_id).model_dump())

    @user_action
    def save_settings(self, user_id: str, **settings) -> ActionResult:
        validated = AutoReplySettings(**settings)
        blob = self.db.get_user_settings(user_id)
        blob[SETTINGS_KEY] = validated.model_dump()
        self.db.save_user_settings(user_id, blob)
        self.refresh_dashboard(action="auto_reply_settings")
        logger.info(f"Auto-reply {'enabled' if validated.enabled else 'disabled'} for user {user_id}")
        return ActionResult.ok("Auto-reply settings saved", validated.model_dump())

    @user_action
    def process_review(self, user_id: str, review_id: int) -> ActionResult:
        """Reply to (or draft a reply for) one review if the settings allow it"""
        review = self.db.get_review(user_id, review_id)
        if not review:
            raise NotFoundError("Review not found")
        if has_reply(review):
            return ActionResult.fail("Review already has a reply", "ALREADY_REPLIED")

        settings = self.load_settings(user_id)
        if not settings.enabled:
            return ActionResult.fail("Auto-reply is disabled", "AUTO_REPLY_DISABLED")
        if settings.location_id is not None and settings.location_id != review["location_id"]:
            return ActionResult.fail("Auto-reply is not enabled for this location", "AUTO_REPLY_DISABLED")

        rating = int(review.get("rating") or 0)
        wanted = (
            (rating >= 4 and settings.reply_to_positive)
            or (rating == 3 and settings.reply_to_neutral)
            or (rating <= 2 and settings.reply_to_negative)
        )
        if not wanted:
            return ActionResult.fail("Review rating doesn't match auto-reply criteria", "RATING_NOT_MATCHED")
        if rating < settings.min_rating:
            return ActionResult.fail("Review rating is below minimum threshold", "RATING_NOT_MATCHED")

        reply = self.reviews.generator.generate_review_reply(
            review.get("review_text"),
            rating,
            tone=settings.tone,
            location_name=review.get("location_name"),
        )

        if settings.require_approval:
            self.db.update_review(
                user_id, review["id"],
                ai_suggested_reply=reply,
                status=ReviewStatus.IN_PROGRESS.value,
            )
            self.refresh_dashboard(action="auto_reply_draft", review_id=review["id"])
            return ActionResult.ok("AI reply generated and saved for approval", {"id": review["id"], "reply": reply})

        result = self.reviews.reply_to_review(user_id, review["id"], reply)
        if not result.success:
            return result
        return ActionResult.ok("Auto-reply sent successfully", {"id": review["id"], "reply": reply})
