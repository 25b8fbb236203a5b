"""
Tests for review management
"""
import sys
from datetime import datetime
from pathlib import Path
from unittest.mock import MagicMock

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from gbp_dashboard.errors import PermissionDeniedError, RateLimitError
from gbp_dashboard.reviews import ReviewManager, has_reply, review_resource_name

USER = "user-1"


@pytest.fixture
def reviews(db, client_factory, generator):
    return ReviewManager(db, generator=generator, client_factory=client_factory, sleep=MagicMock())


@pytest.mark.unit
class TestHelpers:

    def test_resource_name_prefers_stored(self):
        assert review_resource_name({"google_resource_name": "accounts/1/locations/2/reviews/3"}) == \
            "accounts/1/locations/2/reviews/3"

    def test_resource_name_built(self):
        row = {"google_account_id": "accounts/1", "google_location_id": "locations/2", "external_review_id": "r"}
        assert review_resource_name(row) == "accounts/1/locations/2/reviews/r"

    def test_has_reply(self):
        assert has_reply({"has_reply": True})
        assert has_reply({"reply_text": "Thanks"})
        assert not has_reply({"reply_text": "   "})
        assert not has_reply({})


@pytest.mark.integration
class TestListing:

    def test_get_reviews_page(self, reviews, make_review):
        for _ in range(3):
            make_review()

        data = reviews.get_reviews(USER, limit=2).data

        assert data["total"] == 3
        assert len(data["reviews"]) == 2
        assert data["hasMore"] is True
        assert data["reviews"][0]["location_name"] == "Acme Downtown"

        last = reviews.get_reviews(USER, limit=2, offset=2).data
        assert last["hasMore"] is False

    def test_invalid_filter(self, reviews):
        result = reviews.get_reviews(USER, rating=9)
        assert result.error_code == "VALIDATION_ERROR"

    def test_other_user_sees_nothing(self, reviews, make_review):
        make_review()
        assert reviews.get_reviews("user-2").data["total"] == 0


@pytest.mark.integration
class TestReplies:

    def test_reply(self, db, reviews, make_review, fake_google):
        review_id = make_review()

        result = reviews.reply_to_review(USER, review_id, "  Thanks for coming!  ")

        assert result.success
        fake_google.reply_to_review.assert_called_once_with(
            "accounts/111/locations/222/reviews/rev-1", "Thanks for coming!"
        )
        review = db.get_review(USER, review_id)
        assert review["reply_text"] == "Thanks for coming!"
        assert review["has_reply"] is True
        assert review["status"] == "responded"
        assert review["reply_date"] is not None
        assert db.get_recent_activity(USER)[0]["activity_type"] == "review_reply"

    def test_reply_twice(self, reviews, make_review, fake_google):
        review_id = make_review()
        reviews.reply_to_review(USER, review_id, "Thanks")

        result = reviews.reply_to_review(USER, review_id, "Thanks again")

        assert result.error_code == "ALREADY_REPLIED"
        assert fake_google.reply_to_review.call_count == 1

    def test_reply_validation(self, reviews, make_review, fake_google):
        review_id = make_review()
        result = reviews.reply_to_review(USER, review_id, "x" * 4097)
        assert result.error_code == "VALIDATION_ERROR"
        fake_google.reply_to_review.assert_not_called()

    def test_reply_missing_review(self, reviews):
        assert reviews.reply_to_review(USER, 404, "Thanks").error_code == "NOT_FOUND"

    def test_reply_google_permission_error(self, db, reviews, make_review, fake_google):
        review_id = make_review()
        fake_google.reply_to_review.side_effect = PermissionDeniedError("no access")

        result = reviews.reply_to_review(USER, review_id, "Thanks")

        assert result.error_code == "PERMISSION_DENIED"
        assert db.get_review(USER, review_id)["has_reply"] is False

    def test_update_and_delete_reply(self, db, reviews, make_review, fake_google):
        review_id = make_review()
        assert reviews.update_reply(USER, review_id, "New").error_code == "NO_REPLY"
        assert reviews.delete_reply(USER, review_id).error_code == "NO_REPLY"

        reviews.reply_to_review(USER, review_id, "First")
        assert reviews.update_reply(USER, review_id, "Second").success
        assert db.get_review(USER, review_id)["reply_text"] == "Second"

        assert reviews.delete_reply(USER, review_id).success
        fake_google.delete_review_reply.assert_called_once()
        review = db.get_review(USER, review_id)
        assert review["has_reply"] is False
        assert review["reply_text"] is None
        assert review["status"] == "pending"


@pytest.mark.integration
class TestBulkReply:

    def test_bulk_reply(self, reviews, make_review):
        first = make_review()
        second = make_review()
        reviews.reply_to_review(USER, second, "Already done")

        result = reviews.bulk_reply(USER, [first, second, 404], "Thank you!")

        assert result.success
        assert result.message == "Replied to 1 of 3 reviews"
        outcome = {r["review_id"]: r["success"] for r in result.data["results"]}
        assert outcome == {first: True, second: False, 404: False}
        assert reviews.sleep.call_count == 2

    def test_bulk_limit(self, reviews):
        result = reviews.bulk_reply(USER, list(range(1, 52)), "Thanks")
        assert result.error_code == "VALIDATION_ERROR"

    def test_bulk_empty(self, reviews):
        assert reviews.bulk_reply(USER, [], "Thanks").error_code == "VALIDATION_ERROR"

    def test_bulk_all_fail(self, reviews, make_review, fake_google):
        review_id = make_review()
        fake_google.reply_to_review.side_effect = RateLimitError("429")

        result = reviews.bulk_reply(USER, [review_id], "Thanks")

        assert result.error_code == "BULK_REPLY_FAILED"
        assert "few minutes" in result.data["results"][0]["error"]


@pytest.mark.integration
class TestModerationAndStats:

    def test_flag_and_archive(self, db, reviews, make_review):
        review_id = make_review()
        assert reviews.flag_review(USER, review_id, "spam").success
        review = db.get_review(USER, review_id)
        assert review["status"] == "flagged"
        assert review["flagged_reason"] == "spam"

        assert reviews.archive_review(USER, review_id).success
        review = db.get_review(USER, review_id)
        assert review["status"] == "archived"
        assert review["is_archived"] is True

    def test_stats(self, reviews, make_review):
        make_review(rating=5, ai_sentiment="positive", review_text="Great service")
        make_review(rating=1, ai_sentiment="negative", review_text="Bad service, slow")
        make_review(
            rating=4, ai_sentiment="positive", review_text="Quick service",
            has_reply=True, reply_text="Thanks", status="replied",
            review_date=datetime(2024, 6, 1, 10), reply_date=datetime(2024, 6, 1, 16),
        )

        data = reviews.get_review_stats(USER).data

        assert data["total"] == 3
        assert data["pending"] == 2
        assert data["replied"] == 1
        assert data["byRating"] == {1: 1, 2: 0, 3: 0, 4: 1, 5: 1}
        assert data["bySentiment"] == {"positive": 2, "neutral": 0, "negative": 1}
        assert data["averageRating"] == 3.3
        assert data["responseRate"] == 33.3
        assert data["avgResponseHours"] == 6
        assert data["topKeywords"][0] == "service"

    def test_stats_empty(self, reviews):
        data = reviews.get_review_stats(USER).data
        assert data["total"] == 0
        assert data["averageRating"] == 0.0
        assert data["topKeywords"] == []


@pytest.mark.integration
class TestAIReplies:

    def test_generate_saves_suggestion(self, db, reviews, make_review, generator):
        review_id = make_review(rating=2, review_text="Cold coffee")

        result = reviews.generate_ai_reply(USER, review_id, tone="apologetic")

        assert result.data["reply"] == "Thank you for your kind words!"
        generator.generate_review_reply.assert_called_once_with(
            "Cold coffee", 2, tone="apologetic", location_name="Acme Downtown"
        )
        assert db.get_review(USER, review_id)["ai_suggested_reply"] == "Thank you for your kind words!"

    def test_generate_without_saving(self, db, reviews, make_review):
        review_id = make_review()
        reviews.generate_ai_reply(USER, review_id, save=False)
        assert db.get_review(USER, review_id)["ai_suggested_reply"] is None

    def test_approve(self, db, reviews, make_review, fake_google):
        review_id = make_review()
        assert reviews.approve_ai_reply(USER, review_id).error_code == "NO_SUGGESTION"

        reviews.generate_ai_reply(USER, review_id)
        result = reviews.approve_ai_reply(USER, review_id)

        assert result.success
        review = db.get_review(USER, review_id)
        assert review["reply_text"] == "Thank you for your kind words!"
        assert review["ai_suggested_reply"] is None
