"""
Tests for automatic review replies
"""
import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from gbp_dashboard.auto_reply import AutoReplyEngine
from gbp_dashboard.reviews import ReviewManager

USER = "user-1"


@pytest.fixture
def engine(db, client_factory, generator):
    reviews = ReviewManager(db, generator=generator, client_factory=client_factory, sleep=MagicMock())
    return AutoReplyEngine(db, review_manager=reviews)


@pytest.mark.unit
class TestSettings:

    def test_defaults(self, engine):
        settings = engine.get_settings(USER).data
        assert settings["enabled"] is False
        assert settings["min_rating"] == 4
        assert settings["reply_to_positive"] is True
        assert settings["reply_to_negative"] is False
        assert settings["require_approval"] is True
        assert settings["tone"] == "friendly"

    def test_save_and_load(self, db, engine):
        db.save_user_settings(USER, {"theme": "dark"})

        result = engine.save_settings(USER, enabled=True, tone="professional", require_approval=False)

        assert result.message == "Auto-reply settings saved"
        settings = engine.load_settings(USER)
        assert settings.enabled is True
        assert settings.tone == "professional"
        # other settings in the blob survive
        assert db.get_user_settings(USER)["theme"] == "dark"

    def test_invalid_settings(self, engine):
        assert engine.save_settings(USER, min_rating=9).error_code == "VALIDATION_ERROR"
        assert engine.save_settings(USER, tone="sarcastic").error_code == "VALIDATION_ERROR"


@pytest.mark.integration
class TestProcessReview:

    def test_disabled(self, engine, make_review):
        assert engine.process_review(USER, make_review()).error_code == "AUTO_REPLY_DISABLED"

    def test_missing_review(self, engine):
        assert engine.process_review(USER, 404).error_code == "NOT_FOUND"

    def test_already_replied(self, engine, make_review):
        engine.save_settings(USER, enabled=True)
        review_id = make_review(has_reply=True, reply_text="Thanks")
        assert engine.process_review(USER, review_id).error_code == "ALREADY_REPLIED"

    def test_other_location_only(self, engine, make_review, location_id):
        engine.save_settings(USER, enabled=True, location_id=location_id + 1)
        assert engine.process_review(USER, make_review()).error_code == "AUTO_REPLY_DISABLED"

    def test_rating_filters(self, engine, make_review):
        engine.save_settings(USER, enabled=True)
        assert engine.process_review(USER, make_review(rating=2)).error_code == "RATING_NOT_MATCHED"

        engine.save_settings(USER, enabled=True, reply_to_neutral=True, min_rating=4)
        result = engine.process_review(USER, make_review(rating=3))
        assert result.error_code == "RATING_NOT_MATCHED"
        assert "minimum" in result.error

    def test_draft_for_approval(self, db, engine, make_review, fake_google, generator):
        engine.save_settings(USER, enabled=True, tone="professional")
        review_id = make_review(rating=5, review_text="Lovely")

        result = engine.process_review(USER, review_id)

        assert result.message == "AI reply generated and saved for approval"
        generator.generate_review_reply.assert_called_once_with(
            "Lovely", 5, tone="professional", location_name="Acme Downtown"
        )
        review = db.get_review(USER, review_id)
        assert review["status"] == "in_progress"
        assert review["ai_suggested_reply"] == "Thank you for your kind words!"
        assert review["has_reply"] is False
        fake_google.reply_to_review.assert_not_called()

    def test_send_directly(self, db, engine, make_review, fake_google):
        engine.save_settings(USER, enabled=True, require_approval=False)
        review_id = make_review(rating=4)

        result = engine.process_review(USER, review_id)

        assert result.message == "Auto-reply sent successfully"
        fake_google.reply_to_review.assert_called_once()
        review = db.get_review(USER, review_id)
        assert review["reply_text"] == "Thank you for your kind words!"
        assert review["status"] == "responded"

    def test_negative_when_enabled(self, engine, make_review):
        engine.save_settings(USER, enabled=True, reply_to_negative=True, min_rating=1)
        assert engine.process_review(USER, make_review(rating=1)).success
