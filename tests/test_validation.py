"""
Tests for pydantic input models
"""
import sys
from datetime import datetime
from pathlib import Path

import pytest
from pydantic import ValidationError

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from gbp_dashboard.validation import (
    ReplyInput,
    AnswerInput,
    CreatePostInput,
    UpdatePostInput,
    ReviewFilter,
    QuestionFilter,
    PostFilter,
    AutoReplySettings,
)


@pytest.mark.unit
class TestReplyAndAnswer:

    def test_reply_is_stripped(self):
        assert ReplyInput(review_id=1, reply_text="  Thanks!  ").reply_text == "Thanks!"

    def test_reply_length_limit(self):
        ReplyInput(review_id=1, reply_text="x" * 4096)
        with pytest.raises(ValidationError):
            ReplyInput(review_id=1, reply_text="x" * 4097)

    def test_reply_needs_positive_id(self):
        with pytest.raises(ValidationError):
            ReplyInput(review_id=0, reply_text="ok")

    def test_answer_length_limit(self):
        AnswerInput(question_id=1, answer_text="y" * 1500)
        with pytest.raises(ValidationError):
            AnswerInput(question_id=1, answer_text="y" * 1501)

    def test_blank_answer_rejected(self):
        with pytest.raises(ValidationError):
            AnswerInput(question_id=1, answer_text="   ")


@pytest.mark.unit
class TestPostInputs:

    def test_defaults(self):
        data = CreatePostInput(location_id=1, description="Hello")
        assert data.post_type == "whats_new"
        assert data.scheduled_at is None

    def test_event_requires_title(self):
        with pytest.raises(ValidationError, match="event posts require a title"):
            CreatePostInput(location_id=1, post_type="event", description="Party")

    def test_end_before_start(self):
        with pytest.raises(ValidationError, match="end_date"):
            CreatePostInput(
                location_id=1,
                post_type="event",
                title="Party",
                description="Come",
                start_date=datetime(2024, 6, 2),
                end_date=datetime(2024, 6, 1),
            )

    def test_url_validation(self):
        ok = CreatePostInput(location_id=1, description="x", cta_type="BOOK", cta_url=" https://acme.test/book ")
        assert ok.cta_url == "https://acme.test/book"
        assert CreatePostInput(location_id=1, description="x", media_url="").media_url is None
        with pytest.raises(ValidationError):
            CreatePostInput(location_id=1, description="x", media_url="ftp://nope")

    def test_unknown_cta(self):
        with pytest.raises(ValidationError):
            CreatePostInput(location_id=1, description="x", cta_type="DANCE")

    def test_update_only_sets_given_fields(self):
        data = UpdatePostInput(post_id=3, title="New title")
        assert data.model_dump(exclude_unset=True) == {"post_id": 3, "title": "New title"}


@pytest.mark.unit
class TestFilters:

    def test_review_filter_defaults(self):
        f = ReviewFilter()
        assert f.sort_by == "newest"
        assert f.limit == 50
        assert f.offset == 0

    @pytest.mark.parametrize("kwargs", [
        {"rating": 6},
        {"limit": 0},
        {"limit": 101},
        {"offset": -1},
        {"sort_by": "random"},
    ])
    def test_review_filter_rejects(self, kwargs):
        with pytest.raises(ValidationError):
            ReviewFilter(**kwargs)

    def test_question_filter(self):
        assert QuestionFilter(status="unanswered", sort_by="urgent").priority is None
        with pytest.raises(ValidationError):
            QuestionFilter(priority="whenever")

    def test_post_filter(self):
        assert PostFilter().status == "all"
        with pytest.raises(ValidationError):
            PostFilter(status="deleted")


@pytest.mark.unit
class TestAutoReplySettings:

    def test_defaults(self):
        s = AutoReplySettings()
        assert not s.enabled
        assert s.min_rating == 4
        assert s.reply_to_positive and not s.reply_to_neutral and not s.reply_to_negative
        assert s.require_approval
        assert s.tone == "friendly"

    def test_extra_keys_ignored(self):
        s = AutoReplySettings(enabled=True, legacy_flag=True)
        assert s.enabled
        assert "legacy_flag" not in s.model_dump()

    def test_bad_tone(self):
        with pytest.raises(ValidationError):
            AutoReplySettings(tone="sarcastic")
