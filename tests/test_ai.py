"""
Tests for AI content generation and review heuristics
"""
import sys
import json
from datetime import datetime
from pathlib import Path
from unittest.mock import MagicMock, patch

import openai
import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from gbp_dashboard import config
from gbp_dashboard.ai import (
    ContentGenerator,
    OpenAIRateLimitError,
    analyze_sentiment,
    calculate_review_stats,
    extract_keywords,
    sentiment_from_rating,
)
from gbp_dashboard.errors import AIGenerationError, ConfigurationError


@pytest.fixture
def openai_client():
    return MagicMock()


@pytest.fixture
def content_generator(openai_client):
    return ContentGenerator(api_key="test-key", model="test-model", client=openai_client)


@pytest.mark.unit
class TestContentGenerator:
    """Test OpenAI-backed generation"""

    def test_requires_api_key(self, monkeypatch):
        monkeypatch.setitem(config.OPENAI_CONFIG, "api_key", None)
        with pytest.raises(ConfigurationError):
            ContentGenerator()

    def test_review_reply(self, content_generator, openai_client, mock_openai_response):
        openai_client.chat.completions.create.return_value = mock_openai_response(
            '  "Thanks so much for visiting!"  '
        )

        reply = content_generator.generate_review_reply("Lovely place", 5, tone="professional",
                                                        location_name="Acme")

        assert reply == "Thanks so much for visiting!"
        kwargs = openai_client.chat.completions.create.call_args[1]
        assert kwargs["model"] == "test-model"
        user_prompt = kwargs["messages"][1]["content"]
        assert "Rating: 5/5" in user_prompt
        assert "polite and professional" in user_prompt
        assert "Acme" in user_prompt

    def test_rating_only_review(self, content_generator, openai_client, mock_openai_response):
        openai_client.chat.completions.create.return_value = mock_openai_response("Thank you!")
        content_generator.generate_review_reply(None, 4)
        prompt = openai_client.chat.completions.create.call_args[1]["messages"][1]["content"]
        assert "rating only" in prompt

    def test_reply_trimmed_to_limit(self, content_generator, openai_client, mock_openai_response):
        openai_client.chat.completions.create.return_value = mock_openai_response("a" * 5000)
        reply = content_generator.generate_review_reply("ok", 3)
        assert len(reply) == config.MAX_REPLY_LENGTH
        assert reply.endswith("...")

    def test_empty_reply_raises(self, content_generator, openai_client, mock_openai_response):
        openai_client.chat.completions.create.return_value = mock_openai_response("   ")
        with pytest.raises(AIGenerationError):
            content_generator.generate_review_reply("ok", 3)

    def test_question_answer_with_context(self, content_generator, openai_client, mock_openai_response):
        openai_client.chat.completions.create.return_value = mock_openai_response("We open at 9.")

        answer = content_generator.generate_question_answer("When do you open?", "Acme", context="Hours 9-5")

        assert answer == "We open at 9."
        prompt = openai_client.chat.completions.create.call_args[1]["messages"][1]["content"]
        assert "Known facts: Hours 9-5" in prompt

    def test_post_content_uses_schema(self, content_generator, openai_client, mock_openai_response):
        openai_client.chat.completions.create.return_value = mock_openai_response(json.dumps({
            "title": "Summer sale", "content": "Everything 20% off", "cta": "SHOP",
        }))

        post = content_generator.generate_post_content("summer sale", post_type="offer")

        assert post == {"title": "Summer sale", "content": "Everything 20% off", "cta": "SHOP"}
        kwargs = openai_client.chat.completions.create.call_args[1]
        assert kwargs["response_format"]["type"] == "json_schema"
        assert kwargs["response_format"]["json_schema"]["name"] == "business_post"

    def test_post_content_parsed_message(self, content_generator, openai_client, mock_openai_response):
        response = mock_openai_response(None)
        response.choices[0].message.parsed = {"title": "T", "content": "Body", "cta": ""}
        openai_client.chat.completions.create.return_value = response

        post = content_generator.generate_post_content("x")
        assert post["cta"] == "LEARN_MORE"

    def test_post_content_bad_json(self, content_generator, openai_client, mock_openai_response):
        openai_client.chat.completions.create.return_value = mock_openai_response("not json")
        with pytest.raises(AIGenerationError, match="JSON"):
            content_generator.generate_post_content("x")

    def test_no_choices(self, content_generator, openai_client):
        openai_client.chat.completions.create.return_value = MagicMock(choices=[])
        with pytest.raises(AIGenerationError, match="no choices"):
            content_generator.generate_review_reply("ok", 5)

    @patch("time.sleep")
    def test_rate_limit_retry(self, mock_sleep, content_generator, openai_client, mock_openai_response):
        openai_client.chat.completions.create.side_effect = [
            openai.OpenAIError("Error code: 429 - rate_limit_exceeded"),
            mock_openai_response("Thanks!"),
        ]
        assert content_generator.generate_review_reply("ok", 5) == "Thanks!"
        assert openai_client.chat.completions.create.call_count == 2

    @patch("time.sleep")
    def test_rate_limit_exhausted(self, mock_sleep, content_generator, openai_client):
        openai_client.chat.completions.create.side_effect = openai.OpenAIError("429 Too Many Requests")
        with pytest.raises(OpenAIRateLimitError):
            content_generator.generate_review_reply("ok", 5)
        assert openai_client.chat.completions.create.call_count == config.OPENAI_CONFIG["max_retries"]

    def test_other_errors_not_retried(self, content_generator, openai_client):
        openai_client.chat.completions.create.side_effect = openai.OpenAIError("model not found")
        with pytest.raises(AIGenerationError, match="model not found"):
            content_generator.generate_review_reply("ok", 5)
        assert openai_client.chat.completions.create.call_count == 1

    def test_extract_text_from_parts(self):
        msg = MagicMock()
        msg.content = [{"type": "text", "text": "Hello "}, {"type": "image"}, {"type": "text", "text": "there"}]
        assert ContentGenerator._extract_text(msg) == "Hello there"


@pytest.mark.unit
class TestSentiment:

    @pytest.mark.parametrize("text,sentiment,score", [
        ("Great coffee, friendly staff", "positive", 0.9),
        ("Rude staff and slow service", "negative", 0.1),
        ("It was a coffee shop", "neutral", 0.5),
        ("Great but slow", "neutral", 0.5),
        (None, "neutral", 0.5),
    ])
    def test_analyze(self, text, sentiment, score):
        result = analyze_sentiment(text)
        assert result.sentiment == sentiment
        assert result.score == score

    def test_scores_clamped(self):
        text = "excellent great amazing wonderful fantastic love best perfect"
        assert analyze_sentiment(text).score == 1.0
        text = "terrible awful horrible worst bad poor"
        assert analyze_sentiment(text).score == 0.0

    @pytest.mark.parametrize("rating,expected", [
        (5, "positive"), (4, "positive"), (3, "neutral"), (2, "negative"), (1, "negative"), (None, "neutral"),
    ])
    def test_from_rating(self, rating, expected):
        assert sentiment_from_rating(rating) == expected


@pytest.mark.unit
class TestReviewHeuristics:

    def test_extract_keywords(self):
        reviews = [
            {"review_text": "Great service and great food"},
            {"review_text": "Service was slow"},
            {"comment": "Loved the music"},
            {"review_text": None},
        ]
        keywords = extract_keywords(reviews, top_n=2)
        assert keywords[0] == "service"
        assert len(keywords) == 2

    def test_extract_keywords_empty(self):
        assert extract_keywords([]) == []

    def test_review_stats(self):
        reviews = [
            {"review_date": datetime(2024, 5, 1, 10), "reply_date": datetime(2024, 5, 1, 14), "has_reply": True},
            {"review_date": "2024-05-01T10:00:00Z", "reply_text": "Thanks", "reply_date": "2024-05-02T10:00:00Z"},
            # replies later than 30 days are left out of the average
            {"review_date": datetime(2024, 1, 1), "reply_date": datetime(2024, 3, 1), "has_reply": True},
            {"review_date": datetime(2024, 5, 3)},
        ]
        stats = calculate_review_stats(reviews)
        assert stats["pending"] == 1
        assert stats["responseRate"] == 75
        assert stats["avgTime"] == 14

    def test_review_stats_empty(self):
        assert calculate_review_stats([]) == {"pending": 0, "responseRate": 0, "avgTime": 0}
