"""
AI content generation for reviews, questions and posts
Uses the OpenAI API, plus lightweight keyword heuristics for sentiment
"""
import json
import logging
from collections import Counter
from dataclasses import dataclass, asdict
from typing import List, Dict, Any, Optional

import openai
from openai import OpenAI
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type
)

from . import config
from .errors import AIGenerationError, ConfigurationError
from .utils import parse_timestamp

logger = logging.getLogger(__name__)


# =========================
# Custom Exceptions
# =========================
class OpenAIRateLimitError(AIGenerationError):
    """OpenAI rate limit exceeded"""
    code = "RATE_LIMIT"


# =========================
# Prompts and Schema
# =========================
REVIEW_REPLY_PROMPT = (
    "You are a helpful business owner responding to customer reviews on Google. "
    "Write a reply that:\n"
    "- is concise (under 500 characters)\n"
    "- matches the requested tone\n"
    "- thanks the customer and acknowledges the specific points they raised\n"
    "- for ratings of 3 stars or less, apologises sincerely and invites the customer "
    "to continue the conversation offline\n"
    "- never invents facts about the business\n"
    "Return only the reply text, with no preamble, quotes or signature placeholders."
)

QUESTION_ANSWER_PROMPT = (
    "You answer customer questions on a Google Business Profile on behalf of the business. "
    "Be accurate, friendly and brief (under 300 characters). If the answer depends on "
    "details you do not know, invite the customer to contact the business directly. "
    "Return only the answer text."
)

POST_CONTENT_PROMPT = (
    "You write Google Business Profile posts for local businesses. "
    "Write an engaging post with a short title, body text under 1500 characters "
    "and a suggested call to action. Avoid hashtags and phone numbers."
)

TONE_DESCRIPTIONS = {
    "friendly": "warm and friendly",
    "professional": "polite and professional",
    "apologetic": "empathetic and apologetic",
    "marketing": "upbeat and promotional",
}


def get_post_schema() -> Dict[str, Any]:
    """OpenAI structured output schema for generated posts"""
    return {
        "name": "business_post",
        "schema": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "title": {"type": "string", "maxLength": config.MAX_POST_TITLE_LENGTH},
                "content": {"type": "string"},
                "cta": {
                    "type": "string",
                    "enum": ["BOOK", "ORDER", "LEARN_MORE", "SIGN_UP", "CALL", "SHOP"]
                }
            },
            "required": ["title", "content", "cta"]
        },
        "strict": True
    }


def _trim(text: str, limit: int) -> str:
    text = (text or "").strip().strip('"').strip()
    if len(text) <= limit:
        return text
    return text[:limit - 3].rstrip() + "..."


# =========================
# Content Generator
# =========================
class ContentGenerator:
    """Generate review replies, answers and post copy with OpenAI"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        client: Optional[Any] = None
    ):
        """
        Initialize content generator

        Args:
            api_key: OpenAI API key (uses config if None)
            model: Model name (uses config if None)
            client: Pre-built OpenAI client (tests)
        """
        self.api_key = api_key or config.OPENAI_CONFIG["api_key"]
        self.model = model or config.OPENAI_CONFIG["model"]
        self.temperature = config.OPENAI_CONFIG["temperature"]

        if client is None and not self.api_key:
            raise ConfigurationError("OpenAI API key is not configured")
        self.client = client or OpenAI(api_key=self.api_key)

        logger.info(f"ContentGenerator initialized with model: {self.model}")

    @retry(
        reraise=True,
        stop=stop_after_attempt(config.OPENAI_CONFIG["max_retries"]),
        wait=wait_exponential(
            multiplier=1,
            min=config.OPENAI_CONFIG["retry_min_wait"],
            max=config.OPENAI_CONFIG["retry_max_wait"]
        ),
        retry=retry_if_exception_type(OpenAIRateLimitError),
    )
    def _call_api(
        self,
        messages: List[Dict[str, str]],
        schema: Optional[Dict[str, Any]] = None
    ):
        """Call OpenAI API with retry logic, returns the first message"""
        kwargs: Dict[str, Any] = {
            "model": self.model,
            "temperature": self.temperature,
            "messages": messages,
        }
        if schema:
            kwargs["response_format"] = {"type": "json_schema", "json_schema": schema}

        try:
            response = self.client.chat.completions.create(**kwargs)
        except openai.OpenAIError as e:
            error_msg = str(e).lower()
            if isinstance(e, openai.RateLimitError) or "rate_limit" in error_msg or "429" in error_msg:
                logger.warning("Rate limit hit, retrying...")
                raise OpenAIRateLimitError("OpenAI rate limit exceeded")
            logger.error(f"OpenAI request failed: {e}")
            raise AIGenerationError(f"AI request failed: {e}") from e

        if not response.choices:
            raise AIGenerationError("AI service returned no choices")
        return response.choices[0].message

    @staticmethod
    def _extract_text(msg) -> str:
        """Extract plain text from an OpenAI message"""
        content = getattr(msg, "content", None)
        if isinstance(content, str):
            return content

        if isinstance(content, list):
            texts = []
            for item in content:
                if isinstance(item, dict):
                    if item.get("type") == "text":
                        texts.append(item.get("text", ""))
                elif getattr(item, "type", None) == "text":
                    texts.append(getattr(item, "text", ""))
            return "".join(texts)

        return ""

    def _extract_json(self, msg) -> Dict[str, Any]:
        """Extract JSON from OpenAI message, structured output first"""
        parsed = getattr(msg, "parsed", None)
        if parsed is not None:
            return parsed if isinstance(parsed, dict) else parsed.model_dump()

        text = self._extract_text(msg).strip()
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise AIGenerationError(f"Unable to parse AI response as JSON: {e}") from e

    def generate_review_reply(
        self,
        review_text: Optional[str],
        rating: int,
        tone: str = "friendly",
        location_name: Optional[str] = None
    ) -> str:
        """
        Generate a reply to a customer review

        Args:
            review_text: Review comment (may be empty for rating-only reviews)
            rating: Star rating 1-5
            tone: friendly, professional, apologetic or marketing
            location_name: Business name to mention

        Returns:
            Reply text trimmed to the platform limit
        """
        tone_desc = TONE_DESCRIPTIONS.get(tone, tone)
        user_prompt = (
            f"Business: {location_name or 'our business'}\n"
            f"Rating: {rating}/5\n"
            f"Tone: {tone_desc}\n"
            f"Review: {review_text or '(no comment, rating only)'}"
        )

        msg = self._call_api([
            {"role": "system", "content": REVIEW_REPLY_PROMPT},
            {"role": "user", "content": user_prompt},
        ])
        reply = _trim(self._extract_text(msg), config.MAX_REPLY_LENGTH)
        if not reply:
            raise AIGenerationError("AI service returned an empty reply")
        return reply

    def generate_question_answer(
        self,
        question_text: str,
        business_name: Optional[str] = None,
        context: Optional[str] = None
    ) -> str:
        """Draft an owner answer to a customer question"""
        user_prompt = f"Business: {business_name or 'our business'}\nQuestion: {question_text}"
        if context:
            user_prompt += f"\nKnown facts: {context}"

        msg = self._call_api([
            {"role": "system", "content": QUESTION_ANSWER_PROMPT},
            {"role": "user", "content": user_prompt},
        ])
        answer = _trim(self._extract_text(msg), config.MAX_ANSWER_LENGTH)
        if not answer:
            raise AIGenerationError("AI service returned an empty answer")
        return answer

    def generate_post_content(
        self,
        topic: str,
        post_type: str = "whats_new",
        business_name: Optional[str] = None,
        tone: str = "friendly"
    ) -> Dict[str, str]:
        """
        Generate post copy

        Returns:
            Dict with title, content and cta
        """
        user_prompt = (
            f"Business: {business_name or 'a local business'}\n"
            f"Post type: {post_type}\n"
            f"Tone: {TONE_DESCRIPTIONS.get(tone, tone)}\n"
            f"Topic: {topic}"
        )

        msg = self._call_api(
            [
                {"role": "system", "content": POST_CONTENT_PROMPT},
                {"role": "user", "content": user_prompt},
            ],
            schema=get_post_schema()
        )
        data = self._extract_json(msg)

        content = _trim(data.get("content", ""), config.MAX_POST_CONTENT_LENGTH)
        if not content:
            raise AIGenerationError("AI service returned empty post content")

        return {
            "title": _trim(data.get("title", ""), config.MAX_POST_TITLE_LENGTH),
            "content": content,
            "cta": data.get("cta") or "LEARN_MORE",
        }


# =========================
# Keyword Heuristics
# =========================
POSITIVE_KEYWORDS = [
    "excellent", "great", "amazing", "wonderful", "fantastic", "love", "best",
    "perfect", "outstanding", "awesome", "superb", "delicious", "friendly",
    "helpful", "professional", "recommend", "highly", "satisfied", "happy",
]

NEGATIVE_KEYWORDS = [
    "terrible", "awful", "horrible", "worst", "bad", "poor", "disappointed",
    "disgusting", "rude", "slow", "dirty", "unprofessional", "waste", "avoid",
    "never", "hate", "complaint", "unsatisfied", "unhappy",
]

TOPIC_KEYWORDS = [
    "service", "quality", "price", "staff", "clean", "food", "atmosphere",
    "location", "wait", "time", "friendly", "professional", "recommend",
    "excellent", "great", "good", "bad", "poor", "slow", "fast", "delicious",
    "ambiance", "parking", "wifi", "music", "decor", "comfortable", "value",
    "experience", "customer", "management", "environment",
]


@dataclass
class SentimentResult:
    sentiment: str
    score: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def analyze_sentiment(text: Optional[str]) -> SentimentResult:
    """
    Keyword-count sentiment

    Substring matches are counted once per keyword. More positive hits gives
    0.7 + 0.1 per hit, more negative hits gives 0.3 - 0.1 per hit, a tie is
    neutral at 0.5. Scores are clamped to [0, 1].
    """
    lower = (text or "").lower()
    positive = sum(1 for kw in POSITIVE_KEYWORDS if kw in lower)
    negative = sum(1 for kw in NEGATIVE_KEYWORDS if kw in lower)

    if positive > negative:
        return SentimentResult("positive", round(min(1.0, 0.7 + positive * 0.1), 2))
    if negative > positive:
        return SentimentResult("negative", round(max(0.0, 0.3 - negative * 0.1), 2))
    return SentimentResult("neutral", 0.5)


def sentiment_from_rating(rating: Optional[int]) -> str:
    """Fallback tag when a review has no text"""
    if rating is None:
        return "neutral"
    if rating >= 4:
        return "positive"
    if rating == 3:
        return "neutral"
    return "negative"


def _review_text(review: Dict[str, Any]) -> str:
    return str(review.get("review_text") or review.get("comment") or "").lower()


def extract_keywords(reviews: List[Dict[str, Any]], top_n: int = 10) -> List[str]:
    """Most frequent topic keywords across reviews (one count per review)"""
    counts: Counter = Counter()
    for review in reviews:
        text = _review_text(review)
        for kw in TOPIC_KEYWORDS:
            if kw in text:
                counts[kw] += 1
    return [kw for kw, _ in counts.most_common(top_n)]


def _has_response(review: Dict[str, Any]) -> bool:
    return bool(review.get("reply_text") or review.get("has_reply"))


def calculate_review_stats(reviews: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Reply statistics over a list of reviews

    Returns:
        pending: reviews without a reply
        responseRate: rounded percent replied
        avgTime: mean hours from review to reply, counting replies within 30 days
    """
    total = len(reviews)
    responded = sum(1 for r in reviews if _has_response(r))

    hours = []
    for review in reviews:
        reviewed = parse_timestamp(review.get("review_date"))
        replied = parse_timestamp(review.get("reply_date"))
        if reviewed and replied:
            delta = (replied - reviewed).total_seconds() / 3600
            if 0 < delta < 720:
                hours.append(delta)

    return {
        "pending": total - responded,
        "responseRate": round(responded / total * 100) if total else 0,
        "avgTime": round(sum(hours) / len(hours)) if hours else 0,
    }
