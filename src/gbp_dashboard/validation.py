"""
Input validation models for user actions
"""
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from . import config

PostTypeName = Literal["whats_new", "event", "offer", "product"]
CtaType = Literal["BOOK", "ORDER", "LEARN_MORE", "SIGN_UP", "CALL", "SHOP"]
Tone = Literal["friendly", "professional", "apologetic", "marketing"]


def _check_url(v: Optional[str]) -> Optional[str]:
    if v is None or v == "":
        return None
    v = v.strip()
    if not (v.startswith("http://") or v.startswith("https://")) or " " in v:
        raise ValueError("must be a valid http(s) URL")
    return v


class ReplyInput(BaseModel):
    """Reply to a review"""
    review_id: int = Field(..., gt=0)
    reply_text: str = Field(..., min_length=1, max_length=config.MAX_REPLY_LENGTH)

    @field_validator("reply_text", mode="before")
    @classmethod
    def strip_text(cls, v):
        return v.strip() if isinstance(v, str) else v


class AnswerInput(BaseModel):
    """Answer to a customer question"""
    question_id: int = Field(..., gt=0)
    answer_text: str = Field(..., min_length=1, max_length=config.MAX_ANSWER_LENGTH)

    @field_validator("answer_text", mode="before")
    @classmethod
    def strip_text(cls, v):
        return v.strip() if isinstance(v, str) else v


class CreatePostInput(BaseModel):
    """New business profile post"""
    location_id: int = Field(..., gt=0)
    post_type: PostTypeName = "whats_new"
    title: Optional[str] = Field(None, min_length=1, max_length=config.MAX_POST_TITLE_LENGTH)
    description: str = Field(..., min_length=1, max_length=config.MAX_POST_CONTENT_LENGTH)
    media_url: Optional[str] = None
    cta_type: Optional[CtaType] = None
    cta_url: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    scheduled_at: Optional[datetime] = None

    @field_validator("media_url", "cta_url")
    @classmethod
    def validate_url(cls, v):
        return _check_url(v)

    @model_validator(mode="after")
    def check_event(self):
        if self.post_type == "event" and not self.title:
            raise ValueError("event posts require a title")
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must be after start_date")
        return self


class UpdatePostInput(BaseModel):
    """Changes to an unpublished post"""
    post_id: int = Field(..., gt=0)
    title: Optional[str] = Field(None, min_length=1, max_length=config.MAX_POST_TITLE_LENGTH)
    description: Optional[str] = Field(None, min_length=1, max_length=config.MAX_POST_CONTENT_LENGTH)
    media_url: Optional[str] = None
    cta_type: Optional[CtaType] = None
    cta_url: Optional[str] = None
    scheduled_at: Optional[datetime] = None

    @field_validator("media_url", "cta_url")
    @classmethod
    def validate_url(cls, v):
        return _check_url(v)


class ReviewFilter(BaseModel):
    location_id: Optional[int] = None
    rating: Optional[int] = Field(None, ge=1, le=5)
    has_reply: Optional[bool] = None
    status: Optional[Literal["pending", "replied", "responded", "flagged", "archived", "in_progress"]] = None
    sentiment: Optional[Literal["positive", "neutral", "negative"]] = None
    search_query: Optional[str] = None
    sort_by: Literal["newest", "oldest", "highest", "lowest"] = "newest"
    limit: int = Field(50, ge=1, le=100)
    offset: int = Field(0, ge=0)


class QuestionFilter(BaseModel):
    location_id: Optional[int] = None
    status: Literal["unanswered", "answered", "all"] = "all"
    priority: Optional[Literal["urgent", "high", "medium", "low"]] = None
    search_query: Optional[str] = None
    sort_by: Literal["newest", "oldest", "most_upvoted", "urgent"] = "newest"
    limit: int = Field(50, ge=1, le=100)
    offset: int = Field(0, ge=0)


class PostFilter(BaseModel):
    location_id: Optional[int] = None
    post_type: Literal["whats_new", "event", "offer", "product", "all"] = "all"
    status: Literal["draft", "queued", "published", "failed", "all"] = "all"
    search_query: Optional[str] = None
    sort_by: Literal["newest", "oldest", "scheduled"] = "newest"
    limit: int = Field(50, ge=1, le=100)
    offset: int = Field(0, ge=0)


class AutoReplySettings(BaseModel):
    """Per-user automatic reply preferences"""
    enabled: bool = False
    min_rating: int = Field(4, ge=1, le=5)
    reply_to_positive: bool = True   # 4-5 stars
    reply_to_neutral: bool = False   # 3 stars
    reply_to_negative: bool = False  # 1-2 stars
    require_approval: bool = True
    tone: Tone = "friendly"
    location_id: Optional[int] = None

    model_config = {"extra": "ignore"}
