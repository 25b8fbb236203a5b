"""
Data models and schema definitions for the GBP Dashboard database
Uses dataclasses for Python-side representation, DuckDB for storage
"""
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Optional, Dict, Any
from enum import Enum


class ReviewStatus(str, Enum):
    """Workflow state of a review"""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"  # AI reply awaiting approval
    REPLIED = "replied"  # reply found on Google during sync
    RESPONDED = "responded"  # replied from the dashboard
    FLAGGED = "flagged"
    ARCHIVED = "archived"


class Sentiment(str, Enum):
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


class AnswerStatus(str, Enum):
    UNANSWERED = "unanswered"
    PENDING = "pending"
    ANSWERED = "answered"


class QuestionPriority(str, Enum):
    URGENT = "urgent"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class PostType(str, Enum):
    WHATS_NEW = "whats_new"
    EVENT = "event"
    OFFER = "offer"
    PRODUCT = "product"


class PostStatus(str, Enum):
    DRAFT = "draft"
    QUEUED = "queued"  # scheduled, not yet on Google
    PUBLISHED = "published"
    FAILED = "failed"


class LocationStatus(str, Enum):
    ACTIVE = "active"
    DISCONNECTED = "disconnected"
    ARCHIVED = "archived"


class DisconnectOption(str, Enum):
    KEEP = "keep"
    DELETE = "delete"
    EXPORT = "export"


class SyncStatus(str, Enum):
    """Status of sync runs"""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    PARTIAL = "partial"


# Performance metric types reported by the Business Profile Performance API
IMPRESSION_METRICS = [
    "BUSINESS_IMPRESSIONS_DESKTOP_MAPS",
    "BUSINESS_IMPRESSIONS_DESKTOP_SEARCH",
    "BUSINESS_IMPRESSIONS_MOBILE_MAPS",
    "BUSINESS_IMPRESSIONS_MOBILE_SEARCH",
]
ACTION_METRICS = [
    "WEBSITE_CLICKS",
    "CALL_CLICKS",
    "BUSINESS_CONVERSATIONS",
    "BUSINESS_DIRECTION_REQUESTS",
]
METRIC_TYPES = IMPRESSION_METRICS + ACTION_METRICS + [
    "BUSINESS_BOOKINGS",
    "BUSINESS_FOOD_ORDERS",
]


@dataclass
class Account:
    """
    A connected Google Business Profile credential set
    Owns locations; tokens are cleared on disconnect
    """
    user_id: str
    account_id: str  # Google resource name, e.g. accounts/123
    account_name: str = ""
    email: Optional[str] = None
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    token_expires_at: Optional[datetime] = None
    is_active: bool = True
    last_sync: Optional[datetime] = None
    settings: Dict[str, Any] = field(default_factory=dict)
    id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Location:
    """
    A business location managed through an account
    """
    user_id: str
    gmb_account_id: int  # local accounts.id
    location_id: str  # Google location id or resource name
    location_name: str = ""
    address: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None
    business_hours: Dict[str, Any] = field(default_factory=dict)
    rating: Optional[float] = None
    review_count: int = 0
    response_rate: Optional[float] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    is_active: bool = True
    metadata: Dict[str, Any] = field(default_factory=dict)
    id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Review:
    """
    A customer review, keyed by Google's review id
    """
    user_id: str
    location_id: int  # local locations.id
    external_review_id: str
    rating: int = 0  # 1-5 stars
    review_text: Optional[str] = None
    reviewer_name: str = "Anonymous"
    reviewer_profile_photo_url: Optional[str] = None
    review_date: Optional[datetime] = None
    reply_text: Optional[str] = None
    reply_date: Optional[datetime] = None
    has_reply: bool = False
    status: str = ReviewStatus.PENDING.value
    ai_sentiment: Optional[str] = None
    google_resource_name: Optional[str] = None
    review_url: Optional[str] = None
    id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Question:
    """
    A customer question and its top answer
    """
    user_id: str
    location_id: int
    question_id: str  # Google question id
    question_text: str = ""
    author_name: str = "Anonymous"
    asked_at: Optional[datetime] = None
    answer_text: Optional[str] = None
    answered_at: Optional[datetime] = None
    answered_by: Optional[str] = None
    answer_status: str = AnswerStatus.UNANSWERED.value
    priority: str = QuestionPriority.MEDIUM.value
    upvote_count: int = 0
    total_answer_count: int = 0
    google_resource_name: Optional[str] = None
    id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Post:
    """
    A business profile post (local post on Google)
    """
    user_id: str
    location_id: int
    post_type: str = PostType.WHATS_NEW.value
    title: Optional[str] = None
    content: str = ""
    media_url: Optional[str] = None
    call_to_action: Optional[str] = None
    call_to_action_url: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    scheduled_at: Optional[datetime] = None
    published_at: Optional[datetime] = None
    status: str = PostStatus.DRAFT.value
    provider_post_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class PerformanceMetric:
    """A dated, typed numeric fact for one location"""
    user_id: str
    location_id: int
    metric_date: Any  # date
    metric_type: str
    metric_value: float = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SyncRun:
    """
    Tracks sync executions for audit trail
    """
    id: Optional[int] = None
    user_id: str = ""
    location_id: Optional[int] = None
    status: str = SyncStatus.PENDING.value
    started_at: datetime = field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None
    stats_json: str = "{}"
    error_message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# =========================
# Schema SQL Definitions
# =========================
SCHEMA_SQL = """
-- Accounts: connected Google Business Profile credentials
CREATE SEQUENCE IF NOT EXISTS seq_accounts_id START 1;
CREATE TABLE IF NOT EXISTS accounts (
    id INTEGER PRIMARY KEY,
    user_id VARCHAR NOT NULL,
    account_id VARCHAR NOT NULL,
    account_name VARCHAR,
    email VARCHAR,
    access_token VARCHAR,
    refresh_token VARCHAR,
    token_expires_at TIMESTAMP,
    is_active BOOLEAN DEFAULT TRUE,
    last_sync TIMESTAMP,
    disconnected_at TIMESTAMP,
    settings VARCHAR DEFAULT '{}',
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    UNIQUE (user_id, account_id)
);
CREATE INDEX IF NOT EXISTS idx_accounts_user ON accounts(user_id);

-- Locations: business locations per account
CREATE SEQUENCE IF NOT EXISTS seq_locations_id START 1;
CREATE TABLE IF NOT EXISTS locations (
    id INTEGER PRIMARY KEY,
    user_id VARCHAR NOT NULL,
    gmb_account_id INTEGER NOT NULL,
    location_id VARCHAR NOT NULL,
    location_name VARCHAR,
    address VARCHAR,
    phone VARCHAR,
    website VARCHAR,
    category VARCHAR,
    description VARCHAR,
    business_hours VARCHAR DEFAULT '{}',
    rating DOUBLE,
    review_count INTEGER DEFAULT 0,
    response_rate DOUBLE,
    latitude DOUBLE,
    longitude DOUBLE,
    is_active BOOLEAN DEFAULT TRUE,
    is_archived BOOLEAN DEFAULT FALSE,
    archived_at TIMESTAMP,
    metadata VARCHAR DEFAULT '{}',
    last_synced_at TIMESTAMP,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    UNIQUE (user_id, location_id)
);
CREATE INDEX IF NOT EXISTS idx_locations_user ON locations(user_id);

-- Reviews: customer reviews
CREATE SEQUENCE IF NOT EXISTS seq_reviews_id START 1;
CREATE TABLE IF NOT EXISTS reviews (
    id INTEGER PRIMARY KEY,
    user_id VARCHAR NOT NULL,
    location_id INTEGER NOT NULL,
    external_review_id VARCHAR NOT NULL,
    rating INTEGER CHECK (rating >= 0 AND rating <= 5),
    review_text VARCHAR,
    reviewer_name VARCHAR,
    reviewer_profile_photo_url VARCHAR,
    review_date TIMESTAMP,
    reply_text VARCHAR,
    reply_date TIMESTAMP,
    has_reply BOOLEAN DEFAULT FALSE,
    status VARCHAR DEFAULT 'pending',
    ai_sentiment VARCHAR,
    ai_suggested_reply VARCHAR,
    flagged_reason VARCHAR,
    google_resource_name VARCHAR,
    review_url VARCHAR,
    is_archived BOOLEAN DEFAULT FALSE,
    is_anonymized BOOLEAN DEFAULT FALSE,
    archived_at TIMESTAMP,
    synced_at TIMESTAMP,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    UNIQUE (user_id, external_review_id)
);
CREATE INDEX IF NOT EXISTS idx_reviews_user ON reviews(user_id);
CREATE INDEX IF NOT EXISTS idx_reviews_location ON reviews(location_id);

-- Questions: customer Q&A
CREATE SEQUENCE IF NOT EXISTS seq_questions_id START 1;
CREATE TABLE IF NOT EXISTS questions (
    id INTEGER PRIMARY KEY,
    user_id VARCHAR NOT NULL,
    location_id INTEGER NOT NULL,
    question_id VARCHAR NOT NULL,
    question_text VARCHAR,
    author_name VARCHAR,
    asked_at TIMESTAMP,
    answer_text VARCHAR,
    answered_at TIMESTAMP,
    answered_by VARCHAR,
    answer_id VARCHAR,
    answer_status VARCHAR DEFAULT 'unanswered',
    priority VARCHAR DEFAULT 'medium',
    upvote_count INTEGER DEFAULT 0,
    total_answer_count INTEGER DEFAULT 0,
    google_resource_name VARCHAR,
    is_archived BOOLEAN DEFAULT FALSE,
    archived_at TIMESTAMP,
    synced_at TIMESTAMP,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    UNIQUE (user_id, question_id)
);
CREATE INDEX IF NOT EXISTS idx_questions_user ON questions(user_id);
CREATE INDEX IF NOT EXISTS idx_questions_location ON questions(location_id);

-- Posts: local posts
CREATE SEQUENCE IF NOT EXISTS seq_posts_id START 1;
CREATE TABLE IF NOT EXISTS posts (
    id INTEGER PRIMARY KEY,
    user_id VARCHAR NOT NULL,
    location_id INTEGER NOT NULL,
    provider_post_id VARCHAR,
    post_type VARCHAR DEFAULT 'whats_new',
    title VARCHAR,
    content VARCHAR,
    media_url VARCHAR,
    call_to_action VARCHAR,
    call_to_action_url VARCHAR,
    start_date TIMESTAMP,
    end_date TIMESTAMP,
    scheduled_at TIMESTAMP,
    published_at TIMESTAMP,
    status VARCHAR DEFAULT 'draft',
    error_message VARCHAR,
    metadata VARCHAR DEFAULT '{}',
    is_archived BOOLEAN DEFAULT FALSE,
    archived_at TIMESTAMP,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);
CREATE INDEX IF NOT EXISTS idx_posts_user ON posts(user_id);
CREATE INDEX IF NOT EXISTS idx_posts_location ON posts(location_id);

-- Performance metrics: one value per location, day and metric type
CREATE TABLE IF NOT EXISTS performance_metrics (
    user_id VARCHAR NOT NULL,
    location_id INTEGER NOT NULL,
    metric_date DATE NOT NULL,
    metric_type VARCHAR NOT NULL,
    metric_value DOUBLE DEFAULT 0,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    PRIMARY KEY (location_id, metric_date, metric_type)
);
CREATE INDEX IF NOT EXISTS idx_metrics_user ON performance_metrics(user_id);

-- Activity log shown on the dashboard
CREATE SEQUENCE IF NOT EXISTS seq_activity_id START 1;
CREATE TABLE IF NOT EXISTS activity_logs (
    id INTEGER PRIMARY KEY,
    user_id VARCHAR NOT NULL,
    activity_type VARCHAR NOT NULL,
    message VARCHAR,
    metadata VARCHAR DEFAULT '{}',
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);
CREATE INDEX IF NOT EXISTS idx_activity_user ON activity_logs(user_id);

-- Sync runs: audit trail
CREATE SEQUENCE IF NOT EXISTS seq_sync_runs_id START 1;
CREATE TABLE IF NOT EXISTS sync_runs (
    id INTEGER PRIMARY KEY,
    user_id VARCHAR NOT NULL,
    location_id INTEGER,
    status VARCHAR DEFAULT 'pending',
    started_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    completed_at TIMESTAMP,
    stats_json VARCHAR,
    error_message VARCHAR
);

-- Answer templates for frequent questions
CREATE SEQUENCE IF NOT EXISTS seq_templates_id START 1;
CREATE TABLE IF NOT EXISTS answer_templates (
    id INTEGER PRIMARY KEY,
    user_id VARCHAR NOT NULL,
    category VARCHAR,
    question_pattern VARCHAR NOT NULL,
    template_answer VARCHAR NOT NULL,
    usage_count INTEGER DEFAULT 0,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

-- Per-user settings blob (auto-reply preferences, ...)
CREATE TABLE IF NOT EXISTS user_settings (
    user_id VARCHAR PRIMARY KEY,
    settings VARCHAR DEFAULT '{}',
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
)
"""

TABLES = [
    "accounts", "locations", "reviews", "questions", "posts",
    "performance_metrics", "activity_logs", "sync_runs",
    "answer_templates", "user_settings",
]

# Columns stored as JSON text
JSON_COLUMNS = {"settings", "metadata", "business_hours", "stats_json"}
