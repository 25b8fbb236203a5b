"""
Pytest configuration and shared fixtures
"""
import sys
import shutil
import tempfile
from datetime import datetime, timedelta
from pathlib import Path
from unittest.mock import MagicMock

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from gbp_dashboard import config
from gbp_dashboard.database import DatabaseManager, Account, Location, Review, Question
from gbp_dashboard.utils import utcnow


USER_ID = "user-1"
OTHER_USER_ID = "user-2"


# =========================
# Pytest Configuration
# =========================
def pytest_configure(config):
    """Configure pytest markers"""
    config.addinivalue_line(
        "markers", "unit: Unit tests (fast, no API calls)"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests (database + services together)"
    )
    config.addinivalue_line(
        "markers", "slow: Slow tests (large datasets)"
    )


# =========================
# Directory Fixtures
# =========================
@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files"""
    temp_path = tempfile.mkdtemp()
    yield Path(temp_path)
    shutil.rmtree(temp_path)


# =========================
# Environment Fixtures
# =========================
@pytest.fixture
def mock_env_vars(monkeypatch):
    """Fake Google and OpenAI credentials"""
    monkeypatch.setenv("GOOGLE_CLIENT_ID", "test-client-id")
    monkeypatch.setenv("GOOGLE_CLIENT_SECRET", "test-client-secret")
    monkeypatch.setenv("OPENAI_API_KEY", "test_openai_key_456")
    monkeypatch.setitem(config.GOOGLE_CONFIG, "client_id", "test-client-id")
    monkeypatch.setitem(config.GOOGLE_CONFIG, "client_secret", "test-client-secret")
    monkeypatch.setitem(config.OPENAI_CONFIG, "api_key", "test_openai_key_456")


# =========================
# Database Fixtures
# =========================
@pytest.fixture
def db():
    """In-memory database with the schema applied"""
    manager = DatabaseManager(":memory:")
    manager.initialize_schema()
    yield manager
    manager.close()


@pytest.fixture
def user_id():
    return USER_ID


@pytest.fixture
def account_id(db):
    """Connected account whose access token is valid for another hour"""
    return db.upsert_account(Account(
        user_id=USER_ID,
        account_id="accounts/111",
        account_name="Acme Coffee",
        email="owner@acme.test",
        access_token="token-abc",
        refresh_token="refresh-xyz",
        token_expires_at=utcnow() + timedelta(hours=1),
    ))


@pytest.fixture
def location_id(db, account_id):
    return db.upsert_location(Location(
        user_id=USER_ID,
        gmb_account_id=account_id,
        location_id="locations/222",
        location_name="Acme Downtown",
        address="1 Main St",
        category="Coffee shop",
        phone="+1 555 0100",
    ))


@pytest.fixture
def make_review(db, location_id):
    """Factory inserting a review for the seeded location"""
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        fields = {
            "user_id": USER_ID,
            "location_id": location_id,
            "external_review_id": f"rev-{counter['n']}",
            "rating": 5,
            "review_text": "Great coffee and friendly staff",
            "reviewer_name": f"Customer {counter['n']}",
            "review_date": datetime(2024, 5, 1, 10, 0) + timedelta(days=counter["n"]),
        }
        fields.update(overrides)
        review_id, _ = db.upsert_review(Review(**fields))
        return review_id

    return _make


@pytest.fixture
def make_question(db, location_id):
    """Factory inserting an unanswered question for the seeded location"""
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        fields = {
            "user_id": USER_ID,
            "location_id": location_id,
            "question_id": f"q-{counter['n']}",
            "question_text": "What time do you open on Sundays?",
            "author_name": "Curious customer",
            "asked_at": datetime(2024, 5, 1, 9, 0) + timedelta(days=counter["n"]),
        }
        fields.update(overrides)
        question_id, _ = db.upsert_question(Question(**fields))
        return question_id

    return _make


# =========================
# API Mock Fixtures
# =========================
@pytest.fixture
def fake_google():
    """Stand-in for GoogleBusinessClient with empty listings"""
    client = MagicMock()
    client.list_locations.return_value = []
    client.list_reviews.return_value = []
    client.list_questions.return_value = []
    client.list_local_posts.return_value = []
    client.fetch_daily_metrics.return_value = []
    client.reply_to_review.return_value = {"comment": "ok"}
    client.delete_review_reply.return_value = {}
    client.answer_question.return_value = {"name": "locations/222/questions/q-1/answers/ans-9"}
    client.delete_answer.return_value = {}
    client.create_local_post.return_value = {"name": "accounts/111/locations/222/localPosts/post-77"}
    client.delete_local_post.return_value = {}
    return client


@pytest.fixture
def client_factory(fake_google):
    """Client factory handing out fake_google for any token"""
    return MagicMock(return_value=fake_google)


@pytest.fixture
def generator():
    """Stand-in for ContentGenerator"""
    gen = MagicMock()
    gen.generate_review_reply.return_value = "Thank you for your kind words!"
    gen.generate_question_answer.return_value = "We open at 9am on Sundays."
    gen.generate_post_content.return_value = {
        "title": "Autumn menu",
        "content": "Try our new pumpkin latte this week.",
        "cta": "LEARN_MORE",
    }
    return gen


@pytest.fixture
def mock_openai_response():
    """Factory building a chat.completions response carrying the given content"""
    def _make(content):
        message = MagicMock()
        message.content = content
        message.parsed = None
        choice = MagicMock()
        choice.message = message
        response = MagicMock()
        response.choices = [choice]
        return response
    return _make
