"""
Health scores for locations and the dashboard as a whole
"""
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from ..utils import loads_json, parse_timestamp, utcnow

# Weights of the simple health score (sum to 100)
RATING_WEIGHT = 50
RESPONSE_WEIGHT = 35
HAS_REVIEWS_WEIGHT = 15


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def calculate_health_score(
    rating: Optional[float],
    response_rate: Optional[float],
    has_reviews: bool
) -> int:
    """
    Weighted score from rating, response rate and whether reviews exist

    Args:
        rating: Average rating 0-5 (clamped)
        response_rate: Percent of reviews replied to, 0-100 (clamped)
        has_reviews: Whether the location has any reviews

    Returns:
        Integer in [0, 100]
    """
    rating_part = _clamp(float(rating or 0), 0, 5) / 5
    response_part = _clamp(float(response_rate or 0), 0, 100) / 100
    score = (
        RATING_WEIGHT * rating_part
        + RESPONSE_WEIGHT * response_part
        + HAS_REVIEWS_WEIGHT * (1 if has_reviews else 0)
    )
    return int(_clamp(round(score), 0, 100))


def _has_reply(review: Dict[str, Any]) -> bool:
    text = review.get("reply_text") or review.get("review_reply")
    return bool(text and str(text).strip()) or review.get("has_reply") is True


def calculate_profile_completeness(location: Dict[str, Any], attributes_count: int = 0) -> int:
    """Completeness used by the per-location health score (0-100)"""
    metadata = loads_json(location.get("metadata"))
    if not isinstance(metadata, dict):
        metadata = {}
    score = 0

    # Basic info
    for column in ("phone", "website", "address", "category"):
        if location.get(column):
            score += 8
    if loads_json(location.get("business_hours")):
        score += 8

    # Profile details
    if (metadata.get("profile") or {}).get("description") or location.get("description"):
        score += 10
    if (metadata.get("regularHours") or {}).get("periods"):
        score += 10
    if metadata.get("serviceItems"):
        score += 10

    # Media
    photos = int(metadata.get("mediaCount") or 0)
    if photos >= 10:
        score += 20
    elif photos >= 5:
        score += 15
    elif photos > 0:
        score += 10

    # Attributes
    if attributes_count >= 5:
        score += 10
    elif attributes_count >= 3:
        score += 7
    elif attributes_count > 0:
        score += 5

    return min(100, score)


def calculate_activity_score(recent_post_count: int) -> int:
    if recent_post_count >= 4:
        return 100
    if recent_post_count >= 2:
        return 75
    if recent_post_count >= 1:
        return 50
    return 25


def calculate_location_health_score(
    location: Dict[str, Any],
    reviews: List[Dict[str, Any]],
    recent_posts: List[Dict[str, Any]],
    attributes_count: int = 0,
    now: Optional[datetime] = None
) -> int:
    """
    Location health: 40% profile completeness, 40% response rate, 20% posting activity

    Posts count as recent when created within the last 30 days.
    """
    now = now or utcnow()
    completeness = calculate_profile_completeness(location, attributes_count)

    total = len(reviews)
    responded = sum(1 for r in reviews if _has_reply(r))
    response_rate = responded / total * 100 if total else 0

    cutoff = now - timedelta(days=30)
    recent = 0
    for post in recent_posts:
        created = parse_timestamp(post.get("created_at"))
        if created and created >= cutoff:
            recent += 1

    score = round(completeness * 0.4 + response_rate * 0.4 + calculate_activity_score(recent) * 0.2)
    return int(_clamp(score, 0, 100))


def calculate_rating_trend(reviews: List[Dict[str, Any]], now: Optional[datetime] = None) -> Optional[float]:
    """
    Average rating of the last 30 days minus that of the 30 days before

    Returns:
        Difference rounded to 1 decimal, or None if either window is empty
    """
    now = now or utcnow()
    thirty = now - timedelta(days=30)
    sixty = now - timedelta(days=60)

    recent, previous = [], []
    for review in reviews:
        when = parse_timestamp(review.get("review_date") or review.get("created_at"))
        if when is None:
            continue
        if when >= thirty:
            recent.append(review.get("rating") or 0)
        elif when >= sixty:
            previous.append(review.get("rating") or 0)

    if not recent or not previous:
        return None
    return round(sum(recent) / len(recent) - sum(previous) / len(previous), 1)


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'s' if count > 1 else ''}"


def calculate_dashboard_health(
    pending_reviews: int,
    unanswered_questions: int,
    average_rating: float,
    total_reviews: int,
    response_rate: float,
    stale_locations: int
) -> Tuple[int, List[Dict[str, Any]]]:
    """
    Account-wide health score with the problems that lowered it

    Starts from 100 and subtracts a penalty per problem found.

    Returns:
        (score clamped to [0, 100], list of bottleneck dicts)
    """
    score = 100
    bottlenecks: List[Dict[str, Any]] = []

    if pending_reviews > 0:
        score -= min(20, pending_reviews * 2)
        bottlenecks.append({
            "type": "Reviews",
            "severity": "high" if pending_reviews > 10 else "medium" if pending_reviews > 5 else "low",
            "count": pending_reviews,
            "message": f"{_plural(pending_reviews, 'review')} awaiting response.",
            "link": "/reviews",
        })

    if unanswered_questions > 0:
        score -= min(10, unanswered_questions * 3)
        bottlenecks.append({
            "type": "Response",
            "severity": "high" if unanswered_questions > 5 else "medium",
            "count": unanswered_questions,
            "message": f"{_plural(unanswered_questions, 'customer question')} need answering.",
            "link": "/questions",
        })

    if average_rating < 4 and total_reviews > 10:
        score -= 15
        bottlenecks.append({
            "type": "General",
            "severity": "high",
            "count": 1,
            "message": f"Average rating ({average_rating:.1f}) is below 4.0. Improve service quality.",
            "link": "/analytics",
        })

    if response_rate < 80 and total_reviews > 5:
        score -= 10
        bottlenecks.append({
            "type": "Response",
            "severity": "medium",
            "count": 1,
            "message": f"Response rate ({response_rate:.1f}%) is below target. Aim for 80%+.",
            "link": "/reviews",
        })

    if stale_locations > 0:
        score -= min(10, stale_locations * 2)
        verb = "locations have" if stale_locations > 1 else "location has"
        bottlenecks.append({
            "type": "Compliance",
            "severity": "high" if stale_locations > 3 else "low",
            "count": stale_locations,
            "message": f"{stale_locations} {verb} stale data. Run a sync.",
            "link": "/dashboard",
        })

    return int(_clamp(round(score), 0, 100)), bottlenecks
