"""
Location list helpers
Deduplication, ordering, status and metadata completeness
"""
import logging
import re
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from ..database.models import LocationStatus
from ..utils import loads_json, parse_timestamp

logger = logging.getLogger(__name__)


def _normalise(value: Any) -> str:
    return re.sub(r"\s+", " ", str(value or "")).strip().lower()


def _name(row: Dict[str, Any]) -> str:
    return str(row.get("location_name") or row.get("name") or "")


def location_key(row: Dict[str, Any]) -> str:
    """
    Identity of a location across accounts

    Google's location id when present, otherwise the normalised
    "name|address" pair.
    """
    location_id = row.get("location_id")
    if location_id:
        return str(location_id)
    return f"{_normalise(_name(row))}|{_normalise(row.get('address'))}"


def _active_rank(value: Any) -> int:
    if value is None:
        return 2
    return 0 if bool(value) else 1


def priority_key(row: Dict[str, Any]):
    """
    Sort key: active first, then most recently updated, then most reviewed,
    then name (case-insensitive). Missing values rank last.
    """
    updated: Optional[datetime] = parse_timestamp(row.get("updated_at"))
    review_count = row.get("review_count")
    return (
        _active_rank(row.get("is_active")),
        updated is None,
        -updated.timestamp() if updated else 0.0,
        review_count is None,
        -(review_count or 0),
        _name(row).casefold(),
    )


def deduplicate_and_sort_locations(
    rows: List[Dict[str, Any]],
    key: Optional[Callable[[Dict[str, Any]], str]] = None
) -> List[Dict[str, Any]]:
    """
    Keep one row per location and order the result by priority

    Args:
        rows: Location rows (dicts)
        key: Function deriving the identity of a row (defaults to location_key)

    Returns:
        New list with the highest-priority row of each key, sorted by priority_key
    """
    key = key or location_key
    best: Dict[str, Dict[str, Any]] = {}

    for row in rows:
        k = key(row)
        current = best.get(k)
        if current is None or priority_key(row) < priority_key(current):
            best[k] = row

    dropped = len(rows) - len(best)
    if dropped:
        logger.debug(f"Dropped {dropped} duplicate location rows")

    return sorted(best.values(), key=priority_key)


def get_location_status(row: Dict[str, Any]) -> str:
    if row.get("is_archived"):
        return LocationStatus.ARCHIVED.value
    if row.get("is_active") is False:
        return LocationStatus.DISCONNECTED.value
    return LocationStatus.ACTIVE.value


def calculate_metadata_completeness(row: Dict[str, Any]) -> int:
    """Score 0-100 of how much of the Google profile is filled in"""
    metadata = loads_json(row.get("metadata"))
    if not isinstance(metadata, dict):
        metadata = {}
    score = 0

    if (metadata.get("profile") or {}).get("description"):
        score += 10
    if (metadata.get("regularHours") or {}).get("periods"):
        score += 10
    score += min(len(metadata.get("serviceItems") or []) * 5, 20)
    if metadata.get("specialHours"):
        score += 5
    if metadata.get("moreHours"):
        score += 5
    if (metadata.get("openInfo") or {}).get("status"):
        score += 5
    latlng = metadata.get("latlng") or {}
    if latlng.get("latitude") and latlng.get("longitude"):
        score += 5
    score += min(len(metadata.get("labels") or []) * 2, 10)
    if metadata.get("hasVoiceOfMerchant"):
        score += 10
    if metadata.get("placeId"):
        score += 5
    if metadata.get("mapsUri"):
        score += 5

    for column in ("category", "phone", "website", "address"):
        if row.get(column):
            score += 3

    return min(score, 100)


def get_location_highlights(
    locations: List[Dict[str, Any]],
    fallback_rating: float = 0.0,
    rating_change: Optional[float] = None
) -> List[Dict[str, Any]]:
    """
    Pick up to three active locations to call out on the overview

    Categories: "top" (highest rating), "attention" (lowest rating) and
    "improved" (most reviews). A location is listed at most once.
    """
    active = [loc for loc in locations if loc.get("status", LocationStatus.ACTIVE.value) == LocationStatus.ACTIVE.value]
    if not active:
        return []

    def rating_of(loc):
        rating = loc.get("rating")
        return rating if isinstance(rating, (int, float)) else fallback_rating

    highlights: List[Dict[str, Any]] = []

    def add(loc, category, change=None):
        if loc is None or any(h["id"] == loc.get("id") for h in highlights):
            return
        highlights.append({
            "id": loc.get("id"),
            "name": _name(loc),
            "rating": rating_of(loc),
            "reviewCount": loc.get("review_count") or 0,
            "pendingReviews": loc.get("pending_reviews") or 0,
            "category": category,
            "ratingChange": change,
        })

    by_rating = sorted(active, key=rating_of, reverse=True)
    by_reviews = sorted(active, key=lambda loc: loc.get("review_count") or 0, reverse=True)

    add(by_rating[0], "top", rating_change)
    add(by_rating[-1], "attention")
    add(next((loc for loc in by_reviews if (loc.get("review_count") or 0) > 0), by_reviews[0]), "improved")

    return highlights
