"""
Google Business Profile API client
OAuth token refresh, REST calls with retry, and payload mapping helpers
"""
import logging
import re
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

import requests
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type
)

from . import config
from .errors import (
    AuthenticationError,
    ConfigurationError,
    GoogleAPIError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitError,
    TokenRefreshError,
)
from .database.models import METRIC_TYPES
from .utils import utcnow, parse_timestamp, to_number

logger = logging.getLogger(__name__)


STAR_RATINGS = {
    "FIVE": 5,
    "FOUR": 4,
    "THREE": 3,
    "TWO": 2,
    "ONE": 1,
}

LOCATION_READ_MASK = (
    "name,title,storefrontAddress,phoneNumbers,websiteUri,categories,profile,"
    "regularHours,specialHours,moreHours,serviceItems,openInfo,latlng,labels,metadata"
)

POST_TOPIC_TYPES = {
    "whats_new": "STANDARD",
    "event": "EVENT",
    "offer": "OFFER",
    "product": "PRODUCT",
}


# =========================
# Resource Names
# =========================
def build_location_resource_name(account_id: str, location_id: str) -> str:
    """
    Build accounts/{account}/locations/{location} from ids in any form

    Both ids may already carry their prefixes (accounts/123,
    locations/456 or accounts/123/locations/456).
    """
    clean_account = re.sub(r"^accounts/", "", str(account_id))
    clean_location = re.sub(r"^(accounts/[^/]+/)?locations/", "", str(location_id))
    return f"accounts/{clean_account}/locations/{clean_location}"


def build_review_resource_name(account_id: str, location_id: str, review_id: str) -> str:
    return f"{build_location_resource_name(account_id, location_id)}/reviews/{review_id}"


def location_only_name(location_id: str) -> str:
    """locations/{id} as used by the Q&A and Performance APIs"""
    return "locations/" + re.sub(r"^(accounts/[^/]+/)?locations/", "", str(location_id))


def star_rating_to_int(star_rating: Optional[str]) -> int:
    """Map Google's star enum to 1-5; unknown values count as 1"""
    return STAR_RATINGS.get(str(star_rating or "").upper(), 1)


def map_post_type(post_type: str) -> str:
    return POST_TOPIC_TYPES.get(post_type, "STANDARD")


def parse_location(item: Dict[str, Any]) -> Dict[str, Any]:
    """
    Flatten a Business Information location into Location fields

    The raw payload is kept as metadata so completeness scoring can look
    at hours, service items and the rest.
    """
    address = item.get("storefrontAddress") or {}
    address_parts = list(address.get("addressLines") or [])
    for key in ("locality", "administrativeArea", "postalCode"):
        if address.get(key):
            address_parts.append(address[key])

    latlng = item.get("latlng") or {}
    primary_category = (item.get("categories") or {}).get("primaryCategory") or {}

    return {
        "location_id": item.get("name", ""),
        "location_name": item.get("title") or "",
        "address": ", ".join(address_parts) or None,
        "phone": (item.get("phoneNumbers") or {}).get("primaryPhone"),
        "website": item.get("websiteUri"),
        "category": primary_category.get("displayName"),
        "description": (item.get("profile") or {}).get("description"),
        "business_hours": item.get("regularHours") or {},
        "latitude": latlng.get("latitude"),
        "longitude": latlng.get("longitude"),
        "metadata": {**item, **(item.get("metadata") or {})},
    }


def _date_parts(value: datetime) -> Dict[str, int]:
    return {"year": value.year, "month": value.month, "day": value.day}


def _time_parts(value: datetime) -> Dict[str, int]:
    return {"hours": value.hour, "minutes": value.minute}


def build_post_payload(
    post_type: str,
    description: str,
    title: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    media_url: Optional[str] = None,
    cta_type: Optional[str] = None,
    cta_url: Optional[str] = None
) -> Dict[str, Any]:
    """
    Build a localPosts request body

    Args:
        post_type: whats_new, event, offer or product
        description: Post text (summary)
        title: Event/offer title
        start_date: Event start
        end_date: Event end
        media_url: Photo URL
        cta_type: Call-to-action type (BOOK, ORDER, ...)
        cta_url: Call-to-action / offer URL

    Returns:
        JSON-ready dict for the v4 localPosts endpoint
    """
    payload: Dict[str, Any] = {
        "languageCode": "en",
        "summary": description,
        "topicType": map_post_type(post_type),
    }

    if post_type == "event" and title:
        schedule: Dict[str, Any] = {}
        start = parse_timestamp(start_date)
        end = parse_timestamp(end_date)
        if start:
            schedule["startDate"] = _date_parts(start)
            schedule["startTime"] = _time_parts(start)
        if end:
            schedule["endDate"] = _date_parts(end)
            schedule["endTime"] = _time_parts(end)
        payload["event"] = {"title": title, "schedule": schedule}

    if post_type == "offer" and title:
        payload["offer"] = {
            "couponCode": "",
            "redeemOnlineUrl": cta_url or "",
            "termsConditions": description,
        }

    if media_url:
        payload["media"] = [{"mediaFormat": "PHOTO", "sourceUrl": media_url}]

    if cta_type and cta_url:
        payload["callToAction"] = {"actionType": cta_type, "url": cta_url}

    return payload


# =========================
# OAuth
# =========================
def refresh_access_token(refresh_token: str) -> Dict[str, Any]:
    """
    Exchange a refresh token for a new access token

    Returns:
        Token response with access_token, expires_in and possibly a rotated refresh_token

    Raises:
        ConfigurationError: If client id/secret are missing
        AuthenticationError: If Google reports invalid_grant (revoked/expired)
        TokenRefreshError: For any other failure
    """
    client_id = config.GOOGLE_CONFIG.get("client_id")
    client_secret = config.GOOGLE_CONFIG.get("client_secret")
    if not client_id or not client_secret:
        raise ConfigurationError("Missing Google OAuth configuration")

    try:
        response = requests.post(
            config.GOOGLE_CONFIG["token_url"],
            data={
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
                "client_id": client_id,
                "client_secret": client_secret,
            },
            timeout=config.GOOGLE_CONFIG["timeout"]
        )
    except requests.RequestException as e:
        logger.error(f"Token refresh request failed: {e}")
        raise TokenRefreshError(f"Token refresh failed: {e}")

    try:
        data = response.json()
    except ValueError:
        data = {}

    if response.status_code >= 400:
        error = data.get("error", "Unknown error")
        if error == "invalid_grant":
            raise AuthenticationError(
                "Token refresh failed: invalid_grant",
                status_code=response.status_code,
                payload=data,
                code="INVALID_GRANT"
            )
        raise TokenRefreshError(f"Token refresh failed: {error}")

    if not data.get("access_token"):
        raise TokenRefreshError("Token refresh failed: no access token returned")

    return data


class TokenManager:
    """
    Hands out valid access tokens for stored accounts, refreshing as needed
    """

    def __init__(self, db, refresh_func=None, clock=None):
        """
        Args:
            db: DatabaseManager instance
            refresh_func: Callable(refresh_token) -> token dict (defaults to refresh_access_token)
            clock: Callable returning naive UTC now
        """
        self.db = db
        self.refresh_func = refresh_func or refresh_access_token
        self.clock = clock or utcnow
        self.buffer = timedelta(seconds=config.GOOGLE_CONFIG["token_refresh_buffer_seconds"])

    def needs_refresh(self, account: Dict[str, Any]) -> bool:
        expires_at = parse_timestamp(account.get("token_expires_at"))
        if not account.get("access_token") or expires_at is None:
            return True
        return self.clock() + self.buffer >= expires_at

    def get_valid_access_token(self, user_id: str, account_id: int) -> str:
        """
        Return a usable access token for the account

        Raises:
            NotFoundError: Account missing or not owned by the user
            AuthenticationError: No refresh token, or the grant was revoked
        """
        account = self.db.get_account(user_id, account_id)
        if not account:
            raise NotFoundError("Account not found", code="ACCOUNT_NOT_FOUND")

        if not self.needs_refresh(account):
            return account["access_token"]

        if not account.get("refresh_token"):
            raise AuthenticationError("No refresh token available", code="NO_REFRESH_TOKEN")

        logger.info(f"Refreshing access token for account {account_id}")
        tokens = self.refresh_func(account["refresh_token"])
        expires_in = int(tokens.get("expires_in") or 3600)

        fields = {
            "access_token": tokens["access_token"],
            "token_expires_at": self.clock() + timedelta(seconds=expires_in),
        }
        if tokens.get("refresh_token"):
            fields["refresh_token"] = tokens["refresh_token"]
        self.db.update_account(user_id, account_id, **fields)

        return tokens["access_token"]


# =========================
# REST Client
# =========================
class GoogleBusinessClient:
    """
    Client for the Business Profile APIs with automatic retry on rate limits
    """

    def __init__(self, access_token: str, timeout: Optional[int] = None):
        """
        Args:
            access_token: OAuth bearer token
            timeout: Request timeout in seconds (uses config if None)
        """
        if not access_token:
            raise AuthenticationError("Google access token is required")
        self.access_token = access_token
        self.timeout = timeout or config.GOOGLE_CONFIG["timeout"]
        self.v4_base = config.GOOGLE_CONFIG["v4_base"]
        self.business_info_base = config.GOOGLE_CONFIG["business_info_base"]
        self.qanda_base = config.GOOGLE_CONFIG["qanda_base"]
        self.performance_base = config.GOOGLE_CONFIG["performance_base"]

    @retry(
        reraise=True,
        stop=stop_after_attempt(config.GOOGLE_CONFIG["max_retries"]),
        wait=wait_exponential(
            multiplier=1,
            min=config.GOOGLE_CONFIG["retry_min_wait"],
            max=config.GOOGLE_CONFIG["retry_max_wait"]
        ),
        retry=retry_if_exception_type(RateLimitError),
    )
    def request(
        self,
        method: str,
        url: str,
        params: Optional[Any] = None,
        json_body: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Make an authenticated API request with retry logic

        Returns:
            Parsed JSON response (empty dict for empty bodies)

        Raises:
            AuthenticationError: If 401
            PermissionDeniedError: If 403
            NotFoundError: If 404
            RateLimitError: If 429 (will retry)
            GoogleAPIError: For other errors
        """
        try:
            response = requests.request(
                method,
                url,
                params=params,
                json=json_body,
                headers={
                    "Authorization": f"Bearer {self.access_token}",
                    "Content-Type": "application/json",
                },
                timeout=self.timeout
            )
        except requests.RequestException as e:
            logger.error(f"Google API request failed: {method} {url}: {e}")
            raise GoogleAPIError(f"Request failed: {e}")

        try:
            data = response.json() if response.content else {}
        except ValueError:
            data = {}

        error_msg = ""
        if isinstance(data, dict) and isinstance(data.get("error"), dict):
            error_msg = data["error"].get("message", "")

        if response.status_code == 401:
            raise AuthenticationError(
                "Authentication expired. Please reconnect your Google account.",
                status_code=401,
                payload=data
            )

        if response.status_code == 403:
            raise PermissionDeniedError(
                error_msg or "Permission denied",
                status_code=403,
                payload=data
            )

        if response.status_code == 404:
            raise NotFoundError(error_msg or "Resource not found on Google")

        if response.status_code == 429:
            logger.warning("Google rate limit hit, will retry...")
            raise RateLimitError("429: Rate limit exceeded", status_code=429, payload=data)

        if response.status_code >= 400:
            raise GoogleAPIError(
                error_msg or f"{response.status_code} error: {response.text}",
                status_code=response.status_code,
                payload=data
            )

        logger.debug(f"Google API {method} {url} -> {response.status_code}")
        return data if isinstance(data, dict) else {}

    def _paginate(self, url: str, key: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Follow nextPageToken until exhausted"""
        items: List[Dict[str, Any]] = []
        params = dict(params or {})
        params.setdefault("pageSize", config.GOOGLE_CONFIG["page_size"])

        while True:
            data = self.request("GET", url, params=params)
            items.extend(data.get(key) or [])
            token = data.get("nextPageToken")
            if not token:
                break
            params["pageToken"] = token

        return items

    # -------------------------
    # Locations
    # -------------------------
    def list_locations(self, account_id: str) -> List[Dict[str, Any]]:
        """Locations of an account from the Business Information API"""
        clean_account = re.sub(r"^accounts/", "", str(account_id))
        url = f"{self.business_info_base}/accounts/{clean_account}/locations"
        return self._paginate(url, "locations", params={"readMask": LOCATION_READ_MASK})

    # -------------------------
    # Reviews
    # -------------------------
    def list_reviews(self, account_id: str, location_id: str) -> List[Dict[str, Any]]:
        resource = build_location_resource_name(account_id, location_id)
        return self._paginate(f"{self.v4_base}/{resource}/reviews", "reviews")

    def reply_to_review(self, review_resource_name: str, comment: str) -> Dict[str, Any]:
        return self.request(
            "PUT",
            f"{self.v4_base}/{review_resource_name}/reply",
            json_body={"comment": comment}
        )

    def delete_review_reply(self, review_resource_name: str) -> Dict[str, Any]:
        return self.request("DELETE", f"{self.v4_base}/{review_resource_name}/reply")

    # -------------------------
    # Questions & Answers
    # -------------------------
    def list_questions(self, location_id: str) -> List[Dict[str, Any]]:
        url = f"{self.qanda_base}/{location_only_name(location_id)}/questions"
        return self._paginate(url, "questions", params={"answersPerQuestion": 1})

    def answer_question(self, location_id: str, question_id: str, text: str) -> Dict[str, Any]:
        """Create or replace the owner's answer to a question"""
        url = f"{self.qanda_base}/{location_only_name(location_id)}/questions/{question_id}/answers:upsert"
        return self.request("POST", url, json_body={"answer": {"text": text}})

    def delete_answer(self, location_id: str, question_id: str) -> Dict[str, Any]:
        url = f"{self.qanda_base}/{location_only_name(location_id)}/questions/{question_id}/answers:delete"
        return self.request("DELETE", url)

    # -------------------------
    # Local Posts
    # -------------------------
    def list_local_posts(self, account_id: str, location_id: str) -> List[Dict[str, Any]]:
        resource = build_location_resource_name(account_id, location_id)
        return self._paginate(f"{self.v4_base}/{resource}/localPosts", "localPosts")

    def create_local_post(self, account_id: str, location_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        resource = build_location_resource_name(account_id, location_id)
        return self.request("POST", f"{self.v4_base}/{resource}/localPosts", json_body=payload)

    def delete_local_post(self, account_id: str, location_id: str, post_id: str) -> Dict[str, Any]:
        resource = build_location_resource_name(account_id, location_id)
        return self.request("DELETE", f"{self.v4_base}/{resource}/localPosts/{post_id}")

    # -------------------------
    # Performance
    # -------------------------
    def fetch_daily_metrics(
        self,
        location_id: str,
        start_date: date,
        end_date: date,
        metrics: Optional[List[str]] = None
    ) -> List[Dict[str, Any]]:
        """
        Fetch daily metric time series for a location

        Returns:
            Flat rows: {"metric_date": date, "metric_type": str, "metric_value": number}
        """

        params: List[Any] = [("dailyMetrics", m) for m in (metrics or METRIC_TYPES)]
        params += [
            ("dailyRange.start_date.year", start_date.year),
            ("dailyRange.start_date.month", start_date.month),
            ("dailyRange.start_date.day", start_date.day),
            ("dailyRange.end_date.year", end_date.year),
            ("dailyRange.end_date.month", end_date.month),
            ("dailyRange.end_date.day", end_date.day),
        ]
        url = f"{self.performance_base}/{location_only_name(location_id)}:fetchMultiDailyMetricsTimeSeries"
        data = self.request("GET", url, params=params)

        rows = []
        for group in data.get("multiDailyMetricTimeSeries") or []:
            for series in group.get("dailyMetricTimeSeries") or []:
                metric_type = series.get("dailyMetric")
                for point in (series.get("timeSeries") or {}).get("datedValues") or []:
                    d = point.get("date") or {}
                    try:
                        metric_date = date(d["year"], d["month"], d["day"])
                    except (KeyError, TypeError, ValueError):
                        logger.debug(f"Skipping metric point without a full date: {point}")
                        continue
                    rows.append({
                        "metric_date": metric_date,
                        "metric_type": metric_type,
                        "metric_value": to_number(point.get("value")),
                    })
        return rows
