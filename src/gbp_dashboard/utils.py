"""
Shared utilities for the GBP Dashboard
Timestamps, Google payload parsing and JSON file helpers
"""
import json
import logging
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


# =========================
# Time Utilities
# =========================
def utcnow() -> datetime:
    """Current UTC time as a naive datetime (matches TIMESTAMP columns)"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse an RFC 3339 / ISO timestamp into a naive UTC datetime

    Args:
        value: String like "2024-05-01T10:00:00.123Z", a datetime or None

    Returns:
        Naive UTC datetime, or None when the value is empty or unparseable
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    else:
        text = str(value).strip().replace("Z", "+00:00")
        # Google sends nanosecond precision; fromisoformat handles at most 6 digits
        if "." in text:
            head, _, tail = text.partition(".")
            frac = ""
            rest = ""
            for i, ch in enumerate(tail):
                if not ch.isdigit():
                    rest = tail[i:]
                    break
                frac += ch
            text = f"{head}.{frac[:6].ljust(6, '0')}{rest}" if frac else head + rest
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            logger.warning(f"Unparseable timestamp: {value}")
            return None

    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def minutes_between(earlier: Optional[datetime], later: datetime) -> Optional[int]:
    """Whole minutes from earlier to later, None if earlier is unknown"""
    earlier = parse_timestamp(earlier)
    if earlier is None:
        return None
    return int((later - earlier).total_seconds() // 60)


# =========================
# Google Payload Helpers
# =========================
def last_path_segment(resource_name: Optional[str]) -> Optional[str]:
    """'accounts/1/locations/2/reviews/abc' -> 'abc'"""
    if not resource_name:
        return None
    return str(resource_name).rstrip("/").split("/")[-1] or None


def to_number(value: Any) -> float:
    """Metric values arrive as strings; anything unparseable counts as 0"""
    if value is None:
        return 0
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        try:
            return float(str(value).strip())
        except ValueError:
            return 0


def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


# =========================
# JSON Utilities
# =========================
def json_default(obj: Any) -> Any:
    """JSON serializer for datetimes and other database values"""
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if hasattr(obj, "item"):  # numpy scalars
        return obj.item()
    return str(obj)


def write_json(file_path: Path, data: Dict[str, Any], atomic: bool = True):
    """
    Write JSON file, optionally via a temp file and rename

    Args:
        file_path: Path to output file
        data: Data to write
        atomic: Write to temp then rename
    """
    file_path.parent.mkdir(parents=True, exist_ok=True)

    target = file_path.with_suffix(file_path.suffix + ".tmp") if atomic else file_path
    with open(target, "w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=2, default=json_default)
    if atomic:
        target.replace(file_path)


def loads_json(value: Any, default: Any = None) -> Any:
    """Decode a JSON text column, returning default for empty or bad values"""
    if value is None or value == "":
        return {} if default is None else default
    if isinstance(value, (dict, list)):
        return value
    try:
        return json.loads(value)
    except (TypeError, json.JSONDecodeError):
        logger.debug(f"Invalid JSON column value: {value!r}")
        return {} if default is None else default


def dumps_json(value: Any) -> str:
    return json.dumps(value if value is not None else {}, ensure_ascii=False, default=json_default)
