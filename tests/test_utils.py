"""
Tests for utility functions
"""
import json
import sys
from datetime import date, datetime
from pathlib import Path

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from gbp_dashboard.utils import (
    parse_timestamp,
    minutes_between,
    last_path_segment,
    to_number,
    is_blank,
    json_default,
    write_json,
    loads_json,
    dumps_json,
)


@pytest.mark.unit
class TestParseTimestamp:
    """Test RFC 3339 parsing"""

    def test_zulu_time(self):
        assert parse_timestamp("2024-05-01T10:00:00Z") == datetime(2024, 5, 1, 10, 0)

    def test_nanoseconds_truncated(self):
        parsed = parse_timestamp("2024-05-01T10:00:00.123456789Z")
        assert parsed == datetime(2024, 5, 1, 10, 0, 0, 123456)

    def test_short_fraction_padded(self):
        assert parse_timestamp("2024-05-01T10:00:00.5Z").microsecond == 500000

    def test_offset_converted_to_utc(self):
        assert parse_timestamp("2024-05-01T12:00:00+02:00") == datetime(2024, 5, 1, 10, 0)

    def test_date_becomes_midnight(self):
        assert parse_timestamp(date(2024, 5, 1)) == datetime(2024, 5, 1)

    def test_datetime_passthrough(self):
        value = datetime(2024, 5, 1, 8, 30)
        assert parse_timestamp(value) == value

    @pytest.mark.parametrize("value", [None, "", "not a date"])
    def test_empty_or_invalid(self, value):
        assert parse_timestamp(value) is None


@pytest.mark.unit
class TestSmallHelpers:

    def test_minutes_between(self):
        now = datetime(2024, 5, 1, 12, 0)
        assert minutes_between(datetime(2024, 5, 1, 10, 30), now) == 90

    def test_minutes_between_unknown(self):
        assert minutes_between(None, datetime(2024, 5, 1)) is None

    def test_last_path_segment(self):
        assert last_path_segment("accounts/1/locations/2/reviews/abc") == "abc"
        assert last_path_segment("locations/2/") == "2"
        assert last_path_segment(None) is None

    @pytest.mark.parametrize("value,expected", [
        ("42", 42),
        ("3.5", 3.5),
        (7, 7),
        (None, 0),
        ("n/a", 0),
        (True, 1),
    ])
    def test_to_number(self, value, expected):
        assert to_number(value) == expected

    def test_is_blank(self):
        assert is_blank(None)
        assert is_blank("   ")
        assert not is_blank("x")
        assert not is_blank(0)


@pytest.mark.unit
class TestJsonHelpers:

    def test_write_json_serializes_datetimes(self, temp_dir):
        path = temp_dir / "nested" / "export.json"
        write_json(path, {"when": datetime(2024, 1, 2, 3, 4, 5), "name": "Café"})

        data = json.loads(path.read_text(encoding="utf-8"))
        assert data == {"when": "2024-01-02T03:04:05", "name": "Café"}
        assert not path.with_suffix(".json.tmp").exists()

    def test_write_json_non_atomic(self, temp_dir):
        path = temp_dir / "plain.json"
        write_json(path, {"a": 1}, atomic=False)
        assert json.loads(path.read_text()) == {"a": 1}

    def test_json_default_fallback(self):
        assert json_default(date(2024, 1, 1)) == "2024-01-01"
        assert json_default(Path("x")) == "x"

    def test_loads_json(self):
        assert loads_json('{"a": 1}') == {"a": 1}
        assert loads_json("") == {}
        assert loads_json(None) == {}
        assert loads_json("{broken", default=[]) == []
        assert loads_json({"already": "decoded"}) == {"already": "decoded"}

    def test_dumps_json(self):
        assert dumps_json(None) == "{}"
        assert json.loads(dumps_json({"k": [1, 2]})) == {"k": [1, 2]}
