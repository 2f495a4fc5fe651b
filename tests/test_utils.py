import json
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel

from datascrap_web.utils import format_date, json_dumps, parse_timestamp


class Color(Enum):
    RED = "red"


@dataclass
class Payload:
    value: str


class PayloadModel(BaseModel):
    name: str


def test_json_dumps_handles_supported_types():
    payload = {
        "dataclass": Payload(value="ok"),
        "enum": Color.RED,
        "datetime": datetime(2025, 1, 1, tzinfo=timezone.utc),
        "model": PayloadModel(name="example"),
        "other": Decimal("1.50"),
    }
    decoded = json.loads(json_dumps(payload))
    assert decoded["dataclass"]["value"] == "ok"
    assert decoded["enum"] == "red"
    assert decoded["datetime"].startswith("2025-01-01T00:00:00")
    assert decoded["model"]["name"] == "example"
    assert decoded["other"] == "1.50"


def test_parse_timestamp_normalizes_to_utc():
    parsed = parse_timestamp("2025-01-05T12:30:00+02:00")
    assert parsed == datetime(2025, 1, 5, 10, 30, tzinfo=timezone.utc)
    assert parse_timestamp("2025-01-05T10:00:00Z").tzinfo is timezone.utc
    assert parse_timestamp("not a date") is None


def test_format_date():
    assert format_date("2025-01-05T10:00:00Z") == "Jan 5, 2025"
    assert format_date("2025-11-25T10:00:00Z") == "Nov 25, 2025"
    assert format_date(None) == "Never"
    assert format_date("", "Not sent") == "Not sent"
