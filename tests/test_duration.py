"""Tests for the lifetime codec: parsing, canonical formatting, JSON boundary."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from src.bissy.core.errors import InvalidDurationError
from src.bissy.querycache.duration import (
    HOUR,
    MICROSECOND,
    MILLISECOND,
    MINUTE,
    SECOND,
    decode_duration,
    format_duration,
    parse_duration,
    timedelta_to_nanoseconds,
)
from src.bissy.querycache.schemas import Query, QueryCreate, QueryUpdate


# ── Parsing ──────────────────────────────────────────────────────────────────


@pytest.mark.parametrize(
    "text, expected",
    [
        ("0", 0),
        ("15s", 15 * SECOND),
        ("1h1m", HOUR + MINUTE),
        ("1h0m0s", HOUR),
        ("1.5s", 1500 * MILLISECOND),
        (".5m", 30 * SECOND),
        ("2h45m30.5s", 2 * HOUR + 45 * MINUTE + 30 * SECOND + 500 * MILLISECOND),
        ("100ns", 100),
        ("3us", 3 * MICROSECOND),
        ("3µs", 3 * MICROSECOND),
        ("3μs", 3 * MICROSECOND),
        ("-1m", -MINUTE),
        ("+2ms", 2 * MILLISECOND),
    ],
)
def test_parse_duration(text, expected):
    assert parse_duration(text) == expected


@pytest.mark.parametrize("text", ["", "1", "h", "1x", "1.2.3s", "one hour", "-", "1h 2m"])
def test_parse_duration_rejects_malformed(text):
    with pytest.raises(InvalidDurationError):
        parse_duration(text)


def test_parse_duration_rejects_overflow():
    with pytest.raises(InvalidDurationError):
        parse_duration("9999999999h")


# ── Formatting ───────────────────────────────────────────────────────────────


@pytest.mark.parametrize(
    "nanoseconds, expected",
    [
        (0, "0s"),
        (HOUR + MINUTE, "1h1m0s"),
        (HOUR, "1h0m0s"),
        (15 * SECOND, "15s"),
        (90 * SECOND, "1m30s"),
        (1500 * MILLISECOND, "1.5s"),
        (2 * MILLISECOND, "2ms"),
        (1500 * MICROSECOND, "1.5ms"),
        (MICROSECOND, "1µs"),
        (100, "100ns"),
        (-MINUTE, "-1m0s"),
        (26 * HOUR, "26h0m0s"),
    ],
)
def test_format_duration(nanoseconds, expected):
    assert format_duration(nanoseconds) == expected


@pytest.mark.parametrize(
    "nanoseconds",
    [0, 1, 999, MICROSECOND + 1, 3 * HOUR + 7 * SECOND + 12, -45 * MINUTE, 123456789012345],
)
def test_format_then_parse_is_identity(nanoseconds):
    assert parse_duration(format_duration(nanoseconds)) == nanoseconds


def test_timedelta_to_nanoseconds():
    assert timedelta_to_nanoseconds(timedelta(hours=1, microseconds=3)) == HOUR + 3 * MICROSECOND
    assert timedelta_to_nanoseconds(timedelta(seconds=-1)) == -SECOND


# ── JSON Boundary ────────────────────────────────────────────────────────────


def test_decode_accepts_string_and_number():
    assert decode_duration("1h") == HOUR
    assert decode_duration(1_000_000_000) == SECOND
    assert decode_duration(2.5e9) == 2_500_000_000


def test_decode_rejects_other_types():
    with pytest.raises(InvalidDurationError):
        decode_duration(True)
    with pytest.raises(InvalidDurationError):
        decode_duration({"hours": 1})


@pytest.mark.parametrize("value", [float("inf"), float("-inf"), float("nan"), 1e30, 2**63, -(2**64)])
def test_decode_rejects_non_finite_and_out_of_range_numbers(value):
    with pytest.raises(InvalidDurationError):
        decode_duration(value)


def test_query_create_reads_string_or_nanoseconds():
    by_string = QueryCreate.model_validate({"query": "SELECT 1", "lifetime": "1h", "datasourceId": "ds"})
    by_number = QueryCreate.model_validate({"query": "SELECT 1", "lifetime": HOUR, "datasourceId": "ds"})
    assert by_string.lifetime == by_number.lifetime == HOUR


def test_query_create_rejects_bad_and_negative_lifetimes():
    with pytest.raises(ValidationError):
        QueryCreate.model_validate({"query": "SELECT 1", "lifetime": "soon", "datasourceId": "ds"})
    with pytest.raises(ValidationError):
        QueryCreate.model_validate({"query": "SELECT 1", "lifetime": "-1h", "datasourceId": "ds"})


def test_query_update_lifetime_is_optional():
    assert QueryUpdate.model_validate({}).lifetime is None
    assert QueryUpdate.model_validate({"lifetime": "30m"}).lifetime == 30 * MINUTE


def test_query_json_writes_lifetime_as_string():
    now = datetime(2020, 1, 1, tzinfo=timezone.utc)
    query = Query(
        id="q-1",
        user_id="u-1",
        sql="SELECT 1",
        datasource_id="ds-1",
        lifetime=HOUR + MINUTE,
        created_at=now,
        updated_at=now,
        last_refresh=now,
    )
    data = query.model_dump(mode="json", by_alias=True)
    assert data["lifetime"] == "1h1m0s"
    assert data["query"] == "SELECT 1"
    assert data["datasourceId"] == "ds-1"
    assert data["lastRefresh"] == "2020-01-01T00:00:00Z"
    assert query.model_dump()["lifetime"] == HOUR + MINUTE
