"""Tests for the CSV and readable export encoders."""

import csv
import io
from dataclasses import replace

import pytest

from logbridge.core.encoding.text import (
    CSV_HEADER,
    encode_csv,
    encode_readable,
    iso_timestamp,
)
from logbridge.core.models import ANONYMOUS_USER, LogLevel

from tests.helpers import START_MS, make_record


class TestIsoTimestamp:
    @pytest.mark.tier(0)
    @pytest.mark.core
    def test_utc_with_milliseconds(self) -> None:
        assert iso_timestamp(START_MS + 5) == "2026-01-15T00:00:00.005Z"


class TestEncodeCsv:
    """Tests for encode_csv()."""

    @pytest.mark.tier(0)
    @pytest.mark.core
    def test_header_only_when_empty(self) -> None:
        assert encode_csv([]) == ",".join(CSV_HEADER) + "\n"

    @pytest.mark.tier(0)
    @pytest.mark.core
    def test_quotes_commas_and_newlines(self) -> None:
        record = replace(
            make_record(message='failed, "twice"\nagain'), raw_args=("a", "b")
        )

        rows = list(csv.reader(io.StringIO(encode_csv([record]))))

        assert rows[0] == list(CSV_HEADER)
        assert rows[1] == [
            str(START_MS),
            "2026-01-15T00:00:00.000Z",
            "client",
            "info",
            "trace_1",
            "user_1",
            'failed, "twice"\nagain',
            '["a", "b"]',
        ]

    @pytest.mark.tier(0)
    @pytest.mark.core
    def test_anonymous_user_is_blank(self) -> None:
        rows = list(
            csv.reader(io.StringIO(encode_csv([make_record(user_id=ANONYMOUS_USER)])))
        )

        assert rows[1][5] == ""


class TestEncodeReadable:
    """Tests for encode_readable()."""

    @pytest.mark.tier(0)
    @pytest.mark.core
    def test_one_block_per_record(self) -> None:
        first = make_record("a", message="first")
        second = replace(
            make_record("b", level=LogLevel.ERROR, message="second"),
            raw_args=("x",),
            stack_trace="Error: boom",
        )

        text = encode_readable([first, second])

        assert text == (
            "[2026-01-15T00:00:00.000Z] CLIENT INFO [trace_1] (user_1) first\n\n"
            "[2026-01-15T00:00:00.000Z] CLIENT ERROR [trace_1] (user_1) second\n"
            '  Args: ["x"]\n'
            "  Stack: Error: boom"
        )
