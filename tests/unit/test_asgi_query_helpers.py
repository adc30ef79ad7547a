"""Tests for query parameter parsing helpers."""

import pytest

from logbridge.adapters.frameworks.query_params import (
    _parse_bool_param,
    _parse_int_param,
    _parse_level_param,
    _parse_search_params,
    _parse_system_area_param,
)
from logbridge.core.models import LogLevel, SystemArea, TimeRange


class TestQueryParams:
    """Tests for query parameter parsing."""

    @pytest.mark.tier(0)
    @pytest.mark.asgi
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [(["25"], 25), (["2.9"], 2), (["-1"], None), (["abc"], None), ([""], None)],
    )
    def test_int_param(self, raw: list[str], expected: int | None) -> None:
        assert _parse_int_param({"limit": raw}, "limit") == expected

    @pytest.mark.tier(0)
    @pytest.mark.asgi
    def test_int_param_default(self) -> None:
        assert _parse_int_param({}, "offset", 0) == 0

    @pytest.mark.tier(0)
    @pytest.mark.asgi
    def test_level_param_accepts_aliases(self) -> None:
        assert _parse_level_param({"level": ["WARNING"]}) is LogLevel.WARN
        assert _parse_level_param({"level": ["fatal"]}) is None

    @pytest.mark.tier(0)
    @pytest.mark.asgi
    def test_system_area_param(self) -> None:
        assert _parse_system_area_param({"system_area": ["worker"]}) is (
            SystemArea.EDGE_WORKER
        )

    @pytest.mark.tier(0)
    @pytest.mark.asgi
    def test_search_params(self) -> None:
        filters = _parse_search_params(
            {
                "system_area": ["client"],
                "level": ["error"],
                "user_id": ["u1"],
                "since": ["100"],
                "q": ["timeout"],
            }
        )

        assert filters.system_area is SystemArea.CLIENT
        assert filters.level is LogLevel.ERROR
        assert filters.user_id == "u1"
        assert filters.time_range == TimeRange(start=100, end=None)
        assert filters.text == "timeout"
        assert filters.trace_id is None

    @pytest.mark.tier(0)
    @pytest.mark.asgi
    def test_search_params_empty(self) -> None:
        filters = _parse_search_params({})

        assert filters.time_range is None
        assert filters.text is None

    @pytest.mark.tier(0)
    @pytest.mark.asgi
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [(["true"], True), (["ON"], True), (["1"], True), (["no"], False)],
    )
    def test_bool_param(self, raw: list[str], expected: bool) -> None:
        assert _parse_bool_param({"flag": raw}, "flag") is expected

    @pytest.mark.tier(0)
    @pytest.mark.asgi
    def test_bool_param_missing_is_false(self) -> None:
        assert _parse_bool_param({}, "flag") is False
