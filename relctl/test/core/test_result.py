"""Tests for relctl.core.result module."""

import pytest

from relctl.core.result import Err, Ok, Result, is_err, is_ok


class TestOk:
    def test_queries(self) -> None:
        result = Ok("rev-42")
        assert result.is_ok() is True
        assert result.is_err() is False

    def test_unwrap(self) -> None:
        assert Ok(3).unwrap() == 3
        assert Ok(3).unwrap_or(0) == 3

    def test_unwrap_err_raises(self) -> None:
        with pytest.raises(ValueError, match="called unwrap_err on Ok"):
            Ok(3).unwrap_err()

    def test_map(self) -> None:
        assert Ok(21).map(lambda x: x * 2) == Ok(42)

    def test_map_err_is_identity(self) -> None:
        result = Ok(1)
        assert result.map_err(lambda e: f"wrapped: {e}") is result

    def test_repr(self) -> None:
        assert repr(Ok("a")) == "Ok('a')"


class TestErr:
    def test_queries(self) -> None:
        result = Err("boom")
        assert result.is_ok() is False
        assert result.is_err() is True

    def test_unwrap_raises_with_error(self) -> None:
        with pytest.raises(ValueError, match="boom"):
            Err("boom").unwrap()

    def test_unwrap_or_returns_default(self) -> None:
        assert Err("boom").unwrap_or(7) == 7

    def test_unwrap_err(self) -> None:
        assert Err("boom").unwrap_err() == "boom"

    def test_map_is_identity(self) -> None:
        result = Err("boom")
        assert result.map(lambda x: x) is result

    def test_map_err(self) -> None:
        assert Err(2).map_err(lambda e: e + 1) == Err(3)


class TestPatternMatching:
    @staticmethod
    def _describe(result: Result[int, str]) -> str:
        match result:
            case Ok(value):
                return f"value {value}"
            case Err(error):
                return f"error {error}"

    def test_match_ok(self) -> None:
        assert self._describe(Ok(5)) == "value 5"

    def test_match_err(self) -> None:
        assert self._describe(Err("nope")) == "error nope"


class TestTypeGuards:
    def test_is_ok(self) -> None:
        result: Result[int, str] = Ok(1)
        assert is_ok(result)
        assert not is_err(result)

    def test_is_err(self) -> None:
        result: Result[int, str] = Err("x")
        assert is_err(result)
        assert not is_ok(result)


def test_results_are_frozen() -> None:
    result = Ok(1)
    with pytest.raises(AttributeError):
        result.value = 2  # type: ignore[misc]
