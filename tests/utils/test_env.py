"""Tests for environment helpers."""

import pytest

from appcontroller.utils.env import (
    parse_duration,
    parse_duration_from_env,
    parse_num_from_env,
    string_from_env,
)


class TestParseDuration:
    """Test parse_duration."""

    @pytest.mark.parametrize(
        "text, seconds",
        [
            ("180", 180.0),
            ("1.5", 1.5),
            ("90s", 90.0),
            ("3m", 180.0),
            ("1h30m", 5400.0),
            ("24h0m0s", 86400.0),
            ("250ms", 0.25),
            ("1m30s", 90.0),
        ],
    )
    def test_valid(self, text, seconds):
        """Test valid durations."""
        assert parse_duration(text) == pytest.approx(seconds)

    @pytest.mark.parametrize("text", ["", "abc", "3x", "m3", "1h 30m"])
    def test_invalid(self, text):
        """Test invalid durations."""
        with pytest.raises(ValueError):
            parse_duration(text)


class TestNumFromEnv:
    """Test parse_num_from_env."""

    def test_unset(self, monkeypatch):
        """Test unset variable yields default."""
        monkeypatch.delenv("TEST_REPLICAS", raising=False)

        assert parse_num_from_env("TEST_REPLICAS", 0, 0, 100) == 0

    def test_valid(self, monkeypatch):
        """Test valid number is parsed."""
        monkeypatch.setenv("TEST_REPLICAS", "3")

        assert parse_num_from_env("TEST_REPLICAS", 0, 0, 100) == 3

    def test_negative_within_range(self, monkeypatch):
        """Test negative numbers are accepted when in range."""
        monkeypatch.setenv("TEST_SHARD", "-1")

        assert parse_num_from_env("TEST_SHARD", 5, -10, 10) == -1

    @pytest.mark.parametrize("value", ["three", "1.5", "101", "-1"])
    def test_invalid_falls_back(self, monkeypatch, value):
        """Test invalid or out-of-range values yield default."""
        monkeypatch.setenv("TEST_REPLICAS", value)

        assert parse_num_from_env("TEST_REPLICAS", 7, 0, 100) == 7


class TestDurationFromEnv:
    """Test parse_duration_from_env."""

    def test_unset(self, monkeypatch):
        """Test unset variable yields default."""
        monkeypatch.delenv("TEST_TIMEOUT", raising=False)

        assert parse_duration_from_env("TEST_TIMEOUT", 180, 0, 1000) == 180

    def test_valid(self, monkeypatch):
        """Test unit duration is parsed."""
        monkeypatch.setenv("TEST_TIMEOUT", "5m")

        assert parse_duration_from_env("TEST_TIMEOUT", 180, 0, 1000) == 300

    @pytest.mark.parametrize("value", ["soon", "2h"])
    def test_invalid_falls_back(self, monkeypatch, value):
        """Test invalid or out-of-range durations yield default."""
        monkeypatch.setenv("TEST_TIMEOUT", value)

        assert parse_duration_from_env("TEST_TIMEOUT", 180, 0, 1000) == 180


class TestStringFromEnv:
    """Test string_from_env."""

    def test_set_and_unset(self, monkeypatch):
        """Test value and fallback."""
        monkeypatch.setenv("TEST_PATH", "/custom")
        assert string_from_env("TEST_PATH", "/app/config") == "/custom"

        monkeypatch.setenv("TEST_PATH", "")
        assert string_from_env("TEST_PATH", "/app/config") == "/app/config"
