"""Tests for the multi-window usage limiter."""

import json
from datetime import datetime, timezone

import pytest

from prepgen.errors import RateLimitError
from prepgen.infrastructure.storage import JSONFileStorage
from prepgen.infrastructure.usage_limiter import (
    EVALUATIONS,
    LAST_CALL_KEY,
    QUESTIONS,
    SESSION_EPOCH_KEY,
    KindLimits,
    UsageLimiter,
    UsageLimits,
)

NO_INTERVAL = 0.0


def make_limiter(store, clock, enforce=True, **limits):
    return UsageLimiter(store, limits=UsageLimits(**limits), enforce=enforce, clock=clock)


class TestUsageLimits:
    """Tests for limit configuration."""

    def test_defaults(self):
        """Test default limits."""
        limits = UsageLimits()
        assert limits.min_interval == pytest.approx(2.0)
        assert limits.for_kind(QUESTIONS) == KindLimits(50, 200, 30)
        assert limits.for_kind(EVALUATIONS) == KindLimits(20, 100)

    def test_from_settings(self):
        """Test that settings produce the default limits."""
        assert UsageLimits.from_settings() == UsageLimits()

    def test_unknown_kind(self):
        """Test that unknown kinds are rejected."""
        with pytest.raises(ValueError):
            UsageLimits().for_kind("images")


class TestMinimumInterval:
    """Tests for the minimum call interval."""

    def test_second_call_too_soon_is_denied(self, memory_store, clock):
        """Test that two calls under 2 seconds apart deny the second."""
        limiter = make_limiter(memory_store, clock)

        first = limiter.check_and_consume(QUESTIONS)
        clock.advance(1.0)
        second = limiter.check_and_consume(QUESTIONS)

        assert first.allowed is True
        assert second.allowed is False
        assert "wait 1.0 seconds" in second.reason
        assert second.retry_after == pytest.approx(1.0)

    def test_call_after_interval_is_allowed(self, memory_store, clock):
        """Test that waiting the full interval allows the next call."""
        limiter = make_limiter(memory_store, clock)
        limiter.check_and_consume(QUESTIONS)
        clock.advance(2.0)
        assert limiter.check_and_consume(QUESTIONS).allowed is True

    def test_interval_is_shared_across_kinds(self, memory_store, clock):
        """Test that the interval applies between questions and evaluations."""
        limiter = make_limiter(memory_store, clock)
        limiter.check_and_consume(QUESTIONS)
        decision = limiter.check_and_consume(EVALUATIONS)
        assert decision.allowed is False
        assert "evaluations" in decision.reason

    def test_future_timestamp_does_not_block(self, memory_store, clock):
        """Test that a last-call time ahead of the clock is ignored."""
        memory_store.set(LAST_CALL_KEY, repr(clock().timestamp() + 100))
        limiter = make_limiter(memory_store, clock)
        assert limiter.check_and_consume(QUESTIONS).allowed is True

    def test_denial_does_not_consume(self, memory_store, clock):
        """Test that a denied call leaves the counters unchanged."""
        limiter = make_limiter(memory_store, clock)
        limiter.check_and_consume(QUESTIONS)
        limiter.check_and_consume(QUESTIONS)
        assert limiter.get_usage_stats()[QUESTIONS]["hourly"]["used"] == 1


class TestWindows:
    """Tests for hourly, daily and session windows."""

    def test_hourly_limit_and_rollover(self, memory_store, clock):
        """Test that the 51st call in an hour is denied and the next hour resets."""
        limiter = make_limiter(
            memory_store,
            clock,
            min_interval=NO_INTERVAL,
            questions=KindLimits(hourly=50, daily=200, session=100),
        )

        decisions = [limiter.check_and_consume(QUESTIONS) for _ in range(50)]
        denied = limiter.check_and_consume(QUESTIONS)

        assert all(d.allowed for d in decisions)
        assert denied.allowed is False
        assert "Hourly questions limit reached (50)" in denied.reason
        assert denied.reset_time == datetime(2024, 3, 15, 11, 0, tzinfo=timezone.utc)

        clock.now = datetime(2024, 3, 15, 11, 5, tzinfo=timezone.utc)
        next_hour = limiter.check_and_consume(QUESTIONS)

        assert next_hour.allowed is True
        assert next_hour.remaining["hourly"] == 49

    def test_remaining_is_monotonic(self, memory_store, clock):
        """Test that remaining budget drops by one per consume."""
        limiter = make_limiter(memory_store, clock, min_interval=NO_INTERVAL)
        remaining = [limiter.check_and_consume(QUESTIONS).remaining["hourly"] for _ in range(5)]
        assert remaining == [49, 48, 47, 46, 45]

    def test_daily_limit(self, memory_store, clock):
        """Test that the daily window denies with a reset at midnight."""
        limiter = make_limiter(
            memory_store,
            clock,
            min_interval=NO_INTERVAL,
            questions=KindLimits(hourly=1000, daily=3, session=None),
        )
        for _ in range(3):
            assert limiter.check_and_consume(QUESTIONS).allowed

        denied = limiter.check_and_consume(QUESTIONS)

        assert denied.allowed is False
        assert "Daily questions limit reached (3)" in denied.reason
        assert denied.reset_time == datetime(2024, 3, 16, 0, 0, tzinfo=timezone.utc)

    def test_session_limit_and_reset(self, memory_store, clock):
        """Test that the per-session cap denies until a new session starts."""
        limiter = make_limiter(
            memory_store,
            clock,
            min_interval=NO_INTERVAL,
            questions=KindLimits(hourly=100, daily=100, session=2),
        )
        limiter.reset_session("first")
        limiter.check_and_consume(QUESTIONS)
        limiter.check_and_consume(QUESTIONS)

        denied = limiter.check_and_consume(QUESTIONS)
        assert denied.allowed is False
        assert "per test session" in denied.reason

        limiter.reset_session("second")
        assert limiter.check_and_consume(QUESTIONS).allowed is True

    def test_evaluations_have_no_session_window(self, memory_store, clock):
        """Test that evaluation decisions report hourly and daily budgets only."""
        limiter = make_limiter(memory_store, clock)
        decision = limiter.check_and_consume(EVALUATIONS)
        assert decision.remaining == {"hourly": 19, "daily": 99}

    def test_stale_window_counts_as_zero(self, memory_store, clock):
        """Test that a record from a previous hour is ignored."""
        memory_store.set(
            "usage:questions:hourly",
            json.dumps({"key": "2024-03-15-09", "count": 999}),
        )
        limiter = make_limiter(memory_store, clock)
        decision = limiter.check_and_consume(QUESTIONS)
        assert decision.allowed is True
        assert decision.remaining["hourly"] == 49

    @pytest.mark.parametrize("raw", ["garbage", "[]", '{"key": "2024-03-15-10", "count": "x"}'])
    def test_corrupt_record_counts_as_zero(self, memory_store, clock, raw):
        """Test that unreadable counters are treated as zero."""
        memory_store.set("usage:questions:hourly", raw)
        limiter = make_limiter(memory_store, clock)
        decision = limiter.check_and_consume(QUESTIONS)
        assert decision.allowed is True
        assert decision.remaining["hourly"] == 49

    def test_counters_survive_restart(self, tmp_path, clock):
        """Test that a file-backed limiter keeps counts across instances."""
        path = tmp_path / "usage.json"
        make_limiter(JSONFileStorage(path), clock, min_interval=NO_INTERVAL).check_and_consume(QUESTIONS)

        limiter = make_limiter(JSONFileStorage(path), clock, min_interval=NO_INTERVAL)
        assert limiter.get_usage_stats()[QUESTIONS]["hourly"]["used"] == 1

    def test_session_cap_survives_restart(self, tmp_path, clock):
        """Test that a new instance keeps the current session epoch and its count."""
        path = tmp_path / "usage.json"
        limits = dict(min_interval=NO_INTERVAL, questions=KindLimits(hourly=100, daily=100, session=3))
        limiter = make_limiter(JSONFileStorage(path), clock, **limits)
        limiter.reset_session(7)
        for _ in range(3):
            assert limiter.check_and_consume(QUESTIONS).allowed is True

        restarted = make_limiter(JSONFileStorage(path), clock, **limits)
        denied = restarted.check_and_consume(QUESTIONS)

        assert denied.allowed is False
        assert "per test session" in denied.reason
        assert restarted.get_usage_stats()[QUESTIONS]["session"]["used"] == 3

    def test_session_epoch_created_once(self, memory_store, clock):
        """Test that the first limiter stores an epoch that later ones reuse."""
        first = make_limiter(memory_store, clock)
        epoch = memory_store.get(SESSION_EPOCH_KEY)

        assert epoch
        make_limiter(memory_store, clock)
        assert memory_store.get(SESSION_EPOCH_KEY) == epoch
        first.reset_session("next")
        assert memory_store.get(SESSION_EPOCH_KEY) == "next"


class TestEnforcement:
    """Tests for the enforcement switch."""

    def test_not_enforced_allows_but_counts(self, memory_store, clock):
        """Test that bypassed decisions are allowed and still counted."""
        limiter = make_limiter(
            memory_store,
            clock,
            enforce=False,
            questions=KindLimits(hourly=1, daily=1, session=1),
        )

        decisions = [limiter.check_and_consume(QUESTIONS) for _ in range(3)]

        assert all(d.allowed and d.bypassed for d in decisions)
        assert decisions[0].reason == "Usage limits are not enforced"
        stats = limiter.get_usage_stats()[QUESTIONS]["hourly"]
        assert stats == {"used": 3, "limit": 1, "remaining": 0}

    def test_to_error(self, memory_store, clock):
        """Test that a denial converts to RateLimitError."""
        limiter = make_limiter(memory_store, clock)
        limiter.check_and_consume(QUESTIONS)
        error = limiter.check_and_consume(QUESTIONS).to_error()
        assert isinstance(error, RateLimitError)
        assert error.retry_after == pytest.approx(2.0)
        assert "Too many requests" in error.reason


class TestUsageReporting:
    """Tests for stats and warnings."""

    def test_usage_stats_shape(self, memory_store, clock):
        """Test that stats cover every kind and window."""
        stats = make_limiter(memory_store, clock).get_usage_stats()
        assert set(stats) == {QUESTIONS, EVALUATIONS}
        assert set(stats[QUESTIONS]) == {"hourly", "daily", "session"}
        assert set(stats[EVALUATIONS]) == {"hourly", "daily"}
        assert stats[QUESTIONS]["session"] == {"used": 0, "limit": 30, "remaining": 30}

    def test_hourly_warning(self, memory_store, clock):
        """Test that a nearly exhausted hourly window produces a warning."""
        limiter = make_limiter(
            memory_store,
            clock,
            min_interval=NO_INTERVAL,
            questions=KindLimits(hourly=50, daily=1000, session=None),
        )
        for _ in range(46):
            limiter.check_and_consume(QUESTIONS)

        assert limiter.check_usage_warnings() == ["Only 4 questions remaining this hour"]

    def test_no_warnings_when_fresh(self, memory_store, clock):
        """Test that a fresh limiter has no warnings."""
        assert make_limiter(memory_store, clock).check_usage_warnings() == []
