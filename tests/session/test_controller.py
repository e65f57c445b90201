"""Tests for the test session controller."""

import asyncio
import logging
import random
from unittest.mock import AsyncMock, call

import pytest

from prepgen.errors import ConfigError, RateLimitError, ResultPersistenceError, SessionStateError
from prepgen.generation.orchestrator import QuestionOrchestrator
from prepgen.infrastructure.scheduler import PrefetchScheduler
from prepgen.infrastructure.usage_limiter import UsageLimiter, UsageLimits
from prepgen.session import InMemoryResultSink, SessionState, TestSession

GRE_VERBAL = {"testType": "GRE", "section": "verbal", "difficulty": "medium", "questionCount": 3}


@pytest.fixture
def orchestrator(mock_provider, fast_retry_config, no_sleep):
    """Create an orchestrator over the mock provider."""
    return QuestionOrchestrator(
        mock_provider,
        models=["model-a", "model-b"],
        retry_config=fast_retry_config,
        sleep=no_sleep,
        topic_rng=random.Random(3),
    )


@pytest.fixture
def limiter(memory_store, clock):
    """Create a limiter that counts but never denies."""
    return UsageLimiter(memory_store, enforce=False, clock=clock)


@pytest.fixture
def enforced_limiter(memory_store, clock):
    """Create a limiter that enforces the 2 second call interval."""
    return UsageLimiter(memory_store, limits=UsageLimits(), enforce=True, clock=clock)


@pytest.fixture
def sink():
    """Create an in-memory result sink."""
    return InMemoryResultSink()


def make_session(orchestrator, limiter, no_sleep, clock, sink=None, **kwargs):
    kwargs.setdefault("start_delays", [0.5, 1.0])
    kwargs.setdefault("advance_delays", [0.1, 0.3])
    return TestSession(
        orchestrator,
        limiter,
        sink=sink,
        scheduler=PrefetchScheduler(sleep=no_sleep),
        clock=clock,
        **kwargs,
    )


@pytest.fixture
def session(orchestrator, limiter, no_sleep, clock, sink):
    """Create a session with immediate prefetch delays."""
    return make_session(orchestrator, limiter, no_sleep, clock, sink=sink)


class TestStartTest:
    """Tests for starting a session."""

    @pytest.mark.asyncio
    async def test_first_question_ready_and_rest_prefetched(self, session, mock_provider, no_sleep):
        """Test that slot 0 is filled on return and later slots fill in the background."""
        first = await session.start_test(GRE_VERBAL)

        assert session.state == SessionState.ACTIVE
        assert session.slots[0] is first
        assert session.slots[1] is None
        assert session.preloading == [1, 2]

        await session.close()

        assert all(slot is not None for slot in session.slots)
        assert session.preloading == []
        assert mock_provider.generate_completion.await_count == 3
        no_sleep.assert_has_awaits([call(0.5), call(1.0)], any_order=True)

    @pytest.mark.asyncio
    async def test_invalid_config_makes_no_request(self, session, mock_provider):
        """Test that a bad config raises before any generation call."""
        with pytest.raises(ConfigError):
            await session.start_test({"testType": "GRE", "section": "integrated-reasoning"})

        mock_provider.generate_completion.assert_not_awaited()
        assert session.state == SessionState.IDLE

    @pytest.mark.asyncio
    async def test_start_while_active(self, session):
        """Test that a second start without reset is rejected."""
        await session.start_test(GRE_VERBAL)
        with pytest.raises(SessionStateError):
            await session.start_test(GRE_VERBAL)
        await session.close()

    @pytest.mark.asyncio
    async def test_single_question_schedules_nothing(self, session):
        """Test that prefetching never goes past the last slot."""
        await session.start_test({**GRE_VERBAL, "questionCount": 1})
        assert session.preloading == []
        assert session.is_last_question is True

    @pytest.mark.asyncio
    async def test_rate_limited_first_question(self, orchestrator, enforced_limiter, no_sleep, clock):
        """Test that a denied blocking fetch raises RateLimitError."""
        enforced_limiter.check_and_consume("questions")
        session = make_session(orchestrator, enforced_limiter, no_sleep, clock)

        with pytest.raises(RateLimitError) as exc_info:
            await session.start_test(GRE_VERBAL)

        assert "Too many requests" in exc_info.value.reason


class TestNavigation:
    """Tests for moving through the slots."""

    @pytest.mark.asyncio
    async def test_advance_uses_prefetched_question(self, session, mock_provider):
        """Test that advancing to a filled slot makes no new request."""
        await session.start_test(GRE_VERBAL)
        await session.close()
        prefetched = session.slots[1]

        assert await session.advance() is True
        await session.close()

        assert session.cursor == 1
        assert session.current_question is prefetched
        assert mock_provider.generate_completion.await_count == 3

    @pytest.mark.asyncio
    async def test_advance_waits_for_in_flight_prefetch(self, session, mock_provider):
        """Test that advancing awaits a running prefetch instead of duplicating it."""
        await session.start_test(GRE_VERBAL)
        assert session.preloading == [1, 2]

        assert await session.advance() is True
        await session.close()

        assert session.current_question is not None
        assert mock_provider.generate_completion.await_count == 3

    @pytest.mark.asyncio
    async def test_advance_at_last_question(self, session):
        """Test that advance returns False on the last slot."""
        await session.start_test(GRE_VERBAL)
        await session.close()
        assert await session.advance() is True
        assert await session.advance() is True
        assert await session.advance() is False
        assert session.cursor == 2
        await session.close()

    @pytest.mark.asyncio
    async def test_go_back(self, session):
        """Test that go_back stops at the first question."""
        await session.start_test(GRE_VERBAL)
        await session.close()

        assert session.go_back() is False
        await session.advance()
        assert session.go_back() is True
        assert session.cursor == 0
        await session.close()

    @pytest.mark.asyncio
    async def test_blocking_fetch_when_prefetch_denied(
        self, orchestrator, enforced_limiter, no_sleep, clock, mock_provider, caplog
    ):
        """Test that denied prefetches leave slots empty and advance fetches them."""
        session = make_session(orchestrator, enforced_limiter, no_sleep, clock)

        with caplog.at_level(logging.INFO, logger="prepgen.session.controller"):
            await session.start_test(GRE_VERBAL)
            await session.close()

        assert session.slots[1] is None
        assert session.slots[2] is None
        assert "denied" in caplog.text

        with pytest.raises(RateLimitError):
            await session.advance()
        assert session.cursor == 0

        clock.advance(2.0)
        assert await session.advance() is True
        assert session.slots[1] is not None
        await session.close()

    @pytest.mark.asyncio
    async def test_reload_current(self, session, mock_provider):
        """Test that reload returns the filled slot without a request."""
        first = await session.start_test(GRE_VERBAL)
        await session.close()
        assert await session.reload_current() is first
        assert mock_provider.generate_completion.await_count == 3


class TestStaleSessions:
    """Tests for discarding work from a restarted session."""

    @pytest.mark.asyncio
    async def test_reset_before_prefetch_runs(self, session, mock_provider):
        """Test that prefetches scheduled before a reset make no request."""
        await session.start_test(GRE_VERBAL)
        session.reset()
        await session.close()

        assert session.state == SessionState.IDLE
        assert session.slots == []
        assert mock_provider.generate_completion.await_count == 1

    @pytest.mark.asyncio
    async def test_result_from_old_session_is_discarded(
        self, orchestrator, limiter, no_sleep, clock, mock_provider, valid_response_text
    ):
        """Test that a prefetch finishing after a restart does not touch the new session."""
        calls = []
        gate = asyncio.Event()

        async def completion(prompt, **kwargs):
            calls.append(prompt)
            if len(calls) == 2:
                await gate.wait()
            return valid_response_text

        mock_provider.generate_completion = AsyncMock(side_effect=completion)
        session = make_session(orchestrator, limiter, no_sleep, clock, start_delays=[0.0])

        await session.start_test(GRE_VERBAL)
        while len(calls) < 2:
            await asyncio.sleep(0)

        session.reset()
        await session.start_test({**GRE_VERBAL, "questionCount": 2})
        gate.set()
        await session.close()

        assert len(session.slots) == 2
        assert session.slots[0] is not None
        # slot 1 is left for a foreground fetch while the stale prefetch runs
        assert session.slots[1] is None
        assert len(calls) == 3


class TestAnswersAndFinish:
    """Tests for answering and completing a session."""

    @pytest.mark.asyncio
    async def test_record_answer_out_of_range(self, session):
        """Test that answers outside the slot array are rejected."""
        await session.start_test(GRE_VERBAL)
        with pytest.raises(IndexError):
            session.record_answer(3, 0)
        await session.close()

    def test_operations_require_active_session(self, session):
        """Test that navigation before start is rejected."""
        with pytest.raises(SessionStateError):
            session.go_back()
        with pytest.raises(SessionStateError):
            session.record_answer(0, 1)

    @pytest.mark.asyncio
    async def test_finish_persists_result(self, session, sink, clock):
        """Test that finish saves the record and one response per question."""
        await session.start_test(GRE_VERBAL)
        await session.close()

        correct = session.slots[0].correct_answer
        session.record_answer(0, correct, time_spent=30.0)
        session.record_answer(1, correct + 1, time_spent=45.5)
        clock.advance(120)

        record = await session.finish()

        assert session.state == SessionState.COMPLETED
        assert session.result == record
        assert record["score"] == 1
        assert record["totalQuestions"] == 3
        assert record["accuracy"] == pytest.approx(33.3)
        assert record["totalTime"] == pytest.approx(75.5)
        assert record["testType"] == "GRE"
        assert record["userId"] == ""
        assert record["questions"][2]["userAnswer"] == -1
        assert len(sink.test_results) == 1
        assert len(sink.question_responses) == 3
        assert sink.question_responses[0]["isCorrect"] is True

    @pytest.mark.asyncio
    async def test_finish_failure_keeps_session_active(self, orchestrator, limiter, no_sleep, clock):
        """Test that a failing sink raises and leaves the session active."""
        sink = InMemoryResultSink()
        sink.save_test_result = AsyncMock(side_effect=OSError("disk full"))
        session = make_session(orchestrator, limiter, no_sleep, clock, sink=sink)

        await session.start_test(GRE_VERBAL)
        await session.close()

        with pytest.raises(ResultPersistenceError):
            await session.finish()

        assert session.state == SessionState.ACTIVE
        assert session.result is None

    @pytest.mark.asyncio
    async def test_new_session_after_completion(self, session):
        """Test that reset allows another test after completion."""
        await session.start_test(GRE_VERBAL)
        await session.close()
        await session.finish()
        first_id = session.session_id

        session.reset()
        await session.start_test(GRE_VERBAL)
        await session.close()

        assert session.session_id > first_id
        assert session.state == SessionState.ACTIVE
        assert session.answers == {}
