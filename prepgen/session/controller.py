"""
Test session controller: slot array, cursor, prefetching and result hand-off.

A session walks ``IDLE -> ACTIVE -> COMPLETED``. Starting a test fetches slot 0
while the caller waits and schedules background fetches for the next slots.
Moving forward shows a prefetched question at once, or waits for a fetch when
the slot is still empty.

Every generation request, blocking or background, first consumes one unit of
the "questions" quota. Background fetches carry the session epoch they were
scheduled under and discard their result if the session was restarted in the
meantime.
"""

import itertools
import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

from ..config import settings
from ..datetime_utils import utc_now
from ..errors import (
    ConfigError,
    NoFallbackError,
    RateLimitError,
    ResultPersistenceError,
    SessionStateError,
)
from ..generation.orchestrator import QuestionOrchestrator
from ..infrastructure.scheduler import PrefetchScheduler
from ..infrastructure.usage_limiter import QUESTIONS, UsageLimiter
from ..models import AnswerRecord, QuestionSpec, SessionConfig, ValidatedQuestion
from .results import (
    InMemoryResultSink,
    ResultSink,
    build_question_response,
    build_result_record,
    ensure_json_serializable,
    sanitize_record,
)

logger = logging.getLogger(__name__)

_session_ids = itertools.count(1)


class SessionState(str, Enum):
    """Lifecycle states of a test session."""

    IDLE = "idle"
    ACTIVE = "active"
    COMPLETED = "completed"


class TestSession:
    """Drives one practice test at a time.

    Example:
        >>> session = TestSession(orchestrator, limiter)
        >>> first = await session.start_test({"testType": "GRE", "section": "verbal"})
        >>> session.record_answer(0, 2, time_spent=31.5)
        >>> await session.advance()
        True
        >>> result = await session.finish()
    """

    __test__ = False

    def __init__(
        self,
        orchestrator: QuestionOrchestrator,
        limiter: UsageLimiter,
        sink: Optional[ResultSink] = None,
        scheduler: Optional[PrefetchScheduler] = None,
        start_delays: Optional[Sequence[float]] = None,
        advance_delays: Optional[Sequence[float]] = None,
        user_id: Optional[str] = None,
        clock: Callable[[], Any] = utc_now,
    ):
        """
        Initialize the session.

        Args:
            orchestrator: Produces questions for slots
            limiter: Usage limiter consulted before every generation request
            sink: Destination for finished results, in-memory by default
            scheduler: Background prefetch scheduler
            start_delays: Prefetch delays for the slots after slot 0
            advance_delays: Prefetch delays for the slots after the new cursor
            user_id: Identifier stored on result records
            clock: Returns the current timezone-aware datetime
        """
        self.orchestrator = orchestrator
        self.limiter = limiter
        self.sink = sink or InMemoryResultSink()
        self.scheduler = scheduler or PrefetchScheduler()
        self.start_delays = list(start_delays) if start_delays is not None else settings.start_delays()
        self.advance_delays = (
            list(advance_delays) if advance_delays is not None else settings.advance_delays()
        )
        self.user_id = user_id
        self._clock = clock

        self.state = SessionState.IDLE
        self.config: Optional[SessionConfig] = None
        self.slots: List[Optional[ValidatedQuestion]] = []
        self.answers: Dict[int, AnswerRecord] = {}
        self.cursor = 0
        self.session_id = 0
        self.previous_topics: List[str] = []
        self.started_at = None
        self.result: Optional[Dict[str, Any]] = None

    def _require(self, *states: SessionState) -> None:
        if self.state not in states:
            allowed = " or ".join(s.value for s in states)
            raise SessionStateError(f"Session is {self.state.value}, expected {allowed}")

    @property
    def current_question(self) -> Optional[ValidatedQuestion]:
        """Question at the cursor, or None if its slot is still empty."""
        if not self.slots:
            return None
        return self.slots[self.cursor]

    @property
    def is_last_question(self) -> bool:
        return bool(self.slots) and self.cursor >= len(self.slots) - 1

    @property
    def preloading(self) -> List[int]:
        """Slot indices with a background fetch in flight."""
        return self.scheduler.pending_indices()

    async def start_test(self, config: Any) -> ValidatedQuestion:
        """
        Validate ``config``, start a new session and fetch the first question.

        Args:
            config: SessionConfig or mapping of config values

        Returns:
            The question for slot 0

        Raises:
            ConfigError: If the config is invalid (no request is made)
            SessionStateError: If a session is already active or completed
            RateLimitError: If the first request is over quota
            NoFallbackError: If generation is exhausted with no fallback entry
        """
        self._require(SessionState.IDLE)
        config = SessionConfig.from_input(config)

        self.session_id = next(_session_ids)
        self.scheduler.reset()
        self.config = config
        self.slots = [None] * config.question_count
        self.answers = {}
        self.cursor = 0
        self.previous_topics = []
        self.result = None
        self.limiter.reset_session(self.session_id)
        self.state = SessionState.ACTIVE
        self.started_at = self._clock()

        logger.info(
            f"Starting session {self.session_id}: {config.test_type.value} {config.section} "
            f"({config.difficulty.value}, {config.question_count} questions)"
        )

        question = await self._fetch_blocking(0)
        self._schedule_ahead(0, self.start_delays)
        return question

    def record_answer(self, index: int, answer_index: int, time_spent: float = 0.0) -> AnswerRecord:
        """Store the user's answer for slot ``index``."""
        self._require(SessionState.ACTIVE)
        if not 0 <= index < len(self.slots):
            raise IndexError(f"Question index {index} out of range")

        answer = AnswerRecord(answer_index=answer_index, time_spent=time_spent, answered_at=self._clock())
        self.answers[index] = answer
        return answer

    async def advance(self) -> bool:
        """
        Move the cursor to the next slot, fetching it first if needed.

        Returns:
            False if the cursor was already on the last question, True otherwise

        Raises:
            RateLimitError: If the slot had to be fetched and the quota denied it
        """
        self._require(SessionState.ACTIVE)
        if self.is_last_question:
            return False

        target = self.cursor + 1
        session_id = self.session_id

        if self.slots[target] is None and self.scheduler.in_flight(target):
            logger.debug(f"Waiting for in-flight prefetch of slot {target}")
            await self.scheduler.wait_for(target)
            self._check_epoch(session_id)

        if self.slots[target] is None:
            await self._fetch_blocking(target)
            self._check_epoch(session_id)

        self.cursor = target
        self._schedule_ahead(target, self.advance_delays)
        return True

    def go_back(self) -> bool:
        """Move the cursor back one slot. Returns False at the first question."""
        self._require(SessionState.ACTIVE)
        if self.cursor == 0:
            return False
        self.cursor -= 1
        return True

    async def reload_current(self) -> ValidatedQuestion:
        """Return the current question, fetching it if its slot is empty."""
        self._require(SessionState.ACTIVE)
        question = self.slots[self.cursor]
        if question is not None:
            return question
        return await self._fetch_blocking(self.cursor)

    async def finish(self) -> Dict[str, Any]:
        """
        Assemble, sanitize and persist the result, then complete the session.

        Returns:
            The sanitized result record

        Raises:
            ResultPersistenceError: If the sink fails; the session stays active
        """
        self._require(SessionState.ACTIVE)
        record = build_result_record(
            self.config,
            self.slots,
            self.answers,
            started_at=self.started_at,
            completed_at=self._clock(),
            user_id=self.user_id,
            session_id=self.session_id,
        )
        record = sanitize_record(record)
        ensure_json_serializable(record)

        try:
            record_id = await self.sink.save_test_result(record)
            for entry in record["questions"]:
                await self.sink.save_question_response(build_question_response(record, entry))
        except Exception as e:
            logger.exception(f"Failed to persist results for session {self.session_id}")
            raise ResultPersistenceError(f"Failed to save test results: {e}") from e

        self.state = SessionState.COMPLETED
        self.result = record
        logger.info(
            f"Session {self.session_id} completed: {record['score']}/{record['totalQuestions']} "
            f"correct (result {record_id})"
        )
        return record

    def reset(self) -> None:
        """Return to IDLE so a new test can be started; in-flight fetches are discarded."""
        self.session_id = next(_session_ids)
        self.scheduler.reset()
        self.state = SessionState.IDLE
        self.config = None
        self.slots = []
        self.answers = {}
        self.cursor = 0
        self.previous_topics = []
        self.started_at = None

    async def close(self) -> None:
        """Wait for every background fetch to finish."""
        await self.scheduler.drain()

    def _check_epoch(self, session_id: int) -> None:
        if session_id != self.session_id:
            raise SessionStateError("Session was restarted while a question was loading")

    def _schedule_ahead(self, base_index: int, delays: Sequence[float]) -> None:
        for offset, delay in enumerate(delays, start=1):
            index = base_index + offset
            if index >= len(self.slots):
                break
            if self.slots[index] is not None:
                continue
            session_id = self.session_id

            async def job(index: int = index, session_id: int = session_id) -> None:
                await self._prefetch(index, session_id)

            self.scheduler.schedule(index, delay, job)

    async def _generate(self, index: int) -> ValidatedQuestion:
        decision = self.limiter.check_and_consume(QUESTIONS)
        if not decision.allowed:
            raise decision.to_error()

        spec = QuestionSpec.for_slot(self.config, index, self.session_id, self.previous_topics)
        return await self.orchestrator.generate(spec)

    async def _fetch_blocking(self, index: int) -> ValidatedQuestion:
        session_id = self.session_id
        question = await self._generate(index)
        self._check_epoch(session_id)
        self._store(index, question)
        return question

    async def _prefetch(self, index: int, session_id: int) -> None:
        if session_id != self.session_id or self.state is not SessionState.ACTIVE:
            logger.debug(f"Skipping prefetch of slot {index} for stale session {session_id}")
            return
        if self.slots[index] is not None:
            logger.debug(f"Slot {index} already filled, skipping prefetch")
            return

        try:
            question = await self._generate(index)
        except RateLimitError as e:
            logger.info(f"Prefetch of slot {index} denied: {e.reason}")
            return
        except (ConfigError, NoFallbackError) as e:
            logger.warning(f"Prefetch of slot {index} failed: {e}")
            return

        if session_id != self.session_id:
            logger.debug(f"Discarding prefetched slot {index} from stale session {session_id}")
            return
        self._store(index, question)
        logger.debug(f"Prefetched slot {index}")

    def _store(self, index: int, question: ValidatedQuestion) -> None:
        self.slots[index] = question
        if question.topic and question.topic not in self.previous_topics:
            self.previous_topics.append(question.topic)
