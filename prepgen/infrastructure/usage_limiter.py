"""Multi-window usage limiter for generation and evaluation requests.

Counters live in a ``KeyValueStore`` as JSON records ``{"key": window, "count": n}``.
A record whose window key differs from the current one is stale and counts as
zero, so hourly and daily windows roll over without any cleanup job. The last
call timestamp is stored as raw epoch seconds.

Checks run in a fixed order: minimum interval, hourly, daily, then the
per-session cap (questions only). The first failing check decides the denial.
Quota decisions never raise; a denial is returned as ``allowed=False``.
"""

import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional

from ..config import Settings, settings
from ..datetime_utils import (
    day_window_key,
    hour_window_key,
    start_of_next_day,
    start_of_next_hour,
    utc_now,
)
from ..errors import RateLimitError
from .storage import KeyValueStore

logger = logging.getLogger(__name__)

QUESTIONS = "questions"
EVALUATIONS = "evaluations"

LAST_CALL_KEY = "usage:last_call"
SESSION_EPOCH_KEY = "usage:session_epoch"

HOURLY_WARNING_THRESHOLD = 5
DAILY_WARNING_THRESHOLD = 20
SESSION_WARNING_THRESHOLD = 5


@dataclass(frozen=True)
class KindLimits:
    """Limits for one kind of request."""

    hourly: int
    daily: int
    session: Optional[int] = None


@dataclass(frozen=True)
class UsageLimits:
    """All limits enforced by the usage limiter."""

    min_interval: float = 2.0
    questions: KindLimits = field(default_factory=lambda: KindLimits(50, 200, 30))
    evaluations: KindLimits = field(default_factory=lambda: KindLimits(20, 100))

    def for_kind(self, kind: str) -> KindLimits:
        """Return the limits for ``kind``.

        Raises:
            ValueError: If ``kind`` is not a known request kind
        """
        if kind == QUESTIONS:
            return self.questions
        if kind == EVALUATIONS:
            return self.evaluations
        raise ValueError(f"Unknown usage kind: {kind!r}")

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None) -> "UsageLimits":
        config = config or settings
        return cls(
            min_interval=config.min_call_interval,
            questions=KindLimits(
                hourly=config.questions_per_hour,
                daily=config.questions_per_day,
                session=config.questions_per_session,
            ),
            evaluations=KindLimits(
                hourly=config.evaluations_per_hour,
                daily=config.evaluations_per_day,
            ),
        )


@dataclass
class UsageDecision:
    """Outcome of a check-and-consume call.

    Attributes:
        allowed: Whether the request may proceed
        reason: Human-readable explanation for a denial (or bypass)
        remaining: Remaining budget per window after this consume
        reset_time: When a window-based denial lifts
        retry_after: Seconds to wait after an interval denial
        bypassed: True when limits are not enforced
    """

    allowed: bool
    reason: Optional[str] = None
    remaining: Dict[str, int] = field(default_factory=dict)
    reset_time: Optional[datetime] = None
    retry_after: Optional[float] = None
    bypassed: bool = False

    def to_error(self) -> RateLimitError:
        """Build the exception callers raise for a denial."""
        return RateLimitError(
            self.reason or "Usage limit reached",
            reset_time=self.reset_time,
            retry_after=self.retry_after,
        )


class UsageLimiter:
    """Tracks and enforces usage limits over a persistent key-value store.

    Example:
        >>> limiter = UsageLimiter(InMemoryStorage(), enforce=True)
        >>> decision = limiter.check_and_consume("questions")
        >>> decision.allowed
        True
    """

    def __init__(
        self,
        store: KeyValueStore,
        limits: Optional[UsageLimits] = None,
        enforce: Optional[bool] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Initialize the limiter.

        Args:
            store: Backend holding counters
            limits: Limits to apply, defaults to settings
            enforce: Deny requests over the limits; when False every request is
                allowed but still counted. Defaults to settings.
            clock: Returns the current timezone-aware datetime
        """
        self.store = store
        self.limits = limits or UsageLimits.from_settings()
        self.enforce = settings.rate_limit_enforced if enforce is None else enforce
        self._clock = clock
        self._session_key = self._load_session_key()

    def _load_session_key(self) -> str:
        """Current session epoch from the store, created on first use."""
        session_key = self.store.get(SESSION_EPOCH_KEY)
        if not session_key:
            session_key = uuid.uuid4().hex
            self.store.set(SESSION_EPOCH_KEY, session_key)
        return session_key

    @staticmethod
    def _counter_key(kind: str, window: str) -> str:
        return f"usage:{kind}:{window}"

    def _read_count(self, storage_key: str, window_key: str) -> int:
        raw = self.store.get(storage_key)
        if raw is None:
            return 0
        try:
            data = json.loads(raw)
            if not isinstance(data, dict) or data.get("key") != window_key:
                return 0
            return max(0, int(data.get("count", 0)))
        except (TypeError, ValueError) as e:
            logger.warning(f"Corrupt usage record at {storage_key!r}, treating as zero: {e}")
            return 0

    def _write_count(self, storage_key: str, window_key: str, count: int) -> None:
        self.store.set(storage_key, json.dumps({"key": window_key, "count": count}))

    def _last_call(self) -> Optional[float]:
        raw = self.store.get(LAST_CALL_KEY)
        if raw is None:
            return None
        try:
            return float(raw)
        except ValueError:
            logger.warning(f"Corrupt last-call timestamp {raw!r}, ignoring")
            return None

    def _windows(self, kind: str, now: datetime) -> Dict[str, tuple]:
        """Map window name to (storage key, current window key)."""
        windows = {
            "hourly": (self._counter_key(kind, "hourly"), hour_window_key(now)),
            "daily": (self._counter_key(kind, "daily"), day_window_key(now)),
        }
        if self.limits.for_kind(kind).session is not None:
            windows["session"] = (self._counter_key(kind, "session"), self._session_key)
        return windows

    def _counts(self, kind: str, now: datetime) -> Dict[str, int]:
        return {
            name: self._read_count(storage_key, window_key)
            for name, (storage_key, window_key) in self._windows(kind, now).items()
        }

    def check_and_consume(self, kind: str) -> UsageDecision:
        """
        Check every limit for ``kind`` and, if allowed, count one request.

        Args:
            kind: "questions" or "evaluations"

        Returns:
            UsageDecision describing the outcome

        Raises:
            ValueError: If ``kind`` is unknown
        """
        kind_limits = self.limits.for_kind(kind)
        now = self._clock()
        counts = self._counts(kind, now)

        if self.enforce:
            denial = self._check(kind, kind_limits, now, counts)
            if denial is not None:
                logger.info(f"Usage limiter denied {kind} request: {denial.reason}")
                return denial

        remaining = self._consume(kind, kind_limits, now, counts)

        if not self.enforce:
            return UsageDecision(
                allowed=True,
                reason="Usage limits are not enforced",
                remaining=remaining,
                bypassed=True,
            )
        return UsageDecision(allowed=True, remaining=remaining)

    def _check(
        self,
        kind: str,
        kind_limits: KindLimits,
        now: datetime,
        counts: Dict[str, int],
    ) -> Optional[UsageDecision]:
        last_call = self._last_call()
        if last_call is not None:
            elapsed = now.timestamp() - last_call
            # A timestamp from the future (clock moved back) does not block
            if 0 <= elapsed < self.limits.min_interval:
                retry_after = self.limits.min_interval - elapsed
                return UsageDecision(
                    allowed=False,
                    reason=(
                        f"Too many requests. Please wait {retry_after:.1f} seconds "
                        f"before requesting more {kind}."
                    ),
                    retry_after=retry_after,
                )

        if counts["hourly"] >= kind_limits.hourly:
            return UsageDecision(
                allowed=False,
                reason=(
                    f"Hourly {kind} limit reached ({kind_limits.hourly}). "
                    "Please try again next hour."
                ),
                reset_time=start_of_next_hour(now),
            )

        if counts["daily"] >= kind_limits.daily:
            return UsageDecision(
                allowed=False,
                reason=(
                    f"Daily {kind} limit reached ({kind_limits.daily}). "
                    "Please try again tomorrow."
                ),
                reset_time=start_of_next_day(now),
            )

        if kind_limits.session is not None and counts["session"] >= kind_limits.session:
            return UsageDecision(
                allowed=False,
                reason=(
                    f"Maximum {kind} per test session reached ({kind_limits.session}). "
                    "Please start a new test."
                ),
            )

        return None

    def _consume(
        self,
        kind: str,
        kind_limits: KindLimits,
        now: datetime,
        counts: Dict[str, int],
    ) -> Dict[str, int]:
        remaining: Dict[str, int] = {}
        limits_by_window = {
            "hourly": kind_limits.hourly,
            "daily": kind_limits.daily,
            "session": kind_limits.session,
        }
        for name, (storage_key, window_key) in self._windows(kind, now).items():
            new_count = counts[name] + 1
            self._write_count(storage_key, window_key, new_count)
            remaining[name] = max(0, limits_by_window[name] - new_count)

        self.store.set(LAST_CALL_KEY, repr(now.timestamp()))
        return remaining

    def reset_session(self, session_id: Optional[object] = None) -> None:
        """
        Start a new session epoch for the per-session question counter.

        Args:
            session_id: Identifier of the new session; a random one is used
                when omitted
        """
        self._session_key = str(session_id) if session_id is not None else uuid.uuid4().hex
        self.store.set(SESSION_EPOCH_KEY, self._session_key)
        storage_key = self._counter_key(QUESTIONS, "session")
        self._write_count(storage_key, self._session_key, 0)
        logger.debug(f"Usage session counter reset for session {self._session_key}")

    def get_usage_stats(self) -> Dict[str, Dict[str, Dict[str, int]]]:
        """
        Get used, limit and remaining counts for every kind and window.

        Returns:
            Nested dict ``{kind: {window: {"used", "limit", "remaining"}}}``
        """
        now = self._clock()
        stats: Dict[str, Dict[str, Dict[str, int]]] = {}
        for kind in (QUESTIONS, EVALUATIONS):
            kind_limits = self.limits.for_kind(kind)
            limits_by_window = {
                "hourly": kind_limits.hourly,
                "daily": kind_limits.daily,
                "session": kind_limits.session,
            }
            stats[kind] = {}
            for name, used in self._counts(kind, now).items():
                limit = limits_by_window[name]
                stats[kind][name] = {
                    "used": used,
                    "limit": limit,
                    "remaining": max(0, limit - used),
                }
        return stats

    def check_usage_warnings(self) -> List[str]:
        """Return warnings for question windows that are close to their limit."""
        questions = self.get_usage_stats()[QUESTIONS]
        warnings: List[str] = []

        hourly = questions["hourly"]["remaining"]
        if 0 < hourly <= HOURLY_WARNING_THRESHOLD:
            warnings.append(f"Only {hourly} questions remaining this hour")

        daily = questions["daily"]["remaining"]
        if 0 < daily <= DAILY_WARNING_THRESHOLD:
            warnings.append(f"Only {daily} questions remaining today")

        if "session" in questions:
            session = questions["session"]["remaining"]
            if 0 < session <= SESSION_WARNING_THRESHOLD:
                warnings.append(f"Only {session} questions remaining in this session")

        return warnings
