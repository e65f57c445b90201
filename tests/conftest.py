"""Pytest configuration and shared fixtures for prepgen tests."""

import json
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from prepgen.infrastructure.retry import RetryConfig
from prepgen.infrastructure.storage import InMemoryStorage
from prepgen.models import Difficulty, QuestionSpec, TestType
from prepgen.providers.base import BaseLLMProvider


class FakeClock:
    """Controllable clock returning timezone-aware UTC datetimes."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture
def valid_candidate() -> dict:
    """Fixture providing a candidate that passes every structural check."""
    return {
        "question": "Which word best completes the sentence: The critic's review was ______, praising nothing.",
        "options": ["laudatory", "scathing", "ambivalent", "effusive", "tepid"],
        "correctAnswer": 1,
        "explanation": "A review that praises nothing is harshly critical, which is 'scathing'.",
    }


@pytest.fixture
def valid_response_text(valid_candidate) -> str:
    """Fixture providing the candidate as raw model output."""
    return json.dumps(valid_candidate)


@pytest.fixture
def mock_provider(valid_response_text) -> MagicMock:
    """Fixture providing a provider whose completions always succeed."""
    provider = MagicMock(spec=BaseLLMProvider)
    provider.generate_completion = AsyncMock(return_value=valid_response_text)
    provider.cleanup = AsyncMock()
    return provider


@pytest.fixture
def no_sleep() -> AsyncMock:
    """Fixture providing a sleep coroutine that returns immediately."""
    return AsyncMock(return_value=None)


@pytest.fixture
def fast_retry_config() -> RetryConfig:
    """Fixture providing a retry config with a 5-attempt budget and no jitter."""
    return RetryConfig(max_retries=5, base_delay=1.0, max_delay=30.0, jitter=0.0)


@pytest.fixture
def clock() -> FakeClock:
    """Fixture providing a clock fixed in the middle of an hour."""
    return FakeClock(datetime(2024, 3, 15, 10, 20, 0, tzinfo=timezone.utc))


@pytest.fixture
def memory_store() -> InMemoryStorage:
    """Fixture providing an empty in-memory key-value store."""
    return InMemoryStorage()


@pytest.fixture
def gre_verbal_spec() -> QuestionSpec:
    """Fixture providing a GRE verbal generation spec."""
    return QuestionSpec(
        test_type=TestType.GRE,
        section="verbal",
        difficulty=Difficulty.MEDIUM,
        question_index=0,
    )
