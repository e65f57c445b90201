"""Question generation with retry, model rotation and static fallback.

Each logical request runs a bounded loop of attempts. Attempt ``n`` uses
``models[min(n, len(models) - 1)]``; after any failure the loop sleeps for an
exponential backoff with jitter before the next attempt. When the budget is
spent, the request is served from the static fallback table, so ``generate``
always returns a question for any test type and section the table covers.
"""

import asyncio
import logging
import random
from typing import Any, Awaitable, Callable, Optional, Sequence, Set, Tuple

from ..config import settings
from ..errors import FatalAPIError, ParseError, TransportError, ValidationError
from ..fallback import get_fallback_question
from ..infrastructure.retry import RetryConfig
from ..metrics import GenerationMetrics
from ..models import QuestionSpec, ValidatedQuestion
from ..prompts import build_question_prompt, build_retry_prompt
from ..providers.base import BaseLLMProvider
from ..topics import choose_topic
from .parser import parse_with_strategy
from .schema import normalize_candidate
from .validator import validation_errors

logger = logging.getLogger(__name__)


class QuestionOrchestrator:
    """Generates validated questions from an unreliable completion service."""

    def __init__(
        self,
        provider: BaseLLMProvider,
        models: Optional[Sequence[str]] = None,
        retry_config: Optional[RetryConfig] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rand: Optional[Callable[[float, float], float]] = None,
        topic_rng: Optional[random.Random] = None,
        metrics: Optional[GenerationMetrics] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            provider: Completion provider making one request per call
            models: Models in fallback order, defaults to settings
            retry_config: Attempt budget and backoff shape
            temperature: Sampling temperature, defaults to settings
            max_tokens: Completion token cap, defaults to settings
            sleep: Coroutine used for backoff waits (injectable for tests)
            rand: Uniform random source for jitter
            topic_rng: Random source for topic selection
            metrics: Metrics sink, a fresh one by default
        """
        self.provider = provider
        self.models = list(models) if models is not None else settings.model_list()
        if not self.models:
            raise ValueError("At least one generation model is required")

        self.retry_config = retry_config or RetryConfig()
        self.temperature = settings.temperature if temperature is None else temperature
        self.max_tokens = settings.max_tokens if max_tokens is None else max_tokens
        self.metrics = metrics or GenerationMetrics()
        self._sleep = sleep
        self._rand = rand
        self._topic_rng = topic_rng

    def model_for_attempt(self, attempt: int) -> str:
        """Model used for a zero-based attempt; the last model repeats."""
        return self.models[min(attempt, len(self.models) - 1)]

    async def generate(self, spec: QuestionSpec) -> ValidatedQuestion:
        """
        Generate one validated question for ``spec``.

        Transport, fatal API, parse and validation failures each consume one
        attempt. A model that failed with a fatal API error is never called
        again; if the rotation would select it, the loop ends early.

        Args:
            spec: What to generate

        Returns:
            A generated question, or the static fallback once attempts run out

        Raises:
            NoFallbackError: Only if attempts run out and the test type and
                section have no static fallback
        """
        self.metrics.record_request()
        topic = choose_topic(spec.section, spec.previous_topics, rng=self._topic_rng)
        max_retries = self.retry_config.max_retries
        fatal_models: Set[str] = set()
        use_retry_prompt = False
        last_model: Optional[str] = None

        for attempt in range(max_retries):
            model = self.model_for_attempt(attempt)
            if model in fatal_models:
                logger.warning(
                    f"Model {model} already failed with a fatal error, "
                    f"stopping after {attempt} attempts"
                )
                break

            last_model = model
            if use_retry_prompt:
                prompt = build_retry_prompt(spec)
            else:
                prompt = build_question_prompt(spec, topic)
            self.metrics.record_attempt(model, attempt)
            logger.info(
                f"Generating {spec.test_type.value} {spec.section} ({spec.difficulty.value}) "
                f"question {spec.question_index} with {model} "
                f"(attempt {attempt + 1}/{max_retries})"
            )

            try:
                question, strategy = await self._attempt(spec, model, prompt, topic)
            except TransportError as e:
                error: Exception = e
                category = "transport"
            except FatalAPIError as e:
                error = e
                category = "fatal_api"
                fatal_models.add(model)
            except ParseError as e:
                error = e
                category = "parse"
                use_retry_prompt = True
                logger.debug(f"Unparseable response from {model}: {e.raw_prefix!r}")
            except ValidationError as e:
                error = e
                category = "validation"
                use_retry_prompt = True
            except Exception as e:
                logger.exception(f"Unexpected error from {model} on attempt {attempt + 1}")
                error = e
                category = "unknown"
            else:
                self.metrics.record_success(model, attempt, strategy)
                logger.info(
                    f"Generated question {spec.question_index} with {model} "
                    f"(parse strategy: {strategy})"
                )
                return question

            self.metrics.record_failure(model, attempt, category, str(error))
            logger.warning(
                f"Attempt {attempt + 1}/{max_retries} with {model} failed "
                f"({category}): {error}"
            )

            next_attempt = attempt + 1
            if (
                next_attempt < max_retries
                and self.model_for_attempt(next_attempt) not in fatal_models
            ):
                delay = self.retry_config.delay_for(attempt, rand=self._rand)
                logger.debug(f"Backing off {delay:.2f}s before attempt {next_attempt + 1}")
                await self._sleep(delay)

        logger.error(
            f"Generation exhausted for {spec.test_type.value} {spec.section} "
            f"question {spec.question_index}, serving static fallback"
        )
        self.metrics.record_fallback(last_model)
        return get_fallback_question(spec.test_type, spec.section, spec.difficulty)

    async def _attempt(
        self,
        spec: QuestionSpec,
        model: str,
        prompt: str,
        topic: Optional[str],
    ) -> Tuple[ValidatedQuestion, str]:
        content = await self.provider.generate_completion(
            prompt,
            model=model,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )
        parsed, strategy = parse_with_strategy(content)
        candidate = normalize_candidate(parsed)

        errors = validation_errors(candidate)
        if errors:
            raise ValidationError(errors)

        if topic:
            candidate["topic"] = topic
        return ValidatedQuestion.from_candidate(candidate, spec, source_model=model), strategy
