"""AI-written performance evaluation over past test results.

Statistics are computed locally by ``summarize_performance``; the completion
service only turns them into study guidance. Evaluations are gated by the
"evaluations" quota and use the same bounded retry and backoff as question
generation. When every attempt fails a fixed message is returned instead.
Study plans share that quota and retry loop; ``quick_insights`` is local only.
"""

import asyncio
import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence, Set

from .config import settings
from .errors import FatalAPIError, ParseError, TransportError
from .infrastructure.retry import RetryConfig
from .infrastructure.usage_limiter import EVALUATIONS, UsageLimiter
from .prompts import build_evaluation_prompt, build_study_plan_prompt
from .providers.base import BaseLLMProvider

logger = logging.getLogger(__name__)

NO_DATA_MESSAGE = "No test data available for performance analysis."
UNAVAILABLE_MESSAGE = "Performance evaluation is temporarily unavailable. Please try again later."
NO_WEAK_AREAS_MESSAGE = "No weak areas given, so there is nothing to plan for."
STUDY_PLAN_UNAVAILABLE_MESSAGE = "Study recommendations are temporarily unavailable. Please try again later."
FIRST_TEST_INSIGHT = "Take your first practice test to get personalized insights!"

RECENT_TEST_COUNT = 5
EVALUATION_TEMPERATURE = 0.5
EVALUATION_MAX_TOKENS = 800
MAX_INSIGHTS = 3


def _percent(correct: int, total: int) -> int:
    return round(correct / total * 100) if total else 0


def summarize_performance(results: Sequence[Mapping[str, Any]]) -> Dict[str, Any]:
    """
    Compute accuracy statistics from result records, most recent first.

    Args:
        results: Result records as produced by a finished test session

    Returns:
        Dict with overall, per-section, per-difficulty and recent-test figures
    """
    sections: Dict[str, Dict[str, float]] = defaultdict(lambda: {"correct": 0, "total": 0, "time": 0.0})
    difficulties: Dict[str, Dict[str, int]] = defaultdict(lambda: {"correct": 0, "total": 0})
    total_questions = 0
    correct_answers = 0
    total_time = 0.0

    for result in results:
        for question in result.get("questions") or []:
            is_correct = bool(question.get("isCorrect"))
            time_spent = float(question.get("timeSpent") or 0)
            total_questions += 1
            correct_answers += int(is_correct)
            total_time += time_spent

            section = sections[question.get("section") or result.get("section") or "unknown"]
            section["total"] += 1
            section["correct"] += int(is_correct)
            section["time"] += time_spent

            difficulty = difficulties[question.get("difficulty") or result.get("difficulty") or "unknown"]
            difficulty["total"] += 1
            difficulty["correct"] += int(is_correct)

    section_performance = {
        name: {
            "correct": int(data["correct"]),
            "total": int(data["total"]),
            "accuracy": _percent(data["correct"], data["total"]),
            "avg_time": round(data["time"] / data["total"]),
        }
        for name, data in sections.items()
    }
    difficulty_performance = {
        name: {
            "correct": data["correct"],
            "total": data["total"],
            "accuracy": _percent(data["correct"], data["total"]),
        }
        for name, data in difficulties.items()
    }

    recent_tests = []
    for result in list(results)[:RECENT_TEST_COUNT]:
        questions = result.get("questions") or []
        correct = sum(1 for q in questions if q.get("isCorrect"))
        recent_tests.append(
            {
                "test_type": result.get("testType", "unknown"),
                "section": result.get("section", "unknown"),
                "correct": correct,
                "total": len(questions),
                "accuracy": _percent(correct, len(questions)),
            }
        )

    # Change from the oldest to the newest of the recent tests
    improvement_trend = 0
    if len(recent_tests) >= 2:
        improvement_trend = recent_tests[0]["accuracy"] - recent_tests[-1]["accuracy"]

    ranked = sorted(section_performance.items(), key=lambda item: item[1]["accuracy"])

    return {
        "tests_taken": len(results),
        "total_questions": total_questions,
        "correct_answers": correct_answers,
        "accuracy": _percent(correct_answers, total_questions),
        "average_question_time": round(total_time / total_questions, 1) if total_questions else 0,
        "section_performance": section_performance,
        "difficulty_performance": difficulty_performance,
        "recent_tests": recent_tests,
        "improvement_trend": improvement_trend,
        "strongest_section": ranked[-1][0] if ranked else None,
        "weakest_section": ranked[0][0] if ranked else None,
    }


def quick_insights(summary: Mapping[str, Any]) -> List[str]:
    """
    Short dashboard hints derived from a ``summarize_performance`` result.

    No completion request is made. At most ``MAX_INSIGHTS`` lines are
    returned, accuracy first, then section spread, trend and practice volume.
    """
    if not summary.get("tests_taken"):
        return [FIRST_TEST_INSIGHT]

    insights = []
    accuracy = summary.get("accuracy", 0)
    if accuracy >= 85:
        insights.append("Excellent accuracy! Focus on speed and advanced concepts.")
    elif accuracy >= 70:
        insights.append("Good progress! Work on consistency across all sections.")
    elif accuracy >= 50:
        insights.append("Solid foundation. Focus on your weakest section for quick gains.")
    else:
        insights.append("Review fundamentals first, then build speed gradually.")

    sections = summary.get("section_performance") or {}
    if len(sections) > 1:
        best = summary["strongest_section"]
        worst = summary["weakest_section"]
        if sections[best]["accuracy"] - sections[worst]["accuracy"] > 20:
            insights.append(f"Strong in {best}! Apply those skills to improve {worst}.")

    trend = summary.get("improvement_trend", 0)
    if trend > 10:
        insights.append("Great momentum! Keep up your current study routine.")
    elif trend < -10:
        insights.append("Time to adjust your study strategy. Focus on fundamentals.")

    tests_taken = summary["tests_taken"]
    if tests_taken >= 10:
        insights.append("Good practice frequency! Consider taking full-length practice tests.")
    elif tests_taken >= 5:
        insights.append("Building consistency! Take more practice questions daily.")

    return insights[:MAX_INSIGHTS]


class PerformanceEvaluator:
    """Turns past results into written study guidance."""

    def __init__(
        self,
        provider: BaseLLMProvider,
        limiter: UsageLimiter,
        models: Optional[Sequence[str]] = None,
        retry_config: Optional[RetryConfig] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rand: Optional[Callable[[float, float], float]] = None,
    ):
        self.provider = provider
        self.limiter = limiter
        self.models = list(models) if models is not None else settings.model_list()
        if not self.models:
            raise ValueError("At least one evaluation model is required")
        self.retry_config = retry_config or RetryConfig()
        self._sleep = sleep
        self._rand = rand

    def _model_for_attempt(self, attempt: int) -> str:
        return self.models[min(attempt, len(self.models) - 1)]

    def _consume_quota(self) -> None:
        decision = self.limiter.check_and_consume(EVALUATIONS)
        if not decision.allowed:
            raise decision.to_error()

    async def _complete(self, prompt: str, label: str) -> Optional[str]:
        """Run the bounded retry loop; None once every attempt has failed."""
        max_retries = self.retry_config.max_retries
        fatal_models: Set[str] = set()

        for attempt in range(max_retries):
            model = self._model_for_attempt(attempt)
            if model in fatal_models:
                break
            try:
                return await self.provider.generate_completion(
                    prompt,
                    model=model,
                    temperature=EVALUATION_TEMPERATURE,
                    max_tokens=EVALUATION_MAX_TOKENS,
                )
            except FatalAPIError as e:
                fatal_models.add(model)
                logger.warning(f"{label} attempt {attempt + 1} with {model} failed: {e}")
            except (TransportError, ParseError) as e:
                logger.warning(f"{label} attempt {attempt + 1} with {model} failed: {e}")
            except Exception:
                logger.exception(f"Unexpected error from {model} on {label.lower()} attempt {attempt + 1}")

            next_attempt = attempt + 1
            if next_attempt < max_retries and self._model_for_attempt(next_attempt) not in fatal_models:
                await self._sleep(self.retry_config.delay_for(attempt, rand=self._rand))

        logger.error(f"{label} exhausted all attempts")
        return None

    async def evaluate(self, results: Sequence[Mapping[str, Any]]) -> str:
        """
        Produce a written evaluation of ``results``.

        Args:
            results: Result records, most recent first

        Returns:
            Evaluation text, or a fixed message when there is no data or the
            service is unavailable

        Raises:
            RateLimitError: If the evaluations quota denies the request
        """
        if not results:
            return NO_DATA_MESSAGE

        self._consume_quota()
        prompt = build_evaluation_prompt(summarize_performance(results))
        text = await self._complete(prompt, "Evaluation")
        return UNAVAILABLE_MESSAGE if text is None else text

    async def recommend_study_plan(self, weak_areas: Sequence[str], test_type: str) -> str:
        """
        Produce a two-week study plan targeting ``weak_areas``.

        Args:
            weak_areas: Section or topic names the student struggles with
            test_type: "GRE" or "GMAT"

        Returns:
            Plan text, or a fixed message when no areas are given or the
            service is unavailable

        Raises:
            RateLimitError: If the evaluations quota denies the request
        """
        areas = [area.strip() for area in weak_areas if area and area.strip()]
        if not areas:
            return NO_WEAK_AREAS_MESSAGE

        self._consume_quota()
        text = await self._complete(build_study_plan_prompt(areas, test_type), "Study plan")
        return STUDY_PLAN_UNAVAILABLE_MESSAGE if text is None else text
