"""GRE/GMAT practice question generation pipeline."""

from prepgen.fallback import get_fallback_question
from prepgen.generation.orchestrator import QuestionOrchestrator
from prepgen.generation.parser import parse
from prepgen.generation.validator import is_valid
from prepgen.infrastructure.usage_limiter import UsageLimiter
from prepgen.models import Difficulty, QuestionSpec, SessionConfig, TestType, ValidatedQuestion
from prepgen.session.controller import TestSession

__version__ = "0.1.0"

__all__ = [
    "Difficulty",
    "QuestionOrchestrator",
    "QuestionSpec",
    "SessionConfig",
    "TestSession",
    "TestType",
    "UsageLimiter",
    "ValidatedQuestion",
    "get_fallback_question",
    "is_valid",
    "parse",
]
