"""Data models for question generation and test sessions."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic import ValidationError as PydanticValidationError

from prepgen.datetime_utils import utc_now
from prepgen.errors import ConfigError

MIN_QUESTION_COUNT = 1
MAX_QUESTION_COUNT = 30


class TestType(str, Enum):
    """Standardized tests the generator supports."""

    __test__ = False  # not a pytest test class

    GRE = "GRE"
    GMAT = "GMAT"


class Difficulty(str, Enum):
    """Question difficulty levels."""

    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


SECTIONS: Dict[TestType, Tuple[str, ...]] = {
    TestType.GRE: ("verbal", "quantitative", "reading", "analytical-writing"),
    TestType.GMAT: (
        "verbal",
        "quantitative",
        "integrated-reasoning",
        "analytical-writing",
    ),
}


def sections_for(test_type: TestType) -> Tuple[str, ...]:
    """Return the sections offered by a test type."""
    return SECTIONS[TestType(test_type)]


def is_valid_section(test_type: Any, section: str) -> bool:
    """Check whether ``section`` belongs to ``test_type``.

    Args:
        test_type: TestType or its string value
        section: Section name

    Returns:
        True if the pair is allowed, False for unknown test types or sections
    """
    try:
        return section in SECTIONS[TestType(test_type)]
    except ValueError:
        return False


class SessionConfig(BaseModel):
    """Configuration for a single practice test.

    Accepts both snake_case and camelCase keys so that configuration coming
    from a client payload (``testType``, ``questionCount``) validates directly.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    test_type: TestType = Field(..., alias="testType")
    section: str = Field(..., min_length=1)
    difficulty: Difficulty = Difficulty.MEDIUM
    question_count: int = Field(
        default=10,
        alias="questionCount",
        ge=MIN_QUESTION_COUNT,
        le=MAX_QUESTION_COUNT,
    )

    @model_validator(mode="after")
    def check_section(self) -> "SessionConfig":
        """Reject sections that do not belong to the chosen test type."""
        if not is_valid_section(self.test_type, self.section):
            allowed = ", ".join(SECTIONS[self.test_type])
            raise ValueError(
                f"Section '{self.section}' is not part of {self.test_type.value} "
                f"(allowed: {allowed})"
            )
        return self

    @classmethod
    def from_input(cls, data: Any) -> "SessionConfig":
        """
        Build a config from user input, raising ConfigError on bad input.

        Args:
            data: An existing SessionConfig or a mapping of config values

        Returns:
            Validated SessionConfig

        Raises:
            ConfigError: If the input is malformed
        """
        if isinstance(data, cls):
            return data
        if not isinstance(data, Mapping):
            raise ConfigError([f"Expected a mapping, got {type(data).__name__}"])
        try:
            return cls.model_validate(dict(data))
        except PydanticValidationError as e:
            messages = []
            for err in e.errors():
                location = ".".join(str(part) for part in err["loc"])
                messages.append(f"{location}: {err['msg']}" if location else err["msg"])
            raise ConfigError(messages) from e


class QuestionSpec(BaseModel):
    """Input to a single generation request."""

    model_config = ConfigDict(frozen=True)

    test_type: TestType
    section: str
    difficulty: Difficulty = Difficulty.MEDIUM
    question_index: int = Field(default=0, ge=0)
    session_id: int = 0
    previous_topics: Tuple[str, ...] = ()

    @classmethod
    def for_slot(
        cls,
        config: SessionConfig,
        question_index: int,
        session_id: int,
        previous_topics: Optional[List[str]] = None,
    ) -> "QuestionSpec":
        """Create the QuestionSpec for one slot of a running session."""
        return cls(
            test_type=config.test_type,
            section=config.section,
            difficulty=config.difficulty,
            question_index=question_index,
            session_id=session_id,
            previous_topics=tuple(previous_topics or ()),
        )


class ValidatedQuestion(BaseModel):
    """A question that passed validation, stamped with its provenance.

    Instances are immutable. Serialize with ``to_wire()`` to get the camelCase
    form used by result records.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    question: str
    options: Tuple[str, ...]
    correct_answer: int = Field(..., alias="correctAnswer", ge=0)
    explanation: str
    passage: Optional[str] = None
    image: Optional[str] = None
    image_description: Optional[str] = Field(default=None, alias="imageDescription")
    topic: Optional[str] = None

    test_type: TestType = Field(..., alias="testType")
    section: str
    difficulty: Difficulty
    source_model: Optional[str] = Field(default=None, alias="sourceModel")
    is_fallback: bool = Field(default=False, alias="isFallback")
    generated_at: datetime = Field(default_factory=utc_now, alias="generatedAt")

    @classmethod
    def from_candidate(
        cls,
        candidate: Mapping[str, Any],
        spec: QuestionSpec,
        source_model: Optional[str] = None,
        is_fallback: bool = False,
    ) -> "ValidatedQuestion":
        """
        Stamp a validated candidate with its test type, section and difficulty.

        The caller is responsible for running the validator first.

        Args:
            candidate: Candidate dict using wire keys
            spec: The spec the candidate was generated for
            source_model: Model that produced the candidate
            is_fallback: Whether this came from the static fallback table

        Returns:
            Immutable ValidatedQuestion
        """
        return cls(
            question=candidate["question"].strip(),
            options=tuple(option.strip() for option in candidate["options"]),
            correctAnswer=candidate["correctAnswer"],
            explanation=candidate["explanation"].strip(),
            passage=candidate.get("passage") or None,
            image=candidate.get("image") or None,
            imageDescription=candidate.get("imageDescription") or None,
            topic=candidate.get("topic") or None,
            testType=spec.test_type,
            section=spec.section,
            difficulty=spec.difficulty,
            sourceModel=source_model,
            isFallback=is_fallback,
        )

    def to_wire(self) -> Dict[str, Any]:
        """Serialize to a JSON-friendly camelCase dict, omitting unset optionals."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class AnswerRecord(BaseModel):
    """A user's answer to one question."""

    answer_index: int = -1
    time_spent: float = Field(default=0.0, ge=0.0)
    answered_at: datetime = Field(default_factory=utc_now)
