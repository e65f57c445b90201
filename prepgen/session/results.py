"""Result assembly, sanitization and persistence interfaces.

Result records use camelCase keys because they are handed to external stores
as-is. Before persistence every record is sanitized: known fields that are
``None`` get defaults, unknown ``None`` fields are dropped, and datetimes and
enums become plain JSON values.
"""

import copy
import json
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from ..datetime_utils import utc_now
from ..models import AnswerRecord, SessionConfig, ValidatedQuestion

logger = logging.getLogger(__name__)

FIELD_DEFAULTS: Dict[str, Any] = {
    "testType": "unknown",
    "section": "unknown",
    "difficulty": "medium",
    "question": "",
    "explanation": "",
    "userId": "",
    "options": [],
    "questions": [],
    "correctAnswer": 0,
    "userAnswer": -1,
    "isCorrect": False,
    "timeSpent": 0,
    "score": 0,
    "totalQuestions": 0,
    "accuracy": 0,
    "totalTime": 0,
}


def sanitize_record(value: Any) -> Any:
    """
    Recursively replace or drop ``None`` values and convert non-JSON types.

    Args:
        value: Record, list or scalar

    Returns:
        A new structure containing no ``None`` values
    """
    if isinstance(value, Mapping):
        cleaned: Dict[str, Any] = {}
        for key, item in value.items():
            if item is None:
                if key in FIELD_DEFAULTS:
                    cleaned[key] = copy.deepcopy(FIELD_DEFAULTS[key])
                continue
            cleaned[key] = sanitize_record(item)
        return cleaned
    if isinstance(value, (list, tuple)):
        return [sanitize_record(item) for item in value if item is not None]
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return value


def ensure_json_serializable(record: Any) -> str:
    """
    Serialize a record, failing loudly if it cannot be stored as JSON.

    Returns:
        The JSON text

    Raises:
        TypeError: If the record holds values JSON cannot represent
    """
    try:
        return json.dumps(record, allow_nan=False)
    except (TypeError, ValueError) as e:
        raise TypeError(f"Result record is not JSON-serializable: {e}") from e


def build_question_entry(
    index: int,
    question: ValidatedQuestion,
    answer: Optional[AnswerRecord],
) -> Dict[str, Any]:
    """Combine a question with the user's answer into a result entry."""
    entry = question.to_wire()
    user_answer = answer.answer_index if answer is not None else -1
    entry.update(
        {
            "index": index,
            "userAnswer": user_answer,
            "isCorrect": user_answer == question.correct_answer,
            "timeSpent": answer.time_spent if answer is not None else 0,
        }
    )
    return entry


def build_result_record(
    config: SessionConfig,
    slots: Sequence[Optional[ValidatedQuestion]],
    answers: Mapping[int, AnswerRecord],
    started_at: Optional[datetime],
    completed_at: Optional[datetime] = None,
    user_id: Optional[str] = None,
    session_id: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Assemble the test result record from the slot array and answers.

    Slots that were never filled are left out of ``questions``.

    Returns:
        Unsanitized result record
    """
    questions = [
        build_question_entry(index, question, answers.get(index))
        for index, question in enumerate(slots)
        if question is not None
    ]
    score = sum(1 for entry in questions if entry["isCorrect"])
    total = len(questions)
    completed_at = completed_at or utc_now()

    return {
        "userId": user_id,
        "sessionId": session_id,
        "testType": config.test_type,
        "section": config.section,
        "difficulty": config.difficulty,
        "questionCount": config.question_count,
        "questions": questions,
        "score": score,
        "totalQuestions": total,
        "accuracy": round(score / total * 100, 1) if total else 0,
        "totalTime": round(sum(entry["timeSpent"] for entry in questions), 3),
        "startedAt": started_at,
        "completedAt": completed_at,
        "createdAt": completed_at,
    }


def build_question_response(result: Mapping[str, Any], entry: Mapping[str, Any]) -> Dict[str, Any]:
    """Per-question response record derived from a sanitized result entry."""
    return sanitize_record(
        {
            "userId": result.get("userId"),
            "sessionId": result.get("sessionId"),
            "question": entry.get("question"),
            "options": entry.get("options"),
            "correctAnswer": entry.get("correctAnswer"),
            "userAnswer": entry.get("userAnswer"),
            "isCorrect": entry.get("isCorrect"),
            "timeSpent": entry.get("timeSpent"),
            "section": entry.get("section") or result.get("section"),
            "testType": entry.get("testType") or result.get("testType"),
            "difficulty": entry.get("difficulty") or result.get("difficulty"),
            "topic": entry.get("topic"),
            "createdAt": result.get("createdAt"),
        }
    )


class ResultSink(ABC):
    """Destination for completed test results."""

    @abstractmethod
    async def save_test_result(self, record: Dict[str, Any]) -> str:
        """
        Persist a whole test result.

        Returns:
            Identifier assigned by the store
        """

    @abstractmethod
    async def save_question_response(self, record: Dict[str, Any]) -> str:
        """
        Persist one answered question.

        Returns:
            Identifier assigned by the store
        """


class InMemoryResultSink(ResultSink):
    """Keeps results in lists; useful for tests and the CLI."""

    def __init__(self) -> None:
        self.test_results: List[Dict[str, Any]] = []
        self.question_responses: List[Dict[str, Any]] = []

    async def save_test_result(self, record: Dict[str, Any]) -> str:
        record_id = uuid.uuid4().hex
        self.test_results.append({"id": record_id, **record})
        return record_id

    async def save_question_response(self, record: Dict[str, Any]) -> str:
        record_id = uuid.uuid4().hex
        self.question_responses.append({"id": record_id, **record})
        return record_id


class JSONLinesResultSink(ResultSink):
    """Appends results as JSON lines to two files in a directory."""

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)
        self.results_path = self.directory / "test_results.jsonl"
        self.responses_path = self.directory / "question_responses.jsonl"
        self._lock = threading.Lock()

    def _append(self, path: Path, record: Dict[str, Any]) -> str:
        record_id = uuid.uuid4().hex
        line = json.dumps({"id": record_id, **record}, allow_nan=False)
        with self._lock:
            self.directory.mkdir(parents=True, exist_ok=True)
            with path.open("a", encoding="utf-8") as f:
                f.write(line + "\n")
        return record_id

    async def save_test_result(self, record: Dict[str, Any]) -> str:
        return self._append(self.results_path, record)

    async def save_question_response(self, record: Dict[str, Any]) -> str:
        return self._append(self.responses_path, record)
