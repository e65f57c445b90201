"""Structural validation for candidate questions.

Both functions are pure: they never mutate the candidate and always return the
same answer for the same input.
"""

from typing import Any, List, Mapping

MIN_TEXT_LENGTH = 3
MIN_OPTIONS = 4
MAX_OPTIONS = 5


def _is_text(value: Any, min_length: int = MIN_TEXT_LENGTH) -> bool:
    return isinstance(value, str) and len(value.strip()) >= min_length


def validation_errors(candidate: Any) -> List[str]:
    """
    Collect every structural problem with a candidate question.

    Args:
        candidate: Parsed (and normalized) candidate object

    Returns:
        List of human-readable problems, empty when the candidate is valid
    """
    if not isinstance(candidate, Mapping):
        return [f"candidate must be an object, got {type(candidate).__name__}"]

    errors: List[str] = []

    if not _is_text(candidate.get("question")):
        errors.append(f"question must be a string of at least {MIN_TEXT_LENGTH} characters")

    options = candidate.get("options")
    options_ok = False
    if not isinstance(options, list):
        errors.append("options must be a list")
    elif not MIN_OPTIONS <= len(options) <= MAX_OPTIONS:
        errors.append(
            f"options must contain {MIN_OPTIONS} to {MAX_OPTIONS} entries, got {len(options)}"
        )
    elif not all(isinstance(option, str) and option.strip() for option in options):
        errors.append("every option must be a non-empty string")
    elif len({option.strip().casefold() for option in options}) != len(options):
        errors.append("options must be distinct")
    else:
        options_ok = True

    answer = candidate.get("correctAnswer")
    # bool is a subclass of int but True/False are not answer indices
    if isinstance(answer, bool) or not isinstance(answer, int):
        errors.append("correctAnswer must be an integer index")
    elif options_ok and not 0 <= answer < len(options):
        errors.append(f"correctAnswer {answer} is out of range for {len(options)} options")

    if not _is_text(candidate.get("explanation")):
        errors.append(
            f"explanation must be a string of at least {MIN_TEXT_LENGTH} characters"
        )

    image = candidate.get("image")
    description = candidate.get("imageDescription")
    if image is not None:
        if not isinstance(image, str) or not image.strip():
            errors.append("image must be a non-empty string when present")
        if not _is_text(description):
            errors.append("imageDescription is required when image is present")
    elif description is not None:
        errors.append("imageDescription given without image")

    return errors


def is_valid(candidate: Any) -> bool:
    """Return True when the candidate passes every structural check."""
    return not validation_errors(candidate)
