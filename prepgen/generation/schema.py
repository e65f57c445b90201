"""Normalize parsed model output onto the canonical candidate schema.

Models do not always use the requested key names. This module maps common
alternates (``choices``, ``answer``, ``rationale`` ...) onto the wire keys the
validator checks, converts letter or text answers into indices, and rewrites
LaTeX and math symbols as plain English so questions render as text.

Normalization never fabricates a missing answer: if ``correctAnswer`` cannot be
resolved it is left out and the validator rejects the candidate.
"""

import re
from typing import Any, Dict, List, Mapping, Optional

REQUIRED_KEYS = ("question", "options", "correctAnswer", "explanation")

QUESTION_KEYS = ("question", "prompt", "stem")
OPTION_KEYS = ("options", "choices", "answers")
ANSWER_KEYS = ("correctAnswer", "correct_answer", "answer", "correct", "correctIndex")
EXPLANATION_KEYS = ("explanation", "rationale", "solution", "reason")
PASSAGE_KEYS = ("passage", "context", "reading")
IMAGE_KEYS = ("image", "imageUrl", "diagram")
IMAGE_DESCRIPTION_KEYS = ("imageDescription", "alt", "caption")

OPTION_LETTERS = "ABCDE"
MAX_OPTIONS = 5
DEFAULT_IMAGE_DESCRIPTION = "Chart or graph related to the question"

_MATH_SYMBOLS = {
    "×": " times ",
    "⋅": " dot ",
    "÷": " divided by ",
    "±": " plus/minus ",
    "≈": " approximately ",
    "≤": " less than or equal to ",
    "≥": " greater than or equal to ",
    "≠": " not equal to ",
    "∑": " sum ",
    "√": " sqrt ",
    "π": " pi ",
    "∞": " infinity ",
}
_MATH_SYMBOL_PATTERN = re.compile("[" + "".join(_MATH_SYMBOLS) + "]")
# Only $...$ spans containing TeX markup, so currency like "$5 and $10" survives
_INLINE_MATH = re.compile(r"\$([^$]*[\\^_{}][^$]*)\$")
_FRAC = re.compile(r"\\frac\{([^}]*)\}\{([^}]*)\}")
_SQRT = re.compile(r"\\sqrt\{([^}]*)\}")
_LATEX_COMMAND = re.compile(r"\\([A-Za-z]+)")
_MULTI_SPACE = re.compile(r"[ \t]{2,}")


def sanitize_math_text(text: Any) -> Any:
    """
    Rewrite LaTeX fragments and math symbols as plain English.

    Args:
        text: Field value; non-strings are returned unchanged

    Returns:
        Sanitized string
    """
    if not isinstance(text, str):
        return text

    text = _INLINE_MATH.sub(lambda m: m.group(1), text)
    text = _FRAC.sub(r"(\1)/(\2)", text)
    text = _SQRT.sub(r"sqrt(\1)", text)
    text = text.replace("\\times", " times ").replace("\\cdot", " dot ")
    text = text.replace("\\pm", " plus/minus ")
    text = _MATH_SYMBOL_PATTERN.sub(lambda m: _MATH_SYMBOLS[m.group(0)], text)
    text = _LATEX_COMMAND.sub(r"\1", text).replace("\\", "")
    text = text.replace("\u2013", "-").replace("\u2014", "-")
    text = text.replace("\u2018", "'").replace("\u2019", "'")
    text = text.replace("\u201c", '"').replace("\u201d", '"')
    return _MULTI_SPACE.sub(" ", text).strip()


def _first_present(obj: Mapping[str, Any], keys: tuple) -> Any:
    for key in keys:
        value = obj.get(key)
        if value is not None and value != "":
            return value
    return None


def unwrap_candidate(obj: Any) -> Any:
    """
    Find the nested object that carries the question fields.

    Models sometimes answer ``{"result": {"question": ...}}``. Returns the
    first object (depth-first) holding every required key, or the input.
    """
    if not isinstance(obj, Mapping):
        return obj
    if all(key in obj for key in REQUIRED_KEYS):
        return obj
    for value in obj.values():
        if isinstance(value, Mapping):
            found = unwrap_candidate(value)
            if isinstance(found, Mapping) and all(key in found for key in REQUIRED_KEYS):
                return found
    return obj


def coerce_options(options: Any) -> List[str]:
    """Turn an options list or a letter-keyed mapping into a list of strings."""
    if isinstance(options, list):
        return [str(option).strip() for option in options if str(option).strip()]
    if isinstance(options, Mapping):
        ordered = []
        for letter in OPTION_LETTERS:
            for key in (letter, letter.lower(), f"{letter}.", f"{letter})"):
                if key in options:
                    ordered.append(str(options[key]).strip())
                    break
        return ordered
    return []


def resolve_answer_index(answer: Any, options: List[str]) -> Optional[int]:
    """
    Convert an answer given as index, letter, option text or object to an index.

    Args:
        answer: Raw answer value from the model
        options: Normalized option list

    Returns:
        Integer index, or None when the answer cannot be resolved
    """
    if isinstance(answer, bool):
        return None
    if isinstance(answer, int):
        return answer
    if isinstance(answer, float):
        return int(answer) if answer.is_integer() else None
    if isinstance(answer, str):
        trimmed = answer.strip().rstrip(".)").strip()
        if trimmed.isdigit():
            return int(trimmed)
        if len(trimmed) == 1 and trimmed.upper() in OPTION_LETTERS:
            return OPTION_LETTERS.index(trimmed.upper())
        lowered = answer.strip().lower()
        for index, option in enumerate(options):
            if option.lower() == lowered:
                return index
        return None
    if isinstance(answer, Mapping):
        if "index" in answer:
            return resolve_answer_index(answer["index"], options)
        if "letter" in answer:
            return resolve_answer_index(answer["letter"], options)
    return None


def normalize_candidate(raw: Any) -> Any:
    """
    Map a parsed object onto the canonical candidate schema.

    Args:
        raw: Object returned by the parser

    Returns:
        New dict with wire keys; non-mapping input is returned unchanged so the
        validator can reject it
    """
    if not isinstance(raw, Mapping):
        return raw

    obj = unwrap_candidate(raw)
    options = coerce_options(_first_present(obj, OPTION_KEYS))[:MAX_OPTIONS]

    candidate: Dict[str, Any] = {}

    question = _first_present(obj, QUESTION_KEYS)
    candidate["question"] = sanitize_math_text(
        question.strip() if isinstance(question, str) else str(question or "").strip()
    )
    candidate["options"] = [sanitize_math_text(option) for option in options]

    answer = resolve_answer_index(_first_present(obj, ANSWER_KEYS), options)
    if answer is not None:
        candidate["correctAnswer"] = answer

    explanation = _first_present(obj, EXPLANATION_KEYS)
    candidate["explanation"] = sanitize_math_text(
        explanation.strip() if isinstance(explanation, str) else str(explanation or "").strip()
    )

    for target, keys in (
        ("passage", PASSAGE_KEYS),
        ("image", IMAGE_KEYS),
        ("imageDescription", IMAGE_DESCRIPTION_KEYS),
    ):
        value = _first_present(obj, keys)
        if isinstance(value, str) and value.strip():
            candidate[target] = value.strip()

    if "passage" in candidate:
        candidate["passage"] = sanitize_math_text(candidate["passage"])

    topic = obj.get("topic")
    if isinstance(topic, str) and topic.strip():
        candidate["topic"] = topic.strip()

    return postprocess_candidate(candidate)


def postprocess_candidate(candidate: Dict[str, Any]) -> Dict[str, Any]:
    """
    Drop empty passages and placeholder images.

    A real image without a description gets a generic one; a description
    without an image is removed.
    """
    result = dict(candidate)

    passage = result.get("passage")
    if not isinstance(passage, str) or not passage.strip():
        result.pop("passage", None)

    image = result.get("image")
    if not isinstance(image, str) or not image.strip() or "placeholder" in image.lower():
        result.pop("image", None)
        result.pop("imageDescription", None)
    else:
        description = result.get("imageDescription")
        if not isinstance(description, str) or not description.strip():
            result["imageDescription"] = DEFAULT_IMAGE_DESCRIPTION

    return result
