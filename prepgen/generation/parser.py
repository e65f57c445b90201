"""Recover a JSON object from free-form model output.

Models wrap their JSON in code fences, prepend chatty preambles, use smart
quotes, leave trailing commas and emit raw newlines inside strings. The parser
tries an ordered cascade of strategies, cheapest first, and returns the result
of the first one that yields a JSON object.

Each strategy is a pure function ``str -> dict`` that raises ``ValueError``
(``json.JSONDecodeError`` included) when it cannot produce an object.
"""

import json
import logging
import re
from typing import Any, Callable, Dict, List, Optional, Tuple

import json_repair

from prepgen.errors import ParseError

logger = logging.getLogger(__name__)

ParseStrategy = Callable[[str], Dict[str, Any]]

# BOM and zero-width characters that break json.loads at position 0
_INVISIBLE_CHARS = {ord(c): None for c in "\ufeff\u200b\u200c\u200d\u2060"}

_FENCE_OPEN = re.compile(r"^```[A-Za-z0-9_+-]*[ \t]*\r?\n?")
_FENCE_CLOSE = re.compile(r"\r?\n?```$")
_OUTER_BLOCK = re.compile(r"\{[\s\S]*\}")

_SMART_QUOTES = str.maketrans(
    {
        "\u201c": '"',
        "\u201d": '"',
        "\u201e": '"',
        "\u2018": "'",
        "\u2019": "'",
    }
)

_JSON_ESCAPES = {"\n": "\\n", "\r": "\\r", "\t": "\\t", "\b": "\\b", "\f": "\\f"}


def _loads_object(text: str) -> Dict[str, Any]:
    result = json.loads(text)
    if not isinstance(result, dict):
        raise ValueError(f"expected a JSON object, got {type(result).__name__}")
    return result


def _strip_invisible(text: str) -> str:
    return text.translate(_INVISIBLE_CHARS)


def strip_and_parse(raw_text: str) -> Dict[str, Any]:
    """
    Strategy 1: trim whitespace and surrounding code fences, then parse.

    Only fences at the very start and end are removed. Prose before or after
    the JSON is left alone so that the next strategy handles it.
    """
    text = _strip_invisible(raw_text).strip()
    text = _FENCE_OPEN.sub("", text, count=1)
    text = _FENCE_CLOSE.sub("", text, count=1)
    return _loads_object(text.strip())


def _outer_block_text(text: str) -> Optional[str]:
    match = _OUTER_BLOCK.search(text)
    return match.group(0) if match else None


def outer_block(raw_text: str) -> Dict[str, Any]:
    """Strategy 2: parse the span from the first ``{`` to the last ``}``."""
    block = _outer_block_text(_strip_invisible(raw_text))
    if block is None:
        raise ValueError("no brace-delimited block found")
    return _loads_object(block)


def _sanitize_control_chars(text: str) -> str:
    """Escape control characters inside strings and drop them outside."""
    out: List[str] = []
    in_string = False
    escaped = False

    for ch in text:
        if in_string:
            if escaped:
                escaped = False
                out.append(ch)
            elif ch == "\\":
                escaped = True
                out.append(ch)
            elif ch == '"':
                in_string = False
                out.append(ch)
            elif ord(ch) < 0x20:
                out.append(_JSON_ESCAPES.get(ch, f"\\u{ord(ch):04x}"))
            else:
                out.append(ch)
        elif ch == '"':
            in_string = True
            out.append(ch)
        elif ord(ch) < 0x20 and ch not in " \t\r\n":
            continue
        else:
            out.append(ch)

    return "".join(out)


def _balanced_blocks(text: str) -> List[Tuple[int, int]]:
    """Return (start, end) spans of every balanced top-level ``{...}`` block."""
    spans: List[Tuple[int, int]] = []
    depth = 0
    start = -1
    in_string = False
    escaped = False

    for i, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue

        if ch == '"':
            in_string = True
        elif ch == "{":
            if depth == 0:
                start = i
            depth += 1
        elif ch == "}" and depth > 0:
            depth -= 1
            if depth == 0:
                spans.append((start, i + 1))

    return spans


def _prepare_for_repair(text: str) -> str:
    # Curly quotes only act as delimiters when the model used no straight ones
    if '"' not in text:
        text = text.translate(_SMART_QUOTES)
    return _sanitize_control_chars(text)


def heuristic_repair(raw_text: str) -> Dict[str, Any]:
    """
    Strategy 3: repair the outer block with ``json_repair`` and parse.

    Handles trailing commas, single-quoted or unquoted keys, curly quotes and
    raw control characters inside strings without touching string contents.
    """
    text = _strip_invisible(raw_text).strip()
    block = _outer_block_text(text)
    if block is None:
        raise ValueError("no brace-delimited block found")
    if len(_balanced_blocks(block)) > 1:
        # Several separate objects; the last-block rescan picks the answer
        raise ValueError("multiple top-level blocks found")

    result = json_repair.loads(_prepare_for_repair(block))
    if not isinstance(result, dict) or not result:
        raise ValueError(f"repair did not produce a JSON object, got {type(result).__name__}")
    return result


def rescan_last_block(raw_text: str) -> Dict[str, Any]:
    """
    Strategy 4: string-aware rescan, then parse the last balanced block.

    Handles responses that contain raw control characters inside string
    literals, or several JSON-looking blocks where the final one is the answer.
    """
    cleaned = _sanitize_control_chars(_strip_invisible(raw_text))
    spans = _balanced_blocks(cleaned)
    if not spans:
        raise ValueError("no balanced brace block found")
    start, end = spans[-1]
    return _loads_object(cleaned[start:end])


STRATEGIES: Tuple[Tuple[str, ParseStrategy], ...] = (
    ("strip_and_parse", strip_and_parse),
    ("outer_block", outer_block),
    ("heuristic_repair", heuristic_repair),
    ("rescan_last_block", rescan_last_block),
)


def parse_with_strategy(raw_text: str) -> Tuple[Dict[str, Any], str]:
    """
    Parse model output, reporting which strategy succeeded.

    Args:
        raw_text: Raw response content

    Returns:
        Tuple of (parsed object, strategy name)

    Raises:
        ParseError: If no strategy produced a JSON object
    """
    if not isinstance(raw_text, str) or not raw_text.strip():
        raise ParseError("Empty response content", raw_text if isinstance(raw_text, str) else "")

    for name, strategy in STRATEGIES:
        try:
            result = strategy(raw_text)
        except ValueError as e:
            logger.debug(f"Parse strategy '{name}' failed: {e}")
            continue
        except RecursionError:
            logger.debug(f"Parse strategy '{name}' hit recursion limit")
            continue

        logger.debug(f"Parsed response with strategy '{name}'")
        return result, name

    raise ParseError(
        f"Could not extract a JSON object using {len(STRATEGIES)} strategies",
        raw_text,
    )


def parse(raw_text: str) -> Dict[str, Any]:
    """Parse model output into a candidate object, raising ParseError on failure."""
    result, _ = parse_with_strategy(raw_text)
    return result
