"""Tests for candidate normalization."""

import pytest

from prepgen.generation.schema import (
    DEFAULT_IMAGE_DESCRIPTION,
    coerce_options,
    normalize_candidate,
    postprocess_candidate,
    resolve_answer_index,
    sanitize_math_text,
    unwrap_candidate,
)
from prepgen.generation.validator import is_valid

OPTIONS = ["apple", "banana", "cherry", "date"]


class TestSanitizeMathText:
    """Tests for LaTeX and symbol rewriting."""

    def test_fraction(self):
        """Test that \\frac becomes a slash expression."""
        assert sanitize_math_text(r"What is $\frac{1}{2}$ of 10?") == "What is (1)/(2) of 10?"

    def test_square_root(self):
        """Test that \\sqrt becomes sqrt()."""
        assert sanitize_math_text(r"\sqrt{16}") == "sqrt(16)"

    def test_times_symbol(self):
        """Test that the multiplication sign is spelled out."""
        assert sanitize_math_text("3 × 4") == "3 times 4"

    def test_latex_times(self):
        """Test that the \\times command is spelled out."""
        assert sanitize_math_text(r"$3 \times 4$") == "3 times 4"

    def test_inequality(self):
        """Test that comparison symbols are spelled out."""
        assert sanitize_math_text("x ≤ 5") == "x less than or equal to 5"

    def test_currency_is_preserved(self):
        """Test that dollar amounts without TeX markup are left alone."""
        text = "A shirt costs $5 and a hat costs $10."
        assert sanitize_math_text(text) == text

    def test_smart_punctuation(self):
        """Test that curly quotes and dashes are normalized."""
        assert sanitize_math_text("\u201cyes\u201d \u2014 it\u2019s") == "\"yes\" - it's"

    def test_non_string_passthrough(self):
        """Test that non-strings are returned unchanged."""
        assert sanitize_math_text(3) == 3
        assert sanitize_math_text(None) is None


class TestCoerceOptions:
    """Tests for option coercion."""

    def test_list(self):
        """Test that a list is stringified and blanks dropped."""
        assert coerce_options(["a", 2, " ", "c "]) == ["a", "2", "c"]

    def test_letter_mapping(self):
        """Test that a letter-keyed mapping becomes an ordered list."""
        assert coerce_options({"B": "two", "A": "one", "c": "three", "D.": "four"}) == [
            "one",
            "two",
            "three",
            "four",
        ]

    def test_other(self):
        """Test that unsupported values give an empty list."""
        assert coerce_options("a, b") == []


class TestResolveAnswerIndex:
    """Tests for answer index resolution."""

    @pytest.mark.parametrize(
        "answer,expected",
        [
            (2, 2),
            (2.0, 2),
            ("3", 3),
            ("B", 1),
            ("c)", 2),
            ("D.", 3),
            ("Cherry", 2),
            ({"index": 1}, 1),
            ({"letter": "A"}, 0),
        ],
    )
    def test_resolves(self, answer, expected):
        """Test that supported answer forms resolve to an index."""
        assert resolve_answer_index(answer, OPTIONS) == expected

    @pytest.mark.parametrize("answer", [None, True, 1.5, "mango", {"value": 1}, [1]])
    def test_unresolvable(self, answer):
        """Test that unsupported answers resolve to None."""
        assert resolve_answer_index(answer, OPTIONS) is None


class TestUnwrapCandidate:
    """Tests for nested object discovery."""

    def test_returns_flat_object(self, valid_candidate):
        """Test that an object with all keys is returned as is."""
        assert unwrap_candidate(valid_candidate) is valid_candidate

    def test_finds_nested_object(self, valid_candidate):
        """Test that a wrapped object is found."""
        assert unwrap_candidate({"result": {"data": valid_candidate}}) == valid_candidate

    def test_returns_input_when_not_found(self):
        """Test that input is returned when nothing nested matches."""
        obj = {"a": {"b": 1}}
        assert unwrap_candidate(obj) is obj


class TestNormalizeCandidate:
    """Tests for normalize_candidate."""

    def test_valid_candidate_unchanged(self, valid_candidate):
        """Test that a canonical candidate keeps its values."""
        assert normalize_candidate(valid_candidate) == valid_candidate

    def test_alternate_keys(self):
        """Test that alternate key names map onto wire keys."""
        raw = {
            "prompt": "Which fruit is yellow?",
            "choices": {"A": "apple", "B": "banana", "C": "cherry", "D": "date"},
            "answer": "B",
            "rationale": "Bananas are yellow when ripe.",
        }

        candidate = normalize_candidate(raw)

        assert candidate == {
            "question": "Which fruit is yellow?",
            "options": OPTIONS,
            "correctAnswer": 1,
            "explanation": "Bananas are yellow when ripe.",
        }
        assert is_valid(candidate)

    def test_unresolvable_answer_is_omitted(self, valid_candidate):
        """Test that an unresolvable answer is left out rather than defaulted."""
        valid_candidate["correctAnswer"] = "none of these"
        candidate = normalize_candidate(valid_candidate)
        assert "correctAnswer" not in candidate
        assert not is_valid(candidate)

    def test_extra_options_truncated(self, valid_candidate):
        """Test that options beyond five are dropped."""
        valid_candidate["options"] = [f"choice {i}" for i in range(7)]
        assert len(normalize_candidate(valid_candidate)["options"]) == 5

    def test_keeps_passage_and_topic(self, valid_candidate):
        """Test that passage and topic are carried over."""
        valid_candidate["passage"] = "  A short passage about tides.  "
        valid_candidate["topic"] = "natural sciences"
        candidate = normalize_candidate(valid_candidate)
        assert candidate["passage"] == "A short passage about tides."
        assert candidate["topic"] == "natural sciences"

    def test_non_mapping_passthrough(self):
        """Test that non-objects are returned for the validator to reject."""
        assert normalize_candidate(["a"]) == ["a"]


class TestPostprocessCandidate:
    """Tests for passage and image cleanup."""

    def test_drops_empty_passage(self, valid_candidate):
        """Test that a blank passage is removed."""
        valid_candidate["passage"] = "  "
        assert "passage" not in postprocess_candidate(valid_candidate)

    def test_drops_placeholder_image(self, valid_candidate):
        """Test that placeholder images and their descriptions are removed."""
        valid_candidate["image"] = "https://via.placeholder.com/300"
        valid_candidate["imageDescription"] = "A chart"
        result = postprocess_candidate(valid_candidate)
        assert "image" not in result
        assert "imageDescription" not in result

    def test_fills_missing_description(self, valid_candidate):
        """Test that a real image gets a default description."""
        valid_candidate["image"] = "https://example.com/chart.png"
        assert postprocess_candidate(valid_candidate)["imageDescription"] == DEFAULT_IMAGE_DESCRIPTION

    def test_drops_orphan_description(self, valid_candidate):
        """Test that a description without an image is removed."""
        valid_candidate["imageDescription"] = "A chart"
        assert "imageDescription" not in postprocess_candidate(valid_candidate)

    def test_does_not_mutate_input(self, valid_candidate):
        """Test that the input dict is not modified."""
        valid_candidate["passage"] = ""
        postprocess_candidate(valid_candidate)
        assert valid_candidate["passage"] == ""
