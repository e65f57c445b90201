"""Static fallback questions served when generation is exhausted.

Every allowed (test type, section) pair has at least one entry. When the
requested difficulty is missing, ``medium`` is used, then any available entry.
"""

import logging
from typing import Any, Dict, List, Tuple

from .errors import NoFallbackError
from .generation.validator import validation_errors
from .models import SECTIONS, Difficulty, QuestionSpec, TestType, ValidatedQuestion

logger = logging.getLogger(__name__)

FallbackTable = Dict[Tuple[TestType, str], Dict[Difficulty, Dict[str, Any]]]

FALLBACK_QUESTIONS: FallbackTable = {
    (TestType.GRE, "verbal"): {
        Difficulty.EASY: {
            "question": (
                "The scientist was known for her ______ approach: she checked every "
                "measurement three times before drawing any conclusion."
            ),
            "options": ["meticulous", "haphazard", "impulsive", "careless"],
            "correctAnswer": 0,
            "explanation": (
                "Checking every measurement three times describes great care, so "
                "'meticulous' fits. The other words all describe a lack of care."
            ),
            "topic": "advanced vocabulary in context",
        },
        Difficulty.MEDIUM: {
            "question": (
                "Although the committee's report was ostensibly neutral, its selective "
                "use of data betrayed a clear ______ for the proposed policy."
            ),
            "options": ["ambivalence", "partiality", "reticence", "candor", "apathy"],
            "correctAnswer": 1,
            "explanation": (
                "'Although ... ostensibly neutral' signals a contrast: the report was "
                "not really neutral. Selective use of data reveals bias, which is "
                "'partiality'. Ambivalence and apathy suggest neutrality or lack of "
                "interest, and reticence and candor do not describe bias."
            ),
            "topic": "sentence completion with nuanced meaning",
        },
        Difficulty.HARD: {
            "question": (
                "Far from being ______, the senator's speech was carefully hedged, "
                "qualifying nearly every claim it made."
            ),
            "options": ["equivocal", "categorical", "tentative", "measured", "nuanced"],
            "correctAnswer": 1,
            "explanation": (
                "'Far from being' requires a word opposite to 'carefully hedged'. A "
                "categorical statement is absolute and unqualified. The other options "
                "all describe a hedged or cautious speech."
            ),
            "topic": "inference and implication",
        },
    },
    (TestType.GRE, "quantitative"): {
        Difficulty.EASY: {
            "question": "If 3x + 7 = 22, what is the value of x?",
            "options": ["3", "5", "7", "15"],
            "correctAnswer": 1,
            "explanation": "Subtract 7 from both sides to get 3x = 15, then divide by 3 to get x = 5.",
            "topic": "algebra and equations",
        },
        Difficulty.MEDIUM: {
            "question": (
                "The price of a shirt is increased by 20 percent, and the new price is "
                "then decreased by 20 percent. The final price is what percent of the "
                "original price?"
            ),
            "options": ["92%", "96%", "100%", "104%"],
            "correctAnswer": 1,
            "explanation": (
                "Multiply the original price by 1.2 and then by 0.8. Since 1.2 times "
                "0.8 equals 0.96, the final price is 96 percent of the original."
            ),
            "topic": "arithmetic and percentages",
        },
        Difficulty.HARD: {
            "question": "How many positive integers less than 100 are divisible by 3 or by 5?",
            "options": ["40", "43", "46", "52", "55"],
            "correctAnswer": 2,
            "explanation": (
                "There are 33 multiples of 3 and 19 multiples of 5 below 100. Numbers "
                "divisible by both are multiples of 15, and there are 6 of those. By "
                "inclusion-exclusion, 33 plus 19 minus 6 equals 46."
            ),
            "topic": "number theory and properties",
        },
    },
    (TestType.GRE, "reading"): {
        Difficulty.MEDIUM: {
            "passage": (
                "Cities are often several degrees warmer than the surrounding "
                "countryside, a phenomenon known as the urban heat island effect. Dark "
                "surfaces such as asphalt and rooftops absorb sunlight during the day "
                "and release it slowly at night, while the scarcity of vegetation "
                "reduces the cooling provided by evaporation. Some municipalities have "
                "responded by painting roofs white and planting street trees. Early "
                "studies suggest that these measures lower local surface temperatures, "
                "although researchers caution that their effect on air temperature "
                "across an entire city is still uncertain."
            ),
            "question": (
                "Which of the following can be inferred from the passage about the "
                "measures some municipalities have adopted?"
            ),
            "options": [
                "They have eliminated the urban heat island effect in most cities.",
                "Their citywide effect on air temperature has not yet been firmly established.",
                "They increase the amount of sunlight absorbed by rooftops.",
                "They were designed primarily to reduce air pollution.",
            ],
            "correctAnswer": 1,
            "explanation": (
                "The last sentence says researchers consider the effect on air "
                "temperature across an entire city uncertain. The passage never claims "
                "the effect was eliminated, white roofs absorb less sunlight rather "
                "than more, and air pollution is not mentioned."
            ),
            "topic": "environmental science and conservation",
        },
    },
    (TestType.GRE, "analytical-writing"): {
        Difficulty.MEDIUM: {
            "question": (
                "A town council argues: 'Since the new library opened, the number of "
                "residents holding library cards has doubled. Therefore, residents are "
                "now reading twice as many books as before.' Which of the following "
                "identifies the most serious flaw in this argument?"
            ),
            "options": [
                "It assumes that holding a library card means reading more books.",
                "It relies on the personal opinions of council members.",
                "It ignores the cost of building the new library.",
                "It draws on a sample that is too small to be meaningful.",
            ],
            "correctAnswer": 0,
            "explanation": (
                "The evidence concerns how many people hold cards, but the conclusion "
                "concerns how much they read. The argument assumes without support that "
                "more cardholders means proportionally more reading."
            ),
            "topic": "unstated assumption analysis",
        },
    },
    (TestType.GMAT, "verbal"): {
        Difficulty.MEDIUM: {
            "question": (
                "A company found that employees who attended a voluntary time-management "
                "workshop completed more projects on schedule than employees who did "
                "not attend. The company concluded that the workshop improves on-time "
                "performance. Which of the following, if true, most seriously weakens "
                "this conclusion?"
            ),
            "options": [
                "The workshop was taught by an experienced consultant.",
                "Employees who chose to attend were already among the most organized in the company.",
                "The workshop lasted only one afternoon.",
                "Some employees who attended said that they enjoyed the workshop.",
                "Projects at the company vary considerably in length.",
            ],
            "correctAnswer": 1,
            "explanation": (
                "If the attendees were already the most organized employees, their "
                "better on-time record could come from that trait rather than from the "
                "workshop. This alternative explanation weakens the causal conclusion."
            ),
            "topic": "critical reasoning",
        },
    },
    (TestType.GMAT, "quantitative"): {
        Difficulty.EASY: {
            "question": "What is 15 percent of 240?",
            "options": ["24", "30", "36", "40", "48"],
            "correctAnswer": 2,
            "explanation": "Ten percent of 240 is 24 and five percent is 12, so 15 percent is 24 plus 12, which is 36.",
            "topic": "arithmetic and percentages",
        },
        Difficulty.MEDIUM: {
            "question": (
                "A train travels 180 miles in 3 hours and then 120 miles in 2 hours. "
                "What is its average speed for the entire trip, in miles per hour?"
            ),
            "options": ["55", "58", "60", "62", "65"],
            "correctAnswer": 2,
            "explanation": (
                "Average speed is total distance divided by total time. The train "
                "covers 300 miles in 5 hours, and 300 divided by 5 is 60."
            ),
            "topic": "word problems and real-world applications",
        },
    },
    (TestType.GMAT, "integrated-reasoning"): {
        Difficulty.MEDIUM: {
            "question": (
                "A store had sales of $40,000 in January and $50,000 in February. Its "
                "expenses were $30,000 in January and $35,000 in February. By what "
                "percent did profit (sales minus expenses) increase from January to "
                "February?"
            ),
            "options": ["20%", "25%", "40%", "50%", "60%"],
            "correctAnswer": 3,
            "explanation": (
                "Profit was $10,000 in January and $15,000 in February. The increase "
                "of $5,000 is half of $10,000, which is a 50 percent increase."
            ),
            "topic": "table analysis",
        },
    },
    (TestType.GMAT, "analytical-writing"): {
        Difficulty.MEDIUM: {
            "question": (
                "'Our competitor lowered its prices last quarter and its revenue rose. "
                "Therefore, if we lower our prices, our revenue will rise as well.' "
                "The argument above assumes which of the following?"
            ),
            "options": [
                "Our customers will respond to a price cut the way our competitor's customers did.",
                "Our competitor's costs are higher than ours.",
                "Revenue is the only meaningful measure of success.",
                "Lowering prices always reduces profit.",
            ],
            "correctAnswer": 0,
            "explanation": (
                "The argument transfers the competitor's result to our company. That "
                "only works if our customers react to lower prices in the same way, "
                "which the argument never establishes."
            ),
            "topic": "argument flaw identification",
        },
    },
}

DIFFICULTY_PREFERENCE = (Difficulty.MEDIUM, Difficulty.EASY, Difficulty.HARD)


def get_fallback_question(
    test_type: TestType,
    section: str,
    difficulty: Difficulty = Difficulty.MEDIUM,
) -> ValidatedQuestion:
    """
    Return the static fallback question for a test type, section and difficulty.

    Args:
        test_type: Test type
        section: Section name
        difficulty: Requested difficulty

    Returns:
        ValidatedQuestion marked ``is_fallback=True``

    Raises:
        NoFallbackError: If the test type and section have no entries
    """
    try:
        key = (TestType(test_type), section)
    except ValueError as e:
        raise NoFallbackError(f"Unknown test type: {test_type!r}") from e

    entries = FALLBACK_QUESTIONS.get(key)
    if not entries:
        raise NoFallbackError(f"No fallback question for {key[0].value} {section}")

    difficulty = Difficulty(difficulty)
    chosen = difficulty
    if difficulty not in entries:
        chosen = next(d for d in DIFFICULTY_PREFERENCE if d in entries)
        logger.debug(
            f"No {difficulty.value} fallback for {key[0].value} {section}, "
            f"using {chosen.value}"
        )

    spec = QuestionSpec(test_type=key[0], section=section, difficulty=difficulty)
    return ValidatedQuestion.from_candidate(entries[chosen], spec, is_fallback=True)


def validate_fallback_table(table: FallbackTable = FALLBACK_QUESTIONS) -> Dict[str, List[str]]:
    """
    Check coverage and structure of the fallback table.

    Returns:
        Mapping of "<TEST>/<section>/<difficulty>" (or "<TEST>/<section>" for
        missing coverage) to problems found; empty when the table is sound
    """
    problems: Dict[str, List[str]] = {}

    for test_type, sections in SECTIONS.items():
        for section in sections:
            if not table.get((test_type, section)):
                problems[f"{test_type.value}/{section}"] = ["no fallback entries"]

    for (test_type, section), entries in table.items():
        for difficulty, entry in entries.items():
            errors = validation_errors(entry)
            if errors:
                problems[f"{test_type.value}/{section}/{difficulty.value}"] = errors

    return problems
