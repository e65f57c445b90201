"""Topic pools used to vary generated questions within a session."""

import random
from typing import Dict, Iterable, List, Optional, Tuple

TOPIC_POOLS: Dict[str, Tuple[str, ...]] = {
    "reading": (
        "scientific research and discoveries",
        "historical analysis and interpretation",
        "literary criticism and analysis",
        "social policy and economics",
        "environmental science and conservation",
        "technological innovation",
        "cultural anthropology",
        "psychology and behavioral studies",
        "art history and aesthetics",
        "political science and governance",
        "philosophy and ethics",
        "medicine and public health",
        "archaeology and ancient civilizations",
        "linguistics and language",
        "education and learning theory",
        "urban planning and development",
    ),
    "verbal": (
        "advanced vocabulary in context",
        "logical argument analysis",
        "sentence completion with nuanced meaning",
        "critical reasoning",
        "text coherence and organization",
        "rhetorical devices and style",
        "inference and implication",
        "cause and effect relationships",
        "comparison and contrast",
        "evidence evaluation",
        "assumption identification",
        "conclusion strengthening and weakening",
    ),
    "quantitative": (
        "algebra and equations",
        "geometry and coordinate systems",
        "statistics and probability",
        "data analysis and interpretation",
        "number theory and properties",
        "arithmetic and percentages",
        "word problems and real-world applications",
        "sequences and series",
        "functions and graphs",
        "combinatorics and counting",
        "ratio and proportion",
        "exponents and radicals",
        "data table interpretation",
        "trend analysis",
    ),
    "integrated-reasoning": (
        "multi-source reasoning",
        "table analysis",
        "graphics interpretation",
        "two-part analysis",
        "business metrics comparison",
        "operational scheduling",
    ),
    "analytical-writing": (
        "argument flaw identification",
        "unstated assumption analysis",
        "evidence that strengthens an argument",
        "evidence that weakens an argument",
        "alternative explanations",
        "policy recommendation evaluation",
    ),
}

VARIATION_PROMPTS: Tuple[str, ...] = (
    "Focus on a completely different topic or theme than any previous question.",
    "Use a distinctive questioning approach and a fresh perspective.",
    "Use contemporary examples rather than historical ones.",
    "Create a scenario-based question with a practical application.",
    "Test analytical thinking from a new angle.",
    "Draw an interdisciplinary connection between two fields of study.",
)


def get_unused_topics(section: str, previous_topics: Iterable[str] = ()) -> List[str]:
    """Return the section's topics that have not been used yet, in pool order."""
    used = set(previous_topics)
    return [topic for topic in TOPIC_POOLS.get(section, ()) if topic not in used]


def choose_topic(
    section: str,
    previous_topics: Iterable[str] = (),
    rng: Optional[random.Random] = None,
) -> Optional[str]:
    """
    Pick a fresh topic for the next question.

    When every topic has been used the whole pool is eligible again.

    Args:
        section: Section name
        previous_topics: Topics already used in the session
        rng: Random source, defaults to the module-level generator

    Returns:
        A topic, or None if the section has no pool
    """
    chooser = rng or random
    candidates = get_unused_topics(section, previous_topics) or list(
        TOPIC_POOLS.get(section, ())
    )
    if not candidates:
        return None
    return chooser.choice(candidates)


def variation_for(question_index: int) -> str:
    """Variation instruction for a question position, cycling through the list."""
    return VARIATION_PROMPTS[question_index % len(VARIATION_PROMPTS)]
