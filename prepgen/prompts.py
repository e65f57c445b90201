"""Prompt templates for question generation and performance evaluation.

Prompts ask for a single JSON object. The parser tolerates deviations, but a
strict prompt keeps most responses on the fast path.
"""

from typing import Any, Dict, Optional, Sequence

from .models import QuestionSpec
from .topics import variation_for

PROMPT_RULES = """
CRITICAL INSTRUCTIONS:
- RESPOND WITH PURE JSON ONLY. NO MARKDOWN, NO CODE BLOCKS, NO TEXT OUTSIDE THE JSON.
- DO NOT USE LaTeX or math symbols ($, \\times, \\frac, \\sqrt and similar).
- KEEP LANGUAGE CLEAR, PRECISE AND IN PLAIN ENGLISH.
- ALL OPTIONS MUST BE PLAUSIBLE; EXACTLY ONE IS CORRECT.
- correctAnswer IS THE ZERO-BASED INDEX OF THE CORRECT OPTION.
- THE JSON MUST START WITH { AND END WITH }.
"""

DEFAULT_FORMAT = """{
  "question": "Your question here",
  "options": ["Option A", "Option B", "Option C", "Option D"],
  "correctAnswer": 0,
  "explanation": "Brief explanation in plain English."
}"""

READING_FORMAT = """{
  "passage": "Engaging 200-400 word academic passage.",
  "question": "Question about the passage.",
  "options": ["Option A", "Option B", "Option C", "Option D"],
  "correctAnswer": 0,
  "explanation": "Explanation referencing the passage."
}"""

SECTION_REQUIREMENTS: Dict[str, str] = {
    "reading": (
        "PASSAGE REQUIREMENTS:\n"
        "- Academic, substantive, 200-400 words\n"
        "- Topic: {topic}\n"
        "- Include specific details and examples\n"
        "- Text only, no visual elements"
    ),
    "quantitative": (
        "MATH REQUIREMENTS:\n"
        "- Step-by-step reasoning in plain English\n"
        "- No math symbols or LaTeX\n"
        "- Realistic numbers and scenarios\n"
        "- Difficulty: {difficulty}"
    ),
    "verbal": (
        "VERBAL REQUIREMENTS:\n"
        "- Sentence or text completion, critical reasoning, or vocabulary in context\n"
        "- Difficulty: {difficulty}"
    ),
    "integrated-reasoning": (
        "INTEGRATED REASONING REQUIREMENTS:\n"
        "- Describe any table or data set in words inside the question\n"
        "- Require combining at least two pieces of information\n"
        "- Difficulty: {difficulty}"
    ),
    "analytical-writing": (
        "ANALYTICAL REQUIREMENTS:\n"
        "- Present a short argument and ask about its flaw, assumption, or evidence\n"
        "- The explanation must name the reasoning principle involved\n"
        "- Difficulty: {difficulty}"
    ),
}

TOPIC_VARIETY = (
    "TOPIC VARIETY:\n"
    "- Avoid repeating prior topics and question styles.\n"
    "- Prefer a fresh scenario and domain (science, humanities, social issues, "
    "technology, business, arts).\n"
    "- If quantitative, avoid overused contexts like rectangular gardens."
)


def build_unique_context(spec: QuestionSpec, topic: Optional[str] = None) -> str:
    """
    Build the per-question context block that steers the model away from repeats.

    Args:
        spec: Generation spec carrying session, index and previous topics
        topic: Topic chosen for this question

    Returns:
        Multi-line context text
    """
    seed = f"{spec.session_id}-{spec.question_index}"
    previous = ", ".join(spec.previous_topics) or "None"
    lines = [
        f"- Question ID: {seed}",
        f"- This is question {spec.question_index + 1} in the session",
        f"- Previously used topics to AVOID: {previous}",
        f"- {variation_for(spec.question_index)}",
    ]
    if topic:
        lines.append(f"- Topic for this question: {topic}")
    return "\n".join(lines)


def build_question_prompt(spec: QuestionSpec, topic: Optional[str] = None) -> str:
    """
    Build the generation prompt for one question.

    Args:
        spec: What to generate
        topic: Topic chosen for this question

    Returns:
        Prompt text
    """
    test_type = spec.test_type.value
    difficulty = spec.difficulty.value
    answer_format = READING_FORMAT if spec.section == "reading" else DEFAULT_FORMAT
    requirements = SECTION_REQUIREMENTS.get(spec.section, "").format(
        topic=topic or "varied", difficulty=difficulty
    )

    return (
        f"Generate a {test_type} {spec.section} question at {difficulty} difficulty.\n"
        f"Context:\n{build_unique_context(spec, topic)}\n"
        f"{PROMPT_RULES}\n"
        f"EXACT JSON FORMAT REQUIRED:\n{answer_format}\n\n"
        f"{requirements}\n\n"
        f"{TOPIC_VARIETY}"
    )


def build_retry_prompt(spec: QuestionSpec) -> str:
    """Stricter prompt used after a response could not be parsed or validated."""
    test_type = spec.test_type.value
    difficulty = spec.difficulty.value
    passage_line = (
        '  "passage": "200-400 word passage the question is about",\n'
        if spec.section == "reading"
        else ""
    )
    return (
        "RETRY: PURE JSON ONLY. NO OTHER TEXT, NO MARKDOWN, NO MATH SYMBOLS.\n"
        f"{PROMPT_RULES}\n"
        "{\n"
        f"{passage_line}"
        f'  "question": "{test_type} {spec.section} question ({difficulty} level)",\n'
        '  "options": ["Option A", "Option B", "Option C", "Option D"],\n'
        '  "correctAnswer": 0,\n'
        '  "explanation": "Why this answer is correct, in plain English"\n'
        "}"
    )


def build_evaluation_prompt(stats: Dict[str, Any]) -> str:
    """
    Build the performance evaluation prompt from summarized statistics.

    Args:
        stats: Output of ``summarize_performance``

    Returns:
        Prompt text asking for concise, actionable study guidance
    """
    sections = stats.get("section_performance", {})
    difficulties = stats.get("difficulty_performance", {})

    section_text = " | ".join(
        f"{name}: {data['accuracy']}% ({data['correct']}/{data['total']}) "
        f"avgTime={data['avg_time']}s"
        for name, data in sections.items()
    ) or "N/A"
    difficulty_text = " | ".join(
        f"{name}: {data['accuracy']}%" for name, data in difficulties.items()
    ) or "N/A"
    recent_text = " ".join(
        f"T{i + 1}:{test['correct']}/{test['total']}"
        for i, test in enumerate(stats.get("recent_tests", []))
    ) or "N/A"

    return (
        "Analyze this student's test performance data and produce targeted, "
        "actionable guidance.\n"
        f"TOTAL QUESTIONS: {stats.get('total_questions', 0)}\n"
        f"OVERALL ACCURACY: {stats.get('accuracy', 0)}%\n"
        f"AVG QUESTION TIME (s): {stats.get('average_question_time', 0)}\n"
        f"SECTION BREAKDOWN: {section_text}\n"
        f"DIFFICULTY BREAKDOWN: {difficulty_text}\n"
        f"RECENT TESTS: {recent_text}\n"
        f"STRONGEST SECTION: {stats.get('strongest_section') or 'N/A'}\n"
        f"WEAKEST SECTION: {stats.get('weakest_section') or 'N/A'}\n\n"
        "Respond with: key insights, two or three priority actions, a short study "
        "plan, one test-taking strategy, and a line of encouragement. Do not invent "
        "statistics that are not given above."
    )


def build_study_plan_prompt(weak_areas: Sequence[str], test_type: str) -> str:
    """Build the prompt for a two-week plan targeting ``weak_areas``."""
    areas = ", ".join(weak_areas)
    return (
        f"As a {test_type} test prep expert, write specific, actionable study "
        f"recommendations for a student struggling with: {areas}\n\n"
        "Create a focused 2-week study plan with:\n"
        "WEEK 1: a day-by-day breakdown, the question types to target, and time "
        "allocation per activity.\n"
        "WEEK 2: how to build on week 1, practice test strategy, and review.\n"
        "DAILY ROUTINE: a short warm-up, a focused practice session and an "
        "evening review.\n"
        "RESOURCES: free practice sources suited to these areas.\n"
        "QUICK WINS: immediate tactics, common mistakes to avoid and test-day "
        "strategies.\n\n"
        f"Keep every recommendation specific to the {test_type} format and to "
        "these exact weak areas. Avoid generic advice."
    )
