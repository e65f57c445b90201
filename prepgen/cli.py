"""Command-line entry point for the question generation pipeline.

Examples:
  # Generate one GRE verbal question and print it as JSON
  prepgen generate --test-type GRE --section verbal --difficulty hard

  # Show usage counters from the local store
  prepgen usage

  # Check the static fallback table
  prepgen fallback-check
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional

from .config import settings
from .errors import ConfigError, NoFallbackError
from .fallback import validate_fallback_table
from .generation.orchestrator import QuestionOrchestrator
from .infrastructure.storage import JSONFileStorage
from .infrastructure.usage_limiter import QUESTIONS, UsageLimiter
from .logging_config import setup_logging
from .models import Difficulty, QuestionSpec, SessionConfig, TestType, ValidatedQuestion
from .providers.openrouter_provider import OpenRouterProvider

logger = logging.getLogger(__name__)

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_RATE_LIMITED = 2


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog="prepgen",
        description="Generate GRE/GMAT practice questions",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__.split("\n\n", 1)[1],
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    generate = subparsers.add_parser("generate", help="Generate one question")
    generate.add_argument(
        "--test-type",
        required=True,
        choices=[t.value for t in TestType],
        help="Test type",
    )
    generate.add_argument("--section", required=True, help="Section within the test type")
    generate.add_argument(
        "--difficulty",
        default=Difficulty.MEDIUM.value,
        choices=[d.value for d in Difficulty],
        help="Difficulty level (default: medium)",
    )
    generate.add_argument(
        "--models",
        nargs="+",
        default=None,
        help="Models in fallback order (default: from settings)",
    )
    generate.add_argument(
        "--api-key",
        default=None,
        help="OpenRouter API key (default: OPENROUTER_API_KEY)",
    )
    generate.add_argument(
        "--enforce-limits",
        action="store_true",
        help="Deny the request when usage limits are exceeded",
    )
    generate.add_argument(
        "--store",
        default=None,
        help=f"Usage store path (default: {settings.usage_store_path})",
    )

    usage = subparsers.add_parser("usage", help="Show usage counters and warnings")
    usage.add_argument(
        "--store",
        default=None,
        help=f"Usage store path (default: {settings.usage_store_path})",
    )

    subparsers.add_parser("fallback-check", help="Validate the static fallback table")
    return parser


async def _generate_question(
    provider: OpenRouterProvider,
    spec: QuestionSpec,
    models: Optional[List[str]],
) -> ValidatedQuestion:
    orchestrator = QuestionOrchestrator(provider, models=models)
    try:
        return await orchestrator.generate(spec)
    finally:
        await provider.cleanup()
        logger.info(f"Generation metrics: {json.dumps(orchestrator.metrics.get_summary())}")


def run_generate(args: argparse.Namespace) -> int:
    try:
        config = SessionConfig.from_input(
            {
                "testType": args.test_type,
                "section": args.section,
                "difficulty": args.difficulty,
                "questionCount": 1,
            }
        )
    except ConfigError as e:
        print(f"Invalid configuration: {'; '.join(e.errors)}", file=sys.stderr)
        return EXIT_FAILURE

    api_key = args.api_key or settings.openrouter_api_key
    if not api_key:
        print("OPENROUTER_API_KEY is not set", file=sys.stderr)
        return EXIT_FAILURE

    limiter = UsageLimiter(
        JSONFileStorage(args.store or settings.usage_store_path),
        enforce=True if args.enforce_limits else None,
    )
    decision = limiter.check_and_consume(QUESTIONS)
    if not decision.allowed:
        print(decision.reason, file=sys.stderr)
        return EXIT_RATE_LIMITED

    provider = OpenRouterProvider(api_key=api_key)
    spec = QuestionSpec.for_slot(config, question_index=0, session_id=0)
    try:
        question = asyncio.run(_generate_question(provider, spec, args.models))
    except NoFallbackError as e:
        print(str(e), file=sys.stderr)
        return EXIT_FAILURE

    print(json.dumps(question.to_wire(), indent=2, ensure_ascii=False))
    for warning in limiter.check_usage_warnings():
        print(f"Warning: {warning}", file=sys.stderr)
    return EXIT_SUCCESS


def run_usage(args: argparse.Namespace) -> int:
    limiter = UsageLimiter(JSONFileStorage(args.store or settings.usage_store_path))
    report = {
        "enforced": limiter.enforce,
        "usage": limiter.get_usage_stats(),
        "warnings": limiter.check_usage_warnings(),
    }
    print(json.dumps(report, indent=2))
    return EXIT_SUCCESS


def run_fallback_check(args: argparse.Namespace) -> int:
    problems = validate_fallback_table()
    if not problems:
        print("Fallback table OK")
        return EXIT_SUCCESS

    for key, errors in sorted(problems.items()):
        print(f"{key}: {'; '.join(errors)}", file=sys.stderr)
    return EXIT_FAILURE


COMMANDS = {
    "generate": run_generate,
    "usage": run_usage,
    "fallback-check": run_fallback_check,
}


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point.

    Returns:
        Exit code: 0 on success, 1 on error, 2 when rate limited
    """
    args = build_parser().parse_args(argv)
    setup_logging(level="DEBUG" if args.verbose else None)
    return COMMANDS[args.command](args)


if __name__ == "__main__":
    sys.exit(main())
