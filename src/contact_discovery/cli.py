"""CLI entrypoint for contact-discovery."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from collections.abc import Sequence
from dataclasses import asdict

from .config import (
    DEFAULT_CALL_TIMEOUT,
    DEFAULT_MAX_CONCURRENCY,
    DEFAULT_MAX_DELAY,
    DEFAULT_MIN_DELAY,
    DEFAULT_RESULTS_PER_QUERY,
    DEFAULT_SEARCH_TIMEOUT,
    DiscoveryConfig,
)
from .errors import ConfigError, DiscoveryError, ValidationError
from .io_csv import contact_rows, write_rows
from .logging_utils import configure_logging, get_logger
from .models import SearchCriteria, SearchOptions, SearchRequest, SearchStatus, ValidationOptions
from .orchestrator import SearchOrchestrator, build_orchestrator, run_search

EXIT_OK = 0
EXIT_SEARCH_FAILED = 1
EXIT_INVALID = 2


def build_parser() -> argparse.ArgumentParser:
    """Build CLI parser."""
    parser = argparse.ArgumentParser(
        description="Contact Discovery - AI-assisted media contact search with validated emails."
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    parser.add_argument("--redis-url", help="Redis URL for shared rate limits (or set REDIS_URL).")
    subparsers = parser.add_subparsers(dest="command", required=True)

    search = subparsers.add_parser("search", help="Run one contact search and write a CSV.")
    search.add_argument("query", help="Base search query.")
    search.add_argument("--requester", default="cli", help="Requester id used for rate limiting.")
    search.add_argument("--countries", nargs="+", default=[], help="Country codes, e.g. US GB.")
    search.add_argument("--languages", nargs="+", default=[], help="Target languages.")
    search.add_argument("--beats", nargs="+", default=[], help="Editorial beats.")
    search.add_argument("--categories", nargs="+", default=[], help="Topic categories.")
    search.add_argument("--max-results", type=int, default=50, help="Maximum contacts returned.")
    search.add_argument(
        "--query-count", type=int, default=8, help="Number of enhanced queries to run."
    )
    search.add_argument(
        "--diversity-boost", action="store_true", help="Combine queries with categories and beats."
    )
    search.add_argument("--strict", action="store_true", help="Use strict email validation.")
    search.add_argument("--output", default="contacts_output.csv", help="Output CSV path.")
    search.add_argument("--openai-key", help="OpenAI key (or set OPENAI_API_KEY).")
    search.add_argument("--model", help="Chat model (or set CONTACT_DISCOVERY_MODEL).")
    search.add_argument(
        "--serpapi-key", help="SerpApi key (optional, fallback backend priority #1)."
    )
    search.add_argument("--bing-key", help="Bing key (optional, fallback backend priority #2).")
    search.add_argument(
        "--max-concurrency",
        type=int,
        default=DEFAULT_MAX_CONCURRENCY,
        help="Concurrent search/fetch calls per search.",
    )
    search.add_argument(
        "--call-timeout",
        type=float,
        default=DEFAULT_CALL_TIMEOUT,
        help="Timeout in seconds for each external call.",
    )
    search.add_argument(
        "--search-timeout",
        type=float,
        default=DEFAULT_SEARCH_TIMEOUT,
        help="Overall search budget in seconds.",
    )
    search.add_argument(
        "--results-per-query",
        type=int,
        default=DEFAULT_RESULTS_PER_QUERY,
        help="Search results per query.",
    )
    search.add_argument(
        "--min-delay",
        type=float,
        default=DEFAULT_MIN_DELAY,
        help="Minimum polite delay between search requests.",
    )
    search.add_argument(
        "--max-delay",
        type=float,
        default=DEFAULT_MAX_DELAY,
        help="Maximum polite delay between search requests.",
    )
    search.add_argument("--no-progress", action="store_true", help="Disable tqdm progress bar.")

    validate = subparsers.add_parser("validate-email", help="Validate one email address.")
    validate.add_argument("email", help="Address to validate.")
    validate.add_argument("--strict", action="store_true", help="Use strict validation.")
    validate.add_argument("--name", help="Known contact name, used for suggestions.")

    subparsers.add_parser("health", help="Report rate limiter health.")
    return parser


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)


def namespace_to_config(args: argparse.Namespace) -> DiscoveryConfig:
    """Convert CLI args to a validated DiscoveryConfig."""
    overrides = {
        "redis_url": args.redis_url,
        "openai_api_key": getattr(args, "openai_key", None),
        "model": getattr(args, "model", None),
        "serpapi_key": getattr(args, "serpapi_key", None),
        "bing_key": getattr(args, "bing_key", None),
    }
    if args.command == "search":
        overrides.update(
            max_concurrency=args.max_concurrency,
            call_timeout=args.call_timeout,
            search_timeout=args.search_timeout,
            results_per_query=args.results_per_query,
            min_delay=args.min_delay,
            max_delay=args.max_delay,
            show_progress=not args.no_progress,
        )
    return DiscoveryConfig.from_env(**overrides)


def namespace_to_request(args: argparse.Namespace) -> SearchRequest:
    return SearchRequest(
        query=args.query,
        requester_id=args.requester,
        criteria=SearchCriteria(
            beats=tuple(args.beats),
            countries=tuple(args.countries),
            languages=tuple(args.languages),
            categories=tuple(args.categories),
        ),
        options=SearchOptions(
            max_results=args.max_results,
            diversity_boost=args.diversity_boost,
            strict_validation=args.strict,
            target_query_count=args.query_count,
        ),
    )


async def _search(
    orchestrator: SearchOrchestrator,
    args: argparse.Namespace,
    config: DiscoveryConfig,
    logger: logging.Logger,
) -> int:
    execution = await run_search(
        orchestrator, namespace_to_request(args), show_progress=config.show_progress
    )
    for message in execution.errors:
        logger.debug("Search issue: %s", message)
    if execution.status is not SearchStatus.COMPLETED:
        logger.error(
            "Search %s ended as %s (%s) with %d errors.",
            execution.id,
            execution.status.value,
            execution.reason,
            len(execution.errors),
        )
        if execution.results:
            write_rows(args.output, contact_rows(execution.results))
            logger.info("Wrote %d partial results to %s", len(execution.results), args.output)
        return EXIT_SEARCH_FAILED
    write_rows(args.output, contact_rows(execution.results))
    logger.info("Wrote %d contacts to %s", len(execution.results), args.output)
    return EXIT_OK


async def _validate_email(orchestrator: SearchOrchestrator, args: argparse.Namespace) -> int:
    options = ValidationOptions(strict_mode=args.strict)
    result = await orchestrator.validate_email(args.email, options, contact_name=args.name)
    print(json.dumps(asdict(result), indent=2))
    return EXIT_OK if result.is_valid else EXIT_SEARCH_FAILED


async def _health(orchestrator: SearchOrchestrator) -> int:
    report = await orchestrator.health_check()
    print(json.dumps(asdict(report), indent=2))
    return EXIT_OK if report.status != "unhealthy" else EXIT_SEARCH_FAILED


async def run_command(
    orchestrator: SearchOrchestrator,
    args: argparse.Namespace,
    config: DiscoveryConfig,
    logger: logging.Logger,
) -> int:
    """Dispatch one subcommand and always release the orchestrator."""
    try:
        if args.command == "search":
            return await _search(orchestrator, args, config, logger)
        if args.command == "validate-email":
            return await _validate_email(orchestrator, args)
        return await _health(orchestrator)
    finally:
        await orchestrator.close()


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entrypoint."""
    args = parse_args(argv)
    configure_logging(args.verbose)
    logger = get_logger()
    try:
        config = namespace_to_config(args)
    except ConfigError as exc:
        logger.error("Invalid configuration: %s", exc)
        return EXIT_INVALID

    orchestrator = build_orchestrator(config, logger=logger)
    try:
        return asyncio.run(run_command(orchestrator, args, config, logger))
    except ValidationError as exc:
        logger.error("Invalid input: %s", exc)
        return EXIT_INVALID
    except DiscoveryError as exc:
        logger.error("Command failed (%s): %s", exc.reason, exc)
        return EXIT_SEARCH_FAILED


if __name__ == "__main__":
    raise SystemExit(main())
