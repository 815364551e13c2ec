"""Command-line interface implementation for the conformance checker."""

from __future__ import annotations

import argparse
import json
import logging
import signal
import sys
import threading
from contextlib import contextmanager
from typing import Iterator, Mapping, Sequence

from ..adapters import ManifestLoaderError
from ..models import Category, Severity
from ..normalization import FORMATS
from ..rules import (
    DuplicateRuleId,
    RuleConfig,
    RuleConfigError,
    RuleConfigLoader,
    RuleRegistry,
    UnknownRuleId,
    default_registry,
)
from ..service import CheckResult, ConformanceService, NoDocumentsError
from .report import JSON, OUTPUT_FORMATS, TABLE, ConformanceReport, exit_code, render

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FINDINGS = 1
EXIT_INPUT_ERROR = 2
EXIT_CONFIG_ERROR = 3
EXIT_INTERRUPTED = 130


def build_parser() -> argparse.ArgumentParser:
    """Construct the CLI argument parser."""

    parser = argparse.ArgumentParser(
        prog="kube-conformance",
        description="Check Kubernetes manifests against workload best practices.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging on standard error.",
    )
    subparsers = parser.add_subparsers(dest="command")

    check_parser = subparsers.add_parser(
        "check", help="Evaluate manifests and report conformance findings."
    )
    check_parser.add_argument(
        "paths",
        nargs="*",
        default=["."],
        help="Manifest files or directories to check; use '-' to read standard input.",
    )
    check_parser.add_argument(
        "--config",
        dest="configs",
        action="append",
        default=None,
        help="Rule configuration YAML/JSON file. Repeatable; later files win.",
    )
    check_parser.add_argument(
        "--category",
        dest="categories",
        action="append",
        choices=[category.value for category in Category],
        default=None,
        help="Only run rules from this category (repeatable).",
    )
    check_parser.add_argument(
        "--rule",
        dest="rule_ids",
        action="append",
        default=None,
        metavar="RULE_ID",
        help="Only run this rule (repeatable); overrides --category.",
    )
    check_parser.add_argument(
        "--disable-rule",
        dest="disabled_rule_ids",
        action="append",
        default=None,
        metavar="RULE_ID",
        help="Skip this rule (repeatable).",
    )
    check_parser.add_argument(
        "--severity",
        dest="severity_overrides",
        action="append",
        default=None,
        metavar="RULE_ID=LEVEL",
        help="Override the severity reported by a rule.",
    )
    check_parser.add_argument(
        "--fail-on",
        choices=[severity.value for severity in Severity],
        default=None,
        help="Fail the run when findings at or above this severity are present (default: error).",
    )
    check_parser.add_argument(
        "--format",
        choices=list(OUTPUT_FORMATS),
        default=TABLE,
        help="Output format for check results.",
    )
    check_parser.add_argument(
        "--input-format",
        choices=list(FORMATS),
        default=None,
        help="Parse every input with this format instead of guessing from the file name.",
    )
    check_parser.add_argument(
        "--max-workers",
        type=int,
        default=None,
        help="Maximum number of rule evaluations run concurrently.",
    )

    rules_parser = subparsers.add_parser("rules", help="List the available rules.")
    rules_parser.add_argument(
        "--format",
        choices=list(OUTPUT_FORMATS),
        default=TABLE,
        help="Output format for the rule catalog.",
    )

    return parser


def create_service(*, registry: RuleRegistry | None = None) -> ConformanceService:
    """Create a conformance service wired with the built-in rule catalog."""

    return ConformanceService(registry=registry or default_registry())


def _parse_severity_overrides(values: Sequence[str] | None) -> Mapping[str, str]:
    if not values:
        return {}

    overrides: dict[str, str] = {}
    for value in values:
        if "=" not in value:
            raise RuleConfigError(f"Severity overrides must be in RULE_ID=LEVEL form: {value}")
        rule_id, level = value.split("=", 1)
        overrides[rule_id.strip()] = level.strip()
    return overrides


def _build_config(args: argparse.Namespace) -> RuleConfig:
    config = RuleConfigLoader().load(args.configs)
    return config.merged(
        enabled_categories=args.categories,
        enabled_rule_ids=args.rule_ids,
        disabled_rule_ids=args.disabled_rule_ids,
        severity_overrides=_parse_severity_overrides(args.severity_overrides),
        fail_on=args.fail_on,
        max_workers=args.max_workers,
    )


@contextmanager
def _cancel_on_signals(cancel_event: threading.Event) -> Iterator[None]:
    """Turn SIGINT/SIGTERM into a cancellation request while the block runs.

    A second signal raises :class:`KeyboardInterrupt` immediately.
    """

    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def _signal_handler(signum: int, frame: object) -> None:
        if cancel_event.is_set():
            raise KeyboardInterrupt
        print("Interrupted: finishing running checks...", file=sys.stderr)
        cancel_event.set()

    original_sigint = signal.getsignal(signal.SIGINT)
    original_sigterm = signal.getsignal(signal.SIGTERM)
    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, original_sigint)
        signal.signal(signal.SIGTERM, original_sigterm)


def _build_report(result: CheckResult) -> ConformanceReport:
    return ConformanceReport(
        results=result.run.results,
        diagnostics=result.parse_errors,
        metadata=result.metadata,
        complete=result.run.complete,
    )


def _handle_check(args: argparse.Namespace) -> int:
    try:
        config = _build_config(args)
    except RuleConfigError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    logger.debug(
        "Checking %s with configuration %s (fail on %s)",
        ", ".join(args.paths),
        config.name,
        config.fail_on.value,
    )
    service = create_service()
    cancel_event = threading.Event()

    try:
        with _cancel_on_signals(cancel_event):
            result = service.check(
                args.paths,
                config=config,
                stdin=sys.stdin,
                input_format=args.input_format,
                cancel_event=cancel_event,
            )
    except (UnknownRuleId, DuplicateRuleId) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_CONFIG_ERROR
    except NoDocumentsError as exc:
        print(f"Error: {exc.message}", file=sys.stderr)
        for error in exc.errors:
            print(f"  {error}", file=sys.stderr)
        return EXIT_INPUT_ERROR
    except ManifestLoaderError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_INPUT_ERROR

    report = _build_report(result)
    print(render(report, args.format))

    if not report.complete:
        return EXIT_INTERRUPTED
    return exit_code(report, config.fail_on)


def _handle_rules(args: argparse.Namespace) -> int:
    registry = create_service().registry
    entries = [
        {
            "id": rule.id,
            "category": rule.category.value,
            "severity": rule.severity.value,
            "scope": rule.scope.value,
            "title": rule.title,
        }
        for rule in registry.rules
    ]

    if args.format == JSON:
        print(json.dumps(entries, indent=2))
        return EXIT_OK

    headers = ("ID", "Category", "Severity", "Scope", "Title")
    keys = ("id", "category", "severity", "scope", "title")
    rows = [headers] + [tuple(entry[key] for key in keys) for entry in entries]
    widths = [max(len(row[idx]) for row in rows) for idx in range(len(headers))]
    for row in rows:
        print("  ".join(value.ljust(width) for value, width in zip(row, widths)).rstrip())
    return EXIT_OK


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point used by tests and the ``python -m`` invocation."""

    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    try:
        if args.command == "check":
            return _handle_check(args)
        if args.command == "rules":
            return _handle_rules(args)
    except KeyboardInterrupt:
        print("Error: interrupted", file=sys.stderr)
        return EXIT_INTERRUPTED

    parser.print_help()
    return EXIT_OK


def run() -> None:  # pragma: no cover - thin wrapper for module execution
    """Execute the CLI and exit with the produced status code."""

    raise SystemExit(main())


if __name__ == "__main__":  # pragma: no cover - module execution guard
    run()
