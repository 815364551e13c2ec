"""Command-line interface package for the conformance checker."""

from .app import (
    EXIT_CONFIG_ERROR,
    EXIT_FINDINGS,
    EXIT_INPUT_ERROR,
    EXIT_INTERRUPTED,
    EXIT_OK,
    build_parser,
    create_service,
    main,
    run,
)
from .report import ConformanceReport, exit_code, render, render_json, render_table

__all__ = [
    "ConformanceReport",
    "EXIT_CONFIG_ERROR",
    "EXIT_FINDINGS",
    "EXIT_INPUT_ERROR",
    "EXIT_INTERRUPTED",
    "EXIT_OK",
    "build_parser",
    "create_service",
    "exit_code",
    "main",
    "render",
    "render_json",
    "render_table",
    "run",
]
