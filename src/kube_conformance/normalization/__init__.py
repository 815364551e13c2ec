"""Parsing of raw manifest text into normalized documents."""

from .document_parser import (
    FORMATS,
    JSON,
    YAML,
    DocumentParser,
    ParsedStream,
    ParseError,
    detect_format,
    parse,
    parse_stream,
)

__all__ = [
    "DocumentParser",
    "FORMATS",
    "JSON",
    "ParseError",
    "ParsedStream",
    "YAML",
    "detect_format",
    "parse",
    "parse_stream",
]
