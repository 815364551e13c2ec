"""Read manifest text from files, directories and standard input."""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, TextIO

from ..normalization import FORMATS, ParseError, detect_format

logger = logging.getLogger(__name__)

STDIN_MARKER = "-"
STDIN_SOURCE = "<stdin>"
MANIFEST_PATTERNS = ("*.yaml", "*.yml", "*.json")
_SKIP_DIRS = {".git", ".hg", ".svn", "node_modules", "__pycache__", ".venv", "venv", ".tox"}


class ManifestLoaderError(RuntimeError):
    """Exception raised when manifest input cannot be read."""


@dataclass(frozen=True, slots=True)
class ManifestSource:
    """Raw text of one input stream and the format it should be parsed with."""

    name: str
    text: str
    format: str
    error: Optional[ParseError] = None


class ManifestLoader:
    """Load manifest sources from paths, expanding directories recursively."""

    def __init__(
        self,
        paths: Iterable[str | os.PathLike[str]] = (),
        *,
        stdin: Optional[TextIO] = None,
        input_format: Optional[str] = None,
        base_dir: str | os.PathLike[str] | None = None,
    ) -> None:
        if input_format is not None and input_format not in FORMATS:
            raise ManifestLoaderError(
                f"Unsupported input format '{input_format}' (expected one of: {', '.join(FORMATS)})"
            )

        self.paths = [str(path) for path in paths]
        self.stdin = stdin
        self.input_format = input_format
        self.base_dir = Path(base_dir or Path.cwd()).resolve()

    def load(self) -> List[ManifestSource]:
        """Return every source in argument order; directories expand sorted."""

        sources: List[ManifestSource] = []
        seen: set[Path] = set()
        for raw_path in self.paths:
            if raw_path == STDIN_MARKER:
                sources.append(self._load_stdin())
                continue

            path = Path(raw_path)
            if path.is_dir():
                discovered = self._discover(path)
                if not discovered:
                    logger.warning("No manifest files found under %s", path)
                files = discovered
            elif path.exists():
                files = [path]
            else:
                raise ManifestLoaderError(f"Manifest path not found: {raw_path}")

            for file_path in files:
                resolved = file_path.resolve()
                if resolved in seen:
                    logger.debug("Skipping %s, already loaded", file_path)
                    continue
                seen.add(resolved)
                sources.append(self._load_file(file_path))

        logger.debug("Loaded %d manifest source(s)", len(sources))
        return sources

    # ------------------------------------------------------------------
    def _load_stdin(self) -> ManifestSource:
        stream = self.stdin if self.stdin is not None else sys.stdin
        try:
            text = stream.read()
        except OSError as exc:  # pragma: no cover - surfaced to caller
            raise ManifestLoaderError("Failed to read manifests from standard input") from exc
        return ManifestSource(name=STDIN_SOURCE, text=text, format=self.input_format or "yaml")

    def _load_file(self, path: Path) -> ManifestSource:
        try:
            raw = path.read_bytes()
        except OSError as exc:
            raise ManifestLoaderError(f"Failed to read manifest file {path}: {exc}") from exc

        name = self._display_name(path)
        input_format = self.input_format or detect_format(path.name)
        try:
            text = raw.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            # Reported against this source only.
            logger.warning("Cannot decode %s as UTF-8: %s", path, exc.reason)
            error = ParseError(
                f"cannot decode input as UTF-8: {exc.reason}",
                source=name,
                index=0,
                line=raw[: exc.start].count(b"\n") + 1,
            )
            return ManifestSource(name=name, text="", format=input_format, error=error)

        return ManifestSource(name=name, text=text, format=input_format)

    def _discover(self, directory: Path) -> List[Path]:
        files: set[Path] = set()
        for pattern in MANIFEST_PATTERNS:
            for file_path in directory.rglob(pattern):
                if any(part in _SKIP_DIRS for part in file_path.relative_to(directory).parts):
                    continue
                if file_path.is_file():
                    files.add(file_path)
        return sorted(files)

    def _display_name(self, path: Path) -> str:
        resolved = path.resolve()
        try:
            return resolved.relative_to(self.base_dir).as_posix()
        except ValueError:
            return str(path)


__all__ = ["ManifestLoader", "ManifestLoaderError", "ManifestSource", "STDIN_MARKER"]
