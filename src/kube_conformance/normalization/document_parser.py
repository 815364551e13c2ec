"""Conversion helpers that turn raw YAML/JSON manifests into :class:`Document` trees."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple

import yaml

from ..models import (
    Document,
    DocumentRef,
    MappingNode,
    Node,
    ScalarNode,
    SequenceNode,
    build_node,
)

logger = logging.getLogger(__name__)

YAML = "yaml"
JSON = "json"
FORMATS = (YAML, JSON)

_DOCUMENT_START_RE = re.compile(r"^---(?:[ \t]|$)")
MAX_EXPANDED_NODES = 1_000_000
_MERGE_TAG = "tag:yaml.org,2002:merge"
_NULL_TAG = "tag:yaml.org,2002:null"
_SCALAR_TYPES = (str, int, float, bool, type(None))


class ParseError(RuntimeError):
    """Raised when a manifest document cannot be parsed."""

    def __init__(
        self,
        message: str,
        *,
        source: str = "<string>",
        index: Optional[int] = None,
        line: Optional[int] = None,
        column: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.source = source
        self.index = index
        self.line = line
        self.column = column

    @property
    def location(self) -> str:
        parts = [self.source]
        if self.line is not None:
            parts.append(str(self.line))
            if self.column is not None:
                parts.append(str(self.column))
        return ":".join(parts)

    def __str__(self) -> str:
        return f"{self.location}: {self.message}"


@dataclass(slots=True)
class ParsedStream:
    """Documents and per-document failures from one input stream."""

    source: str
    documents: List[Document] = field(default_factory=list)
    errors: List[ParseError] = field(default_factory=list)


def detect_format(name: str, default: str = YAML) -> str:
    """Guess the manifest format from a file name."""

    if name.lower().endswith(".json"):
        return JSON
    if name.lower().endswith((".yaml", ".yml")):
        return YAML
    return default


class DocumentParser:
    """Parse manifest text into immutable :class:`Document` instances."""

    def parse(
        self, raw_text: str, format: str = YAML, *, source: str = "<string>", index: int = 0
    ) -> Document:
        """Parse exactly one document, raising :class:`ParseError` otherwise."""

        stream = self.parse_stream(raw_text, format, source=source)
        if stream.errors:
            raise stream.errors[0]
        if len(stream.documents) != 1:
            raise ParseError(
                f"expected a single manifest document, found {len(stream.documents)}",
                source=source,
            )

        document = stream.documents[0]
        if index:
            document = Document(root=document.root, ref=_with_index(document.ref, index))
        return document

    def parse_stream(
        self, raw_text: str, format: str = YAML, *, source: str = "<string>"
    ) -> ParsedStream:
        """Parse every document in ``raw_text``.

        YAML streams are split on ``---`` separators before parsing so that a
        malformed document only fails itself. Errors are collected, not raised.
        """

        if format not in FORMATS:
            raise ValueError(f"format must be one of {', '.join(FORMATS)}")

        stream = ParsedStream(source=source)
        if format == JSON:
            self._parse_json(raw_text, stream)
        else:
            self._parse_yaml(raw_text, stream)

        logger.debug(
            "Parsed %s: %d document(s), %d error(s)",
            source,
            len(stream.documents),
            len(stream.errors),
        )
        return stream

    # ------------------------------------------------------------------
    def _parse_json(self, raw_text: str, stream: ParsedStream) -> None:
        if not raw_text.strip():
            return

        try:
            data = json.loads(raw_text, object_pairs_hook=_reject_duplicate_keys)
        except json.JSONDecodeError as exc:
            stream.errors.append(
                ParseError(
                    f"invalid JSON: {exc.msg}",
                    source=stream.source,
                    index=0,
                    line=exc.lineno,
                    column=exc.colno,
                )
            )
            return
        except ValueError as exc:
            stream.errors.append(ParseError(str(exc), source=stream.source, index=0))
            return

        root = build_node(data)
        try:
            stream.documents.append(self._build_document(root, stream.source, 0, 1))
        except ParseError as exc:
            stream.errors.append(exc)

    def _parse_yaml(self, raw_text: str, stream: ParsedStream) -> None:
        index = 0
        for offset, chunk in _split_yaml_documents(raw_text):
            try:
                composed = yaml.compose(chunk, Loader=yaml.SafeLoader)
            except yaml.MarkedYAMLError as exc:
                mark = exc.problem_mark or exc.context_mark
                stream.errors.append(
                    ParseError(
                        f"invalid YAML: {exc.problem or exc.context or exc}",
                        source=stream.source,
                        index=index,
                        line=offset + mark.line + 1 if mark else None,
                        column=mark.column + 1 if mark else None,
                    )
                )
                index += 1
                continue
            except yaml.YAMLError as exc:
                stream.errors.append(
                    ParseError(f"invalid YAML: {exc}", source=stream.source, index=index)
                )
                index += 1
                continue

            if composed is None or _is_empty_document(composed):
                continue

            try:
                root = _YamlTreeBuilder(stream.source, index, offset).convert(composed)
                line = offset + composed.start_mark.line + 1
                stream.documents.append(self._build_document(root, stream.source, index, line))
            except ParseError as exc:
                stream.errors.append(exc)
            index += 1

    def _build_document(self, root: Node, source: str, index: int, line: int) -> Document:
        if not isinstance(root, MappingNode):
            shape = "sequence" if isinstance(root, SequenceNode) else "scalar"
            raise ParseError(
                f"manifest document must be a mapping, got a {shape}",
                source=source,
                index=index,
                line=line,
            )

        metadata = root.get("metadata")
        ref = DocumentRef(
            source=source,
            index=index,
            line=line,
            kind=_text(root.get("kind")),
            api_version=_text(root.get("apiVersion")),
            name=_text(metadata.get("name")) if isinstance(metadata, MappingNode) else None,
            namespace=(
                _text(metadata.get("namespace")) if isinstance(metadata, MappingNode) else None
            ),
        )
        return Document(root=root, ref=ref)


class _YamlTreeBuilder:
    """Walk a composed PyYAML node graph and produce our node types."""

    def __init__(self, source: str, index: int, line_offset: int) -> None:
        self._source = source
        self._index = index
        self._offset = line_offset
        self._constructor = yaml.constructor.SafeConstructor()
        self._active: Set[int] = set()
        self._converted: Dict[int, Node] = {}
        self._sizes: Dict[int, int] = {}

    def convert(self, node: yaml.Node) -> Node:
        if id(node) in self._active:
            raise self._error("recursive alias is not supported", node)
        # Aliases point at an already composed node; convert each node once.
        cached = self._converted.get(id(node))
        if cached is not None:
            return cached

        line, column = self._position(node)
        if isinstance(node, yaml.ScalarNode):
            converted: Node = ScalarNode(self._scalar_value(node), line, column)
            size = 1
        else:
            self._active.add(id(node))
            try:
                if isinstance(node, yaml.SequenceNode):
                    items = tuple(self.convert(item) for item in node.value)
                    converted = SequenceNode(items, line, column)
                    size = 1 + sum(self._sizes[id(item)] for item in items)
                elif isinstance(node, yaml.MappingNode):
                    entries = self._mapping_entries(node)
                    converted = MappingNode(entries, line, column)
                    size = 1 + sum(self._sizes[id(value)] for _, value in entries)
                else:
                    raise self._error(f"unsupported YAML node {type(node).__name__}", node)
            finally:
                self._active.discard(id(node))

        if size > MAX_EXPANDED_NODES:
            raise self._error(
                f"document expands to more than {MAX_EXPANDED_NODES} nodes through aliases", node
            )
        self._converted[id(node)] = converted
        self._sizes[id(converted)] = size
        return converted

    # ------------------------------------------------------------------
    def _mapping_entries(self, node: yaml.MappingNode) -> Tuple[Tuple[str, Node], ...]:
        merged: Dict[str, Node] = {}
        explicit: Dict[str, Node] = {}

        for key_node, value_node in node.value:
            if key_node.tag == _MERGE_TAG:
                for key, value in self._merge_sources(value_node):
                    merged.setdefault(key, value)
                continue

            if not isinstance(key_node, yaml.ScalarNode):
                raise self._error("complex mapping keys are not supported", key_node)

            key = str(key_node.value)
            if key in explicit:
                raise self._error(f"duplicate key '{key}'", key_node)
            explicit[key] = self.convert(value_node)

        entries: Dict[str, Node] = dict(merged)
        entries.update(explicit)
        return tuple(entries.items())

    def _merge_sources(self, node: yaml.Node) -> List[Tuple[str, Node]]:
        if isinstance(node, yaml.MappingNode):
            sources = [node]
        elif isinstance(node, yaml.SequenceNode) and all(
            isinstance(item, yaml.MappingNode) for item in node.value
        ):
            sources = list(node.value)
        else:
            raise self._error("merge key expects a mapping or a list of mappings", node)

        entries: List[Tuple[str, Node]] = []
        for source in sources:
            converted = self.convert(source)
            if isinstance(converted, MappingNode):
                entries.extend(converted.entries)
        return entries

    def _scalar_value(self, node: yaml.ScalarNode) -> Any:
        try:
            value = self._constructor.construct_object(node, deep=True)
        except yaml.constructor.ConstructorError:
            # Custom tags such as ``!Ref`` keep their literal text.
            return node.value
        if isinstance(value, _SCALAR_TYPES):
            return value
        return node.value

    def _position(self, node: yaml.Node) -> Tuple[int, int]:
        mark = node.start_mark
        return self._offset + mark.line + 1, mark.column + 1

    def _error(self, message: str, node: yaml.Node) -> ParseError:
        line, column = self._position(node)
        return ParseError(
            message, source=self._source, index=self._index, line=line, column=column
        )


def _split_yaml_documents(raw_text: str) -> List[Tuple[int, str]]:
    """Split a YAML stream into ``(line_offset, text)`` chunks at ``---`` lines."""

    chunks: List[Tuple[int, str]] = []
    current: List[str] = []
    start = 0
    for number, line in enumerate(raw_text.splitlines(keepends=True)):
        if _DOCUMENT_START_RE.match(line) and not _is_prefix_only(current):
            chunks.append((start, "".join(current)))
            current = []
            start = number
        current.append(line)
    if current:
        chunks.append((start, "".join(current)))
    return chunks


def _is_prefix_only(lines: List[str]) -> bool:
    """True when nothing but directives, comments or blank lines precede a ``---``."""

    for line in lines:
        stripped = line.strip()
        if stripped and not stripped.startswith(("%", "#")):
            return False
    return True


def _is_empty_document(node: yaml.Node) -> bool:
    return isinstance(node, yaml.ScalarNode) and node.tag == _NULL_TAG and node.value in ("", "~")


def _reject_duplicate_keys(pairs: List[Tuple[str, Any]]) -> Dict[str, Any]:
    result: Dict[str, Any] = {}
    for key, value in pairs:
        if key in result:
            raise ValueError(f"duplicate key '{key}'")
        result[key] = value
    return result


def _text(node: Optional[Node]) -> Optional[str]:
    if isinstance(node, ScalarNode) and node.value is not None:
        return str(node.value)
    return None


def _with_index(ref: DocumentRef, index: int) -> DocumentRef:
    return DocumentRef(
        source=ref.source,
        index=index,
        line=ref.line,
        kind=ref.kind,
        api_version=ref.api_version,
        name=ref.name,
        namespace=ref.namespace,
    )


_DEFAULT_PARSER = DocumentParser()


def parse(raw_text: str, format: str = YAML, *, source: str = "<string>", index: int = 0) -> Document:
    """Parse a single manifest document with the default parser."""

    return _DEFAULT_PARSER.parse(raw_text, format, source=source, index=index)


def parse_stream(raw_text: str, format: str = YAML, *, source: str = "<string>") -> ParsedStream:
    """Parse a multi-document stream with the default parser."""

    return _DEFAULT_PARSER.parse_stream(raw_text, format, source=source)
