"""Normalized manifest tree used by every rule.

A parsed manifest is represented as a closed set of node types so rule code
can branch on ``isinstance`` instead of poking at arbitrary YAML/JSON values:

* :class:`MappingNode` - ordered, unique string keys
* :class:`SequenceNode` - ordered items
* :class:`ScalarNode` - ``str``/``int``/``float``/``bool``/``None``

Nodes remember where they came from (``line``/``column``) but those fields do
not take part in equality, so two parses of the same text compare equal.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Tuple, Union

ScalarValue = Union[str, int, float, bool, None]
PathPart = Union[str, int]

_IDENTIFIER_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_-]*")
_DOTTED_KEY_RE = re.compile(r"\.?([A-Za-z_][A-Za-z0-9_-]*)")
_INDEX_RE = re.compile(r"\[(\d+)\]")
_QUOTED_KEY_RE = re.compile(r'\[("(?:[^"\\]|\\.)*")\]')


@dataclass(frozen=True, slots=True)
class ScalarNode:
    """Leaf value of a manifest."""

    value: ScalarValue
    line: Optional[int] = field(default=None, compare=False)
    column: Optional[int] = field(default=None, compare=False)

    def to_python(self) -> ScalarValue:
        return self.value


@dataclass(frozen=True, slots=True)
class SequenceNode:
    """Ordered list of nodes."""

    items: Tuple["Node", ...] = ()
    line: Optional[int] = field(default=None, compare=False)
    column: Optional[int] = field(default=None, compare=False)

    def __iter__(self) -> Iterator["Node"]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)

    def __getitem__(self, index: int) -> "Node":
        return self.items[index]

    def to_python(self) -> List[Any]:
        return [item.to_python() for item in self.items]


@dataclass(frozen=True, slots=True)
class MappingNode:
    """Ordered mapping of string keys to nodes."""

    entries: Tuple[Tuple[str, "Node"], ...] = ()
    line: Optional[int] = field(default=None, compare=False)
    column: Optional[int] = field(default=None, compare=False)
    _index: Dict[str, "Node"] = field(
        default_factory=dict, init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        index: Dict[str, Node] = {}
        for key, value in self.entries:
            if key in index:
                raise ValueError(f"Duplicate mapping key: {key!r}")
            index[key] = value
        object.__setattr__(self, "_index", index)

    def get(self, key: str) -> Optional["Node"]:
        return self._index.get(key)

    def __contains__(self, key: object) -> bool:
        return key in self._index

    def __iter__(self) -> Iterator[str]:
        return (key for key, _ in self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def keys(self) -> List[str]:
        return [key for key, _ in self.entries]

    def items(self) -> List[Tuple[str, "Node"]]:
        return list(self.entries)

    def to_python(self) -> Dict[str, Any]:
        return {key: value.to_python() for key, value in self.entries}


Node = Union[MappingNode, SequenceNode, ScalarNode]


def build_node(value: Any) -> Node:
    """Build a node tree from plain Python data (JSON-like values)."""

    if isinstance(value, (MappingNode, SequenceNode, ScalarNode)):
        return value
    if isinstance(value, Mapping):
        return MappingNode(tuple((str(key), build_node(item)) for key, item in value.items()))
    if isinstance(value, (list, tuple)):
        return SequenceNode(tuple(build_node(item) for item in value))
    if value is None or isinstance(value, (str, int, float, bool)):
        return ScalarNode(value)
    raise TypeError(f"Unsupported manifest value type: {type(value).__name__}")


@dataclass(frozen=True, slots=True)
class DocumentPath:
    """Location inside a document, e.g. ``spec.containers[0].image``."""

    parts: Tuple[PathPart, ...] = ()

    @classmethod
    def parse(cls, text: str) -> "DocumentPath":
        """Parse the rendered form produced by ``str(path)``."""

        parts: List[PathPart] = []
        position = 0
        while position < len(text):
            if text[position] == "[":
                index_match = _INDEX_RE.match(text, position)
                if index_match:
                    parts.append(int(index_match.group(1)))
                    position = index_match.end()
                    continue
                quoted_match = _QUOTED_KEY_RE.match(text, position)
                if quoted_match:
                    parts.append(json.loads(quoted_match.group(1)))
                    position = quoted_match.end()
                    continue
            else:
                key_match = _DOTTED_KEY_RE.match(text, position)
                if key_match and (position == 0) == (text[position] != "."):
                    parts.append(key_match.group(1))
                    position = key_match.end()
                    continue
            raise ValueError(f"Invalid document path {text!r} at offset {position}")
        return cls(tuple(parts))

    def child(self, part: PathPart) -> "DocumentPath":
        return DocumentPath(self.parts + (part,))

    def __truediv__(self, part: PathPart) -> "DocumentPath":
        return self.child(part)

    def join(self, *parts: PathPart) -> "DocumentPath":
        return DocumentPath(self.parts + tuple(parts))

    def sort_key(self) -> Tuple[Tuple[int, Any], ...]:
        """Ordering key that sorts indices numerically and keys lexically."""

        return tuple((0, part) if isinstance(part, int) else (1, part) for part in self.parts)

    def __str__(self) -> str:
        rendered: List[str] = []
        for part in self.parts:
            if isinstance(part, int):
                rendered.append(f"[{part}]")
            elif _IDENTIFIER_RE.fullmatch(part):
                rendered.append(f".{part}" if rendered else part)
            else:
                rendered.append(f"[{json.dumps(part)}]")
        return "".join(rendered)

    def __len__(self) -> int:
        return len(self.parts)


ROOT = DocumentPath()


@dataclass(frozen=True, slots=True)
class DocumentRef:
    """Identity of one parsed manifest document, used for reporting."""

    source: str
    index: int = 0
    line: Optional[int] = None
    kind: Optional[str] = None
    api_version: Optional[str] = None
    name: Optional[str] = None
    namespace: Optional[str] = None

    @property
    def is_global(self) -> bool:
        return self.index < 0

    @property
    def display_name(self) -> str:
        """Return ``kind/namespace/name`` with ``-`` for missing parts."""

        if self.is_global:
            return "(global)"
        return "/".join(part or "-" for part in (self.kind, self.namespace, self.name))

    @property
    def location(self) -> str:
        if self.is_global:
            return self.source
        return f"{self.source}#{self.index}"

    def sort_key(self) -> Tuple[int, str, int]:
        return (1 if self.is_global else 0, self.source, self.index)


GLOBAL_REF = DocumentRef(source="<global>", index=-1)


@dataclass(frozen=True, slots=True)
class Document:
    """Immutable manifest document plus its identity."""

    root: MappingNode
    ref: DocumentRef

    @property
    def kind(self) -> Optional[str]:
        return self.ref.kind

    @property
    def name(self) -> Optional[str]:
        return self.ref.name

    @property
    def namespace(self) -> Optional[str]:
        return self.ref.namespace

    @property
    def labels(self) -> Dict[str, str]:
        return string_map(self.get("metadata.labels"))

    # ------------------------------------------------------------------
    def get(self, path: DocumentPath | str) -> Optional[Node]:
        """Return the node at ``path`` or ``None`` when any step is absent."""

        if isinstance(path, str):
            path = DocumentPath.parse(path)

        node: Node = self.root
        for part in path.parts:
            if isinstance(part, int):
                if not isinstance(node, SequenceNode) or not 0 <= part < len(node):
                    return None
                node = node[part]
            else:
                if not isinstance(node, MappingNode):
                    return None
                child = node.get(part)
                if child is None:
                    return None
                node = child
        return node

    def get_scalar(self, path: DocumentPath | str, default: ScalarValue = None) -> ScalarValue:
        node = self.get(path)
        if isinstance(node, ScalarNode):
            return node.value
        return default

    def find(
        self, predicate: Callable[[DocumentPath, Node], bool]
    ) -> List[Tuple[DocumentPath, Node]]:
        """Return every ``(path, node)`` accepted by ``predicate``.

        Traversal is pre-order: mapping keys in source order, sequence items in
        index order. The result is a materialized list and may be iterated any
        number of times.
        """

        matches: List[Tuple[DocumentPath, Node]] = []
        stack: List[Tuple[DocumentPath, Node]] = [(ROOT, self.root)]
        while stack:
            path, node = stack.pop()
            if predicate(path, node):
                matches.append((path, node))
            if isinstance(node, MappingNode):
                children = [(path / key, value) for key, value in node.entries]
            elif isinstance(node, SequenceNode):
                children = [(path / idx, item) for idx, item in enumerate(node.items)]
            else:
                continue
            stack.extend(reversed(children))
        return matches


def string_map(node: Optional[Node]) -> Dict[str, str]:
    """Return a mapping node's scalar entries as strings (labels, selectors)."""

    if not isinstance(node, MappingNode):
        return {}

    result: Dict[str, str] = {}
    for key, value in node.entries:
        if isinstance(value, ScalarNode) and value.value is not None:
            result[key] = _scalar_text(value.value)
    return result


def _scalar_text(value: ScalarValue) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)
