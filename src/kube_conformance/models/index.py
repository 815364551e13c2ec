"""Indexed view over every document in a run, handed to cross-document rules."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .document import Document

DEFAULT_NAMESPACE = "default"


def effective_namespace(document: Document) -> str:
    """Namespace the object would land in when applied without ``-n``."""

    return document.namespace or DEFAULT_NAMESPACE


@dataclass(frozen=True)
class DocumentIndex:
    """Lookup tables built once per run from the full document list."""

    by_kind: Dict[str, Tuple[Document, ...]] = field(default_factory=dict)
    by_namespace: Dict[str, Tuple[Document, ...]] = field(default_factory=dict)
    by_identity: Dict[Tuple[str, str, str], Document] = field(default_factory=dict)

    @classmethod
    def build(cls, documents: Iterable[Document]) -> "DocumentIndex":
        kinds: Dict[str, List[Document]] = defaultdict(list)
        namespaces: Dict[str, List[Document]] = defaultdict(list)
        identities: Dict[Tuple[str, str, str], Document] = {}
        for document in documents:
            if document.kind:
                kinds[document.kind].append(document)
            namespaces[effective_namespace(document)].append(document)
            if document.kind and document.name:
                key = (document.kind, effective_namespace(document), document.name)
                identities.setdefault(key, document)

        return cls(
            by_kind={kind: tuple(docs) for kind, docs in kinds.items()},
            by_namespace={ns: tuple(docs) for ns, docs in namespaces.items()},
            by_identity=identities,
        )


@dataclass(frozen=True)
class DocumentSet:
    """Ordered documents of one evaluation run plus their index."""

    documents: Tuple[Document, ...]
    index: DocumentIndex

    @classmethod
    def of(cls, documents: Sequence[Document]) -> "DocumentSet":
        docs = tuple(documents)
        return cls(documents=docs, index=DocumentIndex.build(docs))

    def of_kind(self, *kinds: str) -> List[Document]:
        """Return documents of the given kinds in input order."""

        wanted = set(kinds)
        return [document for document in self.documents if document.kind in wanted]

    def in_namespace(self, namespace: str, kind: Optional[str] = None) -> List[Document]:
        documents = self.index.by_namespace.get(namespace, ())
        if kind is None:
            return list(documents)
        return [document for document in documents if document.kind == kind]

    def lookup(self, kind: str, namespace: str, name: str) -> Optional[Document]:
        return self.index.by_identity.get((kind, namespace, name))

    def __len__(self) -> int:
        return len(self.documents)
