"""Core records shared by the loader, resolver and query service.

Everything here is immutable once built. A ``ReferenceGraph`` is the
snapshot the query service serves from; a refresh builds a new one and
never patches an existing graph.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Optional


class Category(str, Enum):
    """Document category, assigned from the top-level subdirectory."""

    AGENT = "agent"
    COMMAND = "command"
    SKILL = "skill"
    TEMPLATE = "template"


# Top-level directory name -> category. Anything else is skipped.
CATEGORY_DIRECTORIES: dict[str, Category] = {
    "agents": Category.AGENT,
    "commands": Category.COMMAND,
    "skills": Category.SKILL,
    "templates": Category.TEMPLATE,
}


class _Unresolved:
    """Sentinel target for references that match no loaded document."""

    _instance: Optional["_Unresolved"] = None

    def __new__(cls) -> "_Unresolved":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNRESOLVED"

    def __reduce__(self):
        return (_Unresolved, ())


UNRESOLVED = _Unresolved()


@dataclass(frozen=True)
class Document:
    """Represents one loaded markdown document."""

    id: str
    category: Category
    body: str
    path: str  # Relative path, extension included
    title: Optional[str] = None
    description: Optional[str] = None
    references: tuple[str, ...] = ()
    metadata: Mapping[str, Any] = field(
        default_factory=dict, hash=False, compare=False
    )

    def __post_init__(self) -> None:
        object.__setattr__(self, "references", tuple(self.references))
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

    @property
    def display_title(self) -> str:
        return self.title or self.id

    def get_injectable_content(self) -> str:
        """Get the document content formatted for prompt injection."""
        return f"## {self.display_title}\n\n{self.body.strip()}"

    def to_dict(self) -> dict:
        """Convert to a plain dictionary."""
        return {
            "id": self.id,
            "category": self.category.value,
            "path": self.path,
            "title": self.title,
            "description": self.description,
            "references": list(self.references),
            "metadata": dict(self.metadata),
            "body": self.body,
        }


@dataclass(frozen=True)
class LoadError:
    """A file that could not be turned into a Document."""

    path: str
    reason: str


@dataclass(frozen=True)
class ReferenceEdge:
    """One reference from a document, resolved or not."""

    source: str
    target: Any  # Document id, or UNRESOLVED
    raw: str

    @property
    def resolved(self) -> bool:
        return self.target is not UNRESOLVED


class DiagnosticKind(str, Enum):
    DANGLING_REFERENCE = "dangling_reference"
    CYCLE = "cycle"


@dataclass(frozen=True)
class Diagnostic:
    """A non-fatal structural finding about the reference graph."""

    kind: DiagnosticKind
    document_id: str
    message: str
    raw: Optional[str] = None
    cycle: tuple[str, ...] = ()


class ReferenceGraph:
    """Immutable snapshot of documents, edges and diagnostics.

    Built once per load cycle. Lookup indexes are computed at construction
    so readers never mutate shared state.
    """

    __slots__ = (
        "_documents",
        "_edges",
        "_diagnostics",
        "_load_errors",
        "_root",
        "_loaded_at",
        "_by_id",
        "_outgoing",
        "_incoming",
    )

    def __init__(
        self,
        documents,
        edges,
        diagnostics=(),
        load_errors=(),
        root: Optional[str] = None,
        loaded_at: Optional[datetime] = None,
    ):
        self._documents: tuple[Document, ...] = tuple(documents)
        self._edges: tuple[ReferenceEdge, ...] = tuple(edges)
        self._diagnostics: tuple[Diagnostic, ...] = tuple(diagnostics)
        self._load_errors: tuple[LoadError, ...] = tuple(load_errors)
        self._root = root
        self._loaded_at = loaded_at or datetime.now(timezone.utc)

        by_id = {doc.id: doc for doc in self._documents}
        outgoing: dict[str, list[ReferenceEdge]] = {doc_id: [] for doc_id in by_id}
        incoming: dict[str, list[ReferenceEdge]] = {doc_id: [] for doc_id in by_id}
        for edge in self._edges:
            outgoing.setdefault(edge.source, []).append(edge)
            if edge.resolved:
                incoming.setdefault(edge.target, []).append(edge)

        self._by_id = MappingProxyType(by_id)
        self._outgoing = MappingProxyType({k: tuple(v) for k, v in outgoing.items()})
        self._incoming = MappingProxyType({k: tuple(v) for k, v in incoming.items()})

    @property
    def documents(self) -> tuple[Document, ...]:
        return self._documents

    @property
    def edges(self) -> tuple[ReferenceEdge, ...]:
        return self._edges

    @property
    def diagnostics(self) -> tuple[Diagnostic, ...]:
        return self._diagnostics

    @property
    def load_errors(self) -> tuple[LoadError, ...]:
        return self._load_errors

    @property
    def root(self) -> Optional[str]:
        return self._root

    @property
    def loaded_at(self) -> datetime:
        return self._loaded_at

    def __len__(self) -> int:
        return len(self._documents)

    def __contains__(self, document_id: object) -> bool:
        return document_id in self._by_id

    def get(self, document_id: str) -> Optional[Document]:
        return self._by_id.get(document_id)

    def outgoing(self, document_id: str) -> tuple[ReferenceEdge, ...]:
        """All edges leaving a document, in reference order."""
        return self._outgoing.get(document_id, ())

    def incoming(self, document_id: str) -> tuple[ReferenceEdge, ...]:
        """Resolved edges pointing at a document."""
        return self._incoming.get(document_id, ())

    def neighbours(self, document_id: str) -> list[str]:
        """Distinct resolved targets of a document, first-seen order."""
        seen: list[str] = []
        for edge in self.outgoing(document_id):
            if edge.resolved and edge.target not in seen:
                seen.append(edge.target)
        return seen

    def dangling(self) -> list[Diagnostic]:
        return [d for d in self._diagnostics if d.kind == DiagnosticKind.DANGLING_REFERENCE]

    def cycles(self) -> list[Diagnostic]:
        return [d for d in self._diagnostics if d.kind == DiagnosticKind.CYCLE]
