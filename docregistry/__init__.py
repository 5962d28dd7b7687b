"""
docregistry: Document Registry & Reference Resolver

Loads agent, command, skill and template markdown documents from a content
tree, resolves the cross-references between them and serves read-only
lookups over an immutable, atomically refreshed snapshot.

Usage:
    from docregistry import QueryService

    service = QueryService()
    service.refresh("path/to/content")
    skill = service.get_by_id("skills/testing/SKILL")
"""

from .errors import (
    DocumentRegistryError,
    DocumentSourceError,
    LoadTimeoutError,
    NotFoundError,
    NotReadyError,
    RefreshInProgressError,
)
from .loaders import DocumentLoader, LoadResult, load
from .models import (
    UNRESOLVED,
    Category,
    Diagnostic,
    DiagnosticKind,
    Document,
    LoadError,
    ReferenceEdge,
    ReferenceGraph,
)
from .query import QueryService, ServiceState, get_query_service
from .resolver import ReferenceResolver, resolve

__version__ = "0.1.0"

__all__ = [
    "UNRESOLVED",
    "Category",
    "Diagnostic",
    "DiagnosticKind",
    "Document",
    "DocumentLoader",
    "DocumentRegistryError",
    "DocumentSourceError",
    "LoadError",
    "LoadResult",
    "LoadTimeoutError",
    "NotFoundError",
    "NotReadyError",
    "QueryService",
    "ReferenceEdge",
    "ReferenceGraph",
    "ReferenceResolver",
    "RefreshInProgressError",
    "ServiceState",
    "get_query_service",
    "load",
    "resolve",
]
