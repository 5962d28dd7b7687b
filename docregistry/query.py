"""Read-only query service over an immutable ReferenceGraph snapshot.

The service starts ``UNLOADED``. A successful ``refresh`` loads and
resolves a brand-new snapshot and publishes it with a single attribute
assignment, so a reader that already grabbed the previous snapshot keeps
seeing a complete graph. Refreshes are serialized by a lock; a failed
refresh leaves the previous snapshot in place.

Usage:
    from docregistry.query import QueryService

    service = QueryService()
    graph = service.refresh("/path/to/content")
    for diagnostic in graph.diagnostics:
        print(diagnostic.message)

    doc = service.get_by_id("commands/bugfix")
    related = service.closure("commands/bugfix", max_depth=1)
"""

import logging
import threading
import time
from collections import deque
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, Optional, Union

from .config import settings
from .errors import LoadTimeoutError, NotFoundError, NotReadyError, RefreshInProgressError
from .loaders.document_loader import DocumentLoader
from .models import Category, Diagnostic, Document, LoadError, ReferenceEdge, ReferenceGraph
from .observability import get_logger, metrics
from .resolver import ReferenceResolver

logger = logging.getLogger(__name__)


class ServiceState(str, Enum):
    UNLOADED = "unloaded"
    READY = "ready"


class QueryService:
    """Serves lookups from the current snapshot and swaps it on refresh."""

    def __init__(
        self,
        root: Optional[Union[str, Path]] = None,
        extensions: Optional[Iterable[str]] = None,
        loader: Optional[DocumentLoader] = None,
        resolver: Optional[ReferenceResolver] = None,
        timeout: Optional[float] = None,
        wait: bool = False,
    ):
        """Initialize the query service.

        Args:
            root: Default content root used when ``refresh`` gets none
            extensions: Recognized document suffixes
            loader: Optional DocumentLoader (creates one if not provided)
            resolver: Optional ReferenceResolver (creates one if not provided)
            timeout: Default refresh timeout in seconds
            wait: Default for queueing behind a running refresh
        """
        self.root = Path(root) if root is not None else None
        self.default_timeout = timeout
        self.default_wait = wait
        self.loader = loader or DocumentLoader(extensions)
        self.resolver = resolver or ReferenceResolver(self.loader.extensions)
        self._snapshot: Optional[ReferenceGraph] = None
        self._refresh_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def state(self) -> ServiceState:
        return ServiceState.READY if self._snapshot is not None else ServiceState.UNLOADED

    @property
    def snapshot(self) -> ReferenceGraph:
        """The snapshot queries currently run against."""
        return self._require_snapshot()

    def refresh(
        self,
        root: Optional[Union[str, Path]] = None,
        timeout: Optional[float] = None,
        wait: Optional[bool] = None,
    ) -> ReferenceGraph:
        """Load and resolve a new snapshot, then swap it in.

        Args:
            root: Content root. Defaults to the service root.
            timeout: Seconds allowed for load and resolve. Defaults to the
                service timeout.
            wait: Queue behind a running refresh instead of failing.
                Defaults to the service setting.

        Returns:
            The newly published ReferenceGraph

        Raises:
            RefreshInProgressError: Another refresh is running and wait is False
            LoadTimeoutError: The refresh exceeded ``timeout``
            DocumentSourceError: The root is unreadable
        """
        if root is None:
            root = self.root
        if root is None:
            raise ValueError("No document root given and no default root configured")
        root_path = Path(root)
        if timeout is None:
            timeout = self.default_timeout
        if wait is None:
            wait = self.default_wait

        obs_logger = get_logger("query_service")
        start_time = time.monotonic()
        deadline = start_time + timeout if timeout is not None else None

        # The deadline covers time spent queued behind another refresh
        if wait:
            lock_timeout = max(timeout, 0) if timeout is not None else -1
            if not self._refresh_lock.acquire(timeout=lock_timeout):
                metrics.increment("refresh_total", labels={"outcome": "timeout"})
                obs_logger.warn("refresh_timeout", root=str(root_path), timeout=timeout, queued=True)
                raise LoadTimeoutError(
                    f"Refresh of {root_path} timed out after {timeout}s waiting for a running refresh"
                )
        elif not self._refresh_lock.acquire(blocking=False):
            metrics.increment("refresh_total", labels={"outcome": "busy"})
            raise RefreshInProgressError(f"A refresh is already running (requested root: {root_path})")

        try:
            result = self.loader.load(root_path, deadline=deadline)
            graph = self.resolver.resolve(result.documents, load_errors=result.errors, root=root_path)

            if deadline is not None and time.monotonic() >= deadline:
                raise LoadTimeoutError(f"Refresh of {root_path} exceeded {timeout}s")

            self._snapshot = graph
        except LoadTimeoutError:
            metrics.increment("refresh_total", labels={"outcome": "timeout"})
            obs_logger.warn("refresh_timeout", root=str(root_path), timeout=timeout)
            raise
        except Exception as e:
            metrics.increment("refresh_total", labels={"outcome": "error"})
            obs_logger.error("refresh_failed", root=str(root_path), error=str(e))
            raise
        finally:
            self._refresh_lock.release()

        duration = time.monotonic() - start_time
        metrics.increment("refresh_total", labels={"outcome": "ok"})
        metrics.observe("refresh_duration_seconds", duration)
        obs_logger.info(
            "refresh_complete",
            root=str(root_path),
            documents=len(graph.documents),
            edges=len(graph.edges),
            diagnostics=len(graph.diagnostics),
            load_errors=len(graph.load_errors),
            duration_ms=round(duration * 1000, 2),
        )
        for diagnostic in graph.diagnostics:
            logger.info(f"[{diagnostic.kind.value}] {diagnostic.message}")
        for error in graph.load_errors:
            logger.warning(f"Load error in {error.path}: {error.reason}")

        return graph

    def _require_snapshot(self) -> ReferenceGraph:
        snapshot = self._snapshot
        if snapshot is None:
            raise NotReadyError("No snapshot loaded yet; call refresh() first")
        return snapshot

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_by_id(self, document_id: str) -> Document:
        """Get a document by id.

        Raises:
            NotFoundError: The id is not in the current snapshot
        """
        doc = self._require_snapshot().get(document_id)
        if doc is None:
            raise NotFoundError(document_id)
        return doc

    def list_by_category(self, category: Union[Category, str]) -> list[Document]:
        """All documents of a category, ordered by id.

        An unrecognized category name matches nothing and yields ``[]``.
        """
        snapshot = self._require_snapshot()
        try:
            category = Category(category)
        except ValueError:
            logger.debug(f"Unknown category requested: {category!r}")
            return []
        return sorted(
            (doc for doc in snapshot.documents if doc.category == category),
            key=lambda doc: doc.id,
        )

    def search(self, text: str) -> list[Document]:
        """Case-insensitive substring match on title and body, ordered by id."""
        snapshot = self._require_snapshot()
        needle = text.lower()
        matches = [
            doc for doc in snapshot.documents
            if needle in doc.body.lower() or (doc.title and needle in doc.title.lower())
        ]
        return sorted(matches, key=lambda doc: doc.id)

    def closure(self, document_id: str, max_depth: Optional[int] = None) -> set[Document]:
        """A document plus everything reachable over resolved references.

        Args:
            document_id: Starting document
            max_depth: Maximum hops to follow; None for no bound

        Raises:
            NotFoundError: The starting id is not in the current snapshot
            ValueError: max_depth is negative
        """
        if max_depth is not None and max_depth < 0:
            raise ValueError(f"max_depth must be >= 0, got {max_depth}")

        snapshot = self._require_snapshot()
        start = snapshot.get(document_id)
        if start is None:
            raise NotFoundError(document_id)

        visited = {document_id}
        queue = deque([(document_id, 0)])
        while queue:
            current, depth = queue.popleft()
            if max_depth is not None and depth >= max_depth:
                continue
            for target in snapshot.neighbours(current):
                if target not in visited:
                    visited.add(target)
                    queue.append((target, depth + 1))

        return {snapshot.get(doc_id) for doc_id in visited}

    def dependents(self, document_id: str) -> list[Document]:
        """Documents with a resolved reference to ``document_id``, ordered by id."""
        snapshot = self._require_snapshot()
        if document_id not in snapshot:
            raise NotFoundError(document_id)
        sources = {edge.source for edge in snapshot.incoming(document_id)}
        return sorted((snapshot.get(source) for source in sources), key=lambda doc: doc.id)

    def references_of(self, document_id: str) -> tuple[ReferenceEdge, ...]:
        """Outgoing edges of a document in reference order, unresolved included."""
        snapshot = self._require_snapshot()
        if document_id not in snapshot:
            raise NotFoundError(document_id)
        return snapshot.outgoing(document_id)

    @property
    def diagnostics(self) -> tuple[Diagnostic, ...]:
        return self._require_snapshot().diagnostics

    @property
    def load_errors(self) -> tuple[LoadError, ...]:
        return self._require_snapshot().load_errors

    def stats(self) -> dict[str, Any]:
        """Summary of the current snapshot (works while unloaded too)."""
        snapshot = self._snapshot
        if snapshot is None:
            return {"state": ServiceState.UNLOADED.value}

        by_category = {category.value: 0 for category in Category}
        for doc in snapshot.documents:
            by_category[doc.category.value] += 1

        return {
            "state": ServiceState.READY.value,
            "root": snapshot.root,
            "loaded_at": snapshot.loaded_at.isoformat(),
            "documents": len(snapshot.documents),
            "by_category": by_category,
            "edges": len(snapshot.edges),
            "dangling_references": len(snapshot.dangling()),
            "cycles": len(snapshot.cycles()),
            "load_errors": len(snapshot.load_errors),
        }


# Global singleton instance for sharing the snapshot across modules
_query_service: Optional[QueryService] = None
_service_lock = threading.Lock()


def get_query_service() -> QueryService:
    """Get or create the global QueryService singleton.

    The service is configured from settings but not loaded; callers run
    ``refresh()`` when they want the first snapshot.

    Returns:
        The shared QueryService instance
    """
    global _query_service

    with _service_lock:
        if _query_service is None:
            _query_service = QueryService(
                root=settings.resolve_path(settings.docs_root),
                extensions=settings.document_extensions,
                timeout=settings.refresh_timeout_seconds,
                wait=settings.refresh_wait,
            )
            logger.info(f"Query service initialized: root={settings.docs_root}")
    return _query_service
