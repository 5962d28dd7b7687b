"""Reference resolution over a loaded document set.

Turns every raw reference of every document into a ``ReferenceEdge`` and
records structural findings (dangling references, cycles) as diagnostics.
Nothing found here is fatal: documentation is allowed to point outside the
loaded set and to reference itself.
"""

import logging
from pathlib import Path
from typing import Iterable, Optional, Union

from .loaders.document_loader import DEFAULT_EXTENSIONS, normalize_extensions, normalize_reference
from .models import (
    UNRESOLVED,
    Diagnostic,
    DiagnosticKind,
    Document,
    LoadError,
    ReferenceEdge,
    ReferenceGraph,
)
from .observability import get_logger, metrics

logger = logging.getLogger(__name__)

# DFS colours
_WHITE, _GREY, _BLACK = 0, 1, 2


class ReferenceResolver:
    """Builds a ReferenceGraph from loaded documents."""

    def __init__(self, extensions: Optional[Iterable[str]] = None):
        self.extensions = normalize_extensions(extensions or DEFAULT_EXTENSIONS)

    def resolve(
        self,
        documents: Iterable[Document],
        load_errors: Iterable[LoadError] = (),
        root: Optional[Union[str, Path]] = None,
    ) -> ReferenceGraph:
        """Resolve references and build an immutable graph.

        Args:
            documents: Documents in their stable load order
            load_errors: Per-file errors to carry on the snapshot
            root: Content root the documents came from

        Returns:
            ReferenceGraph with one edge per raw reference
        """
        documents = list(documents)
        known_ids = {doc.id for doc in documents}

        edges: list[ReferenceEdge] = []
        diagnostics: list[Diagnostic] = []

        for doc in documents:
            for raw in doc.references:
                target_id = normalize_reference(raw, doc.id, self.extensions)
                if target_id in known_ids:
                    edges.append(ReferenceEdge(source=doc.id, target=target_id, raw=raw))
                    continue

                edges.append(ReferenceEdge(source=doc.id, target=UNRESOLVED, raw=raw))
                diagnostics.append(Diagnostic(
                    kind=DiagnosticKind.DANGLING_REFERENCE,
                    document_id=doc.id,
                    message=f"{doc.id} references {raw}, which is not a loaded document",
                    raw=raw,
                ))

        dangling_count = len(diagnostics)
        cycles = find_cycles([doc.id for doc in documents], edges)
        for cycle in cycles:
            diagnostics.append(Diagnostic(
                kind=DiagnosticKind.CYCLE,
                document_id=cycle[0],
                message="Reference cycle: " + " -> ".join(cycle),
                cycle=cycle,
            ))

        if dangling_count:
            metrics.increment("dangling_references_total", value=dangling_count)
        if cycles:
            metrics.increment("reference_cycles_total", value=len(cycles))

        logger.debug(f"Resolved {len(edges)} references across {len(documents)} documents")
        get_logger("resolver").info(
            "resolve_complete",
            documents=len(documents),
            edges=len(edges),
            dangling=dangling_count,
            cycles=len(cycles),
        )

        return ReferenceGraph(
            documents=documents,
            edges=edges,
            diagnostics=diagnostics,
            load_errors=load_errors,
            root=str(root) if root is not None else None,
        )


def find_cycles(node_ids: list[str], edges: Iterable[ReferenceEdge]) -> list[tuple[str, ...]]:
    """Find cycles in the resolved subgraph with a coloured depth-first walk.

    Each back edge yields one cycle, reported closed (first id repeated at
    the end). The walk is iterative so deep reference chains cannot hit the
    recursion limit. Traversal order follows ``node_ids`` then edge order,
    which keeps the output deterministic.
    """
    adjacency: dict[str, list[str]] = {node_id: [] for node_id in node_ids}
    for edge in edges:
        if not edge.resolved or edge.source not in adjacency:
            continue
        targets = adjacency[edge.source]
        if edge.target not in targets:
            targets.append(edge.target)

    colour = {node_id: _WHITE for node_id in node_ids}
    cycles: list[tuple[str, ...]] = []

    for start in node_ids:
        if colour[start] != _WHITE:
            continue

        path: list[str] = [start]
        stack = [(start, iter(adjacency[start]))]
        colour[start] = _GREY

        while stack:
            node, children = stack[-1]
            advanced = False
            for child in children:
                state = colour.get(child, _BLACK)
                if state == _GREY:
                    cycle_start = path.index(child)
                    cycles.append(tuple(path[cycle_start:]) + (child,))
                elif state == _WHITE:
                    colour[child] = _GREY
                    path.append(child)
                    stack.append((child, iter(adjacency[child])))
                    advanced = True
                    break
            if not advanced:
                colour[node] = _BLACK
                path.pop()
                stack.pop()

    return cycles


def resolve(
    documents: Iterable[Document],
    load_errors: Iterable[LoadError] = (),
    root: Optional[Union[str, Path]] = None,
    extensions: Optional[Iterable[str]] = None,
) -> ReferenceGraph:
    """Convenience wrapper around ``ReferenceResolver(extensions).resolve``."""
    return ReferenceResolver(extensions).resolve(documents, load_errors=load_errors, root=root)
