"""Exception types raised by the loader, resolver and query service.

Per-file parse problems are not exceptions: they are collected as
``LoadError`` records. Dangling references and cycles are ``Diagnostic``
records on the graph.
"""


class DocumentRegistryError(Exception):
    """Base class for all registry errors."""
    pass


class DocumentSourceError(DocumentRegistryError, OSError):
    """Raised when the root is unreadable or a file vanishes mid-scan."""
    pass


class LoadTimeoutError(DocumentRegistryError, TimeoutError):
    """Raised when a load or refresh runs past its deadline."""
    pass


class NotFoundError(DocumentRegistryError, LookupError):
    """Raised when a document id is absent from the current snapshot."""

    def __init__(self, document_id: str):
        super().__init__(f"Document not found: {document_id}")
        self.document_id = document_id


class NotReadyError(DocumentRegistryError):
    """Raised by queries issued before the first successful refresh."""
    pass


class RefreshInProgressError(DocumentRegistryError):
    """Raised when a refresh is attempted while another is running."""
    pass
