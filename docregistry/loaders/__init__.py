"""Loaders for markdown document trees."""

from .document_loader import (
    DEFAULT_EXTENSIONS,
    DocumentLoader,
    LoadResult,
    build_reference_pattern,
    extract_references,
    extract_title,
    load,
    normalize_extensions,
    normalize_id,
    normalize_reference,
    strip_extension,
)

__all__ = [
    "DEFAULT_EXTENSIONS",
    "DocumentLoader",
    "LoadResult",
    "build_reference_pattern",
    "extract_references",
    "extract_title",
    "load",
    "normalize_extensions",
    "normalize_id",
    "normalize_reference",
    "strip_extension",
]
