"""Markdown document loader for agents, commands, skills and templates.

Walks a content root, turns every recognized markdown file under one of
the category directories into a ``Document`` and reports files that cannot
be parsed as ``LoadError`` records instead of aborting the load.
"""

import logging
import os
import posixpath
import re
import time
from pathlib import Path
from typing import Iterable, NamedTuple, Optional, Union

import frontmatter
import yaml

from ..errors import DocumentSourceError, LoadTimeoutError
from ..models import CATEGORY_DIRECTORIES, Category, Document, LoadError
from ..observability import get_logger, metrics

logger = logging.getLogger(__name__)

DEFAULT_EXTENSIONS: tuple[str, ...] = (".md",)

# First markdown heading of any level; a closing "#" run needs leading whitespace
HEADING_PATTERN = re.compile(r"^#{1,6}[ \t]+(.+?)(?:[ \t]+#+)?[ \t]*$", re.MULTILINE)

# Front-matter keys tried, in order, for the document title
TITLE_KEYS = ("title", "name")


class LoadResult(NamedTuple):
    """Documents parsed in enumeration order plus per-file errors."""

    documents: list[Document]
    errors: list[LoadError]


class _ParseFailure(Exception):
    """Internal signal that a single file could not be parsed."""

    def __init__(self, reason: str, code: str):
        super().__init__(reason)
        self.reason = reason
        self.code = code


def normalize_extensions(extensions: Iterable[str]) -> tuple[str, ...]:
    """Lower-case extensions and make sure each starts with a dot."""
    normalized = []
    for ext in extensions:
        ext = ext.strip().lower()
        if not ext:
            continue
        if not ext.startswith("."):
            ext = f".{ext}"
        if ext not in normalized:
            normalized.append(ext)
    if not normalized:
        raise ValueError("At least one document extension is required")
    # Longest first so ".markdown" is tried before ".md"
    return tuple(sorted(normalized, key=len, reverse=True))


def strip_extension(path: str, extensions: Iterable[str] = DEFAULT_EXTENSIONS) -> str:
    """Drop a recognized document extension (case-insensitive)."""
    lowered = path.lower()
    for ext in normalize_extensions(extensions):
        if lowered.endswith(ext):
            return path[: -len(ext)]
    return path


def normalize_id(relative_path: Union[str, Path], extensions: Iterable[str] = DEFAULT_EXTENSIONS) -> str:
    """Derive a document id from a path relative to the content root.

    ``skills\\testing\\SKILL.md`` and ``./skills/testing/SKILL.md`` both
    map to ``skills/testing/SKILL``.
    """
    if isinstance(relative_path, Path):
        relative_path = relative_path.as_posix()
    path = relative_path.replace("\\", "/")
    path = posixpath.normpath(strip_extension(path, extensions))
    return path.lstrip("/")


def normalize_reference(
    raw: str,
    source_id: Optional[str] = None,
    extensions: Iterable[str] = DEFAULT_EXTENSIONS,
) -> str:
    """Normalize a raw reference string into the document id space.

    References starting with ``./`` or ``../`` are taken relative to the
    directory of ``source_id``; everything else is root-relative.
    """
    ref = raw.strip().replace("\\", "/")
    if source_id is not None and ref.startswith(("./", "../")):
        ref = posixpath.join(posixpath.dirname(source_id), ref)
    return normalize_id(ref, extensions)


def build_reference_pattern(extensions: Iterable[str] = DEFAULT_EXTENSIONS) -> re.Pattern:
    """Compile the pattern for path-like tokens ending in a document extension.

    Matches bare paths, paths inside backticks, markdown link targets and
    ``@path`` mentions. Tokens glued to a URL scheme, another path segment
    or a ``user@host`` address are not matched.
    """
    alternatives = "|".join(re.escape(ext.lstrip(".")) for ext in normalize_extensions(extensions))
    return re.compile(
        r"(?:(?<![\w/.:@~-])|(?<=@)(?<![\w.-]@))"
        r"((?:\.{1,2}/)*[\w.-]+(?:/[\w.-]+)*\.(?i:" + alternatives + r"))"
        r"(?![\w/-])"
    )


def extract_references(body: str, pattern: Optional[re.Pattern] = None) -> list[str]:
    """Return reference-shaped tokens in order of appearance, duplicates kept."""
    pattern = pattern or build_reference_pattern()
    return [match.group(1) for match in pattern.finditer(body)]


def extract_title(body: str, header: dict) -> Optional[str]:
    """Title from front matter, else the first heading, else None."""
    for key in TITLE_KEYS:
        value = header.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()

    heading_match = HEADING_PATTERN.search(body)
    if heading_match:
        return heading_match.group(1).strip()
    return None


def _check_deadline(deadline: Optional[float], root: Path) -> None:
    if deadline is not None and time.monotonic() >= deadline:
        raise LoadTimeoutError(f"Load of {root} exceeded its deadline")


class DocumentLoader:
    """Loader for the agents/commands/skills/templates document tree."""

    def __init__(self, extensions: Optional[Iterable[str]] = None):
        """Initialize the document loader.

        Args:
            extensions: Recognized document suffixes. Defaults to ``.md``.
        """
        self.extensions = normalize_extensions(extensions or DEFAULT_EXTENSIONS)
        self.reference_pattern = build_reference_pattern(self.extensions)
        self._front_matter = frontmatter.YAMLHandler()

    def load(self, root: Union[str, Path], deadline: Optional[float] = None) -> LoadResult:
        """Load every document under ``root``.

        Args:
            root: Content root containing the category directories
            deadline: Absolute ``time.monotonic()`` value to stop at

        Returns:
            LoadResult with parsed documents and per-file errors

        Raises:
            DocumentSourceError: Root unreadable, or a file vanished mid-scan
            LoadTimeoutError: The deadline passed before the load finished
        """
        obs_logger = get_logger("loader")
        root_path = Path(root)

        if not root_path.is_dir():
            raise DocumentSourceError(f"Document root is not a directory: {root_path}")
        if not os.access(root_path, os.R_OK | os.X_OK):
            raise DocumentSourceError(f"Document root is not readable: {root_path}")

        candidates = self._discover(root_path)
        logger.info(f"Found {len(candidates)} document files under {root_path}")

        documents: list[Document] = []
        errors: list[LoadError] = []
        seen: dict[str, str] = {}

        for relative, category in candidates:
            _check_deadline(deadline, root_path)

            doc_id = normalize_id(relative, self.extensions)
            if doc_id in seen:
                reason = f"Duplicate document id '{doc_id}' (already loaded from {seen[doc_id]})"
                logger.warning(f"Skipping {relative}: {reason}")
                errors.append(LoadError(path=relative, reason=reason))
                metrics.increment("load_errors_total", labels={"reason": "duplicate_id"})
                continue

            try:
                document = self._load_file(root_path / relative, relative, doc_id, category)
            except _ParseFailure as e:
                logger.error(f"Error loading {relative}: {e.reason}")
                errors.append(LoadError(path=relative, reason=e.reason))
                metrics.increment("load_errors_total", labels={"reason": e.code})
                continue

            seen[doc_id] = relative
            documents.append(document)

        metrics.increment("documents_loaded_total", value=len(documents))
        obs_logger.info(
            "load_complete",
            root=str(root_path),
            documents=len(documents),
            errors=len(errors),
        )
        return LoadResult(documents=documents, errors=errors)

    def _discover(self, root: Path) -> list[tuple[str, Category]]:
        """List candidate files as (relative posix path, category), sorted by path."""
        found = []
        for path in root.rglob("*"):
            if not self._has_extension(path.name):
                continue
            if not path.is_file():
                continue

            relative = path.relative_to(root).as_posix()
            parts = relative.split("/")
            if len(parts) < 2:
                continue

            category = CATEGORY_DIRECTORIES.get(parts[0])
            if category is None:
                logger.debug(f"Skipping {relative}: outside the category directories")
                continue

            found.append((relative, category))

        found.sort(key=lambda item: item[0])
        return found

    def _has_extension(self, name: str) -> bool:
        lowered = name.lower()
        return any(lowered.endswith(ext) and len(lowered) > len(ext) for ext in self.extensions)

    def _load_file(self, file_path: Path, relative: str, doc_id: str, category: Category) -> Document:
        """Parse a single document file.

        Raises:
            _ParseFailure: The file is unreadable or malformed
            DocumentSourceError: The file disappeared after discovery
        """
        try:
            text = file_path.read_text(encoding="utf-8")
        except FileNotFoundError as e:
            raise DocumentSourceError(f"File disappeared during scan: {relative}") from e
        except UnicodeDecodeError as e:
            raise _ParseFailure(f"Not valid UTF-8: {e}", "invalid_encoding") from e
        except OSError as e:
            raise _ParseFailure(f"Unreadable file: {e}", "unreadable") from e

        header, body = self._split_front_matter(text)

        description = header.get("description")
        if description is not None and not isinstance(description, str):
            description = str(description)

        return Document(
            id=doc_id,
            category=category,
            body=body,
            path=relative,
            title=extract_title(body, header),
            description=description,
            references=tuple(extract_references(body, self.reference_pattern)),
            metadata=header,
        )

    def _split_front_matter(self, text: str) -> tuple[dict, str]:
        """Separate an optional ``---`` delimited YAML header from the body."""
        if not self._front_matter.detect(text):
            return {}, text

        try:
            header_text, body = self._front_matter.split(text)
        except ValueError:
            # Opening marker without a closing one: a horizontal rule, not a header
            return {}, text

        try:
            header = self._front_matter.load(header_text)
        except yaml.YAMLError as e:
            raise _ParseFailure(f"Invalid front matter: {e}", "invalid_front_matter") from e

        if header is None:
            header = {}
        if not isinstance(header, dict):
            raise _ParseFailure(
                f"Front matter must be a key/value mapping, got {type(header).__name__}",
                "invalid_front_matter",
            )
        return header, body.lstrip("\n")


def load(
    root: Union[str, Path],
    deadline: Optional[float] = None,
    extensions: Optional[Iterable[str]] = None,
) -> LoadResult:
    """Convenience wrapper around ``DocumentLoader(extensions).load(root)``."""
    return DocumentLoader(extensions).load(root, deadline=deadline)
