"""
Pytest configuration and fixtures for docregistry tests.

This conftest.py handles:
- Building throwaway content trees under tmp_path
- Resetting global metrics between tests
"""

import textwrap
from pathlib import Path

import pytest

from docregistry.observability import metrics


@pytest.fixture(autouse=True)
def reset_metrics():
    """Start every test from zeroed counters."""
    metrics.reset_all()
    yield
    metrics.reset_all()


@pytest.fixture
def write_tree(tmp_path):
    """Return a helper that writes {relative_path: text} under a root.

    Text is dedented so fixtures can be written inline. Returns the root.
    """

    def _write(files: dict, root: Path = None) -> Path:
        root = root or tmp_path / "content"
        root.mkdir(parents=True, exist_ok=True)
        for relative, text in files.items():
            path = root / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            if isinstance(text, bytes):
                path.write_bytes(text)
            else:
                path.write_text(textwrap.dedent(text), encoding="utf-8")
        return root

    return _write


@pytest.fixture
def sample_tree(write_tree):
    """A small tree shaped like an agent-guidance repository."""
    return write_tree({
        "skills/testing/SKILL.md": """\
            ---
            name: testing
            description: How to write tests
            ---

            # Testing Skill

            Write the failing test first.
            """,
        "skills/debugging/SKILL.md": """\
            # Debugging Skill

            Reproduce, then bisect. Pair with `skills/testing/SKILL.md`.
            """,
        "commands/bugfix.md": """\
            # Bugfix

            Load `skills/debugging/SKILL.md` and then skills/testing/SKILL.md.
            """,
        "agents/reviewer.md": """\
            ---
            title: Code Reviewer
            ---
            Check [the command](commands/bugfix.md) and skills/missing/SKILL.md.
            """,
        "templates/fastapi/README.md": """\
            ## FastAPI template

            No references here.
            """,
        "docs/ignored.md": "# Not a category\n",
        "README.md": "# Root readme\n",
    })
