"""Discovery and reading of LaTeX and BibTeX documents in a workspace."""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable, Iterator
from pathlib import Path

from .config import DEFAULT_EXCLUDED_DIRS
from .detect import find_unused_entries, remove_entries
from .exceptions import FileOperationError
from .parser import parse_bib
from .scanner import extract_citation_keys
from .types import ParseResult, UnusedEntry

logger = logging.getLogger(__name__)

# Build directories created by the minted package
MINTED_PREFIX = "_minted"


def _is_excluded(path: Path, root: Path, excluded_dirs: frozenset[str], minted: bool) -> bool:
    parts = path.relative_to(root).parts[:-1]
    for part in parts:
        if part in excluded_dirs:
            return True
        if minted and part.startswith(MINTED_PREFIX):
            return True
    return False


def _find_files(
    root: Path, pattern: str, excluded_dirs: frozenset[str], minted: bool
) -> list[Path]:
    if not root.is_dir():
        raise FileOperationError(f"Workspace directory not found: {root}")

    found = [
        path
        for path in root.rglob(pattern)
        if path.is_file() and not _is_excluded(path, root, excluded_dirs, minted)
    ]
    logger.debug("Found %d %s files under %s", len(found), pattern, root)
    return sorted(found)


def find_tex_files(
    root: Path, excluded_dirs: frozenset[str] = DEFAULT_EXCLUDED_DIRS
) -> list[Path]:
    """Find all ``.tex`` files below ``root``, skipping build and vendor directories."""
    return _find_files(root, "*.tex", excluded_dirs, minted=True)


def find_bib_files(
    root: Path, excluded_dirs: frozenset[str] = DEFAULT_EXCLUDED_DIRS
) -> list[Path]:
    """Find all ``.bib`` files below ``root``, skipping build and vendor directories."""
    return _find_files(root, "*.bib", excluded_dirs, minted=False)


def read_document(path: Path) -> str:
    """Read a document as UTF-8 text.

    Raises:
        FileOperationError: If the file cannot be read
    """
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise FileOperationError(f"Failed to read {path}: {e}") from e


def write_document(path: Path, text: str) -> None:
    """Write a document as UTF-8 text.

    Raises:
        FileOperationError: If the file cannot be written
    """
    try:
        with open(path, "w", encoding="utf-8") as f:
            f.write(text)
    except OSError as e:
        raise FileOperationError(f"Failed to write {path}: {e}") from e


def scan_workspace_for_citations(
    root: Path, excluded_dirs: frozenset[str] = DEFAULT_EXCLUDED_DIRS
) -> set[str]:
    """Collect the citation keys used in every ``.tex`` file of the workspace.

    Files that cannot be read are logged and skipped.
    """
    used_keys: set[str] = set()

    for tex_path in find_tex_files(root, excluded_dirs):
        try:
            text = read_document(tex_path)
        except FileOperationError as e:
            logger.warning("Skipping unreadable file: %s", e)
            continue
        keys = extract_citation_keys(text)
        logger.debug("%s cites %d keys", tex_path.name, len(keys))
        used_keys.update(keys)

    logger.info("Found %d cited keys in workspace", len(used_keys))
    return used_keys


def _parse_bib_files(
    root: Path, excluded_dirs: frozenset[str]
) -> Iterator[tuple[Path, ParseResult]]:
    for bib_path in find_bib_files(root, excluded_dirs):
        try:
            text = read_document(bib_path)
        except FileOperationError as e:
            logger.warning("Skipping unreadable file: %s", e)
            continue
        yield bib_path, parse_bib(text)


def load_workspace_entries(
    root: Path, excluded_dirs: frozenset[str] = DEFAULT_EXCLUDED_DIRS
) -> tuple[list[UnusedEntry], list[str]]:
    """Parse every ``.bib`` file of the workspace.

    Returns:
        Tuple of (entries paired with their file, parse warnings prefixed by file name)
    """
    located: list[UnusedEntry] = []
    warnings: list[str] = []

    for bib_path, result in _parse_bib_files(root, excluded_dirs):
        located.extend(UnusedEntry(entry=entry, bib_path=bib_path) for entry in result.entries)
        warnings.extend(f"{bib_path.name}: {warning}" for warning in result.warnings)

    logger.info("Loaded %d entries from workspace", len(located))
    return located, warnings


def find_unused_in_workspace(
    root: Path,
    used_keys: Iterable[str],
    excluded_dirs: frozenset[str] = DEFAULT_EXCLUDED_DIRS,
    case_sensitive: bool = True,
) -> list[UnusedEntry]:
    """Find the entries of every ``.bib`` file whose key is never cited.

    Args:
        root: Workspace root
        used_keys: Keys cited anywhere in the workspace
        excluded_dirs: Directory names to skip
        case_sensitive: When ``False``, keys match regardless of case

    Returns:
        Unused entries paired with their file, in file and document order
    """
    used = set(used_keys)
    unused: list[UnusedEntry] = []

    for bib_path, result in _parse_bib_files(root, excluded_dirs):
        for entry in find_unused_entries(used, result.entries, case_sensitive):
            unused.append(UnusedEntry(entry=entry, bib_path=bib_path))

    logger.info("Found %d unused entries", len(unused))
    return unused


def delete_entries_from_files(items: list[UnusedEntry]) -> int:
    """Remove entries from their files, rewriting each affected file once.

    Returns:
        Number of entries removed
    """
    by_file: dict[Path, list[UnusedEntry]] = defaultdict(list)
    for item in items:
        by_file[item.bib_path].append(item)

    deleted = 0
    for bib_path, file_items in by_file.items():
        text = read_document(bib_path)
        updated, removed = remove_entries(text, [item.entry for item in file_items])
        write_document(bib_path, updated)
        deleted += removed
        logger.info("Removed %d entries from %s", removed, bib_path)

    return deleted
