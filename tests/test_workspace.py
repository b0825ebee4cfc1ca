"""Tests for workspace document discovery."""

from __future__ import annotations

from pathlib import Path

import pytest

from refman.exceptions import FileOperationError
from refman.workspace import (
    delete_entries_from_files,
    find_bib_files,
    find_tex_files,
    find_unused_in_workspace,
    load_workspace_entries,
    read_document,
    scan_workspace_for_citations,
    write_document,
)

REFS = """@article{used2020,
  title = {Cited}
}

@article{unused2019,
  title = {Never Cited}
}

@book{Mixed2018,
  title = {Cited With Other Case}
}
"""


def _write(path: Path, content: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    _write(tmp_path / "main.tex", r"\documentclass{article} \cite{used2020} \input{chapters/one}")
    _write(tmp_path / "chapters" / "one.tex", r"\citep[p.~1]{mixed2018}")
    _write(tmp_path / "refs.bib", REFS)
    _write(tmp_path / "node_modules" / "pkg" / "skip.tex", r"\cite{unused2019}")
    _write(tmp_path / "build" / "copy.bib", "@misc{buildcopy,\n  title = {X}\n}\n")
    _write(tmp_path / "_minted-main" / "cache.tex", r"\cite{unused2019}")
    _write(tmp_path / ".git" / "old.bib", "@misc{gitcopy,\n  title = {X}\n}\n")
    return tmp_path


def test_find_files_skips_excluded_directories(workspace: Path) -> None:
    assert find_tex_files(workspace) == [workspace / "chapters" / "one.tex", workspace / "main.tex"]
    assert find_bib_files(workspace) == [workspace / "refs.bib"]


def test_find_files_custom_exclusions(workspace: Path) -> None:
    bib_files = find_bib_files(workspace, excluded_dirs=frozenset({"node_modules"}))

    assert workspace / "build" / "copy.bib" in bib_files
    assert workspace / ".git" / "old.bib" in bib_files


def test_find_files_missing_root(tmp_path: Path) -> None:
    with pytest.raises(FileOperationError):
        find_tex_files(tmp_path / "nowhere")


def test_read_and_write_document(tmp_path: Path) -> None:
    path = tmp_path / "refs.bib"

    write_document(path, "@misc{ü,\n}\n")

    assert read_document(path) == "@misc{ü,\n}\n"
    with pytest.raises(FileOperationError):
        read_document(tmp_path / "missing.bib")


def test_scan_workspace_for_citations(workspace: Path) -> None:
    assert scan_workspace_for_citations(workspace) == {"used2020", "mixed2018"}


def test_load_workspace_entries_reports_warnings(workspace: Path) -> None:
    _write(workspace / "broken.bib", "@article{broken,\n  title = {Unclosed\n")

    located, warnings = load_workspace_entries(workspace)

    assert [item.entry.key for item in located] == ["used2020", "unused2019", "Mixed2018"]
    assert all(item.bib_path == workspace / "refs.bib" for item in located)
    assert warnings == ['broken.bib: Entry "broken": unbalanced braces, skipped']


def test_find_unused_in_workspace(workspace: Path) -> None:
    used = scan_workspace_for_citations(workspace)

    strict = find_unused_in_workspace(workspace, used)
    relaxed = find_unused_in_workspace(workspace, used, case_sensitive=False)

    assert [item.entry.key for item in strict] == ["unused2019", "Mixed2018"]
    assert [item.entry.key for item in relaxed] == ["unused2019"]


def test_delete_entries_from_files(workspace: Path) -> None:
    other = _write(workspace / "more.bib", "@misc{extra,\n  title = {E}\n}\n\n@misc{keep,\n}\n")
    located, _ = load_workspace_entries(workspace)
    doomed = [item for item in located if item.entry.key in {"unused2019", "extra"}]
    assert {item.bib_path for item in doomed} == {workspace / "refs.bib", other}

    deleted = delete_entries_from_files(doomed)

    assert deleted == 2
    refs = read_document(workspace / "refs.bib")
    assert "unused2019" not in refs
    assert "used2020" in refs and "Mixed2018" in refs
    assert "\n\n\n" not in refs
    assert read_document(other).startswith("\n\n@misc{keep,")


def test_delete_entries_from_files_nothing_to_do() -> None:
    assert delete_entries_from_files([]) == 0


def test_delete_entries_from_files_counts_only_removed(workspace: Path) -> None:
    located, _ = load_workspace_entries(workspace)
    doomed = [item for item in located if item.entry.key in {"unused2019", "Mixed2018"}]
    refs = workspace / "refs.bib"
    edited = read_document(refs).replace("title = {Never Cited}", "title = {Edited}")
    write_document(refs, edited)

    deleted = delete_entries_from_files(doomed)

    assert deleted == 1
    text = read_document(refs)
    assert "unused2019" in text
    assert "Mixed2018" not in text
