"""Type definitions for refman data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

KeepChoice = Literal["entry1", "entry2"]


@dataclass(frozen=True)
class Entry:
    """A single bibliographic record parsed from BibTeX text.

    ``raw_text`` is the verbatim source span from ``@`` through the closing
    brace; ``start_line`` and ``end_line`` are zero-based.
    """

    entry_type: str
    key: str
    fields: dict[str, str]
    raw_text: str
    start_line: int
    end_line: int


@dataclass
class ParseResult:
    """Entries found in a document plus non-fatal parse warnings."""

    entries: list[Entry] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class FieldSpan:
    """Position of one ``name =`` occurrence inside an entry body."""

    name: str
    name_start: int
    value_start: int


@dataclass(frozen=True, slots=True)
class DuplicateCheckResult:
    """Verdict returned by the duplicate classifier for one pair of entries."""

    is_duplicate: bool
    keep_entry: KeepChoice
    reason: str


@dataclass(frozen=True, slots=True)
class DuplicatePair:
    """Two entries judged to describe the same work."""

    entry1: Entry
    entry2: Entry
    keep_entry: KeepChoice
    reason: str

    @property
    def entry_to_keep(self) -> Entry:
        return self.entry1 if self.keep_entry == "entry1" else self.entry2

    @property
    def entry_to_delete(self) -> Entry:
        return self.entry2 if self.keep_entry == "entry1" else self.entry1


@dataclass(frozen=True, slots=True)
class UnusedEntry:
    """An entry whose key is not cited anywhere, with the file it lives in."""

    entry: Entry
    bib_path: Path
