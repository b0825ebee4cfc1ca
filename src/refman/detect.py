"""Detection of unused and duplicate entries, and their removal from documents."""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Protocol

from .exceptions import RefmanError
from .scanner import is_key_used
from .types import DuplicateCheckResult, DuplicatePair, Entry

logger = logging.getLogger(__name__)

# Pause between classifier calls to stay within provider rate limits
DEFAULT_PAIR_DELAY = 0.5

_EXCESS_BLANK_LINES = re.compile(r"\n{3,}")


class DuplicateClassifier(Protocol):
    async def check_duplicate(self, entry1: str, entry2: str) -> DuplicateCheckResult: ...


@dataclass
class DuplicateScan:
    """Outcome of a pairwise duplicate scan.

    ``failed_pairs`` holds the key pairs whose classification failed; they are
    skipped, not retried. ``cancelled`` is set when the scan stopped early.
    """

    pairs: list[DuplicatePair] = field(default_factory=list)
    failed_pairs: list[tuple[str, str]] = field(default_factory=list)
    checked: int = 0
    total: int = 0
    cancelled: bool = False


def find_unused_entries(
    used_keys: Iterable[str], entries: Iterable[Entry], case_sensitive: bool = True
) -> list[Entry]:
    """Return the entries whose key is not among ``used_keys``.

    Args:
        used_keys: Keys collected from citation commands
        entries: Parsed bibliography entries
        case_sensitive: When ``False``, keys match regardless of case

    Returns:
        Unused entries in their original order
    """
    used = set(used_keys)
    return [entry for entry in entries if not is_key_used(entry.key, used, case_sensitive)]


def count_pairs(count: int) -> int:
    return count * (count - 1) // 2


async def find_duplicates(
    entries: list[Entry],
    classifier: DuplicateClassifier,
    *,
    delay: float = DEFAULT_PAIR_DELAY,
    cancel_event: asyncio.Event | None = None,
    on_progress: Callable[[int, int], None] | None = None,
) -> DuplicateScan:
    """Classify every unordered pair of entries, one request at a time.

    A failed classification is logged and skipped. When ``cancel_event`` is
    set, the scan stops after the request in flight and returns what it has.

    Args:
        entries: Entries from a single document
        classifier: Object providing ``check_duplicate(raw1, raw2)``
        delay: Seconds to wait between classifier calls
        cancel_event: Optional cancellation flag checked between pairs
        on_progress: Optional callback receiving ``(checked, total)``

    Returns:
        :class:`DuplicateScan` with the pairs judged to be duplicates
    """
    scan = DuplicateScan(total=count_pairs(len(entries)))
    logger.info("Checking %d entry pairs for duplicates", scan.total)

    for i, entry1 in enumerate(entries):
        for entry2 in entries[i + 1 :]:
            if cancel_event is not None and cancel_event.is_set():
                scan.cancelled = True
                logger.info("Duplicate scan cancelled after %d/%d pairs", scan.checked, scan.total)
                return scan

            if scan.checked and delay > 0:
                await asyncio.sleep(delay)

            try:
                verdict = await classifier.check_duplicate(entry1.raw_text, entry2.raw_text)
            except RefmanError as e:
                logger.warning("Comparison failed: %s vs %s: %s", entry1.key, entry2.key, e)
                scan.failed_pairs.append((entry1.key, entry2.key))
            else:
                if verdict.is_duplicate:
                    logger.debug("Duplicate: %s / %s (%s)", entry1.key, entry2.key, verdict.reason)
                    scan.pairs.append(
                        DuplicatePair(
                            entry1=entry1,
                            entry2=entry2,
                            keep_entry=verdict.keep_entry,
                            reason=verdict.reason,
                        )
                    )

            scan.checked += 1
            if on_progress:
                on_progress(scan.checked, scan.total)

    return scan


def entries_to_delete(pairs: Iterable[DuplicatePair]) -> list[Entry]:
    """Return the entry each pair does not keep, each entry at most once."""
    seen: set[tuple[int, str]] = set()
    doomed: list[Entry] = []
    for pair in pairs:
        entry = pair.entry_to_delete
        marker = (entry.start_line, entry.key)
        if marker not in seen:
            seen.add(marker)
            doomed.append(entry)
    return doomed


def remove_entries(text: str, entries: Iterable[Entry]) -> tuple[str, int]:
    """Remove entries from a document by their raw text.

    Entries are removed bottom-up by start line, each removing the first literal
    occurrence of its ``raw_text``; afterwards runs of three or more newlines
    collapse to a single blank line.

    Args:
        text: Document text
        entries: Entries to remove

    Returns:
        Updated document text and the number of entries actually removed;
        entries whose raw text is not in the document are skipped
    """
    removed = 0
    for entry in sorted(entries, key=lambda e: e.start_line, reverse=True):
        if entry.raw_text not in text:
            logger.warning("Entry %s not found in document, not removed", entry.key)
            continue
        text = text.replace(entry.raw_text, "", 1)
        removed += 1

    return _EXCESS_BLANK_LINES.sub("\n\n", text), removed


def describe_entry(entry: Entry, max_title_length: int = 50) -> str:
    """Short ``Author - "Title"`` description of an entry for reports."""
    author = entry.fields.get("author", "Unknown author")
    title = entry.fields.get("title", "Untitled")
    if len(title) > max_title_length:
        title = title[:max_title_length] + "..."
    return f'{author} - "{title}"'
