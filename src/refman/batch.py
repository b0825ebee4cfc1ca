"""Formatting of every entry in a BibTeX document through the AI formatter."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Protocol

from .exceptions import RefmanError
from .parser import parse_bib

logger = logging.getLogger(__name__)

DEFAULT_FORMAT_DELAY = 0.5


class EntryFormatter(Protocol):
    async def format_entry(self, raw_entry: str) -> str: ...


@dataclass
class BatchFormatResult:
    """Document text after batch formatting, with per-entry outcome."""

    content: str
    succeeded: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    cancelled: bool = False


async def format_all_entries(
    text: str,
    formatter: EntryFormatter,
    *,
    delay: float = DEFAULT_FORMAT_DELAY,
    cancel_event: asyncio.Event | None = None,
    on_progress: Callable[[int, int], None] | None = None,
) -> BatchFormatResult:
    """Replace each entry of ``text`` with its formatted version.

    Entries are formatted one at a time. An entry whose formatting fails is
    left untouched and recorded in ``failed``. On cancellation the entries
    already formatted stay formatted.

    Args:
        text: BibTeX document text
        formatter: Object providing ``format_entry(raw)``
        delay: Seconds to wait between requests
        cancel_event: Optional cancellation flag checked between entries
        on_progress: Optional callback receiving ``(index, total)``

    Returns:
        :class:`BatchFormatResult` with the updated content
    """
    entries = parse_bib(text).entries
    result = BatchFormatResult(content=text)
    total = len(entries)

    for index, entry in enumerate(entries, start=1):
        if cancel_event is not None and cancel_event.is_set():
            result.cancelled = True
            logger.info("Batch formatting cancelled after %d/%d entries", index - 1, total)
            break

        if on_progress:
            on_progress(index, total)

        try:
            formatted = await formatter.format_entry(entry.raw_text)
        except RefmanError as e:
            logger.warning("Formatting failed for %s: %s", entry.key, e)
            result.failed.append(entry.key)
        else:
            result.content = result.content.replace(entry.raw_text, formatted, 1)
            result.succeeded.append(entry.key)

        if index < total and delay > 0 and not (cancel_event and cancel_event.is_set()):
            await asyncio.sleep(delay)

    return result
