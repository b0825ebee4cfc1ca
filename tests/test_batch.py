"""Tests for batch formatting of whole documents."""

from __future__ import annotations

import asyncio

from refman.batch import format_all_entries
from refman.exceptions import AIError, AIErrorKind
from refman.parser import parse_bib

DOCUMENT = """@article{first,
  title = {one}
}

Some prose between entries.

@article{second,
  title = {two}
}

@article{third,
  title = {three}
}
"""


class UppercaseFormatter:
    """Formatter that uppercases titles and fails for selected keys."""

    def __init__(self, failing: set[str] | None = None) -> None:
        self.failing = failing or set()
        self.seen: list[str] = []

    async def format_entry(self, raw_entry: str) -> str:
        self.seen.append(raw_entry)
        entry = parse_bib(raw_entry).entries[0]
        if entry.key in self.failing:
            raise AIError(AIErrorKind.API_ERROR, "service down", "Try again later")
        return f"@article{{{entry.key},\n  title = {{{entry.fields['title'].upper()}}}\n}}"


def test_format_all_entries_replaces_each_entry() -> None:
    formatter = UppercaseFormatter()

    result = asyncio.run(format_all_entries(DOCUMENT, formatter, delay=0))

    assert result.succeeded == ["first", "second", "third"]
    assert result.failed == []
    assert not result.cancelled
    assert "Some prose between entries." in result.content
    titles = [entry.fields["title"] for entry in parse_bib(result.content).entries]
    assert titles == ["ONE", "TWO", "THREE"]


def test_format_all_entries_records_failures_and_keeps_original() -> None:
    formatter = UppercaseFormatter(failing={"second"})

    result = asyncio.run(format_all_entries(DOCUMENT, formatter, delay=0))

    assert result.succeeded == ["first", "third"]
    assert result.failed == ["second"]
    assert "@article{second,\n  title = {two}\n}" in result.content
    assert "THREE" in result.content


def test_format_all_entries_stops_on_cancel() -> None:
    formatter = UppercaseFormatter()
    progress: list[tuple[int, int]] = []

    async def run() -> None:
        cancel_event = asyncio.Event()

        def on_progress(index: int, total: int) -> None:
            progress.append((index, total))
            cancel_event.set()

        result = await format_all_entries(
            DOCUMENT, formatter, delay=0, cancel_event=cancel_event, on_progress=on_progress
        )
        assert result.cancelled
        assert result.succeeded == ["first"]
        assert "ONE" in result.content
        assert "{two}" in result.content

    asyncio.run(run())

    assert progress == [(1, 3)]
    assert len(formatter.seen) == 1


def test_format_all_entries_without_entries() -> None:
    result = asyncio.run(format_all_entries("no entries", UppercaseFormatter(), delay=0))

    assert result.content == "no entries"
    assert result.succeeded == []
