"""Rendering of :class:`~refman.types.Entry` values as canonical BibTeX text."""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from .types import Entry

# Fields listed first, in this order, when present
FIELD_ORDER = [
    "author",
    "title",
    "journal",
    "booktitle",
    "year",
    "volume",
    "number",
    "pages",
    "doi",
    "url",
    "publisher",
    "address",
    "month",
    "note",
    "abstract",
]


def order_fields(
    fields: Mapping[str, str], preferred: Iterable[str] = FIELD_ORDER
) -> list[tuple[str, str]]:
    """Order fields with the preferred names first, then the rest as encountered.

    Fields whose value is empty are dropped.

    Args:
        fields: Field name to value mapping
        preferred: Field names to place first, in order

    Returns:
        List of ``(name, value)`` pairs
    """
    names = dict.fromkeys([*preferred, *fields])
    return [(name, fields[name]) for name in names if fields.get(name)]


def serialize_entry(entry: Entry, indent: str = "  ") -> str:
    """Render an entry as BibTeX text.

    Example output::

        @article{einstein1905,
          author = {Einstein, Albert},
          title = {On the Electrodynamics of Moving Bodies},
          year = {1905}
        }

    Args:
        entry: Entry to render
        indent: Prefix for each field line

    Returns:
        BibTeX text without a trailing newline
    """
    field_lines = [f"{indent}{name} = {{{value}}}" for name, value in order_fields(entry.fields)]
    return "\n".join([f"@{entry.entry_type}{{{entry.key},", ",\n".join(field_lines), "}"])
