"""Parsing of BibTeX documents into :class:`~refman.types.Entry` values.

The parser is deliberately lenient: it locates ``@type{key,`` headers, finds the
closing brace of each entry with a depth-aware matcher and splits the body into
fields. Malformed entries are skipped and reported as warnings instead of
aborting the whole document.
"""

from __future__ import annotations

import logging
import re

from .types import Entry, FieldSpan, ParseResult

logger = logging.getLogger(__name__)

# @type{key,  (type is case-insensitive, key is any run without commas/whitespace)
ENTRY_HEADER_PATTERN = re.compile(r"@(\w+)\s*\{\s*([^,\s]+)\s*,")

# fieldname =
FIELD_NAME_PATTERN = re.compile(r"(\w+)\s*=\s*")

_TRAILING_COMMA = re.compile(r",\s*$")
_TRAILING_BARE_JUNK = re.compile(r"[,}\s]+$")
_WHITESPACE_RUN = re.compile(r"\s+")


def find_matching_brace(text: str, open_index: int) -> int:
    """Find the ``}`` closing the ``{`` at ``open_index``.

    A backslash skips the character that follows it, so ``\\{`` and ``\\}`` do
    not change the nesting depth.

    Args:
        text: Text to scan
        open_index: Index of the opening brace

    Returns:
        Index of the matching closing brace, or ``-1`` if the braces are unbalanced
    """
    depth = 1
    pos = open_index + 1
    length = len(text)

    while pos < length and depth > 0:
        char = text[pos]

        if char == "\\" and pos + 1 < length:
            pos += 2
            continue

        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1

        pos += 1

    return pos - 1 if depth == 0 else -1


def clean_field_value(value: str) -> str:
    """Collapse newlines and whitespace runs into single spaces and trim."""
    return _WHITESPACE_RUN.sub(" ", value.replace("\n", " ")).strip()


def extract_field_value(value_text: str) -> str | None:
    """Extract the value of a field from the text following its ``=``.

    Braced values are matched depth-aware, quoted values end at the next double
    quote (escaped quotes are not recognised) and anything else is treated as a
    bare token such as a number.

    Args:
        value_text: Raw value text, possibly ending with the separating comma

    Returns:
        Cleaned value, or ``None`` if nothing remains after cleaning
    """
    text = _TRAILING_COMMA.sub("", value_text.strip()).strip()
    if not text:
        return None

    if text.startswith("{"):
        end = find_matching_brace(text, 0)
        if end != -1:
            return clean_field_value(text[1:end]) or None

    if text.startswith('"'):
        end = text.find('"', 1)
        if end != -1:
            return clean_field_value(text[1:end]) or None

    text = _TRAILING_BARE_JUNK.sub("", text)
    return clean_field_value(text) or None


def _value_end(body: str, value_start: int) -> int:
    """Return the index just past a delimited value, or ``value_start`` for bare values."""
    if value_start >= len(body):
        return value_start

    opener = body[value_start]
    if opener == "{":
        end = find_matching_brace(body, value_start)
        return end + 1 if end != -1 else value_start
    if opener == '"':
        end = body.find('"', value_start + 1)
        return end + 1 if end != -1 else value_start
    return value_start


def split_fields(body: str) -> list[FieldSpan]:
    """Locate every ``name =`` occurrence that starts a field in an entry body.

    Occurrences that fall inside the braced or quoted value of a preceding field
    (for example ``?id=5`` inside a URL) are not treated as field starts.

    Args:
        body: Entry text between the key's comma and the closing brace

    Returns:
        Field spans in document order
    """
    spans: list[FieldSpan] = []
    skip_until = 0

    for match in FIELD_NAME_PATTERN.finditer(body):
        if match.start() < skip_until:
            continue

        span = FieldSpan(
            name=match.group(1).lower(),
            name_start=match.start(),
            value_start=match.end(),
        )
        spans.append(span)
        skip_until = _value_end(body, span.value_start)

    return spans


def parse_fields(body: str) -> dict[str, str]:
    """Parse the field assignments of an entry body.

    Each value runs from its own start to the name of the next field (or the
    end of the body). Later occurrences of a field name overwrite earlier ones.
    """
    fields: dict[str, str] = {}
    spans = split_fields(body)

    for index, span in enumerate(spans):
        value_end = spans[index + 1].name_start if index + 1 < len(spans) else len(body)
        value = extract_field_value(body[span.value_start : value_end])
        if value is not None:
            fields[span.name] = value

    return fields


def parse_bib(text: str) -> ParseResult:
    """Parse every entry in a BibTeX document.

    Args:
        text: Full document text

    Returns:
        :class:`ParseResult` with the entries in document order and a warning
        for each entry that had to be skipped
    """
    result = ParseResult()
    pos = 0

    while True:
        match = ENTRY_HEADER_PATTERN.search(text, pos)
        if match is None:
            break

        entry_type = match.group(1).lower()
        key = match.group(2)
        start = match.start()
        open_brace = text.index("{", start)

        end = find_matching_brace(text, open_brace)
        if end == -1:
            warning = f'Entry "{key}": unbalanced braces, skipped'
            logger.warning(warning)
            result.warnings.append(warning)
            pos = match.end()
            continue

        body = text[match.end() : end]
        entry = Entry(
            entry_type=entry_type,
            key=key,
            fields=parse_fields(body),
            raw_text=text[start : end + 1],
            start_line=text.count("\n", 0, start),
            end_line=text.count("\n", 0, end),
        )
        result.entries.append(entry)
        pos = end + 1

    logger.debug(
        "Parsed %d entries (%d warnings)", len(result.entries), len(result.warnings)
    )
    return result


def parse_single_entry(text: str) -> Entry | None:
    """Parse ``text`` and return its first entry, if any."""
    result = parse_bib(text)
    return result.entries[0] if result.entries else None


def find_entry_by_key(entries: list[Entry], key: str) -> Entry | None:
    """Return the first entry whose key is exactly ``key``."""
    return next((entry for entry in entries if entry.key == key), None)


def extract_keys_from_entries(entries: list[Entry]) -> list[str]:
    return [entry.key for entry in entries]
