"""Offline, rule-based normalization of a single BibTeX entry."""

from __future__ import annotations

import logging
from dataclasses import replace

from .parser import parse_single_entry
from .serialize import FIELD_ORDER, serialize_entry

logger = logging.getLogger(__name__)

# Common misspellings of standard field names
FIELD_TYPOS = {
    "autor": "author",
    "authr": "author",
    "authro": "author",
    "titl": "title",
    "titel": "title",
    "tilte": "title",
    "journl": "journal",
    "jounral": "journal",
    "jounal": "journal",
    "publihser": "publisher",
    "pubisher": "publisher",
    "publishr": "publisher",
    "yer": "year",
    "yaer": "year",
    "yera": "year",
    "volum": "volume",
    "vlume": "volume",
    "numbr": "number",
    "nubmer": "number",
    "pags": "pages",
    "pagse": "pages",
    "abstact": "abstract",
    "abstrac": "abstract",
    "keywrods": "keywords",
    "keywods": "keywords",
}


def fix_field_typos(fields: dict[str, str]) -> dict[str, str]:
    """Rename misspelled field names, keeping the original order."""
    fixed: dict[str, str] = {}
    for name, value in fields.items():
        corrected = FIELD_TYPOS.get(name, name)
        if corrected != name:
            logger.debug("Renamed field %s -> %s", name, corrected)
        fixed[corrected] = value
    return fixed


def sort_fields(fields: dict[str, str]) -> dict[str, str]:
    """Order fields by the standard order, remaining fields alphabetically."""
    ordered = {name: fields[name] for name in FIELD_ORDER if name in fields}
    for name in sorted(fields):
        if name not in ordered:
            ordered[name] = fields[name]
    return ordered


def format_entry_local(text: str) -> str:
    """Normalize a BibTeX entry without calling any external service.

    Misspelled field names are corrected, fields are reordered and whitespace
    inside values is collapsed. Text without a recognizable entry header is
    returned unchanged.

    Args:
        text: Raw text of a single entry

    Returns:
        Normalized entry text
    """
    entry = parse_single_entry(text)
    if entry is None:
        logger.info("No BibTeX entry found, leaving text unchanged")
        return text

    normalized = replace(entry, fields=sort_fields(fix_field_typos(entry.fields)))
    return serialize_entry(normalized)
