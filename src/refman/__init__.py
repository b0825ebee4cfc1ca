"""Reference maintenance tools for BibTeX libraries and LaTeX projects."""

import logging

from .parser import (
    extract_keys_from_entries,
    find_entry_by_key,
    parse_bib,
    parse_single_entry,
)
from .scanner import extract_bibliography_files, extract_citation_keys, is_key_used
from .serialize import serialize_entry
from .types import Entry, ParseResult

# Install a NullHandler to avoid emitting logs unless the application configures logging
logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "Entry",
    "ParseResult",
    "extract_bibliography_files",
    "extract_citation_keys",
    "extract_keys_from_entries",
    "find_entry_by_key",
    "is_key_used",
    "parse_bib",
    "parse_single_entry",
    "serialize_entry",
]
