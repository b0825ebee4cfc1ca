"""Extraction of citation keys and bibliography references from LaTeX sources."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable

logger = logging.getLogger(__name__)

# Standard, natbib and biblatex citation commands
CITATION_COMMANDS = [
    "cite",
    "citep",
    "citet",
    "citeauthor",
    "citeyear",
    "citealt",
    "citealp",
    "citenum",
    "citep*",
    "citet*",
    "Cite",
    "Citep",
    "Citet",
    "parencite",
    "textcite",
    "autocite",
    "footcite",
    "fullcite",
    "nocite",
]

# \command[opt][opt]{key1,key2}; matched case-insensitively so \CITE counts too
CITATION_PATTERN = re.compile(
    r"\\(" + "|".join(re.escape(cmd) for cmd in CITATION_COMMANDS) + r")(?:\[[^\]]*\])*\{([^}]+)\}",
    re.IGNORECASE,
)

BIBLIOGRAPHY_PATTERN = re.compile(r"\\bibliography\{([^}]+)\}", re.IGNORECASE)
ADDBIBRESOURCE_PATTERN = re.compile(r"\\addbibresource\{([^}]+)\}", re.IGNORECASE)
_BIB_SUFFIX = re.compile(r"\.bib$", re.IGNORECASE)


def extract_citation_keys(text: str) -> list[str]:
    """Extract every key cited in a LaTeX document.

    Args:
        text: LaTeX source

    Returns:
        Cited keys in first-seen order, without duplicates

    Example:
        >>> extract_citation_keys(r"\\cite{a,b} and \\citep[p.~3]{a}")
        ['a', 'b']
    """
    keys: dict[str, None] = {}

    for match in CITATION_PATTERN.finditer(text):
        for key in match.group(2).split(","):
            key = key.strip()
            if key:
                keys[key] = None

    logger.debug("Found %d distinct citation keys", len(keys))
    return list(keys)


def extract_bibliography_files(text: str) -> list[str]:
    """Extract bibliography base names from ``\\bibliography`` and ``\\addbibresource``.

    Names from ``\\bibliography`` come first, then those from
    ``\\addbibresource`` with any ``.bib`` suffix removed.
    """
    bib_files: list[str] = []

    for match in BIBLIOGRAPHY_PATTERN.finditer(text):
        bib_files.extend(name.strip() for name in match.group(1).split(","))

    for match in ADDBIBRESOURCE_PATTERN.finditer(text):
        bib_files.append(_BIB_SUFFIX.sub("", match.group(1)).strip())

    return bib_files


def is_key_used(key: str, used_keys: Iterable[str], case_sensitive: bool = True) -> bool:
    """Check whether ``key`` appears among the cited keys.

    Args:
        key: Entry key to look up
        used_keys: Keys collected from citation commands
        case_sensitive: When ``False``, compare keys case-insensitively

    Returns:
        ``True`` if the key is cited
    """
    if case_sensitive:
        return key in used_keys

    lower_key = key.lower()
    return any(used_key.lower() == lower_key for used_key in used_keys)
