"""Tests for the BibTeX parser."""

from __future__ import annotations

import pytest

from refman.parser import (
    extract_field_value,
    extract_keys_from_entries,
    find_entry_by_key,
    find_matching_brace,
    parse_bib,
    parse_fields,
    parse_single_entry,
    split_fields,
)

SAMPLE = """% references for chapter 2

@Article{smith2020,
  author = {Smith, John and Doe, Jane},
  title = {A {Study} of Things},
  journal = "Journal of Examples",
  year = 2020,
}

@book{knuth1984,
  title = {The \\TeX{}book},
  publisher = {Addison-Wesley}
}
"""


def test_find_matching_brace_nested() -> None:
    assert find_matching_brace("{a{b}c}", 0) == 6
    assert find_matching_brace("x{a}y", 1) == 3


def test_find_matching_brace_skips_escaped_braces() -> None:
    assert find_matching_brace("{a\\}b}", 0) == 5
    assert find_matching_brace("{\\{}", 0) == 3


def test_find_matching_brace_unbalanced() -> None:
    assert find_matching_brace("{abc", 0) == -1
    assert find_matching_brace("{a{b}", 0) == -1


def test_find_matching_brace_trailing_backslash() -> None:
    """A lone backslash at the end of the text is an ordinary character."""
    assert find_matching_brace("{a\\", 0) == -1


def test_extract_field_value_forms() -> None:
    assert extract_field_value("{Value},") == "Value"
    assert extract_field_value('"Quoted" ,') == "Quoted"
    assert extract_field_value("2020,\n") == "2020"
    assert extract_field_value("{Outer {Inner} text}") == "Outer {Inner} text"


def test_extract_field_value_empty() -> None:
    assert extract_field_value("   ") is None
    assert extract_field_value("{}") is None
    assert extract_field_value("{   },") is None
    assert extract_field_value(",") is None


def test_extract_field_value_collapses_whitespace() -> None:
    assert extract_field_value("{Line one\n    line   two}") == "Line one line two"


def test_extract_field_value_unclosed_brace_falls_back_to_bare() -> None:
    assert extract_field_value("{unclosed") == "{unclosed"


def test_split_fields_ignores_assignments_inside_values() -> None:
    body = "\n  url = {https://example.org/?id=5&page=2},\n  year = {2020}\n"

    spans = split_fields(body)

    assert [span.name for span in spans] == ["url", "year"]
    assert parse_fields(body) == {"url": "https://example.org/?id=5&page=2", "year": "2020"}


def test_parse_fields_lowercases_names_and_last_duplicate_wins() -> None:
    fields = parse_fields(" TITLE = {First}, title = {Second}, Year = 1999")

    assert fields == {"title": "Second", "year": "1999"}


def test_parse_bib_basic_document() -> None:
    result = parse_bib(SAMPLE)

    assert result.warnings == []
    assert extract_keys_from_entries(result.entries) == ["smith2020", "knuth1984"]

    smith = result.entries[0]
    assert smith.entry_type == "article"
    assert smith.fields == {
        "author": "Smith, John and Doe, Jane",
        "title": "A {Study} of Things",
        "journal": "Journal of Examples",
        "year": "2020",
    }
    assert smith.start_line == 2
    assert smith.end_line == 7
    assert smith.raw_text.startswith("@Article{smith2020,")
    assert smith.raw_text.endswith("}")

    knuth = result.entries[1]
    assert knuth.fields["title"] == "The \\TeX{}book"
    assert knuth.start_line == 9


def test_parse_bib_raw_text_is_verbatim_span() -> None:
    result = parse_bib(SAMPLE)

    for entry in result.entries:
        assert entry.raw_text in SAMPLE
        assert entry.start_line <= entry.end_line


def test_parse_bib_raw_text_reparses_to_same_entry() -> None:
    for entry in parse_bib(SAMPLE).entries:
        reparsed = parse_single_entry(entry.raw_text)

        assert reparsed is not None
        assert reparsed.entry_type == entry.entry_type
        assert reparsed.key == entry.key
        assert reparsed.fields == entry.fields


def test_parse_bib_drops_empty_values() -> None:
    entry = parse_single_entry("@misc{k,\n  note = {},\n  title = {  },\n  year = {2001}\n}")

    assert entry is not None
    assert entry.fields == {"year": "2001"}


def test_parse_bib_skips_unbalanced_entry_with_warning() -> None:
    text = """@article{bad,
  title = {Unclosed

@book{good,
  title = {Fine}
}
"""
    result = parse_bib(text)

    assert [entry.key for entry in result.entries] == ["good"]
    assert result.warnings == ['Entry "bad": unbalanced braces, skipped']


def test_parse_bib_tolerates_spacing_in_header() -> None:
    entry = parse_single_entry("@book { spaced ,\n title={T}}")

    assert entry is not None
    assert entry.key == "spaced"
    assert entry.fields == {"title": "T"}


def test_parse_bib_entry_without_fields() -> None:
    entry = parse_single_entry("@misc{lonely,}")

    assert entry is not None
    assert entry.fields == {}
    assert entry.raw_text == "@misc{lonely,}"


def test_parse_bib_ignores_text_without_entries() -> None:
    result = parse_bib("Just some text with an email@example.com address.")

    assert result.entries == []
    assert result.warnings == []
    assert parse_single_entry("no entries here") is None


def test_find_entry_by_key_is_exact() -> None:
    entries = parse_bib(SAMPLE).entries

    found = find_entry_by_key(entries, "knuth1984")
    assert found is not None
    assert found.entry_type == "book"
    assert find_entry_by_key(entries, "Knuth1984") is None


@pytest.mark.parametrize("header", ["@ARTICLE", "@Article", "@article"])
def test_parse_bib_lowercases_entry_type(header: str) -> None:
    entry = parse_single_entry(header + "{k,\n  title = {T}\n}")

    assert entry is not None
    assert entry.entry_type == "article"
    assert entry.key == "k"


@pytest.mark.parametrize("text", ["", "   \n\t\n", "% only a comment\n% and another\n"])
def test_parse_bib_blank_or_comment_only_input(text: str) -> None:
    result = parse_bib(text)

    assert result.entries == []
    assert result.warnings == []


def test_parse_bib_keeps_entry_count() -> None:
    text = "\n\n".join(f"@misc{{key{i},\n  title = {{Title {i}}}\n}}" for i in range(12))

    result = parse_bib(text)

    assert len(result.entries) == 12
    assert extract_keys_from_entries(result.entries) == [f"key{i}" for i in range(12)]
    assert result.warnings == []


def test_parse_bib_single_line_entry() -> None:
    text = (
        "@article{einstein1905, author = {Einstein, Albert}, "
        "title = {On the Electrodynamics of Moving Bodies}, "
        "journal = {Annalen der Physik}, year = {1905}}"
    )

    entry = parse_single_entry(text)

    assert entry is not None
    assert entry.entry_type == "article"
    assert entry.key == "einstein1905"
    assert entry.fields == {
        "author": "Einstein, Albert",
        "title": "On the Electrodynamics of Moving Bodies",
        "journal": "Annalen der Physik",
        "year": "1905",
    }
