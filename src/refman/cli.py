"""Command-line interface for refman tools."""

import argparse
import asyncio
import logging
import signal
import sys
from collections.abc import Awaitable, Callable
from dataclasses import replace
from pathlib import Path
from typing import TypeVar

from .ai import AIFormatter
from .batch import format_all_entries
from .config import AIConfig, WorkspaceConfig, ensure_configured
from .detect import describe_entry, entries_to_delete, find_duplicates, remove_entries
from .exceptions import AIError, RefmanError
from .local_format import format_entry_local
from .parser import find_entry_by_key, parse_bib
from .scanner import extract_citation_keys
from .workspace import (
    delete_entries_from_files,
    find_unused_in_workspace,
    read_document,
    scan_workspace_for_citations,
    write_document,
)

T = TypeVar("T")

logger = logging.getLogger(__name__)


def setup_logging(verbosity: int = 0) -> None:
    """Configure logging for the CLI application.

    Args:
        verbosity: Logging verbosity level (0=WARNING, 1=INFO, 2+=DEBUG)
    """
    level = {0: logging.WARNING, 1: logging.INFO}.get(verbosity, logging.DEBUG)
    logging.basicConfig(
        level=level,
        format="%(levelname)s %(name)s:%(lineno)d – %(message)s",
    )


def _workspace_config(args: argparse.Namespace) -> WorkspaceConfig:
    config = WorkspaceConfig.from_workspace(Path(args.workspace))
    if getattr(args, "config", None):
        config = replace(config, config_path=Path(args.config), explicit_config=True)
    return config


def _load_ai_config(args: argparse.Namespace) -> AIConfig:
    ai_config = _workspace_config(args).load_ai_config()
    ensure_configured(ai_config)
    logger.debug("Using AI provider %s (%s)", ai_config.ai_provider, ai_config.active_model)
    return ai_config


def _run_cancellable(job: Callable[[asyncio.Event], Awaitable[T]]) -> T:
    """Run ``job`` with a cancellation event that Ctrl-C sets instead of aborting."""

    async def runner() -> T:
        cancel_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, cancel_event.set)
        except NotImplementedError:
            logger.debug("Signal handlers unsupported; Ctrl-C will abort immediately")
            return await job(cancel_event)

        try:
            return await job(cancel_event)
        finally:
            loop.remove_signal_handler(signal.SIGINT)

    return asyncio.run(runner())


def _log_progress(label: str) -> Callable[[int, int], None]:
    def report(done: int, total: int) -> None:
        logger.info("%s %d/%d", label, done, total)

    return report


def cmd_keys(args: argparse.Namespace) -> None:
    """Print the citation keys used in LaTeX files."""
    try:
        for path in args.files:
            for key in extract_citation_keys(read_document(Path(path))):
                print(key)
        sys.exit(0)

    except RefmanError as e:
        logger.error(f"Key extraction error: {e}")
        sys.exit(1)


def cmd_parse(args: argparse.Namespace) -> None:
    """Print a summary of the entries in a BibTeX file."""
    try:
        result = parse_bib(read_document(Path(args.file)))
    except RefmanError as e:
        logger.error(f"Parse error: {e}")
        sys.exit(1)

    for entry in result.entries:
        print(
            f"{entry.key}\t@{entry.entry_type}\t"
            f"lines {entry.start_line + 1}-{entry.end_line + 1}\t{len(entry.fields)} fields"
        )

    logger.info(f"✓ Parsed {len(result.entries)} entries")
    if result.warnings:
        logger.warning(f"{len(result.warnings)} entries skipped")
        sys.exit(1)
    sys.exit(0)


def cmd_unused(args: argparse.Namespace) -> None:
    """Report, and optionally delete, entries never cited in the workspace."""
    config = _workspace_config(args)

    try:
        used_keys = scan_workspace_for_citations(config.root, config.excluded_dirs)
        unused = find_unused_in_workspace(
            config.root,
            used_keys,
            config.excluded_dirs,
            case_sensitive=not args.ignore_case,
        )

        if not unused:
            logger.info("✓ No unused entries found")
            sys.exit(0)

        current_file = None
        for item in unused:
            if item.bib_path != current_file:
                current_file = item.bib_path
                print(f"{current_file}:")
            print(f"  {item.entry.key}: {describe_entry(item.entry)}")

        if args.delete:
            deleted = delete_entries_from_files(unused)
            logger.info(f"✓ Deleted {deleted} unused entries")
        else:
            logger.info(f"Found {len(unused)} unused entries (use --delete to remove them)")
        sys.exit(0)

    except RefmanError as e:
        logger.error(f"Unused entry detection error: {e}")
        sys.exit(1)


def cmd_format_local(args: argparse.Namespace) -> None:
    """Normalize entries of a BibTeX file with the offline rules."""
    path = Path(args.file)

    try:
        text = read_document(path)
        entries = parse_bib(text).entries

        if args.key:
            entry = find_entry_by_key(entries, args.key)
            if entry is None:
                logger.error(f"Entry not found: {args.key}")
                sys.exit(1)
            entries = [entry]

        for entry in entries:
            text = text.replace(entry.raw_text, format_entry_local(entry.raw_text), 1)

        write_document(path, text)
        logger.info(f"✓ Formatted {len(entries)} entries")
        sys.exit(0)

    except RefmanError as e:
        logger.error(f"Format error: {e}")
        sys.exit(1)


def cmd_format(args: argparse.Namespace) -> None:
    """Normalize entries of a BibTeX file with the AI formatter."""
    path = Path(args.file)

    try:
        formatter = AIFormatter(_load_ai_config(args))
        text = read_document(path)

        if args.key:
            entry = find_entry_by_key(parse_bib(text).entries, args.key)
            if entry is None:
                logger.error(f"Entry not found: {args.key}")
                sys.exit(1)

            formatted = asyncio.run(formatter.format_entry(entry.raw_text))
            write_document(path, text.replace(entry.raw_text, formatted, 1))
            logger.info(f"✓ Formatted {entry.key}")
            sys.exit(0)

        result = _run_cancellable(
            lambda cancel_event: format_all_entries(
                text,
                formatter,
                cancel_event=cancel_event,
                on_progress=_log_progress("Formatting entry"),
            )
        )
        write_document(path, result.content)

        if result.cancelled:
            logger.warning("Formatting cancelled; completed entries were kept")
        logger.info(
            f"✓ Formatted {len(result.succeeded)} entries, {len(result.failed)} failed"
        )
        if result.failed:
            logger.warning(f"Failed entries: {', '.join(result.failed)}")
            sys.exit(1)
        sys.exit(0)

    except AIError as e:
        logger.error(f"AI format error: {e.user_message()}")
        sys.exit(1)
    except RefmanError as e:
        logger.error(f"Format error: {e}")
        sys.exit(1)


def cmd_duplicates(args: argparse.Namespace) -> None:
    """Report, and optionally delete, entries describing the same work."""
    path = Path(args.file)

    try:
        formatter = AIFormatter(_load_ai_config(args))
        text = read_document(path)
        entries = parse_bib(text).entries

        if len(entries) < 2:
            logger.warning("Fewer than two entries; nothing to compare")
            sys.exit(0)

        scan = _run_cancellable(
            lambda cancel_event: find_duplicates(
                entries,
                formatter,
                cancel_event=cancel_event,
                on_progress=_log_progress("Compared pair"),
            )
        )

        if scan.cancelled:
            logger.warning(f"Duplicate scan cancelled after {scan.checked}/{scan.total} pairs")
        if scan.failed_pairs:
            logger.warning(f"{len(scan.failed_pairs)} comparisons failed and were skipped")

        if not scan.pairs:
            logger.info("✓ No duplicate entries found")
            sys.exit(0)

        for pair in scan.pairs:
            keep, drop = pair.entry_to_keep, pair.entry_to_delete
            print(f"{keep.key} <-> {drop.key}: {pair.reason}")
            print(f"  keep:   {describe_entry(keep)}")
            print(f"  delete: {describe_entry(drop)}")

        if args.delete:
            doomed = entries_to_delete(scan.pairs)
            updated, removed = remove_entries(text, doomed)
            write_document(path, updated)
            logger.info(f"✓ Deleted {removed} duplicate entries")
        else:
            logger.info(
                f"Found {len(scan.pairs)} duplicate pairs (use --delete to remove them)"
            )
        sys.exit(0)

    except AIError as e:
        logger.error(f"AI duplicate check error: {e.user_message()}")
        sys.exit(1)
    except RefmanError as e:
        logger.error(f"Duplicate detection error: {e}")
        sys.exit(1)


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="refman",
        description="Reference maintenance for LaTeX projects: format, find unused, deduplicate.",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (use -v for INFO, -vv for DEBUG)",
    )

    parser.add_argument(
        "--workspace",
        type=str,
        default=".",
        help="Path to the workspace directory (default: current directory)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # keys subcommand
    keys_parser = subparsers.add_parser("keys", help="List citation keys used in LaTeX files")
    keys_parser.add_argument("files", nargs="+", help="LaTeX files to scan")
    keys_parser.set_defaults(func=cmd_keys)

    # parse subcommand
    parse_parser = subparsers.add_parser("parse", help="Summarize the entries of a BibTeX file")
    parse_parser.add_argument("file", help="BibTeX file to parse")
    parse_parser.set_defaults(func=cmd_parse)

    # unused subcommand
    unused_parser = subparsers.add_parser(
        "unused", help="Find bibliography entries not cited in any .tex file of the workspace"
    )
    unused_parser.add_argument(
        "--ignore-case",
        action="store_true",
        help="Match citation keys case-insensitively",
    )
    unused_parser.add_argument(
        "--delete",
        action="store_true",
        help="Remove the unused entries from their .bib files",
    )
    unused_parser.set_defaults(func=cmd_unused)

    # format-local subcommand
    local_parser = subparsers.add_parser(
        "format-local", help="Normalize entries with offline rules (typos, field order, spacing)"
    )
    local_parser.add_argument("file", help="BibTeX file to format in place")
    local_parser.add_argument("--key", type=str, help="Format only the entry with this key")
    local_parser.set_defaults(func=cmd_format_local)

    # format subcommand
    format_parser = subparsers.add_parser(
        "format", help="Normalize entries with the configured AI provider"
    )
    format_parser.add_argument("file", help="BibTeX file to format in place")
    format_parser.add_argument("--key", type=str, help="Format only the entry with this key")
    format_parser.add_argument(
        "--config", type=str, help="Configuration file (default: <workspace>/refman.json)"
    )
    format_parser.set_defaults(func=cmd_format)

    # duplicates subcommand
    duplicates_parser = subparsers.add_parser(
        "duplicates", help="Find entries describing the same work with the AI provider"
    )
    duplicates_parser.add_argument("file", help="BibTeX file to check")
    duplicates_parser.add_argument(
        "--delete",
        action="store_true",
        help="Remove the entry not kept from each duplicate pair",
    )
    duplicates_parser.add_argument(
        "--config", type=str, help="Configuration file (default: <workspace>/refman.json)"
    )
    duplicates_parser.set_defaults(func=cmd_duplicates)

    return parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the refman CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    # Setup logging based on verbosity
    setup_logging(args.verbose)

    # Handle case where no subcommand is provided
    if not hasattr(args, "func"):
        parser.print_help()
        sys.exit(1)

    # Execute the subcommand
    args.func(args)


if __name__ == "__main__":
    main()
