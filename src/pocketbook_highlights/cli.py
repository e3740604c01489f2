#!/usr/bin/env python3
"""
PocketBook Highlights - Command Line Interface
Sorts the highlights of a book into reading order and rejoins highlights
that were split across pages.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from pocketbook_highlights.models.highlight import Highlight
from pocketbook_highlights.processing.highlight_merger import (
    DEFAULT_MERGER_CONFIG,
    HighlightMerger,
    MergeResult,
    MergerConfig,
)
from pocketbook_highlights.processing.highlight_sorter import sort_highlights
from pocketbook_highlights.utils.file_utils import load_highlights, write_highlights

PREVIEW_COUNT = 3
PREVIEW_LENGTH = 50


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="PocketBook Highlights CLI")
    parser.add_argument("--input", required=True, help="Path to highlights JSON export")
    parser.add_argument("--output", help="Write processed highlights to this JSON file")
    parser.add_argument("--book-id", help="Book id for raw API records (default: input file name)")
    parser.add_argument("--book-fast-hash", default="", help="Book fast hash for raw API records")
    parser.add_argument("--cfi-threshold", type=float, default=DEFAULT_MERGER_CONFIG.cfi_threshold,
                        help="Maximum CFI distance between fragments of one highlight")
    parser.add_argument("--time-threshold", type=float, default=DEFAULT_MERGER_CONFIG.time_threshold,
                        help="Maximum seconds between creation of fragments of one highlight")
    parser.add_argument("--no-merge", action="store_true", help="Only sort, do not merge fragments")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")
    return parser


def format_summary(highlights: List[Highlight], result: Optional[MergeResult]) -> str:
    """Short human-readable summary with a preview of the first highlights"""
    lines = [f"Found {len(highlights)} highlights"]

    if result is not None:
        if result.had_merges:
            lines.append(f"Merged {result.reduction_count} fragments "
                         f"({result.original_count} -> {result.merged_count})")
        else:
            lines.append("No split highlights found")

    if highlights:
        lines.append("Preview:")
        for index, highlight in enumerate(highlights[:PREVIEW_COUNT], 1):
            preview = highlight.text[:PREVIEW_LENGTH]
            suffix = "..." if len(highlight.text) > PREVIEW_LENGTH else ""
            page = highlight.mark.page if highlight.mark else None
            page_info = f" (p. {page})" if page is not None else ""
            lines.append(f"  {index}.{page_info} \"{preview}{suffix}\"")
        if len(highlights) > PREVIEW_COUNT:
            lines.append(f"  ... and {len(highlights) - PREVIEW_COUNT} more")

    return "\n".join(lines)


def main(argv: Optional[List[str]] = None) -> int:
    """Command line interface main function"""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    input_path = Path(args.input)
    if not input_path.exists():
        print(f"Error: Input file does not exist: {args.input}")
        return 1

    book_id = args.book_id or input_path.stem

    try:
        highlights = load_highlights(str(input_path), book_id, args.book_fast_hash)
    except (OSError, ValueError) as e:
        print(f"Error loading highlights: {e}")
        return 1

    result = None
    if args.no_merge:
        processed = sort_highlights(highlights)
    else:
        config = MergerConfig(cfi_threshold=args.cfi_threshold, time_threshold=args.time_threshold)
        result = HighlightMerger(config).merge_with_stats(highlights)
        processed = result.highlights

    print(format_summary(processed, result))

    if args.output:
        stats = None
        if result is not None:
            stats = {
                "original_count": result.original_count,
                "merged_count": result.merged_count,
                "reduction_count": result.reduction_count,
            }
        try:
            write_highlights(args.output, processed, stats)
        except OSError as e:
            print(f"Error writing highlights: {e}")
            return 1
        print(f"Highlights written to: {args.output}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
