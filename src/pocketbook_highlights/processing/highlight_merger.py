"""
Highlight Merger - rejoin highlights split across pages
The reader stores a highlight that crosses a page or chapter boundary as
several consecutive fragments. This module detects such fragments and folds
them back into a single highlight.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Iterator, List, Optional
import logging

from pocketbook_highlights.models.highlight import Highlight, Quotation
from pocketbook_highlights.processing.cfi_parser import are_adjacent
from pocketbook_highlights.processing.highlight_sorter import group_by_color, sort_highlights

logger = logging.getLogger(__name__)

MERGED_ID_SEPARATOR = "+"


@dataclass(frozen=True)
class MergerConfig:
    """Configuration for merge detection."""

    # Maximum CFI distance between one fragment's end and the next one's begin
    cfi_threshold: float = 100.0

    # Maximum difference between creation times (seconds)
    time_threshold: float = 60.0


DEFAULT_MERGER_CONFIG = MergerConfig()


class SignalResult(Enum):
    """Outcome of a single merge signal"""

    PASS = "pass"
    FAIL = "fail"
    INCONCLUSIVE = "inconclusive"

    @property
    def allows_merge(self) -> bool:
        return self is not SignalResult.FAIL


@dataclass(frozen=True)
class MergeResult:
    """Result of a merge operation with statistics"""

    highlights: List[Highlight]
    original_count: int
    merged_count: int

    @property
    def reduction_count(self) -> int:
        return self.original_count - self.merged_count

    @property
    def had_merges(self) -> bool:
        return self.reduction_count > 0


def _combine_notes(first: Optional[str], second: Optional[str]) -> Optional[str]:
    if first is not None and second is not None:
        return f"{first}\n{second}"
    return first if first is not None else second


def merge_highlights(first: Highlight, second: Highlight) -> Highlight:
    """
    Merge two highlights into one spanning both

    The merged highlight keeps the first fragment's color, book and mark and
    gets the composite id ``"<first.id>+<second.id>"``.
    """
    combined_text = " ".join(h.text.strip() for h in (first, second))

    quotation = Quotation(
        begin=first.quotation.begin,
        end=second.quotation.end,
        text=combined_text,
        updated=second.quotation.updated or first.quotation.updated,
    )

    return Highlight(
        id=f"{first.id}{MERGED_ID_SEPARATOR}{second.id}",
        uuid=first.uuid,
        book_id=first.book_id,
        book_fast_hash=first.book_fast_hash,
        color=first.color,
        note=_combine_notes(first.note, second.note),
        text=combined_text,
        quotation=quotation,
        mark=first.mark,
    )


class HighlightMerger:
    """Merges consecutive highlights that appear to be split across pages"""

    def __init__(self, config: MergerConfig = DEFAULT_MERGER_CONFIG):
        self.config = config

    def merge(self, highlights: Iterable[Highlight]) -> List[Highlight]:
        """
        Merge split highlights

        Args:
            highlights: Highlights of one book, in any order

        Returns:
            New list in reading order with fragments folded together
        """
        highlights = list(highlights)
        if len(highlights) < 2:
            return highlights

        ordered = sort_highlights(highlights)

        merged: List[Highlight] = []
        for color, color_highlights in group_by_color(ordered).items():
            group_result = self._merge_color_group(color_highlights)
            if len(group_result) < len(color_highlights):
                logger.debug(f"Color '{color}': {len(color_highlights)} -> {len(group_result)} highlights")
            merged.extend(group_result)

        # Grouping by color interleaves reading order; restore it
        return sort_highlights(merged)

    def merge_with_stats(self, highlights: Iterable[Highlight]) -> MergeResult:
        """Merge highlights and report how many fragments were folded"""
        highlights = list(highlights)
        merged = self.merge(highlights)
        result = MergeResult(
            highlights=merged,
            original_count=len(highlights),
            merged_count=len(merged),
        )
        if result.had_merges:
            logger.info(f"Merged {result.reduction_count} split highlight fragments "
                        f"({result.original_count} -> {result.merged_count})")
        return result

    def _merge_color_group(self, highlights: List[Highlight]) -> List[Highlight]:
        if len(highlights) < 2:
            return list(highlights)
        return list(self._fold_fragments(highlights))

    def _fold_fragments(self, highlights: List[Highlight]) -> Iterator[Highlight]:
        """Single pass keeping one pending highlight; inputs are never mutated"""
        current = highlights[0]
        for nxt in highlights[1:]:
            if self.should_merge(current, nxt):
                logger.debug(f"Merging {current.id} with {nxt.id}")
                current = merge_highlights(current, nxt)
            else:
                yield current
                current = nxt
        yield current

    def should_merge(self, first: Highlight, second: Highlight) -> bool:
        """Decide whether ``second`` continues the highlight ``first``"""
        signals = (
            self.check_color_match,
            self.check_cfi_adjacency,
            self.check_text_continuity,
            self.check_time_proximity,
        )
        return all(signal(first, second).allows_merge for signal in signals)

    def check_color_match(self, first: Highlight, second: Highlight) -> SignalResult:
        if first.color.value == second.color.value:
            return SignalResult.PASS
        return SignalResult.FAIL

    def check_cfi_adjacency(self, first: Highlight, second: Highlight) -> SignalResult:
        """Unparsable positions must not block a merge the other signals allow"""
        first_end = first.end_position
        second_begin = second.begin_position
        if first_end is None or second_begin is None:
            return SignalResult.INCONCLUSIVE

        if are_adjacent(first_end, second_begin, threshold=self.config.cfi_threshold):
            return SignalResult.PASS
        return SignalResult.FAIL

    def check_text_continuity(self, first: Highlight, second: Highlight) -> SignalResult:
        """
        A fragment ending a sentence is taken as complete. A capitalised
        continuation is still accepted since it may be a proper noun.
        """
        if first.ends_with_sentence_terminator:
            return SignalResult.FAIL
        return SignalResult.PASS

    def check_time_proximity(self, first: Highlight, second: Highlight) -> SignalResult:
        first_time = first.created_timestamp
        second_time = second.created_timestamp
        if first_time is None or second_time is None:
            return SignalResult.INCONCLUSIVE

        time_diff = abs((second_time - first_time).total_seconds())
        if time_diff <= self.config.time_threshold:
            return SignalResult.PASS
        return SignalResult.FAIL
