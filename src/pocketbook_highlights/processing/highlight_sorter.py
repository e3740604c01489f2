"""
Highlight Sorter - reading order and grouping of highlights
Highlights are ordered by their position in the book, falling back to the
device anchor, the timestamps and finally the highlight id so that the order
is fully deterministic even when no position data is usable.
"""

import re
from functools import cmp_to_key
from typing import Callable, Dict, Iterable, List, Optional, Any

from pocketbook_highlights.models.highlight import Highlight
from pocketbook_highlights.processing.cfi_parser import compare_positions


def extract_number(value: Optional[str]) -> Optional[int]:
    """Extract the first run of digits from a string"""
    if not value:
        return None
    match = re.search(r'\d+', value)
    return int(match.group()) if match else None


def _compare_values(a: Any, b: Any) -> Optional[int]:
    """-1/1 when both values are present and differ, None otherwise"""
    if a is None or b is None or a == b:
        return None
    return -1 if a < b else 1


def _by_position(a: Highlight, b: Highlight) -> Optional[int]:
    a_pos = a.begin_position
    b_pos = b.begin_position
    if a_pos is None or b_pos is None:
        return None
    return compare_positions(a_pos, b_pos) or None


def _by_anchor(a: Highlight, b: Highlight) -> Optional[int]:
    a_anchor = a.mark.anchor if a.mark else None
    b_anchor = b.mark.anchor if b.mark else None
    return _compare_values(extract_number(a_anchor), extract_number(b_anchor))


def _by_created(a: Highlight, b: Highlight) -> Optional[int]:
    return _compare_values(a.created_timestamp, b.created_timestamp)


def _by_updated(a: Highlight, b: Highlight) -> Optional[int]:
    return _compare_values(a.quotation.updated, b.quotation.updated)


# Consulted in order; each strategy returns None when it has no preference
SORT_STRATEGIES = (_by_position, _by_anchor, _by_created, _by_updated)


def compare_highlights(a: Highlight, b: Highlight) -> int:
    """
    Compare two highlights for reading order

    Priority: CFI position, anchor number, creation time, update time, id.

    Returns:
        Negative if ``a`` comes first, positive if ``b`` comes first
    """
    for strategy in SORT_STRATEGIES:
        result = strategy(a, b)
        if result is not None:
            return result

    if a.id == b.id:
        return 0
    return -1 if a.id < b.id else 1


def _canonical_key(highlight: Highlight) -> tuple:
    return (highlight.id, highlight.quotation.begin, highlight.text)


def sort_highlights(highlights: Iterable[Highlight]) -> List[Highlight]:
    """
    Return the highlights sorted by position in the book

    The fallback chain is not transitive when only some highlights have a
    parsable CFI, so the input is put in a fixed order before sorting. The
    result then depends only on the highlights given, not on their order.
    """
    canonical = sorted(highlights, key=_canonical_key)
    return sorted(canonical, key=cmp_to_key(compare_highlights))


def group_by_key(highlights: Iterable[Highlight],
                 key: Callable[[Highlight], str]) -> Dict[str, List[Highlight]]:
    """
    Partition highlights by a key

    Order within each group follows the input order; no sorting is done.
    """
    groups: Dict[str, List[Highlight]] = {}
    for highlight in highlights:
        groups.setdefault(key(highlight), []).append(highlight)
    return groups


def group_by_color(highlights: Iterable[Highlight]) -> Dict[str, List[Highlight]]:
    """Group highlights by color (merge candidates)"""
    return group_by_key(highlights, lambda h: h.color.value)


def group_by_book(highlights: Iterable[Highlight]) -> Dict[str, List[Highlight]]:
    """Group highlights by their book id"""
    return group_by_key(highlights, lambda h: h.book_id)
