"""
CFI Parser - EPUB Canonical Fragment Identifier positions
This module parses CFI strings such as ``epubcfi(/6/14!/4/2[chapter1]/1:42)``
into comparable positions and provides the distance heuristic used to decide
whether two positions are close enough to belong to the same highlight.

Layout of a CFI:
    /6/14              - spine position (which document inside the EPUB)
    !/4/2[chapter1]/1  - element path inside that document
    :42                - character offset inside the addressed text node
"""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple
import logging

logger = logging.getLogger(__name__)

CFI_PREFIX = "epubcfi("
CFI_SUFFIX = ")"

# A single spine step must outweigh any path difference, and a single path
# step must outweigh any character offset difference.
SPINE_WEIGHT = 1_000_000.0
PATH_WEIGHT = 1_000.0

DEFAULT_ADJACENCY_THRESHOLD = 10.0


@dataclass(frozen=True, order=True)
class CFIComponent:
    """A single step of a CFI path, e.g. ``/6`` or ``/4[chapter1]``"""

    index: int
    id: Optional[str] = field(default=None, compare=False)

    def __str__(self) -> str:
        if self.id is not None:
            return f"/{self.index}[{self.id}]"
        return f"/{self.index}"


@dataclass(frozen=True, eq=False)
class CFIPosition:
    """Parsed form of a CFI string."""

    spine_components: Tuple[CFIComponent, ...]
    document_path: Tuple[CFIComponent, ...] = ()
    character_offset: Optional[int] = None
    raw_cfi: str = ""

    def __str__(self) -> str:
        spine = "".join(str(c) for c in self.spine_components)
        path = "".join(str(c) for c in self.document_path)
        offset = f":{self.character_offset}" if self.character_offset is not None else ""
        return f"CFI(spine: {spine}, path: {path}{offset})"

    def _key(self) -> tuple:
        return (
            tuple(c.index for c in self.spine_components),
            tuple(c.index for c in self.document_path),
            self.character_offset,
        )

    # Exact equality: a missing offset differs from 0 here, while the ordering
    # methods treat it as 0. Use compare_positions() for order-equivalence.
    def __eq__(self, other):
        if not isinstance(other, CFIPosition):
            return NotImplemented
        return self._key() == other._key()

    def __hash__(self):
        return hash(self._key())

    def __lt__(self, other):
        if not isinstance(other, CFIPosition):
            return NotImplemented
        return compare_positions(self, other) < 0

    def __le__(self, other):
        if not isinstance(other, CFIPosition):
            return NotImplemented
        return compare_positions(self, other) <= 0

    def __gt__(self, other):
        if not isinstance(other, CFIPosition):
            return NotImplemented
        return compare_positions(self, other) > 0

    def __ge__(self, other):
        if not isinstance(other, CFIPosition):
            return NotImplemented
        return compare_positions(self, other) >= 0


class _Scanner:
    """Cursor over a CFI path string"""

    def __init__(self, text: str):
        self.text = text
        self.pos = 0

    def at_end(self) -> bool:
        return self.pos >= len(self.text)

    def peek(self) -> str:
        return self.text[self.pos] if not self.at_end() else ""

    def skip_to(self, char: str) -> bool:
        """Move the cursor just past the next ``char``; False if there is none."""
        found = self.text.find(char, self.pos)
        if found < 0:
            self.pos = len(self.text)
            return False
        self.pos = found + 1
        return True

    def read_digits(self) -> str:
        start = self.pos
        while not self.at_end() and self.text[self.pos] in "0123456789":
            self.pos += 1
        return self.text[start:self.pos]

    def read_bracketed(self) -> Optional[str]:
        """Read ``[...]`` at the cursor. Leaves the cursor untouched if unclosed."""
        if self.peek() != "[":
            return None
        close = self.text.find("]", self.pos + 1)
        if close < 0:
            return None
        value = self.text[self.pos + 1:close]
        self.pos = close + 1
        return value


def _parse_components(path: str) -> List[CFIComponent]:
    components = []
    scanner = _Scanner(path)

    while not scanner.at_end():
        if not scanner.skip_to("/"):
            break

        digits = scanner.read_digits()
        if not digits:
            continue

        component_id = scanner.read_bracketed()
        components.append(CFIComponent(index=int(digits), id=component_id))

    return components


def _split_character_offset(document: str) -> Tuple[str, Optional[int]]:
    """Strip a trailing ``:<digits>`` from the document part."""
    end = len(document)
    start = end
    while start > 0 and document[start - 1] in "0123456789":
        start -= 1

    if start == end or start == 0 or document[start - 1] != ":":
        return document, None

    return document[:start - 1], int(document[start:end])


def _unwrap(cfi: str) -> str:
    begin = cfi.find(CFI_PREFIX)
    if begin < 0:
        return cfi

    content_start = begin + len(CFI_PREFIX)
    end = cfi.rfind(CFI_SUFFIX)
    if end < content_start:
        return cfi

    return cfi[content_start:end]


def parse_cfi(cfi: str) -> Optional[CFIPosition]:
    """
    Parse a CFI string into a position

    Args:
        cfi: CFI string, with or without the ``epubcfi(...)`` wrapper

    Returns:
        Parsed CFIPosition, or None if the string carries no spine components
    """
    if not isinstance(cfi, str) or not cfi:
        return None

    content = _unwrap(cfi)
    spine_part, separator, document_part = content.partition("!")

    spine_components = _parse_components(spine_part)
    if not spine_components:
        logger.debug(f"Could not parse CFI: {cfi!r}")
        return None

    document_path: List[CFIComponent] = []
    character_offset = None
    if separator:
        document_part, character_offset = _split_character_offset(document_part)
        document_path = _parse_components(document_part)

    return CFIPosition(
        spine_components=tuple(spine_components),
        document_path=tuple(document_path),
        character_offset=character_offset,
        raw_cfi=cfi,
    )


def _compare_paths(left: Tuple[CFIComponent, ...], right: Tuple[CFIComponent, ...]) -> int:
    for l, r in zip(left, right):
        if l.index != r.index:
            return -1 if l.index < r.index else 1

    # Shorter path precedes a longer one sharing its prefix
    if len(left) != len(right):
        return -1 if len(left) < len(right) else 1
    return 0


def compare_positions(a: CFIPosition, b: CFIPosition) -> int:
    """
    Order two positions by spine, then document path, then character offset

    Returns:
        -1 if ``a`` comes first, 1 if ``b`` comes first, 0 otherwise
    """
    result = _compare_paths(a.spine_components, b.spine_components)
    if result:
        return result

    result = _compare_paths(a.document_path, b.document_path)
    if result:
        return result

    a_offset = a.character_offset or 0
    b_offset = b.character_offset or 0
    if a_offset != b_offset:
        return -1 if a_offset < b_offset else 1
    return 0


def cfi_distance(start: CFIPosition, end: CFIPosition) -> float:
    """
    Signed closeness heuristic between two positions.

    Not a metric: only meant to be compared against a threshold. A spine
    difference yields millions, a path difference thousands, otherwise the
    character offset difference.
    """
    for i, (s, e) in enumerate(zip(start.spine_components, end.spine_components)):
        if s.index != e.index:
            return (e.index - s.index) * SPINE_WEIGHT + i

    for i, (s, e) in enumerate(zip(start.document_path, end.document_path)):
        if s.index != e.index:
            return (e.index - s.index) * PATH_WEIGHT + i

    start_offset = start.character_offset or 0
    end_offset = end.character_offset or 0
    return float(end_offset - start_offset)


def are_adjacent(first: CFIPosition, second: CFIPosition,
                 threshold: float = DEFAULT_ADJACENCY_THRESHOLD) -> bool:
    """Check whether two positions are close enough to be part of one highlight"""
    return abs(cfi_distance(first, second)) <= threshold
