"""
Highlight Model - PocketBook Cloud annotations
This module defines the highlight records the merge pipeline works on and the
conversion from raw PocketBook Cloud note records.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional
import logging

from pocketbook_highlights.processing.cfi_parser import CFIPosition, are_adjacent, parse_cfi

logger = logging.getLogger(__name__)

UNKNOWN_COLOR = "unknown"
SENTENCE_TERMINATORS = ".!?\"'"

# Marker texts the device stores for bookmarks rather than highlighted passages
BOOKMARK_MARKERS = frozenset({
    "bookmark", "bookmarks",
    "pencil",
    "note", "notes",
    "marker",
})


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse a timestamp that may be a Unix time or an ISO 8601 string

    Args:
        value: Number of seconds since the epoch, ISO 8601 string or datetime

    Returns:
        Timezone-aware datetime, or None if the value cannot be interpreted
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)

    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None

    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            logger.debug(f"Could not parse timestamp '{value}'")
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)

    return None


def _format_timestamp(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def is_bookmark_marker(text: str) -> bool:
    """Check if text is only a bookmark marker such as 'Bookmark Bookmark'"""
    normalized = text.lower().strip()
    if normalized in BOOKMARK_MARKERS:
        return True
    words = set(normalized.split())
    return len(words) == 1 and next(iter(words)) in BOOKMARK_MARKERS


@dataclass(frozen=True)
class HighlightColor:
    value: str = UNKNOWN_COLOR


@dataclass(frozen=True)
class Quotation:
    """The highlighted span: CFI boundaries plus the passage text"""

    begin: str
    end: str
    text: str
    updated: Optional[datetime] = None


@dataclass(frozen=True)
class Mark:
    """Device bookkeeping attached to a highlight"""

    anchor: Optional[str] = None
    created: Optional[datetime] = None
    updated: Optional[datetime] = None

    @property
    def page(self) -> Optional[int]:
        """Page number from an anchor like ``pbr:/page?page=36&offs=120``"""
        if not self.anchor:
            return None
        start = self.anchor.find("page=")
        if start < 0:
            return None
        start += len("page=")
        end = start
        while end < len(self.anchor) and self.anchor[end].isdigit():
            end += 1
        if start == end:
            return None
        return int(self.anchor[start:end])


@dataclass(frozen=True)
class Highlight:
    """A highlight from PocketBook Cloud, possibly one fragment of a longer passage"""

    id: str
    uuid: str
    book_id: str
    text: str
    quotation: Quotation
    color: HighlightColor = field(default_factory=HighlightColor)
    book_fast_hash: str = ""
    note: Optional[str] = None
    mark: Optional[Mark] = None

    @property
    def has_note(self) -> bool:
        return bool(self.note and self.note.strip())

    @property
    def ends_with_sentence_terminator(self) -> bool:
        trimmed = self.text.strip()
        return bool(trimmed) and trimmed[-1] in SENTENCE_TERMINATORS

    @property
    def starts_with_lowercase(self) -> bool:
        trimmed = self.text.strip()
        return bool(trimmed) and trimmed[0].islower()

    @property
    def created_timestamp(self) -> Optional[datetime]:
        return self.mark.created if self.mark else None

    @property
    def begin_position(self) -> Optional[CFIPosition]:
        return parse_cfi(self.quotation.begin)

    @property
    def end_position(self) -> Optional[CFIPosition]:
        return parse_cfi(self.quotation.end)

    def is_adjacent_to(self, other: "Highlight", threshold: float = 50.0) -> bool:
        """Check if this highlight's end lies right before another's begin"""
        my_end = self.end_position
        other_begin = other.begin_position
        if my_end is None or other_begin is None:
            return False
        return are_adjacent(my_end, other_begin, threshold=threshold)

    @classmethod
    def from_api_response(cls, record: Dict[str, Any], book_id: str,
                          book_fast_hash: str = "") -> Optional["Highlight"]:
        """
        Build a highlight from a raw PocketBook Cloud note record

        Args:
            record: Note record as returned by the cloud API
            book_id: Identifier of the owning book
            book_fast_hash: Fast hash of the owning book

        Returns:
            Highlight, or None for records without highlighted text
            (bookmarks, empty quotations)
        """
        quotation = record.get("quotation") or {}
        text = quotation.get("text")
        if not text:
            return None

        if is_bookmark_marker(text):
            logger.debug(f"Skipping bookmark marker '{text}'")
            return None

        uuid = record.get("uuid")
        if not uuid:
            logger.warning(f"Skipping note without uuid: {text[:30]}...")
            return None

        color = record.get("color") or {}
        note = record.get("note") or {}
        mark = record.get("mark") or {}

        return cls(
            id=uuid,
            uuid=uuid,
            book_id=book_id,
            book_fast_hash=book_fast_hash,
            color=HighlightColor(value=color.get("value") or UNKNOWN_COLOR),
            note=note.get("text"),
            text=text,
            quotation=Quotation(
                begin=quotation.get("begin") or "",
                end=quotation.get("end") or "",
                text=text,
                updated=parse_timestamp(quotation.get("updated")),
            ),
            mark=Mark(
                anchor=mark.get("anchor"),
                created=parse_timestamp(mark.get("created")),
                updated=parse_timestamp(mark.get("updated")),
            ),
        )

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready representation of the highlight"""
        return {
            "id": self.id,
            "uuid": self.uuid,
            "book_id": self.book_id,
            "book_fast_hash": self.book_fast_hash,
            "color": {"value": self.color.value},
            "note": self.note,
            "text": self.text,
            "quotation": {
                "begin": self.quotation.begin,
                "end": self.quotation.end,
                "text": self.quotation.text,
                "updated": _format_timestamp(self.quotation.updated),
            },
            "mark": None if self.mark is None else {
                "anchor": self.mark.anchor,
                "created": _format_timestamp(self.mark.created),
                "updated": _format_timestamp(self.mark.updated),
            },
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Highlight":
        """Rebuild a highlight written by ``to_dict``"""
        quotation = data["quotation"]
        mark = data.get("mark")
        return cls(
            id=data["id"],
            uuid=data.get("uuid") or data["id"],
            book_id=data.get("book_id", ""),
            book_fast_hash=data.get("book_fast_hash", ""),
            color=HighlightColor(value=(data.get("color") or {}).get("value") or UNKNOWN_COLOR),
            note=data.get("note"),
            text=data["text"],
            quotation=Quotation(
                begin=quotation.get("begin", ""),
                end=quotation.get("end", ""),
                text=quotation.get("text", data["text"]),
                updated=parse_timestamp(quotation.get("updated")),
            ),
            mark=None if mark is None else Mark(
                anchor=mark.get("anchor"),
                created=parse_timestamp(mark.get("created")),
                updated=parse_timestamp(mark.get("updated")),
            ),
        )
