"""
File Utilities - reading and writing highlight exports
"""

import json
from pathlib import Path
from typing import List, Optional, Dict, Any, Iterable
import logging
import chardet

from pocketbook_highlights.models.highlight import Highlight

logger = logging.getLogger(__name__)

FALLBACK_ENCODINGS = ['utf-8', 'latin-1', 'cp1252']


def detect_file_encoding(file_path: str) -> str:
    """
    Detect the encoding of a text file

    Args:
        file_path: Path to the file

    Returns:
        Detected encoding name
    """
    try:
        with open(file_path, 'rb') as f:
            raw_data = f.read(10000)  # Read first 10KB
    except OSError as e:
        logger.warning(f"Error detecting encoding for {file_path}: {e}")
        return 'utf-8'

    result = chardet.detect(raw_data)
    encoding = result.get('encoding') or 'utf-8'
    confidence = result.get('confidence') or 0

    logger.debug(f"Detected encoding for {file_path}: {encoding} (confidence: {confidence:.2f})")

    if confidence < 0.5:
        return 'utf-8'

    return encoding


def safe_read_text_file(file_path: str, encoding: Optional[str] = None) -> str:
    """
    Safely read a text file with encoding detection

    Args:
        file_path: Path to the file
        encoding: Specific encoding to use (optional)

    Returns:
        File contents as string
    """
    if not encoding:
        encoding = detect_file_encoding(file_path)

    try:
        with open(file_path, 'r', encoding=encoding) as f:
            return f.read()
    except (UnicodeDecodeError, LookupError):
        for fallback in FALLBACK_ENCODINGS:
            if fallback != encoding:
                try:
                    with open(file_path, 'r', encoding=fallback) as f:
                        logger.warning(f"Used fallback encoding {fallback} for {file_path}")
                        return f.read()
                except UnicodeDecodeError:
                    continue

        # Last resort: ignore errors
        with open(file_path, 'r', encoding='utf-8', errors='ignore') as f:
            logger.warning(f"Reading {file_path} with error handling")
            return f.read()


def ensure_directory_exists(directory_path: str) -> bool:
    """
    Ensure a directory exists, creating it if necessary

    Args:
        directory_path: Path to the directory

    Returns:
        True if directory exists or was created successfully
    """
    try:
        Path(directory_path).mkdir(parents=True, exist_ok=True)
        return True
    except OSError as e:
        logger.error(f"Error creating directory {directory_path}: {e}")
        return False


def load_highlight_records(file_path: str) -> List[Dict[str, Any]]:
    """
    Load raw highlight records from a JSON export

    Accepts a plain list, the cloud API envelope ``{"items": [...]}`` or this
    tool's own output ``{"highlights": [...]}``.

    Raises:
        OSError: if the file cannot be read
        ValueError: if the file is not JSON or has an unexpected shape
    """
    try:
        data = json.loads(safe_read_text_file(file_path))
    except OSError as e:
        logger.error(f"Error reading highlights file {file_path}: {e}")
        raise
    except ValueError as e:
        logger.error(f"Invalid JSON in {file_path}: {e}")
        raise

    if isinstance(data, dict):
        for key in ('highlights', 'items'):
            if isinstance(data.get(key), list):
                data = data[key]
                break

    if not isinstance(data, list):
        raise ValueError(f"Expected a list of highlight records in {file_path}")

    return [record for record in data if isinstance(record, dict)]


def _is_normalized_record(record: Dict[str, Any]) -> bool:
    quotation = record.get('quotation')
    return 'id' in record and isinstance(quotation, dict) and 'begin' in quotation


def load_highlights(file_path: str, book_id: str, book_fast_hash: str = "") -> List[Highlight]:
    """
    Load highlights from a JSON export

    Args:
        file_path: Path to the JSON file
        book_id: Book the highlights belong to (used for raw API records)
        book_fast_hash: Fast hash of the book (used for raw API records)

    Returns:
        List of highlights; bookmarks and empty records are skipped
    """
    records = load_highlight_records(file_path)

    highlights = []
    for record in records:
        if _is_normalized_record(record):
            highlights.append(Highlight.from_dict(record))
            continue
        highlight = Highlight.from_api_response(record, book_id, book_fast_hash)
        if highlight is not None:
            highlights.append(highlight)

    skipped = len(records) - len(highlights)
    if skipped:
        logger.info(f"Skipped {skipped} records without highlighted text")
    logger.info(f"Loaded {len(highlights)} highlights from {file_path}")

    return highlights


def write_highlights(file_path: str, highlights: Iterable[Highlight],
                     stats: Optional[Dict[str, Any]] = None) -> None:
    """
    Write highlights to a JSON file

    Args:
        file_path: Output path
        highlights: Highlights to write
        stats: Optional merge statistics stored alongside the highlights
    """
    output_path = Path(file_path)
    ensure_directory_exists(str(output_path.parent))

    payload: Dict[str, Any] = {"highlights": [h.to_dict() for h in highlights]}
    if stats is not None:
        payload["stats"] = stats

    with open(output_path, 'w', encoding='utf-8') as f:
        json.dump(payload, f, indent=2, ensure_ascii=False)

    logger.info(f"Wrote {len(payload['highlights'])} highlights to {output_path}")
