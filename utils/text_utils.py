"""
Text utilities for identifiers and file names.

normalize_identifier() is the sole basis for fuzzy comparisons, so spacing,
punctuation and case never influence a similarity score.
"""

import re
import time
from typing import Optional
from urllib.parse import unquote

import structlog

logger = structlog.get_logger(__name__)

_NON_ALNUM = re.compile(r"[^a-z0-9]")
_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9_-]")
_UNSAFE_EXTENSION_CHARS = re.compile(r"[^a-zA-Z0-9]")
_REPEATED_UNDERSCORES = re.compile(r"_+")

MIME_TYPES = {
    "pdf": "application/pdf",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "xls": "application/vnd.ms-excel",
    "csv": "text/csv",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "doc": "application/msword",
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "gif": "image/gif",
    "webp": "image/webp",
}

DEFAULT_MIME_TYPE = "application/octet-stream"


def normalize_identifier(value: Optional[str]) -> str:
    """
    Canonicalize a manufacturer, part number or name for comparison.

    - "SIEMENS AG"          -> "siemensag"
    - "6ES7 512-1DK01-0AB0" -> "6es75121dk010ab0"
    - None / ""             -> ""

    Non-ASCII letters are dropped entirely.

    Args:
        value: Raw identifier text

    Returns:
        Lower-case string containing only [a-z0-9]
    """
    if not value:
        return ""
    return _NON_ALNUM.sub("", value.lower().strip())


def mime_type_from_filename(filename: Optional[str]) -> str:
    """
    Derive MIME type from the file extension.

    The declared type on an attachment is not trusted; the extension is.
    """
    if not filename or "." not in filename:
        return DEFAULT_MIME_TYPE
    extension = filename.rsplit(".", 1)[-1].lower()
    return MIME_TYPES.get(extension, DEFAULT_MIME_TYPE)


def sanitize_filename(filename: str) -> str:
    """
    Make a filename safe for storage paths.

    Keeps letters, digits, hyphens and underscores in the stem and only
    letters and digits in the extension, so the result is a single path
    segment. Hebrew or other non-ASCII names collapse to a timestamped
    fallback.

    - "הצעת מחיר.pdf"       -> "file_1736500000000.pdf"
    - "Quote #12 (v2).xlsx" -> "Quote_12_v2.xlsx"
    """
    last_dot = filename.rfind(".")
    if last_dot > 0:
        stem = filename[:last_dot]
        extension = _UNSAFE_EXTENSION_CHARS.sub("", filename[last_dot + 1:])
        extension = f".{extension}" if extension else ""
    else:
        stem, extension = filename, ""

    safe = _UNSAFE_FILENAME_CHARS.sub("_", stem)
    safe = _REPEATED_UNDERSCORES.sub("_", safe).strip("_")
    if not safe:
        safe = f"file_{int(time.time() * 1000)}"

    result = f"{safe}{extension}"
    if result != filename:
        logger.debug("filename_sanitized", original=filename, sanitized=result)
    return result


def sanitize_path_segment(value: Optional[str]) -> str:
    """
    Reduce an identifier to one storage path segment.

    Returns "" when nothing usable is left.
    """
    if not value:
        return ""
    return _REPEATED_UNDERSCORES.sub("_", _UNSAFE_FILENAME_CHARS.sub("_", value)).strip("_")


def storage_path_from_url(url: Optional[str], bucket: str) -> Optional[str]:
    """
    Extract the object path from a Supabase public storage URL.

    ".../storage/v1/object/public/supplier-quotes/team/abc/q.pdf" -> "team/abc/q.pdf"

    Returns None when the URL does not point into the bucket.
    """
    if not url:
        return None
    marker = f"/object/public/{bucket}/"
    if marker not in url:
        return None
    path = url.split(marker, 1)[1].split("?", 1)[0]
    return unquote(path) or None
