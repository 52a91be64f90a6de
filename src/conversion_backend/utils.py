"""
Utility functions for file names and payload decoding.
"""

from __future__ import annotations

import base64
import binascii
import re
from datetime import datetime, timezone
from pathlib import Path

# Pattern to match characters that are not safe for filesystem paths
# Allows: alphanumeric characters, dots, underscores, and hyphens
SANITIZE_PATTERN = re.compile(r"[^a-zA-Z0-9._-]+")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def sanitize_filename(filename: str, fallback: str = "document", default_suffix: str = "") -> str:
    """
    Generate a filesystem-safe file name from user input.

    Directory components are dropped, unsafe characters become hyphens and
    the extension is lowercased.

    Example:
        >>> sanitize_filename("../My Report!.DOCX")
        "My-Report.docx"
        >>> sanitize_filename("@#$", default_suffix=".pdf")
        "document.pdf"
    """
    name = Path(filename.replace("\\", "/")).name
    stem = Path(name).stem
    suffix = Path(name).suffix.lower()
    safe_stem = SANITIZE_PATTERN.sub("-", stem.strip()).strip("-_.") or fallback
    if not suffix or SANITIZE_PATTERN.search(suffix):
        suffix = default_suffix
    return f"{safe_stem}{suffix}"


def decode_base64(data: str) -> bytes:
    """
    Decode a base64 payload, tolerating a ``data:<mime>;base64,`` prefix.

    Raises:
        ValueError: If the payload is not valid base64
    """
    if data.startswith("data:") and "," in data:
        data = data.split(",", 1)[1]
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError("Invalid base64 payload") from exc


def encode_base64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")
