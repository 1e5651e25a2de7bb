# core/utils.py
"""
Core Utility Functions.

Helpers shared by the asset service and the gateway: owner id checks,
object key generation and recovering object keys from public storage URLs.
"""
import os
import re
import uuid
from typing import Optional, Tuple
from urllib.parse import urlparse, unquote

UUID_PATTERN = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$", re.IGNORECASE)

# Path segment Supabase puts in front of "<bucket>/<key>" in public object URLs
PUBLIC_OBJECT_SEGMENT = "/storage/v1/object/public/"

EXTENSIONS_BY_TYPE = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
    "image/svg+xml": "svg",
}


def is_valid_uuid(value: Optional[str]) -> bool:
    return bool(value) and bool(UUID_PATTERN.match(value))


def file_extension(filename: Optional[str], content_type: Optional[str] = None) -> str:
    """Lower-cased extension of the original file name, falling back to the MIME type."""
    ext = os.path.splitext(filename or "")[1].lstrip(".").lower()
    ext = ''.join(c for c in ext if c.isalnum())[:10]
    if ext:
        return ext
    return EXTENSIONS_BY_TYPE.get((content_type or "").lower(), "bin")


def generate_object_key(filename: Optional[str], content_type: Optional[str] = None, prefix: str = "") -> str:
    """Generates a collision-resistant object key: '<prefix><uuid4>.<ext>'.

    The caller-supplied name only contributes its extension.
    """
    return f"{prefix}{uuid.uuid4()}.{file_extension(filename, content_type)}"


def parse_public_url(url: Optional[str]) -> Optional[Tuple[str, str]]:
    """
    Recovers (bucket, key) from a public object URL.

    Supabase URLs look like '<project>/storage/v1/object/public/<bucket>/<key>'.
    For any other URL shape the first path segment is taken as the bucket, e.g. 'https://store/slides/<uuid>.png' gives
    ('slides', '<uuid>.png'). Returns None when nothing usable can be parsed.
    """
    if not url:
        return None
    try:
        parsed = urlparse(url)
    except ValueError:
        return None
    path = unquote(parsed.path or "")
    if PUBLIC_OBJECT_SEGMENT in path:
        remainder = path.split(PUBLIC_OBJECT_SEGMENT, 1)[1]
    else:
        remainder = path.lstrip("/")
    parts = [p for p in remainder.split("/") if p]
    if len(parts) < 2:
        return None
    return parts[0], "/".join(parts[1:])
