"""
Object key generation for uploaded documents.
"""
import time
from typing import Optional
from urllib.parse import urlparse, unquote

from core.validators import sanitize_filename


def document_object_path(user_id: str, filename: str, timestamp_ms: Optional[int] = None) -> str:
    """{user_id}/{epoch_ms}_{filename}, namespaced by owner."""
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    return f"{user_id}/{timestamp_ms}_{sanitize_filename(filename)}"


def object_path_from_url(url: str) -> str:
    """
    Recover the object key from a public URL.

    Keys are always "{user_id}/{file}", so the last two path segments are
    enough regardless of which backend built the URL.
    """
    path = unquote(urlparse(url).path)
    segments = [s for s in path.split("/") if s]
    if len(segments) < 2:
        raise ValueError(f"Cannot derive object path from URL: {url}")
    return "/".join(segments[-2:])
