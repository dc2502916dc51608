"""
Input validation utilities for the embassy student portal.
"""
import os
import re
from pathlib import Path
from typing import Tuple, Optional

from core.exceptions import ValidationError


EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def sanitize_filename(filename: str) -> str:
    """
    Sanitize filename to prevent path traversal attacks.

    Args:
        filename: Original filename

    Returns:
        Sanitized filename safe for use
    """
    if not filename:
        raise ValueError("Filename cannot be empty")

    # Remove directory separators and path components
    filename = os.path.basename(filename.replace("\\", "/"))

    # Keep alphanumeric, dots, dashes, underscores
    safe_chars = []
    for char in filename:
        if char.isalnum() or char in "._-":
            safe_chars.append(char)
        else:
            safe_chars.append("_")

    sanitized = "".join(safe_chars)

    if len(sanitized) > 255:
        sanitized = sanitized[:255]

    if not sanitized or sanitized.strip("._") == "":
        raise ValueError("Filename became empty after sanitization")

    return sanitized


def validate_document_extension(filename: str, allowed_extensions: set) -> bool:
    """
    Validate file extension.

    Args:
        filename: Filename to check
        allowed_extensions: Set of allowed extensions (e.g., {".pdf", ".png"})

    Returns:
        True if extension is allowed
    """
    if not filename:
        return False

    ext = Path(filename).suffix.lower()
    return ext in allowed_extensions


def validate_file_size(file_size: int, max_size_bytes: int) -> Tuple[bool, Optional[str]]:
    """
    Validate file size.

    Args:
        file_size: File size in bytes
        max_size_bytes: Maximum allowed size in bytes

    Returns:
        Tuple of (is_valid, error_message)
    """
    if file_size <= 0:
        return False, "File size must be greater than 0"

    if file_size > max_size_bytes:
        max_size_mb = max_size_bytes / (1024 * 1024)
        actual_size_mb = file_size / (1024 * 1024)
        return False, f"File too large: {actual_size_mb:.2f}MB (max: {max_size_mb:.2f}MB)"

    return True, None


def require_text(value: Optional[str], field: str) -> str:
    """Return the trimmed value, raising ValidationError when it is blank."""
    trimmed = (value or "").strip()
    if not trimmed:
        raise ValidationError(f"{field} is required", field=field)
    return trimmed
