"""
Input validation utilities for the analysis proxy.
"""
import ipaddress
import os
import re
from typing import Iterable, Optional
from urllib.parse import unquote, urlsplit

from core.errors import SecurityRejection, ValidationError


UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)
TRAVERSAL_PATTERN = re.compile(r"\.\.|%2e%2e", re.IGNORECASE)
# Indexes are capped at 9 digits so int() never sees an oversized value
FACE_INDEX_PATTERN = re.compile(r"[0-9]{1,9}")
FACE_PATH_INDEX_PATTERN = re.compile(r"_([0-9]{1,9})\.[^./]+$")
ORIGINAL_IMAGE_PATH_PATTERN = re.compile(
    r"^/?storage/original/[A-Za-z0-9_-]+\.(jpe?g|png|webp|gif|bmp)$",
    re.IGNORECASE,
)
STORAGE_FILENAME_PATTERN = re.compile(r"^[A-Za-z0-9_-]+(\.[A-Za-z0-9_-]+)*$")

FACES_PREFIXES = ("/storage/faces/", "storage/faces/")
ORIGINAL_PREFIXES = ("/storage/original/", "storage/original/")
ALLOWED_STORAGE_PREFIXES = FACES_PREFIXES + ORIGINAL_PREFIXES
ALLOWED_URL_SCHEMES = ("http", "https")


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

    # Remove dangerous characters (keep alphanumeric, dots, dashes, underscores)
    safe_chars = []
    for char in filename:
        if char.isascii() and (char.isalnum() or char in "._-"):
            safe_chars.append(char)
        else:
            safe_chars.append("_")

    sanitized = "".join(safe_chars).lstrip(".")

    if len(sanitized) > 255:
        sanitized = sanitized[:255]

    if not sanitized:
        raise ValueError("Filename became empty after sanitization")

    return sanitized


def contains_traversal(value: str) -> bool:
    """True if value contains `..` or its percent-encoded form."""
    return bool(TRAVERSAL_PATTERN.search(value or ""))


def validate_uuid(uuid_string: str) -> bool:
    """
    Validate UUID string format (canonical 8-4-4-4-12 hex form).

    Args:
        uuid_string: String to validate

    Returns:
        True if valid UUID format
    """
    if not isinstance(uuid_string, str):
        return False
    return bool(UUID_PATTERN.match(uuid_string))


def validate_session_id(session_id: str) -> str:
    """Return the session id unchanged or raise. The input is never echoed."""
    if not isinstance(session_id, str) or contains_traversal(session_id):
        raise SecurityRejection("path traversal in session id")
    if not validate_uuid(session_id):
        raise ValidationError()
    return session_id


def validate_face_index(face_index: str) -> int:
    """Parse a 0-based face index made of digits only."""
    if not isinstance(face_index, str) or not FACE_INDEX_PATTERN.fullmatch(face_index):
        raise ValidationError("Invalid face index")
    return int(face_index)


def extract_face_index(face_path: Optional[str]) -> Optional[int]:
    """
    Read the storage index encoded in a face path.

    `/storage/faces/abc_3.png` -> 3. Returns None when the path carries no
    trailing `_<digits>.<ext>` segment.
    """
    if not face_path:
        return None
    match = FACE_PATH_INDEX_PATTERN.search(face_path)
    return int(match.group(1)) if match else None


def is_safe_storage_path(path: Optional[str], prefixes: Iterable[str] = ALLOWED_STORAGE_PREFIXES) -> bool:
    """Storage paths must sit under an allowed prefix with no `..` or `//`."""
    if not path or not isinstance(path, str):
        return False
    if contains_traversal(path) or "//" in path or "\\" in path:
        return False
    return path.startswith(tuple(prefixes))


def storage_filename(path: str) -> str:
    """Last segment of a storage path, restricted to a conservative charset."""
    filename = path.rsplit("/", 1)[-1]
    if not filename or not STORAGE_FILENAME_PATTERN.match(filename):
        raise SecurityRejection("unexpected storage filename")
    return filename


def validate_original_image_path(image_path: Optional[str]) -> str:
    """Validate the session's image_path and return the storage filename."""
    if not image_path:
        raise ValidationError("Invalid image path")
    if contains_traversal(image_path) or not ORIGINAL_IMAGE_PATH_PATTERN.match(image_path):
        raise SecurityRejection("suspicious original image path")
    return storage_filename(image_path)


def validate_url_scheme(url: str) -> str:
    """Only absolute http(s) URLs with a hostname. Returns the hostname."""
    if not isinstance(url, str) or not url.strip():
        raise ValidationError("URL not provided")
    try:
        parts = urlsplit(url.strip())
        hostname = parts.hostname
    except ValueError:
        raise ValidationError("Invalid image URL")
    if parts.scheme.lower() not in ALLOWED_URL_SCHEMES or not hostname:
        raise ValidationError("Invalid image URL")
    return hostname


def validate_url_length(url: str, max_length: int) -> None:
    if len(url) > max_length:
        raise ValidationError("URL is too long")


def is_public_address(address: str) -> bool:
    """True only for globally routable unicast addresses."""
    try:
        ip = ipaddress.ip_address(address.split("%", 1)[0])
    except ValueError:
        return False
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped
    return not (
        ip.is_private
        or ip.is_loopback
        or ip.is_link_local
        or ip.is_reserved
        or ip.is_multicast
        or ip.is_unspecified
        or not ip.is_global
    )


def filename_from_url(url: str, default: str) -> str:
    """Derive an upload filename from the last path segment of a URL."""
    try:
        path = urlsplit(url).path
    except ValueError:
        return default
    segment = unquote(path.rstrip("/").rsplit("/", 1)[-1]) if path else ""
    if not segment:
        return default
    try:
        return sanitize_filename(segment)
    except ValueError:
        return default
