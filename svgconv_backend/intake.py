"""Content-type checks applied before anything is written to disk."""
from __future__ import annotations

from pathlib import Path
from typing import Iterable, Optional

from .config import ALLOWED_MIMES
from .errors import PayloadTooLargeError, ValidationError


# First entry is the extension added when a name lacks a matching one.
_EXTENSIONS_BY_MIME = {
    "image/png": (".png",),
    "image/jpeg": (".jpg", ".jpeg", ".jpe"),
    "image/jpg": (".jpg", ".jpeg", ".jpe"),
    "image/gif": (".gif",),
    "image/bmp": (".bmp",),
    "image/tiff": (".tiff", ".tif"),
    "image/webp": (".webp",),
    "image/svg+xml": (".svg",),
    "image/x-icon": (".ico",),
    "image/vnd.microsoft.icon": (".ico",),
    "application/pdf": (".pdf",),
    "application/postscript": (".ps", ".eps", ".ai"),
    "application/eps": (".eps",),
    "image/x-eps": (".eps",),
}


def normalize_mime(content_type: Optional[str]) -> str:
    """``"Image/PNG; charset=binary"`` -> ``"image/png"``."""
    return (content_type or "").split(";", 1)[0].strip().lower()


def ensure_allowed_mime(content_type: Optional[str], allowed: Iterable[str] = ALLOWED_MIMES) -> str:
    mime = normalize_mime(content_type)
    if mime not in allowed:
        raise ValidationError("File type not allowed", details=mime or None)
    return mime


def with_extension_for(name_hint: Optional[str], content_type: Optional[str]) -> str:
    """Make sure ``name_hint`` ends in an extension matching ``content_type``.

    ``"render"`` + image/png -> ``"render.png"``; ``"photo.jpeg"`` + image/jpeg
    is kept; ``"image.php"`` + image/png -> ``"image.php.png"``.
    """
    name = name_hint or ""
    extensions = _EXTENSIONS_BY_MIME.get(normalize_mime(content_type))
    if not extensions or Path(name).suffix.lower() in extensions:
        return name
    return f"{name or 'file'}{extensions[0]}"


def ensure_size(data: bytes, limit: int) -> None:
    if len(data) > limit:
        raise PayloadTooLargeError("File too large", details=f"limit is {limit} bytes")
