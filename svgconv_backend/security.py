from __future__ import annotations

import re
import uuid
from pathlib import Path


_UNSAFE_CHARS_RE = re.compile(r"[\x00-\x1f\x7f/\\:*?\"<>|]+")
_MAX_HINT_LENGTH = 120


def is_safe_basename(name: str) -> bool:
    """Allow only simple, visible filenames (no directories, no temp files)."""
    if not isinstance(name, str) or not name:
        return False
    if name != Path(name).name:
        return False
    if "/" in name or "\\" in name:
        return False
    if name.startswith("."):
        return False
    return True


def safe_join(base_dir: Path, *parts: str) -> Path:
    """Join paths and ensure the result stays within base_dir."""
    base_dir = base_dir.resolve()
    candidate = base_dir
    for part in parts:
        candidate = candidate / part
    resolved = candidate.resolve()
    if resolved == base_dir or base_dir not in resolved.parents:
        raise ValueError("Path traversal attempt")
    return resolved


def sanitize_name_hint(hint: str | None) -> str:
    """Reduce a client-supplied filename to a harmless basename.

    The hint is for display and extension inference only; it never decides
    where a file lands.
    """
    name = (hint or "").replace("\\", "/").rsplit("/", 1)[-1]
    name = _UNSAFE_CHARS_RE.sub("_", name).strip().lstrip(".")
    if len(name) > _MAX_HINT_LENGTH:
        suffix = Path(name).suffix[:16]
        name = name[: _MAX_HINT_LENGTH - len(suffix)] + suffix
    return name or "file"


def generate_unique_name(hint: str | None) -> str:
    """Return ``<uuid4>-<sanitized hint>``, keeping the hint's extension."""
    return f"{uuid.uuid4()}-{sanitize_name_hint(hint)}"
