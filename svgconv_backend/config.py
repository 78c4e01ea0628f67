from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv


# Directory names under DATA_DIR. File names are the only addressing scheme.
INCOMING_SUBDIR = "uploads"
CONVERTED_SUBDIR = "converted"

# Every conversion produces SVG.
OUTPUT_EXT = ".svg"

# Header carrying the signed token.
API_KEY_HEADER = "api-key"

ALLOWED_MIMES = frozenset(
    {
        "image/png",
        "image/jpeg",
        "image/jpg",
        "image/gif",
        "image/bmp",
        "image/tiff",
        "image/webp",
        "image/svg+xml",
        "image/x-icon",
        "image/vnd.microsoft.icon",
        "application/pdf",
        "application/postscript",
        "application/eps",
        "image/x-eps",
    }
)


@dataclass(frozen=True)
class RetentionPolicy:
    # How often the sweeper runs.
    sweep_interval_seconds: float = 30 * 60
    # Maximum age of an incoming file before it and its SVG are removed.
    ttl_seconds: float = 30 * 60


@dataclass(frozen=True)
class Settings:
    data_dir: Path
    base_url: str
    jwt_secret: str = ""
    host: str = "0.0.0.0"
    port: int = 4000
    retention: RetentionPolicy = field(default_factory=RetentionPolicy)
    max_upload_bytes: int = 100 * 1024 * 1024  # 100MB
    fetch_timeout_seconds: float = 30.0
    max_fetch_bytes: int = 100 * 1024 * 1024
    converter_binary: str = "inkscape"
    convert_timeout_seconds: float = 300.0
    log_level: str = "INFO"

    @property
    def incoming_dir(self) -> Path:
        return self.data_dir / INCOMING_SUBDIR

    @property
    def converted_dir(self) -> Path:
        return self.data_dir / CONVERTED_SUBDIR


def _number(env: Mapping[str, str], key: str, default: str, cast):
    raw = env.get(key)
    if raw is None or not raw.strip():
        raw = default
    try:
        value = cast(raw.strip())
    except ValueError:
        raise ValueError(f"{key} must be a number, got {raw!r}") from None
    if value <= 0:
        raise ValueError(f"{key} must be positive, got {raw!r}")
    return value


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """Build Settings from the environment (and a .env file when present).

    Passing ``env`` skips .env loading and reads only from that mapping.
    """
    if env is None:
        load_dotenv()
        env = os.environ

    port = _number(env, "PORT", "4000", int)

    data_raw = env.get("DATA_DIR")
    if data_raw and data_raw.strip():
        data_dir = Path(data_raw)
    else:
        data_dir = Path.cwd()

    base_url = (env.get("BASE_URL") or "").strip() or f"http://localhost:{port}"

    return Settings(
        data_dir=data_dir.resolve(),
        base_url=base_url.rstrip("/"),
        jwt_secret=env.get("JWT_SECRET", ""),
        host=env.get("HOST", "0.0.0.0"),
        port=port,
        retention=RetentionPolicy(
            sweep_interval_seconds=_number(env, "CLEANUP_INTERVAL_SECONDS", "1800", float),
            ttl_seconds=_number(env, "FILE_TTL_SECONDS", "1800", float),
        ),
        max_upload_bytes=_number(env, "MAX_UPLOAD_BYTES", str(100 * 1024 * 1024), int),
        fetch_timeout_seconds=_number(env, "FETCH_TIMEOUT_SECONDS", "30", float),
        max_fetch_bytes=_number(env, "MAX_FETCH_BYTES", str(100 * 1024 * 1024), int),
        converter_binary=env.get("CONVERTER_BINARY", "inkscape") or "inkscape",
        convert_timeout_seconds=_number(env, "CONVERT_TIMEOUT_SECONDS", "300", float),
        log_level=(env.get("LOG_LEVEL") or "INFO").upper(),
    )
