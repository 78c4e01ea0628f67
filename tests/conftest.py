from __future__ import annotations

import os
import tempfile
from pathlib import Path

import pytest

# server.py builds a module-level app at import; keep it out of the repo.
os.environ.setdefault("DATA_DIR", tempfile.mkdtemp(prefix="svgconv-tests-"))
os.environ.setdefault("JWT_SECRET", "test-signing-key-0123456789abcdef0123456789")

from svgconv_backend.auth import issue_token  # noqa: E402
from svgconv_backend.config import RetentionPolicy, Settings  # noqa: E402
from svgconv_backend.errors import ConversionError  # noqa: E402
from svgconv_backend.file_store import FileStore  # noqa: E402


TEST_SECRET = "unit-test-secret-0123456789abcdef0123456789"
SVG_BYTES = b'<svg xmlns="http://www.w3.org/2000/svg" width="1" height="1"></svg>'
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


class FakeConverter:
    """Stands in for inkscape in API tests."""

    def __init__(self, fail_with: str | None = None) -> None:
        self.fail_with = fail_with
        self.calls: list[tuple[Path, Path]] = []

    async def convert(self, input_path: Path, output_path: Path) -> Path:
        self.calls.append((input_path, output_path))
        if self.fail_with is not None:
            raise ConversionError("Conversion failed", details=self.fail_with)
        output_path.write_bytes(SVG_BYTES)
        return output_path


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        data_dir=tmp_path,
        base_url="http://testserver",
        jwt_secret=TEST_SECRET,
        retention=RetentionPolicy(sweep_interval_seconds=1800, ttl_seconds=1800),
        max_upload_bytes=1024,
    )


@pytest.fixture
def store(settings: Settings) -> FileStore:
    store = FileStore(settings.incoming_dir, settings.converted_dir)
    store.ensure_dirs()
    return store


@pytest.fixture
def token() -> str:
    return issue_token(TEST_SECRET)


@pytest.fixture
def write_script(tmp_path: Path):
    def _write(name: str, body: str) -> Path:
        path = tmp_path / name
        path.write_text("#!/bin/sh\n" + body)
        path.chmod(0o755)
        return path

    return _write
