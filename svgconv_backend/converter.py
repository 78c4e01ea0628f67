from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional, Sequence

from .errors import ConversionError


logger = logging.getLogger(__name__)

_MAX_DIAGNOSTIC_CHARS = 4000


class InkscapeConverter:
    """Run the external converter as a child process, one per call.

    Children are independent; there is no queue or concurrency cap. The call
    awaits the child without blocking the event loop.
    """

    def __init__(self, binary: str = "inkscape", timeout_seconds: Optional[float] = 300.0) -> None:
        self.binary = binary
        self.timeout_seconds = timeout_seconds

    def build_command(self, input_path: Path, output_path: Path) -> Sequence[str]:
        return [
            self.binary,
            str(input_path),
            "--export-type=svg",
            f"--export-filename={output_path}",
        ]

    async def convert(self, input_path: Path, output_path: Path) -> Path:
        """Convert ``input_path`` into ``output_path``.

        Raises ConversionError with the captured stderr when the process cannot
        start, exits non-zero, times out, or leaves no output behind.
        """
        argv = self.build_command(input_path, output_path)
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise ConversionError("Conversion failed", details=f"Cannot run {self.binary}: {exc}") from exc

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            await _kill(proc)
            _remove_partial(output_path)
            raise ConversionError(
                "Conversion failed", details=f"Converter timed out after {self.timeout_seconds}s"
            ) from None
        except asyncio.CancelledError:
            # Client went away; do not leave the child running.
            await _kill(proc)
            _remove_partial(output_path)
            raise

        diagnostic = _decode(stderr) or _decode(stdout)
        if proc.returncode != 0:
            _remove_partial(output_path)
            raise ConversionError("Conversion failed", details=diagnostic or f"exit status {proc.returncode}")
        if not output_path.is_file():
            raise ConversionError("Conversion failed", details=diagnostic or "Converter produced no output")

        logger.debug("Converted %s -> %s", input_path.name, output_path.name)
        return output_path


async def _kill(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is not None:
        return
    try:
        proc.kill()
    except ProcessLookupError:
        return
    await proc.wait()


def _remove_partial(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError:
        logger.warning("Could not remove partial output %s", path, exc_info=True)


def _decode(data: Optional[bytes]) -> str:
    text = (data or b"").decode("utf-8", errors="replace").strip()
    return text[-_MAX_DIAGNOSTIC_CHARS:]
