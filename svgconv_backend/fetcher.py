from __future__ import annotations

import logging
import posixpath
from dataclasses import dataclass
from typing import Optional
from urllib.parse import unquote, urlsplit

import httpx

from .errors import FetchError, PayloadTooLargeError, ValidationError
from .intake import ensure_allowed_mime, with_extension_for


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FetchedFile:
    name_hint: str
    content_type: str
    data: bytes


def name_hint_from_url(url: str) -> str:
    """Last path segment of ``url``, query and fragment dropped."""
    path = unquote(urlsplit(url).path or "")
    return posixpath.basename(path.rstrip("/"))


class RemoteFetcher:
    """Download a remote file with a bounded timeout and size.

    The body is only returned after the whole response arrived and passed the
    content-type check; nothing touches the disk here.
    """

    def __init__(
        self,
        timeout_seconds: float = 30.0,
        max_bytes: int = 100 * 1024 * 1024,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.timeout_seconds = timeout_seconds
        self.max_bytes = max_bytes
        self._transport = transport

    async def fetch(self, url: str) -> FetchedFile:
        if not isinstance(url, str) or not url.strip():
            raise ValidationError("fileUrl is required")
        url = url.strip()
        if urlsplit(url).scheme.lower() not in ("http", "https"):
            raise ValidationError("fileUrl must be an http(s) URL")

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds,
                follow_redirects=True,
                transport=self._transport,
            ) as client:
                async with client.stream("GET", url) as response:
                    if response.status_code >= 400:
                        raise FetchError(
                            "Failed to fetch file",
                            details=f"Remote server answered {response.status_code}",
                        )
                    content_type = ensure_allowed_mime(response.headers.get("content-type"))
                    declared = response.headers.get("content-length")
                    if declared and declared.isdigit() and int(declared) > self.max_bytes:
                        raise PayloadTooLargeError("File too large", details=f"limit is {self.max_bytes} bytes")
                    chunks = []
                    received = 0
                    async for chunk in response.aiter_bytes():
                        received += len(chunk)
                        if received > self.max_bytes:
                            raise PayloadTooLargeError("File too large", details=f"limit is {self.max_bytes} bytes")
                        chunks.append(chunk)
        except httpx.InvalidURL as exc:
            raise ValidationError("fileUrl must be an http(s) URL", details=str(exc)) from exc
        except httpx.TimeoutException as exc:
            logger.warning("Timed out fetching %s", url)
            raise FetchError("Failed to fetch file", details="Remote server timed out") from exc
        except httpx.HTTPError as exc:
            logger.warning("Error fetching %s: %s", url, exc)
            raise FetchError("Failed to fetch file", details=str(exc) or exc.__class__.__name__) from exc

        return FetchedFile(
            name_hint=with_extension_for(name_hint_from_url(url), content_type),
            content_type=content_type,
            data=b"".join(chunks),
        )
