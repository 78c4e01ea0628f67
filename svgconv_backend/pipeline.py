from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from .errors import ConversionError, StorageError
from .file_store import FileStore, Role, StoredFile, converted_name_for
from .security import generate_unique_name


logger = logging.getLogger(__name__)


class Converter(Protocol):
    async def convert(self, input_path, output_path): ...


@dataclass(frozen=True)
class ConversionOutcome:
    original: StoredFile
    converted: StoredFile


class ConversionPipeline:
    """store -> convert, with immediate cleanup of the input on failure."""

    def __init__(self, store: FileStore, converter: Converter, base_url: str) -> None:
        self.store = store
        self.converter = converter
        self.base_url = base_url.rstrip("/")

    def file_url(self, stored: StoredFile) -> str:
        return f"{self.base_url}/files/{stored.name}"

    def store_incoming(self, name_hint: str, data: bytes) -> StoredFile:
        name = generate_unique_name(name_hint)
        try:
            return self.store.put(Role.INCOMING, name, data)
        except OSError as exc:
            logger.error("Failed to store upload %s: %s", name, exc)
            raise StorageError("Failed to store file") from exc

    async def convert(self, original: StoredFile) -> ConversionOutcome:
        output_name = converted_name_for(original.name)
        output_path = self.store.path_for(Role.CONVERTED, output_name)
        try:
            await self.converter.convert(original.path, output_path)
        except ConversionError as exc:
            logger.error("Converter error for %s: %s", original.name, exc.details)
            self.store.discard(original)
            raise
        except BaseException:
            self.store.discard(original)
            raise
        return ConversionOutcome(
            original=original,
            converted=StoredFile(name=output_name, role=Role.CONVERTED, path=output_path),
        )

    async def run(self, name_hint: str, data: bytes) -> ConversionOutcome:
        original = self.store_incoming(name_hint, data)
        return await self.convert(original)

    def describe(self, outcome: ConversionOutcome) -> dict:
        return {
            "success": True,
            "message": "File converted successfully",
            "files": {
                "original": self.file_url(outcome.original),
                "converted": self.file_url(outcome.converted),
            },
        }
