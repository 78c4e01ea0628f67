from __future__ import annotations

import enum
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional

from .config import OUTPUT_EXT
from .security import is_safe_basename, safe_join


logger = logging.getLogger(__name__)


class Role(str, enum.Enum):
    INCOMING = "incoming"
    CONVERTED = "converted"


@dataclass(frozen=True)
class StoredFile:
    name: str
    role: Role
    path: Path

    def created_at(self) -> float:
        """Filesystem-reported creation time (epoch seconds).

        Uses the birth time where the platform reports one, otherwise the
        modification time; stored files are never rewritten so both mark the
        moment the file was put in place.
        """
        st = self.path.stat()
        return getattr(st, "st_birthtime", None) or st.st_mtime


def converted_name_for(incoming_name: str) -> str:
    """Name of the SVG produced from an incoming file: same stem, fixed extension.

    An input that is already an SVG gets ``<stem>.converted.svg`` so the two
    files never share a name.
    """
    path = Path(incoming_name)
    if path.suffix.lower() == OUTPUT_EXT:
        return f"{path.stem}.converted{OUTPUT_EXT}"
    return f"{path.stem}{OUTPUT_EXT}"


class FileStore:
    """Two flat directories (incoming originals, converted outputs).

    The directory listing is the index. There is no locking: every method is a
    single filesystem operation on a single name.
    """

    def __init__(self, incoming_dir: Path, converted_dir: Path) -> None:
        self._dirs = {
            Role.INCOMING: Path(incoming_dir).resolve(),
            Role.CONVERTED: Path(converted_dir).resolve(),
        }

    def directory(self, role: Role) -> Path:
        return self._dirs[role]

    def ensure_dirs(self) -> None:
        for path in self._dirs.values():
            path.mkdir(parents=True, exist_ok=True)

    def path_for(self, role: Role, name: str) -> Path:
        if not is_safe_basename(name):
            raise ValueError(f"Invalid file name: {name!r}")
        return safe_join(self._dirs[role], name)

    def put(self, role: Role, name: str, data: bytes) -> StoredFile:
        """Write ``data`` under ``name`` atomically.

        Bytes go to a hidden ``.<name>.part`` file first and are renamed into
        place, so a failed write never leaves a visible file behind. Raises
        OSError on write failure.
        """
        final = self.path_for(role, name)
        tmp = final.with_name(f".{name}.part")
        try:
            with open(tmp, "wb") as fh:
                fh.write(data)
            os.replace(tmp, final)
        except OSError:
            try:
                tmp.unlink()
            except FileNotFoundError:
                pass
            raise
        return StoredFile(name=name, role=role, path=final)

    def exists(self, role: Role, name: str) -> bool:
        """Advisory only: the file may be gone by the next call."""
        try:
            return self.path_for(role, name).is_file()
        except ValueError:
            return False

    def get(self, role: Role, name: str) -> Optional[StoredFile]:
        if not self.exists(role, name):
            return None
        return StoredFile(name=name, role=role, path=self.path_for(role, name))

    def find(self, name: str) -> Optional[StoredFile]:
        """Look up ``name`` in the incoming directory, then the converted one."""
        for role in (Role.INCOMING, Role.CONVERTED):
            stored = self.get(role, name)
            if stored is not None:
                return stored
        return None

    def delete(self, role: Role, name: str) -> None:
        """Remove one file. Raises FileNotFoundError if it is already gone."""
        self.path_for(role, name).unlink()

    def discard(self, stored: StoredFile) -> bool:
        """Delete ``stored``, logging instead of raising. Returns True if removed."""
        try:
            self.delete(stored.role, stored.name)
        except FileNotFoundError:
            logger.debug("Already gone: %s/%s", stored.role.value, stored.name)
            return False
        except OSError:
            logger.exception("Failed to delete %s file %s", stored.role.value, stored.name)
            return False
        return True

    def iter_files(self, role: Role) -> Iterator[StoredFile]:
        """Yield visible regular files. Raises OSError if the listing fails."""
        directory = self._dirs[role]
        with os.scandir(directory) as entries:
            for entry in entries:
                if not is_safe_basename(entry.name):
                    continue
                if not entry.is_file(follow_symlinks=False):
                    continue
                yield StoredFile(name=entry.name, role=role, path=directory / entry.name)
