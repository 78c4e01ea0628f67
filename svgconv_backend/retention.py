"""Retention sweeper: removes expired uploads and their SVG counterparts.

Runs alongside request handlers with no locking between them. Each file is
judged by its own creation time and deleted with a single unlink, and a file
that disappears underneath the sweep is not an error.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from .config import RetentionPolicy
from .file_store import FileStore, Role, converted_name_for


logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    scanned: int = 0
    deleted_incoming: list[str] = field(default_factory=list)
    deleted_converted: list[str] = field(default_factory=list)
    failures: int = 0
    aborted: bool = False


class RetentionSweeper:
    def __init__(
        self,
        store: FileStore,
        policy: RetentionPolicy,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.policy = policy
        self._clock = clock

    def sweep_once(self, now: Optional[float] = None) -> SweepReport:
        """Run one sweep. Never raises for filesystem errors."""
        report = SweepReport()
        try:
            entries = list(self.store.iter_files(Role.INCOMING))
        except OSError:
            logger.exception("Cleanup error: cannot list %s", self.store.directory(Role.INCOMING))
            report.aborted = True
            return report

        for stored in entries:
            report.scanned += 1
            try:
                created_at = stored.created_at()
            except FileNotFoundError:
                # Removed by a request handler or an earlier failure path.
                continue
            except OSError:
                logger.warning("Cannot stat %s, retrying next sweep", stored.name, exc_info=True)
                report.failures += 1
                continue

            # Age is measured per file, so files created mid-sweep stay young.
            current = self._clock() if now is None else now
            if current - created_at < self.policy.ttl_seconds:
                continue

            try:
                self.store.delete(Role.INCOMING, stored.name)
            except FileNotFoundError:
                pass
            except OSError:
                logger.error("Failed to delete uploaded file: %s", stored.name, exc_info=True)
                report.failures += 1
            else:
                logger.info("Deleted uploaded file: %s", stored.name)
                report.deleted_incoming.append(stored.name)

            converted = converted_name_for(stored.name)
            if not self.store.exists(Role.CONVERTED, converted):
                continue
            try:
                self.store.delete(Role.CONVERTED, converted)
            except FileNotFoundError:
                pass
            except OSError:
                logger.error("Failed to delete converted file: %s", converted, exc_info=True)
                report.failures += 1
            else:
                logger.info("Deleted converted file: %s", converted)
                report.deleted_converted.append(converted)

        return report

    async def run_forever(self, run_immediately: bool = True) -> None:
        """Sweep every ``sweep_interval_seconds`` until cancelled."""
        logger.info(
            "File cleanup service started (interval=%ss, ttl=%ss)",
            self.policy.sweep_interval_seconds,
            self.policy.ttl_seconds,
        )
        if not run_immediately:
            await asyncio.sleep(self.policy.sweep_interval_seconds)
        while True:
            try:
                await asyncio.to_thread(self.sweep_once)
            except Exception:
                # A bad iteration must not stop the loop.
                logger.exception("Cleanup sweep failed")
            await asyncio.sleep(self.policy.sweep_interval_seconds)
