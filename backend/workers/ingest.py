from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path

from backend.application.ingest import IngestAdapter, is_pdf_name

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WatcherConfig:
    source_dir: Path
    interval: float = 3.0
    actor: str = "system"


class WatcherHandle:
    """Cancellation handle returned by :meth:`ScannerWatcher.start`."""

    def __init__(self, stop_event: asyncio.Event, task: asyncio.Task[None]) -> None:
        self._stop_event = stop_event
        self.task = task

    def stop(self) -> None:
        """Stop future polls; a tick already running is left to finish."""

        self._stop_event.set()

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()


class ScannerWatcher:
    """Polls a scanner drop folder and ingests stable PDFs into the inbox."""

    def __init__(self, adapter: IngestAdapter, config: WatcherConfig) -> None:
        self._adapter = adapter
        self._config = config

    @staticmethod
    def _list_candidates(directory: Path) -> list[Path]:
        directory.mkdir(parents=True, exist_ok=True)
        return sorted(path for path in directory.iterdir() if path.is_file() and is_pdf_name(path.name))

    async def tick(self) -> list[str]:
        """Run one poll pass and return the ids of ingested documents."""

        source_dir = self._config.source_dir
        try:
            candidates = await asyncio.to_thread(self._list_candidates, source_dir)
        except OSError as exc:
            logger.error("cannot read scanner folder %s: %s", source_dir, exc)
            return []

        ingested: list[str] = []
        for path in candidates:
            try:
                if not await self._adapter.is_stable(path):
                    logger.info("file still being written, skipped: %s", path.name)
                    continue
                record = await self._adapter.ingest_file(path, origin="scanner", actor=self._config.actor)
            except Exception:
                logger.exception("ingest of %s failed", path.name)
                continue
            ingested.append(record["docId"])
        return ingested

    async def _run(self, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            await self.tick()
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self._config.interval)
            except asyncio.TimeoutError:
                pass

    def start(self) -> WatcherHandle:
        """Schedule the poll loop on the running event loop."""

        logger.info(
            "scanner watcher started (every %.1fs): %s -> %s",
            self._config.interval,
            self._config.source_dir,
            self._adapter.inbox_dir,
        )
        stop_event = asyncio.Event()
        task = asyncio.create_task(self._run(stop_event), name="scanner-watcher")
        return WatcherHandle(stop_event, task)
