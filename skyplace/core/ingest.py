"""
skyplace Ingest Actor

Single writer for the command log. Producers (backfill, firehose) submit
candidate commands onto an internal queue; one writer task drains it and
performs the dedupe + insert.

Architecture Invariants:
- Only the writer task calls CommandLog.insert()
- submit() never blocks and never touches the log
- flush() returns once everything submitted so far has been written
- stop() drains the queue first, so already-submitted commands are never lost
- A duplicate is not an error: it is counted and dropped

Ingest Flow:
  1. Producer calls submit(command, source)
  2. Writer task pops (command, source)
  3. CommandLog.insert(): True = accepted, False = duplicate
  4. Per-source counters updated
"""

import asyncio
from typing import Dict, Optional

from .commandLog import CommandLog
from .commands import PixelCommand
from sdk.logging import getLogger


SOURCES = ('backfill', 'live')


class IngestError(Exception):
    """Ingest lifecycle error"""
    pass


class Ingest:
    """
    Ingest actor owning writes to a CommandLog.

    Usage:
        ingest = Ingest(commandLog)
        await ingest.start()
        ingest.submit(command, source='live')
        await ingest.flush()
        await ingest.stop()
    """

    def __init__(self, commandLog: CommandLog, logEvery: int = 100):
        """
        Args:
            commandLog: Log this actor writes to
            logEvery: Emit a throughput line every N accepted live commands
        """
        self.commandLog = commandLog
        self.logEvery = logEvery
        self.log = getLogger()

        self._queue: asyncio.Queue = asyncio.Queue()
        self._writerTask: Optional[asyncio.Task] = None
        self._stopped = False

        self.counts: Dict[str, Dict[str, int]] = {
            source: {'accepted': 0, 'duplicate': 0} for source in SOURCES
        }

    @property
    def running(self) -> bool:
        return self._writerTask is not None and not self._writerTask.done()

    async def start(self):
        """Start the writer task."""
        if self.running:
            raise IngestError("Ingest already running")
        self._stopped = False
        self._writerTask = asyncio.create_task(self._writeLoop())
        self.log.info("[Ingest] Writer started")

    def submit(self, command: PixelCommand, source: str = 'live'):
        """
        Queue a candidate command for insertion.

        Raises:
            IngestError: After stop(), or for an unknown source label
        """
        if self._stopped:
            raise IngestError("Ingest stopped")
        if source not in self.counts:
            raise IngestError(f"Unknown ingest source: {source}")
        self._queue.put_nowait((command, source))

    async def flush(self):
        """Wait until every command submitted so far has been written."""
        if not self.running:
            raise IngestError("Ingest not running")
        await self._queue.join()

    async def stop(self):
        """Drain pending submissions, then stop the writer task."""
        if self._writerTask is None:
            return

        self._stopped = True
        if self.running:
            await self._queue.join()

        self._writerTask.cancel()
        try:
            await self._writerTask
        except asyncio.CancelledError:
            pass
        self._writerTask = None

        self.log.info("[Ingest] Writer stopped", logSize=len(self.commandLog), counts=self.counts)

    def getStats(self) -> Dict[str, object]:
        return {
            'logSize': len(self.commandLog),
            'pending': self._queue.qsize(),
            'counts': {source: dict(c) for source, c in self.counts.items()},
        }

    async def _writeLoop(self):
        while True:
            command, source = await self._queue.get()
            try:
                self._write(command, source)
            except Exception as e:
                self.log.error(f"[Ingest] Insert failed: {e}", exc_info=True)
            finally:
                self._queue.task_done()

    def _write(self, command: PixelCommand, source: str):
        if self.commandLog.insert(command):
            self.counts[source]['accepted'] += 1
            self.log.debug("[Ingest] Accepted", source=source, actor=command.actor,
                           x=command.x, y=command.y, colour=command.colour)
            accepted = self.counts[source]['accepted']
            if source == 'live' and self.logEvery and accepted % self.logEvery == 0:
                self.log.info(f"[Ingest] Accepted {accepted} live commands total",
                              logSize=len(self.commandLog))
        else:
            self.counts[source]['duplicate'] += 1
            self.log.debug("[Ingest] Duplicate dropped", source=source, commandId=command.commandId)
