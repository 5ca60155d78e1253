"""
skyplace Command Log

Deduplicated, append-only set of accepted pixel commands. Single source
of truth for the derived canvas view.

Architecture Invariants:
- Keyed by commandId (field-wise content hash), never by object identity
- Dedupe check + insert is atomic under one lock
- snapshot() returns a point-in-time copy in arrival order
- No deletion, no eviction, no mutation of accepted commands
"""

import threading
from typing import Dict, List

from .commands import PixelCommand


class CommandLog:
    """
    In-memory command store.

    Writers should go through Ingest (single writer); readers call
    snapshot() from anywhere.
    """

    def __init__(self):
        self._commands: Dict[str, PixelCommand] = {}
        self._lock = threading.Lock()

    def insert(self, command: PixelCommand) -> bool:
        """
        Insert a command.

        Returns:
            True if newly added
            False if a field-wise identical command is already present
        """
        with self._lock:
            if command.commandId in self._commands:
                return False
            self._commands[command.commandId] = command
            return True

    def snapshot(self) -> List[PixelCommand]:
        """Arrival-ordered copy of every accepted command."""
        with self._lock:
            return list(self._commands.values())

    def toRecords(self) -> List[dict]:
        """Snapshot as wire records ({actor, x, y, colour, timestamp})."""
        return [command.toDict() for command in self.snapshot()]

    def __len__(self) -> int:
        with self._lock:
            return len(self._commands)
