"""
skyplace Pixel Commands

Defines the placement command, its content-derived identity, and the
reply-text parser that produces it.

Command Contract:
- actor: stable author identifier (DID), trusted as reported by the feed
- x, y: integer grid coordinates, 0 <= x < width, 0 <= y < height
- colour: '#RRGGBB', uppercase after normalization
- timestamp: author-declared creation time of the reply, normalized to
  UTC 'YYYY-MM-DDTHH:MM:SS.mmmZ' so text order is chronological order
- Immutable once constructed

CommandId Construction Contract:
  SHA256(cidV1 + canonicalJson({actor, x, y, colour, timestamp}))

  Two independently constructed commands with identical fields share a
  commandId, which is what the command log dedupes on.

Parser Contract:
  Reply text is searched for 'pixel <x>,<y> <#RRGGBB>' (whitespace around
  the comma tolerated). Only the first match is honored. Malformed or
  out-of-range input yields None, never an exception.
"""

import re
import hashlib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .canonical_json import canonicalJsonBytes
from sdk.logging import getLogger


log = getLogger()

COMMAND_PATTERN = re.compile(r'pixel\s*([0-9]+)\s*,\s*([0-9]+)\s*(#[0-9A-Fa-f]{6})')
COLOUR_PATTERN = re.compile(r'^#[0-9A-F]{6}$')


class CommandError(Exception):
    """Command construction error (bad timestamp, colour or coordinates)"""
    pass


def normalizeColour(colour: str) -> str:
    """
    Uppercase a '#RRGGBB' colour.

    Raises:
        CommandError: If the value is not a 6-digit hex colour with '#' prefix
    """
    if not isinstance(colour, str):
        raise CommandError(f"Colour must be a string, got {type(colour).__name__}")
    normalized = colour.strip().upper()
    if not COLOUR_PATTERN.match(normalized):
        raise CommandError(f"Invalid colour: {colour!r}")
    return normalized


def normalizeTimestamp(value: str) -> str:
    """
    Normalize an ISO8601 timestamp to UTC 'YYYY-MM-DDTHH:MM:SS.mmmZ'.

    Naive timestamps are taken as UTC. Sub-millisecond precision is
    truncated so every path that sees the same reply produces the same text.

    Raises:
        CommandError: If the value is not a parseable ISO8601 timestamp, or
            cannot be shifted to UTC inside the supported date range
    """
    if not isinstance(value, str) or not value:
        raise CommandError("Missing or invalid timestamp")

    try:
        dt = datetime.fromisoformat(value.strip().replace('Z', '+00:00'))
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        dt = dt.astimezone(timezone.utc)
    except (ValueError, OverflowError) as e:
        raise CommandError(f"Invalid timestamp: {e}")

    # strftime does not zero-pad years below 1000 on every platform
    return f"{dt.year:04d}-{dt:%m-%dT%H:%M:%S}.{dt.microsecond // 1000:03d}Z"


def computeCommandId(actor: str, x: int, y: int, colour: str, timestamp: str) -> str:
    """
    Compute content-derived commandId hash.

    Returns:
        Hex-encoded SHA256 hash (64 characters)
    """
    hasher = hashlib.sha256()

    # Version prefix for future compatibility
    hasher.update(b"cidV1")
    hasher.update(canonicalJsonBytes({
        'actor': actor,
        'x': x,
        'y': y,
        'colour': colour,
        'timestamp': timestamp,
    }))

    return hasher.hexdigest()


@dataclass(frozen=True)
class Placement:
    """A parsed 'pixel x,y #RRGGBB' request, not yet tied to a reply time."""
    actor: str
    x: int
    y: int
    colour: str

    def at(self, createdAt: str) -> 'PixelCommand':
        """
        Pair with the reply's declared creation time.

        Raises:
            CommandError: If createdAt is not a valid timestamp
        """
        return PixelCommand.create(self.actor, self.x, self.y, self.colour, createdAt)


@dataclass(frozen=True)
class PixelCommand:
    """
    Accepted pixel placement.

    Construct through create() so colour and timestamp are
    normalized before commandId is derived.
    """
    actor: str
    x: int
    y: int
    colour: str
    timestamp: str
    commandId: str = field(default='', compare=False)

    def __post_init__(self):
        if not self.commandId:
            object.__setattr__(self, 'commandId', computeCommandId(
                self.actor, self.x, self.y, self.colour, self.timestamp))

    @staticmethod
    def create(actor: str, x: int, y: int, colour: str, timestamp: str) -> 'PixelCommand':
        """
        Create a PixelCommand with normalized colour/timestamp and computed commandId.

        Raises:
            CommandError: On empty actor, negative or non-integer coordinates,
                bad colour or bad timestamp
        """
        if not actor or not isinstance(actor, str):
            raise CommandError("Missing or invalid actor")
        for name, value in (('x', x), ('y', y)):
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise CommandError(f"Invalid {name} coordinate: {value!r}")

        return PixelCommand(
            actor=actor,
            x=x,
            y=y,
            colour=normalizeColour(colour),
            timestamp=normalizeTimestamp(timestamp)
        )

    def toDict(self) -> Dict[str, Any]:
        """Convert to the wire record served at the read boundary"""
        return {
            'actor': self.actor,
            'x': self.x,
            'y': self.y,
            'colour': self.colour,
            'timestamp': self.timestamp,
        }


def parseCommand(actor: str, text: str, width: int, height: int) -> Optional[Placement]:
    """
    Parse the first 'pixel x,y #RRGGBB' in a reply.

    Args:
        actor: Author identifier of the reply
        text: Raw reply text
        width: Canvas width (x must be < width)
        height: Canvas height (y must be < height)

    Returns:
        Placement with uppercase colour, or None when nothing valid matched
    """
    if not isinstance(actor, str) or not actor or not isinstance(text, str):
        return None

    match = COMMAND_PATTERN.search(text)
    if match is None:
        log.debug("[Parser] No command", actor=actor)
        return None

    try:
        x = int(match.group(1), 10)
        y = int(match.group(2), 10)
    except ValueError:
        # Past the interpreter's integer string conversion limit
        log.debug("[Parser] Coordinate too long", actor=actor)
        return None
    colour = match.group(3).upper()

    if not (0 <= x < width and 0 <= y < height):
        log.debug("[Parser] Out of range", actor=actor, x=x, y=y, width=width, height=height)
        return None

    log.debug("[Parser] Parsed command", actor=actor, x=x, y=y, colour=colour)
    return Placement(actor=actor, x=x, y=y, colour=colour)
