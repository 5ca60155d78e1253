"""
skyplace Canvas Reducer

Pure function: commands → CanvasView. No IO, no shared state, nothing
cached between calls. The whole log is replayed from a blank canvas on
every read.

Replay Contract:
  1. Sort chronologically (ordering.sortCommands, arrival order breaks ties)
  2. Start every cell at the background colour
  3. Each command overwrites canvas[y][x]; last write in sorted order wins
  4. Per-actor stats accumulate in the same pass
  5. History is the last historyLimit commands of the sorted sequence,
     oldest first

Determinism: the same input sequence always yields an identical view.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from .commands import PixelCommand
from .ordering import sortCommands
from sdk.logging import getLogger


log = getLogger()

DEFAULT_BACKGROUND = '#FFFFFF'
DEFAULT_HISTORY_LIMIT = 100


@dataclass
class ActorStats:
    """Per-actor placement summary"""
    pixelsPlaced: int = 0
    lastPlaced: Optional[str] = None
    colours: Dict[str, int] = field(default_factory=dict)

    def record(self, command: PixelCommand):
        self.pixelsPlaced += 1
        self.lastPlaced = command.timestamp
        self.colours[command.colour] = self.colours.get(command.colour, 0) + 1

    def toDict(self) -> Dict[str, Any]:
        return {
            'pixelsPlaced': self.pixelsPlaced,
            'lastPlaced': self.lastPlaced,
            'colours': dict(self.colours),
        }


@dataclass
class CanvasView:
    """
    Derived view of the command log.

    canvas is row-major: canvas[y][x].
    lastUpdate is the latest command timestamp, None for an empty log.
    """
    width: int
    height: int
    canvas: List[List[str]]
    history: List[PixelCommand]
    stats: Dict[str, ActorStats]
    lastUpdate: Optional[str] = None

    def toDict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization"""
        return {
            'width': self.width,
            'height': self.height,
            'canvas': [list(row) for row in self.canvas],
            'history': [command.toDict() for command in self.history],
            'stats': {actor: stats.toDict() for actor, stats in self.stats.items()},
            'lastUpdate': self.lastUpdate,
        }


def buildCanvasView(commands: Iterable[PixelCommand], width: int, height: int,
                    historyLimit: int = DEFAULT_HISTORY_LIMIT,
                    background: str = DEFAULT_BACKGROUND) -> CanvasView:
    """
    Replay commands into a canvas, history and per-actor stats.

    Args:
        commands: Commands in arrival order (e.g. CommandLog.snapshot())
        width: Canvas width
        height: Canvas height
        historyLimit: Number of most recent commands kept in history
        background: Colour of cells no command has touched

    Returns:
        CanvasView (new objects, nothing shared with the input)
    """
    canvas = [[background] * width for _ in range(height)]
    stats: Dict[str, ActorStats] = {}
    replayed: List[PixelCommand] = []

    for command in sortCommands(list(commands)):
        # Only reachable if the log was filled under a larger canvas config
        if not (0 <= command.x < width and 0 <= command.y < height):
            log.warning("[Reducer] Command outside canvas skipped",
                        actor=command.actor, x=command.x, y=command.y)
            continue

        canvas[command.y][command.x] = command.colour

        actorStats = stats.get(command.actor)
        if actorStats is None:
            actorStats = stats[command.actor] = ActorStats()
        actorStats.record(command)

        replayed.append(command)

    history = replayed[-historyLimit:] if historyLimit > 0 else []

    return CanvasView(
        width=width,
        height=height,
        canvas=canvas,
        history=history,
        stats=stats,
        lastUpdate=replayed[-1].timestamp if replayed else None
    )
