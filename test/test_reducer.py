"""
Canvas Reducer Tests

Tests for:
- Chronological replay regardless of arrival order
- Last-write-wins per cell
- Bounded history, per-actor stats, lastUpdate
- Determinism of the serialized view

Run: python -m pytest test/test_reducer.py -v
"""

import random
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from skyplace.core.canonical_json import canonicalJsonBytes
from skyplace.core.commands import PixelCommand
from skyplace.core.ordering import sortCommands
from skyplace.core.reducer import buildCanvasView


ALICE = 'did:plc:alice'
BOB = 'did:plc:bob'
BASE = datetime(2024, 1, 1, tzinfo=timezone.utc)


def at(seconds: float) -> str:
    return (BASE + timedelta(seconds=seconds)).isoformat()


def cmd(actor=ALICE, x=0, y=0, colour='#FF0000', seconds=0.0):
    return PixelCommand.create(actor, x, y, colour, at(seconds))


# =============================================================================
# ORDERING
# =============================================================================

class TestOrdering:
    """Timestamp order with stable tie-break."""

    def test_sort_is_stable(self):
        a = cmd(x=1, seconds=5)
        b = cmd(x=2, seconds=5)
        c = cmd(x=3, seconds=1)
        assert sortCommands([a, b, c]) == [c, a, b]
        assert sortCommands([b, a, c]) == [c, b, a]

    def test_sort_does_not_modify_input(self):
        commands = [cmd(seconds=2), cmd(seconds=1)]
        original = list(commands)
        sortCommands(commands)
        assert commands == original


# =============================================================================
# CANVAS
# =============================================================================

class TestCanvas:
    """Replay into the canvas grid."""

    def test_empty_log(self):
        view = buildCanvasView([], 3, 2)
        assert view.canvas == [['#FFFFFF'] * 3, ['#FFFFFF'] * 3]
        assert view.history == []
        assert view.stats == {}
        assert view.lastUpdate is None

    def test_custom_background(self):
        view = buildCanvasView([], 2, 2, background='#000000')
        assert view.canvas[1][1] == '#000000'

    def test_row_major(self):
        view = buildCanvasView([cmd(x=2, y=1, colour='#00FF00')], 3, 2)
        assert view.canvas[1][2] == '#00FF00'
        assert view.canvas[0][2] == '#FFFFFF'

    def test_later_command_wins_regardless_of_arrival(self):
        red = cmd(actor=ALICE, x=5, y=5, colour='#FF0000', seconds=1)
        green = cmd(actor=BOB, x=5, y=5, colour='#00FF00', seconds=2)

        for arrival in ([red, green], [green, red]):
            view = buildCanvasView(arrival, 10, 10)
            assert view.canvas[5][5] == '#00FF00'

    def test_early_year_does_not_win(self):
        ancient = PixelCommand.create(BOB, 0, 0, '#000000', '0999-06-01T00:00:00Z')
        recent = cmd(x=0, y=0, colour='#FF0000', seconds=1)
        view = buildCanvasView([recent, ancient], 1, 1)
        assert view.canvas[0][0] == '#FF0000'
        assert view.history == [ancient, recent]
        assert view.lastUpdate == recent.timestamp

    def test_tie_broken_by_arrival(self):
        first = cmd(x=0, y=0, colour='#111111', seconds=1)
        second = cmd(actor=BOB, x=0, y=0, colour='#222222', seconds=1)
        assert buildCanvasView([first, second], 1, 1).canvas[0][0] == '#222222'
        assert buildCanvasView([second, first], 1, 1).canvas[0][0] == '#111111'

    def test_out_of_canvas_commands_skipped(self):
        inside = cmd(x=1, y=1, seconds=1)
        outside = cmd(x=50, y=50, seconds=2)
        view = buildCanvasView([inside, outside], 10, 10)
        assert view.history == [inside]
        assert view.stats[ALICE].pixelsPlaced == 1
        assert view.lastUpdate == inside.timestamp

    def test_input_not_modified(self):
        commands = [cmd(seconds=2), cmd(x=1, seconds=1)]
        original = list(commands)
        buildCanvasView(commands, 5, 5)
        assert commands == original


# =============================================================================
# HISTORY + STATS
# =============================================================================

class TestHistoryAndStats:
    """Derived history and per-actor statistics."""

    def test_history_bounded_to_latest(self):
        commands = [cmd(x=i % 10, y=i // 10 % 10, seconds=i) for i in range(150)]
        random.Random(7).shuffle(commands)

        view = buildCanvasView(commands, 10, 10)
        assert len(view.history) == 100
        assert view.history == sortCommands(commands)[50:]
        assert view.history[0].timestamp == at(50).replace('+00:00', '.000Z')
        assert view.lastUpdate == view.history[-1].timestamp

    def test_history_limit_zero(self):
        view = buildCanvasView([cmd()], 1, 1, historyLimit=0)
        assert view.history == []
        assert view.lastUpdate is not None

    def test_history_shorter_than_limit(self):
        commands = [cmd(seconds=2), cmd(x=1, seconds=1)]
        view = buildCanvasView(commands, 5, 5)
        assert view.history == [commands[1], commands[0]]

    def test_actor_stats(self):
        commands = [
            cmd(x=0, colour='#FF0000', seconds=1),
            cmd(x=1, colour='#0000FF', seconds=3),
            cmd(x=2, colour='#FF0000', seconds=2),
            cmd(actor=BOB, x=3, colour='#00FF00', seconds=4),
        ]
        view = buildCanvasView(commands, 5, 5)

        alice = view.stats[ALICE]
        assert alice.pixelsPlaced == 3
        assert alice.colours == {'#FF0000': 2, '#0000FF': 1}
        assert alice.lastPlaced == commands[1].timestamp
        assert view.stats[BOB].pixelsPlaced == 1

    def test_stats_count_overwritten_pixels(self):
        commands = [cmd(x=0, y=0, seconds=i) for i in range(4)]
        view = buildCanvasView(commands, 1, 1)
        assert view.stats[ALICE].pixelsPlaced == 4


# =============================================================================
# DETERMINISM
# =============================================================================

class TestDeterminism:
    """Same input → byte-identical serialized view."""

    def test_repeated_builds_identical(self):
        commands = [cmd(actor=f'did:plc:user{i % 7}', x=i % 10, y=i % 9,
                        colour=f'#{i:06X}', seconds=i % 13) for i in range(60)]
        first = canonicalJsonBytes(buildCanvasView(commands, 10, 10).toDict())
        second = canonicalJsonBytes(buildCanvasView(list(commands), 10, 10).toDict())
        assert first == second

    def test_distinct_timestamps_independent_of_arrival(self):
        commands = [cmd(x=i % 4, y=i % 3, colour=f'#{i:06X}', seconds=i) for i in range(30)]
        shuffled = list(commands)
        random.Random(3).shuffle(shuffled)
        assert (canonicalJsonBytes(buildCanvasView(commands, 4, 3).toDict())
                == canonicalJsonBytes(buildCanvasView(shuffled, 4, 3).toDict()))

    def test_view_dict_shape(self):
        view = buildCanvasView([cmd(x=1, y=0, colour='#ABCDEF', seconds=1)], 2, 1)
        assert view.toDict() == {
            'width': 2,
            'height': 1,
            'canvas': [['#FFFFFF', '#ABCDEF']],
            'history': [{'actor': ALICE, 'x': 1, 'y': 0, 'colour': '#ABCDEF',
                         'timestamp': '2024-01-01T00:00:01.000Z'}],
            'stats': {ALICE: {'pixelsPlaced': 1, 'lastPlaced': '2024-01-01T00:00:01.000Z',
                              'colours': {'#ABCDEF': 1}}},
            'lastUpdate': '2024-01-01T00:00:01.000Z',
        }
