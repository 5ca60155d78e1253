"""
Pixel Command Tests

Tests for:
- Reply text parsing (first match, whitespace, case, range checks)
- Timestamp and colour normalization
- Content-derived commandId (field-wise identity)

Run: python -m pytest test/test_commands.py -v
"""

import dataclasses
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest

from skyplace.core.commands import (
    CommandError,
    PixelCommand,
    Placement,
    computeCommandId,
    normalizeColour,
    normalizeTimestamp,
    parseCommand,
)


ALICE = 'did:plc:alice'
BOB = 'did:plc:bob'


# =============================================================================
# PARSER
# =============================================================================

class TestParseCommand:
    """Reply text → Placement (or None)."""

    def test_basic_command(self):
        placement = parseCommand(ALICE, 'pixel 3,4 #ff0000', 10, 10)
        assert placement == Placement(actor=ALICE, x=3, y=4, colour='#FF0000')

    def test_colour_uppercased(self):
        assert parseCommand(ALICE, 'pixel 0,0 #aBcDeF', 10, 10).colour == '#ABCDEF'

    def test_whitespace_tolerated(self):
        assert parseCommand(ALICE, 'pixel   5 ,  6   #00ff00', 10, 10) == Placement(ALICE, 5, 6, '#00FF00')
        assert parseCommand(ALICE, 'pixel5,6#00ff00', 10, 10) == Placement(ALICE, 5, 6, '#00FF00')

    def test_command_embedded_in_text(self):
        placement = parseCommand(ALICE, 'hello everyone! pixel 1,2 #123456 lets go', 10, 10)
        assert placement == Placement(ALICE, 1, 2, '#123456')

    def test_first_match_wins(self):
        placement = parseCommand(ALICE, 'pixel 1,1 #111111 and pixel 2,2 #222222', 10, 10)
        assert placement == Placement(ALICE, 1, 1, '#111111')

    def test_leading_zeros_are_decimal(self):
        assert parseCommand(ALICE, 'pixel 010,09 #000000', 100, 100) == Placement(ALICE, 10, 9, '#000000')

    def test_out_of_range_rejected(self):
        assert parseCommand(ALICE, 'pixel 9999,9999 #000000', 100, 100) is None
        assert parseCommand(ALICE, 'pixel 100,0 #000000', 100, 100) is None
        assert parseCommand(ALICE, 'pixel 0,100 #000000', 100, 100) is None

    def test_edge_cells_accepted(self):
        assert parseCommand(ALICE, 'pixel 99,99 #000000', 100, 100) == Placement(ALICE, 99, 99, '#000000')
        assert parseCommand(ALICE, 'pixel 0,0 #000000', 100, 100) == Placement(ALICE, 0, 0, '#000000')

    def test_malformed_rejected(self):
        for text in (
            '',
            'just chatting',
            'pixel 1,2',
            'pixel 1,2 #12345',
            'pixel 1,2 #GGGGGG',
            'pixel -1,2 #000000',
            'pixel 1.5,2 #000000',
            'pixel 1 2 #000000',
            'pixel a,b #000000',
        ):
            assert parseCommand(ALICE, text, 100, 100) is None, text

    def test_keyword_is_case_sensitive(self):
        assert parseCommand(ALICE, 'PIXEL 1,2 #000000', 100, 100) is None
        assert parseCommand(ALICE, 'Pixel 1,2 #000000', 100, 100) is None

    def test_non_ascii_digits_rejected(self):
        # Arabic-Indic digits match \d but are not accepted as coordinates
        assert parseCommand(ALICE, 'pixel ١,٢ #000000', 100, 100) is None

    def test_missing_actor_or_text(self):
        assert parseCommand('', 'pixel 1,2 #000000', 100, 100) is None
        assert parseCommand(ALICE, None, 100, 100) is None

    def test_non_string_actor_or_text(self):
        assert parseCommand(42, 'pixel 1,2 #000000', 100, 100) is None
        assert parseCommand({'did': ALICE}, 'pixel 1,2 #000000', 100, 100) is None
        assert parseCommand(ALICE, ['pixel 1,2 #000000'], 100, 100) is None
        assert parseCommand(ALICE, 12, 100, 100) is None

    def test_oversized_coordinates_rejected(self):
        # Far past the interpreter's integer string conversion limit
        digits = '1' * 5000
        assert parseCommand(ALICE, f'pixel {digits},1 #000000', 100, 100) is None
        assert parseCommand(ALICE, f'pixel 1,{digits} #000000', 100, 100) is None

    def test_placement_at_creates_command(self):
        command = parseCommand(ALICE, 'pixel 1,2 #abcdef', 10, 10).at('2024-01-01T00:00:00Z')
        assert command.toDict() == {
            'actor': ALICE, 'x': 1, 'y': 2, 'colour': '#ABCDEF',
            'timestamp': '2024-01-01T00:00:00.000Z',
        }

    def test_placement_at_bad_timestamp(self):
        with pytest.raises(CommandError):
            Placement(ALICE, 1, 2, '#ABCDEF').at('yesterday')


# =============================================================================
# NORMALIZATION
# =============================================================================

class TestNormalization:
    """Colour and timestamp canonical forms."""

    def test_colour(self):
        assert normalizeColour('#ff00aa') == '#FF00AA'
        assert normalizeColour(' #FF00AA ') == '#FF00AA'

    def test_colour_invalid(self):
        for value in ('FF00AA', '#FF00A', '#FF00AAA', '#XYZXYZ', 123, None):
            with pytest.raises(CommandError):
                normalizeColour(value)

    def test_timestamp_forms(self):
        expected = '2024-03-05T12:30:45.123Z'
        assert normalizeTimestamp('2024-03-05T12:30:45.123Z') == expected
        assert normalizeTimestamp('2024-03-05T12:30:45.123456Z') == expected
        assert normalizeTimestamp('2024-03-05T12:30:45.123+00:00') == expected
        assert normalizeTimestamp('2024-03-05T14:30:45.123+02:00') == expected

    def test_timestamp_without_fraction(self):
        assert normalizeTimestamp('2024-03-05T12:30:45Z') == '2024-03-05T12:30:45.000Z'

    def test_naive_timestamp_is_utc(self):
        assert normalizeTimestamp('2024-03-05T12:30:45') == '2024-03-05T12:30:45.000Z'

    def test_timestamp_invalid(self):
        for value in ('', None, 'not a date', '2024-13-01T00:00:00Z'):
            with pytest.raises(CommandError):
                normalizeTimestamp(value)

    def test_normalized_text_orders_chronologically(self):
        later = normalizeTimestamp('2024-03-05T12:00:00.000+01:00')   # 11:00Z
        earlier = normalizeTimestamp('2024-03-05T10:30:00.000Z')
        assert earlier < later

    def test_early_years_zero_padded(self):
        early = normalizeTimestamp('0999-01-01T00:00:00Z')
        assert early == '0999-01-01T00:00:00.000Z'
        assert early < normalizeTimestamp('2024-01-01T00:00:00Z')
        assert normalizeTimestamp('0001-01-01T00:00:00Z') == '0001-01-01T00:00:00.000Z'

    def test_timestamp_outside_utc_range(self):
        for value in ('0001-01-01T00:00:00+01:00', '9999-12-31T23:00:00-02:00'):
            with pytest.raises(CommandError):
                normalizeTimestamp(value)


# =============================================================================
# IDENTITY
# =============================================================================

class TestCommandIdentity:
    """commandId depends on the five fields only."""

    def test_identical_fields_identical_id(self):
        a = PixelCommand.create(ALICE, 1, 2, '#ff0000', '2024-01-01T00:00:00Z')
        b = PixelCommand.create(ALICE, 1, 2, '#FF0000', '2024-01-01T00:00:00.000+00:00')
        assert a.commandId == b.commandId
        assert a == b

    def test_each_field_changes_id(self):
        base = dict(actor=ALICE, x=1, y=2, colour='#FF0000', timestamp='2024-01-01T00:00:00.000Z')
        baseId = computeCommandId(**base)
        for key, value in (('actor', BOB), ('x', 2), ('y', 3),
                           ('colour', '#00FF00'), ('timestamp', '2024-01-01T00:00:00.001Z')):
            changed = dict(base, **{key: value})
            assert computeCommandId(**changed) != baseId, key

    def test_id_is_sha256_hex(self):
        command = PixelCommand.create(ALICE, 1, 2, '#FF0000', '2024-01-01T00:00:00Z')
        assert len(command.commandId) == 64
        int(command.commandId, 16)

    def test_create_rejects_bad_coordinates(self):
        for x in (-1, 1.5, '1', True):
            with pytest.raises(CommandError):
                PixelCommand.create(ALICE, x, 0, '#FF0000', '2024-01-01T00:00:00Z')

    def test_create_rejects_missing_actor(self):
        with pytest.raises(CommandError):
            PixelCommand.create('', 0, 0, '#FF0000', '2024-01-01T00:00:00Z')

    def test_command_is_immutable(self):
        command = PixelCommand.create(ALICE, 1, 2, '#FF0000', '2024-01-01T00:00:00Z')
        with pytest.raises(dataclasses.FrozenInstanceError):
            command.x = 5
