"""
skyplace Deterministic Ordering

Authoritative chronological ordering for command replay. The log keeps
arrival order, which says nothing about time; the reducer imposes order
here at read time.

Ordering Contract:
  Primary: timestamp ascending (normalized UTC text, so string order is time order)
  Tie-break: arrival position in the input sequence (stable sort)

Architecture Invariants:
- Same input sequence → same output sequence
- Input is never modified
"""

from typing import List, Sequence

from .commands import PixelCommand


def sortCommands(commands: Sequence[PixelCommand]) -> List[PixelCommand]:
    """
    Sort commands chronologically.

    Python's sort is stable, so commands sharing a timestamp keep their
    input (arrival) order.

    Returns:
        Sorted list of commands (new list, input not modified)
    """
    return sorted(commands, key=lambda command: command.timestamp)
