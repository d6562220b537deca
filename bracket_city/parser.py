"""Bracket parsing for Bracket City puzzles.

A puzzle document is plain text with bracketed clues, some nested inside
others. Only the innermost clues (no brackets inside them) can be solved;
once solved, the enclosing clue becomes innermost in turn.

Offsets are only valid for the document they were extracted from. Every
solved clue splices text into the document, so callers re-parse after
each change instead of patching offsets.
"""

from dataclasses import dataclass
from typing import List


class BracketStructureError(ValueError):
    """Raised when a puzzle document has unbalanced brackets."""

    def __init__(self, message: str, position: int):
        super().__init__(f"{message} at offset {position}")
        self.position = position


@dataclass(frozen=True)
class Clue:
    """An active (innermost) clue in a document."""
    start: int  # offset of "["
    end: int  # offset just past "]"
    text: str  # raw span including brackets
    expression: str  # text between the brackets


def check_balanced(document: str) -> None:
    """Raise BracketStructureError unless every "[" has a matching "]"."""
    depth = 0
    open_positions: List[int] = []
    for i, char in enumerate(document):
        if char == "[":
            depth += 1
            open_positions.append(i)
        elif char == "]":
            if depth == 0:
                raise BracketStructureError("Unmatched ']'", i)
            depth -= 1
            open_positions.pop()
    if depth:
        raise BracketStructureError("Unclosed '['", open_positions[-1])


def find_active_clues(document: str) -> List[Clue]:
    """Return the innermost clues of a document in left-to-right order.

    Each top-level bracket span is scanned to its matching close bracket.
    A span without nested brackets is itself active; a span with nested
    brackets is not, and its inner content is searched recursively with
    the offset of its opening bracket.

    Raises:
        BracketStructureError: if the brackets are unbalanced.
    """
    check_balanced(document)
    clues: List[Clue] = []
    _collect_clues(document, 0, clues)
    return clues


def _collect_clues(text: str, offset: int, clues: List[Clue]) -> None:
    i = 0
    while i < len(text):
        if text[i] != "[":
            i += 1
            continue

        start = i
        depth = 1
        nested = False
        i += 1
        while depth > 0:
            if text[i] == "[":
                depth += 1
                nested = True
            elif text[i] == "]":
                depth -= 1
            i += 1

        inner = text[start + 1:i - 1]
        if nested:
            _collect_clues(inner, offset + start + 1, clues)
        else:
            clues.append(
                Clue(
                    start=offset + start,
                    end=offset + i,
                    text=text[start:i],
                    expression=inner,
                )
            )


def replace_clue(document: str, clue: Clue, replacement: str) -> str:
    """Splice replacement text over a clue's bracketed span."""
    return document[:clue.start] + replacement + document[clue.end:]

