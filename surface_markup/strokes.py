from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Sequence, Tuple

import numpy as np


class Tool(Enum):
    PAINT = "paint"
    ERASE = "erase"


@dataclass(frozen=True, eq=False)
class Stroke:
    """A user-drawn polyline in canvas coordinates (origin top-left, y down).

    color is RGBA with RGB in 0..255 and alpha in 0..1. Strokes are never
    mutated; equality is by id.
    """

    points: Tuple[Tuple[float, float], ...]
    tool: Tool = Tool.PAINT
    width: float = 40.0
    color: Tuple[int, int, int, float] = (190, 190, 190, 1.0)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def __post_init__(self):
        pts = tuple((float(x), float(y)) for x, y in self.points)
        if not pts:
            raise ValueError("a stroke needs at least one point")
        object.__setattr__(self, 'points', pts)
        if len(self.color) == 3:
            object.__setattr__(self, 'color', (*self.color, 1.0))

    def __eq__(self, other):
        return isinstance(other, Stroke) and other.id == self.id

    def __hash__(self):
        return hash(self.id)

    @property
    def is_drawable(self) -> bool:
        """A stroke needs at least two points to be committed or rendered."""
        return len(self.points) >= 2

    @property
    def alpha(self) -> float:
        return float(self.color[3])

    def points_array(self) -> np.ndarray:
        return np.asarray(self.points, dtype=np.float64).reshape(-1, 2)


class StrokeLedger:
    """Committed strokes plus a redo buffer.

    The ledger does not filter degenerate strokes: callers (MarkupSession)
    only commit strokes with is_drawable set.
    """

    def __init__(self, strokes: Sequence[Stroke] = ()):
        self._committed: List[Stroke] = list(strokes)
        self._redo: List[Stroke] = []

    def commit(self, stroke: Stroke):
        self._committed.append(stroke)
        # redo history is discarded, not hidden
        self._redo.clear()

    def undo(self):
        if self._committed:
            self._redo.append(self._committed.pop())

    def redo(self):
        if self._redo:
            self._committed.append(self._redo.pop())

    @property
    def can_undo(self) -> bool:
        return bool(self._committed)

    @property
    def can_redo(self) -> bool:
        return bool(self._redo)

    @property
    def strokes(self) -> Tuple[Stroke, ...]:
        """Committed strokes in commit order (a snapshot)."""
        return tuple(self._committed)

    @property
    def redo_strokes(self) -> Tuple[Stroke, ...]:
        return tuple(self._redo)

    def clear(self):
        self._committed.clear()
        self._redo.clear()

    def __len__(self):
        return len(self._committed)

    def __iter__(self):
        return iter(tuple(self._committed))
