"""Keyed registry of pointer, touch and card inputs.

Positions and velocities are in normalized simulation space. The velocity of
an input is its displacement since the last frame that consumed it.
"""

import threading
from dataclasses import dataclass, replace
from typing import Any, Hashable, Iterable


@dataclass
class InputPoint:
    x: float = 0.0
    y: float = 0.0
    vx: float = 0.0
    vy: float = 0.0
    texture: Any = None     # optional mask for card inputs


class InputTracker:
    """Thread-safe, insertion-ordered map from input identity to InputPoint.

    Event handlers mutate the tracker. The frame driver calls consume() once
    per frame, which copies the inputs and settles their velocities together.
    """

    def __init__(self) -> None:
        self._inputs: dict[Hashable, InputPoint] = {}
        self._lock = threading.Lock()

    def begin(self, input_id: Hashable, x: float, y: float) -> None:
        """Start tracking an input at rest. A duplicate begin is treated as a move."""
        with self._lock:
            if input_id in self._inputs:
                self._move(input_id, x, y)
                return
            self._inputs[input_id] = InputPoint(x, y)

    def move(self, input_id: Hashable, x: float, y: float) -> None:
        """Update an input's position, implicitly beginning untracked ids."""
        with self._lock:
            if input_id not in self._inputs:
                self._inputs[input_id] = InputPoint(x, y)
                return
            self._move(input_id, x, y)

    def _move(self, input_id: Hashable, x: float, y: float) -> None:
        point: InputPoint = self._inputs[input_id]
        point.vx += x - point.x
        point.vy += y - point.y
        point.x = x
        point.y = y

    def end(self, input_id: Hashable) -> None:
        """Stop tracking an input. Unknown ids are ignored."""
        with self._lock:
            self._inputs.pop(input_id, None)

    def cancel(self, active_ids: Iterable[Hashable]) -> None:
        """Remove every input that is not in active_ids."""
        active: set[Hashable] = set(active_ids)
        with self._lock:
            for input_id in [i for i in self._inputs if i not in active]:
                del self._inputs[input_id]

    def set(self, input_id: Hashable, x: float, y: float, vx: float, vy: float, texture: Any = None) -> None:
        """Create or overwrite an input with an explicit velocity."""
        with self._lock:
            self._inputs[input_id] = InputPoint(x, y, vx, vy, texture)

    def settle(self) -> None:
        """Zero all velocities after a frame has consumed them."""
        with self._lock:
            self._settle()

    def _settle(self) -> None:
        for point in self._inputs.values():
            point.vx = 0.0
            point.vy = 0.0

    def consume(self) -> list[InputPoint]:
        """Snapshot the inputs and settle them in one step, so no movement is lost between the two."""
        with self._lock:
            points: list[InputPoint] = [replace(point) for point in self._inputs.values()]
            self._settle()
            return points

    def snapshot(self) -> list[InputPoint]:
        """Copies of the tracked inputs in insertion order."""
        with self._lock:
            return [replace(point) for point in self._inputs.values()]

    def get(self, input_id: Hashable) -> InputPoint | None:
        with self._lock:
            point: InputPoint | None = self._inputs.get(input_id)
            return replace(point) if point is not None else None

    def clear(self) -> None:
        with self._lock:
            self._inputs.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._inputs)

    def __contains__(self, input_id: Hashable) -> bool:
        with self._lock:
            return input_id in self._inputs
