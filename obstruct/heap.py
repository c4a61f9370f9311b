"""Obstruct heap — append-only slot table with generation-checked handles."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .ast import Pos
from .errors import ObstructRuntimeError
from .values import Value

logger = logging.getLogger(__name__)


@dataclass
class Slot:
    value: Value | None
    generation: int
    live: bool = True


class Heap:
    """Slots are never reused; freeing bumps the generation so every handle
    minted before the free becomes detectably stale."""

    def __init__(self) -> None:
        self.slots: list[Slot] = []

    def alloc(self, value: Value) -> tuple[int, int]:
        index = len(self.slots)
        self.slots.append(Slot(value, 0))
        logger.debug("heap: alloc slot %d (%s)", index, value.ty().display())
        return index, 0

    def slot(self, index: int, generation: int, pos: Pos | None = None) -> Slot:
        """Live slot for a handle, or a runtime error for a stale one."""
        if index < 0 or index >= len(self.slots):
            raise ObstructRuntimeError(f"invalid pointer to slot {index}", pos)
        slot = self.slots[index]
        if not slot.live or slot.generation != generation:
            raise ObstructRuntimeError(
                f"dereference of freed pointer (slot {index})", pos
            )
        return slot

    def load(self, index: int, generation: int, pos: Pos | None = None) -> Value:
        value = self.slot(index, generation, pos).value
        assert value is not None
        return value

    def free(self, index: int, generation: int, pos: Pos | None = None) -> None:
        if index < 0 or index >= len(self.slots):
            raise ObstructRuntimeError(f"invalid pointer to slot {index}", pos)
        slot = self.slots[index]
        if not slot.live or slot.generation != generation:
            raise ObstructRuntimeError(f"double free of pointer (slot {index})", pos)
        slot.live = False
        slot.value = None
        slot.generation += 1
        logger.debug("heap: free slot %d", index)

    def live_count(self) -> int:
        return sum(1 for s in self.slots if s.live)
