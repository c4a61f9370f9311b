"""Obstruct runtime environment — scope frames stored in an index-addressed arena.

Frames are pushed and popped in stack order. A popped frame is reclaimed
(its bindings dropped, its slot made reusable) unless a closure that reads it
has escaped to somewhere that outlives it: a block or call result, a binding
in an older frame, or the heap. Such a frame is kept until the frame holding
the closure is itself reclaimed.

Lifetimes are compared by serial number. Every push gets a fresh serial, so
among the frames on the stack a smaller serial means a longer life. A kept
frame records in `keep_until` the serial of the frame it now lives as long as.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterator

from .ast import Pos
from .errors import ObstructRuntimeError
from .types import Ty, holds_function
from .values import Value, VArr, VFunc, VVec

logger = logging.getLogger(__name__)

GLOBAL_FRAME = 0


@dataclass(eq=False)
class Binding:
    name: str
    ty: Ty
    mutable: bool
    value: Value
    alive: bool = True
    frame: int = GLOBAL_FRAME


class Frame:
    """One scope. Closures refer to frames by index, never by reference."""

    def __init__(self, parent: int | None, serial: int):
        self.parent: int | None = parent
        self.serial = serial
        self.bindings: dict[str, Binding] = {}
        self.owned: list[Binding] = []
        self.deleted: set[str] = set()
        self.active: bool = True
        self.keep_until: int | None = None
        self.dead: bool = False


class Env:
    def __init__(self) -> None:
        self.frames: list[Frame] = [Frame(None, 0)]
        self._serial = 0
        self._free: set[int] = set()
        # keep_until serial -> indices of the frames kept that long
        self._held: dict[int, set[int]] = {}

    def push(self, parent: int) -> int:
        self._serial += 1
        frame = Frame(parent, self._serial)
        if self._free:
            index = self._free.pop()
            self.frames[index] = frame
            return index
        self.frames.append(frame)
        return len(self.frames) - 1

    def pop(self, index: int, keep: Value | None = None, into: int | None = None) -> None:
        """Leave a scope.

        `keep` is the value the scope produced and `into` the frame that
        receives it; closures inside it keep their frames alive as long as
        that frame.
        """
        frame = self.frames[index]
        frame.active = False
        if keep is not None and into is not None:
            self._retain_value(keep, self._until(into))
        if frame.keep_until is not None:
            logger.debug("scope %d kept alive by a closure", index)
            return
        self._reclaim(index)
        self._release_held(frame.serial)

    def escape(self, value: Value, holder: int | None) -> None:
        """Record that value is now stored in frame holder (None: the heap)."""
        self._retain_value(value, self._until(holder))

    def _until(self, holder: int | None) -> int:
        if holder is None:
            return 0
        frame = self.frames[holder]
        return frame.serial if frame.keep_until is None else frame.keep_until

    def _retain_value(self, value: Value, until: int) -> None:
        for start in _closure_frames(value):
            i: int | None = start
            while i is not None:
                frame = self.frames[i]
                life = frame.serial if frame.keep_until is None else frame.keep_until
                if life <= until:
                    break
                self._retain_frame(i, until)
                i = frame.parent

    def _retain_frame(self, index: int, until: int) -> None:
        frame = self.frames[index]
        if frame.keep_until is not None:
            if frame.keep_until <= until:
                return
            self._held[frame.keep_until].discard(index)
        frame.keep_until = until
        self._held.setdefault(until, set()).add(index)
        for binding in frame.owned:
            self._retain_value(binding.value, until)

    def _reclaim(self, index: int) -> None:
        """Drop owned bindings in reverse declaration order and free the slot."""
        frame = self.frames[index]
        for binding in reversed(frame.owned):
            self.drop(binding)
        if index == GLOBAL_FRAME:
            return
        frame.dead = True
        self._free.add(index)
        while len(self.frames) > 1 and self.frames[-1].dead:
            self.frames.pop()
            self._free.discard(len(self.frames))

    def _release_held(self, serial: int) -> None:
        pending = [serial]
        while pending:
            for index in sorted(self._held.pop(pending.pop(), ()), reverse=True):
                frame = self.frames[index]
                logger.debug("scope %d released", index)
                if frame.active:
                    # still on the stack; its own pop reclaims it
                    frame.keep_until = None
                    continue
                self._reclaim(index)
                pending.append(frame.serial)

    def bind(self, index: int, binding: Binding) -> None:
        frame = self.frames[index]
        frame.deleted.discard(binding.name)
        frame.bindings[binding.name] = binding
        frame.owned.append(binding)
        binding.frame = index
        self.escape(binding.value, index)

    def alias(self, index: int, name: str, binding: Binding) -> None:
        """Expose a binding owned elsewhere (mutable parameters)."""
        frame = self.frames[index]
        frame.deleted.discard(name)
        frame.bindings[name] = binding

    def resolve(self, index: int, name: str, pos: Pos | None = None) -> Binding | None:
        """Walk the parent chain; None when no frame binds name."""
        i: int | None = index
        while i is not None:
            frame = self.frames[i]
            if name in frame.deleted:
                raise ObstructRuntimeError(f"'{name}' was deleted", pos)
            binding = frame.bindings.get(name)
            if binding is not None:
                if not binding.alive:
                    raise ObstructRuntimeError(f"'{name}' was dropped", pos)
                return binding
            i = frame.parent
        return None

    def lookup(self, index: int, name: str, pos: Pos | None = None) -> Binding:
        binding = self.resolve(index, name, pos)
        if binding is None:
            raise ObstructRuntimeError(f"undefined name '{name}'", pos)
        return binding

    def delete(self, index: int, name: str, pos: Pos | None = None) -> None:
        """`del name`: remove from the owning frame, then drop immediately."""
        i: int | None = index
        while i is not None:
            frame = self.frames[i]
            if name in frame.deleted:
                break
            binding = frame.bindings.get(name)
            if binding is not None:
                del frame.bindings[name]
                frame.deleted.add(name)
                self.frames[index].deleted.add(name)
                logger.debug("del %s", name)
                self.drop(binding)
                return
            i = frame.parent
        raise ObstructRuntimeError(f"cannot delete '{name}': no such binding", pos)

    def drop(self, binding: Binding) -> None:
        if not binding.alive:
            return
        binding.alive = False
        logger.debug("drop %s: %s", binding.name, binding.ty.display())


def _closure_frames(value: Value) -> Iterator[int]:
    """Frames read by the lambdas inside value."""
    if isinstance(value, VFunc):
        if value.name is None:
            yield value.frame
    elif isinstance(value, (VVec, VArr)) and holds_function(value.elem):
        for e in value.elements:
            yield from _closure_frames(e)
