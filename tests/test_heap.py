"""Unit tests for the generation-checked heap."""

import logging

import pytest

from obstruct.ast import Pos
from obstruct.errors import ObstructRuntimeError
from obstruct.heap import Heap
from obstruct.values import VInt, VStr


def test_alloc_appends_slots():
    heap = Heap()
    assert heap.alloc(VInt(1)) == (0, 0)
    assert heap.alloc(VStr("two")) == (1, 0)
    assert heap.load(0, 0) == VInt(1)
    assert heap.load(1, 0) == VStr("two")
    assert heap.live_count() == 2


def test_load_after_free():
    heap = Heap()
    index, gen = heap.alloc(VInt(7))
    heap.free(index, gen)
    with pytest.raises(ObstructRuntimeError, match=r"dereference of freed pointer \(slot 0\)"):
        heap.load(index, gen)


def test_double_free():
    heap = Heap()
    index, gen = heap.alloc(VInt(7))
    heap.free(index, gen)
    with pytest.raises(ObstructRuntimeError, match=r"double free of pointer \(slot 0\)"):
        heap.free(index, gen)


def test_free_bumps_generation():
    heap = Heap()
    index, gen = heap.alloc(VInt(7))
    heap.free(index, gen)
    slot = heap.slots[index]
    assert slot.generation == gen + 1
    assert not slot.live
    assert slot.value is None
    # A handle carrying the new generation is still stale: the slot is dead.
    with pytest.raises(ObstructRuntimeError):
        heap.load(index, slot.generation)


def test_slots_are_not_reused():
    heap = Heap()
    a = heap.alloc(VInt(1))
    heap.free(*a)
    b = heap.alloc(VInt(2))
    assert b == (1, 0)
    assert heap.live_count() == 1


def test_invalid_slot():
    heap = Heap()
    with pytest.raises(ObstructRuntimeError, match="invalid pointer to slot 5"):
        heap.load(5, 0)
    with pytest.raises(ObstructRuntimeError, match="invalid pointer to slot -1"):
        heap.free(-1, 0)


def test_errors_carry_position():
    heap = Heap()
    with pytest.raises(ObstructRuntimeError) as info:
        heap.load(0, 0, Pos(3, 9))
    assert str(info.value) == "invalid pointer to slot 0 at line 3 col 9"
    assert info.value.pos == Pos(3, 9)


def test_alloc_and_free_are_logged(caplog):
    caplog.set_level(logging.DEBUG, logger="obstruct.heap")
    heap = Heap()
    index, gen = heap.alloc(VStr("x"))
    heap.free(index, gen)
    messages = [r.getMessage() for r in caplog.records if r.name == "obstruct.heap"]
    assert messages == ["heap: alloc slot 0 (str)", "heap: free slot 0"]
