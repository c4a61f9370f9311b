"""Pytest configuration for the Obstruct test suite."""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))


class FakeWindow:
    """Window host that records calls and closes after a fixed number of draws."""

    def __init__(self, frames: int = 3):
        self.frames = frames
        self.calls: list[str] = []
        self.draws = 0

    def init(self, title: str) -> None:
        self.calls.append("init:" + title)

    def draw(self) -> None:
        self.draws += 1
        self.calls.append("draw")

    def is_open(self) -> bool:
        return self.draws < self.frames


@pytest.fixture
def fake_window() -> FakeWindow:
    return FakeWindow()
