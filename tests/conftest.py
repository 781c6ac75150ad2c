"""
Shared fixtures and fakes for the service tests.
"""

from __future__ import annotations

import sys
import threading
import time
from pathlib import Path
from typing import Callable, List, Tuple

import pytest

# Make sure the repo root is importable without an install
_ROOT = Path(__file__).parents[1]
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

from kvm_service.notification import NotificationSink
from kvm_service.resolution_monitor import ResolutionMonitor
from kvm_service.resolution_source import ResolutionSource
from kvm_service.screen_config import ScreenConfig


class FakeSource(ResolutionSource):
    def __init__(self, width: int = 1920, height: int = 1080) -> None:
        self._lock = threading.Lock()
        self._value = (width, height)
        self.reads = 0

    def set(self, width: int, height: int) -> None:
        with self._lock:
            self._value = (width, height)

    def read(self) -> Tuple[int, int]:
        with self._lock:
            self.reads += 1
            return self._value


class RecordingSink(NotificationSink):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.sent: List[Tuple[object, str]] = []
        self.fail_for: set = set()

    def deliver(self, subscriber, text: str) -> None:
        if subscriber in self.fail_for:
            raise ConnectionResetError("subscriber went away")
        with self._lock:
            self.sent.append((subscriber, text))

    def texts_for(self, subscriber) -> List[str]:
        with self._lock:
            return [t for s, t in self.sent if s is subscriber]


def wait_for(predicate: Callable[[], bool], timeout: float = 3.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def source() -> FakeSource:
    return FakeSource()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def screen() -> ScreenConfig:
    return ScreenConfig()


@pytest.fixture
def monitor(source: FakeSource, screen: ScreenConfig, sink: RecordingSink):
    mon = ResolutionMonitor(source, screen, sink, poll_interval=0.02)
    yield mon
    mon.shutdown()


@pytest.fixture
def kvm_dir(tmp_path: Path) -> Path:
    d = tmp_path / "kvm"
    d.mkdir()
    (d / "width").write_text("1920\n")
    (d / "height").write_text("1080\n")
    return d
