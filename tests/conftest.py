import sys

import pytest
from PyQt6.QtCore import QCoreApplication

from soundscape.devices import OfflineDevice
from soundscape.engine import AudioContext

TEST_SR = 8000


@pytest.fixture(scope="session")
def qapp():
    app = QCoreApplication.instance()
    if app is None:
        app = QCoreApplication(sys.argv)
    yield app


class FakeClock:
    def __init__(self, now=100.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class DeferredCalls:
    """Collects deferred callbacks instead of handing them to a Qt timer."""

    def __init__(self):
        self.calls = []

    def __call__(self, delay_ms, callback):
        self.calls.append((delay_ms, callback))

    def run_all(self):
        calls, self.calls = self.calls, []
        for _, callback in calls:
            callback()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def deferred():
    return DeferredCalls()


@pytest.fixture
def device():
    return OfflineDevice(sample_rate=TEST_SR)


@pytest.fixture
def context(device, deferred):
    return AudioContext(device_factory=lambda: device, defer=deferred)
