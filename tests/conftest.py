"""Shared fakes for provider and strategy tests."""

import threading

import pytest

from advertising_info import AdvertisingInfoProvider, InMemStore, StoreWriteError
from advertising_info.provider import REFRESH_THREAD_NAME


class RecordingStrategy:
    """Strategy returning a fixed result and logging each call."""

    def __init__(self, name, result, calls=None, gate=None):
        self.name = name
        self.result = result
        self.calls = calls if calls is not None else []
        self.gate = gate

    def resolve(self, context):
        if self.gate is not None:
            self.gate.wait(timeout=5)
        self.calls.append(self.name)
        return self.result


class FailingWriteStore(InMemStore):
    """InMemStore whose writes always fail."""

    def write(self, info):
        raise StoreWriteError("disk full")


class FailingReadStore(InMemStore):
    """InMemStore whose reads always fail."""

    def read(self):
        raise OSError("store unavailable")


def wait_for_refresh(timeout=5.0):
    """Join every background refresh thread still running."""
    for thread in threading.enumerate():
        if thread.name == REFRESH_THREAD_NAME:
            thread.join(timeout)


@pytest.fixture(autouse=True)
def cleanup():
    """Drain background refreshes and stop the scheduler between tests."""
    yield
    wait_for_refresh()
    AdvertisingInfoProvider.shutdown(wait=False)
