"""Shared test helpers."""

from datetime import datetime, timedelta, timezone

import pytest

from wabridge.transport.base import Event, Transport


class RecordingTransport(Transport):
    """Transport that records what would have been sent."""

    def __init__(self):
        self.unicast: list[tuple[str, Event]] = []
        self.broadcasts: list[Event] = []

    def emit_to(self, observer_id: str, event: Event) -> None:
        self.unicast.append((observer_id, event))

    def broadcast(self, event: Event) -> None:
        self.broadcasts.append(event)

    def names(self) -> list[str]:
        return [e.name for e in self.broadcasts]


class FakeSocket:
    """Stand-in for an aiohttp WebSocketResponse."""

    def __init__(self, fail: bool = False):
        self.sent: list[str] = []
        self.closed = False
        self.fail = fail

    async def send_str(self, data: str) -> None:
        if self.fail:
            raise ConnectionResetError("peer went away")
        self.sent.append(data)

    async def close(self) -> None:
        self.closed = True


class StepClock:
    """Clock that advances one second on every call."""

    def __init__(self):
        self.now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def clock() -> StepClock:
    return StepClock()
