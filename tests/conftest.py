from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import pytest

from pysensorcache._transport import ApiResponse
from pysensorcache.client import FoobotClient
from pysensorcache.config import SensorConfig
from pysensorcache.coordinator import DataCoordinator
from pysensorcache.exceptions import TransportError

# A UTC midnight, so a quota reset boundary with the default reset time.
DAY0 = 19675 * 86400


@dataclass
class FakeTimer:
    when: float
    callback: Callable[..., Any]
    args: tuple[Any, ...]
    cancelled: bool = False
    fired: bool = False

    def cancel(self) -> None:
        self.cancelled = True


@dataclass
class FakeClock:
    """Manual clock: time only moves on ``advance()``, which fires due timers."""

    current: float = float(DAY0 + 12 * 3600)
    timers: list[FakeTimer] = field(default_factory=list)

    def now(self) -> float:
        return self.current

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> FakeTimer:
        timer = FakeTimer(when=self.current + max(0.0, delay), callback=callback, args=args)
        self.timers.append(timer)
        return timer

    @property
    def pending(self) -> list[FakeTimer]:
        return [t for t in self.timers if not t.cancelled and not t.fired]

    def advance(self, seconds: float) -> None:
        target = self.current + seconds
        while True:
            due = [t for t in self.pending if t.when <= target]
            if not due:
                break
            timer = min(due, key=lambda t: t.when)
            self.current = max(self.current, timer.when)
            timer.fired = True
            timer.callback(*timer.args)
        self.current = target


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


UUID = "240D676D40002482"
SENSORS = ["time", "pm", "tmp"]
UNITS = ["s", "ugm3", "C"]


@dataclass
class FakeFoobotBackend:
    """In-memory API: one reading every five minutes, quota counted down per request."""

    clock: FakeClock
    uuid: str = UUID
    remaining: int = 200
    paths: list[str] = field(default_factory=list)
    fail_next: int = 0
    gate: asyncio.Event | None = None
    devices: list[dict[str, Any]] = field(
        default_factory=lambda: [
            {"uuid": UUID, "userId": 42, "mac": "004A0F1B2C3D", "name": "Living room"},
            {"uuid": "OTHER", "userId": 42, "mac": "004A0F1B2C3E", "name": "Bedroom"},
        ]
    )

    @property
    def datapoint_paths(self) -> list[str]:
        return [p for p in self.paths if "/datapoint/" in p]

    def _datapoints(self, endpoint: str) -> dict[str, Any]:
        # /v2/device/{uuid}/datapoint/{period}/last/{average_by}/
        parts = endpoint.strip("/").split("/")
        period = int(parts[4])
        now = self.clock.now()
        first = now - period
        ts = int(now - now % 300)
        rows: list[list[float]] = []
        while ts >= first:
            rows.insert(0, [ts, 10.0, 21.5])
            ts -= 300
        return {
            "uuid": parts[2],
            "start": rows[0][0] if rows else None,
            "end": rows[-1][0] if rows else None,
            "sensors": SENSORS,
            "units": UNITS,
            "datapoints": rows,
        }

    async def get_json(self, endpoint: str) -> ApiResponse:
        self.paths.append(endpoint)
        requested_at = self.clock.now()
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_next:
            self.fail_next -= 1
            raise TransportError("backend unavailable", endpoint=endpoint)

        body: Any
        if endpoint.startswith("/v2/owner/"):
            body = self.devices
        else:
            body = self._datapoints(endpoint)
        self.remaining = max(0, self.remaining - 1)
        return ApiResponse(
            body=body,
            status=200,
            requested_at=requested_at,
            server_date=self.clock.now(),
            quota_remaining=self.remaining,
        )


@pytest.fixture
def config() -> SensorConfig:
    return SensorConfig(api_key="test-key", username="owner@example.com", default_device=UUID)


@pytest.fixture
def backend(clock: FakeClock) -> FakeFoobotBackend:
    return FakeFoobotBackend(clock=clock)


@pytest.fixture
def client(config: SensorConfig, backend: FakeFoobotBackend, clock: FakeClock) -> FoobotClient:
    return FoobotClient(config, transport=backend, clock=clock)


@pytest.fixture
def coordinator(client: FoobotClient, clock: FakeClock) -> DataCoordinator:
    return DataCoordinator(client, clock=clock)
