import asyncio
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import pytest
from bleak.exc import BleakError

from akg_anc.config import RACE_RX_WRITE, RACE_TX_NOTIFY, SERVICE_UUID


@dataclass
class FakeDevice:
    name: str
    address: str


@dataclass
class FakeService:
    uuid: str
    chars: Dict[str, object] = field(default_factory=dict)


class FakeLink:
    def __init__(self, adapter: "FakeAdapter", device: FakeDevice, on_status):
        self.adapter = adapter
        self.name = device.name
        self.address = device.address
        self._on_status = on_status

        self.connected = False
        self.discover_calls = 0
        self.uncached_flags: List[bool] = []
        self.writes: List[bytes] = []
        self.notify_callback = None
        self.stop_notify_calls = 0
        self.disconnect_calls = 0

    @property
    def is_connected(self) -> bool:
        return self.connected

    def _signal(self, ok: bool) -> None:
        self.connected = ok
        self._on_status(ok)

    async def connect(self) -> None:
        loop = asyncio.get_running_loop()
        mode = self.adapter.connect_mode
        if mode == "immediate":
            self.connected = True
        elif mode == "signal":
            loop.call_later(self.adapter.connect_delay, self._signal, True)
        elif mode == "refuse":
            loop.call_soon(self._signal, False)
        elif mode == "fault":
            raise BleakError("adapter exploded")
        # "never": no status event at all

    async def discover_service(self, uuid: str, uncached: bool = True):
        self.discover_calls += 1
        self.uncached_flags.append(uncached)
        if self.discover_calls <= self.adapter.discover_failures:
            raise BleakError("GATT discovery failed")
        if uuid != SERVICE_UUID or not self.adapter.has_service:
            return None
        return FakeService(uuid, dict(self.adapter.chars))

    def find_characteristic(self, service: FakeService, uuid: str):
        return service.chars.get(uuid)

    async def write(self, char, data: bytes) -> None:
        if self.adapter.write_error is not None:
            raise self.adapter.write_error
        self.writes.append(bytes(data))

    async def start_notify(self, char, callback) -> None:
        if self.adapter.during_subscribe is not None:
            await self.adapter.during_subscribe()
        if self.adapter.subscribe_error is not None:
            raise self.adapter.subscribe_error
        self.notify_callback = callback

    async def stop_notify(self, char) -> None:
        self.stop_notify_calls += 1

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        self.connected = False


class FakeAdapter:
    def __init__(self, devices: Optional[List[FakeDevice]] = None):
        self.devices = devices if devices is not None else [FakeDevice("AKG N9 Hybrid", "AA:BB:CC:DD:EE:01")]
        self.connect_mode = "signal"
        self.connect_delay = 0.01
        self.discover_failures = 0
        self.has_service = True
        self.chars: Dict[str, object] = {RACE_RX_WRITE: "rx-char", RACE_TX_NOTIFY: "tx-char"}
        self.write_error: Optional[Exception] = None
        self.subscribe_error: Optional[Exception] = None
        self.during_subscribe = None
        self.link_timeouts: List[float] = []

        self.scans: List[str] = []
        self.links: List[FakeLink] = []

    @property
    def link(self) -> FakeLink:
        return self.links[-1]

    async def scan_by_name(self, name: str, timeout_s: float):
        self.scans.append(name)
        return [d for d in self.devices if d.name == name]

    def open_link(self, device: FakeDevice, on_status, timeout_s: float) -> FakeLink:
        self.link_timeouts.append(timeout_s)
        link = FakeLink(self, device, on_status)
        self.links.append(link)
        return link


@pytest.fixture
def adapter() -> FakeAdapter:
    return FakeAdapter()


@pytest.fixture
def sleeps(monkeypatch: pytest.MonkeyPatch) -> List[float]:
    """Record service-discovery backoff delays instead of sleeping."""
    import akg_anc.client as client_mod

    recorded: List[float] = []

    async def fake_sleep(delay: float) -> None:
        recorded.append(delay)

    monkeypatch.setattr(client_mod, "_sleep", fake_sleep)
    return recorded
