import asyncio
import logging
import time
from typing import Any, Callable, List, Optional, Protocol

from bleak import BleakClient, BleakScanner
from bleak.backends.characteristic import BleakGATTCharacteristic
from bleak.backends.device import BLEDevice
from bleak.backends.service import BleakGATTService
from bleak.exc import BleakError

_LOGGER = logging.getLogger(__name__)

StatusCallback = Callable[[bool], None]
NotifyCallback = Callable[[Any, bytearray], None]


class BleLink(Protocol):
    """One adapter-level connection to one device."""

    name: Optional[str]
    address: str

    @property
    def is_connected(self) -> bool: ...

    async def connect(self) -> None:
        """Start connecting; the outcome is reported through the status callback."""

    async def discover_service(self, uuid: str, uncached: bool = True) -> Optional[Any]: ...

    def find_characteristic(self, service: Any, uuid: str) -> Optional[Any]: ...

    async def write(self, char: Any, data: bytes) -> None: ...

    async def start_notify(self, char: Any, callback: NotifyCallback) -> None: ...

    async def stop_notify(self, char: Any) -> None: ...

    async def disconnect(self) -> None: ...


class BleAdapter(Protocol):
    async def scan_by_name(self, name: str, timeout_s: float) -> List[Any]: ...

    def open_link(self, device: Any, on_status: StatusCallback, timeout_s: float) -> BleLink: ...


async def find_devices_by_name(name: str, timeout_s: float = 5.0) -> List[BLEDevice]:
    """
    Scan until at least one device advertises `name` (device name or
    advertised local name) or the timeout runs out. Matches are returned in
    the order they were first seen.
    """
    name = name.strip()
    found: List[BLEDevice] = []
    seen = set()

    def cb(device, adv):
        dev_addr = getattr(device, "address", None)
        if dev_addr is None or dev_addr in seen:
            return

        dev_name = getattr(device, "name", None)
        adv_name = getattr(adv, "local_name", None) if adv else None
        if (dev_name and dev_name.strip() == name) or (adv_name and adv_name.strip() == name):
            seen.add(dev_addr)
            found.append(device)

    _LOGGER.debug("Scanning %.0fs for %r", timeout_s, name)
    scanner = BleakScanner(cb)
    await scanner.start()

    t0 = time.monotonic()
    try:
        while time.monotonic() - t0 < timeout_s:
            if found:
                break
            await asyncio.sleep(0.1)
    finally:
        await scanner.stop()

    return found


# bleak's own connect timeout is kept past the session's so the session timer decides
BLEAK_TIMEOUT_GRACE = 5.0


class BleakLink:
    """BleLink on top of a BleakClient."""

    def __init__(
        self,
        device: BLEDevice,
        on_status: StatusCallback,
        timeout_s: float,
        services: Optional[List[str]] = None,
    ):
        self.name = device.name
        self.address = device.address
        self._on_status = on_status
        self._connect_task: Optional[asyncio.Task] = None
        self._discover_calls = 0
        self._rediscovering = False

        # WinRT keeps its own GATT cache; the service layout can change with firmware
        self._client = BleakClient(
            device,
            disconnected_callback=self._on_disconnected,
            services=services,
            timeout=timeout_s + BLEAK_TIMEOUT_GRACE,
            winrt={"use_cached_services": False},
        )

    @property
    def is_connected(self) -> bool:
        return self._client.is_connected

    def _on_disconnected(self, _client: BleakClient) -> None:
        if self._rediscovering:
            return
        self._on_status(False)

    async def connect(self) -> None:
        if self._client.is_connected:
            self._on_status(True)
            return
        self._connect_task = asyncio.create_task(self._run_connect())

    async def _run_connect(self) -> None:
        try:
            await self._client.connect(dangerous_use_bleak_cache=False)
        except asyncio.TimeoutError:
            # Not a refusal; the session's own timer reports the timeout
            _LOGGER.debug("Connect to %s timed out in bleak", self.address)
            return
        except (BleakError, OSError) as err:
            _LOGGER.debug("Connect to %s failed: %s", self.address, err)
            self._on_status(False)
            return
        self._on_status(True)

    async def discover_service(self, uuid: str, uncached: bool = True) -> Optional[BleakGATTService]:
        """
        First call reads what connect() discovered (cache already bypassed).
        Later uncached calls run discovery again; bleak only discovers while
        connecting, so that means a reconnect.
        """
        self._discover_calls += 1
        if uncached and self._discover_calls > 1:
            await self._rediscover()
        return self._client.services.get_service(uuid)

    async def _rediscover(self) -> None:
        _LOGGER.debug("Re-running service discovery on %s", self.address)
        self._rediscovering = True
        try:
            await self._client.disconnect()
            await self._client.connect(dangerous_use_bleak_cache=False)
        finally:
            self._rediscovering = False

    def find_characteristic(self, service: BleakGATTService, uuid: str) -> Optional[BleakGATTCharacteristic]:
        return service.get_characteristic(uuid)

    async def write(self, char: BleakGATTCharacteristic, data: bytes) -> None:
        await self._client.write_gatt_char(char, data, response=True)

    async def start_notify(self, char: BleakGATTCharacteristic, callback: NotifyCallback) -> None:
        await self._client.start_notify(char, callback)

    async def stop_notify(self, char: BleakGATTCharacteristic) -> None:
        await self._client.stop_notify(char)

    async def disconnect(self) -> None:
        task = self._connect_task
        self._connect_task = None
        if task and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        await self._client.disconnect()


class BleakAdapter:
    """The host Bluetooth adapter, as seen through bleak."""

    def __init__(self, services: Optional[List[str]] = None):
        self.services = services

    async def scan_by_name(self, name: str, timeout_s: float) -> List[BLEDevice]:
        return await find_devices_by_name(name, timeout_s=timeout_s)

    def open_link(self, device: BLEDevice, on_status: StatusCallback, timeout_s: float) -> BleakLink:
        return BleakLink(device, on_status, timeout_s, services=self.services)
