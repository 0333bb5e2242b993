import asyncio
import logging
from enum import Enum
from typing import Any, Optional

from bleak.exc import BleakError

from .ble_io import BleAdapter, BleakAdapter, BleLink
from .config import (
    AncMode,
    CONNECT_TIMEOUT,
    DEVICE_NAME,
    RACE_ID_NAMES,
    RACE_RX_WRITE,
    RACE_TX_NOTIFY,
    SCAN_SECONDS,
    SERVICE_DISCOVERY_ATTEMPTS,
    SERVICE_DISCOVERY_BACKOFF,
    SERVICE_UUID,
)
from .errors import (
    AdapterFaultError,
    CharacteristicNotFoundError,
    ConnectError,
    ConnectRefusedError,
    ConnectTimeoutError,
    DeviceNotFoundError,
    NotConnectedError,
    ServiceNotFoundError,
    SessionClosedError,
    SubscriptionFailedError,
    WriteRejectedError,
)
from .race_packet import (
    build_anc_off,
    build_anc_on,
    build_pass_through,
    decode_response,
    is_response_success,
    to_display_hex,
)

_LOGGER = logging.getLogger(__name__)

_ADAPTER_ERRORS = (BleakError, OSError, asyncio.TimeoutError)

# Backoff sleep between service discovery attempts
_sleep = asyncio.sleep


class ConnectionState(Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    CONNECTING = "connecting"
    SERVICE_DISCOVERY = "service_discovery"
    READY = "ready"
    DISCONNECTED = "disconnected"
    CLOSED = "closed"


class GattSession:
    """
    One BLE GATT session with the headset:
      - find it by advertised name and connect (bounded by a timeout)
      - resolve the Airoha RACE service and its RX/TX characteristics
      - subscribe to TX notifications (logged in the background)
      - write RACE commands for the ANC operations

    Not safe for concurrent connect()/send() calls; callers serialize them.
    """

    def __init__(
        self,
        device_name: str = DEVICE_NAME,
        timeout_s: float = CONNECT_TIMEOUT,
        adapter: Optional[BleAdapter] = None,
        scan_seconds: float = SCAN_SECONDS,
        discovery_attempts: int = SERVICE_DISCOVERY_ATTEMPTS,
        discovery_backoff_s: float = SERVICE_DISCOVERY_BACKOFF,
    ):
        self.device_name = device_name
        self.timeout_s = timeout_s
        self.scan_seconds = scan_seconds
        self.discovery_attempts = max(1, discovery_attempts)
        self.discovery_backoff_s = discovery_backoff_s

        self._adapter: BleAdapter = adapter if adapter is not None else BleakAdapter()
        self._state = ConnectionState.IDLE

        # Owned resources; all of them are set only while READY
        self._link: Optional[BleLink] = None
        self._write_char: Optional[Any] = None
        self._notify_char: Optional[Any] = None
        self._subscribed = False
        self._observer_task: Optional[asyncio.Task] = None

        # None on the status queue means the session was closed mid-connect
        self._status_q: asyncio.Queue[Optional[bool]] = asyncio.Queue()
        self._rx_q: asyncio.Queue[bytes] = asyncio.Queue()

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        if self._state is not ConnectionState.READY or self._link is None:
            return False
        if not self._link.is_connected:
            _LOGGER.info("Headset link dropped since the last operation")
            self._state = ConnectionState.DISCONNECTED
            return False
        return True

    async def __aenter__(self) -> "GattSession":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    # -------------------------------
    # Connect
    # -------------------------------

    async def connect(self, device_name: Optional[str] = None, timeout_s: Optional[float] = None) -> None:
        """
        Bring the session to READY or raise a ConnectError.

        On failure every resource acquired along the way is released and the
        session goes back to IDLE, so connect() may simply be called again.
        """
        if self._state is ConnectionState.CLOSED:
            raise SessionClosedError()
        if self.is_connected:
            return
        if self._state is not ConnectionState.IDLE:
            await self._release()
            self._state = ConnectionState.IDLE

        name = device_name or self.device_name
        timeout_s = self.timeout_s if timeout_s is None else timeout_s

        try:
            await self._establish(name, timeout_s)
        except ConnectError:
            await self._abort()
            raise
        except asyncio.CancelledError:
            await self._abort()
            raise
        except Exception as err:
            await self._abort()
            raise AdapterFaultError(f"Bluetooth adapter fault during connect: {err}") from err

    async def _establish(self, name: str, timeout_s: float) -> None:
        self._enter(ConnectionState.SCANNING)
        _LOGGER.info("Searching for %s...", name)
        devices = await self._adapter.scan_by_name(name, self.scan_seconds)
        if not devices:
            self._enter(ConnectionState.IDLE)
            raise DeviceNotFoundError(name)

        device = devices[0]
        _LOGGER.info(
            "Found %d device(s), connecting to %s [%s]",
            len(devices),
            getattr(device, "name", None),
            getattr(device, "address", None),
        )

        self._enter(ConnectionState.CONNECTING)
        self._drain(self._status_q)
        link = self._link = self._adapter.open_link(device, self._on_connection_status, timeout_s)
        await link.connect()
        if not link.is_connected:
            await self._wait_connected(timeout_s)
        _LOGGER.info("Connected to %s [%s]", link.name, link.address)

        self._enter(ConnectionState.SERVICE_DISCOVERY)
        service = await self._discover_service(link)
        self._check_open()

        write_char = link.find_characteristic(service, RACE_RX_WRITE)
        if write_char is None:
            raise CharacteristicNotFoundError("write", RACE_RX_WRITE)
        notify_char = link.find_characteristic(service, RACE_TX_NOTIFY)
        if notify_char is None:
            raise CharacteristicNotFoundError("notify", RACE_TX_NOTIFY)
        self._write_char = write_char
        self._notify_char = notify_char

        try:
            await link.start_notify(notify_char, self._on_notify)
        except _ADAPTER_ERRORS as err:
            raise SubscriptionFailedError(RACE_TX_NOTIFY) from err
        # close() may have run while the subscription was in flight
        self._check_open()
        self._subscribed = True

        self._enter(ConnectionState.READY)
        self._observer_task = asyncio.create_task(self._observe_notifications())
        _LOGGER.info("RACE session ready on %s", link.address)

    async def _wait_connected(self, timeout_s: float) -> None:
        # First status event wins against the timer
        try:
            connected = await asyncio.wait_for(self._status_q.get(), timeout=timeout_s)
        except asyncio.TimeoutError:
            raise ConnectTimeoutError(timeout_s) from None

        if connected is None:
            raise SessionClosedError()
        if not connected:
            raise ConnectRefusedError()

    async def _discover_service(self, link: BleLink) -> Any:
        attempts = self.discovery_attempts
        for attempt in range(1, attempts + 1):
            try:
                service = await link.discover_service(SERVICE_UUID, uncached=True)
            except _ADAPTER_ERRORS as err:
                _LOGGER.warning("Service discovery attempt %d/%d failed: %s", attempt, attempts, err)
                service = None
            else:
                if service is None:
                    _LOGGER.warning("Service discovery attempt %d/%d: service not found", attempt, attempts)

            if service is not None:
                _LOGGER.debug("Found service %s on attempt %d", SERVICE_UUID, attempt)
                return service

            if attempt < attempts:
                await _sleep(self.discovery_backoff_s)
                if self._state is ConnectionState.CLOSED:
                    raise SessionClosedError()

        raise ServiceNotFoundError(SERVICE_UUID, attempts)

    def _enter(self, state: ConnectionState) -> None:
        self._check_open()
        _LOGGER.debug("State %s -> %s", self._state.value, state.value)
        self._state = state

    def _check_open(self) -> None:
        if self._state is ConnectionState.CLOSED:
            raise SessionClosedError()

    async def _abort(self) -> None:
        if self._state is ConnectionState.CLOSED:
            return
        await self._release()
        self._state = ConnectionState.IDLE

    # -------------------------------
    # Adapter events
    # -------------------------------

    def _on_connection_status(self, connected: bool) -> None:
        if self._state is ConnectionState.CONNECTING:
            self._status_q.put_nowait(connected)
        elif not connected and self._state is ConnectionState.READY:
            _LOGGER.warning("Headset reported a disconnect")
        else:
            _LOGGER.debug("Connection status connected=%s in state %s", connected, self._state.value)

    def _on_notify(self, _sender: Any, data: bytearray) -> None:
        self._rx_q.put_nowait(bytes(data))

    async def _observe_notifications(self) -> None:
        while True:
            data = await self._rx_q.get()
            _LOGGER.debug("RX %s", to_display_hex(data))
            if is_response_success(data):
                resp = decode_response(data)
                race = RACE_ID_NAMES.get(resp.race_id, f"0x{resp.race_id:04X}") if resp else "?"
                _LOGGER.info("Headset acknowledged %s", race)
            else:
                _LOGGER.warning("Unexpected notification: %s", to_display_hex(data))

    # -------------------------------
    # Commands
    # -------------------------------

    async def send(self, packet: bytes) -> None:
        if self._state is ConnectionState.CLOSED:
            raise SessionClosedError()
        link, char = self._link, self._write_char
        if self._state is not ConnectionState.READY or link is None or char is None:
            raise NotConnectedError()
        if not link.is_connected:
            self._state = ConnectionState.DISCONNECTED
            raise NotConnectedError("Headset is no longer connected")

        _LOGGER.debug("TX %s", to_display_hex(packet))
        try:
            await link.write(char, packet)
        except _ADAPTER_ERRORS as err:
            raise WriteRejectedError(getattr(err, "status", None), str(err) or None) from err

    async def enable_anc(self, mode: AncMode = AncMode.Anc1) -> None:
        _LOGGER.info("Enable ANC: %s", AncMode(mode).name)
        await self.send(build_anc_on(mode))

    async def disable_anc(self) -> None:
        _LOGGER.info("Disable ANC")
        await self.send(build_anc_off())

    async def enable_pass_through(self, mode: AncMode = AncMode.PassThrough1) -> None:
        packet = build_pass_through(mode)
        _LOGGER.info("Enable pass-through: %s", AncMode(mode).name)
        await self.send(packet)

    async def toggle_anc(self) -> None:
        # Does not query the current state first; always lands on Anc1
        _LOGGER.info("Toggle ANC (-> Anc1)")
        await self.enable_anc(AncMode.Anc1)

    # -------------------------------
    # Teardown
    # -------------------------------

    async def close(self) -> None:
        if self._state is ConnectionState.CLOSED:
            return
        prev = self._state
        self._state = ConnectionState.CLOSED
        await self._release()
        # Wake a connect() still waiting for the link
        self._status_q.put_nowait(None)
        _LOGGER.info("Session closed (was %s)", prev.value)

    async def _release(self) -> None:
        task, self._observer_task = self._observer_task, None
        if task:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        link, self._link = self._link, None
        notify_char = self._notify_char
        self._write_char = None
        self._notify_char = None
        subscribed, self._subscribed = self._subscribed, False
        self._drain(self._rx_q)

        if link is None:
            return

        if subscribed and notify_char is not None and link.is_connected:
            try:
                await link.stop_notify(notify_char)
            except _ADAPTER_ERRORS as err:
                _LOGGER.warning("Error unsubscribing: %s", err)
        try:
            await link.disconnect()
        except _ADAPTER_ERRORS as err:
            _LOGGER.warning("Error during disconnect: %s", err)

    @staticmethod
    def _drain(q: asyncio.Queue) -> None:
        try:
            while True:
                q.get_nowait()
        except asyncio.QueueEmpty:
            pass
