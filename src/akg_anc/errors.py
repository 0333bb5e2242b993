from typing import Optional


class AncError(Exception):
    """Base class for everything the headset controller raises."""


class ConnectError(AncError):
    pass


class DeviceNotFoundError(ConnectError):
    def __init__(self, name: str):
        super().__init__(f"BLE device not found (name={name!r}); is the headset on and in range?")
        self.name = name


class ConnectTimeoutError(ConnectError):
    def __init__(self, timeout_s: float):
        super().__init__(f"Timed out after {timeout_s:.1f}s waiting for the headset to connect")
        self.timeout_s = timeout_s


class ConnectRefusedError(ConnectError):
    def __init__(self, message: str = "Headset disconnected before the connection completed"):
        super().__init__(message)


class ServiceNotFoundError(ConnectError):
    def __init__(self, uuid: str, attempts: int):
        super().__init__(f"Airoha GATT service {uuid} not found after {attempts} attempt(s)")
        self.uuid = uuid
        self.attempts = attempts


class CharacteristicNotFoundError(ConnectError):
    def __init__(self, which: str, uuid: str):
        super().__init__(f"{which} characteristic {uuid} not found")
        self.which = which
        self.uuid = uuid


class SubscriptionFailedError(ConnectError):
    def __init__(self, uuid: str):
        super().__init__(f"Could not enable notifications on {uuid}")
        self.uuid = uuid


class AdapterFaultError(ConnectError):
    pass


class SendError(AncError):
    pass


class NotConnectedError(SendError):
    def __init__(self, message: str = "Not connected to the headset"):
        super().__init__(message)


class SessionClosedError(NotConnectedError, ConnectError):
    def __init__(self):
        super().__init__("Session is closed; create a new one to reconnect")


class WriteRejectedError(SendError):
    def __init__(self, status: Optional[int] = None, detail: Optional[str] = None):
        msg = "Headset rejected the write"
        if status is not None:
            msg += f" (status={status})"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)
        self.status = status


class InvalidModeError(AncError, ValueError):
    pass
