from .client import ConnectionState, GattSession
from .config import AncMode
from .errors import (
    AdapterFaultError,
    AncError,
    CharacteristicNotFoundError,
    ConnectError,
    ConnectRefusedError,
    ConnectTimeoutError,
    DeviceNotFoundError,
    InvalidModeError,
    NotConnectedError,
    SendError,
    ServiceNotFoundError,
    SessionClosedError,
    SubscriptionFailedError,
    WriteRejectedError,
)

__all__ = [
    "AdapterFaultError",
    "AncError",
    "AncMode",
    "CharacteristicNotFoundError",
    "ConnectError",
    "ConnectRefusedError",
    "ConnectTimeoutError",
    "ConnectionState",
    "DeviceNotFoundError",
    "GattSession",
    "InvalidModeError",
    "NotConnectedError",
    "SendError",
    "ServiceNotFoundError",
    "SessionClosedError",
    "SubscriptionFailedError",
    "WriteRejectedError",
]
