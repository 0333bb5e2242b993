from enum import IntEnum

DEVICE_NAME = "AKG N9 Hybrid"
SCAN_SECONDS = 5.0
CONNECT_TIMEOUT = 10.0

# Airoha GATT service (UuidTable on the vendor app side)
SERVICE_UUID = "5052494d-2dab-0341-6972-6f6861424c45"

# RX: app -> headset (write), TX: headset -> app (notify)
RACE_RX_WRITE  = "43484152-2dab-3141-6972-6f6861424c45"
RACE_TX_NOTIFY = "43484152-2dab-3241-6972-6f6861424c45"

# Service discovery is flaky right after the link comes up
SERVICE_DISCOVERY_ATTEMPTS = 3
SERVICE_DISCOVERY_BACKOFF = 1.0

# Time the CLI leaves for the headset to answer before tearing down
RESPONSE_SETTLE_SECONDS = 1.0

# RACE framing
RACE_HEADER = 0x05
RACE_TYPE_CMD_EXPECTS_RESPONSE = 0x5A
RACE_TYPE_RESPONSE = 0x5B

# Race IDs (sent little-endian)
RACE_ID_ANC_CONTROL = 0x0E06
RACE_ID_GET_ANC_STATUS = 0x0901

# ANC sub-commands
ANC_CMD_ON = 0x0A
ANC_CMD_OFF = 0x0B

RACE_ID_NAMES = {
    RACE_ID_ANC_CONTROL: "ANC_CONTROL",
    RACE_ID_GET_ANC_STATUS: "GET_ANC_STATUS",
}


class AncMode(IntEnum):
    """Filter values understood by the headset."""

    Off = 0
    Anc1 = 1
    Anc2 = 2
    Anc3 = 3
    Anc4 = 4
    PassThrough1 = 9
    PassThrough2 = 10
    PassThrough3 = 11

    @property
    def is_pass_through(self) -> bool:
        return self >= AncMode.PassThrough1

    @classmethod
    def from_name(cls, name: str) -> "AncMode":
        key = name.strip().lower().replace("-", "").replace("_", "")
        for mode in cls:
            if mode.name.lower() == key:
                return mode
        raise KeyError(name)
