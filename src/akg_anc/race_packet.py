import struct
from dataclasses import dataclass
from typing import Optional

from .config import (
    AncMode,
    ANC_CMD_OFF,
    ANC_CMD_ON,
    RACE_HEADER,
    RACE_ID_ANC_CONTROL,
    RACE_ID_GET_ANC_STATUS,
    RACE_TYPE_CMD_EXPECTS_RESPONSE,
    RACE_TYPE_RESPONSE,
)
from .errors import InvalidModeError

# header(1) + type(1) + length(2); length counts race id + payload
_PREFIX = struct.Struct("<BBH")
_RACE_ID = struct.Struct("<H")

MIN_RESPONSE_LEN = 8


@dataclass
class RaceResponse:
    packet_type: int
    length: int
    race_id: int
    payload: bytes


def encode(race_id: int, payload: bytes) -> bytes:
    """
    Build a RACE frame:
      [0x05] [0x5A] [len_lo len_hi] [id_lo id_hi] [payload...]
    where len = 2 + len(payload).
    """
    if not 0 <= race_id <= 0xFFFF:
        raise ValueError(f"race id out of range: {race_id!r}")
    length = 2 + len(payload)
    if length > 0xFFFF:
        raise ValueError("RACE payload too long")
    return (
        _PREFIX.pack(RACE_HEADER, RACE_TYPE_CMD_EXPECTS_RESPONSE, length)
        + _RACE_ID.pack(race_id)
        + bytes(payload)
    )


def build_anc_on(mode: AncMode = AncMode.Anc1) -> bytes:
    return encode(RACE_ID_ANC_CONTROL, bytes([0x00, ANC_CMD_ON, int(mode)]))


def build_anc_off() -> bytes:
    return encode(RACE_ID_ANC_CONTROL, bytes([0x00, ANC_CMD_OFF]))


def build_pass_through(mode: AncMode = AncMode.PassThrough1) -> bytes:
    """
    Pass-through is the ANC-on command carrying a pass-through filter value;
    the headset tells the two apart only by the filter byte.
    """
    if int(mode) < AncMode.PassThrough1:
        raise InvalidModeError(f"pass-through needs PassThrough1/2/3, got {getattr(mode, 'name', mode)}")
    return build_anc_on(mode)


def build_get_anc_status() -> bytes:
    return encode(RACE_ID_GET_ANC_STATUS, bytes([0x00]))


def is_response_success(data: Optional[bytes]) -> bool:
    # Only the frame type is checked; the status byte position varies by race id
    if data is None or len(data) < MIN_RESPONSE_LEN:
        return False
    return data[1] == RACE_TYPE_RESPONSE


def decode_response(data: Optional[bytes]) -> Optional[RaceResponse]:
    if not data or len(data) < _PREFIX.size + _RACE_ID.size:
        return None

    header, packet_type, length = _PREFIX.unpack_from(data, 0)
    if header != RACE_HEADER:
        return None

    race_id = _RACE_ID.unpack_from(data, _PREFIX.size)[0]
    end = _PREFIX.size + length
    payload = bytes(data[_PREFIX.size + _RACE_ID.size : end])
    return RaceResponse(packet_type, length, race_id, payload)


def to_display_hex(data: bytes) -> str:
    return " ".join(f"{b:02X}" for b in data)
