"""Constants, key derivation and frame decryption for the Emotiv EPOC headset."""

import base64
import enum
import json
from typing import ClassVar, Union

from Crypto.Cipher import AES

from .exceptions import InvalidFrameLength, InvalidSerialNumber


class EegType(enum.Enum):
    """Whether the EPOC is a consumer or developer model.

    This only affects the layout of the decryption key.
    """

    CONSUMER = "consumer"
    DEVELOPER = "developer"


class EmotivEpoc:
    """Constants shared across EPOC interactions."""

    VENDOR_ID: ClassVar[int] = 8609
    PRODUCT_ID: ClassVar[int] = 1

    FRAME_SIZE: ClassVar[int] = 32
    BLOCK_SIZE: ClassVar[int] = 16
    SERIAL_SIZE: ClassVar[int] = 16

    # 128 data frames per second, plus the battery frame at counter 128
    SAMPLING_RATE: ClassVar[float] = 128.0
    FRAMES_PER_CYCLE: ClassVar[int] = 129


class EmotivRawData:
    """Decrypted EEG data of one frame. Always 32 bytes."""

    __slots__ = ("_data",)

    def __init__(self, data: bytes):
        if len(data) != EmotivEpoc.FRAME_SIZE:
            raise InvalidFrameLength(len(data))
        self._data = bytes(data)

    @property
    def data(self) -> bytes:
        return self._data

    def __getitem__(self, index):
        return self._data[index]

    def __len__(self) -> int:
        return len(self._data)

    def __eq__(self, other) -> bool:
        if not isinstance(other, EmotivRawData):
            return NotImplemented
        return self._data == other._data

    def __hash__(self) -> int:
        return hash(self._data)

    def __repr__(self) -> str:
        return "[Emotiv raw data]"

    def encode(self, as_json: bool = False) -> str:
        """Encode for output: base64 inside JSON, hex otherwise."""
        if as_json:
            return json.dumps(base64.b64encode(self._data).decode("ascii"))
        return self._data.hex()


def make_serial_number(serial: Union[str, bytes]) -> bytes:
    """
    Check an Emotiv serial and return it as 16 bytes.

    Strings are encoded as latin-1, one byte per character, the way hidapi
    reports them. Raises InvalidSerialNumber if the result is not 16 bytes.
    """
    if isinstance(serial, str):
        try:
            encoded = serial.encode("latin-1")
        except UnicodeEncodeError as exc:
            raise InvalidSerialNumber(serial) from exc
    else:
        encoded = bytes(serial)

    if len(encoded) != EmotivEpoc.SERIAL_SIZE:
        raise InvalidSerialNumber(
            serial if isinstance(serial, str) else encoded.decode("latin-1")
        )
    return encoded


def derive_key(serial: bytes, eeg_type: EegType = EegType.CONSUMER) -> bytes:
    """
    Build the 16-byte AES key for a device from its serial number.

    The key mixes the last four serial bytes with the literals 0x00, 0x10 and
    the ASCII letters T, B, H, P. Consumer and developer headsets use a
    different order for the middle part.
    """

    def sn(offset: int) -> int:
        # Negative offsets count from the end of the serial
        return serial[len(serial) + offset]

    start = [sn(-1), 0x00, sn(-2)]
    if eeg_type is EegType.CONSUMER:
        middle = [ord("T"), sn(-3), 0x10, sn(-4), ord("B"), sn(-1), 0x00, sn(-2), ord("H")]
    else:
        middle = [ord("H"), sn(-1), 0x00, sn(-2), ord("T"), sn(-3), 0x10, sn(-4), ord("B")]
    end = [sn(-3), 0x00, sn(-4), ord("P")]

    return bytes(start + middle + end)


def decrypt(serial: bytes, eeg_type: EegType, encrypted: bytes) -> "EmotivRawData":
    """
    Decrypt a 32-byte frame as sent by the EEG.

    Both 16-byte halves are decrypted independently with AES-128 in ECB mode.

    Returns:
    --------
    EmotivRawData : the 32 decrypted bytes
    """
    if len(encrypted) != EmotivEpoc.FRAME_SIZE:
        raise InvalidFrameLength(len(encrypted))

    cipher = AES.new(derive_key(serial, eeg_type), AES.MODE_ECB)
    half = EmotivEpoc.BLOCK_SIZE
    left, right = bytes(encrypted[:half]), bytes(encrypted[half:])
    return EmotivRawData(cipher.decrypt(left) + cipher.decrypt(right))
