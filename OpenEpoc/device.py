"""Open Emotiv devices (or recordings of them) and read decoded frames."""

import threading
from typing import Any, Dict, Optional, Protocol, Tuple, Union

from .backends import FileChannel, HidBackend
from .decode import EmotivPacket, EmotivState, fold_state, parse_packet
from .epoc import EegType, EmotivEpoc, EmotivRawData, decrypt, make_serial_number
from .exceptions import CouldNotReadSerial


class Channel(Protocol):
    def read(self, size: int) -> bytes: ...

    def close(self) -> None: ...


class EmotivDevice:
    """
    An open Emotiv device together with its cumulative EmotivState.

    The state is None until the first frame has been read. Only one reader
    may use a device at a time; a concurrent read raises RuntimeError.
    """

    def __init__(
        self,
        channel: Channel,
        serial: bytes,
        eeg_type: EegType = EegType.CONSUMER,
        live: bool = True,
    ):
        self.serial = serial
        self.eeg_type = eeg_type
        self.live = live
        self.state: Optional[EmotivState] = None
        self._channel = channel
        self._read_lock = threading.Lock()
        self._closed = False

    def _read_frame(self) -> Optional[bytes]:
        if self._closed:
            raise ValueError("read from closed EmotivDevice")
        return self._channel.read(EmotivEpoc.FRAME_SIZE) or None

    def _read_raw(self) -> Optional[EmotivRawData]:
        encrypted = self._read_frame()
        if encrypted is None:
            return None
        return decrypt(self.serial, self.eeg_type, encrypted)

    def _acquire(self) -> None:
        if not self._read_lock.acquire(blocking=False):
            raise RuntimeError("EmotivDevice does not support concurrent reads")

    def read_frame(self) -> Optional[bytes]:
        """Read one encrypted 32-byte frame. None once a recording is exhausted."""
        self._acquire()
        try:
            return self._read_frame()
        finally:
            self._read_lock.release()

    def read_raw(self) -> Optional[EmotivRawData]:
        """Read and decrypt one frame without touching the cumulative state."""
        self._acquire()
        try:
            return self._read_raw()
        finally:
            self._read_lock.release()

    def read(self) -> Optional[Tuple[EmotivState, EmotivPacket]]:
        """
        Read one frame, parse it and update the cumulative state.

        Returns both the updated state and the packet read from the device,
        or None at the end of a recording.
        """
        self._acquire()
        try:
            raw = self._read_raw()
            if raw is None:
                return None
            packet = parse_packet(raw)
            self.state = fold_state(self.state, packet)
            return self.state, packet
        finally:
            self._read_lock.release()

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._channel.close()

    def __enter__(self) -> "EmotivDevice":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


def open_device(
    info: Dict[str, Any],
    eeg_type: EegType = EegType.CONSUMER,
    backend: Optional[HidBackend] = None,
) -> EmotivDevice:
    """
    Open a device described by a hidapi enumeration entry.

    The serial number is validated before the device is opened. Raises
    CouldNotReadSerial if the device reports none and InvalidSerialNumber if
    it is not 16 bytes long.
    """
    serial_number = info.get("serial_number")
    if not serial_number:
        path = info.get("path")
        if isinstance(path, bytes):
            path = path.decode("utf-8", errors="replace")
        raise CouldNotReadSerial(path)
    serial = make_serial_number(serial_number)

    backend = backend or HidBackend()
    return EmotivDevice(backend.open(info), serial, eeg_type, live=True)


def open_recording(
    path: str,
    serial: Union[str, bytes],
    eeg_type: EegType = EegType.CONSUMER,
) -> EmotivDevice:
    """Open a file of recorded encrypted frames for reading like a device."""
    serial_bytes = make_serial_number(serial)
    fh = open(path, "rb")
    return EmotivDevice(FileChannel(fh), serial_bytes, eeg_type, live=False)
