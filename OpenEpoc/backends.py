from typing import Any, BinaryIO, Dict, List, Optional

import hid

from .epoc import EmotivEpoc
from .exceptions import ChannelReadError


class HidChannel:
    """An open hidapi device, read one report at a time."""

    def __init__(self, device: Any):
        self._device = device

    def read(self, size: int) -> bytes:
        try:
            data = self._device.read(size)
        except (IOError, OSError, ValueError) as exc:
            raise ChannelReadError(f"could not read from device: {exc}") from exc
        if not data:
            raise ChannelReadError("device returned no data")
        return bytes(data)

    def close(self) -> None:
        self._device.close()


class FileChannel:
    """A recording of encrypted frames, replayed from a binary file."""

    def __init__(self, fh: BinaryIO):
        self._fh = fh

    def read(self, size: int) -> bytes:
        try:
            data = self._fh.read(size)
        except OSError as exc:
            raise ChannelReadError(f"could not read from recording: {exc}") from exc
        if data and len(data) != size:
            raise ChannelReadError(
                f"recording ends with a truncated frame ({len(data)} of {size} bytes)"
            )
        return data

    def close(self) -> None:
        self._fh.close()


class HidBackend:
    """Minimal wrapper around hidapi for device discovery and opening."""

    def enumerate(
        self,
        vendor_id: int = EmotivEpoc.VENDOR_ID,
        product_id: int = EmotivEpoc.PRODUCT_ID,
    ) -> List[Dict[str, Any]]:
        return list(hid.enumerate(vendor_id, product_id))

    def open(self, info: Dict[str, Any]) -> HidChannel:
        device = hid.device()
        path: Optional[bytes] = info.get("path")
        try:
            if path:
                device.open_path(path)
            else:
                device.open(info["vendor_id"], info["product_id"], info.get("serial_number"))
        except (IOError, OSError) as exc:
            raise ChannelReadError(f"could not open device {path!r}: {exc}") from exc
        return HidChannel(device)
