"""Errors raised while opening and reading Emotiv devices."""

from typing import Optional


class EmotivError(Exception):
    """Base class for Emotiv related errors."""

    def __init__(self, message: str):
        super().__init__(f"Emotiv ERROR: {message}")


class InvalidFrameLength(EmotivError, ValueError):
    """A frame handed to the decryptor or parser is not 32 bytes long."""

    def __init__(self, length: int):
        self.length = length
        super().__init__(f"Emotiv raw data must be 32 bytes (got {length})")


class CouldNotReadSerial(EmotivError):
    """The device did not report a serial number."""

    def __init__(self, path: Optional[str]):
        self.path = path
        super().__init__(
            f"could not read serial number of device {path}. "
            "Maybe you are not running as root?"
        )


class InvalidSerialNumber(EmotivError, ValueError):
    """The reported serial number is not 16 bytes long."""

    def __init__(self, serial: str):
        self.serial = serial
        super().__init__(f"the device serial number {serial} does not look valid")


class ChannelReadError(EmotivError, IOError):
    """Reading a frame from the underlying channel failed."""
