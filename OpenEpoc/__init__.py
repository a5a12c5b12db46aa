"""OpenEpoc: Minimal utilities for Emotiv EPOC EEG devices."""

from .epoc import EegType, EmotivEpoc, EmotivRawData, decrypt, derive_key
from .exceptions import (
    ChannelReadError,
    CouldNotReadSerial,
    EmotivError,
    InvalidFrameLength,
    InvalidSerialNumber,
)
from .decode import EmotivPacket, EmotivState, Sensor, decode_rawdata, fold_state, parse_packet
from .device import EmotivDevice, open_device, open_recording
from .find import find_devices, resolve_device
from .pipeline import (
    emotiv_packets,
    emotiv_readings,
    emotiv_states,
    measure_cycles,
    raw_frames,
    throttle,
)
from .record import record

__version__ = "0.1.0"
