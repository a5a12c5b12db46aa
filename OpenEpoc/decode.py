"""
Emotiv EPOC Frame Parser
============================================

Parses decrypted 32-byte frames into packets and folds packets into the
cumulative state of a device.

Frame Structure:
----------------
Every HID read returns one 32-byte encrypted FRAME. After decryption
(see epoc.decrypt) the bytes are laid out as follows:

FRAME (32 bytes, 128 per second)
  ├─ byte 0: counter (0-127), or battery level if the high bit is set
  ├─ bytes 1-28: 224 data bits
  │    ├─ 14 EEG sensors: 14 bits each, at scrambled bit positions
  │    └─ quality: 14 bits of contact quality for ONE sensor (rotating)
  ├─ bytes 29-31: gyro X (12 bits) and gyro Y (12 bits)
  │    ├─ gyro X = byte29 << 4 | high nibble of byte31
  │    └─ gyro Y = byte30 << 4 | low nibble of byte31

Bit Positions:
--------------
Bit number N of the data section lives in byte (N >> 3) + 1 (skipping the
counter byte) at bit offset N & 7. A sensor value is assembled from its mask
by walking the bit numbers from the LAST to the FIRST, shifting the value left
by one each time. The masks are not contiguous and are not derivable; they are
copied from the observed device protocol.

Counter, Battery and Quality:
-----------------------------
  - Counter runs 0..127; the frame after 127 has the high bit of byte 0 set
    and reports counter 128. Its lower bits carry the battery level.
  - Which sensor's quality travels in a frame depends on byte 0. Counters 0-15
    and 64-80 carry quality; all other frames do not.
  - FC6 shows up three times per 0..128 cycle (12, 76, 80). This is what the
    hardware sends and is kept as is.

Cumulative State:
-----------------
A packet only ever contains ONE quality value and the battery only every 129th
frame. fold_state() keeps the last known battery and per-sensor quality and
replaces everything else with the newest packet.
"""

import enum
import json
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

import numpy as np
import pandas as pd

from .epoc import EmotivEpoc, EmotivRawData


class Sensor(enum.IntEnum):
    """The sensors of an Emotiv EPOC, named after the International 10-20 system."""

    F3 = 0
    FC5 = 1
    AF3 = 2
    F7 = 3
    T7 = 4
    P7 = 5
    O1 = 6
    O2 = 7
    P8 = 8
    T8 = 9
    F8 = 10
    AF4 = 11
    FC6 = 12
    F4 = 13


ALL_SENSORS: Tuple[Sensor, ...] = tuple(Sensor)
N_SENSORS = len(ALL_SENSORS)

# Gyro calibration offsets
GYRO_X_OFFSET = 1652
GYRO_Y_OFFSET = 1681

# Which bits of the data section make up each sensor value
SENSOR_MASKS: Dict[Sensor, Tuple[int, ...]] = {
    Sensor.F3: (10, 11, 12, 13, 14, 15, 0, 1, 2, 3, 4, 5, 6, 7),
    Sensor.FC5: (28, 29, 30, 31, 16, 17, 18, 19, 20, 21, 22, 23, 8, 9),
    Sensor.AF3: (46, 47, 32, 33, 34, 35, 36, 37, 38, 39, 24, 25, 26, 27),
    Sensor.F7: (48, 49, 50, 51, 52, 53, 54, 55, 40, 41, 42, 43, 44, 45),
    Sensor.T7: (66, 67, 68, 69, 70, 71, 56, 57, 58, 59, 60, 61, 62, 63),
    Sensor.P7: (84, 85, 86, 87, 72, 73, 74, 75, 76, 77, 78, 79, 64, 65),
    Sensor.O1: (102, 103, 88, 89, 90, 91, 92, 93, 94, 95, 80, 81, 82, 83),
    Sensor.O2: (140, 141, 142, 143, 128, 129, 130, 131, 132, 133, 134, 135, 120, 121),
    Sensor.P8: (158, 159, 144, 145, 146, 147, 148, 149, 150, 151, 136, 137, 138, 139),
    Sensor.T8: (160, 161, 162, 163, 164, 165, 166, 167, 152, 153, 154, 155, 156, 157),
    Sensor.F8: (178, 179, 180, 181, 182, 183, 168, 169, 170, 171, 172, 173, 174, 175),
    Sensor.AF4: (196, 197, 198, 199, 184, 185, 186, 187, 188, 189, 190, 191, 176, 177),
    Sensor.FC6: (214, 215, 200, 201, 202, 203, 204, 205, 206, 207, 192, 193, 194, 195),
    Sensor.F4: (216, 217, 218, 219, 220, 221, 222, 223, 208, 209, 210, 211, 212, 213),
}

# Which bits of the data section make up the sensor quality value
QUALITY_MASK: Tuple[int, ...] = (
    99, 100, 101, 102, 103, 104, 105, 106, 107, 108, 109, 110, 111, 112,
)

# Battery byte -> percentage, for bytes between 226 and 247
# (>= 248 is full, anything lower is empty)
BATTERY_LEVELS: Dict[int, int] = {
    247: 99,
    246: 97,
    245: 93,
    244: 89,
    243: 85,
    242: 82,
    241: 77,
    240: 72,
    239: 66,
    238: 62,
    237: 55,
    236: 46,
    235: 32,
    234: 20,
    233: 12,
    232: 6,
    231: 4,
    230: 3,
    229: 2,
    228: 1,
    227: 1,
    226: 1,
}

# Byte 0 -> sensor whose quality the frame carries
_QUALITY_CYCLE = (
    Sensor.F3,
    Sensor.FC5,
    Sensor.AF3,
    Sensor.F7,
    Sensor.T7,
    Sensor.P7,
    Sensor.O1,
    Sensor.O2,
    Sensor.P8,
    Sensor.T8,
    Sensor.F8,
    Sensor.AF4,
    Sensor.FC6,
    Sensor.F4,
    Sensor.F8,
    Sensor.AF4,
)
QUALITY_SENSORS: Dict[int, Sensor] = {
    **{i: s for i, s in enumerate(_QUALITY_CYCLE)},
    **{64 + i: s for i, s in enumerate(_QUALITY_CYCLE)},
    80: Sensor.FC6,
}

# Column labels shared across modules
EEG_CHANNELS: Tuple[str, ...] = tuple(s.name for s in ALL_SENSORS)
GYRO_CHANNELS: Tuple[str, ...] = ("GYRO_X", "GYRO_Y")
QUALITY_CHANNELS: Tuple[str, ...] = tuple(f"QUALITY_{s.name}" for s in ALL_SENSORS)


def get_level(raw: EmotivRawData, mask: Iterable[int]) -> int:
    """
    Extract the value made up by the given bits of a decrypted frame.

    Parameters:
    -----------
    raw : EmotivRawData
        Decrypted frame
    mask : Iterable[int]
        Bit numbers (0-223) counted from the start of the data section

    Returns:
    --------
    int : unsigned value; the first bit of the mask is the least significant
    """
    level = 0
    for bit_no in reversed(tuple(mask)):
        byte_idx = (bit_no >> 3) + 1  # skip the counter byte
        bit_offset = bit_no & 7
        level = (level << 1) | ((raw[byte_idx] >> bit_offset) & 1)
    return level


# TODO: the staircase was measured on a single headset; re-check it against
# a discharge curve from a second device.
def battery_value(battery_byte: int) -> int:
    """Parse a battery percentage from byte 0 of a counter-128 frame."""
    if battery_byte >= 248:
        return 100
    return BATTERY_LEVELS.get(battery_byte, 0)


def quality_sensor_from_byte0(packet_no: int) -> Optional[Sensor]:
    """Which sensor's quality is transmitted in a frame, or None."""
    return QUALITY_SENSORS.get(packet_no)


def _sensor_dict(values: Iterable[int]) -> Dict[str, int]:
    return {s.name: int(v) for s, v in zip(ALL_SENSORS, values)}


@dataclass(frozen=True)
class EmotivPacket:
    """
    The data of a single frame sent from the device.

    Accumulated data (the current state) is available in EmotivState.
    """

    raw_data: EmotivRawData  # the decrypted frame
    counter: int  # counts up from 0 to 127, 128 on the battery frame
    battery: Optional[int]  # battery percentage, only on the battery frame
    gyro_x: int  # turning "left" gives positive numbers
    gyro_y: int  # turning "down" gives positive numbers
    sensors: Tuple[int, ...]  # EEG sensor values, in Sensor order
    quality: Optional[Tuple[Sensor, int]]  # sensor-to-skin connectivity

    def as_dict(self) -> Dict:
        quality = None
        if self.quality is not None:
            sensor, level = self.quality
            quality = {"sensor": sensor.name, "level": level}
        return {
            "counter": self.counter,
            "battery": self.battery,
            "gyro_x": self.gyro_x,
            "gyro_y": self.gyro_y,
            "sensors": _sensor_dict(self.sensors),
            "quality": quality,
        }

    def encode(self, as_json: bool = False) -> str:
        if as_json:
            return json.dumps(self.as_dict())
        return repr(self)


@dataclass(frozen=True)
class EmotivState:
    """The current state of the EEG, cumulatively updated by incoming packets."""

    counter: int
    battery: int
    gyro_x: int
    gyro_y: int
    sensors: Tuple[int, ...]
    qualities: Tuple[int, ...]

    def quality(self, sensor: Sensor) -> int:
        return self.qualities[sensor]

    def as_dict(self) -> Dict:
        return {
            "counter": self.counter,
            "battery": self.battery,
            "gyro_x": self.gyro_x,
            "gyro_y": self.gyro_y,
            "sensors": _sensor_dict(self.sensors),
            "qualities": _sensor_dict(self.qualities),
        }

    def encode(self, as_json: bool = False) -> str:
        if as_json:
            return json.dumps(self.as_dict())
        return repr(self)


def parse_packet(raw: EmotivRawData) -> EmotivPacket:
    """
    Parse a decrypted frame into an EmotivPacket.

    Parameters:
    -----------
    raw : EmotivRawData
        Decrypted 32-byte frame

    Returns:
    --------
    EmotivPacket : counter, optional battery, gyro, 14 sensor values and
        optional (sensor, level) quality reading
    """
    byte0 = raw[0]
    is_battery_frame = (byte0 & 0x80) != 0  # the frame that would be counter 128

    quality_sensor = quality_sensor_from_byte0(byte0)
    quality = None
    if quality_sensor is not None:
        quality = (quality_sensor, get_level(raw, QUALITY_MASK))

    return EmotivPacket(
        raw_data=raw,
        counter=128 if is_battery_frame else byte0,
        battery=battery_value(byte0) if is_battery_frame else None,
        gyro_x=((raw[29] << 4) | (raw[31] >> 4)) - GYRO_X_OFFSET,
        gyro_y=((raw[30] << 4) | (raw[31] & 0x0F)) - GYRO_Y_OFFSET,
        sensors=tuple(get_level(raw, SENSOR_MASKS[s]) for s in ALL_SENSORS),
        quality=quality,
    )


def fold_state(previous: Optional[EmotivState], packet: EmotivPacket) -> EmotivState:
    """
    Compute the new cumulative state from the previous one and a new packet.

    Counter, gyro and sensor values are taken from the packet. Battery and the
    quality slots keep their last known values unless the packet carries them.
    """
    last_battery = previous.battery if previous is not None else 0
    qualities = list(previous.qualities) if previous is not None else [0] * N_SENSORS

    if packet.quality is not None:
        sensor, level = packet.quality
        qualities[sensor] = level

    return EmotivState(
        counter=packet.counter,
        battery=packet.battery if packet.battery is not None else last_battery,
        gyro_x=packet.gyro_x,
        gyro_y=packet.gyro_y,
        sensors=packet.sensors,
        qualities=tuple(qualities),
    )


def state_columns() -> List[str]:
    return ["time", "counter", "battery", *GYRO_CHANNELS, *EEG_CHANNELS, *QUALITY_CHANNELS]


def decode_rawdata(frames: Iterable[EmotivRawData]) -> pd.DataFrame:
    """
    Fold decrypted frames into states and return them as a Pandas DataFrame.

    Parameters:
    -----------
    frames : Iterable[EmotivRawData]
        Decrypted frames in the order they were received

    Returns:
    --------
    pd.DataFrame : one row per frame with columns
        [time, counter, battery, GYRO_X, GYRO_Y, <14 sensors>, QUALITY_<sensor> x 14]
        time is the frame index at the nominal 128 Hz rate

    Example:
    --------
    >>> device = open_recording("epoc.bin", serial="SN201211153208GM")
    >>> data = decode_rawdata(raw_frames(device))
    >>> data[["time", "F3", "QUALITY_F3"]].head()
    """
    state = None
    rows = []
    for raw in frames:
        state = fold_state(state, parse_packet(raw))
        rows.append(
            (
                state.counter,
                state.battery,
                state.gyro_x,
                state.gyro_y,
                *state.sensors,
                *state.qualities,
            )
        )

    columns = state_columns()
    if not rows:
        return pd.DataFrame(columns=columns)

    values = np.asarray(rows, dtype=np.int64)
    times = np.arange(len(rows), dtype=np.float64) / EmotivEpoc.SAMPLING_RATE
    result = pd.DataFrame(values, columns=columns[1:])
    result.insert(0, "time", times)
    return result
