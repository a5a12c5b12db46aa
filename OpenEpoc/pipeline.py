"""
Pull-based streams over an open EmotivDevice.

Each generator blocks on the device when the consumer asks for the next item,
so the consumer drives the pace (no queues, no reader thread). Streams from a
live device are infinite; streams from a recording end when the file is
exhausted. None of them can be restarted without reopening the device.

A recording has no natural pace. throttle() slows any of these streams down
to the rate of a real device. Do not wrap a live device: the hardware already
paces its reads.
"""

import time
from typing import Callable, Iterable, Iterator, Tuple, TypeVar

from .decode import EmotivPacket, EmotivState
from .device import EmotivDevice
from .epoc import EmotivEpoc, EmotivRawData

T = TypeVar("T")

# One frame per 1/129 s, i.e. one full 0..128 counter cycle per second
REALTIME_INTERVAL = 1.0 / EmotivEpoc.FRAMES_PER_CYCLE


def raw_frames(device: EmotivDevice) -> Iterator[EmotivRawData]:
    """Yield decrypted frames without updating the device state."""
    while True:
        raw = device.read_raw()
        if raw is None:
            return
        yield raw


def emotiv_readings(device: EmotivDevice) -> Iterator[Tuple[EmotivState, EmotivPacket]]:
    """Yield (state, packet) pairs, updating the device state on every frame."""
    while True:
        reading = device.read()
        if reading is None:
            return
        yield reading


def emotiv_packets(device: EmotivDevice) -> Iterator[EmotivPacket]:
    for _, packet in emotiv_readings(device):
        yield packet


def emotiv_states(device: EmotivDevice) -> Iterator[EmotivState]:
    for state, _ in emotiv_readings(device):
        yield state


def throttle(
    items: Iterable[T],
    interval: float = REALTIME_INTERVAL,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> Iterator[T]:
    """
    Pace a stream to at most one item per `interval` seconds.

    The time spent waiting for the upstream item counts towards the interval,
    so slow sources are not delayed any further. Items are never dropped,
    reordered or duplicated.
    """
    iterator = iter(items)
    while True:
        time_before = clock()
        try:
            item = next(iterator)
        except StopIteration:
            return
        delay = interval - (clock() - time_before)
        if delay > 0:
            sleep(delay)
        yield item


def measure_cycles(
    items: Iterable[object],
    clock: Callable[[], float] = time.monotonic,
) -> Iterator[float]:
    """
    Yield how many seconds each full 0..128 counter cycle took.

    Counts incoming frames; after every 129th frame the elapsed time since
    the previous cycle is yielded. A real device should report close to 1.0.
    """
    cycle_start = clock()
    count = 0
    for _ in items:
        if count == EmotivEpoc.FRAMES_PER_CYCLE - 1:
            now = clock()
            yield now - cycle_start
            cycle_start = now
            count = 0
        else:
            count += 1
