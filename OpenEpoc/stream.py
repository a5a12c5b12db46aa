"""
Emotiv EPOC to LSL Streaming
============================

Streams decoded Emotiv EPOC data over Lab Streaming Layer (LSL).

Streaming Architecture:
-----------------------
1. Frames are pulled from an open EmotivDevice (blocking HID reads, or a
   recording optionally throttled to the device rate)
2. Each frame is decrypted, parsed and folded into the cumulative state
3. EEG, gyro and quality values of every state are appended to per-stream
   buffers
4. Every CHUNK_SIZE samples the buffers are pushed to LSL as one chunk
5. LSL outlets broadcast data to any connected LSL clients (e.g., LabRecorder)

Timestamps:
-----------
The EPOC frames carry no device clock, only a 0..128 counter. Each chunk is
therefore timestamped backwards from the LSL clock at the moment of the push,
spaced at the nominal 128 Hz: the newest sample gets local_clock(), the one
before it local_clock() - 1/128, and so on. Chunks are small (16 samples,
125 ms), which bounds the latency this adds.

LSL Stream Configuration:
-------------------------
- Emotiv_EEG: 14 channels (F3 ... F4) at 128 Hz, raw device units
- Emotiv_Gyro: 2 channels (GYRO_X, GYRO_Y) at 128 Hz
- Emotiv_Quality: 14 channels of last known contact quality at 128 Hz

Optional JSON Logging:
----------------------
If outfile is given, every pushed chunk is also written to a JSON file with
the exact timestamps and values sent to LSL.
"""

import json
import os
import time
from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional

import numpy as np
from mne_lsl.lsl import StreamInfo, StreamOutlet, local_clock

from .decode import EEG_CHANNELS, GYRO_CHANNELS, QUALITY_CHANNELS, EmotivState
from .device import EmotivDevice
from .epoc import EmotivEpoc
from .pipeline import emotiv_states, throttle
from .utils import configure_lsl_api_cfg, get_utc_timestamp


# Number of samples collected before pushing a chunk to LSL
CHUNK_SIZE = 16


@dataclass
class SensorStream:
    outlet: StreamOutlet
    labels: tuple[str, ...]
    sampling_rate: float
    unit: str
    buffer: list[list[float]] = field(default_factory=list)
    log_records: Optional[list[tuple[np.ndarray, np.ndarray]]] = None


def _create_stream_outlet(
    name: str,
    stype: str,
    labels: tuple[str, ...],
    source_id: str,
    unit: str,
    channel_type: Optional[str] = None,
) -> StreamOutlet:
    info = StreamInfo(
        name=name,
        stype=stype,
        n_channels=len(labels),
        sfreq=EmotivEpoc.SAMPLING_RATE,
        dtype="float32",
        source_id=source_id,
    )
    desc = info.desc
    desc.append_child_value("manufacturer", "Emotiv")
    channels = desc.append_child("channels")
    for label in labels:
        channel = channels.append_child("channel")
        channel.append_child_value("label", label)
        channel.append_child_value("unit", unit)
        if channel_type:
            channel.append_child_value("type", channel_type)

    return StreamOutlet(info, chunk_size=CHUNK_SIZE)


def _build_sensor_streams(serial: str, enable_logging: bool) -> dict[str, SensorStream]:
    specs = {
        "EEG": ("Emotiv_EEG", "EEG", EEG_CHANNELS, "a.u.", "EEG"),
        "Gyro": ("Emotiv_Gyro", "Motion", GYRO_CHANNELS, "a.u.", None),
        "Quality": ("Emotiv_Quality", "Quality", QUALITY_CHANNELS, "a.u.", None),
    }

    streams = {}
    for key, (name, stype, labels, unit, channel_type) in specs.items():
        outlet = _create_stream_outlet(
            name=name,
            stype=stype,
            labels=labels,
            source_id=f"{name}_{serial}",
            unit=unit,
            channel_type=channel_type,
        )
        streams[key] = SensorStream(
            outlet=outlet,
            labels=labels,
            sampling_rate=EmotivEpoc.SAMPLING_RATE,
            unit=unit,
        )

    if enable_logging:
        for stream in streams.values():
            stream.log_records = []

    return streams


def _queue_state(sensor_streams: dict[str, SensorStream], state: EmotivState) -> None:
    sensor_streams["EEG"].buffer.append(list(state.sensors))
    sensor_streams["Gyro"].buffer.append([state.gyro_x, state.gyro_y])
    sensor_streams["Quality"].buffer.append(list(state.qualities))


def _flush_buffer(stream: SensorStream, verbose: bool) -> int:
    """Push all buffered samples of one stream to LSL. Returns the number pushed."""
    if len(stream.buffer) == 0:
        return 0

    data = np.asarray(stream.buffer, dtype=np.float32)
    n_samples = data.shape[0]

    # Newest sample is "now", older ones spaced at the nominal rate
    lsl_now = local_clock()
    timestamps = lsl_now - np.arange(n_samples - 1, -1, -1) / stream.sampling_rate

    stream.buffer.clear()
    try:
        stream.outlet.push_chunk(
            x=data,
            timestamp=timestamps.astype(np.float64, copy=False),
            pushThrough=True,
        )
    except Exception as exc:
        if verbose:
            print(f"LSL push_chunk failed for {stream.labels[0]}...: {exc}")
        return 0

    if stream.log_records is not None:
        stream.log_records.append((timestamps.copy(), data.copy()))
    return n_samples


def _write_log(sensor_streams: dict[str, SensorStream], outfile: str, verbose: bool) -> None:
    json_data: dict[str, object] = {}
    for key, stream in sensor_streams.items():
        timestamps_out: list[float] = []
        data_out: list[list[float]] = []
        for timestamps, data_chunk in stream.log_records or []:
            timestamps_out.extend(float(ts) for ts in timestamps)
            data_out.extend(row.tolist() for row in data_chunk)
        json_data[key] = {
            "lsl_timestamps": timestamps_out,
            "channels": list(stream.labels),
            "data": data_out,
            "n_samples": len(timestamps_out),
            "sampling_rate": stream.sampling_rate,
            "unit": stream.unit,
        }
    json_data["created"] = get_utc_timestamp()

    outdir = os.path.dirname(os.path.abspath(outfile))
    if outdir and not os.path.exists(outdir):
        os.makedirs(outdir, exist_ok=True)

    with open(outfile, "w", encoding="utf-8") as f:
        json.dump(json_data, f, indent=2)

    if verbose:
        print(f"Wrote {json_data['EEG']['n_samples']} samples per stream to {outfile}")


def _run_stream(
    states: Iterable[EmotivState],
    sensor_streams: dict[str, SensorStream],
    duration: Optional[float],
    verbose: bool,
) -> Dict[str, int]:
    samples_sent = {key: 0 for key in sensor_streams}
    last_battery = None
    start = time.monotonic()

    def _flush_all() -> None:
        for key, stream in sensor_streams.items():
            samples_sent[key] += _flush_buffer(stream, verbose)

    try:
        for state in states:
            _queue_state(sensor_streams, state)

            if verbose and state.battery != last_battery and state.counter == 128:
                print(f"Battery: {state.battery}%")
                last_battery = state.battery

            if len(sensor_streams["EEG"].buffer) >= CHUNK_SIZE:
                _flush_all()

            if duration is not None and time.monotonic() - start >= duration:
                break
    finally:
        # Push whatever is left, also when interrupted
        _flush_all()

    return samples_sent


def stream(
    device: EmotivDevice,
    duration: Optional[float] = None,
    outfile: Optional[str] = None,
    realtime: bool = False,
    verbose: bool = True,
) -> Dict[str, int]:
    """
    Stream decoded EEG, gyro and quality data of an open device over LSL.

    Parameters
    ----------
    device : EmotivDevice
        Open device or recording.
    duration : float, optional
        Optional stream duration in seconds. Omit to stream until interrupted
        (or until a recording ends).
    outfile : str, optional
        Optional output JSON file to save the pushed samples.
    realtime : bool
        Throttle a recording to the device rate. Ignored for live devices.
    verbose : bool
        If True, print progress messages.

    Returns
    -------
    dict : number of samples pushed per stream
    """
    if duration is not None and duration <= 0:
        raise ValueError("duration must be positive when provided")

    # Configure LSL to reduce verbosity (disables IPv6 warnings and lowers log level)
    configure_lsl_api_cfg()

    serial = device.serial.decode("latin-1")
    sensor_streams = _build_sensor_streams(serial, enable_logging=outfile is not None)

    states: Iterable[EmotivState] = emotiv_states(device)
    if realtime and not device.live:
        states = throttle(states)

    if verbose:
        if duration:
            print(f"Streaming for {duration} seconds...")
        else:
            print("Streaming until interrupted. Press Ctrl+C to stop.")

    try:
        samples_sent = _run_stream(states, sensor_streams, duration, verbose)
    finally:
        if outfile:
            _write_log(sensor_streams, outfile, verbose)

    if verbose:
        print(
            "Stream stopped. "
            + ", ".join(f"{key}: {n} samples" for key, n in samples_sent.items())
        )
    return samples_sent
