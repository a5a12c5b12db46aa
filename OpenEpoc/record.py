import os
import time

from .device import EmotivDevice


def record(
    device: EmotivDevice,
    duration: float = 30.0,
    outfile: str = "epoc_record.bin",
    verbose: bool = True,
) -> int:
    """
    Read encrypted frames from a device and append them to a binary file.

    Frames are written exactly as received (32 bytes each, still encrypted),
    so the file can be replayed later with open_recording() and the device's
    serial number.

    Parameters
    - device: Open EmotivDevice to read from.
    - duration: Recording duration in seconds.
    - outfile: Path to output file.
    - verbose: Print progress messages.

    Returns the number of frames written.
    """
    if duration <= 0:
        raise ValueError("duration must be positive")
    if not isinstance(outfile, str) or not outfile:
        raise ValueError("outfile must be a non-empty path string")

    outdir = os.path.dirname(os.path.abspath(outfile))
    if outdir and not os.path.exists(outdir):
        os.makedirs(outdir, exist_ok=True)

    if verbose:
        print(f"Recording for {duration} seconds to {outfile} ...")

    n_frames = 0
    with open(outfile, "ab") as f:
        start = time.monotonic()
        while time.monotonic() - start < duration:
            frame = device.read_frame()
            if frame is None:
                break
            f.write(frame)
            n_frames += 1

    if verbose:
        print(f"Done. Wrote {n_frames} frames to {outfile}.")
    return n_frames
