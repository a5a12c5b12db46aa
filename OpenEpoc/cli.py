import argparse
import sys

from .epoc import EegType
from .exceptions import EmotivError
from .find import find_devices, resolve_device

DUMP_MODES = ("raw", "packets", "state", "measure")


def _add_device_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--from-file",
        default=None,
        metavar="PATH",
        help="Read recorded encrypted frames from a file instead of a device",
    )
    parser.add_argument(
        "--serial",
        default=None,
        help="Serial number of the recorded device (required with --from-file)",
    )
    parser.add_argument(
        "--developer",
        action="store_true",
        help="The headset is a developer (not consumer) model",
    )


def _open_from_args(parser: argparse.ArgumentParser, ns):
    from .device import open_device, open_recording

    eeg_type = EegType.DEVELOPER if ns.developer else EegType.CONSUMER
    if ns.from_file:
        if not ns.serial:
            parser.error("--serial is required with --from-file")
        return open_recording(ns.from_file, ns.serial, eeg_type)

    info = resolve_device(verbose=False)
    print(f"Using device with serial {info.get('serial_number')}", file=sys.stderr)
    return open_device(info, eeg_type)


def _dump(device, mode: str, as_json: bool, realtime: bool) -> None:
    from .pipeline import emotiv_packets, emotiv_states, measure_cycles, raw_frames, throttle

    if mode == "packets":
        items = emotiv_packets(device)
    elif mode == "state":
        items = emotiv_states(device)
    else:
        items = raw_frames(device)

    # Only recordings are throttled; a real device paces itself
    if realtime and not device.live:
        items = throttle(items)

    if mode == "measure":
        for cycle_time in measure_cycles(items):
            print(cycle_time, flush=True)
    elif mode == "raw" and not as_json:
        out = sys.stdout.buffer
        for raw in items:
            out.write(raw.data)
            out.flush()
    else:
        for item in items:
            print(item.encode(as_json), flush=True)


def main(argv=None):
    parser = argparse.ArgumentParser(prog="OpenEpoc", description="Emotiv EPOC utilities")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # find subcommand
    p_find = subparsers.add_parser("find", help="List connected Emotiv devices")

    def handle_find(ns):
        find_devices(verbose=True)
        return 0

    p_find.set_defaults(func=handle_find)

    # dump subcommand
    p_dump = subparsers.add_parser("dump", help="Dump Emotiv data to stdout")
    _add_device_args(p_dump)
    p_dump.add_argument(
        "--mode",
        default="state",
        choices=DUMP_MODES,
        help="What to dump: raw frames, packets, cumulative state, or cycle time measurements (default: state)",
    )
    p_dump.add_argument(
        "--realtime",
        action="store_true",
        help="With --from-file, throttle data to the rate of a real device",
    )
    p_dump.add_argument("--json", action="store_true", help="Format output as JSON")

    def handle_dump(ns):
        with _open_from_args(parser, ns) as device:
            _dump(device, ns.mode, ns.json, ns.realtime)
        return 0

    p_dump.set_defaults(func=handle_dump)

    # record subcommand
    p_rec = subparsers.add_parser(
        "record", help="Record encrypted frames from a device to a binary file"
    )
    p_rec.add_argument(
        "--duration",
        "-d",
        type=float,
        default=30.0,
        help="Recording duration in seconds (default: 30)",
    )
    p_rec.add_argument(
        "--outfile", "-o", default="epoc_record.bin", help="Output file path"
    )

    def handle_record(ns):
        from .device import open_device
        from .record import record

        if ns.duration <= 0:
            parser.error("--duration must be positive")

        info = resolve_device()
        print(f"Recording device with serial {info.get('serial_number')}")
        with open_device(info) as device:
            record(device, duration=ns.duration, outfile=ns.outfile, verbose=True)
        return 0

    p_rec.set_defaults(func=handle_record)

    # stream subcommand
    p_stream = subparsers.add_parser(
        "stream",
        help="Stream decoded EEG, gyro and quality data over LSL",
    )
    _add_device_args(p_stream)
    p_stream.add_argument(
        "--duration",
        "-d",
        type=float,
        default=None,
        help="Optional stream duration in seconds. Omit to stream until interrupted.",
    )
    p_stream.add_argument(
        "--outfile",
        "-o",
        default=None,
        help="Optional output JSON file to save the streamed samples. Omit to only stream.",
    )
    p_stream.add_argument(
        "--realtime",
        action="store_true",
        help="With --from-file, throttle data to the rate of a real device",
    )

    def handle_stream(ns):
        from .stream import stream

        if ns.duration is not None and ns.duration <= 0:
            parser.error("--duration must be positive when provided")

        with _open_from_args(parser, ns) as device:
            stream(
                device,
                duration=ns.duration,
                outfile=ns.outfile,
                realtime=ns.realtime,
                verbose=True,
            )
        return 0

    p_stream.set_defaults(func=handle_stream)

    args = parser.parse_args(argv)
    try:
        return args.func(args)
    except KeyboardInterrupt:
        print("Interrupted.", file=sys.stderr)
        return 130
    except BrokenPipeError:
        # Downstream consumer went away (e.g. piped into head)
        return 0
    except EmotivError as e:
        print(e, file=sys.stderr)
        return 1
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
