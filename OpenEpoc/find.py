from typing import Any, Dict, List, Optional

from .backends import HidBackend


def find_devices(verbose=True, backend: Optional[HidBackend] = None) -> List[Dict[str, Any]]:
    """List connected Emotiv EPOC devices, ordered by interface number. Call 'find' from the terminal."""
    backend = backend or HidBackend()
    if verbose:
        print("Searching for Emotiv EPOC devices...")
    devices = sorted(backend.enumerate(), key=lambda d: d.get("interface_number", 0))

    if verbose:
        if devices:
            for d in devices:
                path = d.get("path")
                if isinstance(path, bytes):
                    path = path.decode("utf-8", errors="replace")
                print(
                    f'Found device {d.get("product_string") or "Emotiv EPOC"} '
                    f'(serial {d.get("serial_number")}, interface {d.get("interface_number")}) at {path}'
                )
        else:
            print("No Emotiv devices found. Ensure the dongle is plugged in and the headset is on.")

    return devices


def resolve_device(verbose: bool = True, backend: Optional[HidBackend] = None) -> Dict[str, Any]:
    """
    Return a single Emotiv device descriptor to open.

    The dongle exposes several HID interfaces; the last one listed is the one
    that streams EEG data. Raises ValueError if no device is found.
    """
    devices = find_devices(verbose=verbose, backend=backend)
    if len(devices) == 0:
        raise ValueError("No Emotiv devices discovered. Ensure the dongle is plugged in.")

    return devices[-1]
