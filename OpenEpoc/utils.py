import atexit
import os
import tempfile
from datetime import datetime, timezone
from typing import Optional


_LSL_CFG_PATH: Optional[str] = None

_LSL_CFG = """
[ports]
IPv6 = disable

[log]
level = -1
""".lstrip()


def get_utc_timestamp() -> str:
    """Current UTC time in ISO 8601 format."""
    return datetime.now(timezone.utc).isoformat()


def _remove_quietly(path: str) -> None:
    try:
        os.remove(path)
    except OSError:
        pass


def configure_lsl_api_cfg() -> Optional[str]:
    """
    Point liblsl at a temporary config file to reduce console verbosity.

    Leaves LSLAPICFG alone if the user already set it. Returns the config
    path in use, or None if no config could be written.
    """
    global _LSL_CFG_PATH

    if "LSLAPICFG" in os.environ:
        return os.environ["LSLAPICFG"]

    if _LSL_CFG_PATH is None:
        cfg_fd, cfg_path = tempfile.mkstemp(prefix="lsl_api_", suffix=".cfg")
        try:
            with os.fdopen(cfg_fd, "w", encoding="ascii") as fh:
                fh.write(_LSL_CFG)
        except OSError:
            _remove_quietly(cfg_path)
            return None
        atexit.register(_remove_quietly, cfg_path)
        _LSL_CFG_PATH = cfg_path

    os.environ["LSLAPICFG"] = _LSL_CFG_PATH
    return _LSL_CFG_PATH
