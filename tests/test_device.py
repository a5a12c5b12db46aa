"""
Unit tests for opening devices and reading from them.

The HID layer is replaced by fakes; recordings are written to a temporary
directory from frames encrypted with the key of tests/frames.py SERIAL.
"""

import os
import tempfile
import threading
import unittest
from unittest.mock import MagicMock, patch

from OpenEpoc.backends import FileChannel, HidBackend, HidChannel
from OpenEpoc.decode import Sensor, battery_value, parse_packet
from OpenEpoc.device import EmotivDevice, open_device, open_recording
from OpenEpoc.epoc import EegType
from OpenEpoc.exceptions import (
    ChannelReadError,
    CouldNotReadSerial,
    InvalidFrameLength,
    InvalidSerialNumber,
)

from .frames import DEVELOPER_KEY, SERIAL, FakeChannel, encrypt, make_plain


class FakeBackend:
    def __init__(self, channel):
        self.channel = channel
        self.opened = []

    def open(self, info):
        self.opened.append(info)
        return self.channel


def _info(serial="SN201211153208GM", path=b"/dev/hidraw3"):
    return {
        "path": path,
        "vendor_id": 8609,
        "product_id": 1,
        "serial_number": serial,
        "interface_number": 1,
    }


class OpenDeviceTests(unittest.TestCase):
    def test_opens_with_valid_serial(self):
        backend = FakeBackend(FakeChannel([]))
        device = open_device(_info(), backend=backend)
        self.assertEqual(device.serial, SERIAL)
        self.assertEqual(device.eeg_type, EegType.CONSUMER)
        self.assertIsNone(device.state)
        self.assertTrue(device.live)
        self.assertEqual(len(backend.opened), 1)

    def test_missing_serial(self):
        backend = FakeBackend(FakeChannel([]))
        with self.assertRaises(CouldNotReadSerial) as ctx:
            open_device(_info(serial=None), backend=backend)
        self.assertEqual(ctx.exception.path, "/dev/hidraw3")
        self.assertIn("/dev/hidraw3", str(ctx.exception))
        self.assertEqual(backend.opened, [])

    def test_empty_serial(self):
        with self.assertRaises(CouldNotReadSerial):
            open_device(_info(serial=""), backend=FakeBackend(FakeChannel([])))

    def test_invalid_serial(self):
        backend = FakeBackend(FakeChannel([]))
        with self.assertRaises(InvalidSerialNumber) as ctx:
            open_device(_info(serial="0000"), backend=backend)
        self.assertIn("0000", str(ctx.exception))
        self.assertEqual(backend.opened, [])


class ReadTests(unittest.TestCase):
    def _device(self, plains, eeg_type=EegType.CONSUMER, key=None):
        frames = [encrypt(p, key) if key else encrypt(p) for p in plains]
        self.channel = FakeChannel(frames)
        return EmotivDevice(self.channel, SERIAL, eeg_type)

    def test_read_returns_state_and_packet(self):
        device = self._device([make_plain(byte0=0, quality=55)])
        state, packet = device.read()
        self.assertEqual(packet.counter, 0)
        self.assertEqual(packet.quality, (Sensor.F3, 55))
        self.assertEqual(state.qualities[Sensor.F3], 55)
        self.assertIs(device.state, state)

    def test_read_folds_successive_frames(self):
        device = self._device(
            [make_plain(byte0=245), make_plain(byte0=0, quality=9), make_plain(byte0=1)]
        )
        device.read()
        device.read()
        state, packet = device.read()
        self.assertEqual(packet.counter, 1)
        self.assertEqual(state.battery, 93)
        self.assertEqual(state.qualities[Sensor.F3], 9)

    def test_read_developer_model(self):
        device = self._device(
            [make_plain(byte0=7)], eeg_type=EegType.DEVELOPER, key=DEVELOPER_KEY
        )
        _, packet = device.read()
        self.assertEqual(packet.counter, 7)

    def test_read_raw_does_not_touch_state(self):
        plain = make_plain(byte0=3)
        device = self._device([plain])
        raw = device.read_raw()
        self.assertEqual(raw.data, plain)
        self.assertIsNone(device.state)

    def test_read_frame_returns_ciphertext(self):
        plain = make_plain(byte0=3)
        device = self._device([plain])
        self.assertEqual(device.read_frame(), encrypt(plain))

    def test_end_of_source(self):
        device = self._device([])
        self.assertIsNone(device.read())
        self.assertIsNone(device.read_raw())

    def test_short_frame_is_rejected(self):
        device = EmotivDevice(FakeChannel([bytes(20)]), SERIAL)
        with self.assertRaises(InvalidFrameLength):
            device.read()

    def test_concurrent_read_is_refused(self):
        device = self._device([make_plain()])
        device._read_lock.acquire()
        try:
            with self.assertRaises(RuntimeError):
                device.read()
        finally:
            device._read_lock.release()
        self.assertIsNotNone(device.read())

    def test_read_held_while_parsing_refuses_second_reader(self):
        device = self._device([make_plain(byte0=0, quality=10), make_plain(byte0=1, quality=20)])
        parsing = threading.Event()
        release = threading.Event()

        def slow_parse(raw):
            parsing.set()
            release.wait(5)
            return parse_packet(raw)

        results = []
        with patch("OpenEpoc.device.parse_packet", side_effect=slow_parse):
            reader = threading.Thread(target=lambda: results.append(device.read()))
            reader.start()
            try:
                self.assertTrue(parsing.wait(5))
                with self.assertRaises(RuntimeError):
                    device.read()
                with self.assertRaises(RuntimeError):
                    device.read_raw()
            finally:
                release.set()
                reader.join(5)

        self.assertEqual(results[0][1].counter, 0)
        state, packet = device.read()
        self.assertEqual(packet.counter, 1)
        self.assertEqual(state.qualities[Sensor.F3], 10)
        self.assertEqual(state.qualities[Sensor.FC5], 20)

    def test_close(self):
        device = self._device([make_plain()])
        with device:
            pass
        self.assertTrue(self.channel.closed)
        with self.assertRaises(ValueError):
            device.read()

    def test_channel_errors_propagate(self):
        channel = MagicMock()
        channel.read.side_effect = ChannelReadError("could not read from device")
        device = EmotivDevice(channel, SERIAL)
        with self.assertRaises(ChannelReadError):
            device.read()


class HidChannelTests(unittest.TestCase):
    def test_reads_list_of_ints(self):
        hid_device = MagicMock()
        hid_device.read.return_value = list(range(32))
        self.assertEqual(HidChannel(hid_device).read(32), bytes(range(32)))
        hid_device.read.assert_called_once_with(32)

    def test_wraps_io_errors(self):
        hid_device = MagicMock()
        hid_device.read.side_effect = IOError("read error")
        with self.assertRaises(ChannelReadError):
            HidChannel(hid_device).read(32)

    def test_empty_read_is_an_error(self):
        hid_device = MagicMock()
        hid_device.read.return_value = []
        with self.assertRaises(ChannelReadError):
            HidChannel(hid_device).read(32)

    def test_channel_read_error_is_io_error(self):
        self.assertTrue(issubclass(ChannelReadError, IOError))


class HidBackendTests(unittest.TestCase):
    def test_enumerates_emotiv_ids(self):
        with patch("OpenEpoc.backends.hid") as hid_mod:
            hid_mod.enumerate.return_value = [_info()]
            devices = HidBackend().enumerate()
        hid_mod.enumerate.assert_called_once_with(8609, 1)
        self.assertEqual(devices, [_info()])

    def test_opens_by_path(self):
        with patch("OpenEpoc.backends.hid") as hid_mod:
            channel = HidBackend().open(_info())
        hid_mod.device.return_value.open_path.assert_called_once_with(b"/dev/hidraw3")
        self.assertIsInstance(channel, HidChannel)

    def test_open_failure(self):
        with patch("OpenEpoc.backends.hid") as hid_mod:
            hid_mod.device.return_value.open_path.side_effect = OSError("open failed")
            with self.assertRaises(ChannelReadError):
                HidBackend().open(_info())


class RecordingTests(unittest.TestCase):
    """End-to-end: a recorded three-frame session."""

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.path = os.path.join(self.tmpdir.name, "session.bin")

    def tearDown(self):
        self.tmpdir.cleanup()

    def _write(self, plains, extra=b""):
        with open(self.path, "wb") as f:
            for plain in plains:
                f.write(encrypt(plain))
            f.write(extra)

    def test_three_frame_session(self):
        self._write(
            [
                make_plain(byte0=0, quality=1111),
                make_plain(byte0=1, quality=2222),
                make_plain(byte0=128, quality=3333),
            ]
        )
        with open_recording(self.path, "SN201211153208GM") as device:
            self.assertFalse(device.live)
            readings = [device.read() for _ in range(3)]
            self.assertIsNone(device.read())

        state, packet = readings[-1]
        self.assertEqual(packet.counter, 128)
        self.assertIsNone(packet.quality)
        self.assertEqual(state.battery, battery_value(128))
        nonzero = {i for i, q in enumerate(state.qualities) if q}
        self.assertEqual(nonzero, {Sensor.F3, Sensor.FC5})
        self.assertEqual(state.qualities[Sensor.F3], 1111)
        self.assertEqual(state.qualities[Sensor.FC5], 2222)

    def test_battery_frame_with_charge(self):
        self._write([make_plain(byte0=0, quality=5), make_plain(byte0=240), make_plain(byte0=2)])
        with open_recording(self.path, SERIAL) as device:
            while device.read() is not None:
                pass
            self.assertEqual(device.state.battery, 72)
            self.assertEqual(device.state.counter, 2)

    def test_truncated_recording(self):
        self._write([make_plain(byte0=0)], extra=b"\x00" * 10)
        with open_recording(self.path, SERIAL) as device:
            device.read()
            with self.assertRaises(ChannelReadError):
                device.read()

    def test_recording_requires_valid_serial(self):
        self._write([make_plain()])
        with self.assertRaises(InvalidSerialNumber):
            open_recording(self.path, "short")

    def test_file_channel_end_of_file(self):
        self._write([])
        with open(self.path, "rb") as fh:
            self.assertEqual(FileChannel(fh).read(32), b"")


if __name__ == "__main__":
    unittest.main()
