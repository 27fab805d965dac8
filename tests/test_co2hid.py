import pytest

pytest.importorskip("hid")

from co2device import ReadTimeout, ShortReadError, TransportError
from co2hid import HidFrameSource


CO2_RAW = [0xC3, 0xE4, 0x66, 0x20, 0x93, 0x46, 0xBF, 0x0A]


class FakeHidDevice:
    def __init__(self, reads=None, error=None):
        self.reads = list(reads or [])
        self.error = error
        self.closed = False
        self.timeouts = []

    def read(self, size, timeout_ms):
        self.timeouts.append(timeout_ms)
        if self.error:
            raise self.error
        if self.reads:
            return self.reads.pop(0)
        return []

    def close(self):
        self.closed = True


def test_hid_read_after_empty_slices():
    dev = FakeHidDevice([[], [], CO2_RAW])
    src = HidFrameSource("/dev/hidraw0", timeout=1.0, dev=dev)
    assert src.read() == bytes(CO2_RAW)
    assert len(dev.timeouts) == 3
    assert all(t >= 1 for t in dev.timeouts)


def test_hid_timeout():
    src = HidFrameSource("/dev/hidraw0", timeout=0.05, dev=FakeHidDevice())
    with pytest.raises(ReadTimeout):
        src.read()


def test_hid_short_read():
    src = HidFrameSource("/dev/hidraw0", dev=FakeHidDevice([[0x50, 0x03]]))
    with pytest.raises(ShortReadError):
        src.read()


def test_hid_io_error():
    src = HidFrameSource("/dev/hidraw0", dev=FakeHidDevice(error=IOError("read error")))
    with pytest.raises(TransportError):
        src.read()


def test_hid_close():
    dev = FakeHidDevice([CO2_RAW])
    with HidFrameSource("/dev/hidraw0", dev=dev) as src:
        pass
    assert dev.closed
    with pytest.raises(TransportError):
        src.read()
