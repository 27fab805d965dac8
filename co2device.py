'''
Created on 19.11.2023

@author: irimi
'''
import logging
import select
import time
import threading
from typing import Optional

from co2frame import FRAME_SIZE, KEY, encrypt, hexdump, makeFrame, eCO2, eTemp, eHum
from co2measurement import AccumulationCancelled

TIMEOUT_S = 5.0
POLL_SLICE_S = 0.25

UDEV_HINTS = [
    "Please check udev rules / access rights and/or group assigment, e.g.",
    "KERNEL==\"hidraw*\", ATTRS{idVendor}==\"04d9\", ATTRS{idProduct}==\"a052\", GROUP=\"input\", MODE=\"0660\"",
    "KERNEL==\"hidraw*\", ATTRS{idVendor}==\"04d9\", ATTRS{idProduct}==\"a052\", GROUP=\"plugdev\", MODE=\"0660\"",
]


class TransportError(IOError):
    """ reading frames from the device has failed """


class ShortReadError(TransportError):
    """ device returned less than one frame """


class DeviceClosedError(TransportError):
    """ end of stream, device unplugged or closed """


class ReadTimeout(TransportError):
    """ no frame within the read timeout """


def logAccessHints(device: str):
    logging.error(f"device available but access has failed: {device}")
    for hint in UDEV_HINTS:
        logging.error(hint)


class FrameSource(object):
    """
    base class of all frame sources
    read() returns exactly FRAME_SIZE bytes or raises a TransportError
    """

    def __init__(self, device: str, timeout: Optional[float] = TIMEOUT_S,
                 stop: Optional[threading.Event] = None):
        self.device = device
        self.timeout = timeout
        self.stop = stop

    def read(self) -> bytes:
        raise NotImplementedError

    def close(self):
        pass

    def _checkStop(self):
        if self.stop is not None and self.stop.is_set():
            raise AccumulationCancelled()

    def _checkFrame(self, raw) -> bytes:
        if not raw:
            raise DeviceClosedError(f"no data from {self.device}, device closed?")
        if len(raw) != FRAME_SIZE:
            raise ShortReadError(f"short read from {self.device}: {hexdump(raw)}")
        return bytes(raw)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class HidrawFrameSource(FrameSource):
    """
    Linux hidraw device file, e.g. /dev/hidraw0
    """

    def __init__(self, device: str, timeout: Optional[float] = TIMEOUT_S,
                 stop: Optional[threading.Event] = None, fp=None):
        super().__init__(device, timeout, stop)
        if fp is None:
            try:
                logging.debug(f"try to open {device}")
                fp = open(device, "rb", 0)
            except OSError as ex:
                logging.error(ex)
                logAccessHints(device)
                raise TransportError(f"can not open {device}") from ex
        self._fp = fp

    def _wait(self):
        """
        wait in slices for the next frame so that a stop request
        is recognized while the device is silent
        """
        deadline = None if self.timeout is None else time.monotonic() + self.timeout
        while True:
            self._checkStop()
            slice_s = POLL_SLICE_S
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise ReadTimeout(f"no frame from {self.device} within {self.timeout}s")
                slice_s = min(slice_s, remaining)
            try:
                ready, _, _ = select.select([self._fp], [], [], slice_s)
            except (OSError, ValueError) as ex:
                raise TransportError(f"IO Error CO2 device {self.device}") from ex
            if ready:
                return

    def read(self) -> bytes:
        if self._fp is None or self._fp.closed:
            raise DeviceClosedError(f"{self.device} is closed")
        self._wait()
        try:
            raw = self._fp.read(FRAME_SIZE)
        except OSError as ex:
            logging.error(ex)
            raise TransportError(f"IO Error CO2 device {self.device}") from ex
        return self._checkFrame(raw)

    def close(self):
        if self._fp is not None and not self._fp.closed:
            logging.debug(f"closing {self.device}")
            self._fp.close()


# one sample cycle of an AIRCO2NTROL device
SIMULATED_FRAMES = [
    makeFrame(eHum, 45),
    makeFrame(eCO2, 842),
    makeFrame(0x6d, 0x0bd4),
    makeFrame(eTemp, 4711),
]


class SimulatedFrameSource(FrameSource):
    """
    replays plain frames encrypted like the device does
    """

    def __init__(self, frames=None, key=KEY, cycle=False,
                 stop: Optional[threading.Event] = None):
        super().__init__("simulated", None, stop)
        self.frames = [list(f) for f in (SIMULATED_FRAMES if frames is None else frames)]
        self.key = key
        self.cycle = cycle
        self._pos = 0
        self._closed = False

    def read(self) -> bytes:
        self._checkStop()
        if self._closed:
            raise DeviceClosedError(f"{self.device} is closed")
        if self._pos >= len(self.frames):
            if not self.cycle or not self.frames:
                raise DeviceClosedError("end of simulated frames")
            self._pos = 0
        frame = self.frames[self._pos]
        self._pos += 1
        return self._checkFrame(encrypt(frame, self.key))

    def close(self):
        self._closed = True


BACKENDS = ("hidraw", "hid", "simulated")


def openFrameSource(device: str, backend: str = "hidraw", timeout: Optional[float] = TIMEOUT_S,
                    stop: Optional[threading.Event] = None) -> FrameSource:
    if "hidraw" == backend:
        return HidrawFrameSource(device, timeout, stop)
    elif "hid" == backend:
        from co2hid import HidFrameSource
        return HidFrameSource(device, timeout, stop)
    elif "simulated" == backend:
        return SimulatedFrameSource(cycle=True, stop=stop)
    raise ValueError(f"unknown device backend {backend}")


if __name__ == "__main__":
    import sys
    from co2frame import decrypt
    logging.basicConfig(level=logging.DEBUG)
    path = sys.argv[1] if len(sys.argv) > 1 else "/dev/hidraw0"
    try:
        with HidrawFrameSource(path) as src:
            raw = src.read()
        print(f"{hexdump(raw)} => {hexdump(decrypt(raw))}")
        print("device test passed")
    except TransportError as ex:
        print(f"device test failed: {ex}")
