'''
Created on 04.08.2024

@author: irimi
'''
import hid
import logging
import threading
import time
from typing import Optional

from co2frame import FRAME_SIZE
from co2device import FrameSource, TransportError, ReadTimeout, TIMEOUT_S, POLL_SLICE_S, logAccessHints


class HidFrameSource(FrameSource):
    """
    CO2 device opened by its hidapi path, e.g. /dev/hidraw0 or 1-1.2:1.0
    """

    def __init__(self, device: str, timeout: Optional[float] = TIMEOUT_S,
                 stop: Optional[threading.Event] = None, dev=None):
        super().__init__(device, timeout, stop)
        if dev is None:
            try:
                logging.debug(f"try to open {device}")
                dev = hid.device()
                dev.open_path(device.encode())
                man = dev.get_manufacturer_string()
                prod = dev.get_product_string()
                logging.debug(
                    f"CO2 devices opened: Manufacturer = {man} , Product = {prod}")
            except IOError as ex:
                logging.error(ex)
                logAccessHints(device)
                raise TransportError(f"can not open {device}") from ex
        self._dev = dev

    def read(self) -> bytes:
        if self._dev is None:
            raise TransportError(f"{self.device} is closed")
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
                raw = self._dev.read(FRAME_SIZE, max(1, int(slice_s * 1000)))
            except (IOError, ValueError) as ex:
                logging.error(ex)
                raise TransportError(f"IO Error CO2 device {self.device}") from ex
            if raw:
                return self._checkFrame(raw)

    def close(self):
        if self._dev is not None:
            logging.debug(f"closing {self.device}")
            self._dev.close()
            self._dev = None
