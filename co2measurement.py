'''
Created on 03.08.2024

@author: irimi
'''
import json
import logging
import threading
from typing import Optional

from co2frame import SensorKind, SensorReading, decrypt, hexdump, interpret, isValid, KEY


class AccumulationCancelled(Exception):
    """ shutdown was requested between two frame pulls """


class Measurement(object):
    """ temperature and CO2 merged from several device frames """

    def __init__(self, temperature: Optional[str] = None, co2: Optional[str] = None):
        self.temperature = temperature
        self.co2 = co2

    def hasTemp(self) -> bool:
        return self.temperature is not None

    def hasCo2(self) -> bool:
        return self.co2 is not None

    def complete(self) -> bool:
        return self.hasTemp() and self.hasCo2()

    def update(self, reading: SensorReading) -> bool:
        """
        merge a reading, last writer wins per field
        returns True if the reading changed the measurement
        """
        if SensorKind.TEMPERATURE == reading.kind:
            self.temperature = reading.value
        elif SensorKind.CO2 == reading.kind:
            self.co2 = f"{reading.value}"
        else:
            return False
        return True

    def asDict(self) -> dict:
        return {"temp": self.temperature, "co2": self.co2}

    def json(self) -> str:
        return json.dumps(self.asDict(), separators=(",", ":"))

    def __eq__(self, other):
        if not isinstance(other, Measurement):
            return NotImplemented
        return self.asDict() == other.asDict()

    def __repr__(self):
        return f"Measurement(temperature={self.temperature!r}, co2={self.co2!r})"


class MeasurementAccumulator(object):
    """
    pulls frames from a frame source until temperature and CO2
    have both been seen
    """

    def __init__(self, key=KEY, passthrough=False, stop: Optional[threading.Event] = None):
        self.key = key
        self.passthrough = passthrough
        self.stop = stop
        self.frames = 0
        self.errors = 0

    def decode(self, raw):
        """
        decrypt and validate one raw frame
        returns the plain frame or None for a corrupt one
        """
        if self.passthrough and isValid(raw):
            return list(raw)

        data = decrypt(raw, self.key)
        if not isValid(data):
            self.errors += 1
            logging.error(f"checksum mismatch: raw={hexdump(raw)} decrypted={hexdump(data)}")
            return None
        return data

    def pull(self, source) -> Optional[SensorReading]:
        if self.stop is not None and self.stop.is_set():
            raise AccumulationCancelled()
        raw = source.read()
        self.frames += 1
        data = self.decode(raw)
        if data is None:
            return None
        return interpret(data)

    def accumulate(self, source) -> Measurement:
        """
        blocks until a complete measurement was received,
        transport errors of the source are passed on to the caller
        """
        measurement = Measurement()
        logging.debug("----> waiting for CO2 and Temperature values from device")
        while not measurement.complete():
            reading = self.pull(source)
            if reading is None:
                continue
            if not measurement.update(reading):
                if SensorKind.HUMIDITY == reading.kind:
                    logging.info(f"Humidity = {reading.value} %")
                continue
            logging.debug(f"{reading.kind.name} = {reading.value} {reading.kind.unit()}")
        logging.debug("<--- received values from device")
        return measurement
