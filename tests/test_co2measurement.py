import logging
import threading

import pytest

from co2device import DeviceClosedError
from co2frame import encrypt, makeFrame, eCO2, eHum, eTemp
from co2measurement import AccumulationCancelled, Measurement, MeasurementAccumulator


HUM = makeFrame(eHum, 45)
CO2 = makeFrame(eCO2, 842)
UNKNOWN = makeFrame(0x6d, 0x0bd4)
TEMP = makeFrame(eTemp, 4711)          # 21.3
CORRUPT = [0x50, 0x03, 0x4A, 0x00, 0x0D, 0x00, 0x00, 0x00]


class FrameListSource:
    """ encrypted frames in order, then end of stream """

    def __init__(self, frames, plain=False):
        self.raws = [bytes(f) if plain else bytes(encrypt(f)) for f in frames]
        self.reads = 0

    def read(self):
        if self.reads >= len(self.raws):
            raise DeviceClosedError("end of test frames")
        raw = self.raws[self.reads]
        self.reads += 1
        return raw


def test_measurement_starts_empty():
    m = Measurement()
    assert not m.hasTemp()
    assert not m.hasCo2()
    assert not m.complete()


def test_measurement_json():
    m = Measurement("21.3", "842")
    assert m.complete()
    assert m.json() == '{"temp":"21.3","co2":"842"}'
    assert m.asDict() == {"temp": "21.3", "co2": "842"}


def test_accumulate_ignores_humidity_and_unknown():
    source = FrameListSource([HUM, CO2, UNKNOWN, TEMP])
    m = MeasurementAccumulator().accumulate(source)
    assert m == Measurement("21.3", "842")
    assert source.reads == 4


def test_accumulate_last_writer_wins():
    source = FrameListSource([TEMP, makeFrame(eTemp, 4800), CO2])
    m = MeasurementAccumulator().accumulate(source)
    assert m.temperature == "26.9"
    assert m.co2 == "842"


def test_accumulate_stops_when_complete():
    source = FrameListSource([CO2, TEMP, makeFrame(eCO2, 500)])
    MeasurementAccumulator().accumulate(source)
    assert source.reads == 2


def test_accumulate_starts_empty_each_cycle():
    source = FrameListSource([CO2, TEMP, makeFrame(eTemp, 4800), makeFrame(eCO2, 500)])
    acc = MeasurementAccumulator()
    assert acc.accumulate(source) == Measurement("21.3", "842")
    assert acc.accumulate(source) == Measurement("26.9", "500")
    assert source.reads == 4


def test_second_cycle_does_not_reuse_previous_values():
    source = FrameListSource([CO2, TEMP, makeFrame(eTemp, 4800)])
    acc = MeasurementAccumulator()
    acc.accumulate(source)
    with pytest.raises(DeviceClosedError):
        acc.accumulate(source)


def test_corrupt_frame_is_logged_and_skipped(caplog):
    source = FrameListSource([CO2, CORRUPT, TEMP])
    acc = MeasurementAccumulator()
    m = acc.accumulate(source)
    assert m == Measurement("21.3", "842")
    assert acc.errors == 1
    assert acc.frames == 3
    assert "checksum mismatch" in caplog.text
    assert "decrypted=50 03 4A 00 0D 00 00 00" in caplog.text
    assert "raw=" in caplog.text


def test_transport_error_propagates():
    source = FrameListSource([CO2, HUM])
    with pytest.raises(DeviceClosedError):
        MeasurementAccumulator().accumulate(source)


def test_cancelled_before_next_pull():
    stop = threading.Event()
    stop.set()
    source = FrameListSource([CO2, TEMP])
    with pytest.raises(AccumulationCancelled):
        MeasurementAccumulator(stop=stop).accumulate(source)
    assert source.reads == 0


def test_cancelled_between_pulls():
    stop = threading.Event()

    class StoppingSource(FrameListSource):
        def read(self):
            raw = super().read()
            stop.set()
            return raw

    source = StoppingSource([CO2, TEMP])
    with pytest.raises(AccumulationCancelled):
        MeasurementAccumulator(stop=stop).accumulate(source)
    assert source.reads == 1


def test_passthrough_accepts_plain_frames():
    source = FrameListSource([CO2, TEMP], plain=True)
    m = MeasurementAccumulator(passthrough=True).accumulate(source)
    assert m == Measurement("21.3", "842")


def test_passthrough_still_decrypts_encrypted_frames():
    source = FrameListSource([CO2, TEMP])
    m = MeasurementAccumulator(passthrough=True).accumulate(source)
    assert m == Measurement("21.3", "842")


def test_humidity_is_logged(caplog):
    caplog.set_level(logging.INFO)
    MeasurementAccumulator().accumulate(FrameListSource([HUM, CO2, TEMP]))
    assert "Humidity = 45 %" in caplog.text
