import io
import signal
import threading
import time

import pytest

from co2device import DeviceClosedError, SimulatedFrameSource
from co2frame import makeFrame, eCO2, eHum
from co2sensorclient import (Co2SensorClient, StdoutReporter, EXIT_CONFIG, EXIT_OK, EXIT_POLL,
                             EXIT_REPORT, createReporter, startClient)
from config import Config
from MQTTClient import MQTTReporter, ReporterError


LINE = '{"temp":"21.3","co2":"842"}'


def make_cfg(**kwargs):
    base = {"DEVICE": "simulated", "BACKEND": "simulated", "REFRESH_RATE": 0.01}
    base.update(kwargs)
    return Config.merge(Config.defaults(), base)


class RecordingReporter:
    def __init__(self, error=None):
        self.reports = []
        self.error = error
        self.opened = False
        self.closed = False

    def open(self):
        self.opened = True

    def report(self, measurement):
        if self.error:
            raise self.error
        self.reports.append(measurement)

    def close(self):
        self.closed = True


@pytest.fixture(autouse=True)
def no_signal_handlers(monkeypatch):
    monkeypatch.setattr(Co2SensorClient, "installSignalHandlers", lambda self: None)


def test_stdout_reporter_writes_json_lines():
    out = io.StringIO()
    client = Co2SensorClient(make_cfg(), StdoutReporter(out))
    assert client.run(count=2) == EXIT_OK
    assert out.getvalue().splitlines() == [LINE, LINE]
    assert client.polls == 2


def test_run_closes_source_and_reporter():
    reporter = RecordingReporter()
    source = SimulatedFrameSource(cycle=True)
    client = Co2SensorClient(make_cfg(), reporter, source=source)
    assert client.run(count=1) == EXIT_OK
    assert reporter.opened and reporter.closed
    with pytest.raises(DeviceClosedError):
        source.read()


def test_transport_error_ends_run():
    reporter = RecordingReporter()
    source = SimulatedFrameSource([makeFrame(eCO2, 842)])
    client = Co2SensorClient(make_cfg(), reporter, source=source)
    assert client.run() == EXIT_POLL
    assert reporter.reports == []
    assert reporter.closed


def test_report_error_ends_run():
    reporter = RecordingReporter(error=ReporterError("broker down"))
    client = Co2SensorClient(make_cfg(), reporter)
    assert client.run() == EXIT_REPORT
    assert reporter.closed


def test_stop_before_run():
    stop = threading.Event()
    stop.set()
    reporter = RecordingReporter()
    client = Co2SensorClient(make_cfg(), reporter, stop=stop)
    assert client.run() == EXIT_OK
    assert reporter.reports == []


def test_stop_while_accumulating():
    stop = threading.Event()

    class StoppingSource(SimulatedFrameSource):
        def read(self):
            raw = super().read()
            stop.set()
            return raw

    reporter = RecordingReporter()
    source = StoppingSource([makeFrame(eHum, 40)], cycle=True)
    client = Co2SensorClient(make_cfg(), reporter, source=source, stop=stop)
    assert client.run() == EXIT_OK
    assert reporter.reports == []
    assert reporter.closed


def test_ticks_are_serialized():
    reporter = RecordingReporter()
    client = Co2SensorClient(make_cfg(REFRESH_RATE=0.05), reporter)
    start = time.monotonic()
    client.run(count=3)
    assert len(reporter.reports) == 3
    assert time.monotonic() - start >= 0.1


def test_daemon_kill_sets_stop():
    client = Co2SensorClient(make_cfg(), RecordingReporter())
    client.daemon_kill(signal.SIGTERM, None)
    assert client.stop.is_set()


def test_missing_device_fails(tmp_path):
    client = Co2SensorClient(make_cfg(DEVICE=str(tmp_path / "hidraw9"), BACKEND="hidraw"),
                             RecordingReporter())
    assert client.run() == EXIT_POLL


def test_create_reporter():
    assert isinstance(createReporter(make_cfg(), "0.3.0"), StdoutReporter)
    assert isinstance(createReporter(make_cfg(OUTPUT="mqtt"), "0.3.0"), MQTTReporter)


def test_start_client_rejects_config():
    assert startClient({"DEVICE": ""}, "0.3.0") == EXIT_CONFIG
    assert startClient({"DEVICE": "simulated", "REFRESH_RATE": 0}, "0.3.0") == EXIT_CONFIG


def test_start_client_simulated(capsys):
    cfg = {"DEVICE": "simulated", "BACKEND": "simulated", "REFRESH_RATE": 0.01}
    assert startClient(cfg, "0.3.0", count=1) == EXIT_OK
    assert capsys.readouterr().out.strip() == LINE
