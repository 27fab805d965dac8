'''
Created on 17.11.2023

@author: irimi
'''

import logging
import signal
import sys
import threading
import time

from config import Config, CheckConfig, ConfigError, LOG_LEVEL
from co2device import TransportError, openFrameSource
from co2measurement import AccumulationCancelled, MeasurementAccumulator
from MQTTClient import MQTTReporter, ReporterError

EXIT_OK = 0
EXIT_CONFIG = -1
EXIT_POLL = -2
EXIT_REPORT = -3


class StdoutReporter(object):
    """ one JSON line per measurement, e.g. {"temp":"21.3","co2":"842"} """

    def __init__(self, stream=None):
        self.stream = stream if stream is not None else sys.stdout

    def open(self):
        pass

    def report(self, measurement):
        self.stream.write(measurement.json() + "\n")
        self.stream.flush()

    def close(self):
        pass


def createReporter(cfg, version):
    if "mqtt" == cfg.OUTPUT:
        return MQTTReporter(cfg, version)
    return StdoutReporter()


class Co2SensorClient(object):
    """
    polls the CO2 device once per REFRESH_RATE and hands every
    complete measurement to the reporter
    """

    def __init__(self, cfg, reporter, source=None, stop=None):
        self.cfg = cfg
        self.reporter = reporter
        self.stop = stop if stop is not None else threading.Event()
        self.source = source
        self.accumulator = MeasurementAccumulator(passthrough=bool(cfg.PASSTHROUGH), stop=self.stop)
        self.polls = 0

    def daemon_kill(self, signum, *_args):
        """
        called by ctrl-c event / SIGTERM
        """
        logging.info(f"received signal: {signal.Signals(signum).name}")
        self.stop.set()

    def installSignalHandlers(self):
        signal.signal(signal.SIGINT, self.daemon_kill)
        signal.signal(signal.SIGTERM, self.daemon_kill)

    def setupDevice(self):
        if self.source is None:
            self.source = openFrameSource(self.cfg.DEVICE, self.cfg.BACKEND,
                                          float(self.cfg.READ_TIMEOUT), self.stop)
        return self.source

    def poll(self):
        """
        poll one complete measurement from the device
        """
        measurement = self.accumulator.accumulate(self.source)
        self.polls += 1
        return measurement

    def run(self, count=None) -> int:
        """
        main loop, ticks never overlap: a poll that takes longer than
        REFRESH_RATE delays the next tick
        """
        interval = float(self.cfg.REFRESH_RATE)
        try:
            self.setupDevice()
        except TransportError as ex:
            logging.error(f"device {self.cfg.DEVICE} not available: {ex}")
            return EXIT_POLL
        try:
            self.reporter.open()
        except ReporterError as ex:
            logging.error(f"reporter start has failed: {ex}")
            self.source.close()
            return EXIT_REPORT

        ret = EXIT_OK
        nextTick = time.monotonic()
        try:
            while not self.stop.is_set():
                if self.stop.wait(max(0.0, nextTick - time.monotonic())):
                    break
                nextTick = max(nextTick + interval, time.monotonic())
                logging.debug(f"poll {self.polls + 1}")
                measurement = self.poll()
                self.reporter.report(measurement)
                if count is not None and self.polls >= count:
                    break
        except AccumulationCancelled:
            logging.debug("polling cancelled")
        except TransportError as ex:
            logging.error(f"polling has failed: {ex}")
            ret = EXIT_POLL
        except (ReporterError, OSError) as ex:
            logging.error(f"reporting has failed: {ex}")
            ret = EXIT_REPORT
        finally:
            self.client_down()
        if EXIT_OK == ret:
            logging.info("CO2 sensor Goodbye!")
        return ret

    def client_down(self):
        try:
            self.reporter.close()
        finally:
            self.source.close()


def setupLogging(level: str):
    logging.basicConfig(level=LOG_LEVEL[level],
                        format='%(asctime)s - %(levelname)s - %(message)s',
                        datefmt='%H:%M:%S')


def startClient(cfg, version: str, count=None) -> int:
    """
    validate the configuration, create reporter & client and run it
    """
    try:
        cfg = CheckConfig.validate(Config.merge(Config.defaults(), cfg))
    except ConfigError as ex:
        logging.error(f"invalid configuration: {ex}")
        return EXIT_CONFIG
    setupLogging(cfg.LogLevel)
    logging.debug(f"configuration: device={cfg.DEVICE} backend={cfg.BACKEND} "
                  f"interval={cfg.REFRESH_RATE}s output={cfg.OUTPUT}")
    client = Co2SensorClient(cfg, createReporter(cfg, version))
    client.installSignalHandlers()
    return client.run(count)
