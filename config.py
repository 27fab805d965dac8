'''
Created on 17.11.2023

@author: irimi
'''

import json
import logging

class ConfigError(ValueError):
    """ invalid configuration, checked before the device is polled """


class Dict(dict):
    """dot.notation access to dictionary attributes"""
    __getattr__ = dict.__getitem__
    __setattr__ = dict.__setitem__
    __delattr__ = dict.__delitem__


DEFAULTS = {
    "DEVICE": "",
    "BACKEND": "hidraw",
    "REFRESH_RATE": 5,
    "READ_TIMEOUT": 5,
    "PASSTHROUGH": False,
    "OUTPUT": "stdout",
    "LogLevel": "INFO",
    "MQTTBroker": {
        "host": "localhost",
        "port": 1883,
        "username": "",
        "password": "",
        "clientcertfile": "",
        "clientkeyfile": ""
    }
}

""" Logging level: INFO, DEBUG, ERROR, WARN  """
LOG_LEVEL = {
    "INFO": logging.INFO,
    "ERROR": logging.ERROR,
    "WARN": logging.WARN,
    "DEBUG": logging.DEBUG
}

OUTPUTS = ("stdout", "mqtt")

# found at
# https://stackoverflow.com/questions/19078170/python-how-would-you-save-a-simple-settings-config-file
class Config(object):
    @staticmethod
    def __load__(data):
        if isinstance(data, dict):
            return Config.load_dict(data)
        elif isinstance(data, list):
            return Config.load_list(data)
        else:
            return data

    @staticmethod
    def load_dict(data: dict):
        result = Dict()
        for key, value in data.items():
            result[key] = Config.__load__(value)
        return result

    @staticmethod
    def load_list(data: list):
        result = [Config.__load__(item) for item in data]
        return result

    @staticmethod
    def load_json(path: str):
        with open(path, "r") as f:
            result = Config.__load__(json.loads(f.read()))
        return result

    @staticmethod
    def merge(base: dict, override: dict):
        """ nested merge of override into a copy of base """
        result = Config.load_dict(base)
        for key, value in override.items():
            if isinstance(value, dict) and isinstance(result.get(key), dict):
                result[key] = Config.merge(result[key], value)
            elif value is not None:
                result[key] = Config.__load__(value)
        return result

    @staticmethod
    def defaults():
        return Config.load_dict(DEFAULTS)


class CheckConfig (object):

    @staticmethod
    def validate(cfg: Config) -> Config:
        if not cfg.DEVICE or not str(cfg.DEVICE).strip():
            raise ConfigError("device name not specified, e.g. /dev/hidraw0")
        if cfg.BACKEND not in ("hidraw", "hid", "simulated"):
            raise ConfigError(f"unknown device backend {cfg.BACKEND}")
        CheckConfig.positive(cfg, "REFRESH_RATE")
        CheckConfig.positive(cfg, "READ_TIMEOUT")
        if cfg.OUTPUT not in OUTPUTS:
            raise ConfigError(f"unknown output {cfg.OUTPUT}, use one of {OUTPUTS}")
        if cfg.LogLevel not in LOG_LEVEL:
            raise ConfigError(f"unknown LogLevel {cfg.LogLevel}, use one of {tuple(LOG_LEVEL)}")
        return cfg

    @staticmethod
    def positive(cfg: Config, key: str):
        try:
            val = float(cfg[key])
        except (TypeError, ValueError):
            raise ConfigError(f"{key} must be a number: {cfg[key]!r}")
        if val <= 0:
            raise ConfigError(f"{key} must be > 0: {cfg[key]!r}")
