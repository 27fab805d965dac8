#!/usr/bin/python3
# encoding: utf-8
'''
co2meter

reads CO2 concentration and temperature from a TFA AIRCO2NTROL
(04d9:a052) USB device and reports them as JSON lines or via MQTT

@author:     irimi@gmx.de

@copyright:  irimi@gmx.de - All rights reserved.

@license:    GNU GENERAL PUBLIC LICENSE Version 3

@contact:    irimi@gmx.de

'''

import sys
import os
import logging

from optparse import OptionParser
from config import Config, OUTPUTS
from co2device import BACKENDS
from co2sensorclient import startClient, EXIT_CONFIG

__all__ = []
__version__ = "0.3.0"
__updated__ = '2024-08-04'
__author__ = "irimi@gmx.de"


def buildParser() -> OptionParser:
    program_name = os.path.basename(sys.argv[0])
    program_version = f"v{__version__}"
    program_version_string = f"{program_name} {program_version} {__updated__}"
    program_license = "Copyright 2023-2024 irimi@gmx.de, published under GPL-3.0"

    parser = OptionParser(
        usage="%prog [options] [DEVICE]",
        version=program_version_string,
        epilog="your CO2 meter, e.g. co2meter /dev/hidraw0",
        description=program_license)

    parser.add_option("-c", "--cfg", dest="cfgfile",
                      help="set config file", metavar="FILE")
    parser.add_option("-d", "--device", dest="device",
                      help="device path, e.g. /dev/hidraw0", metavar="DEVICE")
    parser.add_option("-i", "--interval", dest="interval", type="float",
                      help="polling interval in seconds [default: 5]", metavar="SECONDS")
    parser.add_option("-t", "--timeout", dest="timeout", type="float",
                      help="read timeout in seconds [default: 5]", metavar="SECONDS")
    parser.add_option("-b", "--backend", dest="backend", type="choice",
                      choices=list(BACKENDS), help=f"device backend {BACKENDS}")
    parser.add_option("-o", "--output", dest="output", type="choice",
                      choices=list(OUTPUTS), help=f"report output {OUTPUTS}")
    parser.add_option("-p", "--passthrough", dest="passthrough", action="store_true",
                      help="accept unencrypted frames of newer devices")
    parser.add_option("-v", "--verbose", dest="verbose", action="store_true",
                      help="debug logging")
    parser.add_option("--simulate", dest="simulate", action="store_true",
                      help="use simulated device frames")
    parser.add_option("--once", dest="once", action="store_true",
                      help="report one measurement and exit")
    return parser


def buildConfig(opts, args) -> dict:
    """
    config file settings overridden by command line options
    """
    cfg = dict()
    if opts.cfgfile:
        cfg.update(Config.load_json(opts.cfgfile))

    device = opts.device or (args[0] if args else None)
    overrides = {
        "DEVICE": device,
        "REFRESH_RATE": opts.interval,
        "READ_TIMEOUT": opts.timeout,
        "BACKEND": opts.backend,
        "OUTPUT": opts.output,
        "PASSTHROUGH": True if opts.passthrough else None,
        "LogLevel": "DEBUG" if opts.verbose else None,
    }
    if opts.simulate:
        overrides["BACKEND"] = "simulated"
        overrides["DEVICE"] = device or "simulated"
    cfg.update({k: v for k, v in overrides.items() if v is not None})
    return cfg


def main(argv=None):
    '''Command line options.'''

    if argv is None:
        argv = sys.argv[1:]
    parser = buildParser()
    (opts, args) = parser.parse_args(argv)
    if len(args) > 1:
        parser.error("only one DEVICE expected")

    try:
        cfg = buildConfig(opts, args)
    except (OSError, ValueError) as ex:
        logging.error(f"config file {opts.cfgfile} can not be loaded: {ex}")
        return EXIT_CONFIG

    return startClient(cfg, __version__, 1 if opts.once else None)


if __name__ == "__main__":
    sys.exit(main())
