'''
Created on 03.08.2024

@author: irimi
'''
import logging
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import NamedTuple

FRAME_SIZE = 8
FRAME_END = 0x0d

# CO2 sensor items
eTemp = 0x42
eHum = 0x44
eCO2 = 0x50

KEY = [0xc4, 0xc6, 0xc0, 0x92, 0x40, 0x23, 0xdc, 0x96]
CSTATE = [0x48, 0x74, 0x65, 0x6D, 0x70, 0x39, 0x39, 0x65]  # "Htemp99e"
SHUFFLE = [2, 4, 0, 7, 1, 6, 5, 3]

# nibble swapped CSTATE
CTMP = [((c >> 4) | (c << 4)) & 0xff for c in CSTATE]

KELVIN = Decimal("273.15")
TENTH = Decimal("0.1")


class SensorKind(Enum):
    CO2 = 1
    TEMPERATURE = 2
    HUMIDITY = 3
    UNKNOWN = 4

    def unit(self) -> str:
        return {1: "ppm", 2: "°C", 3: "%", 4: ""}[self.value]


class SensorReading(NamedTuple):
    kind: SensorKind
    value: object
    operation: int
    raw: int


def to16bit(val):
    return (val[0] << 8) | val[1]


def hexdump(data) -> str:
    return " ".join("%02X" % e for e in data)


def decrypt(data, key=KEY):
    """
    reverse the frame obfuscation of the device

    https://hackaday.io/project/5301-reverse-engineering-a-low-cost-usb-co-monitor/log/17909-all-your-base-are-belong-to-us
    """
    phase1 = [0] * FRAME_SIZE
    for i, o in enumerate(SHUFFLE):
        phase1[o] = data[i]

    phase2 = [0] * FRAME_SIZE
    for i in range(FRAME_SIZE):
        phase2[i] = phase1[i] ^ key[i]

    phase3 = [0] * FRAME_SIZE
    for i in range(FRAME_SIZE):
        phase3[i] = ((phase2[i] >> 3) | (phase2[(i - 1 + 8) % 8] << 5)) & 0xff

    out = [0] * FRAME_SIZE
    for i in range(FRAME_SIZE):
        out[i] = (0x100 + phase3[i] - CTMP[i]) & 0xff

    return out


def encrypt(data, key=KEY):
    """
    forward obfuscation as done by the device, inverse of decrypt()
    """
    phase3 = [0] * FRAME_SIZE
    for i in range(FRAME_SIZE):
        phase3[i] = (data[i] + CTMP[i]) & 0xff

    phase2 = [0] * FRAME_SIZE
    for i in range(FRAME_SIZE):
        phase2[i] = ((phase3[i] << 3) | (phase3[(i + 1) % 8] >> 5)) & 0xff

    phase1 = [0] * FRAME_SIZE
    for i in range(FRAME_SIZE):
        phase1[i] = phase2[i] ^ key[i]

    return [phase1[o] for o in SHUFFLE]


def checksum(frame) -> int:
    return sum(frame[:3]) & 0xff


def isValid(frame) -> bool:
    return frame[4] == FRAME_END and checksum(frame) == frame[3]


def makeFrame(operation: int, value: int):
    """
    build a plain (decrypted) frame for an operation / 16bit value
    """
    frame = [operation & 0xff, (value >> 8) & 0xff, value & 0xff, 0, FRAME_END, 0, 0, 0]
    frame[3] = checksum(frame)
    return frame


def kelvin16ToCelsius(val: int) -> str:
    """
    raw temperature is Kelvin * 16, rounded half away from zero to 0.1 °C
    """
    celsius = (Decimal(val) / 16 - KELVIN).quantize(TENTH, rounding=ROUND_HALF_UP)
    if celsius.is_zero():
        celsius = abs(celsius)  # no "-0.0"
    return f"{celsius:.1f}"


def interpret(frame) -> SensorReading:
    """
    map a validated frame to a sensor reading
    """
    item = frame[0]
    val = to16bit(frame[1:3])

    if eCO2 == item:
        return SensorReading(SensorKind.CO2, val, item, val)
    elif eTemp == item:
        return SensorReading(SensorKind.TEMPERATURE, kelvin16ToCelsius(val), item, val)
    elif eHum == item:
        return SensorReading(SensorKind.HUMIDITY, val, item, val)
    logging.debug(f"ignoring sensor item {hex(item)}={val} (value)")
    return SensorReading(SensorKind.UNKNOWN, val, item, val)
