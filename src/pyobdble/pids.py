"""Mode 01 PID table and numeric conversions.

Each supported PID maps to a :class:`PidSpec` naming the snapshot field it
feeds, the number of data bytes it needs, and a :class:`Conversion` that
turns those bytes into engineering units.

Conversions come in a handful of shapes:

* :class:`PercentByte` -- ``round(A * 100 / 255)``
* :class:`TemperatureByte` -- ``A - 40`` (degrees Celsius)
* :class:`LinearByte` -- ``A * scale + offset``
* :class:`Word` -- ``(256 * A + B) / divisor`` rounded to N places
* :class:`SignedPercentByte` -- ``round((A - 128) * 100 / 128)``

Every conversion also has an ``encode`` inverse.  It is lossy only where
``decode`` rounds, and is what simulators and tests use to synthesise
adapter replies.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType

from pyobdble._constants import MODE_01_REQUEST

Number = int | float


def round_half_up(value: float) -> int:
    """Round to the nearest integer, ties towards positive infinity."""
    return math.floor(value + 0.5)


def _clamp(value: int, upper: int) -> int:
    return max(0, min(upper, value))


class Conversion:
    """Base class for a PID's byte <-> value mapping."""

    byte_length: int = 1

    def decode(self, data: bytes) -> Number:
        raise NotImplementedError

    def encode(self, value: Number) -> bytes:
        raise NotImplementedError


@dataclass(frozen=True)
class PercentByte(Conversion):
    byte_length = 1

    def decode(self, data: bytes) -> Number:
        return round_half_up(data[0] * 100 / 255)

    def encode(self, value: Number) -> bytes:
        return bytes([_clamp(round(value * 255 / 100), 0xFF)])


@dataclass(frozen=True)
class TemperatureByte(Conversion):
    offset: int = 40

    byte_length = 1

    def decode(self, data: bytes) -> Number:
        return data[0] - self.offset

    def encode(self, value: Number) -> bytes:
        return bytes([_clamp(round(value) + self.offset, 0xFF)])


@dataclass(frozen=True)
class LinearByte(Conversion):
    scale: float = 1
    offset: float = 0

    byte_length = 1

    def decode(self, data: bytes) -> Number:
        value = data[0] * self.scale + self.offset
        if isinstance(self.scale, int) and isinstance(self.offset, int):
            return int(value)
        return value

    def encode(self, value: Number) -> bytes:
        return bytes([_clamp(round((value - self.offset) / self.scale), 0xFF)])


@dataclass(frozen=True)
class Word(Conversion):
    """Two-byte big-endian unsigned value, optionally scaled down.

    ``places`` is the number of decimals kept after division; with
    ``places=0`` the result is an ``int``.
    """

    divisor: int = 1
    places: int = 0

    byte_length = 2

    def decode(self, data: bytes) -> Number:
        raw = (data[0] << 8) | data[1]
        if self.divisor == 1:
            return raw
        factor = 10**self.places
        # Single division keeps exact .5 ties exact.
        scaled = round_half_up(raw * factor / self.divisor)
        if self.places == 0:
            return scaled
        return scaled / factor

    def encode(self, value: Number) -> bytes:
        raw = _clamp(int(round(value * self.divisor)), 0xFFFF)
        return raw.to_bytes(2, "big")


@dataclass(frozen=True)
class SignedPercentByte(Conversion):
    """Deviation around a 128 midpoint, e.g. EGR error or fuel trims."""

    byte_length = 1

    def decode(self, data: bytes) -> Number:
        return round_half_up((data[0] - 128) * 100 / 128)

    def encode(self, value: Number) -> bytes:
        return bytes([_clamp(round(value * 128 / 100) + 128, 0xFF)])


@dataclass(frozen=True)
class PidSpec:
    """One row of the PID table."""

    pid: str
    field: str
    conversion: Conversion
    description: str = ""

    @property
    def request(self) -> str:
        """The four-character query sent to the adapter (e.g. ``010C``)."""
        return f"{MODE_01_REQUEST}{self.pid}"

    @property
    def byte_length(self) -> int:
        return self.conversion.byte_length

    def decode(self, payload_hex: str) -> Number | None:
        """Decode the hex payload following ``41<pid>``.

        Returns ``None`` when fewer bytes than required are present.
        Trailing bytes beyond the expected length are ignored.
        """
        needed = self.byte_length * 2
        if len(payload_hex) < needed:
            return None
        return self.conversion.decode(bytes.fromhex(payload_hex[:needed]))

    def encode(self, value: Number) -> str:
        """Return the uppercase hex payload an adapter would send for *value*."""
        return self.conversion.encode(value).hex().upper()


_PERCENT = PercentByte()
_TEMPERATURE = TemperatureByte()
_BYTE = LinearByte()

_SPECS: tuple[PidSpec, ...] = (
    # Engine basics
    PidSpec("04", "engine_load", _PERCENT, "Calculated engine load (%)"),
    PidSpec("05", "coolant_temp", _TEMPERATURE, "Engine coolant temperature (°C)"),
    PidSpec("0C", "rpm", Word(divisor=4), "Engine speed (rpm)"),
    PidSpec("0D", "speed", _BYTE, "Vehicle speed (km/h)"),
    PidSpec("0E", "timing_advance", LinearByte(scale=0.5, offset=-64), "Timing advance (° before TDC)"),
    PidSpec("11", "throttle_position", _PERCENT, "Throttle position (%)"),
    # Fuel system
    PidSpec("0A", "fuel_pressure", LinearByte(scale=3), "Fuel pressure (kPa)"),
    PidSpec("2F", "fuel_level", _PERCENT, "Fuel tank level (%)"),
    PidSpec("5E", "fuel_rate", Word(divisor=20, places=1), "Engine fuel rate (L/h)"),
    # Air intake
    PidSpec("0B", "boost_pressure", _BYTE, "Intake manifold absolute pressure (kPa)"),
    PidSpec("0F", "intake_air_temp", _TEMPERATURE, "Intake air temperature (°C)"),
    PidSpec("10", "maf_rate", Word(divisor=100, places=1), "Mass air flow (g/s)"),
    PidSpec("33", "barometric_pressure", _BYTE, "Absolute barometric pressure (kPa)"),
    # Temperatures
    PidSpec("46", "ambient_temp", _TEMPERATURE, "Ambient air temperature (°C)"),
    PidSpec("5C", "oil_temp", _TEMPERATURE, "Engine oil temperature (°C)"),
    # Torque
    PidSpec("61", "driver_demand_torque", LinearByte(offset=-125), "Driver's demand engine torque (%)"),
    PidSpec("62", "actual_torque", LinearByte(offset=-125), "Actual engine torque (%)"),
    PidSpec("63", "reference_torque", Word(), "Engine reference torque (Nm)"),
    # Pedal
    PidSpec("49", "accelerator_position", _PERCENT, "Accelerator pedal position D (%)"),
    # EGR
    PidSpec("2C", "egr_commanded", _PERCENT, "Commanded EGR (%)"),
    PidSpec("2D", "egr_error", SignedPercentByte(), "EGR error (%)"),
    # System
    PidSpec("1F", "run_time", Word(), "Run time since engine start (s)"),
    PidSpec("21", "distance_with_mil", Word(), "Distance travelled with MIL on (km)"),
    PidSpec("31", "distance_since_clear", Word(), "Distance since codes cleared (km)"),
    PidSpec("42", "battery_voltage", Word(divisor=1000, places=1), "Control module voltage (V)"),
)

PID_TABLE: Mapping[str, PidSpec] = MappingProxyType({spec.pid: spec for spec in _SPECS})
"""Read-only PID -> :class:`PidSpec` lookup."""


def spec_for_field(field: str) -> PidSpec | None:
    """Reverse lookup used by simulators: which PID feeds *field*."""
    for spec in _SPECS:
        if spec.field == field:
            return spec
    return None
