"""Telemetry snapshot model.

Units follow the PID table in :mod:`pyobdble.pids`.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class TelemetrySnapshot(BaseModel):
    """Point-in-time view of every decoded parameter.

    Instances are frozen.  The store replaces its snapshot on every write,
    so a reference handed to a subscriber never changes underneath it.
    Numeric fields read zero until the first successful decode of that PID.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    # Engine basics
    rpm: int = 0
    speed: int = 0
    coolant_temp: int = 0
    engine_load: int = 0
    throttle_position: int = 0
    timing_advance: float = 0.0

    # Fuel
    fuel_level: int = 0
    fuel_rate: float = 0.0
    """L/h."""
    fuel_pressure: int = 0
    """kPa."""

    # Air / boost
    intake_air_temp: int = 0
    boost_pressure: int = 0
    """Intake manifold absolute pressure, kPa."""
    maf_rate: float = 0.0
    """g/s."""
    barometric_pressure: int = 0

    # Temperatures
    oil_temp: int = 0
    ambient_temp: int = 0

    # Torque
    actual_torque: int = 0
    """Percent of reference torque."""
    driver_demand_torque: int = 0
    reference_torque: int = 0
    """Nm."""

    # Pedal
    accelerator_position: int = 0

    # EGR
    egr_commanded: int = 0
    egr_error: int = 0

    # System
    battery_voltage: float = 0.0
    run_time: int = 0
    """Seconds since engine start."""
    distance_with_mil: int = 0
    distance_since_clear: int = 0

    # Status
    is_connected: bool = False
    device_name: str = ""
