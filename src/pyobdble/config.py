"""Client configuration for pyobdble."""

from __future__ import annotations

import dataclasses
import os
import re
from typing import Any

from pyobdble._constants import (
    DEFAULT_INIT_COMMANDS,
    DEFAULT_NAME_HINTS,
    ELM327_NOTIFY_UUID,
    ELM327_SERVICE_UUID,
    ELM327_WRITE_UUID,
    LINE_ENDING,
    PROMPT,
)
from pyobdble.exceptions import ObdConfigError

_PID_RE = re.compile(r"^(?:01)?([0-9A-F]{2})$")


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_list(value: str) -> tuple[str, ...]:
    return tuple(item.strip() for item in value.split(",") if item.strip())


def _env_number(env_key: str, value: str, cast: type[float] | type[int]) -> float | int:
    try:
        return cast(value)
    except ValueError as exc:
        raise ObdConfigError(f"{env_key} must be numeric, got {value!r}") from exc


def normalize_pid(value: str) -> str:
    """Return the canonical two-hex-digit form of a Mode 01 PID.

    Accepts ``"0c"``, ``"0C"`` or the full request form ``"010C"``.
    """
    cleaned = value.strip().upper()
    match = _PID_RE.match(cleaned)
    if match is None:
        raise ObdConfigError(f"not a Mode 01 PID: {value!r}")
    return match.group(1)


@dataclasses.dataclass(frozen=True)
class AdapterProfile:
    """Per adapter-family protocol constants.

    Parameters
    ----------
    family : str
        Human readable family name, used only in logs.
    service_uuid : str
        GATT service carrying the serial bridge.
    write_uuid : str
        Characteristic commands are written to.
    notify_uuid : str
        Characteristic responses are notified on.
    init_commands : tuple of str
        AT commands sent, in order, after the link is up.  The first entry
        is treated as the reset command and followed by the settle delay.
    name_hints : tuple of str
        Case-insensitive substrings of advertised names that mark a peer
        as a likely OBD-II adapter.
    prompt : str
        Terminator the adapter prints when it is ready for the next command.
    line_ending : str
        Appended to every outgoing command.
    """

    family: str = "elm327"
    service_uuid: str = ELM327_SERVICE_UUID
    write_uuid: str = ELM327_WRITE_UUID
    notify_uuid: str = ELM327_NOTIFY_UUID
    init_commands: tuple[str, ...] = DEFAULT_INIT_COMMANDS
    name_hints: tuple[str, ...] = DEFAULT_NAME_HINTS
    prompt: str = PROMPT
    line_ending: str = LINE_ENDING

    def __post_init__(self) -> None:
        if not self.init_commands:
            raise ObdConfigError("init_commands must not be empty")
        if len(self.prompt) != 1:
            raise ObdConfigError(f"prompt must be a single character, got {self.prompt!r}")


@dataclasses.dataclass(frozen=True)
class PollPlan:
    """Which PIDs to poll and how often.

    Parameters
    ----------
    tick_interval : float
        Seconds between two queries.
    priority_pids : tuple of str
        PIDs cycled on most ticks (RPM, speed, boost, throttle by default).
    secondary_pids : tuple of str
        PIDs cycled once every ``secondary_every`` ticks.
    secondary_every : int
        Every n-th tick is given to the secondary queue.  The default of
        5 gives the priority set 80% of the bus budget.
    """

    tick_interval: float = 0.15
    priority_pids: tuple[str, ...] = ("0C", "0D", "0B", "11")
    secondary_pids: tuple[str, ...] = ("05", "5C", "5E", "2F", "0F", "46", "62", "2C", "42")
    secondary_every: int = 5

    def __post_init__(self) -> None:
        if self.tick_interval <= 0:
            raise ObdConfigError(f"tick_interval must be positive, got {self.tick_interval}")
        if self.secondary_every < 2:
            raise ObdConfigError(f"secondary_every must be at least 2, got {self.secondary_every}")
        if not self.priority_pids:
            raise ObdConfigError("priority_pids must not be empty")
        object.__setattr__(self, "priority_pids", tuple(normalize_pid(p) for p in self.priority_pids))
        object.__setattr__(self, "secondary_pids", tuple(normalize_pid(p) for p in self.secondary_pids))

    def worst_case_staleness(self) -> float:
        """Upper bound, in seconds, between two polls of one secondary PID."""
        if not self.secondary_pids:
            return 0.0
        return len(self.secondary_pids) * self.secondary_every * self.tick_interval


@dataclasses.dataclass(frozen=True)
class ObdConfig:
    """Client configuration.

    Parameters
    ----------
    adapter : AdapterProfile
        GATT UUIDs and AT command set of the adapter family.
    poll : PollPlan
        Polling schedule.
    scan_timeout : float
        Length of one discovery window in seconds.
    connect_timeout : float
        Seconds to wait for the BLE link before failing the connect.
    command_timeout : float
        Seconds to wait for the framed reply of each init command.
    reset_settle_delay : float
        Pause after the reset command before continuing the init sequence.
    max_buffer_size : int
        Upper bound, in characters, of unterminated response data kept
        between notifications.
    max_consecutive_write_failures : int
        Polling write failures in a row tolerated before the session faults.
    write_with_response : bool
        Use acknowledged GATT writes.
    """

    adapter: AdapterProfile = dataclasses.field(default_factory=AdapterProfile)
    poll: PollPlan = dataclasses.field(default_factory=PollPlan)
    scan_timeout: float = 10.0
    connect_timeout: float = 10.0
    command_timeout: float = 2.0
    reset_settle_delay: float = 1.0
    max_buffer_size: int = 4096
    max_consecutive_write_failures: int = 3
    write_with_response: bool = True

    def __post_init__(self) -> None:
        if self.max_buffer_size < 16:
            raise ObdConfigError(f"max_buffer_size too small: {self.max_buffer_size}")
        if self.max_consecutive_write_failures < 1:
            raise ObdConfigError("max_consecutive_write_failures must be at least 1")
        for name in ("scan_timeout", "connect_timeout", "command_timeout"):
            if getattr(self, name) <= 0:
                raise ObdConfigError(f"{name} must be positive")
        if self.reset_settle_delay < 0:
            raise ObdConfigError("reset_settle_delay must not be negative")

    @classmethod
    def from_env(cls, **overrides: Any) -> ObdConfig:
        """Create configuration from environment variables.

        Reads optional ``OBD_*`` variables. Explicit keyword arguments
        override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        ObdConfig
            Populated configuration.
        """
        env = os.environ

        adapter_kwargs: dict[str, Any] = {}
        _ENV_ADAPTER_MAP = {
            "OBD_ADAPTER_FAMILY": "family",
            "OBD_SERVICE_UUID": "service_uuid",
            "OBD_WRITE_UUID": "write_uuid",
            "OBD_NOTIFY_UUID": "notify_uuid",
        }
        for env_key, field_name in _ENV_ADAPTER_MAP.items():
            val = env.get(env_key)
            if val is not None:
                adapter_kwargs[field_name] = val.strip().lower() if field_name.endswith("uuid") else val

        init_env = env.get("OBD_INIT_COMMANDS")
        if init_env is not None:
            adapter_kwargs["init_commands"] = tuple(cmd.upper() for cmd in _env_list(init_env))
        hints_env = env.get("OBD_NAME_HINTS")
        if hints_env is not None:
            adapter_kwargs["name_hints"] = _env_list(hints_env)

        adapter_overrides = overrides.pop("adapter", None)
        if isinstance(adapter_overrides, dict):
            adapter_kwargs.update(adapter_overrides)
        elif isinstance(adapter_overrides, AdapterProfile):
            adapter_kwargs = dataclasses.asdict(adapter_overrides)

        poll_kwargs: dict[str, Any] = {}
        tick_env = env.get("OBD_TICK_INTERVAL")
        if tick_env is not None:
            poll_kwargs["tick_interval"] = _env_number("OBD_TICK_INTERVAL", tick_env, float)
        priority_env = env.get("OBD_PRIORITY_PIDS")
        if priority_env is not None:
            poll_kwargs["priority_pids"] = _env_list(priority_env)
        secondary_env = env.get("OBD_SECONDARY_PIDS")
        if secondary_env is not None:
            poll_kwargs["secondary_pids"] = _env_list(secondary_env)

        poll_overrides = overrides.pop("poll", None)
        if isinstance(poll_overrides, dict):
            poll_kwargs.update(poll_overrides)
        elif isinstance(poll_overrides, PollPlan):
            poll_kwargs = dataclasses.asdict(poll_overrides)

        config_kwargs: dict[str, Any] = {
            "adapter": AdapterProfile(**adapter_kwargs),
            "poll": PollPlan(**poll_kwargs),
        }

        _ENV_NUMERIC_MAP: dict[str, tuple[str, type[float] | type[int]]] = {
            "OBD_SCAN_TIMEOUT": ("scan_timeout", float),
            "OBD_CONNECT_TIMEOUT": ("connect_timeout", float),
            "OBD_COMMAND_TIMEOUT": ("command_timeout", float),
            "OBD_RESET_SETTLE_DELAY": ("reset_settle_delay", float),
            "OBD_MAX_BUFFER_SIZE": ("max_buffer_size", int),
            "OBD_MAX_WRITE_FAILURES": ("max_consecutive_write_failures", int),
        }
        for env_key, (field_name, cast) in _ENV_NUMERIC_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = _env_number(env_key, val, cast)

        if "write_with_response" not in overrides:
            config_kwargs["write_with_response"] = _env_bool(env.get("OBD_WRITE_WITH_RESPONSE"), True)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
