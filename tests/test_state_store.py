from __future__ import annotations

from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from pyobdble.models.snapshot import TelemetrySnapshot
from pyobdble.state.events import FieldUpdate
from pyobdble.state.store import TelemetryStore


def _dt() -> datetime:
    return datetime(2026, 1, 1, tzinfo=UTC)


def _update(field: str, value: float, pid: str = "0C") -> FieldUpdate:
    return FieldUpdate(pid=pid, field=field, value=value, observed_at=_dt())


def test_subscribe_delivers_current_snapshot_immediately() -> None:
    store = TelemetryStore()
    store.apply(_update("rpm", 900))
    seen: list[TelemetrySnapshot] = []

    store.subscribe(seen.append)

    assert len(seen) == 1
    assert seen[0].rpm == 900


def test_apply_retains_previous_values() -> None:
    store = TelemetryStore()

    store.apply(_update("rpm", 2000))
    store.apply(_update("speed", 80, pid="0D"))

    snapshot = store.get_snapshot()
    assert snapshot.rpm == 2000
    assert snapshot.speed == 80


def test_snapshots_handed_out_are_immutable_copies() -> None:
    store = TelemetryStore()
    before = store.get_snapshot()

    store.apply(_update("rpm", 1500))

    assert before.rpm == 0
    assert store.get_snapshot().rpm == 1500
    with pytest.raises(ValidationError):
        before.rpm = 5  # type: ignore[misc]


def test_unsubscribe_is_idempotent() -> None:
    store = TelemetryStore()
    seen: list[TelemetrySnapshot] = []
    unsubscribe = store.subscribe(seen.append)

    unsubscribe()
    unsubscribe()
    store.apply(_update("rpm", 1))

    assert len(seen) == 1
    assert store.subscriber_count == 0


def test_unsubscribe_during_delivery_does_not_skip_others() -> None:
    store = TelemetryStore()
    calls: list[str] = []
    unsubscribe_first = None

    def first(_snapshot: TelemetrySnapshot) -> None:
        calls.append("first")
        if unsubscribe_first is not None:
            unsubscribe_first()

    def second(_snapshot: TelemetrySnapshot) -> None:
        calls.append("second")

    unsubscribe_first = store.subscribe(first)
    store.subscribe(second)
    calls.clear()

    store.apply(_update("rpm", 1))
    store.apply(_update("rpm", 2))

    assert calls == ["first", "second", "second"]


def test_failing_observer_does_not_block_others() -> None:
    store = TelemetryStore()
    seen: list[int] = []

    def broken(_snapshot: TelemetrySnapshot) -> None:
        raise RuntimeError("observer bug")

    store.subscribe(broken)
    store.subscribe(lambda s: seen.append(s.rpm))

    store.apply(_update("rpm", 750))

    assert seen == [0, 750]


def test_set_connection_and_reset() -> None:
    store = TelemetryStore()
    store.apply(_update("rpm", 3000))
    store.set_connection(True, "OBDII")

    assert store.get_snapshot().is_connected is True
    assert store.get_snapshot().device_name == "OBDII"

    store.reset()

    assert store.get_snapshot() == TelemetrySnapshot()


def test_field_update_validation() -> None:
    assert FieldUpdate(pid="0c", field="rpm", value=1).pid == "0C"
    with pytest.raises(ValidationError):
        FieldUpdate(pid="0C", field="is_connected", value=1)
    with pytest.raises(ValidationError):
        FieldUpdate(pid="0C", field="gear", value=1)
    with pytest.raises(ValidationError):
        FieldUpdate(pid="010C", field="rpm", value=1)


def test_naive_timestamps_are_treated_as_utc() -> None:
    update = FieldUpdate(pid="0C", field="rpm", value=1, observed_at=datetime(2026, 1, 1))

    assert update.observed_at.tzinfo is UTC


def test_snapshot_dumps_camel_case_aliases() -> None:
    dumped = TelemetrySnapshot(coolant_temp=90).model_dump(by_alias=True)

    assert dumped["coolantTemp"] == 90
    assert dumped["isConnected"] is False
