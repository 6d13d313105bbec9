#!/usr/bin/env python3
"""Live probe for ELM327 BLE adapters.

This script uses pyobdble to:
1) scan for nearby adapters (vendor-name filtered unless --all),
2) pick the recommended BLE variant, or the one given by --address,
3) run the init sequence and poll the default PID plan,
4) print every published snapshot.

Use this to check that a dongle answers and how fast values refresh.
Configuration is read from OBD_* environment variables.
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
import logging
import signal
import sys
import time
from dataclasses import dataclass
from pathlib import Path

# Allow running from repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pyobdble import ObdClient, ObdConfig, ObdError, PeerDescriptor, TelemetrySnapshot  # noqa: E402

_LOG = logging.getLogger("obd_probe")

_SUMMARY_FIELDS = ("rpm", "speed", "coolant_temp", "boost_pressure", "throttle_position", "battery_voltage")


@dataclass
class ProbeStats:
    started_at: float
    snapshots: int = 0
    first_snapshot_at: float | None = None
    last_snapshot_at: float | None = None

    def on_snapshot(self, now: float) -> float | None:
        previous = self.last_snapshot_at
        self.snapshots += 1
        if self.first_snapshot_at is None:
            self.first_snapshot_at = now
        self.last_snapshot_at = now
        return None if previous is None else now - previous


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Scan for an ELM327 BLE adapter and stream live OBD-II telemetry.",
    )
    parser.add_argument(
        "--scan-only",
        action="store_true",
        help="List discovered adapters and exit.",
    )
    parser.add_argument(
        "--address",
        help="Connect to this address/identifier instead of scanning.",
    )
    parser.add_argument(
        "--all",
        action="store_true",
        help="List every BLE peer, not only names matching known vendors.",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Scan window in seconds (default: OBD_SCAN_TIMEOUT or 10).",
    )
    parser.add_argument(
        "--duration",
        type=int,
        default=0,
        help="Maximum streaming time in seconds (0 = run until Ctrl+C).",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print full snapshots as camelCase JSON.",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logs (includes raw adapter traffic).",
    )
    return parser.parse_args()


async def _scan(client: ObdClient, args: argparse.Namespace) -> list[PeerDescriptor]:
    print("[probe] Scanning...")
    peers = [peer async for peer in client.discover(args.timeout, match_all=args.all)]
    for choice in client.recommend(peers):
        marker = "*" if choice.recommended else " "
        note = " (classic, not usable)" if not choice.usable else ""
        dual = " dual-mode" if choice.dual_mode else ""
        rssi = "?" if choice.peer.rssi is None else choice.peer.rssi
        print(f"[probe] {marker} {choice.peer.id}  {choice.peer.name or '<unnamed>'}  rssi={rssi}{dual}{note}")
    if not peers:
        print("[probe] No adapters found.")
    return peers


def _print_snapshot(snapshot: TelemetrySnapshot, stats: ProbeStats, *, as_json: bool) -> None:
    now = time.time()
    delta = stats.on_snapshot(now)
    gap_text = "first" if delta is None else f"{delta * 1000:.0f}ms"
    if as_json:
        print(json.dumps(snapshot.model_dump(by_alias=True), sort_keys=True))
        return
    values = " ".join(f"{name}={getattr(snapshot, name)}" for name in _SUMMARY_FIELDS)
    print(f"[probe] #{stats.snapshots} gap={gap_text} connected={snapshot.is_connected} {values}")


def _print_summary(stats: ProbeStats, client: ObdClient) -> None:
    runtime = time.time() - stats.started_at
    print("[probe] Summary")
    print(f"[probe]   runtime_s  : {runtime:.1f}")
    print(f"[probe]   snapshots  : {stats.snapshots}")
    if runtime > 0:
        print(f"[probe]   per_second : {stats.snapshots / runtime:.1f}")
    if client.session is not None:
        print(f"[probe]   decoded    : {client.session.decoder.decoded}")
        print(f"[probe]   discarded  : {client.session.decoder.discarded}")
    if client.last_error is not None:
        print(f"[probe]   last_error : {client.last_error}")


async def _run(args: argparse.Namespace) -> int:
    config = ObdConfig.from_env()
    stats = ProbeStats(started_at=time.time())
    stop = asyncio.Event()

    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        # Not available on Windows event loops.
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(signum, stop.set)

    async with ObdClient(config, on_error=lambda exc: _LOG.warning("adapter error: %s", exc)) as client:
        await client.open()

        if args.address:
            target = PeerDescriptor(id=args.address)
        else:
            peers = await _scan(client, args)
            if args.scan_only:
                return 0
            recommended = [c.peer for c in client.recommend(peers) if c.recommended]
            if not recommended:
                print("[probe] Nothing to connect to.", file=sys.stderr)
                return 1
            target = recommended[0]

        print(f"[probe] Connecting to {target.name or target.id}...")
        await client.connect(target)
        print("[probe] Adapter ready, polling.")
        stats.started_at = time.time()
        unsubscribe = client.subscribe(lambda s: _print_snapshot(s, stats, as_json=args.json))

        try:
            while not stop.is_set():
                if args.duration > 0 and (time.time() - stats.started_at) >= args.duration:
                    print(f"[probe] Reached --duration={args.duration}s, stopping.")
                    break
                if not client.is_ready():
                    print(f"[probe] Session ended: {client.state}", file=sys.stderr)
                    break
                with contextlib.suppress(TimeoutError):
                    await asyncio.wait_for(stop.wait(), 1.0)
        finally:
            unsubscribe()
            _print_summary(stats, client)
    return 0


def _main() -> int:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        return asyncio.run(_run(args))
    except ObdError as exc:
        print(f"[probe] {type(exc).__name__}: {exc}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    raise SystemExit(_main())
