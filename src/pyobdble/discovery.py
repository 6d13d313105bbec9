"""Peer filtering and classic/low-energy de-duplication.

Many dual-mode dongles advertise twice: once over the classic Serial Port
Profile and once over BLE, usually with the same name or a name differing
only by a ``BLE``/``LE`` suffix.  Only the BLE variant can be driven by
this library, so the two are grouped and the low-energy one is tagged.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from pyobdble._constants import DEFAULT_NAME_HINTS
from pyobdble.models.peer import LinkType, PeerDescriptor

_LINK_SUFFIX_RE = re.compile(r"[\s_\-]*(?:BLE|LE|SPP|BT|CLASSIC)$")
_NON_ALNUM_RE = re.compile(r"[^0-9A-Z]+")


def matches_adapter_name(name: str | None, hints: Sequence[str] = DEFAULT_NAME_HINTS) -> bool:
    """Return ``True`` if *name* contains any vendor hint (case-insensitive)."""
    if not name:
        return False
    upper = name.upper()
    return any(hint.upper() in upper for hint in hints)


def hardware_key(name: str) -> str:
    """Normalize an advertised name so both link variants compare equal."""
    upper = name.strip().upper()
    stripped = _LINK_SUFFIX_RE.sub("", upper)
    return _NON_ALNUM_RE.sub("", stripped or upper)


@dataclass(frozen=True)
class PeerChoice:
    """A discovered peer annotated for presentation.

    ``recommended`` marks the low-energy variant of a piece of hardware.
    ``dual_mode`` is set when the same hardware was also seen over the
    other link type.
    """

    peer: PeerDescriptor
    recommended: bool
    dual_mode: bool = False

    @property
    def usable(self) -> bool:
        return self.peer.is_low_energy


def tag_peers(peers: Iterable[PeerDescriptor]) -> list[PeerChoice]:
    """Group peers by hardware and tag the low-energy variant of each group.

    Groups keep first-seen order.  Within a group the low-energy peers come
    first; the strongest-signal one is recommended.
    """
    groups: dict[str, list[PeerDescriptor]] = {}
    for peer in peers:
        key = hardware_key(peer.name) if peer.name else f"id:{peer.id}"
        groups.setdefault(key or f"id:{peer.id}", []).append(peer)

    choices: list[PeerChoice] = []
    for members in groups.values():
        low_energy = [p for p in members if p.link_type == LinkType.LOW_ENERGY]
        classic = [p for p in members if p.link_type != LinkType.LOW_ENERGY]
        dual_mode = bool(low_energy) and bool(classic)
        low_energy.sort(key=lambda p: p.rssi if p.rssi is not None else -1000, reverse=True)
        for index, peer in enumerate(low_energy):
            choices.append(PeerChoice(peer=peer, recommended=index == 0, dual_mode=dual_mode))
        for peer in classic:
            choices.append(PeerChoice(peer=peer, recommended=False, dual_mode=dual_mode))
    return choices
