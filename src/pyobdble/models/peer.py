"""Discovered peer descriptors."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, field_validator


class LinkType(StrEnum):
    """Radio profile a peer was seen on."""

    LOW_ENERGY = "le"
    CLASSIC = "classic"


class PeerDescriptor(BaseModel):
    """A device seen during discovery.

    ``id`` is whatever the platform uses to reconnect: a MAC address on
    Linux/Windows, a CoreBluetooth UUID on macOS.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    name: str = ""
    link_type: LinkType = LinkType.LOW_ENERGY
    rssi: int | None = None

    @field_validator("id")
    @classmethod
    def _normalize_id(cls, value: str) -> str:
        peer_id = value.strip()
        if not peer_id:
            raise ValueError("peer id must be non-empty")
        return peer_id

    @field_validator("name", mode="before")
    @classmethod
    def _default_name(cls, value: object) -> object:
        if value is None:
            return ""
        return value

    @property
    def is_low_energy(self) -> bool:
        return self.link_type == LinkType.LOW_ENERGY
