from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, order=True)
class ResourceKey:
    """Type/group/instance identity of one resource.

    Field order gives the canonical (kind, group, instance) sort.
    """

    kind: int
    group: int
    instance: int

    @property
    def instance_hi(self) -> int:
        return (self.instance >> 32) & 0xFFFFFFFF

    @property
    def instance_lo(self) -> int:
        return self.instance & 0xFFFFFFFF

    @classmethod
    def parse(cls, text: str) -> "ResourceKey":
        """Parse ``KIND:GROUP:INSTANCE`` written in hex (as printed by ``str``)."""
        parts = text.strip().split(":")
        if len(parts) != 3:
            raise ValueError(f"Expected KIND:GROUP:INSTANCE, got {text!r}")
        kind, group, instance = (int(p, 16) for p in parts)
        return cls(kind, group, instance)

    def __str__(self) -> str:
        return f"{self.kind:08X}:{self.group:08X}:{self.instance:016X}"
