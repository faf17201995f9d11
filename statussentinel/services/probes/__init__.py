"""Probe strategies and the registry that picks one per target kind."""

from statussentinel.schemas.probes import ProbeKind, ProbeTarget
from statussentinel.services.probes.base import ProbeStrategy
from statussentinel.services.probes.handshake import HandshakeProbe
from statussentinel.services.probes.reachability import ReachabilityProbe


class ProbeRegistry:
    """Closed mapping from ``ProbeKind`` to the strategy that handles it."""

    def __init__(
        self,
        reachability: ProbeStrategy | None = None,
        handshake: ProbeStrategy | None = None,
    ):
        self._strategies: dict[ProbeKind, ProbeStrategy] = {
            ProbeKind.HTTP: reachability or ReachabilityProbe(),
            ProbeKind.HANDSHAKE: handshake or HandshakeProbe(),
        }

    def select(self, target: ProbeTarget) -> ProbeStrategy:
        return self._strategies[target.kind]

    async def aclose(self) -> None:
        for strategy in self._strategies.values():
            await strategy.aclose()


__all__ = [
    "HandshakeProbe",
    "ProbeRegistry",
    "ProbeStrategy",
    "ReachabilityProbe",
]
