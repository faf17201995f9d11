from abc import ABC, abstractmethod

from statussentinel.schemas.probes import ProbeKind, ProbeOutcome, ProbeTarget

DEFAULT_TIMEOUT = 2.0


class ProbeStrategy(ABC):
    """One way of measuring a service's reachability."""

    kind: ProbeKind

    @abstractmethod
    async def probe(self, target: ProbeTarget, timeout: float = DEFAULT_TIMEOUT) -> ProbeOutcome:
        """Probe ``target`` once.

        Must return within ``timeout`` seconds and must not raise for network
        failures; those are reported as ``ProbeOutcome.failure``.
        """
        ...

    async def aclose(self) -> None:
        """Release resources held by the strategy."""
