from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator

from statussentinel.core.exceptions import ConfigError

HANDSHAKE_SCHEME = "mc://"
DEFAULT_HANDSHAKE_PORT = 25565


class ProbeKind(str, Enum):
    HTTP = "http"
    HANDSHAKE = "handshake"


class ProbeTarget(BaseModel):
    """A service target with the probe strategy it selects."""

    model_config = ConfigDict(frozen=True)

    kind: ProbeKind
    address: str  # URL for HTTP, "host:port" for handshake
    host: str | None = None
    port: int | None = None


class ProbeOutcome(BaseModel):
    """Result of one probe attempt. Failures always carry latency 0."""

    model_config = ConfigDict(frozen=True)

    ok: bool
    latency_ms: int = Field(ge=0)
    status: str | None = None  # non-success HTTP status, when one was received
    error: str | None = None

    @model_validator(mode="after")
    def _failure_has_no_latency(self) -> "ProbeOutcome":
        if not self.ok and self.latency_ms != 0:
            raise ValueError("failed probes must record latency 0")
        return self

    @classmethod
    def success(cls, latency_ms: int) -> "ProbeOutcome":
        # 0 is reserved for failures in the history
        return cls(ok=True, latency_ms=max(1, latency_ms))

    @classmethod
    def failure(cls, status: str | None = None, error: str | None = None) -> "ProbeOutcome":
        return cls(ok=False, latency_ms=0, status=status, error=error)


def parse_target(raw: str) -> ProbeTarget:
    """Parse a stored service target into an explicit ``ProbeTarget``.

    ``mc://host[:port]`` selects the handshake probe (port defaults to 25565
    when absent or unparsable); anything else is probed over HTTP.
    """
    raw = raw.strip()
    if not raw:
        raise ConfigError("Service target is empty.")

    if not raw.startswith(HANDSHAKE_SCHEME):
        return ProbeTarget(kind=ProbeKind.HTTP, address=raw)

    server_addr = raw[len(HANDSHAKE_SCHEME):].rstrip("/")
    host, sep, port_text = server_addr.rpartition(":")
    if not sep or host.endswith(":"):
        # no port, or a bare IPv6 literal
        host, port_text = server_addr, ""
    host = host.strip("[]")
    if not host:
        raise ConfigError(f"Handshake target {raw!r} has no host.", details={"target": raw})

    try:
        port = int(port_text)
    except ValueError:
        port = DEFAULT_HANDSHAKE_PORT
    if not 0 < port < 65536:
        port = DEFAULT_HANDSHAKE_PORT

    return ProbeTarget(
        kind=ProbeKind.HANDSHAKE,
        address=f"{host}:{port}",
        host=host,
        port=port,
    )
