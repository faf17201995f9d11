"""Binary handshake probe for Minecraft-style servers (server list ping).

Sends a handshake packet announcing the "status" next state, then a status
request, and treats reading the first varint of the reply (the response
length) as proof of life. The reply body itself is never parsed.
"""

import asyncio
import struct
import time

import structlog

from statussentinel.core.exceptions import ProtocolError, TransportError
from statussentinel.schemas.probes import ProbeKind, ProbeOutcome, ProbeTarget
from statussentinel.services.probes.base import DEFAULT_TIMEOUT, ProbeStrategy
from statussentinel.services.probes.varint import encode_varint, read_varint

logger = structlog.get_logger()

PROTOCOL_VERSION = 764
HANDSHAKE_PACKET_ID = 0x00
STATUS_NEXT_STATE = 1
STATUS_REQUEST = b"\x00"


def frame_packet(payload: bytes) -> bytes:
    """Prefix ``payload`` with its varint-encoded length."""
    return encode_varint(len(payload)) + payload


def build_handshake(host: str, port: int) -> bytes:
    """Build the length-prefixed handshake packet for ``host:port``."""
    host_bytes = host.encode("utf-8")
    payload = b"".join([
        encode_varint(HANDSHAKE_PACKET_ID),
        encode_varint(PROTOCOL_VERSION),
        encode_varint(len(host_bytes)),
        host_bytes,
        struct.pack(">H", port),
        encode_varint(STATUS_NEXT_STATE),
    ])
    return frame_packet(payload)


class HandshakeProbe(ProbeStrategy):
    kind = ProbeKind.HANDSHAKE

    async def probe(self, target: ProbeTarget, timeout: float = DEFAULT_TIMEOUT) -> ProbeOutcome:
        start = time.monotonic()
        try:
            await asyncio.wait_for(self._exchange(target.host, target.port), timeout)
        except asyncio.TimeoutError:
            logger.debug("handshake_probe_timeout", target=target.address, timeout=timeout)
            return ProbeOutcome.failure(error="timed out")
        except (OSError, TransportError, ProtocolError) as e:
            logger.debug("handshake_probe_failed", target=target.address, error=str(e))
            return ProbeOutcome.failure(error=str(e) or type(e).__name__)
        return ProbeOutcome.success(int((time.monotonic() - start) * 1000))

    async def _exchange(self, host: str, port: int) -> None:
        reader, writer = await asyncio.open_connection(host, port)
        try:
            writer.write(build_handshake(host, port))
            writer.write(frame_packet(STATUS_REQUEST))
            await writer.drain()
            # Any well-formed length prefix means the server is answering
            await read_varint(reader)
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except OSError:
                pass
