"""Variable-length integer codec used by the handshake protocol.

Each byte carries seven data bits, least significant group first; the high
bit is set when more bytes follow. A 32-bit value needs at most five bytes.
"""

import asyncio

from statussentinel.core.exceptions import ProtocolError, TransportError

_DATA_BITS = 0x7F
_CONTINUE = 0x80
_MAX_SHIFT = 32
_MAX_VALUE = 0xFFFFFFFF


def encode_varint(value: int) -> bytes:
    """Encode a non-negative 32-bit integer. Always emits at least one byte."""
    if value < 0 or value > _MAX_VALUE:
        raise ValueError(f"varint value out of range: {value}")

    out = bytearray()
    while True:
        byte = value & _DATA_BITS
        value >>= 7
        if value:
            byte |= _CONTINUE
        out.append(byte)
        if not value:
            return bytes(out)


def _accumulate(result: int, shift: int, byte: int) -> tuple[int, int, bool]:
    """Fold one byte in. Returns (result, next_shift, done)."""
    result |= (byte & _DATA_BITS) << shift
    if not byte & _CONTINUE:
        return result & _MAX_VALUE, shift, True
    shift += 7
    if shift >= _MAX_SHIFT:
        raise ProtocolError("VarInt is too big", details={"shift": shift})
    return result, shift, False


def decode_varint(data: bytes) -> tuple[int, int]:
    """Decode a varint from the start of ``data``.

    Returns (value, bytes_consumed).
    """
    result = shift = 0
    for consumed, byte in enumerate(data, start=1):
        result, shift, done = _accumulate(result, shift, byte)
        if done:
            return result, consumed
    raise TransportError("Byte source exhausted before varint ended.")


async def read_varint(reader: asyncio.StreamReader) -> int:
    """Read one varint from a stream, a byte at a time."""
    result = shift = 0
    while True:
        try:
            chunk = await reader.readexactly(1)
        except asyncio.IncompleteReadError as e:
            raise TransportError("Stream closed before varint ended.") from e
        result, shift, done = _accumulate(result, shift, chunk[0])
        if done:
            return result
