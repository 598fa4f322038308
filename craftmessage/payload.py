"""
Wire payload for the craftmessage:simple_message channel.

The payload is a single string in the game's standard framing: a VarInt
holding the UTF-8 byte length, followed by the UTF-8 bytes.
"""

CHANNEL_ID = "craftmessage:simple_message"

# Game limit for a framed string, in characters
MAX_STRING_LENGTH = 32767
# UTF-8 uses at most 3 bytes per UTF-16 unit
MAX_STRING_BYTES = MAX_STRING_LENGTH * 3
MAX_VARINT_BYTES = 5


class PayloadError(ValueError):
    """Raised when a payload frame cannot be decoded."""


def encode_varint(value: int) -> bytes:
    if value < 0:
        raise PayloadError(f"VarInt cannot encode negative value {value}")
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def decode_varint(data: bytes, offset: int = 0) -> tuple[int, int]:
    """
    Read a VarInt starting at offset.

    Returns:
        (value, offset just past the VarInt)
    """
    value = 0
    for i in range(MAX_VARINT_BYTES):
        if offset + i >= len(data):
            raise PayloadError("truncated VarInt")
        byte = data[offset + i]
        value |= (byte & 0x7F) << (7 * i)
        if not byte & 0x80:
            return value, offset + i + 1
    raise PayloadError("VarInt too long")


def encode_payload(text: str) -> bytes:
    if len(text) > MAX_STRING_LENGTH:
        raise PayloadError(f"string longer than {MAX_STRING_LENGTH} characters")
    body = text.encode("utf-8")
    return encode_varint(len(body)) + body


def decode_payload(data: bytes) -> str:
    """Decode one framed string; the frame must span the whole payload."""
    length, offset = decode_varint(data)
    if length > MAX_STRING_BYTES:
        raise PayloadError(f"string length {length} exceeds {MAX_STRING_BYTES} bytes")

    end = offset + length
    if end > len(data):
        raise PayloadError(f"expected {length} bytes, got {len(data) - offset}")
    if end != len(data):
        raise PayloadError(f"{len(data) - end} trailing bytes after string")

    try:
        text = data[offset:end].decode("utf-8")
    except UnicodeDecodeError as e:
        raise PayloadError(f"invalid UTF-8: {e}") from e

    if len(text) > MAX_STRING_LENGTH:
        raise PayloadError(f"string longer than {MAX_STRING_LENGTH} characters")
    return text
