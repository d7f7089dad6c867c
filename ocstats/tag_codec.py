"""Binary wire format for tag maps."""

from __future__ import annotations

from typing import Callable, Optional

from ocstats.tags import (
    TTL,
    InvalidKeyNameError,
    InvalidValueError,
    Key,
    TagMap,
    check_value,
    new_key,
)

TAGS_VERSION_ID = 0
_KEY_TYPE_STRING = 0
_MAX_VARINT_LEN64 = 10


class TagDecodeError(ValueError):
    """Raised when serialized tags are malformed or of an unsupported version."""


def _put_uvarint(out: bytearray, number: int) -> None:
    while number >= 0x80:
        out.append((number & 0x7F) | 0x80)
        number >>= 7
    out.append(number)


def _read_uvarint(data: bytes, start: int) -> tuple[int, int]:
    """Return (value, index after the varint), raising on truncation or overflow."""
    result = 0
    shift = 0
    for offset, byte in enumerate(data[start:]):
        if offset == _MAX_VARINT_LEN64:
            break
        if byte < 0x80:
            if offset == _MAX_VARINT_LEN64 - 1 and byte > 1:
                break
            return result | (byte << shift), start + offset + 1
        result |= (byte & 0x7F) << shift
        shift += 7
    raise TagDecodeError(
        f"unexpected end while reading length in '{data.hex()}' starting at idx '{start}'"
    )


def _write_bytes(out: bytearray, payload: bytes) -> None:
    _put_uvarint(out, len(payload))
    out.extend(payload)


def _read_bytes(data: bytes, start: int) -> tuple[bytes, int]:
    if start >= len(data):
        raise TagDecodeError(
            f"unexpected end while reading bytes in '{data.hex()}' starting at idx '{start}'"
        )
    length, value_start = _read_uvarint(data, start)
    value_end = value_start + length
    if value_end > len(data):
        raise TagDecodeError(
            f"malformed encoding: length:{length}, upper:{value_end}, maxLength:{len(data)}"
        )
    return data[value_start:value_end], value_end


def encode(tag_map: Optional[TagMap]) -> bytes:
    """Serialize the propagating tags of tag_map; None encodes to empty bytes."""
    if tag_map is None:
        return b""
    out = bytearray([TAGS_VERSION_ID])
    for key, value in tag_map.items():
        if tag_map.ttl(key) is TTL.UNLIMITED_PROPAGATION:
            out.append(_KEY_TYPE_STRING)
            _write_bytes(out, key.name.encode("utf-8"))
            _write_bytes(out, value.encode("utf-8"))
    return bytes(out)


def decode_each(data: bytes, handler: Callable[[Key, str], None]) -> None:
    """Decode data, calling handler(key, value) for each tag in order."""
    if not data:
        return
    data = bytes(data)
    version = data[0]
    if version > TAGS_VERSION_ID:
        raise TagDecodeError(
            f"cannot decode: unsupported version: {version}; "
            f"supports only up to: {TAGS_VERSION_ID}"
        )
    index = 1
    while index < len(data):
        key_type = data[index]
        index += 1
        if key_type != _KEY_TYPE_STRING:
            raise TagDecodeError(f"cannot decode: invalid key type: {key_type}")
        raw_key, index = _read_bytes(data, index)
        raw_value, index = _read_bytes(data, index)
        try:
            name = raw_key.decode("utf-8")
        except UnicodeDecodeError:
            raise InvalidKeyNameError() from None
        key = new_key(name)
        if len(raw_value) > 255:
            raise InvalidValueError()
        value = raw_value.decode("utf-8", errors="replace")
        if not check_value(value):
            raise InvalidValueError()
        handler(key, value)


def decode(data: bytes) -> TagMap:
    """Decode data into a new tag map; no partial map is returned on error."""
    decoded: dict[Key, str] = {}

    def collect(key: Key, value: str) -> None:
        decoded[key] = value

    decode_each(data, collect)
    return TagMap(decoded, ttl=TTL.UNLIMITED_PROPAGATION)