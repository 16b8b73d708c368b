"""
k6-style trace ids

A k6 trace id is 16 bytes: a zig-zag varint prefix (0o756), a zig-zag varint
code telling the backend whether the run is a cloud run, an unsigned varint
unix timestamp in milliseconds, and random bytes up to 16. Backends can use the
prefix to recognise load-test traffic and the timestamp to bound lookups.
"""

import os
import time
from dataclasses import dataclass
from typing import Optional, Tuple, Union

K6_PREFIX = 0o756
K6_CODE_CLOUD = 12
K6_CODE_LOCAL = 33

TRACE_ID_BYTES = 16


@dataclass(frozen=True)
class K6TraceId:
    """Decoded header of a k6 trace id"""
    prefix: int
    code: int
    unix_timestamp_ms: int

    def is_valid(self) -> bool:
        return self.prefix == K6_PREFIX and self.code in (K6_CODE_CLOUD, K6_CODE_LOCAL)

    def is_valid_cloud(self) -> bool:
        return self.prefix == K6_PREFIX and self.code == K6_CODE_CLOUD


def _put_uvarint(value: int) -> bytes:
    out = bytearray()
    while value >= 0x80:
        out.append((value & 0x7F) | 0x80)
        value >>= 7
    out.append(value)
    return bytes(out)


def _put_varint(value: int) -> bytes:
    # zig-zag, same mapping as protobuf sint64
    return _put_uvarint((value << 1) ^ (value >> 63))


def _read_uvarint(buf: bytes, offset: int) -> Tuple[int, int]:
    result = 0
    shift = 0
    while True:
        if offset >= len(buf):
            raise ValueError("truncated varint")
        byte = buf[offset]
        offset += 1
        result |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return result, offset
        shift += 7
        if shift > 63:
            raise ValueError("varint overflows 64 bits")


def _read_varint(buf: bytes, offset: int) -> Tuple[int, int]:
    raw, offset = _read_uvarint(buf, offset)
    return (raw >> 1) ^ -(raw & 1), offset


def encode_trace_id(trace_id: K6TraceId, randomness: Optional[bytes] = None) -> bytes:
    """Encode a k6 trace id into 16 bytes

    Args:
        trace_id: Header fields to encode
        randomness: Fill bytes; os.urandom is used when omitted

    Returns:
        bytes: 16-byte trace id

    Raises:
        ValueError: If prefix/code are not a valid k6 combination
    """
    if not trace_id.is_valid():
        raise ValueError(f"failed to encode trace id: {trace_id}")

    header = (
        _put_varint(trace_id.prefix)
        + _put_varint(trace_id.code)
        + _put_uvarint(trace_id.unix_timestamp_ms)
    )
    fill = TRACE_ID_BYTES - len(header)
    if randomness is None:
        randomness = os.urandom(fill)
    if len(randomness) < fill:
        raise ValueError(f"need {fill} random bytes, got {len(randomness)}")
    return header + randomness[:fill]


def decode_trace_id(value: Union[bytes, int, str]) -> K6TraceId:
    """Decode the header of a k6 trace id given as bytes, int or hex string"""
    if isinstance(value, int):
        buf = value.to_bytes(TRACE_ID_BYTES, byteorder="big")
    elif isinstance(value, str):
        buf = bytes.fromhex(value)
    else:
        buf = bytes(value)

    prefix, offset = _read_varint(buf, 0)
    code, offset = _read_varint(buf, offset)
    timestamp, _ = _read_uvarint(buf, offset)
    return K6TraceId(prefix=prefix, code=code, unix_timestamp_ms=timestamp)


def new_k6_trace_id(cloud: bool = True) -> int:
    """Generate a fresh k6 trace id as a 128-bit integer"""
    encoded = encode_trace_id(K6TraceId(
        prefix=K6_PREFIX,
        code=K6_CODE_CLOUD if cloud else K6_CODE_LOCAL,
        unix_timestamp_ms=time.time_ns() // 1_000_000,
    ))
    return int.from_bytes(encoded, byteorder="big")
