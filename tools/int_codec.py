#!/usr/bin/env python3
"""
int_codec.py - Integer and string decoding semantics for binary records

Reference implementation of the routines the generated C++ parsers call.
Every function here is pure over its input width; the emitted runtime
header (see generate_cpp.generate_runtime) must agree with it bit for bit.

Usage:
    from int_codec import read_integer, NumericFormat, ByteOrder

    fmt = NumericFormat(ByteOrder.BIG, NegativeEncoding.SIGN_MAGNITUDE)
    value = read_integer(stream, 2, True, fmt)
"""

from dataclasses import dataclass, replace
from enum import Enum, IntEnum
from typing import BinaryIO, Dict, Tuple


# =============================================================================
# Formats
# =============================================================================

class ByteOrder(Enum):
    LITTLE = 'little'
    BIG = 'big'


class NegativeEncoding(Enum):
    """Negative-number schemes. Values are the schema keywords."""
    TWOS_COMPLEMENT = 'twoscomp'
    ONES_COMPLEMENT = 'onescomp'
    SIGN_MAGNITUDE = 'signbit'
    EXCESS_K = 'excesskbiased'


@dataclass
class NumericFormat:
    """Byte order and negative encoding applied to an integer field."""
    byte_order: ByteOrder = ByteOrder.LITTLE
    negative_encoding: NegativeEncoding = NegativeEncoding.TWOS_COMPLEMENT

    def copy(self) -> 'NumericFormat':
        return replace(self)


# Schema keyword -> (width in bytes, signed)
INTEGER_KINDS: Dict[str, Tuple[int, bool]] = {
    'u8': (1, False),
    'u16': (2, False),
    'u32': (4, False),
    'u64': (8, False),
    's8': (1, True),
    's16': (2, True),
    's32': (4, True),
    's64': (8, True),
}

SUPPORTED_WIDTHS = (1, 2, 4, 8)


# =============================================================================
# Runtime status
# =============================================================================

class ParserStatus(IntEnum):
    """Outcome of a record read, shared with the emitted C++ runtime."""
    SUCCESS = 0
    UNEXPECTED_EOF = 1
    REQUIREMENT_NOT_MET = 2
    ALLOCATION_ERROR = 3


class ParsingError(Exception):
    """A record could not be read from the stream."""

    def __init__(self, status: ParserStatus, message: str = ''):
        self.status = status
        super().__init__(message or status.name)


class UnexpectedEof(ParsingError):
    def __init__(self, wanted: int, got: int):
        self.wanted = wanted
        self.got = got
        super().__init__(
            ParserStatus.UNEXPECTED_EOF,
            f"Unexpected end of stream: need {wanted} bytes, got {got}"
        )


# =============================================================================
# Integers
# =============================================================================

def decode_unsigned(data: bytes, order: ByteOrder) -> int:
    """Accumulate a byte sequence into an unsigned integer."""
    return int.from_bytes(bytes(data), order.value, signed=False)


def read_unsigned(stream: BinaryIO, width: int, order: ByteOrder) -> int:
    """Read exactly `width` bytes from `stream` as an unsigned integer.

    A short read is terminal: the bytes that were available are consumed
    and UnexpectedEof is raised.
    """
    data = stream.read(width)
    if len(data) < width:
        raise UnexpectedEof(width, len(data))
    return decode_unsigned(data, order)


def apply_sign(raw: int, encoding: NegativeEncoding, width_bits: int) -> int:
    """
    Map an unsigned N-bit pattern to the signed value it denotes.

    - two's complement: patterns >= 2^(N-1) are raw - 2^N
    - one's complement: top bit set gives raw - (2^N - 1); the all-ones
      pattern decodes to 0
    - sign-magnitude: top bit set gives -(raw without the top bit)
    - excess-K: raw - 2^(N-1) for every pattern
    """
    top = 1 << (width_bits - 1)
    full = 1 << width_bits
    if not 0 <= raw < full:
        raise ValueError(f"Raw value {raw:#x} does not fit in {width_bits} bits")

    if encoding == NegativeEncoding.TWOS_COMPLEMENT:
        return raw - full if raw & top else raw
    if encoding == NegativeEncoding.ONES_COMPLEMENT:
        return raw - (full - 1) if raw & top else raw
    if encoding == NegativeEncoding.SIGN_MAGNITUDE:
        return -(raw & ~top) if raw & top else raw
    if encoding == NegativeEncoding.EXCESS_K:
        return raw - top
    raise ValueError(f"Unknown negative encoding: {encoding}")


def signed_range(encoding: NegativeEncoding, width_bits: int) -> Tuple[int, int]:
    """Inclusive (min, max) of values representable under `encoding`."""
    top = 1 << (width_bits - 1)
    if encoding in (NegativeEncoding.ONES_COMPLEMENT, NegativeEncoding.SIGN_MAGNITUDE):
        return -(top - 1), top - 1
    return -top, top - 1


def encode_signed(value: int, encoding: NegativeEncoding, width_bits: int) -> int:
    """Inverse of apply_sign. Zero always encodes to the all-zero pattern
    except under excess-K, where it is the bias."""
    low, high = signed_range(encoding, width_bits)
    if not low <= value <= high:
        raise ValueError(
            f"{value} out of range [{low}, {high}] for {encoding.value} {width_bits}-bit"
        )
    top = 1 << (width_bits - 1)
    full = 1 << width_bits

    if encoding == NegativeEncoding.TWOS_COMPLEMENT:
        return value + full if value < 0 else value
    if encoding == NegativeEncoding.ONES_COMPLEMENT:
        return value + (full - 1) if value < 0 else value
    if encoding == NegativeEncoding.SIGN_MAGNITUDE:
        return top | -value if value < 0 else value
    if encoding == NegativeEncoding.EXCESS_K:
        return value + top
    raise ValueError(f"Unknown negative encoding: {encoding}")


def encode_unsigned(value: int, width: int, order: ByteOrder) -> bytes:
    return value.to_bytes(width, order.value, signed=False)


def read_integer(stream: BinaryIO, width: int, signed: bool,
                 fmt: NumericFormat) -> int:
    """Read one integer field. Unsigned fields keep the raw value."""
    raw = read_unsigned(stream, width, fmt.byte_order)
    if not signed:
        return raw
    return apply_sign(raw, fmt.negative_encoding, width * 8)


# =============================================================================
# Strings
# =============================================================================

def read_sized_string(stream: BinaryIO, length: int) -> bytes:
    data = stream.read(length)
    if len(data) < length:
        raise UnexpectedEof(length, len(data))
    return data


def read_cstyle_string(stream: BinaryIO) -> bytes:
    """Read up to a NUL byte. The terminator is consumed, not returned."""
    out = bytearray()
    while True:
        c = stream.read(1)
        if not c:
            raise UnexpectedEof(len(out) + 1, len(out))
        if c == b'\x00':
            return bytes(out)
        out += c
