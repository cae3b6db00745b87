"""
Staking Signer - PSBT Utilities

This module provides the byte-level helpers shared by the PSBT codec:
Bitcoin compact sizes, fixed-width little-endian integers, BIP32 path
encoding and a bounds-checked reader over a byte buffer.
"""

import hashlib
import struct
from typing import List, Tuple

from .exceptions import PSBTFormatError


PSBT_MAGIC = b'psbt\xff'


def serialize_compact_size(n: int) -> bytes:
    """
    Serialize integer as Bitcoin compact size.

    Args:
        n: Integer to serialize

    Returns:
        Compact size encoded bytes
    """
    if n < 0:
        raise ValueError("Compact size cannot be negative")
    if n < 0xfd:
        return struct.pack('<B', n)
    elif n <= 0xffff:
        return b'\xfd' + struct.pack('<H', n)
    elif n <= 0xffffffff:
        return b'\xfe' + struct.pack('<I', n)
    else:
        return b'\xff' + struct.pack('<Q', n)


def parse_compact_size(data: bytes, offset: int = 0) -> Tuple[int, int]:
    """
    Parse Bitcoin compact size from bytes.

    Args:
        data: Bytes to parse
        offset: Starting offset in bytes

    Returns:
        Tuple of (value, new_offset)
    """
    if offset >= len(data):
        raise PSBTFormatError("Insufficient data for compact size")

    first_byte = data[offset]

    if first_byte < 0xfd:
        return first_byte, offset + 1
    elif first_byte == 0xfd:
        if offset + 3 > len(data):
            raise PSBTFormatError("Insufficient data for 2-byte compact size")
        return struct.unpack('<H', data[offset + 1:offset + 3])[0], offset + 3
    elif first_byte == 0xfe:
        if offset + 5 > len(data):
            raise PSBTFormatError("Insufficient data for 4-byte compact size")
        return struct.unpack('<I', data[offset + 1:offset + 5])[0], offset + 5
    else:  # 0xff
        if offset + 9 > len(data):
            raise PSBTFormatError("Insufficient data for 8-byte compact size")
        return struct.unpack('<Q', data[offset + 1:offset + 9])[0], offset + 9


def varstr(data: bytes) -> bytes:
    """Prefix data with its compact size length."""
    return serialize_compact_size(len(data)) + data


def varstr_parse(data: bytes, offset: int = 0) -> Tuple[bytes, int]:
    """
    Parse variable-length string from bytes.

    Args:
        data: Bytes to parse
        offset: Starting offset

    Returns:
        Tuple of (parsed_data, new_offset)
    """
    length, new_offset = parse_compact_size(data, offset)
    if new_offset + length > len(data):
        raise PSBTFormatError("Insufficient data for varstr")

    return data[new_offset:new_offset + length], new_offset + length


def uint32_le(value: int) -> bytes:
    return struct.pack('<I', value)


def read_uint32_le(data: bytes) -> int:
    if len(data) != 4:
        raise PSBTFormatError(f"Expected 4 bytes for uint32, got {len(data)}")
    return struct.unpack('<I', data)[0]


def encode_bip32_path(path: List[int]) -> bytes:
    """
    Encode BIP32 derivation path to bytes.

    Args:
        path: List of derivation indices

    Returns:
        Encoded path bytes (4 bytes little-endian per level)
    """
    return b''.join(struct.pack('<I', index) for index in path)


def decode_bip32_path(data: bytes) -> List[int]:
    """
    Decode BIP32 derivation path from bytes.

    Args:
        data: Encoded path bytes

    Returns:
        List of derivation indices
    """
    if len(data) % 4 != 0:
        raise PSBTFormatError("Invalid BIP32 path length")

    return [struct.unpack('<I', data[i:i + 4])[0] for i in range(0, len(data), 4)]


def double_sha256(data: bytes) -> bytes:
    """Calculate double SHA256 hash."""
    return hashlib.sha256(hashlib.sha256(data).digest()).digest()


class ByteReader:
    """
    Cursor over a byte buffer that raises PSBTFormatError on truncation.
    """

    def __init__(self, data: bytes, offset: int = 0):
        self.data = bytes(data)
        self.offset = offset

    @property
    def remaining(self) -> int:
        return len(self.data) - self.offset

    def at_end(self) -> bool:
        return self.offset >= len(self.data)

    def read(self, n: int) -> bytes:
        if n < 0 or self.offset + n > len(self.data):
            raise PSBTFormatError(
                f"Unexpected end of data: wanted {n} bytes at offset {self.offset}, "
                f"{self.remaining} available"
            )
        chunk = self.data[self.offset:self.offset + n]
        self.offset += n
        return chunk

    def read_byte(self) -> int:
        return self.read(1)[0]

    def read_compact_size(self) -> int:
        value, self.offset = parse_compact_size(self.data, self.offset)
        return value

    def read_varstr(self) -> bytes:
        value, self.offset = varstr_parse(self.data, self.offset)
        return value

    def read_uint32(self) -> int:
        return struct.unpack('<I', self.read(4))[0]

    def read_int32(self) -> int:
        return struct.unpack('<i', self.read(4))[0]

    def read_uint64(self) -> int:
        return struct.unpack('<Q', self.read(8))[0]


class ByteWriter:
    """Append-only byte buffer mirroring ByteReader."""

    def __init__(self):
        self._parts: List[bytes] = []

    def write(self, data: bytes) -> 'ByteWriter':
        self._parts.append(bytes(data))
        return self

    def write_compact_size(self, n: int) -> 'ByteWriter':
        return self.write(serialize_compact_size(n))

    def write_varstr(self, data: bytes) -> 'ByteWriter':
        return self.write(varstr(data))

    def getvalue(self) -> bytes:
        return b''.join(self._parts)
