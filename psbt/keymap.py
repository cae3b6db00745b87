"""
Staking Signer - PSBT Keyed Maps

This module implements the key-value map that backs every PSBT section
(global, per-input and per-output). Entries are addressed by their serialized
key, a field type byte followed by optional key data, and are written in
ascending lexicographic order of that serialized key.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from .exceptions import NoSuchEntryError, PSBTFormatError
from .utils import ByteReader, ByteWriter


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Key:
    """Serialized PSBT key: one field type byte plus opaque key data."""
    field_type: int
    key_data: bytes = b''

    def __post_init__(self):
        if not 0 <= self.field_type <= 0xff:
            raise ValueError(f"Field type must fit in one byte: {self.field_type}")
        object.__setattr__(self, 'key_data', bytes(self.key_data))

    def serialize(self) -> bytes:
        return bytes([self.field_type]) + self.key_data

    def hex(self) -> str:
        return self.serialize().hex()

    @classmethod
    def from_bytes(cls, data: bytes) -> 'Key':
        if not data:
            raise PSBTFormatError("Empty key cannot be decoded")
        return cls(data[0], data[1:])


class KeyedMap:
    """
    Ordered PSBT map from serialized key to value bytes.

    Values handed out by get() are copies, so callers cannot mutate the
    stored entry through them.
    """

    def __init__(self):
        self._entries: Dict[bytes, bytes] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: Key) -> bool:
        return key.serialize() in self._entries

    def __eq__(self, other) -> bool:
        if not isinstance(other, KeyedMap):
            return NotImplemented
        return self._entries == other._entries

    def set(self, field_type: int, key_data: bytes, value: bytes) -> None:
        key = Key(field_type, key_data)
        self._entries[key.serialize()] = bytes(value)

    def get(self, field_type: int, key_data: bytes = b'',
            optional: bool = False) -> Optional[bytes]:
        """
        Look up a value by field type and key data.

        Args:
            field_type: Field type byte
            key_data: Key data following the type byte
            optional: Return None instead of raising when absent

        Returns:
            Copy of the stored value, or None for an absent optional entry

        Raises:
            NoSuchEntryError: If the entry is absent and not optional
        """
        key = Key(field_type, key_data)
        value = self._entries.get(key.serialize())
        if value is None:
            if optional:
                return None
            raise NoSuchEntryError(key.hex(), field_type, key.key_data)
        return bytes(bytearray(value))

    def has(self, field_type: int, key_data: bytes = b'') -> bool:
        return Key(field_type, key_data).serialize() in self._entries

    def get_all_key_data(self, field_type: int) -> List[bytes]:
        """Return the key data of every entry stored under field_type, in key order."""
        return [
            raw[1:] for raw in sorted(self._entries)
            if raw[0] == field_type
        ]

    def delete(self, field_type: int, key_data: bytes = b'') -> bool:
        return self._entries.pop(Key(field_type, key_data).serialize(), None) is not None

    def delete_field_types(self, field_types: Iterable[int]) -> int:
        """Remove every entry whose field type is in field_types."""
        wanted = set(field_types)
        doomed = [raw for raw in self._entries if raw[0] in wanted]
        for raw in doomed:
            del self._entries[raw]
        return len(doomed)

    def items(self) -> Iterator[Tuple[Key, bytes]]:
        for raw in sorted(self._entries):
            yield Key.from_bytes(raw), self._entries[raw]

    def copy(self) -> 'KeyedMap':
        clone = KeyedMap()
        clone._entries = {bytes(k): bytes(bytearray(v)) for k, v in self._entries.items()}
        return clone

    def write_to(self, writer: ByteWriter) -> None:
        """Append the entries in key order followed by the 0x00 terminator."""
        for raw in sorted(self._entries):
            writer.write_varstr(raw)
            writer.write_varstr(self._entries[raw])
        writer.write(b'\x00')

    def serialize(self) -> bytes:
        writer = ByteWriter()
        self.write_to(writer)
        return writer.getvalue()

    @classmethod
    def parse(cls, reader: ByteReader) -> 'KeyedMap':
        """
        Read entries until the 0x00 terminator.

        Args:
            reader: Reader positioned at the start of the map

        Returns:
            Parsed KeyedMap
        """
        keyed_map = cls()
        while True:
            key_length = reader.read_compact_size()
            if key_length == 0:
                break
            raw_key = reader.read(key_length)
            value = reader.read_varstr()
            if raw_key in keyed_map._entries:
                logger.debug(f"Duplicate key {raw_key.hex()} in map, keeping last value")
            keyed_map._entries[raw_key] = value
        return keyed_map
