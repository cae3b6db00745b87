"""
Staking Signer - PSBT Version 2 Container

This module provides PsbtV2, a container holding one global keyed map and
ordered per-input and per-output keyed maps. Version 0 PSBTs are promoted to
version 2 on parse, so every consumer only deals with the BIP-370 field set.

References:
- BIP174: https://github.com/bitcoin/bips/blob/master/bip-0174.mediawiki
- BIP370: https://github.com/bitcoin/bips/blob/master/bip-0370.mediawiki
- BIP371: https://github.com/bitcoin/bips/blob/master/bip-0371.mediawiki
"""

import base64
import binascii
import logging
import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import Iterable, List, Optional

from .exceptions import (
    InvalidMagicError,
    InvalidVersionError,
    NoSuchEntryError,
    NumericOverflowError,
    PSBTFormatError,
    TaprootInputError,
    UnsupportedVersionError,
)
from .keymap import Key, KeyedMap
from .transaction import UnsignedTransaction
from .utils import (
    PSBT_MAGIC,
    ByteReader,
    ByteWriter,
    decode_bip32_path,
    encode_bip32_path,
    read_uint32_le,
    serialize_compact_size,
    uint32_le,
)


MAX_AMOUNT = 2 ** 63 - 1
TAPROOT_LEAF_VERSION = 0xc0


class PsbtGlobal(IntEnum):
    """Global field types (BIP174/BIP370)."""
    UNSIGNED_TX = 0x00
    XPUB = 0x01
    TX_VERSION = 0x02
    FALLBACK_LOCKTIME = 0x03
    INPUT_COUNT = 0x04
    OUTPUT_COUNT = 0x05
    TX_MODIFIABLE = 0x06
    VERSION = 0xfb


class PsbtIn(IntEnum):
    """Per-input field types (BIP174/BIP370/BIP371)."""
    NON_WITNESS_UTXO = 0x00
    WITNESS_UTXO = 0x01
    PARTIAL_SIG = 0x02
    SIGHASH_TYPE = 0x03
    REDEEM_SCRIPT = 0x04
    WITNESS_SCRIPT = 0x05
    BIP32_DERIVATION = 0x06
    FINAL_SCRIPTSIG = 0x07
    FINAL_SCRIPTWITNESS = 0x08
    PREVIOUS_TXID = 0x0e
    OUTPUT_INDEX = 0x0f
    SEQUENCE = 0x10
    TAP_KEY_SIG = 0x13
    TAP_SCRIPT_SIG = 0x14
    TAP_LEAF_SCRIPT = 0x15
    TAP_BIP32_DERIVATION = 0x16
    TAP_INTERNAL_KEY = 0x17
    TAP_MERKLE_ROOT = 0x18


class PsbtOut(IntEnum):
    """Per-output field types (BIP174/BIP370/BIP371)."""
    REDEEM_SCRIPT = 0x00
    WITNESS_SCRIPT = 0x01
    BIP32_DERIVATION = 0x02
    AMOUNT = 0x03
    SCRIPT = 0x04
    TAP_INTERNAL_KEY = 0x05
    TAP_TREE = 0x06
    TAP_BIP32_DERIVATION = 0x07


@dataclass(frozen=True)
class WitnessUtxo:
    amount: int
    script_pubkey: bytes


@dataclass(frozen=True)
class Bip32Derivation:
    master_fingerprint: bytes
    path: List[int]


@dataclass(frozen=True)
class TapBip32Derivation:
    leaf_hashes: List[bytes]
    master_fingerprint: bytes
    path: List[int]


@dataclass(frozen=True)
class TapLeafScript:
    control_block: bytes
    script: bytes
    leaf_version: int


def _encode_amount(amount: int) -> bytes:
    if not isinstance(amount, int) or amount < 0 or amount > MAX_AMOUNT:
        raise NumericOverflowError(f"Amount out of range: {amount}")
    return struct.pack('<Q', amount)


def _decode_amount(data: bytes) -> int:
    if len(data) != 8:
        raise PSBTFormatError(f"Amount must be 8 bytes, got {len(data)}")
    amount = struct.unpack('<Q', data)[0]
    if amount > MAX_AMOUNT:
        raise NumericOverflowError(f"Amount does not fit a signed 64-bit value: {amount}")
    return amount


def _encode_bip32_derivation(master_fingerprint: bytes, path: Iterable[int]) -> bytes:
    if len(master_fingerprint) != 4:
        raise ValueError("Master fingerprint must be 4 bytes")
    return bytes(master_fingerprint) + encode_bip32_path(list(path))


def _decode_bip32_derivation(data: bytes) -> Bip32Derivation:
    if len(data) < 4:
        raise PSBTFormatError("BIP32 derivation value is shorter than a fingerprint")
    return Bip32Derivation(data[:4], decode_bip32_path(data[4:]))


def _encode_varint(n: int) -> bytes:
    return serialize_compact_size(n)


def _decode_varint(data: bytes) -> int:
    reader = ByteReader(data)
    value = reader.read_compact_size()
    if not reader.at_end():
        raise PSBTFormatError("Trailing bytes after varint field")
    return value


class PsbtV2:
    """
    BIP-370 PSBT container.

    All state lives in keyed maps; the typed accessors below fix the field
    type and encoding. Getters return copies of stored values. Required
    getters raise NoSuchEntryError, optional ones return None.
    """

    def __init__(self):
        self.global_map = KeyedMap()
        self.input_maps: List[KeyedMap] = []
        self.output_maps: List[KeyedMap] = []
        self.logger = logging.getLogger(__name__)

    # Map plumbing

    @staticmethod
    def _get_map(maps: List[KeyedMap], index: int, create: bool) -> Optional[KeyedMap]:
        if index < 0:
            raise IndexError(f"Map index must be non-negative: {index}")
        if index < len(maps):
            return maps[index]
        if not create:
            return None
        while len(maps) <= index:
            maps.append(KeyedMap())
        return maps[index]

    def _set_global(self, field_type: int, value: bytes, key_data: bytes = b'') -> None:
        self.global_map.set(field_type, key_data, value)

    def _get_global(self, field_type: int, key_data: bytes = b'',
                    optional: bool = False) -> Optional[bytes]:
        return self.global_map.get(field_type, key_data, optional)

    def _set_input(self, index: int, field_type: int, key_data: bytes, value: bytes) -> None:
        self._get_map(self.input_maps, index, create=True).set(field_type, key_data, value)

    def _get_input(self, index: int, field_type: int, key_data: bytes = b'',
                   optional: bool = False) -> Optional[bytes]:
        keyed_map = self._get_map(self.input_maps, index, create=False)
        if keyed_map is None:
            if optional:
                return None
            key = Key(field_type, key_data)
            raise NoSuchEntryError(key.hex(), field_type, key.key_data,
                                   f"No such entry: {key.hex()} (no input map {index})")
        return keyed_map.get(field_type, key_data, optional)

    def _set_output(self, index: int, field_type: int, key_data: bytes, value: bytes) -> None:
        self._get_map(self.output_maps, index, create=True).set(field_type, key_data, value)

    def _get_output(self, index: int, field_type: int, key_data: bytes = b'',
                    optional: bool = False) -> Optional[bytes]:
        keyed_map = self._get_map(self.output_maps, index, create=False)
        if keyed_map is None:
            if optional:
                return None
            key = Key(field_type, key_data)
            raise NoSuchEntryError(key.hex(), field_type, key.key_data,
                                   f"No such entry: {key.hex()} (no output map {index})")
        return keyed_map.get(field_type, key_data, optional)

    # Global fields

    def set_global_tx_version(self, version: int) -> None:
        self._set_global(PsbtGlobal.TX_VERSION, uint32_le(version))

    def get_global_tx_version(self) -> int:
        return read_uint32_le(self._get_global(PsbtGlobal.TX_VERSION))

    def set_global_fallback_locktime(self, locktime: int) -> None:
        self._set_global(PsbtGlobal.FALLBACK_LOCKTIME, uint32_le(locktime))

    def get_global_fallback_locktime(self) -> Optional[int]:
        value = self._get_global(PsbtGlobal.FALLBACK_LOCKTIME, optional=True)
        return None if value is None else read_uint32_le(value)

    def set_global_input_count(self, count: int) -> None:
        self._set_global(PsbtGlobal.INPUT_COUNT, _encode_varint(count))

    def get_global_input_count(self) -> int:
        return _decode_varint(self._get_global(PsbtGlobal.INPUT_COUNT))

    def set_global_output_count(self, count: int) -> None:
        self._set_global(PsbtGlobal.OUTPUT_COUNT, _encode_varint(count))

    def get_global_output_count(self) -> int:
        return _decode_varint(self._get_global(PsbtGlobal.OUTPUT_COUNT))

    def set_global_tx_modifiable(self, flags: bytes) -> None:
        self._set_global(PsbtGlobal.TX_MODIFIABLE, flags)

    def get_global_tx_modifiable(self) -> Optional[bytes]:
        return self._get_global(PsbtGlobal.TX_MODIFIABLE, optional=True)

    def set_global_psbt_version(self, version: int) -> None:
        self._set_global(PsbtGlobal.VERSION, uint32_le(version))

    def get_global_psbt_version(self) -> int:
        return read_uint32_le(self._get_global(PsbtGlobal.VERSION))

    def set_global_xpub(self, xpub: bytes, master_fingerprint: bytes, path: Iterable[int]) -> None:
        if len(xpub) != 78:
            raise ValueError("Serialized extended public key must be 78 bytes")
        self._set_global(PsbtGlobal.XPUB, _encode_bip32_derivation(master_fingerprint, path), xpub)

    def get_global_xpub(self, xpub: bytes) -> Optional[Bip32Derivation]:
        value = self._get_global(PsbtGlobal.XPUB, xpub, optional=True)
        return None if value is None else _decode_bip32_derivation(value)

    def get_global_xpubs(self) -> List[bytes]:
        return self.global_map.get_all_key_data(PsbtGlobal.XPUB)

    # Input fields

    def set_input_non_witness_utxo(self, index: int, transaction: bytes) -> None:
        self._set_input(index, PsbtIn.NON_WITNESS_UTXO, b'', transaction)

    def get_input_non_witness_utxo(self, index: int) -> Optional[bytes]:
        return self._get_input(index, PsbtIn.NON_WITNESS_UTXO, optional=True)

    def set_input_witness_utxo(self, index: int, amount: int, script_pubkey: bytes) -> None:
        writer = ByteWriter()
        writer.write(_encode_amount(amount))
        writer.write_varstr(script_pubkey)
        self._set_input(index, PsbtIn.WITNESS_UTXO, b'', writer.getvalue())

    def get_input_witness_utxo(self, index: int) -> Optional[WitnessUtxo]:
        value = self._get_input(index, PsbtIn.WITNESS_UTXO, optional=True)
        if value is None:
            return None
        reader = ByteReader(value)
        amount = _decode_amount(reader.read(8))
        script_pubkey = reader.read_varstr()
        return WitnessUtxo(amount, script_pubkey)

    def set_input_partial_sig(self, index: int, pubkey: bytes, signature: bytes) -> None:
        self._set_input(index, PsbtIn.PARTIAL_SIG, pubkey, signature)

    def get_input_partial_sig(self, index: int, pubkey: bytes) -> Optional[bytes]:
        return self._get_input(index, PsbtIn.PARTIAL_SIG, pubkey, optional=True)

    def set_input_sighash_type(self, index: int, sighash_type: int) -> None:
        self._set_input(index, PsbtIn.SIGHASH_TYPE, b'', uint32_le(sighash_type))

    def get_input_sighash_type(self, index: int) -> Optional[int]:
        value = self._get_input(index, PsbtIn.SIGHASH_TYPE, optional=True)
        return None if value is None else read_uint32_le(value)

    def set_input_redeem_script(self, index: int, script: bytes) -> None:
        self._set_input(index, PsbtIn.REDEEM_SCRIPT, b'', script)

    def get_input_redeem_script(self, index: int) -> Optional[bytes]:
        return self._get_input(index, PsbtIn.REDEEM_SCRIPT, optional=True)

    def set_input_witness_script(self, index: int, script: bytes) -> None:
        self._set_input(index, PsbtIn.WITNESS_SCRIPT, b'', script)

    def get_input_witness_script(self, index: int) -> Optional[bytes]:
        return self._get_input(index, PsbtIn.WITNESS_SCRIPT, optional=True)

    def set_input_bip32_derivation(self, index: int, pubkey: bytes,
                                   master_fingerprint: bytes, path: Iterable[int]) -> None:
        if len(pubkey) != 33:
            raise ValueError(f"Invalid pubkey length: {len(pubkey)}")
        self._set_input(index, PsbtIn.BIP32_DERIVATION, pubkey,
                        _encode_bip32_derivation(master_fingerprint, path))

    def get_input_bip32_derivation(self, index: int, pubkey: bytes) -> Optional[Bip32Derivation]:
        value = self._get_input(index, PsbtIn.BIP32_DERIVATION, pubkey, optional=True)
        return None if value is None else _decode_bip32_derivation(value)

    def set_input_final_scriptsig(self, index: int, script_sig: bytes) -> None:
        self._set_input(index, PsbtIn.FINAL_SCRIPTSIG, b'', script_sig)

    def get_input_final_scriptsig(self, index: int) -> Optional[bytes]:
        return self._get_input(index, PsbtIn.FINAL_SCRIPTSIG, optional=True)

    def set_input_final_scriptwitness(self, index: int, witness: bytes) -> None:
        self._set_input(index, PsbtIn.FINAL_SCRIPTWITNESS, b'', witness)

    def get_input_final_scriptwitness(self, index: int) -> bytes:
        return self._get_input(index, PsbtIn.FINAL_SCRIPTWITNESS)

    def set_input_previous_txid(self, index: int, txid: bytes) -> None:
        if len(txid) != 32:
            raise ValueError("Previous txid must be 32 bytes")
        self._set_input(index, PsbtIn.PREVIOUS_TXID, b'', txid)

    def get_input_previous_txid(self, index: int) -> bytes:
        return self._get_input(index, PsbtIn.PREVIOUS_TXID)

    def set_input_output_index(self, index: int, output_index: int) -> None:
        self._set_input(index, PsbtIn.OUTPUT_INDEX, b'', uint32_le(output_index))

    def get_input_output_index(self, index: int) -> int:
        return read_uint32_le(self._get_input(index, PsbtIn.OUTPUT_INDEX))

    def set_input_sequence(self, index: int, sequence: int) -> None:
        self._set_input(index, PsbtIn.SEQUENCE, b'', uint32_le(sequence))

    def get_input_sequence(self, index: int) -> int:
        value = self._get_input(index, PsbtIn.SEQUENCE, optional=True)
        return 0xffffffff if value is None else read_uint32_le(value)

    def set_input_tap_key_sig(self, index: int, signature: bytes) -> None:
        self._set_input(index, PsbtIn.TAP_KEY_SIG, b'', signature)

    def get_input_tap_key_sig(self, index: int) -> Optional[bytes]:
        return self._get_input(index, PsbtIn.TAP_KEY_SIG, optional=True)

    def set_input_tap_script_sig(self, index: int, pubkey: bytes, leaf_hash: bytes,
                                 signature: bytes) -> None:
        if len(pubkey) != 32 or len(leaf_hash) != 32:
            raise ValueError("Tap script signature key needs a 32-byte pubkey and leaf hash")
        self._set_input(index, PsbtIn.TAP_SCRIPT_SIG, pubkey + leaf_hash, signature)

    def get_input_tap_script_sig(self, index: int, pubkey: bytes,
                                 leaf_hash: bytes) -> Optional[bytes]:
        return self._get_input(index, PsbtIn.TAP_SCRIPT_SIG, pubkey + leaf_hash, optional=True)

    def set_input_tap_leaf_script(self, index: int, control_block: bytes, script: bytes,
                                  leaf_version: int = TAPROOT_LEAF_VERSION) -> None:
        self._set_input(index, PsbtIn.TAP_LEAF_SCRIPT, control_block,
                        bytes(script) + bytes([leaf_version]))

    def get_input_tap_leaf_scripts(self, index: int) -> List[TapLeafScript]:
        """Return every leaf script of an input in control-block order."""
        leaves = []
        for control_block in self.get_input_key_datas(index, PsbtIn.TAP_LEAF_SCRIPT):
            value = self._get_input(index, PsbtIn.TAP_LEAF_SCRIPT, control_block)
            if not value:
                raise PSBTFormatError("Tap leaf script value is empty")
            leaves.append(TapLeafScript(control_block, value[:-1], value[-1]))
        return leaves

    def set_input_tap_bip32_derivation(self, index: int, pubkey: bytes,
                                       leaf_hashes: List[bytes], master_fingerprint: bytes,
                                       path: Iterable[int]) -> None:
        if len(pubkey) != 32:
            raise ValueError(f"Invalid pubkey length: {len(pubkey)}")
        self._set_input(index, PsbtIn.TAP_BIP32_DERIVATION, pubkey,
                        self._encode_tap_bip32_derivation(leaf_hashes, master_fingerprint, path))

    def get_input_tap_bip32_derivation(self, index: int, pubkey: bytes) -> TapBip32Derivation:
        return self._decode_tap_bip32_derivation(
            self._get_input(index, PsbtIn.TAP_BIP32_DERIVATION, pubkey)
        )

    def set_input_tap_internal_key(self, index: int, pubkey: bytes) -> None:
        if len(pubkey) != 32:
            raise ValueError(f"Invalid internal key length: {len(pubkey)}")
        self._set_input(index, PsbtIn.TAP_INTERNAL_KEY, b'', pubkey)

    def get_input_tap_internal_key(self, index: int) -> Optional[bytes]:
        return self._get_input(index, PsbtIn.TAP_INTERNAL_KEY, optional=True)

    def set_input_tap_merkle_root(self, index: int, merkle_root: bytes) -> None:
        self._set_input(index, PsbtIn.TAP_MERKLE_ROOT, b'', merkle_root)

    def get_input_tap_merkle_root(self, index: int) -> Optional[bytes]:
        return self._get_input(index, PsbtIn.TAP_MERKLE_ROOT, optional=True)

    def get_input_key_datas(self, index: int, field_type: int) -> List[bytes]:
        keyed_map = self._get_map(self.input_maps, index, create=False)
        return [] if keyed_map is None else keyed_map.get_all_key_data(field_type)

    def delete_input_entries(self, index: int, field_types: Iterable[int]) -> None:
        keyed_map = self._get_map(self.input_maps, index, create=False)
        if keyed_map is None:
            raise IndexError(f"No input map at index {index}")
        keyed_map.delete_field_types(field_types)

    # Output fields

    def set_output_redeem_script(self, index: int, script: bytes) -> None:
        self._set_output(index, PsbtOut.REDEEM_SCRIPT, b'', script)

    def get_output_redeem_script(self, index: int) -> bytes:
        return self._get_output(index, PsbtOut.REDEEM_SCRIPT)

    def set_output_witness_script(self, index: int, script: bytes) -> None:
        self._set_output(index, PsbtOut.WITNESS_SCRIPT, b'', script)

    def get_output_witness_script(self, index: int) -> Optional[bytes]:
        return self._get_output(index, PsbtOut.WITNESS_SCRIPT, optional=True)

    def set_output_bip32_derivation(self, index: int, pubkey: bytes,
                                    master_fingerprint: bytes, path: Iterable[int]) -> None:
        if len(pubkey) != 33:
            raise ValueError(f"Invalid pubkey length: {len(pubkey)}")
        self._set_output(index, PsbtOut.BIP32_DERIVATION, pubkey,
                         _encode_bip32_derivation(master_fingerprint, path))

    def get_output_bip32_derivation(self, index: int, pubkey: bytes) -> Bip32Derivation:
        return _decode_bip32_derivation(
            self._get_output(index, PsbtOut.BIP32_DERIVATION, pubkey)
        )

    def set_output_amount(self, index: int, amount: int) -> None:
        self._set_output(index, PsbtOut.AMOUNT, b'', _encode_amount(amount))

    def get_output_amount(self, index: int) -> int:
        return _decode_amount(self._get_output(index, PsbtOut.AMOUNT))

    def set_output_script(self, index: int, script_pubkey: bytes) -> None:
        self._set_output(index, PsbtOut.SCRIPT, b'', script_pubkey)

    def get_output_script(self, index: int) -> bytes:
        return self._get_output(index, PsbtOut.SCRIPT)

    def set_output_tap_internal_key(self, index: int, pubkey: bytes) -> None:
        self._set_output(index, PsbtOut.TAP_INTERNAL_KEY, b'', pubkey)

    def get_output_tap_internal_key(self, index: int) -> Optional[bytes]:
        return self._get_output(index, PsbtOut.TAP_INTERNAL_KEY, optional=True)

    def set_output_tap_bip32_derivation(self, index: int, pubkey: bytes,
                                        leaf_hashes: List[bytes], master_fingerprint: bytes,
                                        path: Iterable[int]) -> None:
        if len(pubkey) != 32:
            raise ValueError(f"Invalid pubkey length: {len(pubkey)}")
        self._set_output(index, PsbtOut.TAP_BIP32_DERIVATION, pubkey,
                         self._encode_tap_bip32_derivation(leaf_hashes, master_fingerprint, path))

    def get_output_tap_bip32_derivation(self, index: int, pubkey: bytes) -> TapBip32Derivation:
        return self._decode_tap_bip32_derivation(
            self._get_output(index, PsbtOut.TAP_BIP32_DERIVATION, pubkey)
        )

    @staticmethod
    def _encode_tap_bip32_derivation(leaf_hashes: List[bytes], master_fingerprint: bytes,
                                     path: Iterable[int]) -> bytes:
        writer = ByteWriter()
        writer.write_compact_size(len(leaf_hashes))
        for leaf_hash in leaf_hashes:
            if len(leaf_hash) != 32:
                raise ValueError("Leaf hashes must be 32 bytes")
            writer.write(leaf_hash)
        writer.write(_encode_bip32_derivation(master_fingerprint, path))
        return writer.getvalue()

    @staticmethod
    def _decode_tap_bip32_derivation(data: bytes) -> TapBip32Derivation:
        reader = ByteReader(data)
        hash_count = reader.read_compact_size()
        leaf_hashes = [reader.read(32) for _ in range(hash_count)]
        derivation = _decode_bip32_derivation(reader.read(reader.remaining))
        return TapBip32Derivation(leaf_hashes, derivation.master_fingerprint, derivation.path)

    # Whole-structure operations

    def copy(self) -> 'PsbtV2':
        """Deep copy with fresh value buffers for every entry."""
        clone = PsbtV2()
        clone.global_map = self.global_map.copy()
        clone.input_maps = [m.copy() for m in self.input_maps]
        clone.output_maps = [m.copy() for m in self.output_maps]
        return clone

    def __eq__(self, other) -> bool:
        if not isinstance(other, PsbtV2):
            return NotImplemented
        return (self.global_map == other.global_map
                and self.input_maps == other.input_maps
                and self.output_maps == other.output_maps)

    def serialize(self) -> bytes:
        """
        Serialize to canonical bytes.

        Returns:
            Magic, global map, input maps and output maps in index order
        """
        writer = ByteWriter()
        writer.write(PSBT_MAGIC)
        self.global_map.write_to(writer)
        for keyed_map in self.input_maps:
            keyed_map.write_to(writer)
        for keyed_map in self.output_maps:
            keyed_map.write_to(writer)
        return writer.getvalue()

    def to_base64(self) -> str:
        return base64.b64encode(self.serialize()).decode('ascii')

    @classmethod
    def deserialize(cls, data: bytes) -> 'PsbtV2':
        """
        Parse a version 0 or version 2 PSBT and normalize it to version 2.

        Args:
            data: Raw PSBT bytes

        Returns:
            PsbtV2 instance

        Raises:
            InvalidMagicError: If the magic prefix is wrong
            UnsupportedVersionError: If the PSBT version is neither 0 nor 2
            InvalidVersionError: If a version 0 PSBT stores its version explicitly
            PSBTFormatError: If the bytes are truncated or have trailing data
        """
        reader = ByteReader(data)
        if reader.remaining < len(PSBT_MAGIC) or reader.read(len(PSBT_MAGIC)) != PSBT_MAGIC:
            raise InvalidMagicError("Invalid magic bytes")

        psbt = cls()
        psbt.global_map = KeyedMap.parse(reader)

        version_bytes = psbt._get_global(PsbtGlobal.VERSION, optional=True)
        psbt_version = 0 if version_bytes is None else read_uint32_le(version_bytes)
        if psbt_version not in (0, 2):
            raise UnsupportedVersionError(psbt_version)

        if psbt_version == 0:
            unsigned_tx = UnsignedTransaction.parse(psbt._get_global(PsbtGlobal.UNSIGNED_TX))
            input_count = len(unsigned_tx.inputs)
            output_count = len(unsigned_tx.outputs)
        else:
            if psbt.global_map.has(PsbtGlobal.UNSIGNED_TX):
                raise PSBTFormatError("Version 2 PSBT must not contain PSBT_GLOBAL_UNSIGNED_TX")
            input_count = psbt.get_global_input_count()
            output_count = psbt.get_global_output_count()

        psbt.input_maps = [KeyedMap.parse(reader) for _ in range(input_count)]
        psbt.output_maps = [KeyedMap.parse(reader) for _ in range(output_count)]

        if not reader.at_end():
            raise PSBTFormatError(f"{reader.remaining} trailing bytes after PSBT")

        psbt.logger.debug(
            f"Parsed PSBT v{psbt_version} with {input_count} inputs and {output_count} outputs"
        )
        psbt.normalize_to_v2()
        return psbt

    @classmethod
    def from_base64(cls, data: str) -> 'PsbtV2':
        try:
            raw = base64.b64decode(data, validate=True)
        except (binascii.Error, ValueError) as e:
            raise PSBTFormatError(f"Invalid base64 PSBT: {e}") from e
        return cls.deserialize(raw)

    def normalize_to_v2(self) -> None:
        """
        Promote a version 0 PSBT to version 2 in place.

        Version 2 is left untouched. A version 0 PSBT has its unsigned
        transaction spread into the per-input and per-output fields, after
        which PSBT_GLOBAL_UNSIGNED_TX is removed.

        Raises:
            InvalidVersionError: If any version other than 2 is stored
        """
        version_bytes = self._get_global(PsbtGlobal.VERSION, optional=True)
        psbt_version = None if version_bytes is None else read_uint32_le(version_bytes)
        if psbt_version == 2:
            return
        if psbt_version is not None:
            raise InvalidVersionError(psbt_version)

        tx = UnsignedTransaction.parse(self._get_global(PsbtGlobal.UNSIGNED_TX))

        self.set_global_psbt_version(2)
        self.set_global_tx_version(tx.version & 0xffffffff)
        self.set_global_fallback_locktime(tx.locktime)
        self.set_global_input_count(len(tx.inputs))
        self.set_global_output_count(len(tx.outputs))

        for i, tx_input in enumerate(tx.inputs):
            self.set_input_previous_txid(i, tx_input.prev_txid)
            self.set_input_output_index(i, tx_input.output_index)
            self.set_input_sequence(i, tx_input.sequence)

        for i, tx_output in enumerate(tx.outputs):
            self.set_output_amount(i, tx_output.amount)
            self.set_output_script(i, tx_output.script)

        self.global_map.delete(PsbtGlobal.UNSIGNED_TX)
        self.logger.debug(f"Normalized PSBT v0 to v2 ({len(tx.inputs)} inputs, {len(tx.outputs)} outputs)")

    @classmethod
    def from_builder(cls, builder) -> 'PsbtV2':
        """
        Import a psbt.builder.PSBTBuilder field by field.

        Args:
            builder: PSBTBuilder holding inputs, outputs and input metadata

        Returns:
            PsbtV2 ready to hand to a signing device

        Raises:
            TaprootInputError: If any input carries Taproot data
        """
        from crypto.keys import parse_derivation_path

        psbt = cls()
        psbt.set_global_psbt_version(2)
        psbt.set_global_tx_version(builder.version)
        psbt.set_global_input_count(len(builder.inputs))
        psbt.set_global_output_count(len(builder.outputs))
        if builder.locktime is not None:
            psbt.set_global_fallback_locktime(builder.locktime)

        for index, (tx_input, psbt_input) in enumerate(zip(builder.inputs, builder.psbt_inputs)):
            if psbt_input.is_taproot():
                raise TaprootInputError()

            psbt.set_input_previous_txid(index, bytes.fromhex(tx_input.prev_txid)[::-1])
            if tx_input.sequence is not None:
                psbt.set_input_sequence(index, tx_input.sequence)
            psbt.set_input_output_index(index, tx_input.output_n)
            if psbt_input.sighash_type is not None:
                psbt.set_input_sighash_type(index, psbt_input.sighash_type)
            if psbt_input.non_witness_utxo:
                psbt.set_input_non_witness_utxo(index, psbt_input.non_witness_utxo)
            if psbt_input.witness_utxo:
                utxo = psbt_input.decoded_witness_utxo()
                psbt.set_input_witness_utxo(index, utxo[0], utxo[1])
            if psbt_input.witness_script:
                psbt.set_input_witness_script(index, psbt_input.witness_script)
            if psbt_input.redeem_script:
                psbt.set_input_redeem_script(index, psbt_input.redeem_script)
            for pubkey, (fingerprint, path) in psbt_input.bip32_derivations.items():
                if isinstance(path, str):
                    path = parse_derivation_path(path)
                psbt.set_input_bip32_derivation(index, pubkey, fingerprint, path)

        for index, tx_output in enumerate(builder.outputs):
            psbt.set_output_amount(index, tx_output.value)
            psbt.set_output_script(index, tx_output.script)

        return psbt
