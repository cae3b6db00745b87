"""
Staking Signer - Unsigned Transaction Codec

This module parses and serializes the legacy (non-witness) transaction
encoding carried in PSBT_GLOBAL_UNSIGNED_TX. Only the fields needed to
promote a version 0 PSBT to version 2 are modelled.
"""

import struct
from dataclasses import dataclass, field
from typing import List

from .exceptions import PSBTFormatError
from .utils import ByteReader, ByteWriter, double_sha256


@dataclass
class TxInput:
    """Outpoint and sequence of an unsigned transaction input."""
    prev_txid: bytes
    output_index: int
    sequence: int = 0xffffffff
    script_sig: bytes = b''

    @property
    def prev_txid_hex(self) -> str:
        """Previous txid in display (big-endian) order."""
        return self.prev_txid[::-1].hex()


@dataclass
class TxOutput:
    """Amount and scriptPubKey of a transaction output."""
    amount: int
    script: bytes


@dataclass
class UnsignedTransaction:
    """
    Legacy-serialized transaction without witness data.

    prev_txid values are kept in internal byte order, exactly as they appear
    in the serialized outpoint.
    """
    version: int = 2
    inputs: List[TxInput] = field(default_factory=list)
    outputs: List[TxOutput] = field(default_factory=list)
    locktime: int = 0

    @classmethod
    def parse(cls, data: bytes) -> 'UnsignedTransaction':
        """
        Parse a legacy-serialized transaction.

        Args:
            data: Raw transaction bytes

        Returns:
            UnsignedTransaction instance

        Raises:
            PSBTFormatError: If the bytes are truncated, witness-serialized,
                or followed by trailing data
        """
        reader = ByteReader(data)
        version = reader.read_int32()

        input_count = reader.read_compact_size()
        if input_count == 0 and reader.remaining > 0 and reader.data[reader.offset] == 0x01:
            raise PSBTFormatError("Unsigned transaction must not use witness serialization")

        inputs = []
        for _ in range(input_count):
            prev_txid = reader.read(32)
            output_index = reader.read_uint32()
            script_sig = reader.read_varstr()
            sequence = reader.read_uint32()
            inputs.append(TxInput(prev_txid, output_index, sequence, script_sig))

        output_count = reader.read_compact_size()
        outputs = []
        for _ in range(output_count):
            amount = reader.read_uint64()
            script = reader.read_varstr()
            outputs.append(TxOutput(amount, script))

        locktime = reader.read_uint32()

        if not reader.at_end():
            raise PSBTFormatError(
                f"Unsigned transaction has {reader.remaining} trailing bytes"
            )

        return cls(version=version, inputs=inputs, outputs=outputs, locktime=locktime)

    def serialize(self) -> bytes:
        """Serialize in legacy format (empty scriptSigs stay empty)."""
        writer = ByteWriter()
        writer.write(struct.pack('<i', self.version))

        writer.write_compact_size(len(self.inputs))
        for tx_input in self.inputs:
            if len(tx_input.prev_txid) != 32:
                raise PSBTFormatError("Previous txid must be 32 bytes")
            writer.write(tx_input.prev_txid)
            writer.write(struct.pack('<I', tx_input.output_index))
            writer.write_varstr(tx_input.script_sig)
            writer.write(struct.pack('<I', tx_input.sequence))

        writer.write_compact_size(len(self.outputs))
        for tx_output in self.outputs:
            writer.write(struct.pack('<Q', tx_output.amount))
            writer.write_varstr(tx_output.script)

        writer.write(struct.pack('<I', self.locktime))
        return writer.getvalue()

    @property
    def txid(self) -> str:
        """Transaction ID as displayed hex."""
        return double_sha256(self.serialize())[::-1].hex()
