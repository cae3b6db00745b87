"""
Staking Signer - PSBT Builder

This module provides a BIP-174 (version 0) PSBT builder. It produces the
legacy form that wallets and libraries commonly emit, and it is the builder
object that PsbtV2.from_builder imports.
"""

import base64
import logging
import struct
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Union

from .exceptions import PSBTBuildError
from .keymap import KeyedMap
from .psbtv2 import PsbtGlobal, PsbtIn, PsbtOut, TAPROOT_LEAF_VERSION
from .transaction import TxInput, TxOutput, UnsignedTransaction
from .utils import (
    PSBT_MAGIC,
    ByteReader,
    ByteWriter,
    encode_bip32_path,
    serialize_compact_size,
)


DerivationPath = Union[str, List[int]]


def encode_witness_utxo(amount: int, script_pubkey: bytes) -> bytes:
    """
    Encode a witness UTXO value (amount followed by scriptPubKey).

    Args:
        amount: Output amount in satoshis
        script_pubkey: Output script

    Returns:
        Encoded witness UTXO
    """
    return struct.pack('<Q', amount) + serialize_compact_size(len(script_pubkey)) + script_pubkey


def is_p2tr_script(script: bytes) -> bool:
    """Check for a segwit v1 program: OP_1 followed by a 32-byte push."""
    return len(script) == 34 and script[0] == 0x51 and script[1] == 0x20


@dataclass
class TransactionInput:
    """Simple input structure for PSBT transactions."""
    prev_txid: str
    output_n: int
    sequence: int = 0xfffffffe


@dataclass
class TransactionOutput:
    """Simple output structure for PSBT transactions."""
    value: int
    script: bytes


@dataclass
class PSBTInput:
    """Represents a PSBT input with associated metadata."""
    non_witness_utxo: Optional[bytes] = None
    witness_utxo: Optional[bytes] = None
    sighash_type: Optional[int] = None
    redeem_script: Optional[bytes] = None
    witness_script: Optional[bytes] = None
    bip32_derivations: Dict[bytes, Tuple[bytes, DerivationPath]] = field(default_factory=dict)
    tap_internal_key: Optional[bytes] = None
    tap_merkle_root: Optional[bytes] = None
    tap_leaf_scripts: Dict[bytes, Tuple[bytes, int]] = field(default_factory=dict)
    tap_bip32_derivations: Dict[bytes, Tuple[List[bytes], bytes, DerivationPath]] = field(
        default_factory=dict
    )

    def decoded_witness_utxo(self) -> Tuple[int, bytes]:
        reader = ByteReader(self.witness_utxo)
        amount = reader.read_uint64()
        return amount, reader.read_varstr()

    def is_taproot(self) -> bool:
        """Whether any field marks this input as a Taproot spend."""
        if self.tap_internal_key or self.tap_merkle_root:
            return True
        if self.tap_leaf_scripts or self.tap_bip32_derivations:
            return True
        if self.witness_utxo:
            return is_p2tr_script(self.decoded_witness_utxo()[1])
        return False

    def to_keyed_map(self) -> KeyedMap:
        from crypto.keys import parse_derivation_path

        keyed_map = KeyedMap()
        if self.non_witness_utxo:
            keyed_map.set(PsbtIn.NON_WITNESS_UTXO, b'', self.non_witness_utxo)
        if self.witness_utxo:
            keyed_map.set(PsbtIn.WITNESS_UTXO, b'', self.witness_utxo)
        if self.sighash_type is not None:
            keyed_map.set(PsbtIn.SIGHASH_TYPE, b'', struct.pack('<I', self.sighash_type))
        if self.redeem_script:
            keyed_map.set(PsbtIn.REDEEM_SCRIPT, b'', self.redeem_script)
        if self.witness_script:
            keyed_map.set(PsbtIn.WITNESS_SCRIPT, b'', self.witness_script)
        for pubkey, (fingerprint, path) in self.bip32_derivations.items():
            if isinstance(path, str):
                path = parse_derivation_path(path)
            keyed_map.set(PsbtIn.BIP32_DERIVATION, pubkey, fingerprint + encode_bip32_path(path))
        if self.tap_internal_key:
            keyed_map.set(PsbtIn.TAP_INTERNAL_KEY, b'', self.tap_internal_key)
        if self.tap_merkle_root:
            keyed_map.set(PsbtIn.TAP_MERKLE_ROOT, b'', self.tap_merkle_root)
        for control_block, (script, leaf_version) in self.tap_leaf_scripts.items():
            keyed_map.set(PsbtIn.TAP_LEAF_SCRIPT, control_block, script + bytes([leaf_version]))
        for pubkey, (leaf_hashes, fingerprint, path) in self.tap_bip32_derivations.items():
            if isinstance(path, str):
                path = parse_derivation_path(path)
            value = (serialize_compact_size(len(leaf_hashes)) + b''.join(leaf_hashes)
                     + fingerprint + encode_bip32_path(path))
            keyed_map.set(PsbtIn.TAP_BIP32_DERIVATION, pubkey, value)
        return keyed_map


@dataclass
class PSBTOutput:
    """Represents a PSBT output with associated metadata."""
    redeem_script: Optional[bytes] = None
    witness_script: Optional[bytes] = None
    tap_internal_key: Optional[bytes] = None

    def to_keyed_map(self) -> KeyedMap:
        keyed_map = KeyedMap()
        if self.redeem_script:
            keyed_map.set(PsbtOut.REDEEM_SCRIPT, b'', self.redeem_script)
        if self.witness_script:
            keyed_map.set(PsbtOut.WITNESS_SCRIPT, b'', self.witness_script)
        if self.tap_internal_key:
            keyed_map.set(PsbtOut.TAP_INTERNAL_KEY, b'', self.tap_internal_key)
        return keyed_map


class PSBTBuilder:
    """
    Builder for version 0 PSBTs according to BIP-174.

    Inputs and outputs are accumulated and serialized with the unsigned
    transaction in PSBT_GLOBAL_UNSIGNED_TX. No PSBT_GLOBAL_VERSION is written,
    which is how BIP-174 marks version 0.
    """

    def __init__(self, version: int = 2, locktime: int = 0):
        """
        Initialize PSBT builder.

        Args:
            version: Transaction version (default: 2)
            locktime: Transaction locktime (default: 0)
        """
        self.version = version
        self.locktime = locktime
        self.inputs: List[TransactionInput] = []
        self.outputs: List[TransactionOutput] = []
        self.psbt_inputs: List[PSBTInput] = []
        self.psbt_outputs: List[PSBTOutput] = []
        self.logger = logging.getLogger(__name__)

    def add_input(
        self,
        txid: str,
        vout: int,
        sequence: int = 0xfffffffe,
        witness_utxo: Optional[bytes] = None,
        non_witness_utxo: Optional[bytes] = None,
        redeem_script: Optional[bytes] = None,
        witness_script: Optional[bytes] = None,
        sighash_type: Optional[int] = None
    ) -> int:
        """
        Add an input to the PSBT.

        Args:
            txid: Transaction ID of the UTXO to spend (display hex)
            vout: Output index of the UTXO to spend
            sequence: Sequence number (default: 0xfffffffe for RBF)
            witness_utxo: Encoded witness UTXO for segwit inputs
            non_witness_utxo: Full previous transaction for non-segwit inputs
            redeem_script: Redeem script for P2SH inputs
            witness_script: Witness script for P2WSH inputs
            sighash_type: Optional sighash type

        Returns:
            Index of the new input
        """
        if len(bytes.fromhex(txid)) != 32:
            raise PSBTBuildError(f"Invalid txid: {txid}")

        self.inputs.append(TransactionInput(prev_txid=txid, output_n=vout, sequence=sequence))
        self.psbt_inputs.append(PSBTInput(
            witness_utxo=witness_utxo,
            non_witness_utxo=non_witness_utxo,
            redeem_script=redeem_script,
            witness_script=witness_script,
            sighash_type=sighash_type
        ))
        return len(self.inputs) - 1

    def add_output(
        self,
        script: bytes,
        amount: int,
        redeem_script: Optional[bytes] = None,
        witness_script: Optional[bytes] = None
    ) -> int:
        """
        Add an output to the PSBT.

        Args:
            script: Output script
            amount: Amount in satoshis
            redeem_script: Redeem script for P2SH outputs
            witness_script: Witness script for P2WSH outputs

        Returns:
            Index of the new output
        """
        if amount < 0:
            raise PSBTBuildError(f"Output amount cannot be negative: {amount}")

        self.outputs.append(TransactionOutput(value=amount, script=script))
        self.psbt_outputs.append(PSBTOutput(
            redeem_script=redeem_script,
            witness_script=witness_script
        ))
        return len(self.outputs) - 1

    def _psbt_input(self, input_index: int) -> PSBTInput:
        if input_index >= len(self.psbt_inputs):
            raise PSBTBuildError(f"Input index {input_index} out of range")
        return self.psbt_inputs[input_index]

    def add_bip32_derivation(self, input_index: int, pubkey: bytes,
                             fingerprint: bytes, path: DerivationPath) -> None:
        """
        Record the BIP32 origin of an input key.

        Args:
            input_index: Index of the input
            pubkey: 33-byte public key
            fingerprint: 4-byte master fingerprint
            path: Derivation path string ("m/86'/0'/0'") or index list
        """
        self._psbt_input(input_index).bip32_derivations[pubkey] = (fingerprint, path)

    def set_sighash_type(self, input_index: int, sighash_type: int) -> None:
        self._psbt_input(input_index).sighash_type = sighash_type

    def set_tap_internal_key(self, input_index: int, internal_key: bytes) -> None:
        self._psbt_input(input_index).tap_internal_key = internal_key

    def set_tap_merkle_root(self, input_index: int, merkle_root: bytes) -> None:
        self._psbt_input(input_index).tap_merkle_root = merkle_root

    def add_tap_leaf_script(self, input_index: int, control_block: bytes, script: bytes,
                            leaf_version: int = TAPROOT_LEAF_VERSION) -> None:
        """
        Attach a Taproot leaf script to an input.

        Args:
            input_index: Index of the input
            control_block: Control block proving the leaf
            script: Leaf script
            leaf_version: Leaf version (default: 0xc0)
        """
        self._psbt_input(input_index).tap_leaf_scripts[control_block] = (script, leaf_version)

    def add_tap_bip32_derivation(self, input_index: int, xonly_pubkey: bytes,
                                 leaf_hashes: List[bytes], fingerprint: bytes,
                                 path: DerivationPath) -> None:
        self._psbt_input(input_index).tap_bip32_derivations[xonly_pubkey] = (
            leaf_hashes, fingerprint, path
        )

    def _create_unsigned_transaction(self) -> UnsignedTransaction:
        return UnsignedTransaction(
            version=self.version,
            inputs=[
                TxInput(bytes.fromhex(i.prev_txid)[::-1], i.output_n, i.sequence)
                for i in self.inputs
            ],
            outputs=[TxOutput(o.value, o.script) for o in self.outputs],
            locktime=self.locktime
        )

    def serialize(self) -> bytes:
        """
        Serialize PSBT to binary format.

        Returns:
            Serialized PSBT data
        """
        global_map = KeyedMap()
        global_map.set(PsbtGlobal.UNSIGNED_TX, b'', self._create_unsigned_transaction().serialize())

        writer = ByteWriter()
        writer.write(PSBT_MAGIC)
        global_map.write_to(writer)
        for psbt_input in self.psbt_inputs:
            psbt_input.to_keyed_map().write_to(writer)
        for psbt_output in self.psbt_outputs:
            psbt_output.to_keyed_map().write_to(writer)

        self.logger.debug(
            f"Serialized PSBT v0 with {len(self.inputs)} inputs and {len(self.outputs)} outputs"
        )
        return writer.getvalue()

    def to_base64(self) -> str:
        """
        Serialize PSBT to base64 format.

        Returns:
            Base64-encoded PSBT string
        """
        return base64.b64encode(self.serialize()).decode('ascii')

    def get_transaction_id(self) -> str:
        return self._create_unsigned_transaction().txid

    def validate_structure(self) -> List[str]:
        """
        Validate PSBT structure and return list of issues.

        Returns:
            List of validation issues (empty if valid)
        """
        issues = []

        if not self.inputs:
            issues.append("PSBT must have at least one input")

        if not self.outputs:
            issues.append("PSBT must have at least one output")

        for i, psbt_input in enumerate(self.psbt_inputs):
            if not psbt_input.witness_utxo and not psbt_input.non_witness_utxo:
                issues.append(f"Input {i} must have either witness_utxo or non_witness_utxo")
            for pubkey in psbt_input.bip32_derivations:
                if len(pubkey) != 33:
                    issues.append(f"Input {i} has a BIP32 derivation with invalid pubkey length")
            for xonly in psbt_input.tap_bip32_derivations:
                if len(xonly) != 32:
                    issues.append(f"Input {i} has a Taproot derivation with invalid pubkey length")

        return issues
