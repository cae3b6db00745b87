"""
Tests for the version 0 PSBT builder
"""

import base64

import pytest

from psbt.builder import PSBTBuilder, encode_witness_utxo, is_p2tr_script
from psbt.exceptions import PSBTBuildError
from psbt.psbtv2 import PsbtGlobal, PsbtIn, PsbtV2
from psbt.transaction import UnsignedTransaction
from psbt.utils import ByteReader, PSBT_MAGIC
from psbt.keymap import KeyedMap


P2WPKH_SCRIPT = bytes.fromhex('00145be12624d08a2b424095d7c07221c33450d14bf1')


class TestPSBTBuilder:
    """Test PSBTBuilder functionality."""

    def setup_method(self):
        """Set up test fixtures."""
        self.builder = PSBTBuilder()
        self.txid = '9c5c75db0b02fa6bf422819a2e50de8589eb02d474d47f379efb7051fc190f95'

    def test_serialize_legacy_form(self):
        """Test the global map holds the unsigned transaction and no version field."""
        self.builder.add_input(self.txid, 0, witness_utxo=encode_witness_utxo(50000, P2WPKH_SCRIPT))
        self.builder.add_output(P2WPKH_SCRIPT, 2500)

        data = self.builder.serialize()
        assert data.startswith(PSBT_MAGIC)

        reader = ByteReader(data[len(PSBT_MAGIC):])
        global_map = KeyedMap.parse(reader)
        assert not global_map.has(PsbtGlobal.VERSION)
        tx = UnsignedTransaction.parse(global_map.get(PsbtGlobal.UNSIGNED_TX))
        assert tx.inputs[0].prev_txid_hex == self.txid
        assert tx.outputs[0].amount == 2500

        input_map = KeyedMap.parse(reader)
        assert input_map.get(PsbtIn.WITNESS_UTXO) == encode_witness_utxo(50000, P2WPKH_SCRIPT)

    def test_base64(self):
        self.builder.add_input(self.txid, 0)
        self.builder.add_output(P2WPKH_SCRIPT, 1)
        assert base64.b64decode(self.builder.to_base64()) == self.builder.serialize()

    def test_transaction_id(self):
        self.builder.add_input(self.txid, 0)
        self.builder.add_output(P2WPKH_SCRIPT, 1)
        assert self.builder.get_transaction_id() == self.builder._create_unsigned_transaction().txid

    def test_taproot_fields_parse(self):
        """Test Taproot input metadata round trips through PsbtV2."""
        index = self.builder.add_input(self.txid, 0)
        self.builder.set_tap_internal_key(index, b'\x01' * 32)
        self.builder.add_tap_leaf_script(index, b'\xc0' + b'\x01' * 32, b'\x51')
        self.builder.add_tap_bip32_derivation(index, b'\x02' * 32, [b'\x03' * 32],
                                              b'\x04' * 4, "m/86'/1'/0'/0/0")
        self.builder.add_output(P2WPKH_SCRIPT, 1)

        psbt = PsbtV2.deserialize(self.builder.serialize())
        assert psbt.get_input_tap_internal_key(0) == b'\x01' * 32
        assert psbt.get_input_tap_leaf_scripts(0)[0].script == b'\x51'
        derivation = psbt.get_input_tap_bip32_derivation(0, b'\x02' * 32)
        assert derivation.leaf_hashes == [b'\x03' * 32]
        assert derivation.path[1] == 0x80000001

    def test_invalid_txid(self):
        with pytest.raises(PSBTBuildError):
            self.builder.add_input('abcd', 0)

    def test_negative_amount(self):
        with pytest.raises(PSBTBuildError):
            self.builder.add_output(P2WPKH_SCRIPT, -1)

    def test_unknown_input_index(self):
        with pytest.raises(PSBTBuildError):
            self.builder.set_sighash_type(0, 1)

    def test_validate_structure(self):
        """Test structural issues are reported."""
        issues = self.builder.validate_structure()
        assert "PSBT must have at least one input" in issues
        assert "PSBT must have at least one output" in issues

        index = self.builder.add_input(self.txid, 0)
        self.builder.add_bip32_derivation(index, b'\x02' * 32, b'\x00' * 4, [0])
        self.builder.add_output(P2WPKH_SCRIPT, 1)
        issues = self.builder.validate_structure()
        assert "Input 0 must have either witness_utxo or non_witness_utxo" in issues
        assert "Input 0 has a BIP32 derivation with invalid pubkey length" in issues

    def test_is_p2tr_script(self):
        assert is_p2tr_script(b'\x51\x20' + b'\x00' * 32)
        assert not is_p2tr_script(P2WPKH_SCRIPT)
