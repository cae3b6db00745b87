"""
Tests for the unsigned transaction codec
"""

import pytest

from psbt.exceptions import PSBTFormatError
from psbt.transaction import TxInput, TxOutput, UnsignedTransaction


class TestUnsignedTransaction:
    """Test legacy transaction parsing and serialization."""

    def setup_method(self):
        """Set up test fixtures."""
        self.tx = UnsignedTransaction(
            version=2,
            inputs=[TxInput(bytes(range(32)), 1, 0xfffffffd)],
            outputs=[
                TxOutput(2500, bytes.fromhex('00145be12624d08a2b424095d7c07221c33450d14bf1')),
                TxOutput(42500, b'\x51\x20' + b'\x11' * 32),
            ],
            locktime=800000,
        )

    def test_serialize_layout(self):
        """Test the serialized field layout."""
        raw = self.tx.serialize()
        assert raw[:4] == b'\x02\x00\x00\x00'
        assert raw[4] == 1
        assert raw[5:37] == bytes(range(32))
        assert raw[-4:] == (800000).to_bytes(4, 'little')

    def test_parse_serialized(self):
        """Test parsing recovers every field."""
        parsed = UnsignedTransaction.parse(self.tx.serialize())
        assert parsed == self.tx
        assert parsed.inputs[0].prev_txid_hex == bytes(range(32))[::-1].hex()

    def test_txid_is_reversed_double_sha(self):
        """Test txid display order."""
        assert len(self.tx.txid) == 64
        assert self.tx.txid == UnsignedTransaction.parse(self.tx.serialize()).txid

    def test_trailing_bytes_rejected(self):
        with pytest.raises(PSBTFormatError, match="trailing"):
            UnsignedTransaction.parse(self.tx.serialize() + b'\x00')

    def test_truncated_rejected(self):
        with pytest.raises(PSBTFormatError):
            UnsignedTransaction.parse(self.tx.serialize()[:-1])

    def test_witness_serialization_rejected(self):
        """Test that segwit marker and flag are refused."""
        raw = self.tx.serialize()
        witness_form = raw[:4] + b'\x00\x01' + raw[4:]
        with pytest.raises(PSBTFormatError, match="witness"):
            UnsignedTransaction.parse(witness_form)

    def test_bad_txid_length(self):
        tx = UnsignedTransaction(inputs=[TxInput(b'\x00' * 31, 0)])
        with pytest.raises(PSBTFormatError):
            tx.serialize()
