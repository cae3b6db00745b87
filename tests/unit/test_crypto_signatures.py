"""
Tests for Bitcoin message signatures
"""

import base64

import pytest

from crypto.exceptions import InvalidSignatureError
from crypto.keys import PrivateKey, sha256
from crypto.signatures import (
    bitcoin_message_hash,
    recover_message_signer,
    sign_bitcoin_message,
    verify_bitcoin_message,
)


class TestBitcoinMessageSigning:
    """Test Bitcoin signed-message ECDSA."""

    def setup_method(self):
        """Set up test fixtures."""
        self.private_key = PrivateKey(b'\x42' * 32)
        self.message = b'staking signer'

    def test_message_hash_is_32_bytes(self):
        assert len(bitcoin_message_hash(self.message)) == 32
        assert bitcoin_message_hash(self.message) != bitcoin_message_hash(b'other')

    def test_long_message_length_prefix(self):
        """Test messages of 253 bytes or more use a three-byte length prefix."""
        message = b'\x61' * 300
        expected = sha256(sha256(b'\x18Bitcoin Signed Message:\n' + b'\xfd\x2c\x01' + message))
        assert bitcoin_message_hash(message) == expected

    def test_signature_format(self):
        """Test header byte marks a compressed key."""
        raw = base64.b64decode(sign_bitcoin_message(self.private_key, self.message))
        assert len(raw) == 65
        assert 31 <= raw[0] <= 34

    def test_recover_signer(self):
        """Test public key recovery."""
        signature = sign_bitcoin_message(self.private_key, self.message)
        recovered = recover_message_signer(signature, self.message)
        assert recovered.bytes == self.private_key.public_key().bytes

    def test_verify(self):
        signature = sign_bitcoin_message(self.private_key, self.message)
        assert verify_bitcoin_message(self.private_key.public_key(), signature, self.message)
        assert not verify_bitcoin_message(self.private_key.public_key(), signature, b'tampered')

    def test_malformed_signature(self):
        with pytest.raises(InvalidSignatureError):
            recover_message_signer('not-base64!', self.message)
        with pytest.raises(InvalidSignatureError):
            recover_message_signer(base64.b64encode(b'\x1f' * 10).decode(), self.message)
