"""
Tests for the in-process signing devices
"""

import asyncio

import pytest

from conftest import (
    BIP32_CHILD_0H_XPUB,
    BIP32_MASTER_FINGERPRINT,
    BIP32_SEED_HEX,
)
from crypto.keys import ExtendedKey, seed_to_master_key
from crypto.signatures import verify_bitcoin_message
from device.client import DeviceError, UnsupportedOperationError
from device.software import SoftwareDevice, WatchOnlyDevice
from policy.builder import staking_tx_policy


class TestSoftwareDevice:
    """Test the seed-backed device."""

    def setup_method(self):
        """Set up test fixtures."""
        self.device = SoftwareDevice.from_hex(BIP32_SEED_HEX)

    def test_fingerprint(self):
        assert asyncio.run(self.device.get_master_fingerprint()).hex() == BIP32_MASTER_FINGERPRINT

    def test_extended_pubkey(self):
        assert asyncio.run(self.device.get_extended_pubkey("m/0'")) == BIP32_CHILD_0H_XPUB

    def test_testnet_extended_pubkey(self):
        device = SoftwareDevice.from_hex(BIP32_SEED_HEX, is_testnet=True)
        assert asyncio.run(device.get_extended_pubkey("m/86'/1'/0'")).startswith('tpub')

    def test_sign_message(self):
        """Test the signature verifies against the derived key."""
        path = "m/86'/0'/0'/0/0"
        signature = asyncio.run(self.device.sign_message(b'hello', path))

        expected = seed_to_master_key(bytes.fromhex(BIP32_SEED_HEX)).derive_path(path).public_key
        assert verify_bitcoin_message(expected, signature, b'hello')

    def test_cannot_sign_psbt(self):
        with pytest.raises(UnsupportedOperationError):
            asyncio.run(self.device.sign_psbt('cHNidP8=', None))

    def test_builds_staking_policy(self):
        policy = asyncio.run(staking_tx_policy(self.device))
        xpub = ExtendedKey.from_base58(policy.keys[0].split(']')[1])
        assert policy.keys[0].startswith(f"[{BIP32_MASTER_FINGERPRINT}/86'/0'/0']xpub")
        assert xpub.depth == 3


class TestWatchOnlyDevice:
    """Test the watch-only device."""

    def setup_method(self):
        """Set up test fixtures."""
        self.device = WatchOnlyDevice(bytes.fromhex('f5acc2fd'), {"m/86'/0'/0'": 'xpubA'})

    def test_known_path(self):
        assert asyncio.run(self.device.get_master_fingerprint()) == bytes.fromhex('f5acc2fd')
        assert asyncio.run(self.device.get_extended_pubkey("m/86'/0'/0'")) == 'xpubA'

    def test_unknown_path(self):
        with pytest.raises(DeviceError):
            asyncio.run(self.device.get_extended_pubkey("m/86'/1'/0'"))

    def test_signing_unsupported(self):
        with pytest.raises(UnsupportedOperationError):
            asyncio.run(self.device.sign_message(b'hello', "m/86'/0'/0'/0/0"))
        with pytest.raises(UnsupportedOperationError):
            asyncio.run(self.device.sign_psbt('cHNidP8=', None))

    def test_bad_fingerprint(self):
        with pytest.raises(ValueError):
            WatchOnlyDevice(b'\x00' * 3, {})
