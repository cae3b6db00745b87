"""
Pytest configuration and fixtures for Staking Signer tests.
"""

import base64

import pytest

from device.client import DeviceClient, PartialSignature


# Testnet slashing-path PSBT (version 0): one P2TR input spending a leaf with
# a staker key, a finality provider key and a 6-of-9 covenant multisig
SLASHING_PSBT_B64 = (
    'cHNidP8BAH0CAAAAAZUPGfxRcPueN3/UdNQC64mF3lAumoEi9Gv6AgvbdVycAAAAAAD/////AsQJAAAAAAAAFgAU'
    'W+EmJNCKK0JAldfAciHDNFDRS/EEpgAAAAAAACJRICyVutUKY9E6qBjfjktoZBga2/RyCoiq+OPBI1ugik2fAAAA'
    'AAABAStQwwAAAAAAACJRIEOj7UvRXfRV9er0SUNeReHNqaiqtOoEhmW60JCFUoUyQhXAUJKbdMGgSVS3i0tgNel6'
    'XgeKWg8o7JbVR7/ums6AOsCJtgX5iDHD5SbZ6yF5ZRRSk4qMD/f16u7MthJR1dRt6/15ASDcjS+e/wxPTb3gcKSO'
    'Mw78kItip2ZWjZHmWPKEsyS4eK0gH5MjVzLmTKwzVprRw9vwQTgsO3dPz7BTO5sx1MKna/mtIAruBQmxbbccmZI4'
    'pIJ9uUVSaFmxPJVIerRnJTV8mp8lrCARPDoyqdMgtyGQoEoCCg2zl27zaXJnMljpo4o2Tz3DsLogF5Ic8VbMtOc9'
    'Qo+ZbtEbJFMT434nyXisTSzCHspGcuS6IDu5PfyLYYh9dx82MOmmPpfLr8/MeFVqR034OjGg74mcuiBAr69HxP+l'
    'behkENjke6ortvBLYE9OokMjc33cP+CS37ogeacf/XHFA+8uL5G8z8j82nlG9GU87w2fPd4geV7zufC6INIfr3jG'
    'dRoNOOa9gCi5B/8H6ahppD/IN9az+N/2EZo2uiD1GZ764/KLuCR2Fjp+RYx61EXZv/sGgtENO9sstB+Ojrog+p2I'
    'LUX0BgvbgEIYOCjNh1RPHqmXOA5YbKt31f1phze6VpzAARcgUJKbdMGgSVS3i0tgNel6XgeKWg8o7JbVR7/ums6A'
    'OsAAAAA='
)

SLASHING_LEAF_HASH = '4ff63c1966acfc9afcfd922449fee7696a38ac3926ce096db9633fdd0430ca9b'
SLASHING_PREV_TXID = '9c5c75db0b02fa6bf422819a2e50de8589eb02d474d47f379efb7051fc190f95'
STAKER_PK = 'dc8d2f9eff0c4f4dbde070a48e330efc908b62a766568d91e658f284b324b878'
FINALITY_PROVIDER_PK = '1f93235732e64cac33569ad1c3dbf041382c3b774fcfb0533b9b31d4c2a76bf9'
COVENANT_PKS = [
    '0aee0509b16db71c999238a4827db945526859b13c95487ab46725357c9a9f25',
    '113c3a32a9d320b72190a04a020a0db3976ef36972673258e9a38a364f3dc3b0',
    '17921cf156ccb4e73d428f996ed11b245313e37e27c978ac4d2cc21eca4672e4',
    '3bb93dfc8b61887d771f3630e9a63e97cbafcfcc78556a474df83a31a0ef899c',
    '40afaf47c4ffa56de86410d8e47baa2bb6f04b604f4ea24323737ddc3fe092df',
    '79a71ffd71c503ef2e2f91bccfc8fcda7946f4653cef0d9f3dde20795ef3b9f0',
    'd21faf78c6751a0d38e6bd8028b907ff07e9a869a43fc837d6b3f8dff6119a36',
    'f5199efae3f28bb82476163a7e458c7ad445d9bffb0682d10d3bdb2cb41f8e8e',
    'fa9d882d45f4060bdb8042183828cd87544f1ea997380e586cab77d5fd698737',
]
COVENANT_THRESHOLD = 6

# BIP32 test vector 1
BIP32_SEED_HEX = '000102030405060708090a0b0c0d0e0f'
BIP32_MASTER_FINGERPRINT = '3442193e'
BIP32_MASTER_XPUB = (
    'xpub661MyMwAqRbcFtXgS5sYJABqqG9YLmC4Q1Rdap9gSE8NqtwybGhePY2gZ29ESFjqJo'
    'Cu1Rupje8YtGqsefD265TMg7usUDFdp6W1EGMcet8'
)
BIP32_CHILD_0H_XPUB = (
    'xpub68Gmy5EdvgibQVfPdqkBBCHxA5htiqg55crXYuXoQRKfDBFA1WEjWgP6LHhwBZeNK1'
    'VTsfTFUHCdrfp1bgwQ9xv5ski8PX9rL2dZXvgGDnw'
)

DEVICE_FINGERPRINT = bytes.fromhex('f5acc2fd')
DEVICE_XPUB = BIP32_CHILD_0H_XPUB


class FakeDevice(DeviceClient):
    """In-memory device recording every call it receives."""

    def __init__(self, fingerprint: bytes = DEVICE_FINGERPRINT, xpub: str = DEVICE_XPUB,
                 signatures=None, message_signature: str = 'c2lnbmF0dXJl'):
        self.fingerprint = fingerprint
        self.xpub = xpub
        self.signatures = list(signatures or [])
        self.message_signature = message_signature
        self.calls = []

    async def get_master_fingerprint(self) -> bytes:
        self.calls.append(('get_master_fingerprint',))
        return self.fingerprint

    async def get_extended_pubkey(self, path: str, display: bool = False) -> str:
        self.calls.append(('get_extended_pubkey', path))
        return self.xpub

    async def sign_psbt(self, psbt_base64, policy, wallet_hmac=None):
        self.calls.append(('sign_psbt', psbt_base64, policy, wallet_hmac))
        return self.signatures

    async def sign_message(self, message: bytes, path: str) -> str:
        self.calls.append(('sign_message', message, path))
        return self.message_signature


@pytest.fixture
def slashing_psbt_bytes():
    """Raw bytes of the testnet slashing PSBT."""
    return base64.b64decode(SLASHING_PSBT_B64)


@pytest.fixture
def fake_device():
    """Device returning a fixed fingerprint and account xpub."""
    return FakeDevice()


@pytest.fixture
def signature_device():
    """Factory for devices returning prepared signatures."""
    def make(signatures):
        return FakeDevice(signatures=[
            (index, PartialSignature(pubkey, signature, leaf_hash))
            for index, pubkey, signature, leaf_hash in signatures
        ])
    return make
