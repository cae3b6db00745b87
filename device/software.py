"""
Staking Signer - Software Devices

In-process DeviceClient implementations: a seed-backed device that derives
real BIP32 keys and signs messages, and a watch-only device that only
reports a fingerprint and known extended public keys.
"""

import logging
from typing import Dict, List, Optional, Tuple

from crypto.keys import ExtendedKey, Network, seed_to_master_key
from crypto.signatures import sign_bitcoin_message

from .client import DeviceClient, PartialSignature, UnsupportedOperationError


class SoftwareDevice(DeviceClient):
    """
    Device backed by a BIP32 seed held in memory.

    PSBT signing is not available; use a hardware device for that.
    """

    def __init__(self, seed: bytes, is_testnet: bool = False):
        """
        Initialize software device.

        Args:
            seed: BIP32 seed (16 to 64 bytes)
            is_testnet: Encode extended keys as tpub
        """
        self._master = seed_to_master_key(seed)
        self.network = Network.from_testnet_flag(is_testnet)
        self.logger = logging.getLogger(__name__)

    @classmethod
    def from_hex(cls, seed_hex: str, is_testnet: bool = False) -> 'SoftwareDevice':
        return cls(bytes.fromhex(seed_hex), is_testnet)

    def _derive(self, path: str) -> ExtendedKey:
        return self._master.derive_path(path)

    async def get_master_fingerprint(self) -> bytes:
        return self._master.key_fingerprint

    async def get_extended_pubkey(self, path: str, display: bool = False) -> str:
        self.logger.debug(f"Deriving extended public key at {path}")
        return self._derive(path).neuter().to_base58(self.network)

    async def sign_psbt(self, psbt_base64: str, policy,
                        wallet_hmac: Optional[bytes] = None) -> List[Tuple[int, PartialSignature]]:
        raise UnsupportedOperationError("Software device cannot sign PSBTs")

    async def sign_message(self, message: bytes, path: str) -> str:
        self.logger.debug(f"Signing {len(message)}-byte message with key at {path}")
        return sign_bitcoin_message(self._derive(path).key, message)


class WatchOnlyDevice(DeviceClient):
    """Device that knows a fingerprint and a set of account xpubs, nothing else."""

    def __init__(self, fingerprint: bytes, xpubs: Dict[str, str]):
        if len(fingerprint) != 4:
            raise ValueError("Fingerprint must be 4 bytes")
        self.fingerprint = fingerprint
        self.xpubs = dict(xpubs)

    async def get_master_fingerprint(self) -> bytes:
        return self.fingerprint

    async def get_extended_pubkey(self, path: str, display: bool = False) -> str:
        try:
            return self.xpubs[path]
        except KeyError:
            raise UnsupportedOperationError(f"No extended public key known for {path}")

    async def sign_psbt(self, psbt_base64: str, policy,
                        wallet_hmac: Optional[bytes] = None) -> List[Tuple[int, PartialSignature]]:
        raise UnsupportedOperationError("Watch-only device cannot sign")

    async def sign_message(self, message: bytes, path: str) -> str:
        raise UnsupportedOperationError("Watch-only device cannot sign")
