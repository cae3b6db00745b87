"""
Staking Signer - Device Client Interface

This module defines the asynchronous interface of a signing device. The
transport and command framing live behind implementations of DeviceClient.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Tuple, TYPE_CHECKING

if TYPE_CHECKING:
    from policy.wallet_policy import WalletPolicy


class DeviceError(Exception):
    """Base exception for signing device failures."""
    pass


class UnsupportedOperationError(DeviceError):
    """Raised when a device cannot perform the requested operation."""
    pass


@dataclass(frozen=True)
class PartialSignature:
    """
    Signature returned by a device for one input.

    Attributes:
        pubkey: Signing key (32-byte x-only for Taproot)
        signature: Schnorr signature (64 bytes, or 65 with a sighash byte)
        tapleaf_hash: Leaf hash for script-path signatures
    """
    pubkey: bytes
    signature: bytes
    tapleaf_hash: Optional[bytes] = None


class DeviceClient(ABC):
    """
    Asynchronous signing device.

    Calls are awaited one at a time; a client instance is not safe for
    concurrent use.
    """

    @abstractmethod
    async def get_master_fingerprint(self) -> bytes:
        """Return the 4-byte master key fingerprint."""

    @abstractmethod
    async def get_extended_pubkey(self, path: str, display: bool = False) -> str:
        """Return the base58 extended public key at path."""

    @abstractmethod
    async def sign_psbt(self, psbt_base64: str, policy: 'WalletPolicy',
                        wallet_hmac: Optional[bytes] = None) -> List[Tuple[int, PartialSignature]]:
        """Sign a PSBT under a wallet policy; returns (input index, signature) pairs."""

    @abstractmethod
    async def sign_message(self, message: bytes, path: str) -> str:
        """Sign a message with the key at path; returns a base64 signature."""
