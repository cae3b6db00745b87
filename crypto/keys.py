"""
Key Management and Derivation for the Staking Signer

This module handles private/public key wrappers, BIP32 derivation, extended
key serialization, derivation path parsing and the synthetic extended keys
used to present raw staking keys to a signing device.

References:
- BIP32: https://github.com/bitcoin/bips/blob/master/bip-0032.mediawiki
- BIP86: https://github.com/bitcoin/bips/blob/master/bip-0086.mediawiki
- BIP340: https://github.com/bitcoin/bips/blob/master/bip-0340.mediawiki
"""

import hashlib
import hmac
from enum import Enum
from typing import List, Optional, Union

import base58
from Crypto.Hash import RIPEMD160
from coincurve import PrivateKey as CoinCurvePrivateKey, PublicKey as CoinCurvePublicKey

from .exceptions import (
    InvalidKeyError,
    DerivationError,
)


# Constants for BIP32
BIP32_CURVE_ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141
BIP32_HARDENED_OFFSET = 0x80000000


class Network(Enum):
    """Networks with their extended public key version bytes."""
    MAINNET = 'mainnet'
    TESTNET = 'testnet'

    @property
    def xpub_version(self) -> bytes:
        return bytes.fromhex('0488b21e') if self is Network.MAINNET else bytes.fromhex('043587cf')

    @property
    def xprv_version(self) -> bytes:
        return bytes.fromhex('0488ade4') if self is Network.MAINNET else bytes.fromhex('04358394')

    @classmethod
    def from_testnet_flag(cls, is_testnet: bool) -> 'Network':
        return cls.TESTNET if is_testnet else cls.MAINNET


def sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def hash160(data: bytes) -> bytes:
    """
    Compute HASH160 (RIPEMD160(SHA256(data))).

    Args:
        data: Input data to hash

    Returns:
        20-byte HASH160 digest
    """
    rmd = RIPEMD160.new()
    rmd.update(sha256(data))
    return rmd.digest()


def tagged_hash(tag: str, data: bytes) -> bytes:
    """
    Compute BIP340/341 tagged hash: SHA256(SHA256(tag) + SHA256(tag) + data).

    Args:
        tag: Tag string for the hash
        data: Data to hash

    Returns:
        32-byte tagged hash
    """
    tag_hash = sha256(tag.encode('utf-8'))
    return sha256(tag_hash + tag_hash + data)


class PrivateKey:
    """
    Wrapper for private key operations with BIP32 support.
    """

    def __init__(self, key_bytes: bytes):
        """
        Initialize private key.

        Args:
            key_bytes: 32-byte private key
        """
        if not isinstance(key_bytes, bytes) or len(key_bytes) != 32:
            raise InvalidKeyError("Private key must be 32 bytes")

        key_int = int.from_bytes(key_bytes, 'big')
        if key_int == 0 or key_int >= BIP32_CURVE_ORDER:
            raise InvalidKeyError("Private key out of valid range")

        self._key = CoinCurvePrivateKey(key_bytes)

    @property
    def bytes(self) -> bytes:
        """Get private key as bytes."""
        return self._key.secret

    def public_key(self) -> 'PublicKey':
        """Get corresponding public key."""
        return PublicKey(self._key.public_key)

    def sign_recoverable(self, message_hash: bytes) -> bytes:
        """
        Sign with recovery information.

        Args:
            message_hash: 32-byte message hash to sign

        Returns:
            65-byte recoverable signature (r, s, recovery id)
        """
        if len(message_hash) != 32:
            raise InvalidKeyError("Message hash must be 32 bytes")
        return self._key.sign_recoverable(message_hash, hasher=None)


class PublicKey:
    """
    Wrapper for public key operations.
    """

    def __init__(self, key_data: Union[bytes, CoinCurvePublicKey]):
        """
        Initialize public key.

        Args:
            key_data: Public key bytes (33 or 65 bytes) or CoinCurvePublicKey
        """
        if isinstance(key_data, CoinCurvePublicKey):
            self._key = key_data
            return
        if not isinstance(key_data, bytes):
            raise InvalidKeyError("Public key data must be bytes")
        if len(key_data) not in (33, 65):
            raise InvalidKeyError("Public key must be 33 or 65 bytes")
        try:
            self._key = CoinCurvePublicKey(key_data)
        except ValueError as e:
            raise InvalidKeyError(f"Failed to create public key: {e}") from e

    @property
    def bytes(self) -> bytes:
        """Get compressed public key as bytes."""
        return self._key.format(compressed=True)

    @property
    def hex(self) -> str:
        return self.bytes.hex()

    @property
    def x_only(self) -> bytes:
        """Get x-only public key for Taproot (32 bytes)."""
        return self.bytes[1:]

    def combine(self, other: 'PublicKey') -> 'PublicKey':
        return PublicKey(CoinCurvePublicKey.combine_keys([self._key, other._key]))


class ExtendedKey:
    """
    BIP32 Extended Key for hierarchical deterministic key derivation.
    """

    def __init__(self, key: Union[PrivateKey, PublicKey], chain_code: bytes,
                 depth: int = 0, fingerprint: bytes = b'\x00\x00\x00\x00',
                 child_number: int = 0):
        """
        Initialize extended key.

        Args:
            key: Private or public key
            chain_code: 32-byte chain code for derivation
            depth: Depth in derivation tree
            fingerprint: Parent fingerprint
            child_number: Child number
        """
        if not isinstance(chain_code, bytes) or len(chain_code) != 32:
            raise DerivationError("Chain code must be 32 bytes")
        if not isinstance(fingerprint, bytes) or len(fingerprint) != 4:
            raise DerivationError("Fingerprint must be 4 bytes")
        if depth < 0 or depth > 255:
            raise DerivationError("Depth must be 0-255")

        self.key = key
        self.chain_code = chain_code
        self.depth = depth
        self.fingerprint = fingerprint
        self.child_number = child_number

    @property
    def is_private(self) -> bool:
        """Check if this is a private extended key."""
        return isinstance(self.key, PrivateKey)

    @property
    def public_key(self) -> PublicKey:
        return self.key.public_key() if self.is_private else self.key

    @property
    def key_fingerprint(self) -> bytes:
        """First 4 bytes of HASH160 of this key's public key."""
        return hash160(self.public_key.bytes)[:4]

    def neuter(self) -> 'ExtendedKey':
        """Return the public extended key."""
        return ExtendedKey(self.public_key, self.chain_code, self.depth,
                           self.fingerprint, self.child_number)

    def derive_child(self, index: int) -> 'ExtendedKey':
        """
        Derive child key at given index.

        Args:
            index: Child index (use index >= 2^31 for hardened derivation)

        Returns:
            Extended child key
        """
        if not 0 <= index <= 0xffffffff:
            raise DerivationError(f"Child index out of range: {index}")

        hardened = index >= BIP32_HARDENED_OFFSET
        if hardened and not self.is_private:
            raise DerivationError("Cannot derive hardened child from public key")

        if hardened:
            data = b'\x00' + self.key.bytes + index.to_bytes(4, 'big')
        else:
            data = self.public_key.bytes + index.to_bytes(4, 'big')

        I = hmac.new(self.chain_code, data, hashlib.sha512).digest()
        I_L, I_R = I[:32], I[32:]

        I_L_int = int.from_bytes(I_L, 'big')
        if I_L_int == 0 or I_L_int >= BIP32_CURVE_ORDER:
            # Invalid key, BIP32 says proceed with the next index
            return self.derive_child(index + 1)

        if self.is_private:
            child_int = (int.from_bytes(self.key.bytes, 'big') + I_L_int) % BIP32_CURVE_ORDER
            if child_int == 0:
                return self.derive_child(index + 1)
            child_key = PrivateKey(child_int.to_bytes(32, 'big'))
        else:
            tweak_point = PrivateKey(I_L).public_key()
            child_key = self.key.combine(tweak_point)

        return ExtendedKey(
            key=child_key,
            chain_code=I_R,
            depth=self.depth + 1,
            fingerprint=self.key_fingerprint,
            child_number=index
        )

    def derive_path(self, path: Union[str, List[int]]) -> 'ExtendedKey':
        """
        Derive key from derivation path.

        Args:
            path: Derivation path like "m/86'/0'/0'" or a list of indices

        Returns:
            Extended key at path
        """
        indices = parse_derivation_path(path) if isinstance(path, str) else path
        current_key = self
        for index in indices:
            current_key = current_key.derive_child(index)
        return current_key

    def serialize(self, network: Network = Network.MAINNET) -> bytes:
        """Serialize to the 78-byte BIP32 encoding."""
        if self.is_private:
            version = network.xprv_version
            key_data = b'\x00' + self.key.bytes
        else:
            version = network.xpub_version
            key_data = self.key.bytes
        return (version + bytes([self.depth]) + self.fingerprint
                + self.child_number.to_bytes(4, 'big') + self.chain_code + key_data)

    def to_base58(self, network: Network = Network.MAINNET) -> str:
        return base58.b58encode_check(self.serialize(network)).decode('ascii')

    @classmethod
    def from_base58(cls, encoded: str) -> 'ExtendedKey':
        """
        Parse a base58check extended public key (xpub/tpub).

        Args:
            encoded: Extended key string

        Returns:
            Public ExtendedKey
        """
        try:
            raw = base58.b58decode_check(encoded)
        except ValueError as e:
            raise InvalidKeyError(f"Invalid extended key checksum: {e}") from e
        if len(raw) != 78:
            raise InvalidKeyError(f"Extended key must be 78 bytes, got {len(raw)}")
        if raw[:4] not in (Network.MAINNET.xpub_version, Network.TESTNET.xpub_version):
            raise InvalidKeyError(f"Unsupported extended key version: {raw[:4].hex()}")
        return cls(
            key=PublicKey(raw[45:78]),
            chain_code=raw[13:45],
            depth=raw[4],
            fingerprint=raw[5:9],
            child_number=int.from_bytes(raw[9:13], 'big')
        )


def seed_to_master_key(seed: bytes) -> ExtendedKey:
    """
    Generate master extended key from seed.

    Args:
        seed: BIP32 seed (16 to 64 bytes)

    Returns:
        Master extended private key
    """
    if len(seed) < 16 or len(seed) > 64:
        raise DerivationError("Seed must be 16-64 bytes")

    I = hmac.new(b"Bitcoin seed", seed, hashlib.sha512).digest()
    I_L, I_R = I[:32], I[32:]

    I_L_int = int.from_bytes(I_L, 'big')
    if I_L_int == 0 or I_L_int >= BIP32_CURVE_ORDER:
        raise DerivationError("Invalid master key generated")

    return ExtendedKey(key=PrivateKey(I_L), chain_code=I_R)


def create_extended_pubkey(raw_key: bytes, network: Network = Network.MAINNET) -> str:
    """
    Present a raw public key as an extended public key string.

    The result has depth, parent fingerprint and child number set to zero and
    uses SHA-256 of the raw key as chain code. It carries no derivation
    capability; devices use it only to display the key.

    Args:
        raw_key: 32-byte x-only key (prefixed with 0x02) or 33-byte compressed key
        network: Selects xpub or tpub version bytes

    Returns:
        Base58check extended key string
    """
    if len(raw_key) == 32:
        key_data = b'\x02' + raw_key
    elif len(raw_key) == 33:
        key_data = raw_key
    else:
        raise InvalidKeyError(f"Raw key must be 32 or 33 bytes, got {len(raw_key)}")

    payload = (network.xpub_version + b'\x00' + b'\x00\x00\x00\x00'
               + b'\x00\x00\x00\x00' + sha256(raw_key) + key_data)
    return base58.b58encode_check(payload).decode('ascii')


def parse_derivation_path(path: str) -> List[int]:
    """
    Parse derivation path into list of integers.

    Args:
        path: Derivation path like "m/86'/0'/0'"; ' or h marks hardened levels

    Returns:
        List of derivation indices
    """
    if path == 'm':
        return []
    if not path.startswith('m/'):
        raise DerivationError("Path must start with 'm/'")

    indices = []
    for part in path[2:].split('/'):
        if not part:
            continue
        hardened = part[-1] in ("'", 'h', 'H')
        digits = part[:-1] if hardened else part
        if not digits.isdigit():
            raise DerivationError(f"Invalid path level: {part}")
        index = int(digits)
        if index >= BIP32_HARDENED_OFFSET:
            raise DerivationError(f"Path level out of range: {part}")
        indices.append(index + BIP32_HARDENED_OFFSET if hardened else index)

    return indices


def format_derivation_path(indices: List[int]) -> str:
    """Render indices as "m/86'/0'/0'"."""
    parts = ['m']
    for index in indices:
        if index >= BIP32_HARDENED_OFFSET:
            parts.append(f"{index - BIP32_HARDENED_OFFSET}'")
        else:
            parts.append(str(index))
    return '/'.join(parts)


def default_derivation_path(is_testnet: bool = False) -> str:
    """Default BIP86 account path used for staking keys."""
    return f"m/86'/{1 if is_testnet else 0}'/0'"


def format_key_origin(fingerprint: Union[bytes, str], path: str, key: str) -> str:
    """
    Build a key-origin string "[fingerprint/suffix]key".

    Args:
        fingerprint: 4-byte fingerprint or its hex
        path: Derivation path starting with "m/"
        key: Extended key string

    Returns:
        Key-origin annotated key
    """
    fingerprint_hex = fingerprint.hex() if isinstance(fingerprint, bytes) else fingerprint
    if len(fingerprint_hex) != 8:
        raise InvalidKeyError(f"Fingerprint must be 4 bytes: {fingerprint_hex}")
    if not path.startswith('m/'):
        raise DerivationError("Path must start with 'm/'")
    return f"[{fingerprint_hex}/{path[2:]}]{key}"


def xonly_from_pubkey(pubkey: bytes) -> bytes:
    """Drop the parity byte of a compressed key; pass 32-byte keys through."""
    if len(pubkey) == 32:
        return pubkey
    if len(pubkey) == 33 and pubkey[0] in (2, 3):
        return pubkey[1:]
    raise InvalidKeyError(f"Cannot take x-only form of {len(pubkey)}-byte key")
