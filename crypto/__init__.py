"""
Staking Signer - Cryptographic Operations Module

This module provides the cryptographic utilities used by the staking signer:
- BIP32 key derivation and extended key serialization
- Synthetic extended keys for displaying raw staking keys
- Tagged hashes for Taproot
- Bitcoin message signatures

Dependencies:
- coincurve: Fast secp256k1 operations
- pycryptodome: RIPEMD160 for HASH160
- base58: Base58check encoding of extended keys
"""

from .exceptions import (
    CryptoError,
    InvalidKeyError,
    InvalidSignatureError,
    DerivationError,
)
from .keys import (
    ExtendedKey,
    Network,
    PrivateKey,
    PublicKey,
    create_extended_pubkey,
    default_derivation_path,
    format_derivation_path,
    format_key_origin,
    hash160,
    parse_derivation_path,
    seed_to_master_key,
    tagged_hash,
)
from .signatures import (
    sign_bitcoin_message,
    verify_bitcoin_message,
)

__all__ = [
    'CryptoError',
    'InvalidKeyError',
    'InvalidSignatureError',
    'DerivationError',
    'ExtendedKey',
    'Network',
    'PrivateKey',
    'PublicKey',
    'create_extended_pubkey',
    'default_derivation_path',
    'format_derivation_path',
    'format_key_origin',
    'hash160',
    'parse_derivation_path',
    'seed_to_master_key',
    'tagged_hash',
    'sign_bitcoin_message',
    'verify_bitcoin_message',
]
