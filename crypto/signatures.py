"""
Message Signatures for the Staking Signer

This module implements Bitcoin signed-message ECDSA signatures, the format
devices return for message signing requests.
"""

import base64
import binascii

from coincurve import PublicKey as CoinCurvePublicKey

from psbt.utils import serialize_compact_size

from .exceptions import InvalidSignatureError
from .keys import PrivateKey, PublicKey, sha256


MESSAGE_MAGIC = b"\x18Bitcoin Signed Message:\n"


def bitcoin_message_hash(message: bytes) -> bytes:
    """
    Hash a message the way Bitcoin message signing does.

    Args:
        message: Raw message bytes

    Returns:
        Double SHA256 of the magic prefix, length and message
    """
    return sha256(sha256(MESSAGE_MAGIC + serialize_compact_size(len(message)) + message))


def sign_bitcoin_message(private_key: PrivateKey, message: bytes) -> str:
    """
    Sign a message with a compressed-key recoverable signature.

    Args:
        private_key: Private key for signing
        message: Message bytes

    Returns:
        Base64 of header byte (31 + recovery id) followed by r and s
    """
    recoverable = private_key.sign_recoverable(bitcoin_message_hash(message))
    header = 31 + recoverable[64]
    return base64.b64encode(bytes([header]) + recoverable[:64]).decode('ascii')


def recover_message_signer(signature: str, message: bytes) -> PublicKey:
    """
    Recover the public key that produced a Bitcoin message signature.

    Args:
        signature: Base64 signature as returned by sign_bitcoin_message
        message: Message bytes

    Returns:
        Recovered public key

    Raises:
        InvalidSignatureError: If the signature is malformed
    """
    try:
        raw = base64.b64decode(signature, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidSignatureError(f"Signature is not valid base64: {e}") from e
    if len(raw) != 65:
        raise InvalidSignatureError(f"Signature must be 65 bytes, got {len(raw)}")

    recovery_id = (raw[0] - 27) & 3
    try:
        recovered = CoinCurvePublicKey.from_signature_and_message(
            raw[1:] + bytes([recovery_id]), bitcoin_message_hash(message), hasher=None
        )
    except ValueError as e:
        raise InvalidSignatureError(f"Public key recovery failed: {e}") from e
    return PublicKey(recovered)


def verify_bitcoin_message(public_key: PublicKey, signature: str, message: bytes) -> bool:
    """Check that signature over message recovers to public_key."""
    try:
        return recover_message_signer(signature, message).bytes == public_key.bytes
    except InvalidSignatureError:
        return False
