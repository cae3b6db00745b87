"""
Staking Signer - Signing Orchestrator

This module sends a PSBT and its wallet policy to a device and attaches the
returned signatures to the PSBT. Signatures are not re-validated here.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from crypto.keys import xonly_from_pubkey
from policy.wallet_policy import WalletPolicy
from psbt.psbtv2 import PsbtV2
from scripts.taproot import get_taproot_leaf

from .client import DeviceClient, DeviceError


logger = logging.getLogger(__name__)

DEFAULT_MESSAGE_PATH = "m/86'/0'/0'/0/0"


class MessageSigningProtocol(Enum):
    ECDSA = 'ECDSA'
    BIP322 = 'BIP322'


@dataclass(frozen=True)
class SignedMessage:
    signature: str
    protocol: MessageSigningProtocol

    def to_dict(self):
        return {'signature': self.signature, 'protocol': self.protocol.value}


async def sign_psbt(device: DeviceClient, psbt: Union[PsbtV2, bytes, str],
                    policy: WalletPolicy, wallet_hmac: Optional[bytes] = None) -> PsbtV2:
    """
    Have the device sign a PSBT and attach its signatures.

    Whether signatures are script-path or key-path is decided once, from the
    presence of a leaf script on the first input.

    Args:
        device: Connected signing device
        psbt: PsbtV2, raw PSBT bytes or base64 string
        policy: Wallet policy the device signs under
        wallet_hmac: Registration HMAC for registered policies

    Returns:
        A copy of the PSBT carrying the signatures

    Raises:
        DeviceError: If a script-path signature comes back without a leaf hash
    """
    if isinstance(psbt, PsbtV2):
        signed = psbt.copy()
    elif isinstance(psbt, str):
        signed = PsbtV2.from_base64(psbt)
    else:
        signed = PsbtV2.deserialize(psbt)

    signatures = await device.sign_psbt(signed.to_base64(), policy, wallet_hmac)
    has_script = get_taproot_leaf(signed) is not None
    logger.info(
        f"Device returned {len(signatures)} signatures for policy '{policy.name}' "
        f"({'script' if has_script else 'key'} path)"
    )

    for input_index, partial in signatures:
        if has_script:
            if partial.tapleaf_hash is None:
                raise DeviceError(f"Script-path signature for input {input_index} has no leaf hash")
            signed.set_input_tap_script_sig(
                input_index, xonly_from_pubkey(partial.pubkey), partial.tapleaf_hash,
                partial.signature
            )
        else:
            signed.set_input_tap_key_sig(input_index, partial.signature)

    return signed


async def sign_message_ecdsa(device: DeviceClient, message: Union[str, bytes],
                             derivation_path: str = DEFAULT_MESSAGE_PATH) -> SignedMessage:
    """
    Sign a message with the device's ECDSA message signing.

    Args:
        device: Connected signing device
        message: Message text or bytes
        derivation_path: Signing key path (default m/86'/0'/0'/0/0)

    Returns:
        SignedMessage with the base64 signature
    """
    if isinstance(message, str):
        message = message.encode('utf-8')
    signature = await device.sign_message(message, derivation_path)
    return SignedMessage(signature=signature, protocol=MessageSigningProtocol.ECDSA)
