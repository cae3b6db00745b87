"""
Staking Signer - Policy Builder

This module builds the wallet policies of the staking spending paths:
stake transfer, slashing consent, unbonding and timelock withdrawal.

Each builder validates its parameters, then fetches the master fingerprint
and the account extended public key from the device, formats raw staking
keys as synthetic extended keys and assembles the descriptor template.

Key 0 of every script-path policy is the leaf hash presented as a key. Its
origin carries a magic fingerprint telling the device whether to display
the leaf hash or only check it.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence, Tuple, Union

from crypto.keys import (
    Network,
    create_extended_pubkey,
    default_derivation_path,
    format_key_origin,
)
from device.client import DeviceClient

from .exceptions import (
    InvalidPolicyNameError,
    InvalidThresholdError,
    InvalidTimelockError,
    MissingCovenantKeysError,
    PolicyValidationError,
    ThresholdExceedsKeysError,
)
from .wallet_policy import WalletPolicy


logger = logging.getLogger(__name__)

KeyLike = Union[bytes, str]


class MagicCode(Enum):
    """Fingerprints with a special meaning to the signing device."""
    LEAFHASH_DISPLAY_FP = '69846d00'
    LEAFHASH_CHECK_ONLY_FP = '3b9f9680'
    FINALITY_PUB_FP = 'ff119473'


class PolicyName:
    """Policy names shown on the device."""
    STAKE_TRANSFER = 'Stake Transfer'
    CONSENT_TO_SLASHING = 'Consent to slashing'
    STAKE_STEP_1 = 'Stake / Step 1'
    STAKE_STEP_2 = 'Stake / Step 2'
    UNBOND = 'Unbond'
    WITHDRAW = 'Withdraw'


SLASHING_POLICY_NAMES = (
    PolicyName.CONSENT_TO_SLASHING,
    PolicyName.STAKE_STEP_1,
    PolicyName.STAKE_STEP_2,
)


def _to_bytes(value: KeyLike, what: str) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    try:
        return bytes.fromhex(value)
    except (TypeError, ValueError) as e:
        raise PolicyValidationError(f"{what} is not valid hex: {value!r}") from e


@dataclass(frozen=True)
class SlashingParams:
    """Parameters of the slashing-consent path."""
    leaf_hash: bytes
    finality_provider_pk: bytes
    covenant_threshold: int
    covenant_pks: Tuple[bytes, ...] = field(default_factory=tuple)

    def __post_init__(self):
        object.__setattr__(self, 'leaf_hash', _to_bytes(self.leaf_hash, 'leaf_hash'))
        object.__setattr__(self, 'finality_provider_pk',
                           _to_bytes(self.finality_provider_pk, 'finality_provider_pk'))
        object.__setattr__(self, 'covenant_pks',
                           tuple(_to_bytes(pk, 'covenant_pk') for pk in self.covenant_pks or ()))


@dataclass(frozen=True)
class UnbondingParams:
    """Parameters of the unbonding path."""
    leaf_hash: bytes
    covenant_threshold: int
    covenant_pks: Tuple[bytes, ...] = field(default_factory=tuple)

    def __post_init__(self):
        object.__setattr__(self, 'leaf_hash', _to_bytes(self.leaf_hash, 'leaf_hash'))
        object.__setattr__(self, 'covenant_pks',
                           tuple(_to_bytes(pk, 'covenant_pk') for pk in self.covenant_pks or ()))


@dataclass(frozen=True)
class TimelockParams:
    """Parameters of the timelock withdrawal path."""
    leaf_hash: bytes
    timelock_blocks: int

    def __post_init__(self):
        object.__setattr__(self, 'leaf_hash', _to_bytes(self.leaf_hash, 'leaf_hash'))


def validate_covenant(threshold: int, covenant_pks: Sequence[bytes]) -> None:
    """
    Check the covenant threshold against the covenant keys.

    Args:
        threshold: Required number of covenant signatures
        covenant_pks: Covenant public keys

    Raises:
        InvalidThresholdError: If threshold < 1
        MissingCovenantKeysError: If there are no covenant keys
        ThresholdExceedsKeysError: If there are fewer keys than threshold
    """
    if isinstance(threshold, bool) or not isinstance(threshold, int) or threshold < 1:
        raise InvalidThresholdError(threshold)
    if not covenant_pks:
        raise MissingCovenantKeysError(0)
    if len(covenant_pks) < threshold:
        raise ThresholdExceedsKeysError(len(covenant_pks), threshold)


def validate_timelock(timelock_blocks: int) -> None:
    if isinstance(timelock_blocks, bool) or not isinstance(timelock_blocks, int):
        raise InvalidTimelockError(f"Timelock must be an integer block count: {timelock_blocks!r}")
    if timelock_blocks < 0:
        raise InvalidTimelockError(f"Timelock cannot be negative: {timelock_blocks}")


async def _prepare(device: DeviceClient, derivation_path: str) -> Tuple[str, str]:
    """Fetch (master fingerprint hex, account xpub) from the device."""
    fingerprint = await device.get_master_fingerprint()
    extended_pubkey = await device.get_extended_pubkey(derivation_path)
    if isinstance(fingerprint, (bytes, bytearray)):
        fingerprint = bytes(fingerprint).hex()
    logger.debug(f"Device fingerprint {fingerprint} for path {derivation_path}")
    return fingerprint, extended_pubkey


def _leaf_hash_key(leaf_hash: bytes, derivation_path: str, display_leaf_hash: bool,
                   network: Network) -> str:
    magic = (MagicCode.LEAFHASH_DISPLAY_FP if display_leaf_hash
             else MagicCode.LEAFHASH_CHECK_ONLY_FP)
    return format_key_origin(magic.value, derivation_path,
                             create_extended_pubkey(leaf_hash, network))


def _multi_a(threshold: int, first_index: int, count: int) -> str:
    placeholders = ','.join(f"@{i}/**" for i in range(first_index, first_index + count))
    return f"multi_a({threshold},{placeholders})"


async def staking_tx_policy(device: DeviceClient, derivation_path: Optional[str] = None,
                            is_testnet: bool = False) -> WalletPolicy:
    """
    Build the key-path policy used to sign the staking transaction.

    Args:
        device: Connected signing device
        derivation_path: Account path, defaults to m/86'/0'/0' (m/86'/1'/0' on testnet)
        is_testnet: Use testnet key encoding and default path

    Returns:
        WalletPolicy 'Stake Transfer' with template tr(@0/**)
    """
    derivation_path = derivation_path or default_derivation_path(is_testnet)
    fingerprint, extended_pubkey = await _prepare(device, derivation_path)

    keys = [format_key_origin(fingerprint, derivation_path, extended_pubkey)]
    return WalletPolicy(PolicyName.STAKE_TRANSFER, 'tr(@0/**)', keys)


async def slashing_path_policy(device: DeviceClient, params: SlashingParams,
                               policy_name: str = PolicyName.CONSENT_TO_SLASHING,
                               derivation_path: Optional[str] = None,
                               display_leaf_hash: bool = True,
                               is_testnet: bool = False) -> WalletPolicy:
    """
    Build the slashing-consent policy.

    Args:
        device: Connected signing device
        params: Leaf hash, finality provider key, covenant keys and threshold
        policy_name: One of 'Consent to slashing', 'Stake / Step 1', 'Stake / Step 2'
        derivation_path: Account path, defaults per network
        display_leaf_hash: Ask the device to display the leaf hash (else check only)
        is_testnet: Use testnet key encoding and default path

    Returns:
        WalletPolicy with template
        tr(@0/**,and_v(pk_k(@1/**),and_v(pk_k(@2/**),multi_a(T,@3/**,...))))

    Raises:
        PolicyValidationError: Before any device call, for invalid parameters
    """
    if policy_name not in SLASHING_POLICY_NAMES:
        raise InvalidPolicyNameError(f"Unsupported slashing policy name: {policy_name}")
    validate_covenant(params.covenant_threshold, params.covenant_pks)

    network = Network.from_testnet_flag(is_testnet)
    derivation_path = derivation_path or default_derivation_path(is_testnet)
    fingerprint, extended_pubkey = await _prepare(device, derivation_path)

    keys: List[str] = [
        _leaf_hash_key(params.leaf_hash, derivation_path, display_leaf_hash, network),
        format_key_origin(fingerprint, derivation_path, extended_pubkey),
        format_key_origin(MagicCode.FINALITY_PUB_FP.value, derivation_path,
                          create_extended_pubkey(params.finality_provider_pk, network)),
    ]
    keys.extend(create_extended_pubkey(pk, network) for pk in params.covenant_pks)

    multi_a = _multi_a(params.covenant_threshold, 3, len(params.covenant_pks))
    template = f"tr(@0/**,and_v(pk_k(@1/**),and_v(pk_k(@2/**),{multi_a})))"
    return WalletPolicy(policy_name, template, keys)


async def unbonding_path_policy(device: DeviceClient, params: UnbondingParams,
                                derivation_path: Optional[str] = None,
                                display_leaf_hash: bool = True,
                                is_testnet: bool = False) -> WalletPolicy:
    """
    Build the unbonding policy.

    Returns:
        WalletPolicy 'Unbond' with template tr(@0/**,and_v(pk_k(@1/**),multi_a(T,@2/**,...)))
    """
    validate_covenant(params.covenant_threshold, params.covenant_pks)

    network = Network.from_testnet_flag(is_testnet)
    derivation_path = derivation_path or default_derivation_path(is_testnet)
    fingerprint, extended_pubkey = await _prepare(device, derivation_path)

    keys: List[str] = [
        _leaf_hash_key(params.leaf_hash, derivation_path, display_leaf_hash, network),
        format_key_origin(fingerprint, derivation_path, extended_pubkey),
    ]
    keys.extend(create_extended_pubkey(pk, network) for pk in params.covenant_pks)

    multi_a = _multi_a(params.covenant_threshold, 2, len(params.covenant_pks))
    template = f"tr(@0/**,and_v(pk_k(@1/**),{multi_a}))"
    return WalletPolicy(PolicyName.UNBOND, template, keys)


async def timelock_path_policy(device: DeviceClient, params: TimelockParams,
                               derivation_path: Optional[str] = None,
                               display_leaf_hash: bool = True,
                               is_testnet: bool = False) -> WalletPolicy:
    """
    Build the timelock withdrawal policy.

    Returns:
        WalletPolicy 'Withdraw' with template tr(@0/**,and_v(pk_k(@1/**),older(B)))
    """
    validate_timelock(params.timelock_blocks)

    network = Network.from_testnet_flag(is_testnet)
    derivation_path = derivation_path or default_derivation_path(is_testnet)
    fingerprint, extended_pubkey = await _prepare(device, derivation_path)

    keys = [
        _leaf_hash_key(params.leaf_hash, derivation_path, display_leaf_hash, network),
        format_key_origin(fingerprint, derivation_path, extended_pubkey),
    ]
    template = f"tr(@0/**,and_v(pk_k(@1/**),older({params.timelock_blocks})))"
    return WalletPolicy(PolicyName.WITHDRAW, template, keys)
