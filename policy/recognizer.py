"""
Staking Signer - Policy Recognizer

This module classifies the Taproot leaf script of a PSBT against the known
staking leaf shapes and rebuilds the matching wallet policy.

Shapes are tried in order, first match wins:

1. slashing:  PK OP_CHECKSIGVERIFY PK OP_CHECKSIGVERIFY PK OP_CHECKSIG ...
2. unbonding: PK OP_CHECKSIGVERIFY PK OP_CHECKSIG ...
3. timelock:  PK OP_CHECKSIGVERIFY <1-4 byte push> OP_CHECKSEQUENCEVERIFY

For slashing and unbonding, every 32-byte key token and every small-integer
token is collected in order; the last collected token must be OP_<n> and
gives the covenant threshold.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence, Tuple, Union

from device.client import DeviceClient
from psbt.psbtv2 import PsbtV2
from scripts.encoding import decode_script
from scripts.taproot import get_taproot_leaf

from .builder import (
    SlashingParams,
    TimelockParams,
    UnbondingParams,
    slashing_path_policy,
    staking_tx_policy,
    timelock_path_policy,
    unbonding_path_policy,
)
from .wallet_policy import WalletPolicy


logger = logging.getLogger(__name__)

PUBKEY_TOKEN = re.compile(r'^[a-f0-9]{64}$')
SMALL_INT_TOKEN = re.compile(r'^OP_([0-9]{1,2})$')
BLOCKS_TOKEN = re.compile(r'^(?:[a-f0-9]{2}){1,4}$')

CHECKSIG = 'OP_CHECKSIG'
CHECKSIGVERIFY = 'OP_CHECKSIGVERIFY'
CHECKSEQUENCEVERIFY = 'OP_CHECKSEQUENCEVERIFY'

# Token classes used by the shape patterns
PK = 'PK'
BLOCKS = 'BLOCKS'


class ScriptKind(Enum):
    """Recognized staking leaf shapes."""
    SLASHING = 'slashing'
    UNBONDING = 'unbonding'
    TIMELOCK = 'timelock'


@dataclass(frozen=True)
class ScriptMatch:
    """Parameters extracted from a recognized leaf script."""
    kind: ScriptKind
    staker_pk: str
    finality_provider_pk: Optional[str] = None
    covenant_pks: Tuple[str, ...] = field(default_factory=tuple)
    covenant_threshold: Optional[int] = None
    timelock_blocks: Optional[int] = None


SLASHING_PREFIX = (PK, CHECKSIGVERIFY, PK, CHECKSIGVERIFY, PK, CHECKSIG)
UNBONDING_PREFIX = (PK, CHECKSIGVERIFY, PK, CHECKSIG)
TIMELOCK_SHAPE = (PK, CHECKSIGVERIFY, BLOCKS, CHECKSEQUENCEVERIFY)


def _token_matches(expected: str, token: str) -> bool:
    if expected == PK:
        return PUBKEY_TOKEN.match(token) is not None
    if expected == BLOCKS:
        return BLOCKS_TOKEN.match(token) is not None
    return token == expected


def _matches_prefix(pattern: Sequence[str], tokens: Sequence[str]) -> bool:
    if len(tokens) < len(pattern):
        return False
    return all(_token_matches(p, t) for p, t in zip(pattern, tokens))


def _collect_keys_and_threshold(tokens: Sequence[str]) -> Optional[Tuple[List[str], int]]:
    """Collect key and small-integer tokens; the last one must be the threshold."""
    collected = [
        token for token in tokens
        if PUBKEY_TOKEN.match(token) or SMALL_INT_TOKEN.match(token)
    ]
    if not collected:
        return None
    threshold_match = SMALL_INT_TOKEN.match(collected[-1])
    if threshold_match is None:
        return None
    return collected[:-1], int(threshold_match.group(1))


def match_leaf_script(tokens: Sequence[str]) -> Optional[ScriptMatch]:
    """
    Classify a decoded leaf script.

    Args:
        tokens: Token stream as produced by scripts.encoding.decode_script

    Returns:
        ScriptMatch, or None when the script has none of the staking shapes
    """
    tokens = list(tokens)

    if _matches_prefix(SLASHING_PREFIX, tokens):
        collected = _collect_keys_and_threshold(tokens)
        if collected is not None:
            keys, threshold = collected
            return ScriptMatch(
                kind=ScriptKind.SLASHING,
                staker_pk=keys[0],
                finality_provider_pk=keys[1],
                covenant_pks=tuple(keys[2:]),
                covenant_threshold=threshold,
            )

    if _matches_prefix(UNBONDING_PREFIX, tokens):
        collected = _collect_keys_and_threshold(tokens)
        if collected is not None:
            keys, threshold = collected
            return ScriptMatch(
                kind=ScriptKind.UNBONDING,
                staker_pk=keys[0],
                covenant_pks=tuple(keys[1:]),
                covenant_threshold=threshold,
            )

    if len(tokens) == len(TIMELOCK_SHAPE) and _matches_prefix(TIMELOCK_SHAPE, tokens):
        blocks = int.from_bytes(bytes.fromhex(tokens[2]), 'little')
        return ScriptMatch(
            kind=ScriptKind.TIMELOCK,
            staker_pk=tokens[0],
            timelock_blocks=blocks,
        )

    return None


def classify_script(script: bytes) -> Optional[ScriptMatch]:
    """Decode raw leaf script bytes and classify them."""
    return match_leaf_script(decode_script(script))


async def try_parse_psbt(device: DeviceClient, psbt: Union[PsbtV2, bytes, str],
                         is_testnet: bool = False, leaf_hash: Optional[bytes] = None,
                         derivation_path: Optional[str] = None,
                         display_leaf_hash: bool = True) -> Optional[WalletPolicy]:
    """
    Rebuild the wallet policy a PSBT needs from the leaf script it spends.

    Args:
        device: Connected signing device
        psbt: PsbtV2, raw PSBT bytes or base64 string
        is_testnet: Use testnet key encoding and default path
        leaf_hash: Leaf hash to present; computed from the script when omitted
        derivation_path: Account path, defaults per network
        display_leaf_hash: Ask the device to display the leaf hash

    Returns:
        WalletPolicy, or None when the leaf script is not a staking shape

    Raises:
        PolicyValidationError: If a recognized script carries invalid parameters
    """
    leaf = get_taproot_leaf(psbt)
    if leaf is None:
        logger.info("PSBT has no leaf script, using the stake transfer policy")
        return await staking_tx_policy(device, derivation_path=derivation_path,
                                       is_testnet=is_testnet)

    match = classify_script(leaf.script)
    if match is None:
        logger.info("Leaf script does not match any staking shape")
        return None

    leaf_hash = leaf_hash if leaf_hash is not None else leaf.leaf_hash()
    logger.info(f"Recognized {match.kind.value} leaf script")

    options = dict(derivation_path=derivation_path, display_leaf_hash=display_leaf_hash,
                   is_testnet=is_testnet)

    if match.kind is ScriptKind.SLASHING:
        params = SlashingParams(
            leaf_hash=leaf_hash,
            finality_provider_pk=match.finality_provider_pk,
            covenant_threshold=match.covenant_threshold,
            covenant_pks=match.covenant_pks,
        )
        return await slashing_path_policy(device, params, **options)

    if match.kind is ScriptKind.UNBONDING:
        params = UnbondingParams(
            leaf_hash=leaf_hash,
            covenant_threshold=match.covenant_threshold,
            covenant_pks=match.covenant_pks,
        )
        return await unbonding_path_policy(device, params, **options)

    params = TimelockParams(leaf_hash=leaf_hash, timelock_blocks=match.timelock_blocks)
    return await timelock_path_policy(device, params, **options)
