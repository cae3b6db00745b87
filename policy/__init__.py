"""
Staking Signer - Wallet Policy Engine

Builds wallet policies for the staking spending paths and recognizes which
path a PSBT spends from its Taproot leaf script.
"""

from .exceptions import *
from .wallet_policy import WalletPolicy
from .builder import (
    MagicCode,
    PolicyName,
    SlashingParams,
    TimelockParams,
    UnbondingParams,
    slashing_path_policy,
    staking_tx_policy,
    timelock_path_policy,
    unbonding_path_policy,
)
from .recognizer import ScriptKind, ScriptMatch, match_leaf_script, try_parse_psbt

__all__ = [
    'MagicCode',
    'PolicyName',
    'ScriptKind',
    'ScriptMatch',
    'SlashingParams',
    'TimelockParams',
    'UnbondingParams',
    'WalletPolicy',
    'match_leaf_script',
    'slashing_path_policy',
    'staking_tx_policy',
    'timelock_path_policy',
    'try_parse_psbt',
    'unbonding_path_policy',
]
