"""
Staking Signer - Script Utilities

Opcode table, script token decoding, Taproot leaf hashing and the staking
leaf script shapes.
"""

from .encoding import ScriptDecodeError, decode_script, encode_script, script_to_asm
from .opcodes import ScriptOpcode
from .taproot import TapLeaf, compute_leaf_hash, get_taproot_script, leaf_hash

__all__ = [
    'ScriptDecodeError',
    'ScriptOpcode',
    'TapLeaf',
    'compute_leaf_hash',
    'decode_script',
    'encode_script',
    'get_taproot_script',
    'leaf_hash',
    'script_to_asm',
]
