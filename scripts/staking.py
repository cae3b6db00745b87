"""
Staking Signer - Staking Leaf Scripts

This module builds the tapscripts of the staking spending paths. The
outputs have exactly the shapes the policy recognizer classifies:

- timelock:  <staker> OP_CHECKSIGVERIFY <blocks> OP_CHECKSEQUENCEVERIFY
- unbonding: <staker> OP_CHECKSIGVERIFY <covenant multisig>
- slashing:  <staker> OP_CHECKSIGVERIFY <fp> OP_CHECKSIGVERIFY <covenant multisig>

where the covenant multisig is
<cov1> OP_CHECKSIG <cov2> OP_CHECKSIGADD ... <covN> OP_CHECKSIGADD <T> OP_NUMEQUAL.
"""

from typing import List

from .encoding import encode_push
from .opcodes import ScriptOpcode, small_int_opcode


def encode_script_num(value: int) -> bytes:
    """Encode integer as Bitcoin Script number."""
    if value == 0:
        return b''

    negative = value < 0
    value = abs(value)

    result = []
    while value > 0:
        result.append(value & 0xff)
        value >>= 8

    if result[-1] & 0x80:
        result.append(0x80 if negative else 0x00)
    elif negative:
        result[-1] |= 0x80

    return bytes(result)


def push_int(value: int) -> bytes:
    """Push an integer, as a small-integer opcode when possible."""
    if 0 <= value <= 16:
        return bytes([small_int_opcode(value)])
    return encode_push(encode_script_num(value))


def _check_xonly(key: bytes, role: str) -> None:
    if len(key) != 32:
        raise ValueError(f"{role} key must be a 32-byte x-only key")


def _single_key(key: bytes, verify: bool) -> bytes:
    opcode = ScriptOpcode.OP_CHECKSIGVERIFY if verify else ScriptOpcode.OP_CHECKSIG
    return encode_push(key) + bytes([opcode])


def covenant_multisig_script(covenant_pks: List[bytes], threshold: int) -> bytes:
    if not covenant_pks:
        raise ValueError("Covenant multisig needs at least one key")
    if threshold < 1 or threshold > len(covenant_pks):
        raise ValueError(f"Invalid covenant threshold {threshold} for {len(covenant_pks)} keys")

    parts = []
    for i, key in enumerate(covenant_pks):
        _check_xonly(key, "Covenant")
        parts.append(encode_push(key))
        parts.append(bytes([ScriptOpcode.OP_CHECKSIG if i == 0 else ScriptOpcode.OP_CHECKSIGADD]))
    parts.append(push_int(threshold))
    parts.append(bytes([ScriptOpcode.OP_NUMEQUAL]))
    return b''.join(parts)


def timelock_script(staker_pk: bytes, timelock_blocks: int) -> bytes:
    """
    Staker-only withdrawal after a relative timelock.

    The block count is always a data push, never a small-integer opcode.
    """
    _check_xonly(staker_pk, "Staker")
    if not 0 < timelock_blocks <= 0xffff:
        raise ValueError(f"Timelock must be 1-65535 blocks: {timelock_blocks}")
    return (_single_key(staker_pk, verify=True)
            + encode_push(encode_script_num(timelock_blocks))
            + bytes([ScriptOpcode.OP_CHECKSEQUENCEVERIFY]))


def unbonding_script(staker_pk: bytes, covenant_pks: List[bytes], threshold: int) -> bytes:
    _check_xonly(staker_pk, "Staker")
    return _single_key(staker_pk, verify=True) + covenant_multisig_script(covenant_pks, threshold)


def slashing_script(staker_pk: bytes, finality_provider_pk: bytes,
                    covenant_pks: List[bytes], threshold: int) -> bytes:
    _check_xonly(staker_pk, "Staker")
    _check_xonly(finality_provider_pk, "Finality provider")
    return (_single_key(staker_pk, verify=True)
            + _single_key(finality_provider_pk, verify=True)
            + covenant_multisig_script(covenant_pks, threshold))
