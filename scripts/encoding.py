"""
Staking Signer - Script Encoding and Decoding

This module converts raw scripts into ordered token streams (opcode names
and lowercase hex data pushes) and back. Token streams are what the policy
recognizer matches leaf scripts against.
"""

import struct
from dataclasses import dataclass
from typing import List, Optional

from .opcodes import NAME_TO_OPCODE, OPCODE_NAMES, ScriptOpcode


class ScriptDecodeError(ValueError):
    """Raised when a script cannot be split into elements."""
    pass


@dataclass
class ScriptElement:
    """Represents a single element in a Bitcoin script."""
    opcode: int
    opcode_name: str
    data: Optional[bytes] = None

    @property
    def is_push_data(self) -> bool:
        return self.data is not None

    def to_token(self) -> str:
        """Hex for data pushes, the opcode name otherwise."""
        if self.is_push_data:
            return self.data.hex()
        return self.opcode_name


def _read_push(script: bytes, pc: int, length: int, position: int) -> bytes:
    if pc + length > len(script):
        raise ScriptDecodeError(f"Insufficient data for push at position {position}")
    return script[pc:pc + length]


def parse_script(script: bytes) -> List[ScriptElement]:
    """
    Parse raw script bytes into elements.

    Args:
        script: Raw script

    Returns:
        List of ScriptElement in script order

    Raises:
        ScriptDecodeError: If a push runs past the end of the script
    """
    elements = []
    pc = 0

    while pc < len(script):
        position = pc
        opcode = script[pc]
        pc += 1

        if 1 <= opcode <= 75:
            data = _read_push(script, pc, opcode, position)
            pc += opcode
            elements.append(ScriptElement(opcode, f"OP_PUSHBYTES_{opcode}", data))

        elif opcode == ScriptOpcode.OP_PUSHDATA1:
            if pc + 1 > len(script):
                raise ScriptDecodeError("Missing length byte for OP_PUSHDATA1")
            data_len = script[pc]
            pc += 1
            data = _read_push(script, pc, data_len, position)
            pc += data_len
            elements.append(ScriptElement(opcode, "OP_PUSHDATA1", data))

        elif opcode == ScriptOpcode.OP_PUSHDATA2:
            if pc + 2 > len(script):
                raise ScriptDecodeError("Missing length bytes for OP_PUSHDATA2")
            data_len = struct.unpack('<H', script[pc:pc + 2])[0]
            pc += 2
            data = _read_push(script, pc, data_len, position)
            pc += data_len
            elements.append(ScriptElement(opcode, "OP_PUSHDATA2", data))

        elif opcode == ScriptOpcode.OP_PUSHDATA4:
            if pc + 4 > len(script):
                raise ScriptDecodeError("Missing length bytes for OP_PUSHDATA4")
            data_len = struct.unpack('<I', script[pc:pc + 4])[0]
            pc += 4
            data = _read_push(script, pc, data_len, position)
            pc += data_len
            elements.append(ScriptElement(opcode, "OP_PUSHDATA4", data))

        else:
            name = OPCODE_NAMES.get(opcode, f"OP_UNKNOWN_{opcode:02x}")
            elements.append(ScriptElement(opcode, name))

    return elements


def decode_script(script: bytes) -> List[str]:
    """
    Decode a script into its token stream.

    Args:
        script: Raw script

    Returns:
        Tokens: "OP_<NAME>" for opcodes (OP_0 .. OP_16 for small integers),
        lowercase hex for data pushes
    """
    return [element.to_token() for element in parse_script(script)]


def encode_push(data: bytes) -> bytes:
    """Minimal push opcode for data followed by the data."""
    if len(data) <= 75:
        return bytes([len(data)]) + data
    elif len(data) <= 0xff:
        return bytes([ScriptOpcode.OP_PUSHDATA1, len(data)]) + data
    elif len(data) <= 0xffff:
        return bytes([ScriptOpcode.OP_PUSHDATA2]) + struct.pack('<H', len(data)) + data
    return bytes([ScriptOpcode.OP_PUSHDATA4]) + struct.pack('<I', len(data)) + data


def encode_script(tokens: List[str]) -> bytes:
    """
    Encode a token stream back into script bytes.

    Args:
        tokens: Opcode names or hex data pushes

    Returns:
        Raw script
    """
    output = []
    for token in tokens:
        opcode = NAME_TO_OPCODE.get(token.upper())
        if opcode is not None:
            output.append(bytes([opcode]))
            continue
        try:
            data = bytes.fromhex(token)
        except ValueError:
            raise ScriptDecodeError(f"Invalid token: {token}")
        output.append(encode_push(data))
    return b''.join(output)


def script_to_asm(script: bytes) -> str:
    """Convert script to a space separated assembly string."""
    return " ".join(decode_script(script))


def script_from_asm(asm_string: str) -> bytes:
    return encode_script(asm_string.split())
