"""
Staking Signer - Taproot Leaf Helpers

This module computes BIP-341 leaf hashes and extracts the leaf script a
PSBT is about to spend.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Union

from crypto.keys import tagged_hash
from psbt.psbtv2 import PsbtV2, TAPROOT_LEAF_VERSION
from psbt.utils import serialize_compact_size


logger = logging.getLogger(__name__)


@dataclass
class TapLeaf:
    """Represents a single leaf in the Taproot script tree."""
    script: bytes
    leaf_version: int = TAPROOT_LEAF_VERSION

    def __post_init__(self):
        if not self.script:
            raise ValueError("Tap leaf script cannot be empty")
        if len(self.script) > 10000:
            raise ValueError("Tap leaf script too large")

    def leaf_hash(self) -> bytes:
        """Compute TapLeaf hash for this leaf."""
        return tagged_hash(
            "TapLeaf",
            bytes([self.leaf_version]) + serialize_compact_size(len(self.script)) + self.script
        )


def leaf_hash(script: bytes, leaf_version: int = TAPROOT_LEAF_VERSION) -> bytes:
    return TapLeaf(script, leaf_version).leaf_hash()


def _as_psbt(psbt: Union[PsbtV2, bytes, str]) -> PsbtV2:
    if isinstance(psbt, PsbtV2):
        return psbt
    if isinstance(psbt, str):
        return PsbtV2.from_base64(psbt)
    return PsbtV2.deserialize(psbt)


def get_taproot_leaf(psbt: Union[PsbtV2, bytes, str], input_index: int = 0) -> Optional[TapLeaf]:
    """
    Return the first leaf script recorded on an input.

    Args:
        psbt: PsbtV2, raw PSBT bytes or base64 string
        input_index: Input to inspect

    Returns:
        TapLeaf, or None when the input has no leaf script
    """
    leaves = _as_psbt(psbt).get_input_tap_leaf_scripts(input_index)
    if not leaves:
        return None
    if len(leaves) > 1:
        logger.debug(f"Input {input_index} has {len(leaves)} leaf scripts, using the first")
    return TapLeaf(leaves[0].script, leaves[0].leaf_version)


def get_taproot_script(psbt: Union[PsbtV2, bytes, str], input_index: int = 0) -> Optional[bytes]:
    leaf = get_taproot_leaf(psbt, input_index)
    return None if leaf is None else leaf.script


def compute_leaf_hash(psbt: Union[PsbtV2, bytes, str], input_index: int = 0) -> Optional[bytes]:
    """Leaf hash of the leaf script an input spends, or None for key-path inputs."""
    leaf = get_taproot_leaf(psbt, input_index)
    return None if leaf is None else leaf.leaf_hash()
