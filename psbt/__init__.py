"""
Staking Signer - PSBT Codec

This module provides parsing, normalization and serialization of Partially
Signed Bitcoin Transactions in versions 0 and 2, plus a version 0 builder.
"""

from .builder import PSBTBuilder, encode_witness_utxo
from .keymap import Key, KeyedMap
from .psbtv2 import PsbtV2, PsbtGlobal, PsbtIn, PsbtOut
from .transaction import UnsignedTransaction
from .exceptions import *

__all__ = [
    'Key',
    'KeyedMap',
    'PSBTBuilder',
    'PsbtGlobal',
    'PsbtIn',
    'PsbtOut',
    'PsbtV2',
    'UnsignedTransaction',
    'encode_witness_utxo',
]

__version__ = '1.0.0'
