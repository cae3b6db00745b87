"""
Staking Signer - PSBT Exceptions

This module defines custom exceptions for PSBT parsing, normalization and
field access operations.
"""

from typing import Optional


class PSBTError(Exception):
    """Base exception for PSBT-related errors."""
    pass


class PSBTFormatError(PSBTError):
    """Exception raised when PSBT bytes are truncated or malformed."""
    pass


class InvalidMagicError(PSBTFormatError):
    """Exception raised when the PSBT magic prefix is missing."""
    pass


class NoSuchEntryError(PSBTError):
    """Exception raised when a required field is absent from a keyed map."""

    def __init__(self, key_hex: str, field_type: Optional[int] = None,
                 key_data: bytes = b'', message: str = None):
        self.key_hex = key_hex
        self.field_type = field_type
        self.key_data = key_data
        if message is None:
            message = f"No such entry: {key_hex}"
        super().__init__(message)


class UnsupportedVersionError(PSBTError):
    """Exception raised when a PSBT declares a version other than 0 or 2."""

    def __init__(self, version: int):
        self.version = version
        super().__init__(f"Only PSBTs of version 0 or 2 are supported, got {version}")


class InvalidVersionError(PSBTError):
    """Exception raised when normalization meets an unexpected stored version."""

    def __init__(self, version: int):
        self.version = version
        super().__init__(f"Invalid or unsupported value for PSBT_GLOBAL_VERSION: {version}")


class NumericOverflowError(PSBTError):
    """Exception raised when an amount does not fit its signed or unsigned range."""
    pass


class TaprootInputError(PSBTError):
    """Exception raised when importing a builder whose inputs carry Taproot data."""

    def __init__(self, message: str = "Taproot inputs not supported"):
        super().__init__(message)


class PSBTBuildError(PSBTError):
    """Exception raised during PSBT building operations."""
    pass
