"""
Staking Signer - Policy Exceptions

This module defines custom exceptions for wallet policy construction.
"""


class PolicyError(Exception):
    """Base exception for wallet policy errors."""
    pass


class PolicyValidationError(PolicyError):
    """Exception raised when spending-path parameters fail validation."""
    pass


class InvalidThresholdError(PolicyValidationError):
    """Exception raised when the covenant threshold is below 1."""

    def __init__(self, threshold: int):
        self.threshold = threshold
        super().__init__(
            f"Invalid value for covenantThreshold: {threshold}. "
            f"It should be greater than or equal to 1."
        )


class MissingCovenantKeysError(PolicyValidationError):
    """Exception raised when no covenant keys are supplied."""

    def __init__(self, count: int = 0):
        self.count = count
        super().__init__(f"covenantPks must have at least 1 element. Current length: {count}")


class ThresholdExceedsKeysError(PolicyValidationError):
    """Exception raised when the threshold is larger than the covenant key count."""

    def __init__(self, count: int, threshold: int):
        self.count = count
        self.threshold = threshold
        super().__init__(
            f"The length of covenantPks ({count}) is less than "
            f"the required covenantThreshold ({threshold})."
        )


class InvalidTimelockError(PolicyValidationError):
    """Exception raised when the timelock is not a non-negative block count."""
    pass


class InvalidPolicyNameError(PolicyValidationError):
    """Exception raised for a policy name the spending path does not allow."""
    pass
