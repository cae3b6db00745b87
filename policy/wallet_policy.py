"""
Staking Signer - Wallet Policies

A wallet policy is a named descriptor template plus the ordered key list its
@N placeholders refer to. Signing devices use it to interpret and display a
spending path.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Tuple

from .exceptions import PolicyError


PLACEHOLDER_PATTERN = re.compile(r'@(\d+)')


@dataclass(frozen=True)
class WalletPolicy:
    """
    Immutable wallet policy.

    Attributes:
        name: Display name shown by the device
        descriptor_template: Descriptor with @N key placeholders
        keys: Key-origin strings, keys[N] replaces @N
    """
    name: str
    descriptor_template: str
    keys: Tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self):
        object.__setattr__(self, 'keys', tuple(self.keys))
        for match in PLACEHOLDER_PATTERN.finditer(self.descriptor_template):
            index = int(match.group(1))
            if index >= len(self.keys):
                raise PolicyError(
                    f"Placeholder @{index} has no key (policy has {len(self.keys)} keys)"
                )

    def to_descriptor(self) -> str:
        """Substitute every @N placeholder with keys[N]."""
        return PLACEHOLDER_PATTERN.sub(lambda m: self.keys[int(m.group(1))],
                                       self.descriptor_template)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'descriptor_template': self.descriptor_template,
            'keys': list(self.keys),
        }
