"""
Staking Signer - Signing Devices

Device interface, in-process device implementations and the signing
orchestrator (device.signer).
"""

from .client import DeviceClient, DeviceError, PartialSignature, UnsupportedOperationError
from .software import SoftwareDevice, WatchOnlyDevice

__all__ = [
    'DeviceClient',
    'DeviceError',
    'PartialSignature',
    'SoftwareDevice',
    'UnsupportedOperationError',
    'WatchOnlyDevice',
]
