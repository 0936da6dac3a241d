"""Use case layer for the Provisioning context.

Re-export the workflows for convenient imports in tests and the web adapter.
"""

from .deprovision import DeprovisionUserUseCase
from .provision import ProvisionUserUseCase, validate_request

__all__ = [
    "DeprovisionUserUseCase",
    "ProvisionUserUseCase",
    "validate_request",
]
