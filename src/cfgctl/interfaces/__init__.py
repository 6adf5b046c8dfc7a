"""Interface definitions for cfgctl."""

from cfgctl.interfaces.credential_helper import CredentialHelper
from cfgctl.interfaces.provider import Provider

__all__ = [
    "CredentialHelper",
    "Provider",
]
