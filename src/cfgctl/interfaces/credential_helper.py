"""Credential helper interface."""

from abc import ABC, abstractmethod

from cfgctl.core.models import ExternalCredential


class CredentialHelper(ABC):
    """Abstract interface for an external credential source.

    Production implementations shell out to a helper binary; tests use
    in-memory stubs. Implementations must not be invoked concurrently for
    profiles sharing a login session.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Short identifier used as the auth mode label."""

    @abstractmethod
    def available(self) -> bool:
        """Report whether the helper can be used on this machine."""

    @abstractmethod
    def fetch(self, profile: str) -> ExternalCredential:
        """Fetch credentials for a profile.

        Args:
            profile: AWS profile name

        Returns:
            Validated credentials

        Raises:
            InvalidCredentialOutputError: If the helper fails or returns bad output
        """
