"""Credential resolution for discovery runs."""

from collections.abc import Callable
from datetime import UTC, datetime

from cfgctl.core.exceptions import NoValidCredentialError
from cfgctl.core.models import AuthMode, CachedToken, ExternalCredential, ResolvedCredential
from cfgctl.credentials.token_cache import load_newest_token
from cfgctl.interfaces.credential_helper import CredentialHelper
from cfgctl.utils.logging import get_logger

logger = get_logger(__name__)


def utc_now() -> datetime:
    """Current time in UTC."""
    return datetime.now(UTC)


class CredentialResolver:
    """Resolves working credentials for profiles.

    A valid cached SSO token is preferred. Without one, the credential helper
    is invoked once per profile, strictly one at a time, before any
    concurrent discovery starts; results are kept in memory for the rest of
    the run and never written to disk. When neither source is usable the
    resolver falls back to the default boto3 credential chain.
    """

    def __init__(
        self,
        cache_paths: list[str],
        helper: CredentialHelper | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """Initialize credential resolver.

        Args:
            cache_paths: SSO token cache directories
            helper: External credential helper (optional)
            clock: Source of the current time
        """
        self.cache_paths = cache_paths
        self.helper = helper
        self.clock = clock
        self.auth_mode: AuthMode | None = None
        self._external: dict[str, ExternalCredential] = {}

    def token(self, start_url: str | None = None, region: str | None = None) -> CachedToken:
        """Return the newest valid cached SSO token.

        Raises:
            NoValidCredentialError: If no token is cached
            LoginRequiredError: If every cached token has expired
        """
        return load_newest_token(self.cache_paths, self.clock(), start_url, region)

    def has_valid_token(self) -> bool:
        """Report whether any cached SSO token is currently valid."""
        if not self.cache_paths:
            return False
        try:
            self.token()
        except NoValidCredentialError:
            return False
        return True

    def prepare(self, profiles: list[str]) -> AuthMode:
        """Choose the auth mode and prefetch helper credentials.

        Args:
            profiles: Profiles that discovery will use

        Returns:
            The selected auth mode

        Raises:
            TokenCacheError: If a token cache file is corrupt
            InvalidCredentialOutputError: If the helper fails for any profile
        """
        if self.has_valid_token():
            self.auth_mode = AuthMode.SSO
        elif self.helper is not None and self.helper.available():
            self.prefetch(profiles)
            self.auth_mode = AuthMode.AWS_VAULT
        else:
            self.auth_mode = AuthMode.DEFAULT

        logger.info("auth_mode_selected", auth_mode=self.auth_mode.value, profiles=len(profiles))
        return self.auth_mode

    def prefetch(self, profiles: list[str]) -> dict[str, ExternalCredential]:
        """Fetch helper credentials for every profile, one after another.

        Only the first call may prompt for an interactive login; later calls
        reuse the helper's session.

        Raises:
            NoValidCredentialError: If no helper is configured
        """
        if self.helper is None:
            raise NoValidCredentialError("no credential helper configured")

        for profile in profiles:
            if profile in self._external:
                continue
            logger.debug("prefetching_credentials", profile=profile, helper=self.helper.name)
            self._external[profile] = self.helper.fetch(profile)

        return dict(self._external)

    def resolve(self, profile: str) -> ResolvedCredential:
        """Get working credentials for a profile.

        Args:
            profile: AWS profile name

        Returns:
            Credentials for the profile

        Raises:
            NoValidCredentialError: If helper mode is active and the profile
                was not prefetched
        """
        mode = self.auth_mode or self.prepare([profile])

        if mode == AuthMode.AWS_VAULT:
            external = self._external.get(profile)
            if external is None:
                raise NoValidCredentialError(
                    f"no cached aws-vault credentials for profile {profile!r}"
                )
            return ResolvedCredential(profile=profile, auth_mode=mode, external=external)

        return ResolvedCredential(profile=profile, auth_mode=mode)
