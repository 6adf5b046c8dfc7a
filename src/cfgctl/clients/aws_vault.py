"""aws-vault wrapper implementing the credential helper interface."""

import shutil
import subprocess

from pydantic import ValidationError

from cfgctl.core.exceptions import InvalidCredentialOutputError
from cfgctl.core.models import ExternalCredential
from cfgctl.interfaces.credential_helper import CredentialHelper
from cfgctl.utils.logging import get_logger

logger = get_logger(__name__)


class AWSVaultHelper(CredentialHelper):
    """Fetch credentials with ``aws-vault exec <profile> --json``."""

    def __init__(self, command: str = "aws-vault", timeout: float | None = None):
        """Initialize aws-vault wrapper.

        Args:
            command: aws-vault executable name or path
            timeout: Seconds to wait for a single invocation (None waits for
                interactive login to finish)
        """
        self.command = command
        self.timeout = timeout

    @property
    def name(self) -> str:
        """Auth mode label."""
        return "aws-vault"

    def available(self) -> bool:
        """Report whether the aws-vault binary is on PATH."""
        return shutil.which(self.command) is not None

    def fetch(self, profile: str) -> ExternalCredential:
        """Run aws-vault for a profile and parse its credential_process output.

        Args:
            profile: AWS profile name

        Returns:
            Validated credentials

        Raises:
            InvalidCredentialOutputError: If aws-vault fails or returns bad output
        """
        cmd = [self.command, "exec", profile, "--json"]
        logger.debug("running_credential_helper", command=" ".join(cmd))

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                check=True,
                timeout=self.timeout,
            )
        except subprocess.CalledProcessError as e:
            logger.error(
                "credential_helper_failed",
                profile=profile,
                returncode=e.returncode,
                stderr=e.stderr,
            )
            raise InvalidCredentialOutputError(
                f"aws-vault exec for profile {profile!r} failed: {(e.stderr or '').strip()}"
            ) from e
        except subprocess.TimeoutExpired as e:
            raise InvalidCredentialOutputError(
                f"aws-vault exec for profile {profile!r} timed out"
            ) from e
        except FileNotFoundError as e:
            raise InvalidCredentialOutputError(
                f"{self.command} command not found. Please install aws-vault."
            ) from e

        try:
            credential = ExternalCredential.model_validate_json(result.stdout)
        except ValidationError as e:
            raise InvalidCredentialOutputError(
                f"invalid credentials for profile {profile!r}: {e}"
            ) from e

        logger.info("credential_helper_succeeded", profile=profile)
        return credential
