"""Interactive SSO login through the AWS CLI."""

import subprocess
from pathlib import Path

from cfgctl.core.config import AWSProviderConfig
from cfgctl.core.exceptions import CredentialError, MergeError
from cfgctl.merge.sections import read_config_file
from cfgctl.utils.logging import get_logger
from cfgctl.utils.paths import normalize_path

logger = get_logger(__name__)


def sso_session_block(config: AWSProviderConfig) -> str:
    """Render the ``[sso-session]`` block for the configured session."""
    return (
        f"[sso-session {config.sso.session_name}]\n"
        f"sso_start_url = {config.sso.start_url}\n"
        f"sso_region = {config.sso.region}\n"
        f"sso_registration_scopes = {config.sso.registration_scopes}\n"
    )


def ensure_sso_session_block(config: AWSProviderConfig) -> bool:
    """Append the sso-session block to the AWS config file if it is missing.

    Args:
        config: AWS provider configuration

    Returns:
        True if the block was appended

    Raises:
        MergeError: If the config file cannot be read or written
    """
    path = normalize_path(config.config_path, "config path")
    existing = read_config_file(path)

    header = f"[sso-session {config.sso.session_name}]"
    if header in existing:
        return False

    block = sso_session_block(config)
    if existing and not existing.endswith("\n"):
        block = "\n" + block

    try:
        Path(path).parent.mkdir(mode=0o700, parents=True, exist_ok=True)
        with open(path, "a") as f:
            f.write(block)
        Path(path).chmod(0o600)
    except OSError as e:
        raise MergeError(f"append sso-session block to {path!r}: {e}") from e

    logger.info("sso_session_block_added", path=path, session=config.sso.session_name)
    return True


def run_sso_login(config: AWSProviderConfig, command: str = "aws") -> None:
    """Run ``aws sso login`` for the configured session.

    The AWS CLI reads the session definition from the config file, so the
    block is written first. The login runs attached to the terminal so the
    user can complete the browser flow.

    Args:
        config: AWS provider configuration
        command: AWS CLI executable

    Raises:
        CredentialError: If the login command fails
    """
    ensure_sso_session_block(config)

    cmd = [command, "sso", "login", "--sso-session", config.sso.session_name]
    logger.info("running_sso_login", command=" ".join(cmd))

    try:
        subprocess.run(cmd, check=True)
    except subprocess.CalledProcessError as e:
        raise CredentialError(f"aws sso login failed with exit code {e.returncode}") from e
    except FileNotFoundError as e:
        raise CredentialError(f"{command} command not found. Please install the AWS CLI.") from e
