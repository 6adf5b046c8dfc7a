"""SSO token cache loading.

Tokens are read from one or more cache directories (the AWS CLI cache and the
Granted cache by default). A cache file that cannot be parsed is an error: it
means the local SSO state is broken and silently ignoring it would hide that.
"""

import json
from datetime import datetime
from pathlib import Path

from pydantic import ValidationError

from cfgctl.core.exceptions import (
    ConfigurationError,
    LoginRequiredError,
    NoValidCredentialError,
    TokenCacheError,
)
from cfgctl.core.models import CachedToken
from cfgctl.utils.logging import get_logger

logger = get_logger(__name__)

REGISTRATION_KEYS = frozenset({"clientId", "clientSecret"})


def load_tokens(cache_paths: list[str]) -> list[CachedToken]:
    """Read every token file under the given cache directories.

    Args:
        cache_paths: Token cache directories

    Returns:
        Parsed tokens in directory order

    Raises:
        ConfigurationError: If no cache paths are configured
        TokenCacheError: If a directory or token file cannot be read or parsed
    """
    if not cache_paths:
        raise ConfigurationError("token cache paths cannot be empty")

    tokens: list[CachedToken] = []
    for path in cache_paths:
        tokens.extend(_load_tokens_from_path(path))
    return tokens


def _load_tokens_from_path(path: str) -> list[CachedToken]:
    if not path or not path.strip():
        raise ConfigurationError("token cache paths cannot be empty")

    directory = Path(path)
    if not directory.exists():
        return []

    try:
        entries = sorted(directory.iterdir())
    except OSError as e:
        raise TokenCacheError(f"read token cache directory {path!r}: {e}") from e

    tokens = []
    for entry in entries:
        if entry.is_dir() or entry.suffix != ".json":
            continue
        token = _read_token(entry)
        if token is not None:
            tokens.append(token)

    logger.debug("token_cache_scanned", path=path, tokens=len(tokens))
    return tokens


def _read_token(path: Path) -> CachedToken | None:
    try:
        raw = json.loads(path.read_text())
    except (OSError, json.JSONDecodeError) as e:
        raise TokenCacheError(f"parse token file {str(path)!r}: {e}") from e

    if not isinstance(raw, dict):
        raise TokenCacheError(f"parse token file {str(path)!r}: expected a JSON object")

    if "accessToken" not in raw:
        # Client registration records share the cache directory with tokens.
        if REGISTRATION_KEYS & raw.keys():
            logger.debug("token_cache_entry_skipped", path=str(path))
            return None
        raise TokenCacheError(f"parse token file {str(path)!r}: missing accessToken")

    try:
        return CachedToken.model_validate(raw)
    except ValidationError as e:
        raise TokenCacheError(f"parse token fields {str(path)!r}: {e}") from e


def select_newest(tokens: list[CachedToken]) -> CachedToken:
    """Pick the token with the latest expiry, then the latest issue time."""
    return max(tokens, key=lambda token: (token.expires_at, token.issued_at))


def load_newest_token(
    cache_paths: list[str],
    now: datetime,
    start_url: str | None = None,
    region: str | None = None,
) -> CachedToken:
    """Find the newest valid SSO token across cache paths.

    Args:
        cache_paths: Token cache directories
        now: Reference time for expiry checks
        start_url: Only consider tokens for this SSO start URL (optional)
        region: Only consider tokens for this SSO region (optional)

    Returns:
        The newest unexpired token

    Raises:
        NoValidCredentialError: If no matching token exists
        LoginRequiredError: If matching tokens exist but all have expired
    """
    tokens = load_tokens(cache_paths)

    if start_url is not None and region is not None:
        tokens = [token for token in tokens if token.matches_session(start_url, region)]

    if not tokens:
        raise NoValidCredentialError("no sso token found in token cache")

    valid = [token for token in tokens if not token.is_expired(now)]
    if not valid:
        raise LoginRequiredError(
            "sso session missing or expired, run 'cfgctl login' or 'aws sso login' to refresh"
        )

    token = select_newest(valid)
    logger.debug(
        "sso_token_selected",
        expires_at=token.expires_at.isoformat(),
        region=token.region,
        candidates=len(valid),
    )
    return token
