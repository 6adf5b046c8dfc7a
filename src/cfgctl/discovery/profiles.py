"""Profile and region enumeration for compute discovery."""

from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from botocore.exceptions import BotoCoreError, ClientError

from cfgctl.clients.aws_client import AWSClient
from cfgctl.core.exceptions import (
    ConfigurationError,
    DiscoveryError,
    DiscoveryTimeoutError,
    NoProfilesFoundError,
    NoRegionsConfiguredError,
)
from cfgctl.utils.logging import get_logger

logger = get_logger(__name__)

ALL_REGIONS = "all"


def _section_headers(path: str, label: str) -> list[str]:
    if not path or not path.strip():
        raise ConfigurationError(f"aws {label} file cannot be empty")

    try:
        lines = Path(path).read_text().splitlines()
    except OSError as e:
        raise ConfigurationError(f"open aws {label} file: {e}") from e

    headers = []
    for raw in lines:
        line = raw.strip()
        if not line or line.startswith(("#", ";")):
            continue
        if line.startswith("[") and line.endswith("]"):
            headers.append(line[1:-1].strip())
    return headers


def parse_config_profiles(path: str) -> list[str]:
    """Extract profile names from ``[profile NAME]`` sections of an AWS config file.

    ``[default]``, ``[sso-session ...]`` and other sections are ignored.

    Args:
        path: AWS shared config file

    Returns:
        Sorted, de-duplicated profile names

    Raises:
        ConfigurationError: If the file cannot be read
    """
    names = set()
    for section in _section_headers(path, "config"):
        if not section.startswith("profile "):
            continue
        name = section.removeprefix("profile ").strip()
        if name:
            names.add(name)
    return sorted(names)


def parse_credential_profiles(path: str) -> list[str]:
    """Extract profile names from an AWS credentials file.

    Raises:
        ConfigurationError: If the file cannot be read
    """
    names = set()
    for section in _section_headers(path, "credentials"):
        name = section.removeprefix("profile ").strip()
        if name:
            names.add(name)
    return sorted(names)


def list_profiles(config_file: str, credentials_file: str = "") -> list[str]:
    """Enumerate candidate profiles.

    The config file is preferred; the credentials file is only read when the
    config file is unset, unreadable or holds no profile sections.

    Args:
        config_file: AWS shared config file
        credentials_file: AWS credentials file used as fallback

    Returns:
        Sorted profile names

    Raises:
        NoProfilesFoundError: If neither source yields a profile
        ConfigurationError: If the fallback credentials file cannot be read
    """
    if config_file and config_file.strip():
        try:
            profiles = parse_config_profiles(config_file)
        except ConfigurationError as e:
            logger.debug("config_profiles_unavailable", path=config_file, error=str(e))
            profiles = []
        if profiles:
            return profiles

    if not credentials_file or not credentials_file.strip():
        raise NoProfilesFoundError("no aws profiles found")

    profiles = parse_credential_profiles(credentials_file)
    if not profiles:
        raise NoProfilesFoundError("no aws profiles found")
    return profiles


def filter_profiles_by_role(profiles: list[str], roles: Iterable[str]) -> list[str]:
    """Keep profiles whose role segment matches one of ``roles``.

    The role segment is the text after the last ``/`` (the whole name when
    there is none); matching is case-insensitive. An empty role list keeps
    every profile.
    """
    wanted = {role.strip().lower() for role in roles if role.strip()}
    if not wanted:
        return list(profiles)

    return [profile for profile in profiles if profile.rsplit("/", 1)[-1].lower() in wanted]


def normalize_regions(regions: Iterable[str]) -> list[str]:
    """Trim, de-duplicate and sort region names.

    Raises:
        NoRegionsConfiguredError: If nothing remains
    """
    normalized = sorted({region.strip() for region in regions if region.strip()})
    if not normalized:
        raise NoRegionsConfiguredError("aws regions cannot be empty")
    return normalized


def resolve_regions(
    requested: list[str],
    profile: str,
    region_lister_factory: Callable[[str], AWSClient],
    timeout_seconds: float | None = None,
) -> list[str]:
    """Resolve the regions to scan.

    If any requested entry is ``all`` (case-insensitive) the enabled regions
    are listed once using ``profile``; otherwise the explicit list is
    normalized.

    Args:
        requested: Region names from configuration
        profile: Profile used for the region listing
        region_lister_factory: Builds the client for a profile
        timeout_seconds: Timeout for the region listing (optional)

    Returns:
        Sorted region names

    Raises:
        NoRegionsConfiguredError: If the list is empty or lists no regions
        DiscoveryTimeoutError: If the region listing exceeds the timeout
        DiscoveryError: If the region listing fails
    """
    if not requested:
        raise NoRegionsConfiguredError("aws regions cannot be empty")

    if not any(region.strip().lower() == ALL_REGIONS for region in requested):
        return normalize_regions(requested)

    logger.debug("fetching_enabled_regions", profile=profile)
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="cfgctl-regions")
    try:
        future = executor.submit(lambda: region_lister_factory(profile).list_enabled_regions())
        regions = future.result(timeout=timeout_seconds)
    except TimeoutError as e:
        raise DiscoveryTimeoutError(
            f"describe regions for profile {profile!r} timed out after {timeout_seconds}s"
        ) from e
    except (ClientError, BotoCoreError) as e:
        raise DiscoveryError(f"describe regions for profile {profile!r}: {e}") from e
    finally:
        executor.shutdown(wait=False, cancel_futures=True)

    if not regions:
        raise NoRegionsConfiguredError(f"no enabled regions found for profile {profile!r}")

    logger.info("enabled_regions_resolved", profile=profile, count=len(regions))
    return regions
