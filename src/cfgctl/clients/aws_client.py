"""AWS clients for SSO portal, EKS and EC2 region operations."""

import os
from collections.abc import Callable
from typing import Any, cast

import boto3
import botocore.session
from botocore import UNSIGNED
from botocore.config import Config

from cfgctl.core.models import ExternalCredential
from cfgctl.credentials.resolver import CredentialResolver
from cfgctl.utils.logging import get_logger
from cfgctl.utils.retry import retry_on_throttle

logger = get_logger(__name__)

REGION_DISCOVERY_REGION = "us-east-1"


def create_session(
    region: str,
    profile: str | None = None,
    config_file: str | None = None,
    credential: ExternalCredential | None = None,
) -> boto3.Session:
    """Create a boto3 session for a profile.

    With static credentials the profile is not consulted at all. Otherwise
    the profile is loaded from ``config_file`` and the shared credentials
    file is replaced by an empty one, so ``credential_process`` entries
    written there are never invoked during discovery.

    Args:
        region: AWS region
        profile: AWS profile name (optional)
        config_file: Shared config file to read profiles from (optional)
        credential: Static credentials from a credential helper (optional)

    Returns:
        Configured boto3 session
    """
    if credential is not None:
        return boto3.Session(
            aws_access_key_id=credential.access_key_id,
            aws_secret_access_key=credential.secret_access_key,
            aws_session_token=credential.session_token or None,
            region_name=region,
        )

    if config_file:
        core_session = botocore.session.Session()
        core_session.set_config_variable("config_file", config_file)
        core_session.set_config_variable("credentials_file", os.devnull)
        return boto3.Session(
            botocore_session=core_session,
            profile_name=profile,
            region_name=region,
        )

    return boto3.Session(profile_name=profile, region_name=region)


class AWSClient:
    """AWS client for EKS and EC2 operations of one profile and region."""

    def __init__(
        self,
        region: str,
        profile: str | None = None,
        session: boto3.Session | None = None,
    ):
        """Initialize AWS client.

        Args:
            region: AWS region
            profile: AWS profile name (optional)
            session: Existing boto3 session (optional, overrides profile)
        """
        self.region = region
        self.profile = profile
        self.session = session or boto3.Session(profile_name=profile, region_name=region)

        self.eks = self.session.client("eks", region_name=region)
        self.ec2 = self.session.client("ec2", region_name=region)

        logger.debug("aws_client_initialized", region=region, profile=profile)

    @retry_on_throttle()
    def list_eks_clusters(self) -> list[str]:
        """List all EKS cluster names in the region, following pagination.

        Raises:
            ClientError: If the API call fails
        """
        clusters: list[str] = []
        for page in self.eks.get_paginator("list_clusters").paginate():
            clusters.extend(page.get("clusters", []))

        logger.debug(
            "eks_clusters_listed", profile=self.profile, region=self.region, count=len(clusters)
        )
        return clusters

    @retry_on_throttle()
    def get_eks_cluster_info(self, cluster_name: str) -> dict[str, Any]:
        """Get the raw ``DescribeCluster`` response for a cluster.

        Args:
            cluster_name: Name of the EKS cluster

        Returns:
            Response dictionary (the ``cluster`` key may be absent)

        Raises:
            ClientError: If the API call fails
        """
        logger.debug("getting_eks_cluster_info", cluster_name=cluster_name, region=self.region)
        return cast(dict[str, Any], self.eks.describe_cluster(name=cluster_name))

    @retry_on_throttle()
    def list_enabled_regions(self) -> list[str]:
        """List regions enabled for the account, sorted by name."""
        response = self.ec2.describe_regions(
            AllRegions=False,
            Filters=[
                {
                    "Name": "opt-in-status",
                    "Values": ["opt-in-not-required", "opted-in"],
                }
            ],
        )
        regions = sorted(
            region["RegionName"]
            for region in response.get("Regions", [])
            if region.get("RegionName")
        )
        logger.debug("enabled_regions_listed", profile=self.profile, count=len(regions))
        return regions


class SSOPortalClient:
    """Client for the SSO portal API.

    The portal authenticates with the cached bearer token rather than with
    SigV4, so requests are sent unsigned.
    """

    def __init__(self, region: str, client: Any = None):
        """Initialize SSO portal client.

        Args:
            region: SSO region
            client: Pre-built boto3 ``sso`` client (optional)
        """
        self.region = region
        self.sso = client or boto3.client(
            "sso", region_name=region, config=Config(signature_version=UNSIGNED)
        )

    @retry_on_throttle()
    def list_accounts(self, access_token: str) -> list[dict[str, str]]:
        """List every account visible to the token, following pagination.

        Returns:
            Account records with ``accountId`` and ``accountName``
        """
        accounts: list[dict[str, str]] = []
        for page in self.sso.get_paginator("list_accounts").paginate(accessToken=access_token):
            accounts.extend(page.get("accountList", []))

        logger.debug("sso_accounts_listed", count=len(accounts))
        return accounts

    @retry_on_throttle()
    def list_account_roles(self, access_token: str, account_id: str) -> list[str]:
        """List role names for an account, sorted, blank names skipped."""
        roles: list[str] = []
        paginator = self.sso.get_paginator("list_account_roles")
        for page in paginator.paginate(accessToken=access_token, accountId=account_id):
            for role in page.get("roleList", []):
                name = (role.get("roleName") or "").strip()
                if name:
                    roles.append(name)

        return sorted(roles)


def eks_client_factory(
    config_file: str, resolver: CredentialResolver
) -> Callable[[str, str], AWSClient]:
    """Build a factory producing an ``AWSClient`` per (profile, region).

    Args:
        config_file: Shared config file listing the profiles
        resolver: Credential resolver prepared for the run

    Returns:
        Callable taking ``(profile, region)``
    """

    def factory(profile: str, region: str) -> AWSClient:
        resolved = resolver.resolve(profile)
        session = create_session(
            region,
            profile=profile,
            config_file=config_file,
            credential=resolved.external,
        )
        return AWSClient(region=region, profile=profile, session=session)

    return factory


def region_lister_factory(
    config_file: str, resolver: CredentialResolver
) -> Callable[[str], AWSClient]:
    """Build a factory producing the client used to expand ``all`` regions."""

    def factory(profile: str) -> AWSClient:
        resolved = resolver.resolve(profile)
        session = create_session(
            REGION_DISCOVERY_REGION,
            profile=profile,
            config_file=config_file,
            credential=resolved.external,
        )
        return AWSClient(region=REGION_DISCOVERY_REGION, profile=profile, session=session)

    return factory
