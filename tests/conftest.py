"""Pytest configuration and shared fixtures."""

import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from cfgctl.core.config import AWSProviderConfig, KubernetesProviderConfig, SSOConfig
from cfgctl.core.models import AccountRole, AuthMode, Cluster, ExternalCredential
from cfgctl.interfaces.credential_helper import CredentialHelper

TEST_START_URL = "https://example.awsapps.com/start"
TEST_REGION = "us-east-1"
FIXED_NOW = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)


class StubCredentialHelper(CredentialHelper):
    """In-memory credential helper recording every fetch."""

    def __init__(self, is_available: bool = True, fail_for: set[str] | None = None):
        self.is_available = is_available
        self.fail_for = fail_for or set()
        self.calls: list[str] = []

    @property
    def name(self) -> str:
        return "aws-vault"

    def available(self) -> bool:
        return self.is_available

    def fetch(self, profile: str) -> ExternalCredential:
        from cfgctl.core.exceptions import InvalidCredentialOutputError

        self.calls.append(profile)
        if profile in self.fail_for:
            raise InvalidCredentialOutputError(f"helper failed for {profile}")
        return ExternalCredential(
            AccessKeyId=f"AKIA{profile.upper()}",
            SecretAccessKey="secret",
            SessionToken="token",
        )


@pytest.fixture
def client_error():
    """Builder for botocore ClientErrors with a given error code."""

    def build(code: str, operation: str = "ListClusters") -> ClientError:
        return ClientError({"Error": {"Code": code, "Message": code}}, operation)

    return build


@pytest.fixture
def token_cache(tmp_path: Path):
    """Writer for SSO token cache files under ``tmp_path/sso/cache``."""
    directory = tmp_path / "sso" / "cache"

    def write(name: str, **fields: Any) -> Path:
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / name
        path.write_text(json.dumps(fields))
        return path

    write.directory = directory
    return write


@pytest.fixture
def fixed_clock():
    """Clock returning a fixed instant."""
    return lambda: FIXED_NOW


@pytest.fixture
def stub_helper() -> StubCredentialHelper:
    """Available credential helper."""
    return StubCredentialHelper()


@pytest.fixture
def make_helper():
    """Builder for credential helpers with custom availability and failures."""
    return StubCredentialHelper


@pytest.fixture
def aws_config(tmp_path: Path) -> AWSProviderConfig:
    """AWS provider configuration writing under a temporary directory."""
    return AWSProviderConfig(
        config_path=str(tmp_path / "aws" / "config"),
        credentials_path=str(tmp_path / "aws" / "credentials"),
        sso=SSOConfig(start_url=TEST_START_URL, region=TEST_REGION),
        token_cache_paths=[str(tmp_path / "sso" / "cache")],
    )


@pytest.fixture
def kubernetes_config(tmp_path: Path) -> KubernetesProviderConfig:
    """Kubernetes provider configuration writing under a temporary directory."""
    config = KubernetesProviderConfig(config_path=str(tmp_path / "kube" / "config"))
    config.aws.config_file = str(tmp_path / "aws" / "config")
    config.aws.credentials_file = ""
    config.aws.regions = ["us-east-1"]
    config.aws.token_cache_paths = [str(tmp_path / "sso" / "cache")]
    config.merge.source_dir = str(tmp_path / "kube" / "sources")
    return config


@pytest.fixture
def sample_account_roles() -> list[AccountRole]:
    """Two roles in one production account."""
    return [
        AccountRole(account_id="111111111111", account_name="prod", role_name="Admin"),
        AccountRole(account_id="111111111111", account_name="prod", role_name="ReadOnly"),
    ]


@pytest.fixture
def sample_cluster() -> Cluster:
    """A discovered cluster with CA data."""
    return Cluster(
        profile="prod/AdminAccess",
        region="us-east-1",
        name="api",
        endpoint="https://api.eks.example.com",
        ca_data=b"ca-bytes",
        auth_mode=AuthMode.SSO,
    )


@pytest.fixture
def mock_eks_client_factory():
    """Factory of MagicMock EKS clients keyed by (profile, region).

    Returns a tuple of (factory, clients). Populate ``clients`` with
    ``{(profile, region): {cluster_name: endpoint}}`` before use, or assign
    an exception to raise from ``list_eks_clusters``.
    """
    clients: dict[tuple[str, str], Any] = {}

    def factory(profile: str, region: str) -> MagicMock:
        listing = clients.get((profile, region), {})
        client = MagicMock()
        if isinstance(listing, Exception):
            client.list_eks_clusters.side_effect = listing
            return client
        client.list_eks_clusters.return_value = list(listing)
        client.get_eks_cluster_info.side_effect = lambda name: {
            "cluster": {
                "name": name,
                "endpoint": listing[name],
                "certificateAuthority": {"data": "Y2EtYnl0ZXM="},
            }
        }
        return client

    return factory, clients
