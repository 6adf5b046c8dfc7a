"""Unit tests for the AWS and Kubernetes providers."""

import threading
from pathlib import Path
from unittest.mock import MagicMock

import pytest
import yaml

from cfgctl.core.config import ManualAuthInfo, ManualConfig
from cfgctl.core.exceptions import (
    ConfigurationError,
    DiscoveryTimeoutError,
    LoginRequiredError,
    NoProfilesFoundError,
)
from cfgctl.credentials.resolver import CredentialResolver
from cfgctl.providers.aws_provider import AWSProfilesProvider
from cfgctl.providers.kubernetes_provider import KubernetesProvider

AWS_PROFILES = """\
[profile prod/AdminAccess]
sso_session = cfgctl

[profile staging/ReadOnly]
sso_session = cfgctl
"""


@pytest.fixture
def sso_client() -> MagicMock:
    """SSO portal client with one account and two roles."""
    client = MagicMock()
    client.list_accounts.return_value = [{"accountId": "111111111111", "accountName": "prod"}]
    client.list_account_roles.return_value = ["Admin", "ReadOnly"]
    return client


@pytest.fixture
def valid_token(token_cache):
    """A cached SSO token valid at the fixed clock time."""
    token_cache(
        "token.json",
        accessToken="cached-token",
        expiresAt="2026-01-01T13:00:00Z",
        region="us-east-1",
        startUrl="https://example.awsapps.com/start",
    )


class TestAWSProfilesProvider:
    """Tests for AWS shared config generation."""

    def test_demo_mode_writes_private_file(self, aws_config):
        """Demo data is written with owner-only permissions and a trailing newline."""
        aws_config.demo = True

        result = AWSProfilesProvider(aws_config).generate()

        path = Path(aws_config.config_path)
        content = path.read_text()
        assert result.files_created == [str(path)]
        assert path.stat().st_mode & 0o777 == 0o600
        assert content.startswith("[sso-session cfgctl]\n")
        assert "[profile demo/AdminAccess]\n" in content
        assert "[profile sandbox/AdminAccess]\n" in content
        assert content.endswith("automatically_generated = true\n")
        assert result.metadata["discovered_profiles"] == 3

    def test_discovers_with_cached_token(self, aws_config, valid_token, sso_client, fixed_clock):
        """The cached token is passed to the portal."""
        resolver = CredentialResolver(aws_config.token_cache_paths, clock=fixed_clock)
        provider = AWSProfilesProvider(aws_config, resolver=resolver, sso_client=sso_client)

        result = provider.generate()

        sso_client.list_accounts.assert_called_once_with("cached-token")
        assert "[profile prod/ReadOnly]" in Path(aws_config.config_path).read_text()
        assert result.warnings == []

    def test_missing_token_requires_login(self, aws_config, sso_client, fixed_clock):
        """Without a cached token the user is told to log in."""
        resolver = CredentialResolver(aws_config.token_cache_paths, clock=fixed_clock)
        provider = AWSProfilesProvider(aws_config, resolver=resolver, sso_client=sso_client)

        with pytest.raises(LoginRequiredError, match="cfgctl login"):
            provider.generate()

        assert not Path(aws_config.config_path).exists()
        sso_client.list_accounts.assert_not_called()

    def test_existing_file_skipped_without_force(self, aws_config):
        """An existing config is left alone unless forced."""
        aws_config.demo = True
        path = Path(aws_config.config_path)
        path.parent.mkdir(parents=True)
        path.write_text("[profile manual]\n")

        result = AWSProfilesProvider(aws_config).generate()

        assert result.files_skipped == [str(path)]
        assert "config file exists, use --force to overwrite" in result.warnings
        assert path.read_text() == "[profile manual]\n"

    def test_force_overwrites_with_backup(self, aws_config):
        """Forcing keeps a backup of the previous file."""
        aws_config.demo = True
        path = Path(aws_config.config_path)
        path.parent.mkdir(parents=True)
        path.write_text("[profile manual]\n")

        result = AWSProfilesProvider(aws_config).generate(force=True)

        assert result.files_created == [str(path)]
        assert len(result.backups) == 1
        assert Path(result.backups[0]).read_text() == "[profile manual]\n"
        assert result.backups[0].endswith(".bak")

    def test_force_without_backup(self, aws_config):
        """Backups can be disabled."""
        aws_config.demo = True
        path = Path(aws_config.config_path)
        path.parent.mkdir(parents=True)
        path.write_text("old\n")

        result = AWSProfilesProvider(aws_config).generate(force=True, backup=False)

        assert result.backups == []
        assert list(path.parent.glob("*.bak")) == []

    def test_prune_keeps_hand_written_profiles(self, aws_config):
        """With pruning, unmarked profiles survive regeneration."""
        aws_config.demo = True
        aws_config.prune = True
        path = Path(aws_config.config_path)
        path.parent.mkdir(parents=True)
        path.write_text(
            "[profile manual]\nregion = eu-west-1\n\n"
            "[profile old/Admin]\nautomatically_generated = true\n"
        )

        AWSProfilesProvider(aws_config).generate(force=True, backup=False)

        content = path.read_text()
        assert content.startswith("[profile manual]\nregion = eu-west-1\n\n[sso-session cfgctl]")
        assert "old/Admin" not in content

    def test_dry_run_writes_nothing(self, aws_config):
        """Dry-run returns the content in metadata."""
        aws_config.demo = True
        aws_config.generate_credentials = True
        aws_config.use_credential_process = True

        result = AWSProfilesProvider(aws_config).generate(dry_run=True)

        assert result.files_created == []
        assert not Path(aws_config.config_path).exists()
        assert "[profile demo/ReadOnly]" in result.metadata["config_content"]
        assert result.metadata["credentials_content"].startswith("[demo/AdminAccess]\n")
        assert "dry-run mode: no files were actually created" in result.warnings

    def test_credentials_file_generated(self, aws_config):
        """Credential process entries are written next to the config."""
        aws_config.demo = True
        aws_config.generate_credentials = True
        aws_config.use_credential_process = True

        result = AWSProfilesProvider(aws_config).generate()

        credentials = Path(aws_config.credentials_path).read_text()
        assert aws_config.credentials_path in result.files_created
        assert (
            "credential_process = granted credential-process --profile demo/ReadOnly\n"
            in credentials
        )
        assert result.metadata["credential_profiles"] == 3

    def test_credentials_require_credential_process(self, aws_config):
        """Without credential_process the credentials file is not generated."""
        aws_config.demo = True
        aws_config.generate_credentials = True

        result = AWSProfilesProvider(aws_config).generate()

        assert not Path(aws_config.credentials_path).exists()
        assert "credentials generation disabled: use_credential_process is false" in (
            result.warnings
        )

    def test_disabled(self, aws_config):
        """A disabled provider only reports a warning."""
        aws_config.enabled = False

        result = AWSProfilesProvider(aws_config).generate()

        assert result.warnings == ["aws provider is disabled"]

    def test_validate_requires_start_url(self, aws_config):
        """Live discovery needs an SSO start URL."""
        aws_config.sso.start_url = ""

        with pytest.raises(ConfigurationError, match="start url"):
            AWSProfilesProvider(aws_config).validate()


class TestKubernetesProvider:
    """Tests for kubeconfig generation."""

    @pytest.fixture
    def provider(self, kubernetes_config, mock_eks_client_factory, make_helper, fixed_clock):
        """Provider discovering one cluster per profile in us-east-1."""
        aws_config = Path(kubernetes_config.aws.config_file)
        aws_config.parent.mkdir(parents=True, exist_ok=True)
        aws_config.write_text(AWS_PROFILES)

        factory, clients = mock_eks_client_factory
        clients[("prod/AdminAccess", "us-east-1")] = {"api": "https://api.example.com"}
        clients[("staging/ReadOnly", "us-east-1")] = {"web": "https://web.example.com"}

        resolver = CredentialResolver(
            kubernetes_config.aws.token_cache_paths,
            helper=make_helper(is_available=False),
            clock=fixed_clock,
        )
        return KubernetesProvider(
            kubernetes_config,
            resolver=resolver,
            client_factory=factory,
            region_lister=MagicMock(),
        )

    def test_generate_writes_kubeconfig(self, provider, kubernetes_config):
        """Discovered clusters become contexts in a private kubeconfig."""
        result = provider.generate()

        path = Path(kubernetes_config.config_path)
        document = yaml.safe_load(path.read_text())
        assert result.files_created == [str(path)]
        assert path.stat().st_mode & 0o777 == 0o600
        assert [c["name"] for c in document["contexts"]] == [
            "prod/AdminAccess-api",
            "staging/ReadOnly-web",
        ]
        assert result.metadata["discovered_clusters"] == 2
        assert result.metadata["contexts"] == ["prod/AdminAccess-api", "staging/ReadOnly-web"]

    def test_role_filter(self, provider, kubernetes_config):
        """Only profiles with a matching role are scanned."""
        kubernetes_config.aws.roles = ["readonly"]

        result = provider.generate()

        assert result.metadata["contexts"] == ["staging/ReadOnly-web"]

    def test_role_filter_without_matches(self, provider, kubernetes_config):
        """A filter matching nothing is an error."""
        kubernetes_config.aws.roles = ["billing"]

        with pytest.raises(NoProfilesFoundError, match="billing"):
            provider.generate()

    def test_all_regions_listed(self, provider, kubernetes_config):
        """``all`` expands through the region lister with the first profile."""
        kubernetes_config.aws.regions = ["all"]
        provider.region_lister.return_value.list_enabled_regions.return_value = ["us-east-1"]

        provider.generate()

        provider.region_lister.assert_called_once_with("prod/AdminAccess")

    def test_region_listing_uses_discovery_timeout(self, provider, kubernetes_config):
        """A hung region listing fails after the configured timeout."""
        release = threading.Event()
        kubernetes_config.aws.regions = ["all"]
        kubernetes_config.aws.timeout_seconds = 0.05
        lister = provider.region_lister.return_value
        lister.list_enabled_regions.side_effect = lambda: release.wait(2)

        try:
            with pytest.raises(DiscoveryTimeoutError, match="describe regions"):
                provider.generate()
        finally:
            release.set()

    def test_existing_kubeconfig_skipped(self, provider, kubernetes_config):
        """An existing kubeconfig is not overwritten without force."""
        path = Path(kubernetes_config.config_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("apiVersion: v1\n")

        result = provider.generate()

        assert result.files_skipped == [str(path)]
        assert "kubeconfig already exists, use --force to overwrite" in result.warnings
        assert path.read_text() == "apiVersion: v1\n"

    def test_dry_run(self, provider, kubernetes_config):
        """Dry-run renders YAML into metadata only."""
        result = provider.generate(dry_run=True)

        assert not Path(kubernetes_config.config_path).exists()
        assert "prod/AdminAccess-api" in result.metadata["dry_run_kubeconfig"]
        assert result.metadata["dry_run_output"] == kubernetes_config.config_path

    def test_no_clusters(self, provider, mock_eks_client_factory):
        """Nothing discovered and nothing to merge writes nothing."""
        _, clients = mock_eks_client_factory
        clients.clear()

        result = provider.generate()

        assert result.files_created == []
        assert "no kubeconfig data generated" in result.warnings

    def test_manual_configs_added(self, provider, kubernetes_config):
        """Manual entries are written alongside discovered clusters."""
        kubernetes_config.manual_configs = [
            ManualConfig(
                name="onprem",
                cluster_endpoint="https://10.0.0.1:6443",
                auth_info=ManualAuthInfo(token="t"),
            )
        ]

        result = provider.generate()

        assert "onprem" in result.metadata["contexts"]
        assert len(result.metadata["contexts"]) == 3

    def test_merge_only_skips_discovery(self, provider, kubernetes_config):
        """Merge-only mode combines existing files without calling AWS."""
        kubernetes_config.merge_only = True
        sources = Path(kubernetes_config.merge.source_dir)
        sources.mkdir(parents=True)
        (sources / "team.yaml").write_text(
            yaml.safe_dump(
                {
                    "clusters": [{"name": "team", "cluster": {"server": "https://team"}}],
                    "users": [{"name": "team", "user": {"token": "t"}}],
                    "contexts": [{"name": "team", "context": {"cluster": "team", "user": "team"}}],
                }
            )
        )
        provider.client_factory = MagicMock(side_effect=AssertionError("discovery ran"))

        result = provider.generate()

        assert result.metadata["contexts"] == ["team"]
        assert result.metadata["merge_files"] == [str(sources / "team.yaml")]
        assert result.metadata["discovered_clusters"] == 0

    def test_disabled(self, kubernetes_config):
        """A disabled provider only reports a warning."""
        kubernetes_config.enabled = False

        result = KubernetesProvider(kubernetes_config).generate()

        assert result.warnings == ["kubernetes provider is disabled"]
