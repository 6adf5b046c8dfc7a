"""AWS shared-config provider."""

import asyncio
from pathlib import Path

from cfgctl.clients.aws_client import SSOPortalClient
from cfgctl.core.config import AWSProviderConfig
from cfgctl.core.exceptions import GenerationError, LoginRequiredError, NoValidCredentialError
from cfgctl.core.models import AccountRole, DiscoveryResult, GenerateResult, MergePolicy
from cfgctl.credentials.resolver import CredentialResolver
from cfgctl.discovery.orchestrator import DiscoveryOrchestrator, demo_account_roles
from cfgctl.interfaces.provider import Provider
from cfgctl.merge.sections import merge_with_file
from cfgctl.synthesis.aws_config import build_config_content, build_credential_process_content
from cfgctl.utils.logging import get_logger
from cfgctl.utils.paths import backup_file, write_private_file

logger = get_logger(__name__)


class AWSProfilesProvider(Provider):
    """Generates AWS CLI profiles for every SSO account role."""

    def __init__(
        self,
        config: AWSProviderConfig,
        resolver: CredentialResolver | None = None,
        sso_client: SSOPortalClient | None = None,
    ):
        """Initialize AWS provider.

        Args:
            config: AWS provider configuration
            resolver: Credential resolver (optional, built from config)
            sso_client: SSO portal client (optional, built from config)
        """
        self.config = config
        self.resolver = resolver
        self.sso_client = sso_client

    @property
    def name(self) -> str:
        """Provider identifier."""
        return "aws"

    @property
    def enabled(self) -> bool:
        """Whether AWS generation is enabled."""
        return self.config.enabled

    def validate(self) -> None:
        """Validate and normalize configuration."""
        if self.enabled:
            self.config.validate_for_generation()

    def discover(self) -> DiscoveryResult:
        """List account roles visible to the cached SSO token.

        Raises:
            LoginRequiredError: If no valid SSO token is cached
            DiscoveryError: If SSO discovery fails
        """
        if self.config.demo:
            logger.info("using_demo_account_roles")
            return DiscoveryResult(resources=demo_account_roles())

        resolver = self.resolver or CredentialResolver(self.config.token_cache_paths)
        try:
            token = resolver.token(self.config.sso.start_url, self.config.sso.region)
        except NoValidCredentialError as e:
            if isinstance(e, LoginRequiredError):
                raise
            raise LoginRequiredError(
                "sso session missing or expired, "
                "run 'cfgctl login' or 'aws sso login' to refresh"
            ) from e

        client = self.sso_client or SSOPortalClient(self.config.sso.region)
        orchestrator = DiscoveryOrchestrator(
            max_workers=self.config.parallel_workers,
            timeout_seconds=self.config.timeout_seconds,
        )
        return asyncio.run(
            orchestrator.discover_account_roles(client, token.access_token, self.config.roles)
        )

    def generate(
        self, dry_run: bool = False, force: bool = False, backup: bool = True
    ) -> GenerateResult:
        """Discover account roles and write the AWS config file."""
        result = GenerateResult(provider=self.name)

        if not self.enabled:
            result.warnings.append("aws provider is disabled")
            return result

        self.validate()
        output_path = self.config.config_path

        if Path(output_path).exists() and not force and not dry_run:
            result.files_skipped.append(output_path)
            result.warnings.append("config file exists, use --force to overwrite")
            return result

        discovery = self.discover()
        result.warnings.extend(discovery.warnings)
        account_roles = [
            resource for resource in discovery.resources if isinstance(resource, AccountRole)
        ]

        content, names, warnings = build_config_content(self.config, account_roles)
        result.warnings.extend(warnings)

        if self.config.prune:
            content = merge_with_file(
                output_path,
                content,
                MergePolicy(
                    marker_key=self.config.marker_key,
                    generated_names=names,
                    session_name=self.config.sso.session_name,
                ),
            )

        credentials_enabled = (
            self.config.generate_credentials and self.config.use_credential_process
        )
        credentials_content = ""
        if self.config.generate_credentials and not self.config.use_credential_process:
            result.warnings.append(
                "credentials generation disabled: use_credential_process is false"
            )
        if credentials_enabled:
            credentials_content = build_credential_process_content(names)
            result.metadata["credential_profiles"] = len(names)

        result.metadata["discovered_profiles"] = len(account_roles)

        if dry_run:
            result.warnings.append("dry-run mode: no files were actually created")
            result.metadata["config_path"] = output_path
            result.metadata["config_content"] = content
            if credentials_enabled:
                result.metadata["credentials_path"] = self.config.credentials_path
                result.metadata["credentials_content"] = credentials_content
            return result

        credentials_path = self.config.credentials_path
        write_credentials = credentials_enabled
        if credentials_enabled and Path(credentials_path).exists() and not force:
            result.files_skipped.append(credentials_path)
            result.warnings.append("credentials file exists, use --force to overwrite")
            write_credentials = False

        self._write(output_path, content, backup, result)
        if write_credentials:
            self._write(credentials_path, credentials_content, backup, result)

        logger.info(
            "aws_config_generated",
            path=output_path,
            profiles=len(names),
            warnings=len(result.warnings),
        )
        return result

    def _write(self, path: str, content: str, backup: bool, result: GenerateResult) -> None:
        try:
            if backup:
                backup_path = backup_file(path)
                if backup_path:
                    result.backups.append(backup_path)
            write_private_file(path, content + "\n")
        except OSError as e:
            raise GenerationError(f"write {path}: {e}") from e
        result.files_created.append(path)
