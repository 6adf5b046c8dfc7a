"""Kubeconfig provider backed by EKS discovery."""

import asyncio
from collections.abc import Callable
from pathlib import Path

from cfgctl.clients.aws_client import AWSClient, eks_client_factory, region_lister_factory
from cfgctl.clients.aws_vault import AWSVaultHelper
from cfgctl.core.config import KubernetesProviderConfig
from cfgctl.core.exceptions import GenerationError, NoProfilesFoundError
from cfgctl.core.models import Cluster, DiscoveryResult, GenerateResult
from cfgctl.credentials.resolver import CredentialResolver
from cfgctl.discovery.orchestrator import DiscoveryOrchestrator
from cfgctl.discovery.profiles import filter_profiles_by_role, list_profiles, resolve_regions
from cfgctl.interfaces.provider import Provider
from cfgctl.merge.kubeconfig_merge import (
    dump_kubeconfig,
    merge_into,
    merge_kubeconfigs,
    write_kubeconfig,
)
from cfgctl.synthesis.kubeconfig import Kubeconfig, build_kubeconfig, build_manual_kubeconfig
from cfgctl.utils.logging import get_logger
from cfgctl.utils.paths import backup_file

logger = get_logger(__name__)


class KubernetesProvider(Provider):
    """Generates kubeconfig entries for every reachable EKS cluster."""

    def __init__(
        self,
        config: KubernetesProviderConfig,
        resolver: CredentialResolver | None = None,
        client_factory: Callable[[str, str], AWSClient] | None = None,
        region_lister: Callable[[str], AWSClient] | None = None,
    ):
        """Initialize Kubernetes provider.

        Args:
            config: Kubernetes provider configuration
            resolver: Credential resolver (optional, built from config)
            client_factory: Builds an EKS client per (profile, region) (optional)
            region_lister: Builds the client used to list enabled regions (optional)
        """
        self.config = config
        self.resolver = resolver
        self.client_factory = client_factory
        self.region_lister = region_lister

    @property
    def name(self) -> str:
        """Provider identifier."""
        return "kubernetes"

    @property
    def enabled(self) -> bool:
        """Whether kubeconfig generation is enabled."""
        return self.config.enabled

    def validate(self) -> None:
        """Validate and normalize configuration."""
        if self.enabled:
            self.config.validate_for_generation()

    def _resolver(self) -> CredentialResolver:
        if self.resolver is None:
            self.resolver = CredentialResolver(
                self.config.aws.token_cache_paths,
                helper=AWSVaultHelper(command=self.config.aws.credential_helper),
            )
        return self.resolver

    def discover(self) -> DiscoveryResult:
        """Discover EKS clusters across configured profiles and regions.

        Raises:
            NoProfilesFoundError: If no profile is left to scan
            NoRegionsConfiguredError: If no region is left to scan
            CredentialError: If credentials cannot be prepared
            DiscoveryError: If discovery fails
        """
        aws = self.config.aws
        profiles = list_profiles(aws.config_file, aws.credentials_file)
        logger.debug("aws_profiles_resolved", count=len(profiles))

        if aws.roles:
            profiles = filter_profiles_by_role(profiles, aws.roles)
            logger.debug("profiles_filtered_by_role", roles=aws.roles, remaining=len(profiles))
            if not profiles:
                raise NoProfilesFoundError(
                    f"no aws profiles match roles {', '.join(aws.roles)}"
                )

        resolver = self._resolver()
        auth_mode = resolver.prepare(profiles)

        region_lister = self.region_lister or region_lister_factory(aws.config_file, resolver)
        regions = resolve_regions(
            aws.regions, profiles[0], region_lister, timeout_seconds=aws.timeout_seconds
        )

        client_factory = self.client_factory or eks_client_factory(aws.config_file, resolver)
        orchestrator = DiscoveryOrchestrator(
            max_workers=aws.parallel_workers,
            timeout_seconds=aws.timeout_seconds,
        )
        return asyncio.run(
            orchestrator.discover_clusters(profiles, regions, client_factory, auth_mode)
        )

    def build(self) -> tuple[Kubeconfig | None, list[str], list[str], int]:
        """Discover and assemble the kubeconfig to write.

        Returns:
            Tuple of (kubeconfig or None when there is nothing to write,
            merged source files, warnings, discovered cluster count)
        """
        warnings: list[str] = []
        clusters: list[Cluster] = []
        generated: Kubeconfig | None = None

        if not self.config.merge_only:
            discovery = self.discover()
            warnings.extend(discovery.warnings)
            clusters = [
                resource for resource in discovery.resources if isinstance(resource, Cluster)
            ]
            if clusters:
                generated, collisions = build_kubeconfig(clusters, self.config.naming_pattern)
                warnings.extend(collisions)

        if self.config.manual_configs:
            manual = build_manual_kubeconfig(self.config.manual_configs)
            if generated is None:
                generated = manual
            else:
                merge_into(generated, manual)

        if not self.config.merge_enabled:
            return generated, [], warnings, len(clusters)

        merged, files = merge_kubeconfigs(self.config.config_path, self.config.merge, generated)
        return merged, files, warnings, len(clusters)

    def generate(
        self, dry_run: bool = False, force: bool = False, backup: bool = True
    ) -> GenerateResult:
        """Discover clusters and write the kubeconfig file."""
        result = GenerateResult(provider=self.name)

        if not self.enabled:
            result.warnings.append("kubernetes provider is disabled")
            return result

        self.validate()

        kubeconfig, merge_files, warnings, cluster_count = self.build()
        result.warnings.extend(warnings)

        if kubeconfig is None:
            result.warnings.append("no kubeconfig data generated")
            return result

        if merge_files:
            result.metadata["merge_files"] = merge_files
        result.metadata["discovered_clusters"] = cluster_count
        result.metadata["regions"] = list(self.config.aws.regions)
        result.metadata["contexts"] = kubeconfig.context_names()

        output_path = self.config.config_path

        if dry_run:
            result.warnings.append("dry-run mode: no files were actually created")
            result.metadata["dry_run_output"] = output_path
            result.metadata["dry_run_kubeconfig"] = dump_kubeconfig(kubeconfig)
            return result

        if Path(output_path).exists() and not force:
            result.files_skipped.append(output_path)
            result.warnings.append("kubeconfig already exists, use --force to overwrite")
            return result

        try:
            if backup:
                backup_path = backup_file(output_path)
                if backup_path:
                    result.backups.append(backup_path)
            write_kubeconfig(output_path, kubeconfig)
        except OSError as e:
            raise GenerationError(f"write kubeconfig {output_path}: {e}") from e
        result.files_created.append(output_path)

        logger.info(
            "kubeconfig_generated",
            path=output_path,
            contexts=len(kubeconfig.contexts),
            warnings=len(result.warnings),
        )
        return result
