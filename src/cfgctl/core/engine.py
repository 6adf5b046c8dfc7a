"""Generation engine coordinating providers."""

from cfgctl.core.config import CfgctlConfig
from cfgctl.core.exceptions import CfgctlError, ConfigurationError, GenerationError
from cfgctl.core.models import GenerateResult
from cfgctl.interfaces.provider import Provider
from cfgctl.utils.logging import get_logger, log_error, provider_context

logger = get_logger(__name__)


class Engine:
    """Runs validation and generation for a set of providers."""

    def __init__(self, providers: list[Provider]):
        """Initialize engine.

        Args:
            providers: Registered providers, in execution order
        """
        self.providers = {provider.name: provider for provider in providers}
        logger.debug("engine_initialized", providers=list(self.providers))

    @classmethod
    def from_config(cls, config: CfgctlConfig) -> "Engine":
        """Build an engine with the AWS and Kubernetes providers."""
        from cfgctl.providers.aws_provider import AWSProfilesProvider
        from cfgctl.providers.kubernetes_provider import KubernetesProvider

        return cls(
            [
                AWSProfilesProvider(config.providers.aws),
                KubernetesProvider(config.providers.kubernetes),
            ]
        )

    def resolve(self, provider_names: list[str] | None = None) -> list[Provider]:
        """Select providers by name; no names selects every registered provider.

        Raises:
            ConfigurationError: If a name is not registered
        """
        if not provider_names:
            return list(self.providers.values())

        selected = []
        for name in provider_names:
            provider = self.providers.get(name)
            if provider is None:
                known = ", ".join(sorted(self.providers))
                raise ConfigurationError(f"unknown provider {name!r} (known: {known})")
            selected.append(provider)
        return selected

    def validate(self, provider_names: list[str] | None = None) -> list[Provider]:
        """Validate the selected providers.

        Returns:
            The validated providers

        Raises:
            ConfigurationError: If any provider configuration is invalid
        """
        providers = self.resolve(provider_names)
        for provider in providers:
            with provider_context(provider.name):
                logger.debug("validating_provider")
                provider.validate()
        return providers

    def execute(
        self,
        provider_names: list[str] | None = None,
        dry_run: bool = False,
        force: bool = False,
        backup: bool = True,
    ) -> dict[str, GenerateResult]:
        """Validate every selected provider, then generate each in order.

        Args:
            provider_names: Providers to run (all when empty)
            dry_run: Render without writing files
            force: Overwrite existing output files
            backup: Copy existing output files aside before overwriting

        Returns:
            Results keyed by provider name

        Raises:
            ConfigurationError: If validation fails
            GenerationError: If a provider fails during generation
        """
        providers = self.validate(provider_names)
        if not providers:
            raise ConfigurationError("no providers to execute")

        logger.info("generation_started", providers=[p.name for p in providers], dry_run=dry_run)

        results: dict[str, GenerateResult] = {}
        for provider in providers:
            with provider_context(provider.name):
                try:
                    result = provider.generate(dry_run=dry_run, force=force, backup=backup)
                except CfgctlError as e:
                    log_error(logger, e, operation="generate")
                    raise GenerationError(
                        f"generation failed for provider {provider.name!r}: {e}"
                    ) from e

                results[provider.name] = result
                logger.info(
                    "provider_completed",
                    files_created=len(result.files_created),
                    warnings=len(result.warnings),
                )

        return results
