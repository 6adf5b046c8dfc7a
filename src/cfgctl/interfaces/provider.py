"""Provider interface for configuration generators."""

from abc import ABC, abstractmethod

from cfgctl.core.models import GenerateResult


class Provider(ABC):
    """Abstract interface for a configuration provider.

    A provider owns one family of generated files (AWS shared config,
    kubeconfig). The engine validates every selected provider before any of
    them generates.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique provider identifier used on the command line."""

    @property
    @abstractmethod
    def enabled(self) -> bool:
        """Whether the provider is enabled in configuration."""

    @abstractmethod
    def validate(self) -> None:
        """Check prerequisites and normalize settings.

        Raises:
            ConfigurationError: If the configuration is invalid
        """

    @abstractmethod
    def generate(
        self, dry_run: bool = False, force: bool = False, backup: bool = True
    ) -> GenerateResult:
        """Discover resources and write configuration.

        Args:
            dry_run: Render content into the result instead of writing files
            force: Overwrite an existing output file
            backup: Copy an existing output file aside before overwriting it

        Returns:
            Files written or skipped, warnings and metadata

        Raises:
            CfgctlError: On any fatal error; no file is written in that case
        """
