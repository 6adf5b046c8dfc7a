"""Custom exceptions for cfgctl."""


class CfgctlError(Exception):
    """Base exception for all cfgctl errors."""


class ConfigurationError(CfgctlError):
    """Configuration-related errors."""


class NoProfilesFoundError(ConfigurationError):
    """No AWS profiles could be read from the config or credentials file."""


class NoRegionsConfiguredError(ConfigurationError):
    """Region list is empty after normalization."""


class CredentialError(CfgctlError):
    """Authentication or credential resolution failed."""


class NoValidCredentialError(CredentialError):
    """No usable cached token or helper credential was found."""


class LoginRequiredError(NoValidCredentialError):
    """Cached SSO tokens exist but all of them have expired."""


class InvalidCredentialOutputError(CredentialError):
    """Credential helper exited non-zero or returned unusable output."""


class TokenCacheError(CredentialError):
    """A token cache file could not be read or parsed."""


class DiscoveryError(CfgctlError):
    """Resource discovery failed for the whole run."""


class DiscoveryTimeoutError(DiscoveryError):
    """A discovery API call exceeded its per-call timeout."""


class SynthesisError(CfgctlError):
    """Configuration entries could not be rendered."""


class TemplateError(SynthesisError):
    """Naming template is empty or rendered an empty name."""


class UnknownPlaceholderError(TemplateError):
    """Naming template contains a placeholder that was not substituted."""


class MergeError(CfgctlError):
    """Existing configuration could not be read for merging."""


class GenerationError(CfgctlError):
    """A provider failed during generation."""
