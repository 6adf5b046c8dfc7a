"""Configuration management for cfgctl."""

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from cfgctl.core.exceptions import ConfigurationError
from cfgctl.utils.paths import home_path, normalize_path

DEFAULT_CONFIG_FILE = "~/.config/cfgctl/config.yaml"
DEFAULT_MARKER_KEY = "automatically_generated"
DEFAULT_PROFILE_TEMPLATE = "{account}/{role}"
DEFAULT_NAMING_PATTERN = "{profile}-{cluster}"
DEFAULT_SSO_SCOPES = "sso:account:access"
DEFAULT_SSO_SESSION_NAME = "cfgctl"
DEMO_SSO_REGION = "us-east-1"
DEMO_SSO_START_URL = "https://example.awsapps.com/start"


def _default_token_cache_paths() -> list[str]:
    return [home_path(".aws", "sso", "cache"), home_path(".granted")]


class SSOConfig(BaseModel):
    """Shared SSO session settings."""

    start_url: str = ""
    region: str = ""
    session_name: str = DEFAULT_SSO_SESSION_NAME
    registration_scopes: str = DEFAULT_SSO_SCOPES


class RoleChain(BaseModel):
    """Profile assuming a role through another profile."""

    name: str
    role_arn: str
    source_profile: str
    region: str | None = None


class AWSProviderConfig(BaseModel):
    """AWS shared-config generation settings."""

    enabled: bool = True
    demo: bool = False
    config_path: str = Field(default_factory=lambda: home_path(".aws", "config"))
    credentials_path: str = Field(default_factory=lambda: home_path(".aws", "credentials"))
    generate_credentials: bool = False
    use_credential_process: bool = False
    marker_key: str = DEFAULT_MARKER_KEY
    prune: bool = False
    profile_prefix: str = ""
    profile_template: str = DEFAULT_PROFILE_TEMPLATE
    roles: list[str] = Field(default_factory=list)
    sso: SSOConfig = Field(default_factory=SSOConfig)
    token_cache_paths: list[str] = Field(default_factory=_default_token_cache_paths)
    role_chains: list[RoleChain] = Field(default_factory=list)
    parallel_workers: int = Field(default=10, gt=0)
    timeout_seconds: float = Field(default=30.0, gt=0)

    @field_validator("marker_key")
    @classmethod
    def default_marker_key(cls, value: str) -> str:
        """Fall back to the default marker when blank."""
        return value.strip() or DEFAULT_MARKER_KEY

    def validate_for_generation(self) -> None:
        """Normalize paths and check required SSO settings.

        Raises:
            ConfigurationError: If a required setting is missing or invalid
        """
        self.sso.start_url = self.sso.start_url.strip()
        self.sso.region = self.sso.region.strip()

        if self.demo:
            self.sso.start_url = self.sso.start_url or DEMO_SSO_START_URL
            self.sso.region = self.sso.region or DEMO_SSO_REGION
        else:
            if not self.sso.start_url:
                raise ConfigurationError("sso start url cannot be empty")
            if not self.sso.region:
                raise ConfigurationError("sso region cannot be empty")
            if not self.token_cache_paths:
                raise ConfigurationError("token cache paths cannot be empty")

        if not self.sso.session_name.strip():
            self.sso.session_name = DEFAULT_SSO_SESSION_NAME
        if not self.sso.registration_scopes.strip():
            self.sso.registration_scopes = DEFAULT_SSO_SCOPES
        if not self.profile_template.strip():
            self.profile_template = DEFAULT_PROFILE_TEMPLATE

        self.config_path = normalize_path(self.config_path, "config path")
        if self.generate_credentials:
            self.credentials_path = normalize_path(self.credentials_path, "credentials path")
        self.token_cache_paths = [
            normalize_path(path, "token cache path") for path in self.token_cache_paths
        ]


class EKSDiscoveryConfig(BaseModel):
    """Settings for EKS cluster discovery."""

    config_file: str = Field(default_factory=lambda: home_path(".aws", "config"))
    credentials_file: str = Field(default_factory=lambda: home_path(".aws", "credentials"))
    roles: list[str] = Field(default_factory=list)
    regions: list[str] = Field(default_factory=lambda: ["all"])
    parallel_workers: int = Field(default=10, gt=0)
    timeout_seconds: float = Field(default=30.0, gt=0)
    token_cache_paths: list[str] = Field(
        default_factory=lambda: [home_path(".aws", "sso", "cache")]
    )
    credential_helper: str = "aws-vault"


class MergeConfig(BaseModel):
    """Settings for merging existing kubeconfig files."""

    source_dir: str = Field(default_factory=lambda: home_path(".kube"))
    include_patterns: list[str] = Field(default_factory=lambda: ["*.yaml", "*.yml", "config"])
    exclude_patterns: list[str] = Field(default_factory=lambda: ["*.bak", "*.backup"])


class ManualExecConfig(BaseModel):
    """Exec-based authentication for a manual kubeconfig entry."""

    api_version: str = ""
    command: str = ""
    args: list[str] = Field(default_factory=list)
    env: dict[str, str] = Field(default_factory=dict)


class ManualAuthInfo(BaseModel):
    """User credentials for a manual kubeconfig entry."""

    client_certificate_data: str = ""
    client_certificate_file: str = ""
    client_key_data: str = ""
    client_key_file: str = ""
    token: str = ""
    username: str = ""
    password: str = ""
    exec: ManualExecConfig = Field(default_factory=ManualExecConfig)


class ManualContext(BaseModel):
    """Context settings for a manual kubeconfig entry."""

    namespace: str = ""


class ManualConfig(BaseModel):
    """A hand-maintained kubeconfig entry written alongside discovered clusters."""

    name: str = ""
    cluster: str = ""
    context: str = ""
    user: str = ""
    cluster_endpoint: str = ""
    cluster_ca_data: str = ""
    cluster_ca_file: str = ""
    auth_info: ManualAuthInfo = Field(default_factory=ManualAuthInfo)
    context_settings: ManualContext = Field(default_factory=ManualContext)

    def label(self) -> str:
        """Human-readable identifier for error messages."""
        for value in (self.name, self.cluster, self.context, self.user):
            if value.strip():
                return value.strip()
        return "(unnamed)"


class KubernetesProviderConfig(BaseModel):
    """Kubeconfig generation settings."""

    enabled: bool = True
    config_path: str = Field(default_factory=lambda: home_path(".kube", "config"))
    aws: EKSDiscoveryConfig = Field(default_factory=EKSDiscoveryConfig)
    naming_pattern: str = DEFAULT_NAMING_PATTERN
    merge_enabled: bool = False
    merge_only: bool = False
    merge: MergeConfig = Field(default_factory=MergeConfig)
    manual_configs: list[ManualConfig] = Field(default_factory=list)

    def validate_for_generation(self) -> None:
        """Normalize paths and check discovery settings.

        Raises:
            ConfigurationError: If a required setting is missing or invalid
        """
        self.config_path = normalize_path(self.config_path, "config path")
        self.merge.source_dir = normalize_path(self.merge.source_dir, "merge source directory")

        if self.merge_only:
            self.merge_enabled = True

        if not self.merge_only:
            self.aws.config_file = normalize_path(self.aws.config_file, "aws config file")
            if not self.aws.regions:
                raise ConfigurationError("aws regions cannot be empty")
            if self.aws.credentials_file.strip():
                self.aws.credentials_file = normalize_path(
                    self.aws.credentials_file, "aws credentials file"
                )
            self.aws.token_cache_paths = [
                normalize_path(path, "token cache path")
                for path in self.aws.token_cache_paths
                if path.strip()
            ]

        self.naming_pattern = self.naming_pattern.strip()
        if not self.naming_pattern:
            raise ConfigurationError("naming pattern cannot be empty")


class ProvidersConfig(BaseModel):
    """Per-provider settings."""

    aws: AWSProviderConfig = Field(default_factory=AWSProviderConfig)
    kubernetes: KubernetesProviderConfig = Field(default_factory=KubernetesProviderConfig)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "console"
    output: str = "stderr"


class CfgctlConfig(BaseModel):
    """Main cfgctl configuration."""

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    providers: ProvidersConfig = Field(default_factory=ProvidersConfig)

    @classmethod
    def from_file(cls, path: str | Path, missing_ok: bool = False) -> "CfgctlConfig":
        """Load configuration from YAML file.

        Args:
            path: Path to configuration file
            missing_ok: Return defaults instead of failing when the file is absent

        Returns:
            CfgctlConfig instance

        Raises:
            ConfigurationError: If file cannot be loaded or parsed
        """
        config_path = Path(path).expanduser()

        if not config_path.exists():
            if missing_ok:
                return cls()
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        try:
            with config_path.open() as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Failed to load configuration: {e}") from e

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigurationError("Invalid configuration: top level must be a mapping")

        try:
            return cls(**data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to dictionary.

        Returns:
            Dictionary representation
        """
        return self.model_dump()
