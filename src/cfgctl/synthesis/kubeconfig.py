"""Kubeconfig synthesis for discovered and manually configured clusters."""

import base64
import binascii
from dataclasses import dataclass, field
from typing import Any

from cfgctl.core.config import ManualConfig, ManualExecConfig
from cfgctl.core.exceptions import ConfigurationError, TemplateError
from cfgctl.core.models import AuthMode, Cluster
from cfgctl.synthesis.naming import render_name
from cfgctl.utils.logging import get_logger

logger = get_logger(__name__)

KUBECONFIG_KIND = "Config"
KUBECONFIG_API_VERSION = "v1"
EXEC_API_VERSION = "client.authentication.k8s.io/v1"
EXEC_INTERACTIVE_MODE = "IfAvailable"


@dataclass
class Kubeconfig:
    """In-memory kubeconfig keyed by entry name.

    Each map holds the body of a named entry in kubeconfig YAML shape, e.g.
    ``clusters["prod"] == {"server": ..., "certificate-authority-data": ...}``.
    """

    clusters: dict[str, dict[str, Any]] = field(default_factory=dict)
    users: dict[str, dict[str, Any]] = field(default_factory=dict)
    contexts: dict[str, dict[str, Any]] = field(default_factory=dict)
    current_context: str = ""
    preferences: dict[str, Any] = field(default_factory=dict)
    kind: str = KUBECONFIG_KIND
    api_version: str = KUBECONFIG_API_VERSION

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Kubeconfig":
        """Build from a parsed kubeconfig document.

        Raises:
            ConfigurationError: If a named list is malformed
        """

        def named(key: str, body_key: str) -> dict[str, dict[str, Any]]:
            entries = data.get(key) or []
            if not isinstance(entries, list):
                raise ConfigurationError(f"kubeconfig {key} must be a list")
            result = {}
            for entry in entries:
                if not isinstance(entry, dict) or not entry.get("name"):
                    raise ConfigurationError(f"kubeconfig {key} entry is missing a name")
                result[str(entry["name"])] = dict(entry.get(body_key) or {})
            return result

        return cls(
            clusters=named("clusters", "cluster"),
            users=named("users", "user"),
            contexts=named("contexts", "context"),
            current_context=data.get("current-context") or "",
            preferences=dict(data.get("preferences") or {}),
            kind=data.get("kind") or KUBECONFIG_KIND,
            api_version=data.get("apiVersion") or KUBECONFIG_API_VERSION,
        )

    def to_dict(self) -> dict[str, Any]:
        """Render as a kubeconfig document with entries sorted by name."""
        return {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "preferences": self.preferences,
            "clusters": [
                {"name": name, "cluster": self.clusters[name]} for name in sorted(self.clusters)
            ],
            "users": [{"name": name, "user": self.users[name]} for name in sorted(self.users)],
            "contexts": [
                {"name": name, "context": self.contexts[name]} for name in sorted(self.contexts)
            ],
            "current-context": self.current_context,
        }

    def context_names(self) -> list[str]:
        """Sorted context names."""
        return sorted(self.contexts)


def exec_config_for_cluster(cluster: Cluster) -> dict[str, Any]:
    """Exec credential plugin settings for a discovered cluster.

    Clusters discovered through aws-vault wrap ``aws eks get-token`` in
    ``aws-vault exec`` and export only the account part of the profile.
    """
    token_args = ["eks", "get-token", "--cluster-name", cluster.name, "--region", cluster.region]

    if cluster.auth_mode == AuthMode.AWS_VAULT:
        command = "aws-vault"
        args = ["exec", cluster.profile, "--", "aws", *token_args]
        aws_profile = cluster.account
    else:
        command = "aws"
        args = token_args
        aws_profile = cluster.profile

    return {
        "apiVersion": EXEC_API_VERSION,
        "command": command,
        "args": args,
        "env": [{"name": "AWS_PROFILE", "value": aws_profile}],
        "interactiveMode": EXEC_INTERACTIVE_MODE,
        "provideClusterInfo": False,
    }


def build_kubeconfig(
    clusters: list[Cluster], naming_pattern: str
) -> tuple[Kubeconfig, list[str]]:
    """Build a kubeconfig with one cluster, user and context per discovered cluster.

    Args:
        clusters: Discovered clusters in sorted order
        naming_pattern: Template for entry names

    Returns:
        Tuple of (kubeconfig, name collision warnings)

    Raises:
        TemplateError: If the naming pattern is invalid
    """
    if not naming_pattern.strip():
        raise TemplateError("naming pattern cannot be empty")

    config = Kubeconfig()
    owners: dict[str, Cluster] = {}
    warnings: list[str] = []

    for cluster in clusters:
        name = render_name(naming_pattern, cluster.naming_fields())

        previous = owners.get(name)
        if previous is not None:
            warnings.append(
                f'kubeconfig entry "{name}" generated more than once: cluster '
                f'"{previous.name}" ({previous.profile}, {previous.region}) replaced by '
                f'"{cluster.name}" ({cluster.profile}, {cluster.region})'
            )
        owners[name] = cluster

        cluster_body: dict[str, Any] = {"server": cluster.endpoint}
        if cluster.ca_data:
            cluster_body["certificate-authority-data"] = base64.b64encode(
                cluster.ca_data
            ).decode("ascii")

        config.clusters[name] = cluster_body
        config.users[name] = {"exec": exec_config_for_cluster(cluster)}
        config.contexts[name] = {"cluster": name, "user": name}

    logger.debug("kubeconfig_built", entries=len(config.contexts), collisions=len(warnings))
    return config, warnings


def _normalize_base64(value: str, field_name: str, entry: ManualConfig) -> str:
    try:
        decoded = base64.b64decode(value.strip(), validate=True)
    except (binascii.Error, ValueError) as e:
        raise ConfigurationError(
            f"manual config {entry.label()!r} {field_name} is not valid base64: {e}"
        ) from e
    return base64.b64encode(decoded).decode("ascii")


def _manual_exec(exec_config: ManualExecConfig, entry: ManualConfig) -> dict[str, Any] | None:
    api_version = exec_config.api_version.strip()
    command = exec_config.command.strip()

    if not api_version and not command and not exec_config.args and not exec_config.env:
        return None
    if not command:
        raise ConfigurationError(f"manual config {entry.label()!r} exec config requires command")

    result: dict[str, Any] = {
        "apiVersion": api_version or EXEC_API_VERSION,
        "command": command,
        "args": list(exec_config.args),
        "interactiveMode": EXEC_INTERACTIVE_MODE,
    }

    env = [
        {"name": key, "value": exec_config.env[key].strip()}
        for key in sorted(exec_config.env)
        if exec_config.env[key].strip()
    ]
    if env:
        result["env"] = env

    return result


def _manual_user(entry: ManualConfig) -> dict[str, Any]:
    auth = entry.auth_info
    user: dict[str, Any] = {}

    for key, value in (
        ("token", auth.token),
        ("username", auth.username),
        ("password", auth.password),
        ("client-certificate", auth.client_certificate_file),
        ("client-key", auth.client_key_file),
    ):
        if value.strip():
            user[key] = value.strip()

    if auth.client_certificate_data.strip():
        user["client-certificate-data"] = _normalize_base64(
            auth.client_certificate_data, "client_certificate_data", entry
        )
    if auth.client_key_data.strip():
        user["client-key-data"] = _normalize_base64(
            auth.client_key_data, "client_key_data", entry
        )

    exec_config = _manual_exec(auth.exec, entry)
    if exec_config is not None:
        user["exec"] = exec_config

    return user


def build_manual_kubeconfig(manual_configs: list[ManualConfig]) -> Kubeconfig:
    """Build a kubeconfig from hand-maintained entries.

    Cluster, context and user names default to the entry's ``name``.

    Raises:
        ConfigurationError: If an entry lacks a name or endpoint, carries
            invalid base64 data, or has an exec block without a command
    """
    if not manual_configs:
        raise ConfigurationError("manual configs are empty")

    config = Kubeconfig()

    for entry in manual_configs:
        name = entry.name.strip()
        cluster_name = entry.cluster.strip() or name
        context_name = entry.context.strip() or name
        user_name = entry.user.strip() or name
        if not (cluster_name and context_name and user_name):
            raise ConfigurationError(
                f"manual config {entry.label()!r} must define cluster, context, and user names"
            )

        endpoint = entry.cluster_endpoint.strip()
        if not endpoint:
            raise ConfigurationError(
                f"manual config {entry.label()!r} must define cluster endpoint"
            )

        cluster_body: dict[str, Any] = {"server": endpoint}
        if entry.cluster_ca_file.strip():
            cluster_body["certificate-authority"] = entry.cluster_ca_file.strip()
        if entry.cluster_ca_data.strip():
            cluster_body["certificate-authority-data"] = _normalize_base64(
                entry.cluster_ca_data, "cluster_ca_data", entry
            )

        context_body = {"cluster": cluster_name, "user": user_name}
        if entry.context_settings.namespace.strip():
            context_body["namespace"] = entry.context_settings.namespace.strip()

        config.clusters[cluster_name] = cluster_body
        config.users[user_name] = _manual_user(entry)
        config.contexts[context_name] = context_body

    return config
