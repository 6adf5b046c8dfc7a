"""AWS shared config and credentials file synthesis."""

from collections.abc import Iterable

from cfgctl.core.config import AWSProviderConfig
from cfgctl.core.exceptions import ConfigurationError, TemplateError
from cfgctl.core.models import AccountRole, NamedConfigEntry
from cfgctl.synthesis.naming import render_name
from cfgctl.utils.logging import get_logger

logger = get_logger(__name__)

PROFILE_SECTION_PREFIX = "profile "
SSO_SESSION_SECTION = "sso-session"
CREDENTIAL_PROCESS_COMMAND = "granted credential-process --profile"


def render_section(header: str, values: dict[str, str]) -> str:
    """Render one INI section without a trailing newline."""
    lines = [f"[{header}]"]
    lines.extend(f"{key} = {value}" for key, value in values.items())
    return "\n".join(lines)


def describe_entry(entry: NamedConfigEntry) -> str:
    """Describe what a generated entry points at."""
    if "role_arn" in entry.body:
        return f"role chain {entry.body['role_arn']}"
    return f"account {entry.body['sso_account_id']} role {entry.body['sso_role_name']}"


def add_entry(
    entries: dict[str, NamedConfigEntry], entry: NamedConfigEntry, warnings: list[str]
) -> None:
    """Add ``entry``, replacing an earlier entry of the same name in place.

    Replacing an entry with a different body records a warning.
    """
    previous = entries.get(entry.name)
    if previous is not None and previous.body != entry.body:
        warnings.append(
            f'profile "{entry.name}" generated more than once: '
            f"{describe_entry(previous)} replaced by {describe_entry(entry)}"
        )
    entries[entry.name] = entry


def build_profile_entries(
    config: AWSProviderConfig, account_roles: Iterable[AccountRole]
) -> tuple[dict[str, NamedConfigEntry], list[str]]:
    """Render one profile entry per account/role.

    Entries keep the order of ``account_roles``. When two resources render to
    the same name the later one replaces the earlier one in place and a
    warning is recorded.

    Returns:
        Tuple of (entries keyed by profile name, collision warnings)

    Raises:
        TemplateError: If the profile template is invalid for a resource
    """
    entries: dict[str, NamedConfigEntry] = {}
    warnings: list[str] = []

    for resource in account_roles:
        name = config.profile_prefix + render_name(
            config.profile_template, resource.naming_fields()
        )
        body = {
            "sso_session": config.sso.session_name,
            "sso_account_id": resource.account_id,
            "sso_role_name": resource.role_name,
            config.marker_key: "true",
        }
        add_entry(entries, NamedConfigEntry(name=name, body=body), warnings)

    return entries, warnings


def build_role_chain_entries(
    config: AWSProviderConfig, entries: dict[str, NamedConfigEntry]
) -> list[str]:
    """Add role-chain profiles to ``entries``.

    A chain named like an existing entry replaces it in place. A chain whose
    source profile is not in ``entries`` is still written, since the source
    may be defined by hand, but produces a warning.

    Returns:
        Warnings for unknown source profiles and name collisions
    """
    warnings: list[str] = []

    for chain in config.role_chains:
        name = config.profile_prefix + chain.name.strip()
        source = chain.source_profile.strip()

        if source not in entries:
            warnings.append(
                f'role chain "{name}" references source profile "{source}" '
                "which was not generated"
            )

        body = {"source_profile": source, "role_arn": chain.role_arn.strip()}
        if chain.region and chain.region.strip():
            body["region"] = chain.region.strip()
        body[config.marker_key] = "true"

        add_entry(entries, NamedConfigEntry(name=name, body=body), warnings)

    return warnings


def build_config_content(
    config: AWSProviderConfig, resources: Iterable[AccountRole]
) -> tuple[str, list[str], list[str]]:
    """Render the generated part of the AWS shared config file.

    The output holds the ``[sso-session]`` block, one profile per account
    role and then the role-chain profiles, separated by blank lines and
    without a trailing newline. Profile names are unique across both kinds.

    Args:
        config: AWS provider configuration
        resources: Account roles in sorted order

    Returns:
        Tuple of (content, generated profile names, warnings)

    Raises:
        ConfigurationError: If the SSO session name is empty
        TemplateError: If the profile template is empty or invalid
    """
    session_name = config.sso.session_name.strip()
    if not session_name:
        raise ConfigurationError("sso session name cannot be empty")
    if not config.profile_template.strip():
        raise TemplateError("profile template cannot be empty")

    entries, warnings = build_profile_entries(config, resources)
    profile_count = len(entries)
    warnings.extend(build_role_chain_entries(config, entries))

    sections = [
        render_section(
            f"{SSO_SESSION_SECTION} {session_name}",
            {
                "sso_start_url": config.sso.start_url,
                "sso_region": config.sso.region,
                "sso_registration_scopes": config.sso.registration_scopes,
            },
        )
    ]
    sections.extend(
        render_section(PROFILE_SECTION_PREFIX + entry.name, entry.body)
        for entry in entries.values()
    )

    logger.debug(
        "aws_config_rendered", profiles=profile_count, role_chains=len(config.role_chains)
    )
    return "\n\n".join(sections).rstrip("\n"), list(entries), warnings


def build_credential_process_content(names: Iterable[str]) -> str:
    """Render a credentials file delegating every profile to ``credential_process``."""
    sections = [
        render_section(name, {"credential_process": f"{CREDENTIAL_PROCESS_COMMAND} {name}"})
        for name in names
    ]
    return "\n\n".join(sections)
