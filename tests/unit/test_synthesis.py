"""Unit tests for naming templates and AWS config synthesis."""

import pytest

from cfgctl.core.config import AWSProviderConfig, RoleChain, SSOConfig
from cfgctl.core.exceptions import ConfigurationError, TemplateError, UnknownPlaceholderError
from cfgctl.core.models import AccountRole
from cfgctl.synthesis.aws_config import (
    build_config_content,
    build_credential_process_content,
    build_profile_entries,
)
from cfgctl.synthesis.naming import render_name

SESSION_BLOCK = """\
[sso-session cfgctl]
sso_start_url = https://example.awsapps.com/start
sso_region = us-east-1
sso_registration_scopes = sso:account:access"""


@pytest.fixture
def config() -> AWSProviderConfig:
    return AWSProviderConfig(
        sso=SSOConfig(start_url="https://example.awsapps.com/start", region="us-east-1")
    )


class TestRenderName:
    """Tests for placeholder substitution."""

    def test_substitutes_fields(self):
        """Every placeholder is replaced by its value."""
        assert render_name("{profile}-{cluster}", {"profile": "prod", "cluster": "api"}) == (
            "prod-api"
        )

    def test_repeated_placeholder(self):
        """A placeholder may appear more than once."""
        assert render_name("{a}.{a}", {"a": "x"}) == "x.x"

    def test_unknown_placeholder(self):
        """Placeholders outside the field set are rejected."""
        with pytest.raises(UnknownPlaceholderError, match="zone"):
            render_name("{cluster}-{zone}", {"cluster": "api"})

    def test_unbalanced_brace(self):
        """A stray brace is treated as an unknown placeholder."""
        with pytest.raises(UnknownPlaceholderError):
            render_name("{cluster", {"cluster": "api"})

    def test_blank_template(self):
        """An empty template is an error."""
        with pytest.raises(TemplateError):
            render_name("  ", {})

    def test_empty_result(self):
        """A template rendering to nothing is an error."""
        with pytest.raises(TemplateError, match="empty name"):
            render_name("{cluster}", {"cluster": " "})


class TestBuildConfigContent:
    """Tests for AWS shared config rendering."""

    def test_renders_session_and_profiles(self, config, sample_account_roles):
        """Output is the session block followed by one profile per role."""
        config.profile_prefix = "sso_"

        content, names, warnings = build_config_content(config, sample_account_roles)

        assert content == (
            SESSION_BLOCK
            + """

[profile sso_prod/Admin]
sso_session = cfgctl
sso_account_id = 111111111111
sso_role_name = Admin
automatically_generated = true

[profile sso_prod/ReadOnly]
sso_session = cfgctl
sso_account_id = 111111111111
sso_role_name = ReadOnly
automatically_generated = true"""
        )
        assert names == ["sso_prod/Admin", "sso_prod/ReadOnly"]
        assert warnings == []

    def test_template_aliases(self, config):
        """``account`` and ``role`` alias the account and role names."""
        config.profile_template = "{account}-{role}"
        roles = [
            AccountRole(
                account_id="123456789012", account_name="prod-account", role_name="AdminAccess"
            )
        ]

        content, names, _ = build_config_content(config, roles)

        assert names == ["prod-account-AdminAccess"]
        assert "[profile prod-account-AdminAccess]\n" in content
        assert "sso_account_id = 123456789012\n" in content

    def test_collision_last_write_wins(self, config):
        """A repeated name keeps the later resource and warns."""
        config.profile_template = "{account_name}-{role_name}"
        roles = [
            AccountRole(account_id="111111111111", account_name="prod", role_name="Admin"),
            AccountRole(account_id="999999999999", account_name="prod", role_name="Admin"),
        ]

        content, names, warnings = build_config_content(config, roles)

        assert content == (
            SESSION_BLOCK
            + """

[profile prod-Admin]
sso_session = cfgctl
sso_account_id = 999999999999
sso_role_name = Admin
automatically_generated = true"""
        )
        assert names == ["prod-Admin"]
        assert len(warnings) == 1
        assert 'profile "prod-Admin" generated more than once' in warnings[0]

    def test_custom_marker_key(self, config, sample_account_roles):
        """The marker key is configurable."""
        config.marker_key = "sso_auto_populated"

        content, _, _ = build_config_content(config, sample_account_roles)

        assert "sso_auto_populated = true" in content
        assert "automatically_generated" not in content

    def test_empty_session_name(self, config):
        """A blank session name is rejected."""
        config.sso.session_name = " "

        with pytest.raises(ConfigurationError, match="session name"):
            build_config_content(config, [])

    def test_empty_template(self, config):
        """A blank template is rejected even without resources."""
        config.profile_template = ""

        with pytest.raises(TemplateError):
            build_config_content(config, [])

    def test_role_chains(self, config):
        """Role chains follow the discovered profiles in configuration order."""
        config.profile_prefix = "sso_"
        config.role_chains = [
            RoleChain(
                name="prod-readonly",
                role_arn="arn:aws:iam::111111111111:role/ReadOnly",
                source_profile="sso_prod/Admin",
            ),
            RoleChain(
                name="staging-deploy",
                region="us-west-2",
                role_arn="arn:aws:iam::222222222222:role/DeployRole",
                source_profile="sso_staging/PowerUser",
            ),
        ]
        roles = [
            AccountRole(account_id="111111111111", account_name="prod", role_name="Admin"),
            AccountRole(account_id="222222222222", account_name="staging", role_name="PowerUser"),
        ]

        content, names, warnings = build_config_content(config, roles)

        assert warnings == []
        assert names[-2:] == ["sso_prod-readonly", "sso_staging-deploy"]
        assert content.endswith(
            """\
[profile sso_prod-readonly]
source_profile = sso_prod/Admin
role_arn = arn:aws:iam::111111111111:role/ReadOnly
automatically_generated = true

[profile sso_staging-deploy]
source_profile = sso_staging/PowerUser
role_arn = arn:aws:iam::222222222222:role/DeployRole
region = us-west-2
automatically_generated = true"""
        )

    def test_role_chain_with_unknown_source_warns(self, config):
        """A chain pointing at a profile that was not generated is kept with a warning."""
        config.role_chains = [
            RoleChain(
                name="prod-readonly",
                role_arn="arn:aws:iam::111111111111:role/ReadOnly",
                source_profile="prod/Admin",
            )
        ]

        content, _, warnings = build_config_content(config, [])

        assert len(warnings) == 1
        assert "prod/Admin" in warnings[0]
        assert "[profile prod-readonly]" in content

    def test_role_chain_replaces_profile_of_same_name(self, config):
        """A chain named like a generated profile takes its place and warns."""
        config.role_chains = [
            RoleChain(
                name="prod/Admin",
                role_arn="arn:aws:iam::111111111111:role/BreakGlass",
                source_profile="staging/Admin",
            )
        ]
        roles = [
            AccountRole(account_id="111111111111", account_name="prod", role_name="Admin"),
            AccountRole(account_id="222222222222", account_name="staging", role_name="Admin"),
        ]

        content, names, warnings = build_config_content(config, roles)

        assert names == ["prod/Admin", "staging/Admin"]
        assert content.count("[profile prod/Admin]") == 1
        assert content.index("[profile prod/Admin]") < content.index("[profile staging/Admin]")
        assert "role_arn = arn:aws:iam::111111111111:role/BreakGlass" in content
        assert "sso_account_id = 111111111111" not in content
        assert warnings == [
            'profile "prod/Admin" generated more than once: account 111111111111 role Admin '
            "replaced by role chain arn:aws:iam::111111111111:role/BreakGlass"
        ]

    def test_repeated_role_chain_name_keeps_last(self, config):
        """Two chains with one name render a single section from the later chain."""
        config.role_chains = [
            RoleChain(
                name="prod-readonly",
                role_arn="arn:aws:iam::111111111111:role/ReadOnly",
                source_profile="prod/Admin",
            ),
            RoleChain(
                name="prod-readonly",
                role_arn="arn:aws:iam::111111111111:role/ViewOnly",
                source_profile="prod/Admin",
            ),
        ]
        roles = [AccountRole(account_id="111111111111", account_name="prod", role_name="Admin")]

        content, names, warnings = build_config_content(config, roles)

        assert names == ["prod/Admin", "prod-readonly"]
        assert content.count("[profile prod-readonly]") == 1
        assert "role/ViewOnly" in content
        assert "role/ReadOnly" not in content
        assert len(warnings) == 1
        assert 'profile "prod-readonly" generated more than once' in warnings[0]


def test_identical_duplicates_do_not_warn(config):
    """Rendering the same resource twice is not a collision."""
    role = AccountRole(account_id="1", account_name="prod", role_name="Admin")

    entries, warnings = build_profile_entries(config, [role, role])

    assert len(entries) == 1
    assert warnings == []


def test_credential_process_content():
    """Each profile delegates to the credential process."""
    assert build_credential_process_content(["prod/Admin", "dev"]) == (
        "[prod/Admin]\n"
        "credential_process = granted credential-process --profile prod/Admin\n"
        "\n"
        "[dev]\n"
        "credential_process = granted credential-process --profile dev"
    )
