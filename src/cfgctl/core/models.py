"""Core data models for cfgctl."""

from datetime import UTC, datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


class AuthMode(str, Enum):
    """How credentials for a profile are obtained."""

    SSO = "sso"
    AWS_VAULT = "aws-vault"
    DEFAULT = "default"


class CachedToken(BaseModel):
    """SSO bearer token read from a token cache file."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    access_token: str = Field(..., alias="accessToken", min_length=1)
    expires_at: datetime = Field(..., alias="expiresAt")
    issued_at: datetime = Field(default=EPOCH, alias="issuedAt")
    region: str = ""
    start_url: str = Field(default="", alias="startUrl")

    @field_validator("access_token")
    @classmethod
    def access_token_not_blank(cls, value: str) -> str:
        """Reject whitespace-only tokens."""
        if not value.strip():
            raise ValueError("access token missing")
        return value

    @field_validator("expires_at", "issued_at")
    @classmethod
    def assume_utc(cls, value: datetime) -> datetime:
        """Treat naive timestamps as UTC."""
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value

    def is_expired(self, now: datetime) -> bool:
        """Return True unless ``now`` is strictly before the expiry time."""
        return not now < self.expires_at

    def matches_session(self, start_url: str, region: str) -> bool:
        """Return True when the token belongs to the given SSO session."""
        return (
            self.start_url.strip().lower() == start_url.strip().lower()
            and self.region.strip().lower() == region.strip().lower()
        )


class ExternalCredential(BaseModel):
    """Credentials returned by a credential helper such as ``aws-vault exec --json``."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    version: int = Field(default=1, alias="Version")
    access_key_id: str = Field(..., alias="AccessKeyId")
    secret_access_key: str = Field(..., alias="SecretAccessKey")
    session_token: str = Field(default="", alias="SessionToken")
    expiration: str = Field(default="", alias="Expiration")

    @field_validator("access_key_id", "secret_access_key")
    @classmethod
    def not_blank(cls, value: str) -> str:
        """Key fields must carry a value."""
        if not value.strip():
            raise ValueError("must not be empty")
        return value


class ResolvedCredential(BaseModel):
    """Working credentials for one profile."""

    model_config = ConfigDict(frozen=True)

    profile: str
    auth_mode: AuthMode
    external: ExternalCredential | None = None


class AccountRole(BaseModel):
    """An SSO account/role pair produced by identity discovery."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["account_role"] = "account_role"
    account_id: str
    account_name: str
    role_name: str

    def sort_key(self) -> tuple[str, ...]:
        """Fixed ordering key: account name, account id, role."""
        return (self.account_name, self.account_id, self.role_name)

    def naming_fields(self) -> dict[str, str]:
        """Placeholder values available to naming templates."""
        return {
            "account": self.account_name,
            "account_name": self.account_name,
            "account_id": self.account_id,
            "role": self.role_name,
            "role_name": self.role_name,
        }


class Cluster(BaseModel):
    """An EKS cluster produced by compute discovery."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["cluster"] = "cluster"
    profile: str
    region: str
    name: str
    endpoint: str
    ca_data: bytes = b""
    auth_mode: AuthMode = AuthMode.DEFAULT

    def sort_key(self) -> tuple[str, ...]:
        """Fixed ordering key: profile, region, cluster name."""
        return (self.profile, self.region, self.name)

    @property
    def account(self) -> str:
        """Account portion of an ``account/role`` profile name."""
        return self.profile.split("/", 1)[0]

    @property
    def role(self) -> str:
        """Role portion of an ``account/role`` profile name."""
        return self.profile.rsplit("/", 1)[-1]

    def naming_fields(self) -> dict[str, str]:
        """Placeholder values available to naming templates."""
        return {
            "cluster": self.name,
            "profile": self.profile,
            "region": self.region,
            "account": self.account,
            "role": self.role,
        }


DiscoveredResource = AccountRole | Cluster


class DiscoveryResult(BaseModel):
    """Resources and warnings aggregated from one discovery run."""

    resources: list[DiscoveredResource] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class NamedConfigEntry(BaseModel):
    """A synthesized configuration entry keyed by its rendered name."""

    name: str
    body: dict[str, Any] = Field(default_factory=dict)


class MergePolicy(BaseModel):
    """Rules for pruning previously generated sections."""

    marker_key: str = ""
    generated_names: list[str] = Field(default_factory=list)
    session_name: str = ""


class GenerateResult(BaseModel):
    """Outcome of one provider generation."""

    provider: str
    files_created: list[str] = Field(default_factory=list)
    files_skipped: list[str] = Field(default_factory=list)
    backups: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
