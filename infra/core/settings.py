"""
Deployment settings read from the CI environment.

Every value comes from a ``bamboo_``-prefixed environment variable (the
build plan exports its variables that way). Names are case-insensitive, so
``bamboo_ENV`` and ``bamboo_env`` both populate ``env``.

Usage:
    from core.settings import get_settings

    settings = get_settings()
    settings.project, settings.env
"""

import ipaddress
from functools import lru_cache
from typing import Annotated, Any

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from .constants import DEFAULT_CLOUDFRONT_DOMAINS

PRODUCTION_ENV = "pro"

# Fields that must be set when the full stack set is synthesized
_RELEASE_FIELDS = (
    "shared_vpc_cidr",
    "shared_peering_account_id",
    "shared_peering_vpc_id",
    "shared_peering_role_arn",
    "shared_peering_private_subnets_cidr",
    "database_instance_type",
    "cloudfront_certificate_arn",
    "cloudfront_custom_secret_header_value",
    "alb_certificate_arns",
    "shared_service_image_tag",
)

CommaList = Annotated[list[str], NoDecode]


def _split_csv(value: Any) -> Any:
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    return value


def _check_cidr(value: str) -> str:
    try:
        ipaddress.IPv4Network(value)
    except ValueError as e:
        raise ValueError(f"Invalid IPv4 CIDR block: {value!r}") from e
    return value


class Settings(BaseSettings):
    """Environment-based configuration using pydantic-settings."""

    env: str
    project: str
    release: bool = False

    # Network
    shared_vpc_cidr: str = ""
    shared_peering_account_id: str = ""
    shared_peering_vpc_id: str = ""
    shared_peering_role_arn: str = ""
    shared_peering_private_subnets_cidr: CommaList = []
    nat_gateway_ips: CommaList = []

    # Database
    database_instance_type: str = ""

    # CDN and load balancer
    cloudfront_certificate_arn: str = ""
    cloudfront_custom_secret_header_value: str = ""
    cloudfront_domains: CommaList = []
    alb_certificate_arns: CommaList = []

    # Services
    shared_service_image_tag: str = ""

    # Tag values
    repository: str = "srs-wordpress-infra"
    owner: str = ""
    dev_team: str = ""

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    model_config = SettingsConfigDict(env_prefix="bamboo_", case_sensitive=False, extra="ignore")

    @field_validator("env", "project")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must be a non-empty string")
        return value.strip()

    @field_validator(
        "shared_peering_private_subnets_cidr",
        "nat_gateway_ips",
        "cloudfront_domains",
        "alb_certificate_arns",
        mode="before",
    )
    @classmethod
    def _split_comma_lists(cls, value: Any) -> Any:
        return _split_csv(value)

    @field_validator("shared_vpc_cidr")
    @classmethod
    def _validate_cidr(cls, value: str) -> str:
        return _check_cidr(value) if value else value

    @field_validator("shared_peering_private_subnets_cidr", "nat_gateway_ips")
    @classmethod
    def _validate_cidr_list(cls, value: list[str]) -> list[str]:
        return [_check_cidr(item) for item in value]

    @field_validator("shared_peering_role_arn")
    @classmethod
    def _validate_role_arn(cls, value: str) -> str:
        if value and not value.startswith("arn:"):
            raise ValueError(f"Invalid ARN: {value!r}")
        return value

    @field_validator("cloudfront_certificate_arn")
    @classmethod
    def _validate_certificate_arn(cls, value: str) -> str:
        if value and not value.startswith("arn:aws:acm:"):
            raise ValueError(f"Invalid ACM certificate ARN: {value!r}")
        return value

    @field_validator("alb_certificate_arns")
    @classmethod
    def _validate_certificate_arns(cls, value: list[str]) -> list[str]:
        for arn in value:
            if not arn.startswith("arn:aws:acm:"):
                raise ValueError(f"Invalid ACM certificate ARN: {arn!r}")
        return value

    @model_validator(mode="after")
    def _require_release_fields(self) -> "Settings":
        if not self.release:
            return self

        missing = [name for name in _RELEASE_FIELDS if not getattr(self, name)]
        if missing:
            variables = ", ".join(f"bamboo_{name.upper()}" for name in missing)
            raise ValueError(f"Release deployments require: {variables}")
        return self

    @property
    def is_production(self) -> bool:
        return self.env == PRODUCTION_ENV

    @property
    def domains(self) -> list[str]:
        """Public domains of the site, falling back to the per-environment defaults."""
        return list(self.cloudfront_domains or DEFAULT_CLOUDFRONT_DOMAINS.get(self.env, ()))


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings once per process."""
    return Settings()
