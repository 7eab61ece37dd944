"""
Shared pytest fixtures for the CDK stack tests.

Stacks are built against an imported VPC so no test needs AWS credentials
or cached context lookups:

    def test_something(app, vpc, make_settings):
        stack = CommonStack(app, "Common", vpc=vpc, settings=make_settings(), env=ENV)
        template = Template.from_stack(stack)
"""

import os
from collections.abc import Callable

import aws_cdk as cdk
import pytest
from aws_cdk import aws_ec2 as ec2
from constructs import Construct

from core.logging import clear_contextvars
from core.settings import Settings, get_settings

ACCOUNT = "123456789012"
REGION = "eu-west-1"
ENV = cdk.Environment(account=ACCOUNT, region=REGION)

VPC_CIDR = "172.16.192.0/21"
SHARED_VPC_CIDR = "10.100.0.0/16"
SHARED_PRIVATE_SUBNETS = ["10.100.10.0/24", "10.100.11.0/24"]

BASE_SETTINGS = {
    "env": "dev",
    "project": "mujeres",
    "shared_vpc_cidr": SHARED_VPC_CIDR,
    "shared_peering_account_id": "210987654321",
    "shared_peering_vpc_id": "vpc-0shared",
    "shared_peering_role_arn": "arn:aws:iam::210987654321:role/peering-accepter",
    "shared_peering_private_subnets_cidr": SHARED_PRIVATE_SUBNETS,
    "database_instance_type": "r6g.large",
    "cloudfront_certificate_arn": "arn:aws:acm:us-east-1:123456789012:certificate/cloudfront",
    "cloudfront_custom_secret_header_value": "s3cr3t",
    "cloudfront_domains": ["www.example.es"],
    "alb_certificate_arns": [
        "arn:aws:acm:eu-west-1:123456789012:certificate/alb-1",
        "arn:aws:acm:eu-west-1:123456789012:certificate/alb-2",
    ],
    "shared_service_image_tag": "6.5-build42",
    "owner": "platform@example.com",
    "dev_team": "web",
}


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Drop any bamboo_* variables leaking from the shell and reset caches."""
    for name in list(os.environ):
        if name.lower().startswith("bamboo_"):
            monkeypatch.delenv(name)

    get_settings.cache_clear()
    clear_contextvars()
    yield
    get_settings.cache_clear()
    clear_contextvars()


@pytest.fixture
def make_settings() -> Callable[..., Settings]:
    """Build Settings from the test defaults, overridden per test."""

    def _make(**overrides) -> Settings:
        return Settings(**{**BASE_SETTINGS, **overrides})

    return _make


@pytest.fixture
def settings(make_settings) -> Settings:
    return make_settings()


@pytest.fixture
def imported_vpc() -> Callable[[Construct], ec2.IVpc]:
    """Factory for a three-tier VPC imported into the given scope."""

    def _import(scope: Construct) -> ec2.IVpc:
        return ec2.Vpc.from_vpc_attributes(
            scope,
            "ImportedVpc",
            vpc_id="vpc-0123456789abcdef0",
            vpc_cidr_block=VPC_CIDR,
            availability_zones=["eu-west-1a", "eu-west-1b"],
            public_subnet_ids=["subnet-pub1", "subnet-pub2"],
            public_subnet_route_table_ids=["rtb-pub1", "rtb-pub2"],
            private_subnet_ids=["subnet-priv1", "subnet-priv2"],
            private_subnet_route_table_ids=["rtb-priv1", "rtb-priv2"],
            isolated_subnet_ids=["subnet-iso1", "subnet-iso2"],
            isolated_subnet_route_table_ids=["rtb-iso1", "rtb-iso2"],
        )

    return _import


@pytest.fixture
def app() -> cdk.App:
    return cdk.App()


@pytest.fixture
def vpc(app, imported_vpc) -> ec2.IVpc:
    """Imported VPC owned by a separate stack, passed to stacks through ``vpc=``."""
    return imported_vpc(cdk.Stack(app, "Network", env=ENV))
