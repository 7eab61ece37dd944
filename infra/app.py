#!/usr/bin/env python3
"""
AWS CDK app entry point for the WordPress platform infrastructure.

Configuration comes from the ``bamboo_*`` environment variables exported by
the build plan (see ``core.settings``). Stacks are only instantiated for
release builds, other builds synthesize an empty app so that settings and
tag validation still run.
"""

import os

import aws_cdk as cdk

from core.aspects import add_tag_aspects, add_validation_aspects
from core.constants import CLOUDFRONT_WAF_REGION
from core.logging import bind_contextvars, configure_logging, get_logger
from core.naming import get_naming
from core.settings import Settings, get_settings
from stacks import (
    ApplicationFirewallStack,
    CloudFrontStack,
    CommonStack,
    ComputeStack,
    DatabaseStack,
    EfsStack,
    PeeringStack,
    S3Stack,
    VpcStack,
)

logger = get_logger(__name__)


def add_release_stacks(app: cdk.App, settings: Settings) -> dict[str, cdk.Stack]:
    """Instantiate the full stack set with its deployment order."""
    naming = get_naming(settings)

    env = cdk.Environment(
        account=os.environ.get("CDK_DEFAULT_ACCOUNT"),
        region=os.environ.get("CDK_DEFAULT_REGION"),
    )
    # CLOUDFRONT scope WebACLs can only be created in us-east-1
    firewall_env = cdk.Environment(account=env.account, region=CLOUDFRONT_WAF_REGION)

    vpc = VpcStack(app, naming.stack("vpc"), settings=settings, env=env)

    database = DatabaseStack(app, naming.stack("database"), settings=settings, env=env)
    database.add_dependency(vpc)

    s3 = S3Stack(app, naming.stack("s3"), settings=settings, env=env)

    common = CommonStack(app, naming.stack("common"), settings=settings, env=env)
    common.add_dependency(vpc)

    firewall = ApplicationFirewallStack(app, naming.stack("firewall"), settings=settings, env=firewall_env)

    efs = EfsStack(app, naming.stack("efs"), settings=settings, env=env)
    efs.add_dependency(vpc)

    compute = ComputeStack(app, naming.stack("ecs"), settings=settings, env=env)
    compute.add_dependency(database)
    compute.add_dependency(efs)
    compute.add_dependency(common)

    peering = PeeringStack(app, naming.stack("peering"), settings=settings, env=env)
    peering.add_dependency(vpc)

    cloudfront = CloudFrontStack(
        app,
        naming.stack("cloudfront"),
        alb=compute.alb,
        files_bucket=s3.files_bucket,
        settings=settings,
        env=env,
    )
    cloudfront.add_dependency(compute)
    cloudfront.add_dependency(s3)
    cloudfront.add_dependency(firewall)

    return {
        "vpc": vpc,
        "database": database,
        "s3": s3,
        "common": common,
        "firewall": firewall,
        "efs": efs,
        "ecs": compute,
        "peering": peering,
        "cloudfront": cloudfront,
    }


def build_app(app: cdk.App | None = None, settings: Settings | None = None) -> cdk.App:
    app = app or cdk.App()
    settings = settings or get_settings()

    bind_contextvars(project=settings.project, env=settings.env)

    stacks = add_release_stacks(app, settings) if settings.release else {}
    logger.info("stack_set_selected", release=settings.release, stacks=sorted(stacks))

    add_tag_aspects(app, settings)
    add_validation_aspects(app, settings)
    return app


def main() -> None:
    settings = get_settings()
    configure_logging(json_format=settings.log_json, log_level=settings.log_level)
    build_app(settings=settings).synth()


if __name__ == "__main__":
    main()
