"""
CDK aspects applied to the whole app.

``ApplyTags`` implements the organisation's tagging contract: every taggable
resource carries the ownership tags, and outside production the compute and
database resources also carry ``shutdown=true`` so the nightly cost-saving
automation can stop them.

The validation aspects run during ``cdk synth`` and only add warnings.

Usage:
    from core.aspects import add_tag_aspects, add_validation_aspects

    add_tag_aspects(app, settings)
    add_validation_aspects(app, settings)
"""

from collections.abc import Mapping

import aws_cdk as cdk
import jsii
from aws_cdk import aws_autoscaling as autoscaling
from aws_cdk import aws_ec2 as ec2
from aws_cdk import aws_ecs as ecs
from aws_cdk import aws_rds as rds
from aws_cdk import aws_s3 as s3
from constructs import IConstruct

from .logging import get_logger
from .settings import PRODUCTION_ENV, Settings

logger = get_logger(__name__)

SHUTDOWN_TAG = "shutdown"

# Resources the shutdown automation knows how to stop and start
SHUTDOWN_RESOURCE_TYPES = (
    rds.CfnDBInstance,
    rds.CfnDBCluster,
    ec2.CfnInstance,
    autoscaling.CfnAutoScalingGroup,
    ecs.CfnService,
)


@jsii.implements(cdk.IAspect)
class ApplyTags:
    """Sets the ownership tags and, outside production, the shutdown tag."""

    def __init__(self, tags: Mapping[str, str], env: str) -> None:
        self._tags = dict(tags)
        self._env = env

    def visit(self, node: IConstruct) -> None:
        if not cdk.TagManager.is_taggable(node):
            return

        for key, value in self._tags.items():
            node.tags.set_tag(key, value)

        if self._env != PRODUCTION_ENV and isinstance(node, SHUTDOWN_RESOURCE_TYPES):
            node.tags.set_tag(SHUTDOWN_TAG, "true")


def tags_for(settings: Settings) -> dict[str, str]:
    return {
        "env": settings.env,
        "project": settings.project,
        "bitbucketRepository": settings.repository,
        "owner": settings.owner,
        "devTeam": settings.dev_team,
    }


def add_tag_aspects(scope: IConstruct, settings: Settings) -> None:
    cdk.Aspects.of(scope).add(ApplyTags(tags_for(settings), env=settings.env))
    logger.info("tags_aspect_added", env=settings.env, project=settings.project)


@jsii.implements(cdk.IAspect)
class ProductionReadinessAspect:
    """
    Flags resources that are not ready for production.

    Checks:
    - ECS services run at least 2 tasks
    - Aurora clusters have deletion protection on production
    """

    def __init__(self, env: str) -> None:
        self._env = env

    def visit(self, node: IConstruct) -> None:
        if isinstance(node, ecs.CfnService):
            desired_count = node.desired_count
            # Unset or a token when the service is scaled externally
            if isinstance(desired_count, (int, float)) and desired_count < 2:
                cdk.Annotations.of(node).add_warning_v2(
                    "ecs-min-tasks",
                    "ECS service runs fewer than 2 tasks, a single AZ failure takes it down",
                )

        if self._env == PRODUCTION_ENV and isinstance(node, rds.CfnDBCluster):
            if node.deletion_protection is not True:
                cdk.Annotations.of(node).add_warning_v2(
                    "rds-deletion-protection",
                    "Production database cluster has no deletion protection",
                )


@jsii.implements(cdk.IAspect)
class SecurityAspect:
    """Flags S3 buckets without a public access block."""

    def visit(self, node: IConstruct) -> None:
        if not isinstance(node, s3.CfnBucket):
            return

        # The typed getter fails across jsii once an L2 Bucket has set the
        # struct, the untyped property map comes back as plain dicts
        properties = node._cfn_properties or {}
        if properties.get("publicAccessBlockConfiguration") is None:
            cdk.Annotations.of(node).add_warning_v2(
                "s3-public-access-block",
                "S3 bucket has no public access block configured",
            )


def add_validation_aspects(scope: IConstruct, settings: Settings, enable_security_checks: bool = True) -> None:
    """
    Add validation aspects to all stacks in the CDK app.

    Args:
        scope: The CDK App to add aspects to
        settings: Deployment settings, production gets stricter checks
        enable_security_checks: Whether to run security-related validations
    """
    cdk.Aspects.of(scope).add(ProductionReadinessAspect(env=settings.env))

    if enable_security_checks:
        cdk.Aspects.of(scope).add(SecurityAspect())
