"""
EFS stack - shared file system for the WordPress document root.

Plugins, themes and uploads live on EFS so every Fargate task sees the same
``/var/www/html``. The ids are published as parameters instead of being
passed as object references, keeping the compute stack deployable alone.
"""

from aws_cdk import RemovalPolicy, Stack, Tags
from aws_cdk import aws_ec2 as ec2
from aws_cdk import aws_efs as efs
from constructs import Construct

from core.lookups import lookup_vpc
from core.naming import get_naming
from core.params import create_param
from core.settings import Settings, get_settings

SERVICE = "wordpress"

# www-data in the official WordPress image
WWW_DATA_ID = "33"


class EfsStack(Stack):
    """Creates the WordPress file system and its access point."""

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        vpc: ec2.IVpc | None = None,
        settings: Settings | None = None,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        settings = settings or get_settings()
        naming = get_naming(settings)
        self.vpc = vpc or lookup_vpc(self, settings)

        self.security_group = ec2.SecurityGroup(
            self,
            "WordpressEfsSecurityGroup",
            vpc=self.vpc,
            security_group_name=naming.name(f"{SERVICE}-efs-sg"),
            description="Security group for the WordPress file system",
            allow_all_outbound=False,
        )
        Tags.of(self.security_group).add("Name", naming.name(f"{SERVICE}-efs-sg"))

        self.file_system = efs.FileSystem(
            self,
            "WordpressEfs",
            vpc=self.vpc,
            vpc_subnets=ec2.SubnetSelection(subnet_type=ec2.SubnetType.PRIVATE_WITH_EGRESS),
            security_group=self.security_group,
            removal_policy=RemovalPolicy.RETAIN,
            performance_mode=efs.PerformanceMode.GENERAL_PURPOSE,
            throughput_mode=efs.ThroughputMode.BURSTING,
            encrypted=True,
            file_system_name=naming.efs(SERVICE),
            lifecycle_policy=efs.LifecyclePolicy.AFTER_14_DAYS,
        )

        self.access_point = efs.AccessPoint(
            self,
            "WordpressAccessPoint",
            file_system=self.file_system,
            path=f"/{SERVICE}",
            posix_user=efs.PosixUser(gid=WWW_DATA_ID, uid=WWW_DATA_ID),
            create_acl=efs.Acl(owner_gid=WWW_DATA_ID, owner_uid=WWW_DATA_ID, permissions="0755"),
        )

        create_param(
            self,
            "WordpressFileSystemId",
            naming.output_key(f"efs-{SERVICE}-file-system-id"),
            self.file_system.file_system_id,
        )
        create_param(
            self,
            "WordpressAccessPointId",
            naming.output_key(f"efs-{SERVICE}-access-point-id"),
            self.access_point.access_point_id,
        )
        create_param(
            self,
            "WordpressSecurityGroupId",
            naming.output_key(f"efs-{SERVICE}-security-group-id"),
            self.security_group.security_group_id,
        )
