"""
Database stack - Aurora MySQL cluster for WordPress.

Creates:
- Isolated subnet group, parameter group with general/slow/audit logging
- Security group reachable from the shared VPC
- Admin secret used as the cluster master credentials
- Application user secret attached to the cluster

The security group id and the application secret ARN are published under
``/cdk/output/{project}/{env}/`` for the compute stack.
"""

from aws_cdk import Duration, RemovalPolicy, Stack, Tags
from aws_cdk import aws_ec2 as ec2
from aws_cdk import aws_rds as rds
from aws_cdk import aws_secretsmanager as secretsmanager
from constructs import Construct

from core.iam import rds_monitoring_role
from core.logging import get_logger
from core.lookups import lookup_vpc
from core.naming import get_naming
from core.params import create_param
from core.settings import Settings, get_settings

logger = get_logger(__name__)

ENGINE_VERSION = rds.AuroraMysqlEngineVersion.of("8.0.mysql_aurora.3.08.1", "8.0")

APP_USERNAME = "wordpress_app"


class DatabaseStack(Stack):
    """Creates the Aurora MySQL cluster and its credentials."""

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

        self.settings = settings or get_settings()
        self.naming = get_naming(self.settings)
        self.vpc = vpc or lookup_vpc(self, self.settings)

        if not self.settings.database_instance_type:
            raise ValueError("bamboo_DATABASE_INSTANCE_TYPE is required to build the database stack")

        self.engine = rds.DatabaseClusterEngine.aurora_mysql(version=ENGINE_VERSION)

        self.subnet_group = rds.SubnetGroup(
            self,
            "DatabaseSubnetGroup",
            vpc=self.vpc,
            subnet_group_name=self.naming.db_subnet_group,
            description="Isolated subnet group for databases",
            vpc_subnets=ec2.SubnetSelection(subnet_type=ec2.SubnetType.PRIVATE_ISOLATED),
        )

        self.parameter_group = rds.ParameterGroup(
            self,
            "DatabaseParameterGroup",
            engine=self.engine,
            name=self.naming.db_parameter_group,
            description=f"Parameter group for {self.settings.project} database cluster",
            parameters={
                "general_log": "1",
                "slow_query_log": "1",
                "server_audit_logging": "1",
                "server_audit_events": "CONNECT,QUERY,QUERY_DDL,QUERY_DCL",
            },
        )

        self.security_group = self._create_security_group()
        self.cluster = self._create_cluster()
        self.app_secret = self._create_app_secret()

        logger.info(
            "database_cluster_defined",
            cluster=self.naming.db_cluster,
            instance_type=self.settings.database_instance_type,
            deletion_protection=self.settings.is_production,
        )

    def _create_security_group(self) -> ec2.SecurityGroup:
        security_group = ec2.SecurityGroup(
            self,
            "DatabaseSecurityGroup",
            vpc=self.vpc,
            security_group_name=self.naming.db_sg,
            allow_all_outbound=True,
            description="Security group for the database cluster",
        )
        Tags.of(security_group).add("Name", self.naming.db_sg)

        if self.settings.shared_vpc_cidr:
            security_group.add_ingress_rule(
                ec2.Peer.ipv4(self.settings.shared_vpc_cidr),
                ec2.Port.MYSQL_AURORA,
                "Allow traffic from the shared VPC to the database",
            )

        create_param(
            self,
            "DatabaseSecurityGroupId",
            self.naming.output_key("database-app-sg-id"),
            security_group.security_group_id,
        )
        return security_group

    def _create_cluster(self) -> rds.DatabaseCluster:
        admin_secret = secretsmanager.Secret(
            self,
            "DatabaseSecretCredentials",
            secret_name=self.naming.db_root_secret,
            generate_secret_string=secretsmanager.SecretStringGenerator(
                exclude_punctuation=True,
                secret_string_template=self.to_json_string({"username": "admin"}),
                generate_string_key="password",
            ),
        )

        backup_retention = Duration.days(30) if self.settings.is_production else Duration.days(7)

        return rds.DatabaseCluster(
            self,
            "DatabaseAuroraCluster",
            engine=self.engine,
            vpc=self.vpc,
            cluster_identifier=self.naming.db_cluster,
            copy_tags_to_snapshot=True,
            credentials=rds.Credentials.from_secret(admin_secret),
            subnet_group=self.subnet_group,
            parameter_group=self.parameter_group,
            security_groups=[self.security_group],
            storage_encrypted=True,
            removal_policy=RemovalPolicy.RETAIN,
            deletion_protection=self.settings.is_production,
            cloudwatch_logs_exports=["audit", "error", "general", "slowquery"],
            default_database_name=self.naming.db_default_database,
            enable_performance_insights=True,
            performance_insight_retention=rds.PerformanceInsightRetention.DEFAULT,
            monitoring_role=rds_monitoring_role(self, self.naming.db_monitoring_role),
            monitoring_interval=Duration.seconds(60),
            writer=rds.ClusterInstance.provisioned(
                "DatabaseInstanceWriter",
                instance_type=ec2.InstanceType(self.settings.database_instance_type),
                instance_identifier=self.naming.db_writer,
                publicly_accessible=False,
                allow_major_version_upgrade=False,
                auto_minor_version_upgrade=True,
            ),
            backup=rds.BackupProps(retention=backup_retention, preferred_window="00:00-03:00"),
        )

    def _create_app_secret(self) -> secretsmanager.Secret:
        # hostReader lets the app split reads once replicas are added
        app_secret = secretsmanager.Secret(
            self,
            "DatabaseSecretUserApp",
            secret_name=self.naming.db_app_secret,
            generate_secret_string=secretsmanager.SecretStringGenerator(
                exclude_punctuation=True,
                secret_string_template=self.to_json_string(
                    {
                        "username": APP_USERNAME,
                        "hostReader": self.cluster.cluster_endpoint.hostname,
                    }
                ),
                generate_string_key="password",
            ),
        )

        secretsmanager.SecretTargetAttachment(
            self,
            "DatabaseSecretUserAppAttachment",
            secret=app_secret,
            target=self.cluster,
        )

        create_param(
            self,
            "DatabaseSecretUserAppArn",
            self.naming.output_key("database-secret-user-app-arn"),
            app_secret.secret_arn,
        )
        return app_secret
