"""
Compute stack - ALB, ECS cluster and the WordPress service.

The database and EFS resources belong to their own stacks and are imported
from the ids those stacks publish in SSM, resolved by CloudFormation at
deploy time.
"""

from aws_cdk import CfnOutput, Stack, Tags
from aws_cdk import aws_ec2 as ec2
from aws_cdk import aws_ecs as ecs
from aws_cdk import aws_efs as efs
from aws_cdk import aws_elasticloadbalancingv2 as elbv2
from aws_cdk import aws_iam as iam
from aws_cdk import aws_secretsmanager as secretsmanager
from constructs import Construct

from core.certificates import certificates_from_arns
from core.constants import CLOUDFRONT_ORIGIN_PREFIX_LIST
from core.iam import vpc_perimeter_policy
from core.lookups import lookup_vpc
from core.naming import get_naming
from core.params import resolve_param
from core.settings import Settings, get_settings

from .wordpress_service import SERVICE_NAME, WordpressService


class ComputeStack(Stack):
    """
    Creates the internet-facing ALB and the ECS cluster running WordPress.

    The ALB only accepts HTTPS from the CloudFront origin-facing prefix list
    and answers 503 to anything no listener rule matches.
    """

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

        # =================================================================
        # Imports from the database and EFS stacks
        # =================================================================

        self.database_security_group = ec2.SecurityGroup.from_security_group_id(
            self,
            "DatabaseSg",
            resolve_param(self, self.naming.output_key("database-app-sg-id")),
        )
        self.database_secret = secretsmanager.Secret.from_secret_complete_arn(
            self,
            "DatabaseSecretUserApp",
            resolve_param(self, self.naming.output_key("database-secret-user-app-arn")),
        )

        self.file_system = efs.FileSystem.from_file_system_attributes(
            self,
            "WordpressEfs",
            file_system_id=resolve_param(self, self.naming.output_key(f"efs-{SERVICE_NAME}-file-system-id")),
            security_group=ec2.SecurityGroup.from_security_group_id(
                self,
                "WordpressEfsSg",
                resolve_param(self, self.naming.output_key(f"efs-{SERVICE_NAME}-security-group-id")),
            ),
        )
        self.access_point = efs.AccessPoint.from_access_point_attributes(
            self,
            "WordpressAccessPoint",
            access_point_id=resolve_param(self, self.naming.output_key(f"efs-{SERVICE_NAME}-access-point-id")),
            file_system=self.file_system,
        )

        # =================================================================
        # Load balancer
        # =================================================================

        self.alb_security_group = self._create_alb_security_group()
        self.alb = elbv2.ApplicationLoadBalancer(
            self,
            "ApplicationLoadBalancer",
            vpc=self.vpc,
            vpc_subnets=ec2.SubnetSelection(subnet_type=ec2.SubnetType.PUBLIC),
            internet_facing=True,
            security_group=self.alb_security_group,
            load_balancer_name=self.naming.alb,
            desync_mitigation_mode=elbv2.DesyncMitigationMode.STRICTEST,
            drop_invalid_header_fields=True,
        )
        self.https_listener = self._create_https_listener()

        # =================================================================
        # ECS
        # =================================================================

        self.execution_role = self._create_execution_role()
        self.cluster = ecs.Cluster(
            self,
            "EcsCluster",
            vpc=self.vpc,
            cluster_name=self.naming.ecs_cluster,
            container_insights_v2=ecs.ContainerInsights.ENABLED,
        )

        self.wordpress = WordpressService(
            self,
            "Wordpress",
            settings=self.settings,
            vpc=self.vpc,
            listener=self.https_listener,
            alb_security_group=self.alb_security_group,
            database_security_group=self.database_security_group,
            cluster=self.cluster,
            execution_role=self.execution_role,
            file_system=self.file_system,
            access_point=self.access_point,
            secret_variables=self._database_secret_variables(),
        )

        CfnOutput(
            self,
            "LoadBalancerDnsName",
            value=self.alb.load_balancer_dns_name,
            description="ALB DNS name (CloudFront origin)",
        )

    def _create_alb_security_group(self) -> ec2.SecurityGroup:
        security_group = ec2.SecurityGroup(
            self,
            "AlbSecurityGroup",
            vpc=self.vpc,
            allow_all_outbound=True,
            security_group_name=self.naming.alb_sg,
            description="Security group for the Application Load Balancer",
        )
        Tags.of(security_group).add("Name", self.naming.alb_sg)

        security_group.add_ingress_rule(
            ec2.Peer.prefix_list(CLOUDFRONT_ORIGIN_PREFIX_LIST),
            ec2.Port.HTTPS,
            "Allow traffic from CloudFront",
        )
        return security_group

    def _create_https_listener(self) -> elbv2.ApplicationListener:
        if not self.settings.alb_certificate_arns:
            raise ValueError("bamboo_ALB_CERTIFICATE_ARNS is required for the HTTPS listener")

        certificates = certificates_from_arns(self, self.settings.alb_certificate_arns)
        return self.alb.add_listener(
            "HttpsListener",
            open=False,
            protocol=elbv2.ApplicationProtocol.HTTPS,
            port=443,
            certificates=[elbv2.ListenerCertificate.from_certificate_manager(cert) for cert in certificates],
            ssl_policy=elbv2.SslPolicy.TLS13_RES,
            default_action=elbv2.ListenerAction.fixed_response(
                503,
                content_type="text/plain",
                message_body="Service Unavailable",
            ),
        )

    def _create_execution_role(self) -> iam.Role:
        return iam.Role(
            self,
            "TaskExecutionRole",
            role_name=self.naming.ecs_execution_role,
            assumed_by=iam.CompositePrincipal(
                iam.ServicePrincipal("ecs.amazonaws.com"),
                iam.ServicePrincipal("ecs-tasks.amazonaws.com"),
            ),
            managed_policies=[
                iam.ManagedPolicy.from_aws_managed_policy_name("service-role/AmazonECSTaskExecutionRolePolicy"),
            ],
            inline_policies={
                "allow-ssm": iam.PolicyDocument(
                    statements=[
                        iam.PolicyStatement(
                            actions=[
                                "ssmmessages:*",
                                "ssm:UpdateInstanceInformation",
                                "ecs:ExecuteCommand",
                            ],
                            resources=["*"],
                        )
                    ]
                ),
                "vpc-perimeter": vpc_perimeter_policy(self.vpc.vpc_id),
            },
        )

    def _database_secret_variables(self) -> dict[str, ecs.Secret]:
        # RDS secret fields, WordPress builds its wp-config from these
        fields = {
            "DATABASE_USERNAME": "username",
            "DATABASE_PASSWORD": "password",
            "DATABASE_HOST": "host",
            "DATABASE_PORT": "port",
            "DATABASE_NAME": "dbname",
        }
        return {name: ecs.Secret.from_secrets_manager(self.database_secret, field) for name, field in fields.items()}
