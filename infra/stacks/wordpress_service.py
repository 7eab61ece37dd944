"""
WordPress ECS service built inside the compute stack.

Runs the WordPress image on Fargate with the document root on EFS, behind
the compute stack's HTTPS listener. The listener rule only forwards requests
that carry the CloudFront secret header, so the ALB cannot be used to bypass
the CDN and its WAF.
"""

from aws_cdk import Duration, RemovalPolicy, Tags
from aws_cdk import aws_ec2 as ec2
from aws_cdk import aws_ecr as ecr
from aws_cdk import aws_ecs as ecs
from aws_cdk import aws_efs as efs
from aws_cdk import aws_elasticloadbalancingv2 as elbv2
from aws_cdk import aws_iam as iam
from aws_cdk import aws_logs as logs
from constructs import Construct

from core.constants import APP_CUSTOM_HEADER_NAME
from core.logging import get_logger
from core.naming import get_naming
from core.params import create_param
from core.secrets import secret_from_plain_variables, to_ecs_secrets
from core.settings import Settings

logger = get_logger(__name__)

APP_PORT = 80
SERVICE_NAME = "wordpress"
DOCUMENT_ROOT = "/var/www/html"
EFS_VOLUME_NAME = "wordpressEfsVolume"

MIN_TASKS = 2
MAX_TASKS = 5

# A listener rule takes at most 5 condition values, one goes to the secret header
MAX_HOST_HEADER_VALUES = 4


class WordpressService(Construct):
    """
    Task definition, security group, target group and Fargate service.

    ``secret_variables`` are injected as-is, ``plain_variables`` are first
    stored in a dedicated secret so no configuration ends up in the task
    definition in clear text.
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        settings: Settings,
        vpc: ec2.IVpc,
        listener: elbv2.ApplicationListener,
        alb_security_group: ec2.ISecurityGroup,
        database_security_group: ec2.ISecurityGroup,
        cluster: ecs.ICluster,
        execution_role: iam.IRole,
        file_system: efs.IFileSystem,
        access_point: efs.IAccessPoint,
        secret_variables: dict[str, ecs.Secret],
        plain_variables: dict[str, str] | None = None,
    ) -> None:
        super().__init__(scope, construct_id)

        self._settings = settings
        self._naming = get_naming(settings)
        plain_variables = plain_variables or {}

        self.log_group = logs.LogGroup(
            self,
            "LogGroup",
            log_group_name=self._naming.task(SERVICE_NAME, "log-group"),
            retention=(
                logs.RetentionDays.TWO_YEARS if settings.is_production else logs.RetentionDays.ONE_MONTH
            ),
            removal_policy=RemovalPolicy.RETAIN_ON_UPDATE_OR_DELETE,
        )

        self.repository = ecr.Repository(
            self,
            "Repository",
            repository_name=self._naming.task(SERVICE_NAME, "repository"),
        )

        self.task_role = iam.Role(
            self,
            "TaskRole",
            role_name=self._naming.task(SERVICE_NAME, "task-role"),
            assumed_by=iam.ServicePrincipal("ecs-tasks.amazonaws.com"),
            managed_policies=[
                iam.ManagedPolicy.from_aws_managed_policy_name("service-role/AmazonECSTaskExecutionRolePolicy"),
            ],
        )
        create_param(self, "TaskDefArn", self._naming.task(SERVICE_NAME, "task-role"), self.task_role.role_arn)

        self.secret = secret_from_plain_variables(
            self,
            "Wordpress",
            name=self._naming.task(SERVICE_NAME, "secrets"),
            variables=plain_variables,
        )

        self.task_definition = self._create_task_definition(
            execution_role=execution_role,
            file_system=file_system,
            access_point=access_point,
            secrets={**secret_variables, **to_ecs_secrets(self.secret, plain_variables)},
        )

        self.security_group = self._create_security_group(vpc, alb_security_group, database_security_group)
        create_param(
            self,
            "WordpressServiceSgId",
            self._naming.service_sg(SERVICE_NAME),
            self.security_group.security_group_id,
        )

        self.target_group = elbv2.ApplicationTargetGroup(
            self,
            "TargetGroup",
            vpc=vpc,
            target_group_name=self._naming.target_group,
            protocol=elbv2.ApplicationProtocol.HTTP,
            target_type=elbv2.TargetType.IP,
            stickiness_cookie_duration=Duration.days(1),
            port=APP_PORT,
            health_check=elbv2.HealthCheck(
                path="/",
                interval=Duration.seconds(60),
                timeout=Duration.seconds(30),
                healthy_threshold_count=3,
                unhealthy_threshold_count=5,
                healthy_http_codes="200",
            ),
        )

        self.service = ecs.FargateService(
            self,
            "Service",
            cluster=cluster,
            service_name=self._naming.task(SERVICE_NAME, "service"),
            desired_count=MIN_TASKS,
            task_definition=self.task_definition,
            assign_public_ip=False,
            enable_execute_command=True,
            security_groups=[self.security_group],
            circuit_breaker=ecs.DeploymentCircuitBreaker(rollback=True),
            vpc_subnets=ec2.SubnetSelection(subnet_type=ec2.SubnetType.PRIVATE_WITH_EGRESS),
        )
        self.service.attach_to_application_target_group(self.target_group)

        scaling = self.service.auto_scale_task_count(min_capacity=MIN_TASKS, max_capacity=MAX_TASKS)
        scaling.scale_on_cpu_utilization("CpuScaling", target_utilization_percent=75)

        self._configure_efs_access(file_system, access_point)
        self._attach_to_listener(listener)

    def _create_task_definition(
        self,
        *,
        execution_role: iam.IRole,
        file_system: efs.IFileSystem,
        access_point: efs.IAccessPoint,
        secrets: dict[str, ecs.Secret],
    ) -> ecs.FargateTaskDefinition:
        task_definition = ecs.FargateTaskDefinition(
            self,
            "TaskDefinition",
            family=self._naming.task(SERVICE_NAME, "ecstask"),
            execution_role=execution_role,
            task_role=self.task_role,
            cpu=512,
            memory_limit_mib=1024,
        )

        task_definition.add_volume(
            name=EFS_VOLUME_NAME,
            efs_volume_configuration=ecs.EfsVolumeConfiguration(
                file_system_id=file_system.file_system_id,
                authorization_config=ecs.AuthorizationConfig(
                    access_point_id=access_point.access_point_id,
                    iam="ENABLED",
                ),
                transit_encryption="ENABLED",
            ),
        )

        image_tag = self._settings.shared_service_image_tag or "latest"
        container = task_definition.add_container(
            "WordpressContainer",
            container_name=SERVICE_NAME,
            essential=True,
            image=ecs.ContainerImage.from_ecr_repository(self.repository, image_tag),
            health_check=ecs.HealthCheck(
                command=["CMD-SHELL", "curl -s -f http://127.0.0.1/ || exit 1"],
                interval=Duration.seconds(30),
                start_period=Duration.seconds(60),
                timeout=Duration.seconds(10),
                retries=2,
            ),
            logging=ecs.LogDrivers.aws_logs(log_group=self.log_group, stream_prefix=SERVICE_NAME),
            port_mappings=[ecs.PortMapping(container_port=APP_PORT)],
            secrets=secrets,
        )
        container.add_mount_points(
            ecs.MountPoint(container_path=DOCUMENT_ROOT, source_volume=EFS_VOLUME_NAME, read_only=False)
        )

        logger.info("task_definition_defined", service=SERVICE_NAME, image_tag=image_tag, secrets=sorted(secrets))
        return task_definition

    def _create_security_group(
        self,
        vpc: ec2.IVpc,
        alb_security_group: ec2.ISecurityGroup,
        database_security_group: ec2.ISecurityGroup,
    ) -> ec2.SecurityGroup:
        name = self._naming.service_sg(SERVICE_NAME)
        security_group = ec2.SecurityGroup(
            self,
            "SecurityGroup",
            vpc=vpc,
            security_group_name=name,
            allow_all_outbound=True,
            description=f"Security group for the ECS service ({SERVICE_NAME})",
        )
        Tags.of(security_group).add("Name", name)

        security_group.add_ingress_rule(alb_security_group, ec2.Port.tcp(APP_PORT), "Allow traffic from the ALB")
        database_security_group.add_ingress_rule(
            security_group,
            ec2.Port.tcp(3306),
            f"Allow traffic from the application ({SERVICE_NAME}) to the database",
        )
        return security_group

    def _configure_efs_access(self, file_system: efs.IFileSystem, access_point: efs.IAccessPoint) -> None:
        file_system.connections.allow_default_port_from(self.security_group)

        self.task_role.add_to_policy(
            iam.PolicyStatement(
                effect=iam.Effect.ALLOW,
                actions=[
                    "elasticfilesystem:ClientMount",
                    "elasticfilesystem:ClientWrite",
                    "elasticfilesystem:ClientRootAccess",
                ],
                resources=[file_system.file_system_arn],
                conditions={
                    "StringEquals": {"elasticfilesystem:AccessPointArn": access_point.access_point_arn},
                },
            )
        )

    def _attach_to_listener(self, listener: elbv2.ApplicationListener) -> None:
        conditions = [
            elbv2.ListenerCondition.http_header(
                APP_CUSTOM_HEADER_NAME,
                [self._settings.cloudfront_custom_secret_header_value],
            )
        ]
        domains = self._settings.domains
        if len(domains) > MAX_HOST_HEADER_VALUES:
            raise ValueError(
                f"bamboo_CLOUDFRONT_DOMAINS lists {len(domains)} domains, "
                f"the listener rule accepts at most {MAX_HOST_HEADER_VALUES}"
            )
        if domains:
            conditions.append(elbv2.ListenerCondition.host_headers(domains))

        listener.add_action(
            "WordpressServiceAction",
            priority=1,
            conditions=conditions,
            action=elbv2.ListenerAction.forward([self.target_group]),
        )
