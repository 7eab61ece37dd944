"""
Common stack - VPC endpoints and the subnet network ACL.

Interface endpoints keep ECS image pulls, secrets, logs and SSM sessions
inside the VPC. The network ACL denies well-known management and database
ports from the internet while leaving the VPC and the shared VPC open.
"""

from aws_cdk import Stack, Tags
from aws_cdk import aws_ec2 as ec2
from constructs import Construct

from core.lookups import lookup_vpc
from core.naming import get_naming
from core.settings import Settings, get_settings

# Endpoint id suffix -> service
INTERFACE_ENDPOINTS = {
    "SSM": ec2.InterfaceVpcEndpointAwsService.SSM,
    "SSMMessages": ec2.InterfaceVpcEndpointAwsService.SSM_MESSAGES,
    "EC2Messages": ec2.InterfaceVpcEndpointAwsService.EC2_MESSAGES,
    "SecretManager": ec2.InterfaceVpcEndpointAwsService.SECRETS_MANAGER,
    "Ecr": ec2.InterfaceVpcEndpointAwsService.ECR,
    "EcrDocker": ec2.InterfaceVpcEndpointAwsService.ECR_DOCKER,
    "CloudWatchLogs": ec2.InterfaceVpcEndpointAwsService.CLOUDWATCH_LOGS,
}

# (entry id, rule number, traffic) denied from anywhere
DENIED_INGRESS = (
    ("FtpAndSsh", 130, ec2.AclTraffic.tcp_port_range(20, 22)),
    ("MySql", 140, ec2.AclTraffic.tcp_port(3306)),
    ("Rdp", 150, ec2.AclTraffic.tcp_port(3389)),
    ("PostgreSql", 160, ec2.AclTraffic.tcp_port(5432)),
    ("Qotd", 170, ec2.AclTraffic.udp_port(17)),
)


class CommonStack(Stack):
    """Creates VPC endpoints and the network ACL shared by every tier."""

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

        self.endpoints_security_group = self._create_endpoints_security_group()
        self._create_vpc_endpoints()
        self.network_acl = self._create_network_acl()

    def _create_endpoints_security_group(self) -> ec2.SecurityGroup:
        security_group = ec2.SecurityGroup(
            self,
            "VpcEndpointSecurityGroup",
            vpc=self.vpc,
            allow_all_outbound=True,
            security_group_name=self.naming.endpoints_sg,
            description="Security group for the Vpc Endpoints",
        )
        Tags.of(security_group).add("Name", self.naming.endpoints_sg)

        security_group.add_ingress_rule(
            ec2.Peer.ipv4(self.vpc.vpc_cidr_block),
            ec2.Port.all_traffic(),
            "Allow all traffic from VPC",
        )
        return security_group

    def _create_vpc_endpoints(self) -> None:
        # Built in this stack's scope, the VPC may belong to another stack
        for suffix, service in INTERFACE_ENDPOINTS.items():
            ec2.InterfaceVpcEndpoint(
                self,
                f"VpcEndpoint{suffix}",
                vpc=self.vpc,
                service=service,
                private_dns_enabled=True,
                open=False,
                security_groups=[self.endpoints_security_group],
                subnets=ec2.SubnetSelection(subnets=self.vpc.private_subnets),
            )

        ec2.GatewayVpcEndpoint(
            self,
            "VpcEndpointS3",
            vpc=self.vpc,
            service=ec2.GatewayVpcEndpointAwsService.S3,
            subnets=[
                ec2.SubnetSelection(subnet_type=ec2.SubnetType.PRIVATE_WITH_EGRESS),
                ec2.SubnetSelection(subnet_type=ec2.SubnetType.PUBLIC),
                ec2.SubnetSelection(subnet_type=ec2.SubnetType.PRIVATE_ISOLATED),
            ],
        )

    def _create_network_acl(self) -> ec2.NetworkAcl:
        network_acl = ec2.NetworkAcl(
            self,
            "NetworkAcl",
            vpc=self.vpc,
            network_acl_name=self.naming.network_acl,
            subnet_selection=ec2.SubnetSelection(
                subnets=[
                    *self.vpc.private_subnets,
                    *self.vpc.isolated_subnets,
                    *self.vpc.public_subnets,
                ]
            ),
        )

        network_acl.add_entry(
            "AllTrafficFromVpc",
            cidr=ec2.AclCidr.ipv4(self.vpc.vpc_cidr_block),
            rule_number=100,
            rule_action=ec2.Action.ALLOW,
            traffic=ec2.AclTraffic.all_traffic(),
            direction=ec2.TrafficDirection.INGRESS,
        )

        if self.settings.shared_vpc_cidr:
            network_acl.add_entry(
                "MySqlFromSharedVpc",
                cidr=ec2.AclCidr.ipv4(self.settings.shared_vpc_cidr),
                rule_number=110,
                rule_action=ec2.Action.ALLOW,
                traffic=ec2.AclTraffic.tcp_port(3306),
                direction=ec2.TrafficDirection.INGRESS,
            )

        for entry_id, rule_number, traffic in DENIED_INGRESS:
            network_acl.add_entry(
                entry_id,
                cidr=ec2.AclCidr.any_ipv4(),
                rule_number=rule_number,
                rule_action=ec2.Action.DENY,
                traffic=traffic,
                direction=ec2.TrafficDirection.INGRESS,
            )

        network_acl.add_entry(
            "AllTrafficIngress",
            cidr=ec2.AclCidr.any_ipv4(),
            rule_number=9999,
            rule_action=ec2.Action.ALLOW,
            traffic=ec2.AclTraffic.all_traffic(),
            direction=ec2.TrafficDirection.INGRESS,
        )
        network_acl.add_entry(
            "AllTrafficEgress",
            cidr=ec2.AclCidr.any_ipv4(),
            rule_number=100,
            rule_action=ec2.Action.ALLOW,
            traffic=ec2.AclTraffic.all_traffic(),
            direction=ec2.TrafficDirection.EGRESS,
        )

        return network_acl
