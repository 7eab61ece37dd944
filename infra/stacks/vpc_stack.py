"""
VPC stack - explicit-CIDR VPC with public, private and isolated tiers.

The subnet plan comes from ``core.constants.VPC_LAYOUTS`` instead of being
carved by CDK, because the shared account routes to these exact ranges
through the peering connection.

Subnets are tagged with ``aws-cdk:subnet-type``/``aws-cdk:subnet-name`` so
that ``ec2.Vpc.from_lookup`` in the other stacks classifies them correctly.
"""

from aws_cdk import CfnOutput, CfnTag, Fn, Stack
from aws_cdk import aws_ec2 as ec2
from constructs import Construct

from core.constants import VPC_LAYOUTS, VpcLayout
from core.logging import get_logger
from core.naming import Naming, get_naming
from core.params import create_param
from core.settings import Settings, get_settings

logger = get_logger(__name__)

PUBLIC = "Public"
PRIVATE = "Private"
ISOLATED = "Isolated"


class ExplicitCidrVpc(Construct):
    """
    VPC assembled from L1 resources.

    One NAT gateway per public subnet, each private subnet routes through
    the NAT gateway in the same position. Isolated subnets get no default
    route.
    """

    def __init__(self, scope: Construct, construct_id: str, *, layout: VpcLayout, naming: Naming) -> None:
        super().__init__(scope, construct_id)

        self._naming = naming

        self.cfn_vpc = ec2.CfnVPC(
            self,
            "Vpc",
            cidr_block=layout.vpc_cidr,
            enable_dns_hostnames=True,
            enable_dns_support=True,
            tags=[CfnTag(key="Name", value=naming.vpc)],
        )

        internet_gateway = ec2.CfnInternetGateway(
            self,
            "InternetGateway",
            tags=[CfnTag(key="Name", value=naming.name("igw"))],
        )
        gateway_attachment = ec2.CfnVPCGatewayAttachment(
            self,
            "InternetGatewayAttachment",
            vpc_id=self.cfn_vpc.ref,
            internet_gateway_id=internet_gateway.ref,
        )

        self.public_subnets: list[ec2.CfnSubnet] = []
        self.nat_gateways: list[ec2.CfnNatGateway] = []
        for index, cidr in enumerate(layout.public_subnets):
            subnet, route_table = self._add_subnet(PUBLIC, index, cidr)
            route = ec2.CfnRoute(
                self,
                f"{PUBLIC}Subnet{index + 1}DefaultRoute",
                route_table_id=route_table.ref,
                destination_cidr_block="0.0.0.0/0",
                gateway_id=internet_gateway.ref,
            )
            route.add_dependency(gateway_attachment)

            eip = ec2.CfnEIP(
                self,
                f"{PUBLIC}Subnet{index + 1}Eip",
                domain="vpc",
                tags=[CfnTag(key="Name", value=naming.name(f"nat-eip-{index + 1}"))],
            )
            nat_gateway = ec2.CfnNatGateway(
                self,
                f"{PUBLIC}Subnet{index + 1}NatGateway",
                subnet_id=subnet.ref,
                allocation_id=eip.attr_allocation_id,
                tags=[CfnTag(key="Name", value=naming.name(f"nat-{index + 1}"))],
            )
            nat_gateway.add_dependency(gateway_attachment)
            self.public_subnets.append(subnet)
            self.nat_gateways.append(nat_gateway)

        if layout.private_subnets and not self.nat_gateways:
            raise ValueError("Private subnets need at least one public subnet for the NAT gateway")

        self.private_subnets: list[ec2.CfnSubnet] = []
        for index, cidr in enumerate(layout.private_subnets):
            subnet, route_table = self._add_subnet(PRIVATE, index, cidr)
            nat_gateway = self.nat_gateways[index % len(self.nat_gateways)]
            ec2.CfnRoute(
                self,
                f"{PRIVATE}Subnet{index + 1}DefaultRoute",
                route_table_id=route_table.ref,
                destination_cidr_block="0.0.0.0/0",
                nat_gateway_id=nat_gateway.ref,
            )
            self.private_subnets.append(subnet)

        self.isolated_subnets: list[ec2.CfnSubnet] = []
        for index, cidr in enumerate(layout.isolated_subnets):
            subnet, _ = self._add_subnet(ISOLATED, index, cidr)
            self.isolated_subnets.append(subnet)

    def _add_subnet(self, tier: str, index: int, cidr: str) -> tuple[ec2.CfnSubnet, ec2.CfnRouteTable]:
        prefix = f"{tier}Subnet{index + 1}"
        name = self._naming.name(f"{tier.lower()}-subnet-{index + 1}")

        subnet = ec2.CfnSubnet(
            self,
            prefix,
            vpc_id=self.cfn_vpc.ref,
            cidr_block=cidr,
            availability_zone=Fn.select(index, Fn.get_azs()),
            map_public_ip_on_launch=tier == PUBLIC,
            tags=[
                CfnTag(key="Name", value=name),
                CfnTag(key="aws-cdk:subnet-type", value=tier),
                CfnTag(key="aws-cdk:subnet-name", value=tier),
            ],
        )
        route_table = ec2.CfnRouteTable(
            self,
            f"{prefix}RouteTable",
            vpc_id=self.cfn_vpc.ref,
            tags=[CfnTag(key="Name", value=f"{name}-rt")],
        )
        ec2.CfnSubnetRouteTableAssociation(
            self,
            f"{prefix}RouteTableAssociation",
            subnet_id=subnet.ref,
            route_table_id=route_table.ref,
        )
        return subnet, route_table


def export_name(project: str) -> str:
    """``my-project`` -> ``VpcIdMyProject``."""
    return "VpcId" + "".join(part.capitalize() for part in project.replace("_", "-").split("-"))


class VpcStack(Stack):
    """Creates the application VPC and publishes its id."""

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        settings: Settings | None = None,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        settings = settings or get_settings()
        naming = get_naming(settings)

        layout = VPC_LAYOUTS.get(settings.env)
        if layout is None:
            raise ValueError(
                f"No VPC layout declared for env {settings.env!r}, "
                f"known envs: {', '.join(sorted(VPC_LAYOUTS))}"
            )

        self.vpc = ExplicitCidrVpc(self, "Vpc", layout=layout, naming=naming)
        logger.info(
            "vpc_layout_applied",
            env=settings.env,
            vpc_cidr=layout.vpc_cidr,
            public=len(layout.public_subnets),
            private=len(layout.private_subnets),
            isolated=len(layout.isolated_subnets),
        )

        vpc_id = self.vpc.cfn_vpc.attr_vpc_id
        create_param(self, "VpcId", naming.vpc_parameter, vpc_id)

        CfnOutput(
            self,
            "VpcIdOutput",
            value=vpc_id,
            export_name=export_name(settings.project),
            description="Application VPC id",
        )
