"""
Tests for the VPC stack.
"""

import pytest
from aws_cdk.assertions import Match, Template

from core.constants import VPC_LAYOUTS
from stacks.vpc_stack import VpcStack, export_name
from tests.conftest import ENV


@pytest.fixture
def template(app, make_settings):
    stack = VpcStack(app, "Vpc", settings=make_settings(env="pro"), env=ENV)
    return Template.from_stack(stack)


class TestVpcStack:
    """Tests for the explicit-CIDR VPC."""

    def test_vpc_uses_layout_cidr(self, template):
        """Test that the VPC takes the production CIDR."""
        template.resource_count_is("AWS::EC2::VPC", 1)
        template.has_resource_properties(
            "AWS::EC2::VPC",
            {
                "CidrBlock": VPC_LAYOUTS["pro"].vpc_cidr,
                "EnableDnsHostnames": True,
                "EnableDnsSupport": True,
            },
        )

    def test_three_tiers_of_two_subnets(self, template):
        """Test that every tier gets its subnets with CDK subnet tags."""
        template.resource_count_is("AWS::EC2::Subnet", 6)
        template.resource_count_is("AWS::EC2::RouteTable", 6)

        for tier in ("Public", "Private", "Isolated"):
            template.has_resource_properties(
                "AWS::EC2::Subnet",
                {"Tags": Match.array_with([{"Key": "aws-cdk:subnet-type", "Value": tier}])},
            )

    def test_subnet_cidrs_follow_layout(self, template):
        """Test that no subnet range is carved by CDK."""
        layout = VPC_LAYOUTS["pro"]
        expected = {*layout.public_subnets, *layout.private_subnets, *layout.isolated_subnets}

        subnets = template.find_resources("AWS::EC2::Subnet")
        assert {subnet["Properties"]["CidrBlock"] for subnet in subnets.values()} == expected

    def test_one_nat_gateway_per_public_subnet(self, template):
        """Test NAT gateways and their elastic IPs."""
        template.resource_count_is("AWS::EC2::NatGateway", 2)
        template.resource_count_is("AWS::EC2::EIP", 2)
        template.resource_count_is("AWS::EC2::InternetGateway", 1)

    def test_nat_gateways_wait_for_internet_gateway(self, template):
        """Test that no NAT gateway is created before the internet gateway is attached."""
        (attachment_id,) = template.find_resources("AWS::EC2::VPCGatewayAttachment")

        for nat_gateway in template.find_resources("AWS::EC2::NatGateway").values():
            assert attachment_id in nat_gateway["DependsOn"]

    def test_default_routes(self, template):
        """Test that public and private subnets route out and isolated ones do not."""
        template.resource_count_is("AWS::EC2::Route", 4)
        routes = template.find_resources("AWS::EC2::Route").values()

        assert sum("GatewayId" in route["Properties"] for route in routes) == 2
        assert sum("NatGatewayId" in route["Properties"] for route in routes) == 2

    def test_publishes_vpc_id(self, template):
        """Test the VPC parameter and the CloudFormation export."""
        template.has_resource_properties(
            "AWS::SSM::Parameter",
            {"Name": "/cdk/output/srs-mujeres-vpc-pro", "Type": "String"},
        )
        template.has_output("VpcIdOutput", {"Export": {"Name": "VpcIdMujeres"}})

    def test_unknown_env_is_rejected(self, app, make_settings):
        """Test that an env without a layout fails synthesis."""
        with pytest.raises(ValueError, match="No VPC layout declared for env 'dev'"):
            VpcStack(app, "Vpc", settings=make_settings(env="dev"), env=ENV)


class TestExportName:
    """Tests for export_name."""

    def test_capitalizes_project_parts(self):
        """Test dash and underscore separated projects."""
        assert export_name("mujeres") == "VpcIdMujeres"
        assert export_name("my-project") == "VpcIdMyProject"
        assert export_name("my_project") == "VpcIdMyProject"
