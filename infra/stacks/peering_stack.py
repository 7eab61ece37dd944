"""
Peering stack - VPC peering to the shared services account.

The shared account accepts the connection through the peer role. Only the
isolated (database) subnets route to the shared private ranges.
"""

from aws_cdk import CfnTag, Stack
from aws_cdk import aws_ec2 as ec2
from constructs import Construct

from core.constants import SHARED_PEERING_REGION
from core.logging import get_logger
from core.lookups import lookup_vpc
from core.naming import get_naming
from core.settings import Settings, get_settings

logger = get_logger(__name__)


class PeeringStack(Stack):
    """Creates the peering connection and the isolated-subnet routes."""

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

        self.peering_connection = ec2.CfnVPCPeeringConnection(
            self,
            "PeeringConnection",
            vpc_id=self.vpc.vpc_id,
            peer_owner_id=settings.shared_peering_account_id,
            peer_vpc_id=settings.shared_peering_vpc_id,
            peer_role_arn=settings.shared_peering_role_arn,
            peer_region=SHARED_PEERING_REGION,
            tags=[CfnTag(key="Name", value=naming.peering)],
        )

        routes = 0
        for subnet in self.vpc.isolated_subnets:
            for index, cidr in enumerate(settings.shared_peering_private_subnets_cidr):
                ec2.CfnRoute(
                    self,
                    f"{subnet.subnet_id}-{index}-RouteToPeeringConnection",
                    route_table_id=subnet.route_table.route_table_id,
                    destination_cidr_block=cidr,
                    vpc_peering_connection_id=self.peering_connection.ref,
                )
                routes += 1

        logger.info("peering_routes_added", routes=routes, peer_vpc=settings.shared_peering_vpc_id)
