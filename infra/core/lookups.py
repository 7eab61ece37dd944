"""
Lookups of resources owned by other stacks.

The VPC stack publishes its id under the VPC parameter; every other stack
finds the VPC through it so that stacks can be deployed one at a time.
"""

from aws_cdk import aws_ec2 as ec2
from constructs import Construct

from .naming import get_naming
from .params import get_param
from .settings import Settings


def lookup_vpc(scope: Construct, settings: Settings | None = None) -> ec2.IVpc:
    """
    Resolve the application VPC during synthesis.

    Requires the stack to have a concrete account and region, both lookups
    are cached in cdk.context.json after the first run.
    """
    vpc_id = get_param(scope, get_naming(settings).vpc_parameter)
    return ec2.Vpc.from_lookup(scope, "Vpc", vpc_id=vpc_id)
