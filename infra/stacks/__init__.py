"""CDK Stacks for the WordPress platform infrastructure."""

from .cloudfront_stack import CloudFrontStack
from .common_stack import CommonStack
from .compute_stack import ComputeStack
from .database_stack import DatabaseStack
from .efs_stack import EfsStack
from .peering_stack import PeeringStack
from .storage_stack import S3Stack
from .vpc_stack import VpcStack
from .waf_stack import ApplicationFirewallStack

__all__ = [
    "ApplicationFirewallStack",
    "CloudFrontStack",
    "CommonStack",
    "ComputeStack",
    "DatabaseStack",
    "EfsStack",
    "PeeringStack",
    "S3Stack",
    "VpcStack",
]
