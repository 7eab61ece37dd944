"""IAM roles and policy documents reused across stacks."""

from aws_cdk import aws_iam as iam
from constructs import Construct


def rds_monitoring_role(scope: Construct, role_name: str) -> iam.Role:
    """Role assumed by RDS to publish enhanced monitoring metrics."""
    return iam.Role(
        scope,
        "RdsMonitoringRole",
        role_name=role_name,
        assumed_by=iam.ServicePrincipal("monitoring.rds.amazonaws.com"),
        managed_policies=[
            iam.ManagedPolicy.from_aws_managed_policy_name("service-role/AmazonRDSEnhancedMonitoringRole")
        ],
    )


def vpc_perimeter_policy(vpc_id: str) -> iam.PolicyDocument:
    """
    Deny any call made with the role's credentials from outside ``vpc_id``.

    Calls that AWS services make on the role's behalf are still allowed.
    """
    return iam.PolicyDocument(
        statements=[
            iam.PolicyStatement(
                effect=iam.Effect.DENY,
                actions=["*"],
                resources=["*"],
                conditions={
                    "StringNotEqualsIfExists": {"aws:SourceVpc": vpc_id},
                    "BoolIfExists": {"aws:ViaAWSService": "false"},
                },
            )
        ]
    )
