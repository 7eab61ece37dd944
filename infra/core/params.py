"""
SSM Parameter Store helpers for passing identifiers between stacks.

Stacks deploy independently, so instead of CloudFormation exports they
publish values under ``/cdk/output/...`` and consumers read them back:

- ``create_param`` writes a parameter owned by the current stack.
- ``get_param`` resolves a parameter at synth time (context lookup).
- ``resolve_param`` resolves a parameter at deploy time in the same region.
- ``SsmParameterStoreReader`` resolves a parameter at deploy time from
  another region, which CloudFormation dynamic references cannot do.
"""

import time

from aws_cdk import Arn, ArnComponents, Stack
from aws_cdk import aws_ssm as ssm
from aws_cdk import custom_resources as cr
from constructs import Construct

from .naming import PARAMETER_ROOT


def _parameter_path(name: str) -> str:
    if not name:
        raise ValueError("Parameter name must not be empty")
    return f"{PARAMETER_ROOT}/{name.lstrip('/')}"


def create_param(scope: Construct, logical_id: str, name: str, value: str) -> ssm.StringParameter:
    """Publish ``value`` at ``/cdk/output/{name}``."""
    return ssm.StringParameter(
        scope,
        logical_id,
        parameter_name=_parameter_path(name),
        string_value=value,
    )


def get_param(scope: Construct, name: str) -> str:
    """
    Look up ``/cdk/output/{name}`` during synthesis.

    The value is cached in cdk.context.json. Until the first real lookup it
    is a dummy placeholder, so only use it where a concrete string is needed.
    """
    return ssm.StringParameter.value_from_lookup(scope, _parameter_path(name))


def resolve_param(scope: Construct, name: str) -> str:
    """Token for ``/cdk/output/{name}``, resolved by CloudFormation at deploy time."""
    return ssm.StringParameter.value_for_string_parameter(scope, _parameter_path(name))


class SsmParameterStoreReader(cr.AwsCustomResource):
    """
    Reads a parameter from a specific region when the stack is deployed.

    Used by the CDN stack to pick up the WebACL ARN, which only exists in
    us-east-1 while the distribution stack lives in the application region.
    """

    def __init__(self, scope: Construct, construct_id: str, *, parameter_name: str, region: str) -> None:
        on_update = cr.AwsSdkCall(
            region=region,
            service="SSM",
            action="getParameter",
            parameters={"Name": parameter_name},
            # New id on every deploy so the value is fetched again
            physical_resource_id=cr.PhysicalResourceId.of(str(int(time.time() * 1000))),
        )

        policy = cr.AwsCustomResourcePolicy.from_sdk_calls(
            resources=[
                Arn.format(
                    ArnComponents(
                        service="ssm",
                        region=region,
                        resource="parameter",
                        resource_name=parameter_name.lstrip("/"),
                    ),
                    Stack.of(scope),
                )
            ]
        )

        super().__init__(scope, construct_id, on_update=on_update, policy=policy)

    @property
    def value(self) -> str:
        return self.get_response_field("Parameter.Value")
