"""Secrets Manager helpers for container configuration."""

from aws_cdk import SecretValue
from aws_cdk import aws_ecs as ecs
from aws_cdk import aws_secretsmanager as secretsmanager
from constructs import Construct


def secret_from_plain_variables(
    scope: Construct,
    logical_id: str,
    *,
    name: str,
    variables: dict[str, str],
) -> secretsmanager.Secret | None:
    """
    Store plain variables as one JSON secret.

    Returns None when there is nothing to store, so callers can skip wiring.
    """
    if not variables:
        return None

    return secretsmanager.Secret(
        scope,
        f"{logical_id}SecretVariables",
        secret_name=name,
        secret_object_value={
            key: SecretValue.unsafe_plain_text(value) for key, value in variables.items()
        },
    )


def to_ecs_secrets(
    secret: secretsmanager.ISecret | None,
    variables: dict[str, str],
) -> dict[str, ecs.Secret]:
    """Map each variable name to the matching field of ``secret``."""
    if secret is None:
        return {}

    return {key: ecs.Secret.from_secrets_manager(secret, key) for key in variables}
