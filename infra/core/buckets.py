"""
S3 bucket conventions: lifecycle housekeeping and transport-security policies.
"""

from aws_cdk import Duration
from aws_cdk import aws_iam as iam
from aws_cdk import aws_s3 as s3

from .settings import PRODUCTION_ENV

# Intelligent-Tiering does not monitor objects below 128 KiB
INTELLIGENT_TIERING_MIN_SIZE = 131072


def common_lifecycle_rules(env: str) -> list[s3.LifecycleRule]:
    return [
        s3.LifecycleRule(
            id="daily-housekeeping",
            enabled=True,
            expired_object_delete_marker=True,
            abort_incomplete_multipart_upload_after=Duration.days(3),
        ),
        s3.LifecycleRule(
            id="expire-noncurrent-objects",
            enabled=True,
            noncurrent_version_expiration=Duration.days(7 if env == PRODUCTION_ENV else 3),
            noncurrent_versions_to_retain=5,
        ),
        s3.LifecycleRule(
            id="transition-current-objects-to-intelligent-tiering",
            enabled=True,
            object_size_greater_than=INTELLIGENT_TIERING_MIN_SIZE,
            transitions=[
                s3.Transition(
                    storage_class=s3.StorageClass.INTELLIGENT_TIERING,
                    transition_after=Duration.days(0),
                )
            ],
        ),
    ]


def _deny_all(bucket: s3.IBucket, conditions: dict) -> iam.PolicyStatement:
    return iam.PolicyStatement(
        effect=iam.Effect.DENY,
        principals=[iam.StarPrincipal()],
        actions=["s3:*"],
        resources=[bucket.bucket_arn, bucket.arn_for_objects("*")],
        conditions=conditions,
    )


def common_bucket_policies(bucket: s3.IBucket) -> list[iam.PolicyStatement]:
    """Deny plain HTTP, TLS below 1.2 and anything not signed with SigV4."""
    return [
        _deny_all(bucket, {"Bool": {"aws:SecureTransport": "false"}}),
        _deny_all(bucket, {"NumericLessThan": {"s3:TlsVersion": "1.2"}}),
        _deny_all(bucket, {"StringNotEqualsIfExists": {"s3:signatureversion": "AWS4-HMAC-SHA256"}}),
    ]


def cloudfront_read_policy(bucket: s3.IBucket, distribution_id: str, account: str) -> iam.PolicyStatement:
    """Let one CloudFront distribution (through Origin Access Control) read objects."""
    return iam.PolicyStatement(
        effect=iam.Effect.ALLOW,
        principals=[iam.ServicePrincipal("cloudfront.amazonaws.com")],
        actions=["s3:GetObject"],
        resources=[bucket.arn_for_objects("*")],
        conditions={
            "StringEquals": {
                "AWS:SourceArn": f"arn:aws:cloudfront::{account}:distribution/{distribution_id}",
            }
        },
    )
