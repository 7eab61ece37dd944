"""
Storage stack - S3 bucket for files served through CloudFront.

The account-wide access-logs bucket ``s3logs-{account}-{region}`` is owned
by the landing zone and only imported here.
"""

from aws_cdk import CfnOutput, RemovalPolicy, Stack
from aws_cdk import aws_s3 as s3
from constructs import Construct

from core.buckets import common_lifecycle_rules
from core.naming import get_naming
from core.settings import Settings, get_settings


class S3Stack(Stack):
    """
    Creates the private files bucket.

    Objects are read by CloudFront through Origin Access Control. The bucket
    policy is owned by the CloudFront stack, which knows the distribution id.
    """

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

        self.access_logs_bucket = s3.Bucket.from_bucket_arn(
            self,
            "BucketAccessLogs",
            f"arn:aws:s3:::s3logs-{self.account}-{self.region}",
        )

        self.files_bucket = s3.Bucket(
            self,
            "FilesBucket",
            bucket_name=naming.files_bucket,
            block_public_access=s3.BlockPublicAccess.BLOCK_ALL,
            encryption=s3.BucketEncryption.S3_MANAGED,
            versioned=True,
            removal_policy=RemovalPolicy.RETAIN,
            lifecycle_rules=common_lifecycle_rules(settings.env),
            server_access_logs_bucket=self.access_logs_bucket,
            server_access_logs_prefix=f"{naming.files_bucket}/",
        )

        CfnOutput(
            self,
            "FilesBucketName",
            value=self.files_bucket.bucket_name,
            description="S3 bucket for files served under /files/",
        )
