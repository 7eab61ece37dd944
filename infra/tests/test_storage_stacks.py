"""
Tests for the files bucket and the WordPress file system.
"""

from aws_cdk.assertions import Match, Template

from stacks.efs_stack import EfsStack
from stacks.storage_stack import S3Stack
from tests.conftest import ENV


class TestS3Stack:
    """Tests for the files bucket."""

    def _template(self, app, settings) -> Template:
        return Template.from_stack(S3Stack(app, "S3", settings=settings, env=ENV))

    def test_bucket_is_private_and_versioned(self, app, settings):
        """Test the bucket hardening."""
        template = self._template(app, settings)

        template.has_resource(
            "AWS::S3::Bucket",
            {"DeletionPolicy": "Retain", "UpdateReplacePolicy": "Retain"},
        )
        template.has_resource_properties(
            "AWS::S3::Bucket",
            {
                "BucketName": "mujeres-files-dev",
                "VersioningConfiguration": {"Status": "Enabled"},
                "PublicAccessBlockConfiguration": {
                    "BlockPublicAcls": True,
                    "BlockPublicPolicy": True,
                    "IgnorePublicAcls": True,
                    "RestrictPublicBuckets": True,
                },
                "BucketEncryption": {
                    "ServerSideEncryptionConfiguration": [
                        {"ServerSideEncryptionByDefault": {"SSEAlgorithm": "AES256"}}
                    ]
                },
            },
        )

    def test_access_logs_go_to_account_bucket(self, app, settings):
        """Test server access logging to the landing zone bucket."""
        template = self._template(app, settings)

        template.has_resource_properties(
            "AWS::S3::Bucket",
            {
                "LoggingConfiguration": {
                    "DestinationBucketName": "s3logs-123456789012-eu-west-1",
                    "LogFilePrefix": "mujeres-files-dev/",
                }
            },
        )

    def test_lifecycle_rules(self, app, settings):
        """Test housekeeping and the shorter noncurrent expiry outside production."""
        template = self._template(app, settings)

        template.has_resource_properties(
            "AWS::S3::Bucket",
            {
                "LifecycleConfiguration": {
                    "Rules": Match.array_with(
                        [
                            Match.object_like(
                                {
                                    "Id": "expire-noncurrent-objects",
                                    "NoncurrentVersionExpiration": {
                                        "NoncurrentDays": 3,
                                        "NewerNoncurrentVersions": 5,
                                    },
                                }
                            )
                        ]
                    )
                }
            },
        )

    def test_bucket_policy_left_to_cloudfront(self, app, settings):
        """Test that the bucket policy is not defined next to the bucket."""
        self._template(app, settings).resource_count_is("AWS::S3::BucketPolicy", 0)


class TestEfsStack:
    """Tests for the WordPress file system."""

    def _template(self, app, vpc, settings) -> Template:
        return Template.from_stack(EfsStack(app, "Efs", vpc=vpc, settings=settings, env=ENV))

    def test_file_system(self, app, vpc, settings):
        """Test encryption, modes and the infrequent-access transition."""
        template = self._template(app, vpc, settings)

        template.has_resource("AWS::EFS::FileSystem", {"DeletionPolicy": "Retain"})
        template.has_resource_properties(
            "AWS::EFS::FileSystem",
            {
                "Encrypted": True,
                "PerformanceMode": "generalPurpose",
                "ThroughputMode": "bursting",
                "LifecyclePolicies": [{"TransitionToIA": "AFTER_14_DAYS"}],
                "FileSystemTags": Match.array_with([{"Key": "Name", "Value": "mujeres-wordpress-efs-dev"}]),
            },
        )

    def test_mount_targets_in_private_subnets(self, app, vpc, settings):
        """Test one mount target per private subnet."""
        template = self._template(app, vpc, settings)

        template.resource_count_is("AWS::EFS::MountTarget", 2)
        mount_targets = template.find_resources("AWS::EFS::MountTarget").values()
        assert {target["Properties"]["SubnetId"] for target in mount_targets} == {"subnet-priv1", "subnet-priv2"}

    def test_access_point_for_www_data(self, app, vpc, settings):
        """Test that WordPress writes to /wordpress as www-data."""
        template = self._template(app, vpc, settings)

        template.has_resource_properties(
            "AWS::EFS::AccessPoint",
            {
                "PosixUser": {"Gid": "33", "Uid": "33"},
                "RootDirectory": {
                    "Path": "/wordpress",
                    "CreationInfo": {"OwnerGid": "33", "OwnerUid": "33", "Permissions": "0755"},
                },
            },
        )

    def test_publishes_ids(self, app, vpc, settings):
        """Test the parameters read by the compute stack."""
        template = self._template(app, vpc, settings)

        template.resource_count_is("AWS::SSM::Parameter", 3)
        for key in ("file-system-id", "access-point-id", "security-group-id"):
            template.has_resource_properties(
                "AWS::SSM::Parameter",
                {"Name": f"/cdk/output/mujeres/dev/efs-wordpress-{key}"},
            )
