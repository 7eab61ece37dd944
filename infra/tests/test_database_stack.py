"""
Tests for the Aurora MySQL stack.
"""

import pytest
from aws_cdk.assertions import Match, Template

from stacks.database_stack import DatabaseStack
from tests.conftest import ENV, SHARED_VPC_CIDR


@pytest.fixture
def template(app, vpc, settings):
    stack = DatabaseStack(app, "Database", vpc=vpc, settings=settings, env=ENV)
    return Template.from_stack(stack)


class TestDatabaseStack:
    """Tests for the cluster and its supporting resources."""

    def test_cluster_is_retained(self, template):
        """Test that the cluster survives stack deletion."""
        template.has_resource(
            "AWS::RDS::DBCluster",
            {"DeletionPolicy": "Retain", "UpdateReplacePolicy": "Retain"},
        )

    def test_cluster_properties(self, template):
        """Test engine, encryption, logs and backups on a lower environment."""
        template.has_resource_properties(
            "AWS::RDS::DBCluster",
            {
                "Engine": "aurora-mysql",
                "DBClusterIdentifier": "mujeres-cluster-aurora-dev",
                "DatabaseName": "wordpress_dev",
                "StorageEncrypted": True,
                "CopyTagsToSnapshot": True,
                "DeletionProtection": False,
                "BackupRetentionPeriod": 7,
                "PreferredBackupWindow": "00:00-03:00",
                "EnableCloudwatchLogsExports": ["audit", "error", "general", "slowquery"],
            },
        )

    def test_production_backups_and_protection(self, app, vpc, make_settings):
        """Test that production keeps 30 days of backups and cannot be deleted."""
        stack = DatabaseStack(app, "Database", vpc=vpc, settings=make_settings(env="pro"), env=ENV)

        Template.from_stack(stack).has_resource_properties(
            "AWS::RDS::DBCluster",
            {"DeletionProtection": True, "BackupRetentionPeriod": 30},
        )

    def test_writer_instance(self, template):
        """Test the provisioned writer with enhanced monitoring."""
        template.resource_count_is("AWS::RDS::DBInstance", 1)
        template.has_resource_properties(
            "AWS::RDS::DBInstance",
            {
                "DBInstanceClass": "db.r6g.large",
                "DBInstanceIdentifier": "mujeres-writer-aurora-dev",
                "PubliclyAccessible": False,
                "MonitoringInterval": 60,
            },
        )

    def test_parameter_group_enables_audit_logs(self, template):
        """Test the logging parameters."""
        template.has_resource_properties(
            "AWS::RDS::DBClusterParameterGroup",
            {
                "Parameters": {
                    "general_log": "1",
                    "slow_query_log": "1",
                    "server_audit_logging": "1",
                    "server_audit_events": "CONNECT,QUERY,QUERY_DDL,QUERY_DCL",
                }
            },
        )

    def test_subnet_group_uses_isolated_subnets(self, template):
        """Test that the database only lives in the isolated tier."""
        template.has_resource_properties(
            "AWS::RDS::DBSubnetGroup",
            {"SubnetIds": ["subnet-iso1", "subnet-iso2"]},
        )

    def test_security_group_allows_shared_vpc(self, template):
        """Test MySQL ingress from the shared VPC."""
        template.has_resource_properties(
            "AWS::EC2::SecurityGroup",
            {
                "GroupName": "mujeres-db-sg-dev",
                "SecurityGroupIngress": [
                    Match.object_like({"CidrIp": SHARED_VPC_CIDR, "FromPort": 3306, "ToPort": 3306})
                ],
            },
        )

    def test_secrets(self, template):
        """Test the admin and application secrets."""
        template.has_resource_properties(
            "AWS::SecretsManager::Secret",
            {
                "Name": "mujeres-aurora-admin-rdssecret-dev",
                "GenerateSecretString": Match.object_like(
                    {"SecretStringTemplate": '{"username":"admin"}', "GenerateStringKey": "password"}
                ),
            },
        )
        template.has_resource_properties(
            "AWS::SecretsManager::Secret",
            {"Name": "mujeres-aurora-app-rdssecret-dev"},
        )
        template.has_resource_properties(
            "AWS::SecretsManager::SecretTargetAttachment",
            {"TargetType": "AWS::RDS::DBCluster"},
        )

    def test_publishes_security_group_and_secret(self, template):
        """Test the parameters read by the compute stack."""
        for key in ("database-app-sg-id", "database-secret-user-app-arn"):
            template.has_resource_properties(
                "AWS::SSM::Parameter",
                {"Name": f"/cdk/output/mujeres/dev/{key}"},
            )

    def test_instance_type_is_required(self, app, vpc, make_settings):
        """Test that synthesis fails without an instance type."""
        with pytest.raises(ValueError, match="bamboo_DATABASE_INSTANCE_TYPE"):
            DatabaseStack(app, "Database", vpc=vpc, settings=make_settings(database_instance_type=""), env=ENV)
