"""
Resource naming conventions.

Every physical name is ``{project}-{purpose}-{env}`` so that redeploys keep
targeting the same resources. Cross-stack values live in SSM under
``/cdk/output/{project}/{env}/{key}``.
"""

from dataclasses import dataclass

from .settings import Settings, get_settings

PARAMETER_ROOT = "/cdk/output"


@dataclass(frozen=True)
class Naming:
    project: str
    env: str

    def name(self, purpose: str) -> str:
        return f"{self.project}-{purpose}-{self.env}"

    def stack(self, purpose: str) -> str:
        return self.name(f"{purpose}-cfnstack")

    def output_key(self, key: str) -> str:
        return f"{self.project}/{self.env}/{key}"

    def output_path(self, key: str) -> str:
        """Parameter path for a value exported by one stack to another."""
        return f"{PARAMETER_ROOT}/{self.output_key(key)}"

    # Network
    @property
    def vpc(self) -> str:
        return self.name("vpc")

    @property
    def vpc_parameter(self) -> str:
        # Kept from the first deployments, consumers look the VPC up by it
        return f"srs-{self.project}-vpc-{self.env}"

    @property
    def network_acl(self) -> str:
        return self.name("network-acl")

    @property
    def peering(self) -> str:
        return self.name("vpc-peering-to-shared")

    # Security groups
    @property
    def endpoints_sg(self) -> str:
        return self.name("vpc-endpoint-sg")

    @property
    def alb_sg(self) -> str:
        return self.name("alb-sg")

    def service_sg(self, service: str) -> str:
        return self.name(f"{service}-ecs-sg")

    # Database
    @property
    def db_subnet_group(self) -> str:
        return self.name("isolated-subnets")

    @property
    def db_parameter_group(self) -> str:
        return self.name("parameter-group")

    @property
    def db_sg(self) -> str:
        return self.name("db-sg")

    @property
    def db_root_secret(self) -> str:
        return self.name("aurora-admin-rdssecret")

    @property
    def db_app_secret(self) -> str:
        return self.name("aurora-app-rdssecret")

    @property
    def db_cluster(self) -> str:
        return self.name("cluster-aurora")

    @property
    def db_monitoring_role(self) -> str:
        return self.name("monitoring-role")

    @property
    def db_writer(self) -> str:
        return self.name("writer-aurora")

    @property
    def db_default_database(self) -> str:
        # MySQL identifiers cannot contain dashes. Changing the name replaces the cluster
        return f"wordpress_{self.env}".replace("-", "_")

    # ECS
    @property
    def ecs_cluster(self) -> str:
        return self.name("ecs-cluster")

    @property
    def ecs_execution_role(self) -> str:
        return self.name("ecs-execution-role")

    def task(self, service: str, purpose: str) -> str:
        """Name of a per-service resource, e.g. ``task("wordpress", "service")``."""
        return self.name(f"{service}-{purpose}")

    # Load balancing
    @property
    def alb(self) -> str:
        return self.name("alb")

    @property
    def target_group(self) -> str:
        return self.name("tg")

    # CDN
    @property
    def distribution(self) -> str:
        return self.name("cloudfront")

    @property
    def origin_access_control(self) -> str:
        return self.name("cloudfront-oac")

    @property
    def response_headers_policy(self) -> str:
        return self.name("cloudfront-response-policy")

    # WAF
    @property
    def shield(self) -> str:
        return self.name("waf-shield")

    @property
    def web_acl(self) -> str:
        return self.name("waf-web-acl")

    @property
    def web_acl_metric(self) -> str:
        return self.name("waf-metric-visibility")

    @property
    def nat_gateway_ip_set(self) -> str:
        return self.name("waf-nat-gateway-ip-set")

    def waf_rule(self, purpose: str) -> str:
        return self.name(f"waf-rule-{purpose}")

    # Storage
    def efs(self, service: str) -> str:
        return self.name(f"{service}-efs")

    @property
    def files_bucket(self) -> str:
        return self.name("files")


def get_naming(settings: Settings | None = None) -> Naming:
    settings = settings or get_settings()
    return Naming(project=settings.project, env=settings.env)
