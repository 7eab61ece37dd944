"""
Static deployment data shared by the stacks.

Values here are account-wide facts (shared WAF rule groups, AWS-managed
prefix lists) or per-environment layouts that do not change between builds.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class VpcLayout:
    """Explicit CIDR plan for one environment's VPC."""

    vpc_cidr: str
    public_subnets: tuple[str, ...]
    private_subnets: tuple[str, ...]
    isolated_subnets: tuple[str, ...]


@dataclass(frozen=True)
class SharedRuleGroup:
    """WAF rule group owned by the shared security account."""

    arn: str
    namespace: str

    def label(self, name: str) -> str:
        return f"{self.namespace}:{name}"


@dataclass(frozen=True)
class KnownFalsePositive:
    """Request signature that trips the core rule set on legitimate traffic."""

    label: str
    methods: tuple[str, ...]
    uri_regex: str


# Only production runs in its own VPC, lower environments share one
VPC_LAYOUTS: dict[str, VpcLayout] = {
    "pro": VpcLayout(
        vpc_cidr="172.16.194.0/21",
        public_subnets=("172.16.194.0/24", "172.16.195.0/24"),
        private_subnets=("172.16.196.0/24", "172.16.197.0/24"),
        isolated_subnets=("172.16.199.0/24", "172.16.200.0/24"),
    ),
}

CORPORATE_NETWORK_IPS = SharedRuleGroup(
    arn=(
        "arn:aws:wafv2:us-east-1:026794415238:global/rulegroup/"
        "srs-shared-waf-sanoma-rulegroup/210338ec-c7f8-41de-8926-d182d297a62a"
    ),
    namespace="awswaf:026794415238:rulegroup:srs-shared-waf-sanoma-rulegroup",
)

VULNERABILITY_SCANNER_IPS = SharedRuleGroup(
    arn=(
        "arn:aws:wafv2:us-east-1:026794415238:global/rulegroup/"
        "srs-shared-waf-vulnerabilityscanner-rulegroup/bb5ac11d-1789-4863-8c72-8f26ee3bf679"
    ),
    namespace="awswaf:026794415238:rulegroup:srs-shared-waf-vulnerabilityscanner-rulegroup",
)

DATADOG_IPS = SharedRuleGroup(
    arn=(
        "arn:aws:wafv2:us-east-1:026794415238:global/rulegroup/"
        "srs-shared-waf-datadog-rulegroup/04bc155f-83f3-431a-84ea-128b30a42da9"
    ),
    namespace="awswaf:026794415238:rulegroup:srs-shared-waf-datadog-rulegroup",
)

# Labels emitted by the shared rule groups
CORPORATE_NETWORK_LABEL = CORPORATE_NETWORK_IPS.label("trusted-ip:sanoma")
VULNERABILITY_SCANNER_LABEL = VULNERABILITY_SCANNER_IPS.label("trusted-ip:vulnerability-scanners")
DATADOG_LABEL = DATADOG_IPS.label("known-ip:datadog")
NAT_GATEWAY_LABEL = "trusted-ip:nat-gateway-ips"

DEFAULT_NAT_GATEWAY_IPS = ("52.19.141.201/32", "63.32.245.219/32")

KNOWN_FALSE_POSITIVES: tuple[KnownFalsePositive, ...] = (
    KnownFalsePositive(
        label="known-false-positives:wp-admin-post",
        methods=("POST",),
        uri_regex="^/wp-admin/post\\.php$",
    ),
    KnownFalsePositive(
        label="known-false-positives:wp-admin-ajax",
        methods=("POST",),
        uri_regex="^/wp-admin/admin-ajax\\.php$",
    ),
    KnownFalsePositive(
        label="known-false-positives:wp-async-upload",
        methods=("POST",),
        uri_regex="^/wp-admin/async-upload\\.php$",
    ),
    KnownFalsePositive(
        label="known-false-positives:wp-json-posts",
        methods=("POST", "PUT"),
        uri_regex="^/wp-json/wp/v2/(?:posts|pages)(/[0-9]+)?$",
    ),
)

ALLOWED_COUNTRY_CODES = ("BE", "FI", "NL", "NO", "PL", "ES", "SE")

DEFAULT_CLOUDFRONT_DOMAINS: dict[str, tuple[str, ...]] = {
    "pro": (
        "mujeresprotagonistas.santillana.es",
        "testmujeresprotagonistas.santillana.es",
    ),
}

# com.amazonaws.global.cloudfront.origin-facing in eu-west-1
CLOUDFRONT_ORIGIN_PREFIX_LIST = "pl-4fa04526"

SHARED_PEERING_REGION = "eu-west-1"
WAF_LOGS_REGION = "eu-west-1"
# CLOUDFRONT scope WebACLs only exist in us-east-1
CLOUDFRONT_WAF_REGION = "us-east-1"

# AWS managed CloudFront policies
CACHE_POLICY_CACHING_OPTIMIZED = "658327ea-f89d-4fab-a63d-7e88639e58f6"
CACHE_POLICY_CACHING_DISABLED = "4135ea2d-6df8-44a3-9df3-4b5a84be39ad"
ORIGIN_REQUEST_POLICY_CORS_S3 = "88a5eaf4-2fd4-4709-b370-b4c650ea3fcf"
ORIGIN_REQUEST_POLICY_ALL_VIEWER = "216adef6-5c7f-47e4-b989-5492eafa07d3"

# Header CloudFront adds to origin requests, the ALB only forwards requests carrying it
APP_CUSTOM_HEADER_NAME = "secret-app-key"
