"""
CloudFront stack - distribution in front of the ALB and the files bucket.

Routing:
- Default behaviour: WordPress through the ALB, cached with CachingOptimized
- ``/wp-admin/*`` and ``/wp-login.php``: never cached, every method allowed
- ``/files/*``: objects from the S3 files bucket (keys keep the ``files/``
  prefix), signed with Origin Access Control

The files bucket policy lives here so that the read grant names this
distribution only.

The WebACL lives in us-east-1 and its ARN is read back with a custom resource
at deploy time. The viewer-request URL rewrite function is shared across
projects and published by the platform team under
``/cdk/output/cloudfront-function-url-rewrite-arn``.
"""

from aws_cdk import CfnOutput, Stack
from aws_cdk import aws_cloudfront as cloudfront
from aws_cdk import aws_elasticloadbalancingv2 as elbv2
from aws_cdk import aws_iam as iam
from aws_cdk import aws_s3 as s3
from aws_cdk import aws_shield as shield
from constructs import Construct

from core.buckets import cloudfront_read_policy, common_bucket_policies
from core.constants import (
    APP_CUSTOM_HEADER_NAME,
    CACHE_POLICY_CACHING_DISABLED,
    CACHE_POLICY_CACHING_OPTIMIZED,
    CLOUDFRONT_WAF_REGION,
    ORIGIN_REQUEST_POLICY_ALL_VIEWER,
    ORIGIN_REQUEST_POLICY_CORS_S3,
)
from core.logging import get_logger
from core.naming import get_naming
from core.params import SsmParameterStoreReader, resolve_param
from core.settings import Settings, get_settings

logger = get_logger(__name__)

SERVICES_ORIGIN_ID = "Services"
FILES_ORIGIN_ID = "Files"

URL_REWRITE_FUNCTION_PARAMETER = "cloudfront-function-url-rewrite-arn"

READ_METHODS = ["GET", "HEAD", "OPTIONS"]
ALL_METHODS = ["GET", "HEAD", "OPTIONS", "PUT", "POST", "PATCH", "DELETE"]

# Paths served uncached straight from WordPress
UNCACHED_PATHS = ("/wp-admin/*", "/wp-login.php")
FILES_PATH = "/files/*"


class CloudFrontStack(Stack):
    """Creates the distribution, its security headers and Shield Advanced protection."""

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        alb: elbv2.IApplicationLoadBalancer,
        files_bucket: s3.IBucket,
        settings: Settings | None = None,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        self.settings = settings or get_settings()
        self.naming = get_naming(self.settings)

        self.origin_access_control = cloudfront.CfnOriginAccessControl(
            self,
            "OAC",
            origin_access_control_config=cloudfront.CfnOriginAccessControl.OriginAccessControlConfigProperty(
                name=self.naming.origin_access_control,
                description=f"Origin Access Control for {self.naming.distribution}",
                origin_access_control_origin_type="s3",
                signing_behavior="always",
                signing_protocol="sigv4",
            ),
        )

        self.response_headers_policy = self._create_response_headers_policy()
        self.distribution = self._create_distribution(alb, files_bucket)
        self.files_bucket_policy = self._create_files_bucket_policy(files_bucket)

        shield.CfnProtection(
            self,
            "ShieldAdvancedForCloudFront",
            name=self.naming.shield,
            resource_arn=f"arn:aws:cloudfront::{self.account}:distribution/{self.distribution.attr_id}",
            application_layer_automatic_response_configuration=(
                shield.CfnProtection.ApplicationLayerAutomaticResponseConfigurationProperty(
                    action=shield.CfnProtection.ActionProperty(block={}),
                    status="ENABLED",
                )
            ),
        )

        CfnOutput(
            self,
            "DistributionDomainName",
            value=self.distribution.attr_domain_name,
            description="CloudFront distribution domain name",
        )

    def _create_files_bucket_policy(self, files_bucket: s3.IBucket) -> s3.CfnBucketPolicy:
        statements = [
            *common_bucket_policies(files_bucket),
            cloudfront_read_policy(files_bucket, self.distribution.attr_id, self.account),
        ]
        return s3.CfnBucketPolicy(
            self,
            "FilesBucketPolicy",
            bucket=files_bucket.bucket_name,
            policy_document=iam.PolicyDocument(statements=statements),
        )

    def _create_response_headers_policy(self) -> cloudfront.CfnResponseHeadersPolicy:
        policy = cloudfront.CfnResponseHeadersPolicy
        return policy(
            self,
            "CloudFrontHeaderResponsePolicy",
            response_headers_policy_config=policy.ResponseHeadersPolicyConfigProperty(
                name=self.naming.response_headers_policy,
                comment="Response headers policy - Security Headers",
                security_headers_config=policy.SecurityHeadersConfigProperty(
                    strict_transport_security=policy.StrictTransportSecurityProperty(
                        access_control_max_age_sec=31536000,
                        include_subdomains=True,
                        preload=True,
                        override=True,
                    ),
                    content_type_options=policy.ContentTypeOptionsProperty(override=True),
                    frame_options=policy.FrameOptionsProperty(frame_option="SAMEORIGIN", override=True),
                    xss_protection=policy.XSSProtectionProperty(protection=True, mode_block=True, override=True),
                ),
                remove_headers_config=policy.RemoveHeadersConfigProperty(
                    items=[
                        policy.RemoveHeaderProperty(header="X-Powered-By"),
                        policy.RemoveHeaderProperty(header="Server"),
                    ]
                ),
            ),
        )

    def _create_distribution(
        self,
        alb: elbv2.IApplicationLoadBalancer,
        files_bucket: s3.IBucket,
    ) -> cloudfront.CfnDistribution:
        dist = cloudfront.CfnDistribution
        domains = self.settings.domains

        web_acl = SsmParameterStoreReader(
            self,
            "SsmReaderWafWebAcl",
            parameter_name=self.naming.output_path("app-waf-web-acl-arn"),
            region=CLOUDFRONT_WAF_REGION,
        )
        url_rewrite_function_arn = resolve_param(self, URL_REWRITE_FUNCTION_PARAMETER)

        services_origin = dist.OriginProperty(
            id=SERVICES_ORIGIN_ID,
            domain_name=alb.load_balancer_dns_name,
            custom_origin_config=dist.CustomOriginConfigProperty(
                origin_protocol_policy="https-only",
                origin_ssl_protocols=["TLSv1.2"],
            ),
            origin_custom_headers=[
                dist.OriginCustomHeaderProperty(
                    header_name=APP_CUSTOM_HEADER_NAME,
                    header_value=self.settings.cloudfront_custom_secret_header_value,
                )
            ],
        )
        files_origin = dist.OriginProperty(
            id=FILES_ORIGIN_ID,
            domain_name=files_bucket.bucket_regional_domain_name,
            origin_access_control_id=self.origin_access_control.attr_id,
            # OAC replaces the legacy identity, which must stay empty
            s3_origin_config=dist.S3OriginConfigProperty(origin_access_identity=""),
        )

        uncached_behaviors = [
            dist.CacheBehaviorProperty(
                target_origin_id=SERVICES_ORIGIN_ID,
                path_pattern=path,
                viewer_protocol_policy="redirect-to-https",
                allowed_methods=ALL_METHODS,
                compress=False,
                cache_policy_id=CACHE_POLICY_CACHING_DISABLED,
                origin_request_policy_id=ORIGIN_REQUEST_POLICY_ALL_VIEWER,
                response_headers_policy_id=self.response_headers_policy.attr_id,
            )
            for path in UNCACHED_PATHS
        ]
        files_behavior = dist.CacheBehaviorProperty(
            target_origin_id=FILES_ORIGIN_ID,
            path_pattern=FILES_PATH,
            viewer_protocol_policy="redirect-to-https",
            allowed_methods=READ_METHODS,
            compress=True,
            cache_policy_id=CACHE_POLICY_CACHING_OPTIMIZED,
            origin_request_policy_id=ORIGIN_REQUEST_POLICY_CORS_S3,
            response_headers_policy_id=self.response_headers_policy.attr_id,
        )

        logger.info("distribution_defined", domains=domains, behaviors=len(uncached_behaviors) + 1)

        return dist(
            self,
            "CloudfrontDist",
            distribution_config=dist.DistributionConfigProperty(
                enabled=True,
                comment=self.naming.distribution,
                aliases=domains or None,
                http_version="http2and3",
                ipv6_enabled=True,
                price_class="PriceClass_100",
                logging=dist.LoggingProperty(
                    bucket=f"cloudfront-logs-{self.account}-{self.region}.s3.amazonaws.com",
                    include_cookies=True,
                    prefix=f"{domains[0] if domains else self.naming.distribution}/",
                ),
                viewer_certificate=dist.ViewerCertificateProperty(
                    acm_certificate_arn=self.settings.cloudfront_certificate_arn,
                    minimum_protocol_version="TLSv1.2_2021",
                    ssl_support_method="sni-only",
                ),
                origins=[services_origin, files_origin],
                web_acl_id=web_acl.value,
                default_cache_behavior=dist.DefaultCacheBehaviorProperty(
                    target_origin_id=SERVICES_ORIGIN_ID,
                    allowed_methods=READ_METHODS,
                    compress=True,
                    viewer_protocol_policy="redirect-to-https",
                    cache_policy_id=CACHE_POLICY_CACHING_OPTIMIZED,
                    # WordPress needs the viewer Host header for the ALB host rule
                    origin_request_policy_id=ORIGIN_REQUEST_POLICY_ALL_VIEWER,
                    response_headers_policy_id=self.response_headers_policy.attr_id,
                    function_associations=[
                        dist.FunctionAssociationProperty(
                            event_type="viewer-request",
                            function_arn=url_rewrite_function_arn,
                        )
                    ],
                ),
                cache_behaviors=[*uncached_behaviors, files_behavior],
            ),
        )
