"""
Application firewall stack - CLOUDFRONT scope WebACL in front of WordPress.

Must be deployed in us-east-1 because AWS WAF only accepts CLOUDFRONT scope
WebACLs there. The WebACL ARN is published to SSM in us-east-1 and read back
by the CDN stack through a cross-region custom resource.

Rule evaluation happens in four phases:
1. Labelling: shared rule groups and the NAT IP set label trusted traffic,
   signature rules label known WordPress false positives.
2. Managed and custom block rules, scoped down to skip trusted labels where
   AWS allows it.
3. Allow rules for trusted labels.
4. Selective block on core-rule-set labels that are not false positives.

Geo blocking runs after the Shield Advanced automatic mitigation band
(priorities from 10000000 are reserved for it).
"""

from itertools import count

from aws_cdk import CfnOutput, CfnTag, Stack
from aws_cdk import aws_wafv2 as wafv2
from constructs import Construct

from core.constants import (
    ALLOWED_COUNTRY_CODES,
    CORPORATE_NETWORK_IPS,
    CORPORATE_NETWORK_LABEL,
    DATADOG_IPS,
    DATADOG_LABEL,
    DEFAULT_NAT_GATEWAY_IPS,
    KNOWN_FALSE_POSITIVES,
    NAT_GATEWAY_LABEL,
    VULNERABILITY_SCANNER_IPS,
    VULNERABILITY_SCANNER_LABEL,
    WAF_LOGS_REGION,
    KnownFalsePositive,
)
from core.logging import get_logger
from core.naming import Naming, get_naming
from core.params import create_param
from core.settings import Settings, get_settings

logger = get_logger(__name__)

PRIORITY_AFTER_SHIELD_ADVANCED = 10000000

OVERSIZE_LIMIT = 8192
OVERSIZE_BODY_LIMITS_KIB = (64, 48, 32, 16)
KNOWN_OVERSIZED_BODY_NAMESPACE = "known-oversized-body:"
CORE_RULE_SET_NAMESPACE = "awswaf:managed:aws:core-rule-set:"

TRUSTED_LABELS = (CORPORATE_NETWORK_LABEL, VULNERABILITY_SCANNER_LABEL)

Statement = wafv2.CfnWebACL.StatementProperty
Rule = wafv2.CfnWebACL.RuleProperty


# =================================================================
# Statement helpers
# =================================================================


def _visibility(metric_name: str, sampled: bool = True) -> wafv2.CfnWebACL.VisibilityConfigProperty:
    return wafv2.CfnWebACL.VisibilityConfigProperty(
        cloud_watch_metrics_enabled=True,
        metric_name=metric_name,
        sampled_requests_enabled=sampled,
    )


def _transformation(kind: str = "NONE") -> list[wafv2.CfnWebACL.TextTransformationProperty]:
    return [wafv2.CfnWebACL.TextTransformationProperty(priority=10, type=kind)]


def _label_match(key: str, scope: str = "LABEL") -> Statement:
    return Statement(label_match_statement=wafv2.CfnWebACL.LabelMatchStatementProperty(scope=scope, key=key))


def _not(statement: Statement) -> Statement:
    return Statement(not_statement=wafv2.CfnWebACL.NotStatementProperty(statement=statement))


def _and(statements: list[Statement]) -> Statement:
    return Statement(and_statement=wafv2.CfnWebACL.AndStatementProperty(statements=statements))


def _or(statements: list[Statement]) -> Statement:
    return Statement(or_statement=wafv2.CfnWebACL.OrStatementProperty(statements=statements))


def _method_is(method: str) -> Statement:
    return Statement(
        byte_match_statement=wafv2.CfnWebACL.ByteMatchStatementProperty(
            field_to_match=wafv2.CfnWebACL.FieldToMatchProperty(method={}),
            positional_constraint="EXACTLY",
            search_string=method,
            text_transformations=_transformation("NONE"),
        )
    )


def _uri_path_matches(regex: str, transformation: str = "NONE") -> Statement:
    return Statement(
        regex_match_statement=wafv2.CfnWebACL.RegexMatchStatementProperty(
            field_to_match=wafv2.CfnWebACL.FieldToMatchProperty(uri_path={}),
            regex_string=regex,
            text_transformations=_transformation(transformation),
        )
    )


def _larger_than(field_to_match: wafv2.CfnWebACL.FieldToMatchProperty, size: int) -> Statement:
    return Statement(
        size_constraint_statement=wafv2.CfnWebACL.SizeConstraintStatementProperty(
            field_to_match=field_to_match,
            comparison_operator="GT",
            size=size,
            text_transformations=_transformation("NONE"),
        )
    )


def _managed_rule_group(
    name: str,
    *,
    rule_action_overrides: list[wafv2.CfnWebACL.RuleActionOverrideProperty] | None = None,
    scope_down_statement: Statement | None = None,
) -> Statement:
    return Statement(
        managed_rule_group_statement=wafv2.CfnWebACL.ManagedRuleGroupStatementProperty(
            vendor_name="AWS",
            name=name,
            rule_action_overrides=rule_action_overrides,
            scope_down_statement=scope_down_statement,
        )
    )


def _override(rule_name: str, action: str) -> wafv2.CfnWebACL.RuleActionOverrideProperty:
    return wafv2.CfnWebACL.RuleActionOverrideProperty(
        name=rule_name,
        action_to_use=wafv2.CfnWebACL.RuleActionProperty(**{action: {}}),
    )


def _not_trusted() -> Statement:
    return _and([_not(_label_match(label)) for label in TRUSTED_LABELS])


def _false_positive_statement(false_positive: KnownFalsePositive) -> Statement:
    methods = [_method_is(method) for method in false_positive.methods]
    method_statement = methods[0] if len(methods) == 1 else _or(methods)
    return _and([method_statement, _uri_path_matches(false_positive.uri_regex, "URL_DECODE")])


def _rule_suffix(label: str) -> str:
    return label.rsplit(":", 1)[-1]


# =================================================================
# Rule set
# =================================================================


class FirewallRules:
    """
    Builds the ordered rule list of the WebACL.

    Priorities are handed out sequentially from 0 in the order the builders
    are called, so reordering rules means reordering the calls in ``build``.
    """

    def __init__(self, naming: Naming, nat_gateway_ip_set_arn: str) -> None:
        self._naming = naming
        self._nat_gateway_ip_set_arn = nat_gateway_ip_set_arn
        self._priority = count(0)

    def build(self) -> list[Rule]:
        return [
            *self.label_rules(),
            *self.reputation_rules(),
            *self.oversize_rules(),
            *self.managed_application_rules(),
            *self.uri_path_rules(),
            *self.operating_system_rules(),
            *self.allow_rules(),
            self.core_rule_set_selective_block(),
            self.geo_blocking(),
        ]

    def _custom_rule(
        self,
        purpose: str,
        statement: Statement,
        action: str,
        *,
        labels: list[str] | None = None,
        sampled: bool = True,
    ) -> Rule:
        name = self._naming.waf_rule(purpose)
        return Rule(
            name=name,
            priority=next(self._priority),
            action=wafv2.CfnWebACL.RuleActionProperty(**{action: {}}),
            rule_labels=[wafv2.CfnWebACL.LabelProperty(name=label) for label in labels] if labels else None,
            statement=statement,
            visibility_config=_visibility(name, sampled),
        )

    def _group_rule(self, name: str, metric_purpose: str, statement: Statement, *, sampled: bool = True) -> Rule:
        return Rule(
            name=name,
            priority=next(self._priority),
            override_action=wafv2.CfnWebACL.OverrideActionProperty(none={}),
            statement=statement,
            visibility_config=_visibility(self._naming.waf_rule(metric_purpose), sampled),
        )

    def label_rules(self) -> list[Rule]:
        rules = [
            self._group_rule(
                self._naming.waf_rule(purpose),
                purpose,
                Statement(
                    rule_group_reference_statement=wafv2.CfnWebACL.RuleGroupReferenceStatementProperty(
                        arn=rule_group.arn
                    )
                ),
                sampled=False,
            )
            for purpose, rule_group in (
                ("label-corporate-network-ips", CORPORATE_NETWORK_IPS),
                ("label-vulnerability-scanners-ips", VULNERABILITY_SCANNER_IPS),
                ("label-datadog-ips", DATADOG_IPS),
            )
        ]

        rules.append(
            self._custom_rule(
                "label-nat-gateway-ips",
                Statement(
                    ip_set_reference_statement=wafv2.CfnWebACL.IPSetReferenceStatementProperty(
                        arn=self._nat_gateway_ip_set_arn
                    )
                ),
                "count",
                labels=[NAT_GATEWAY_LABEL],
                sampled=False,
            )
        )

        rules.extend(
            self._custom_rule(
                f"label-known-false-positive-{_rule_suffix(false_positive.label)}",
                _false_positive_statement(false_positive),
                "count",
                labels=[false_positive.label],
                sampled=False,
            )
            for false_positive in KNOWN_FALSE_POSITIVES
        )
        return rules

    def reputation_rules(self) -> list[Rule]:
        return [
            self._group_rule(
                "AWSManagedRulesAmazonIpReputationList",
                "aws-managed-rules-amazon-ip-reputation-list",
                _managed_rule_group(
                    "AWSManagedRulesAmazonIpReputationList",
                    rule_action_overrides=[_override("AWSManagedIPDDoSList", "block")],
                    scope_down_statement=_not_trusted(),
                ),
            ),
            self._group_rule(
                "AWSManagedRulesAnonymousIpList",
                "aws-managed-rules-anonymous-ip-list",
                _managed_rule_group("AWSManagedRulesAnonymousIpList", scope_down_statement=_not_trusted()),
            ),
        ]

    def oversize_rules(self) -> list[Rule]:
        rules = [
            self._custom_rule(
                "drop-oversize-headers",
                _larger_than(
                    wafv2.CfnWebACL.FieldToMatchProperty(
                        headers=wafv2.CfnWebACL.HeadersProperty(
                            match_pattern=wafv2.CfnWebACL.HeaderMatchPatternProperty(all={}),
                            match_scope="ALL",
                            oversize_handling="MATCH",
                        )
                    ),
                    OVERSIZE_LIMIT,
                ),
                "block",
            ),
            self._custom_rule(
                "drop-oversize-cookies",
                _larger_than(
                    wafv2.CfnWebACL.FieldToMatchProperty(
                        cookies=wafv2.CfnWebACL.CookiesProperty(
                            match_pattern=wafv2.CfnWebACL.CookieMatchPatternProperty(all={}),
                            match_scope="ALL",
                            oversize_handling="MATCH",
                        )
                    ),
                    OVERSIZE_LIMIT,
                ),
                "block",
            ),
        ]

        # Counted only, WordPress uploads legitimately exceed these sizes
        body = wafv2.CfnWebACL.FieldToMatchProperty(body=wafv2.CfnWebACL.BodyProperty(oversize_handling="MATCH"))
        rules.extend(
            self._custom_rule(
                f"drop-oversize-request-body-{size}kib",
                _and(
                    [
                        _larger_than(body, size * 1024),
                        _not(_label_match(KNOWN_OVERSIZED_BODY_NAMESPACE, scope="NAMESPACE")),
                    ]
                ),
                "count",
            )
            for size in OVERSIZE_BODY_LIMITS_KIB
        )
        return rules

    def managed_application_rules(self) -> list[Rule]:
        rules = [
            self._group_rule(
                "AWSManagedRulesCommonRuleSet",
                "aws-managed-rules-common-rule-set",
                _managed_rule_group(
                    "AWSManagedRulesCommonRuleSet",
                    rule_action_overrides=[
                        _override("SizeRestrictions_BODY", "count"),
                        _override("CrossSiteScripting_BODY", "count"),
                    ],
                ),
            )
        ]
        rules.extend(
            self._group_rule(name, purpose, _managed_rule_group(name))
            for name, purpose in (
                ("AWSManagedRulesAdminProtectionRuleSet", "aws-managed-rules-admin-protection-rule-set"),
                ("AWSManagedRulesKnownBadInputsRuleSet", "aws-managed-rules-known-bad-inputs-rule-set"),
                ("AWSManagedRulesSQLiRuleSet", "aws-managed-rules-sqli-rule-set"),
                ("AWSManagedRulesPHPRuleSet", "aws-managed-rules-php-rule-set"),
            )
        )
        return rules

    def uri_path_rules(self) -> list[Rule]:
        return [
            self._custom_rule(
                "drop-less-than-greater-than-in-uri-path",
                _or(
                    [
                        _uri_path_matches("[<>]", "NONE"),
                        _uri_path_matches("[<>]", "URL_DECODE"),
                        _uri_path_matches("%(25)?3[cCeE]", "NONE"),
                    ]
                ),
                "block",
            ),
            self._custom_rule(
                "drop-curly-brackets-in-uri-path",
                _or(
                    [
                        _uri_path_matches("[{}|]", "NONE"),
                        _uri_path_matches("[{}|]", "URL_DECODE"),
                        _uri_path_matches("%(25)?7[bBcCdD]", "NONE"),
                    ]
                ),
                "block",
            ),
            self._custom_rule(
                "drop-encoded-percentage-sign-in-uri-path",
                _uri_path_matches("%25", "NONE"),
                "block",
            ),
        ]

    def operating_system_rules(self) -> list[Rule]:
        return [
            self._group_rule(
                self._naming.waf_rule(purpose),
                purpose,
                _managed_rule_group(name),
            )
            for name, purpose in (
                ("AWSManagedRulesLinuxRuleSet", "aws-managed-rules-linux-rule-set"),
                ("AWSManagedRulesUnixRuleSet", "aws-managed-rules-unix-rule-set"),
            )
        ]

    def allow_rules(self) -> list[Rule]:
        return [
            self._custom_rule(purpose, _label_match(label), "allow", sampled=sampled)
            for purpose, label, sampled in (
                ("allow-vulnerability-scanners-ips", VULNERABILITY_SCANNER_LABEL, True),
                ("allow-corporate-network-ips", CORPORATE_NETWORK_LABEL, False),
                ("allow-datadog-ips", DATADOG_LABEL, False),
                ("allow-nat-gateway-ips", NAT_GATEWAY_LABEL, False),
            )
        ]

    def core_rule_set_selective_block(self) -> Rule:
        return self._custom_rule(
            "aws-managed-rules-common-rule-set-selective-block",
            _and(
                [
                    _label_match(CORE_RULE_SET_NAMESPACE, scope="NAMESPACE"),
                    *(_not(_label_match(fp.label)) for fp in KNOWN_FALSE_POSITIVES),
                ]
            ),
            "block",
        )

    def geo_blocking(self) -> Rule:
        name = self._naming.waf_rule("geo-blocking")
        return Rule(
            name=name,
            priority=PRIORITY_AFTER_SHIELD_ADVANCED + 1,
            action=wafv2.CfnWebACL.RuleActionProperty(block={}),
            statement=_not(
                Statement(
                    geo_match_statement=wafv2.CfnWebACL.GeoMatchStatementProperty(
                        country_codes=list(ALLOWED_COUNTRY_CODES)
                    )
                )
            ),
            visibility_config=_visibility(name, sampled=False),
        )


class ApplicationFirewallStack(Stack):
    """
    Creates the CloudFront WebACL, its logging and the NAT gateway IP set.

    Lower environments block by default so only labelled trusted traffic
    reaches them, production allows by default.
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

        self.nat_gateway_ip_set = wafv2.CfnIPSet(
            self,
            "NatGatewayIpSet",
            name=naming.nat_gateway_ip_set,
            description=naming.nat_gateway_ip_set,
            scope="CLOUDFRONT",
            ip_address_version="IPV4",
            addresses=list(settings.nat_gateway_ips or DEFAULT_NAT_GATEWAY_IPS),
            tags=[CfnTag(key="Name", value=naming.nat_gateway_ip_set)],
        )

        rules = FirewallRules(naming, self.nat_gateway_ip_set.attr_arn).build()
        logger.info("waf_rules_built", rules=len(rules), web_acl=naming.web_acl)

        default_action = (
            wafv2.CfnWebACL.DefaultActionProperty(allow={})
            if settings.is_production
            else wafv2.CfnWebACL.DefaultActionProperty(block={})
        )

        self.web_acl = wafv2.CfnWebACL(
            self,
            "CloudFrontWafWebAcl",
            name=naming.web_acl,
            scope="CLOUDFRONT",
            default_action=default_action,
            rules=rules,
            association_config=wafv2.CfnWebACL.AssociationConfigProperty(
                request_body={
                    "CLOUDFRONT": wafv2.CfnWebACL.RequestBodyAssociatedResourceTypeConfigProperty(
                        default_size_inspection_limit="KB_16",
                    )
                }
            ),
            visibility_config=_visibility(naming.web_acl_metric),
        )

        wafv2.CfnLoggingConfiguration(
            self,
            "WafLogging",
            resource_arn=self.web_acl.attr_arn,
            log_destination_configs=[f"arn:aws:s3:::aws-waf-logs-{self.account}-{WAF_LOGS_REGION}"],
        )

        create_param(self, "WafWebAclArn", naming.output_key("app-waf-web-acl-arn"), self.web_acl.attr_arn)

        CfnOutput(
            self,
            "WebAclArn",
            value=self.web_acl.attr_arn,
            description="CloudFront WAF WebACL ARN",
        )
