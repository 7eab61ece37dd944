"""
Tests for the CloudFront application firewall.
"""

import aws_cdk as cdk
import pytest
from aws_cdk.assertions import Match, Template

from core.constants import ALLOWED_COUNTRY_CODES, DEFAULT_NAT_GATEWAY_IPS, KNOWN_FALSE_POSITIVES
from core.naming import Naming
from stacks.waf_stack import PRIORITY_AFTER_SHIELD_ADVANCED, ApplicationFirewallStack, FirewallRules

US_EAST_1 = cdk.Environment(account="123456789012", region="us-east-1")


def _web_acl(template: Template) -> dict:
    (web_acl,) = template.find_resources("AWS::WAFv2::WebACL").values()
    return web_acl["Properties"]


def _rule(web_acl: dict, name: str) -> dict:
    return next(rule for rule in web_acl["Rules"] if rule["Name"] == name)


@pytest.fixture
def template(app, settings):
    stack = ApplicationFirewallStack(app, "Firewall", settings=settings, env=US_EAST_1)
    return Template.from_stack(stack)


class TestFirewallRules:
    """Tests for the rule list builder."""

    def setup_method(self):
        self.rules = FirewallRules(Naming(project="mujeres", env="dev"), "arn:aws:wafv2:ipset").build()

    def test_rule_count(self):
        """Test the full ordered rule set."""
        assert len(self.rules) == 32

    def test_priorities_are_sequential(self):
        """Test that priorities follow the build order without gaps."""
        priorities = [rule.priority for rule in self.rules[:-1]]

        assert priorities == list(range(len(self.rules) - 1))

    def test_geo_blocking_runs_after_shield_band(self):
        """Test that geo blocking is the last rule, past the Shield Advanced priorities."""
        geo = self.rules[-1]

        assert geo.name == "mujeres-waf-rule-geo-blocking-dev"
        assert geo.priority == PRIORITY_AFTER_SHIELD_ADVANCED + 1

    def test_rule_names_are_unique(self):
        """Test that WAF accepts the rule names."""
        names = [rule.name for rule in self.rules]

        assert len(set(names)) == len(names)

    def test_labelling_rules_come_first(self):
        """Test that labels exist before the rules that match on them."""
        names = [rule.name for rule in self.rules]

        assert names[:4] == [
            "mujeres-waf-rule-label-corporate-network-ips-dev",
            "mujeres-waf-rule-label-vulnerability-scanners-ips-dev",
            "mujeres-waf-rule-label-datadog-ips-dev",
            "mujeres-waf-rule-label-nat-gateway-ips-dev",
        ]
        assert names.index("mujeres-waf-rule-allow-nat-gateway-ips-dev") > names.index(
            "AWSManagedRulesCommonRuleSet"
        )


class TestApplicationFirewallStack:
    """Tests for the WebACL resources."""

    def test_web_acl_scope_and_body_limit(self, template):
        """Test CLOUDFRONT scope and the 16 KiB body inspection limit."""
        template.has_resource_properties(
            "AWS::WAFv2::WebACL",
            {
                "Name": "mujeres-waf-web-acl-dev",
                "Scope": "CLOUDFRONT",
                "AssociationConfig": {"RequestBody": {"CLOUDFRONT": {"DefaultSizeInspectionLimit": "KB_16"}}},
            },
        )

    def test_lower_env_blocks_by_default(self, template):
        """Test that only trusted traffic reaches lower environments."""
        assert _web_acl(template)["DefaultAction"] == {"Block": {}}

    def test_production_allows_by_default(self, app, make_settings):
        """Test that production is open to the public."""
        stack = ApplicationFirewallStack(app, "Firewall", settings=make_settings(env="pro"), env=US_EAST_1)

        assert _web_acl(Template.from_stack(stack))["DefaultAction"] == {"Allow": {}}

    def test_rules_in_template(self, template):
        """Test that every rule is rendered with its priority."""
        rules = _web_acl(template)["Rules"]

        assert len(rules) == 32
        assert rules[-1]["Priority"] == PRIORITY_AFTER_SHIELD_ADVANCED + 1

    def test_geo_blocking_allows_listed_countries(self, template):
        """Test that requests outside the allowed countries are blocked."""
        geo = _rule(_web_acl(template), "mujeres-waf-rule-geo-blocking-dev")

        assert geo["Action"] == {"Block": {}}
        assert geo["Statement"]["NotStatement"]["Statement"]["GeoMatchStatement"]["CountryCodes"] == list(
            ALLOWED_COUNTRY_CODES
        )

    def test_oversize_cookies_inspects_cookies(self, template):
        """Test that the cookies rule matches on cookies, not headers."""
        rule = _rule(_web_acl(template), "mujeres-waf-rule-drop-oversize-cookies-dev")
        field = rule["Statement"]["SizeConstraintStatement"]["FieldToMatch"]

        assert "Cookies" in field
        assert "Headers" not in field

    def test_ip_reputation_blocks_ddos_list(self, template):
        """Test the DDoS list override on the reputation group."""
        rule = _rule(_web_acl(template), "AWSManagedRulesAmazonIpReputationList")
        group = rule["Statement"]["ManagedRuleGroupStatement"]

        assert group["RuleActionOverrides"] == [{"Name": "AWSManagedIPDDoSList", "ActionToUse": {"Block": {}}}]
        assert rule["OverrideAction"] == {"None": {}}
        assert "ScopeDownStatement" in group

    def test_selective_block_skips_false_positives(self, template):
        """Test that known false positives are excluded from the core rule set block."""
        rule = _rule(_web_acl(template), "mujeres-waf-rule-aws-managed-rules-common-rule-set-selective-block-dev")
        statements = rule["Statement"]["AndStatement"]["Statements"]

        assert statements[0] == {
            "LabelMatchStatement": {"Scope": "NAMESPACE", "Key": "awswaf:managed:aws:core-rule-set:"}
        }
        assert len(statements) == 1 + len(KNOWN_FALSE_POSITIVES)

    def test_nat_gateway_ip_set(self, template):
        """Test the default NAT gateway addresses."""
        template.has_resource_properties(
            "AWS::WAFv2::IPSet",
            {
                "Name": "mujeres-waf-nat-gateway-ip-set-dev",
                "Scope": "CLOUDFRONT",
                "IPAddressVersion": "IPV4",
                "Addresses": list(DEFAULT_NAT_GATEWAY_IPS),
            },
        )

    def test_configured_nat_gateway_ips(self, app, make_settings):
        """Test that configured addresses replace the defaults."""
        settings = make_settings(nat_gateway_ips=["203.0.113.10/32"])
        stack = ApplicationFirewallStack(app, "Firewall", settings=settings, env=US_EAST_1)

        Template.from_stack(stack).has_resource_properties("AWS::WAFv2::IPSet", {"Addresses": ["203.0.113.10/32"]})

    def test_logging_and_published_arn(self, template):
        """Test WAF logging to the account bucket and the published WebACL ARN."""
        template.has_resource_properties(
            "AWS::WAFv2::LoggingConfiguration",
            {"LogDestinationConfigs": ["arn:aws:s3:::aws-waf-logs-123456789012-eu-west-1"]},
        )
        template.has_resource_properties(
            "AWS::SSM::Parameter",
            {"Name": "/cdk/output/mujeres/dev/app-waf-web-acl-arn", "Value": Match.any_value()},
        )
