import pytest

from portfolio_infra import waf_rules


def test_rate_limit_rule():
    rule = waf_rules.rate_limit("GeneralRateLimit", 10, 2000)
    assert rule.priority == 10
    assert rule.statement.rate_based_statement.limit == 2000
    assert rule.statement.rate_based_statement.aggregate_key_type == "IP"
    assert rule.action.block == {}
    assert rule.visibility_config.metric_name == "GeneralRateLimit"


def test_scoped_rate_limit_uses_path_prefix():
    rule = waf_rules.scoped_rate_limit("APIRateLimit", 20, 500, "/api/")
    match = rule.statement.rate_based_statement.scope_down_statement.byte_match_statement
    assert match.search_string == "/api/"
    assert match.positional_constraint == "STARTS_WITH"
    assert match.text_transformations[0].type == "LOWERCASE"


def test_upload_protection_matches_post_exactly():
    rule = waf_rules.upload_protection(25)
    statements = rule.statement.rate_based_statement.scope_down_statement.and_statement.statements
    uri, method = (s.byte_match_statement for s in statements)
    assert uri.positional_constraint == "CONTAINS"
    assert method.search_string == "POST"
    assert method.positional_constraint == "EXACTLY"
    assert method.text_transformations[0].type == "NONE"
    assert rule.statement.rate_based_statement.limit == 10


def test_managed_rule_group_keeps_group_actions():
    rule = waf_rules.managed_rule_group("AWSManagedRulesCommonRuleSet", 1, "CommonRuleSet",
                                        excluded_rules=["SizeRestrictions_BODY"])
    group = rule.statement.managed_rule_group_statement
    assert group.vendor_name == "AWS"
    assert [r.name for r in group.excluded_rules] == ["SizeRestrictions_BODY"]
    assert rule.override_action.none == {}
    assert rule.action is None


def test_admin_path_protection_requires_ip_set():
    rule = waf_rules.admin_path_protection(15, "arn:aws:wafv2:ip-set")
    path, negated = rule.statement.and_statement.statements
    assert path.byte_match_statement.search_string == "/admin"
    assert negated.not_statement.statement.ip_set_reference_statement.arn == "arn:aws:wafv2:ip-set"


def test_suspicious_user_agents_single_pattern_skips_or():
    rule = waf_rules.suspicious_user_agents(30, patterns=("scanner",))
    assert rule.statement.or_statement is None
    assert rule.statement.byte_match_statement.field_to_match.single_header == {"Name": "user-agent"}


def test_suspicious_user_agents_default_patterns():
    rule = waf_rules.suspicious_user_agents(30)
    assert len(rule.statement.or_statement.statements) == 3


def test_geo_block():
    rule = waf_rules.geo_block("GeoBlockRule", 5, ["CN", "RU"])
    assert rule.statement.geo_match_statement.country_codes == ["CN", "RU"]


def test_admin_referrer_check_lowercases_domain():
    rule = waf_rules.admin_referrer_check(35, "Example.COM")
    referer = rule.statement.and_statement.statements[1].not_statement.statement.byte_match_statement
    assert referer.search_string == "example.com"


def test_validate_priorities_rejects_duplicates():
    rules = [waf_rules.rate_limit("A", 1, 100), waf_rules.geo_block("B", 1, ["CN"])]
    with pytest.raises(ValueError, match="share priority 1"):
        waf_rules.validate_priorities(rules)


def test_validate_priorities_accepts_unique():
    waf_rules.validate_priorities([waf_rules.rate_limit("A", 1, 100), waf_rules.geo_block("B", 2, ["CN"])])
