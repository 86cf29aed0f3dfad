"""
Builders for WAFv2 Web ACL rules.

Each builder returns a ``CfnWebACL.RuleProperty`` ready to be passed to a
``CfnWebACL``. Statements that compare request text lowercase it first,
except HTTP method matches which are compared exactly.
"""

from typing import Iterable, List, Optional, Sequence

from aws_cdk import aws_wafv2 as wafv2

WebACL = wafv2.CfnWebACL


def visibility(metric_name: str) -> WebACL.VisibilityConfigProperty:
    return WebACL.VisibilityConfigProperty(
        sampled_requests_enabled=True,
        cloud_watch_metrics_enabled=True,
        metric_name=metric_name,
    )


def _lowercase() -> List[WebACL.TextTransformationProperty]:
    return [WebACL.TextTransformationProperty(priority=0, type="LOWERCASE")]


def _block() -> WebACL.RuleActionProperty:
    return WebACL.RuleActionProperty(block={})


def uri_starts_with(path: str) -> WebACL.StatementProperty:
    return WebACL.StatementProperty(
        byte_match_statement=WebACL.ByteMatchStatementProperty(
            search_string=path,
            field_to_match=WebACL.FieldToMatchProperty(uri_path={}),
            text_transformations=_lowercase(),
            positional_constraint="STARTS_WITH",
        )
    )


def uri_contains(fragment: str) -> WebACL.StatementProperty:
    return WebACL.StatementProperty(
        byte_match_statement=WebACL.ByteMatchStatementProperty(
            search_string=fragment,
            field_to_match=WebACL.FieldToMatchProperty(uri_path={}),
            text_transformations=_lowercase(),
            positional_constraint="CONTAINS",
        )
    )


def method_is(method: str) -> WebACL.StatementProperty:
    return WebACL.StatementProperty(
        byte_match_statement=WebACL.ByteMatchStatementProperty(
            search_string=method.upper(),
            field_to_match=WebACL.FieldToMatchProperty(method={}),
            text_transformations=[WebACL.TextTransformationProperty(priority=0, type="NONE")],
            positional_constraint="EXACTLY",
        )
    )


def header_contains(header: str, value: str) -> WebACL.StatementProperty:
    return WebACL.StatementProperty(
        byte_match_statement=WebACL.ByteMatchStatementProperty(
            search_string=value,
            field_to_match=WebACL.FieldToMatchProperty(
                single_header={"Name": header}
            ),
            text_transformations=_lowercase(),
            positional_constraint="CONTAINS",
        )
    )


def not_(statement: WebACL.StatementProperty) -> WebACL.StatementProperty:
    return WebACL.StatementProperty(
        not_statement=WebACL.NotStatementProperty(statement=statement)
    )


def and_(*statements: WebACL.StatementProperty) -> WebACL.StatementProperty:
    return WebACL.StatementProperty(
        and_statement=WebACL.AndStatementProperty(statements=list(statements))
    )


def or_(*statements: WebACL.StatementProperty) -> WebACL.StatementProperty:
    return WebACL.StatementProperty(
        or_statement=WebACL.OrStatementProperty(statements=list(statements))
    )


def in_ip_set(ip_set_arn: str) -> WebACL.StatementProperty:
    return WebACL.StatementProperty(
        ip_set_reference_statement=WebACL.IPSetReferenceStatementProperty(arn=ip_set_arn)
    )


def managed_rule_group(
    name: str,
    priority: int,
    metric_name: str,
    excluded_rules: Sequence[str] = (),
    vendor_name: str = "AWS",
) -> WebACL.RuleProperty:
    """Reference an AWS managed rule group, keeping the group's own actions."""
    excluded = [WebACL.ExcludedRuleProperty(name=r) for r in excluded_rules] or None
    return WebACL.RuleProperty(
        name=name,
        priority=priority,
        override_action=WebACL.OverrideActionProperty(none={}),
        statement=WebACL.StatementProperty(
            managed_rule_group_statement=WebACL.ManagedRuleGroupStatementProperty(
                vendor_name=vendor_name,
                name=name,
                excluded_rules=excluded,
            )
        ),
        visibility_config=visibility(metric_name),
    )


def rate_limit(
    name: str,
    priority: int,
    limit: int,
    metric_name: Optional[str] = None,
    scope_down: Optional[WebACL.StatementProperty] = None,
) -> WebACL.RuleProperty:
    """Block an IP once it exceeds ``limit`` requests per 5 minutes."""
    return WebACL.RuleProperty(
        name=name,
        priority=priority,
        action=_block(),
        statement=WebACL.StatementProperty(
            rate_based_statement=WebACL.RateBasedStatementProperty(
                limit=limit,
                aggregate_key_type="IP",
                scope_down_statement=scope_down,
            )
        ),
        visibility_config=visibility(metric_name or name),
    )


def geo_block(name: str, priority: int, country_codes: Iterable[str], metric_name: str = "GeoBlock") -> WebACL.RuleProperty:
    return WebACL.RuleProperty(
        name=name,
        priority=priority,
        action=_block(),
        statement=WebACL.StatementProperty(
            geo_match_statement=WebACL.GeoMatchStatementProperty(
                country_codes=list(country_codes)
            )
        ),
        visibility_config=visibility(metric_name),
    )


def admin_path_protection(priority: int, ip_set_arn: str, admin_path: str = "/admin") -> WebACL.RuleProperty:
    # Admin paths are only reachable from the allow-listed IP set
    return WebACL.RuleProperty(
        name="AdminPathProtection",
        priority=priority,
        action=_block(),
        statement=and_(uri_starts_with(admin_path), not_(in_ip_set(ip_set_arn))),
        visibility_config=visibility("AdminPathProtection"),
    )


def scoped_rate_limit(name: str, priority: int, limit: int, path_prefix: str) -> WebACL.RuleProperty:
    return rate_limit(name, priority, limit, scope_down=uri_starts_with(path_prefix))


def upload_protection(priority: int, limit: int = 10, upload_path: str = "/api/upload") -> WebACL.RuleProperty:
    return rate_limit(
        "ImageUploadProtection",
        priority,
        limit,
        scope_down=and_(uri_contains(upload_path), method_is("POST")),
    )


def suspicious_user_agents(
    priority: int,
    patterns: Sequence[str] = ("bot", "crawler", "scanner"),
) -> WebACL.RuleProperty:
    statements = [header_contains("user-agent", p) for p in patterns]
    # OrStatement needs at least two operands
    statement = or_(*statements) if len(statements) > 1 else statements[0]
    return WebACL.RuleProperty(
        name="BlockSuspiciousUserAgents",
        priority=priority,
        action=_block(),
        statement=statement,
        visibility_config=visibility("SuspiciousUserAgents"),
    )


def admin_referrer_check(priority: int, site_domain: str, admin_path: str = "/admin") -> WebACL.RuleProperty:
    return WebACL.RuleProperty(
        name="AdminReferrerCheck",
        priority=priority,
        action=_block(),
        statement=and_(
            uri_starts_with(admin_path),
            not_(header_contains("referer", site_domain.lower())),
        ),
        visibility_config=visibility("AdminReferrerCheck"),
    )


def validate_priorities(rules: Sequence[WebACL.RuleProperty]) -> None:
    seen = {}
    for rule in rules:
        if rule.priority in seen:
            raise ValueError(
                f"WAF rules '{seen[rule.priority]}' and '{rule.name}' share priority {rule.priority}"
            )
        seen[rule.priority] = rule.name
