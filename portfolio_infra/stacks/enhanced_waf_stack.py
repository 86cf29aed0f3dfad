from aws_cdk import (
    Stack,
    ArnFormat,
    Duration,
    CfnOutput,
    RemovalPolicy,
    aws_logs as logs,
    aws_sns as sns,
    aws_sns_subscriptions as subscriptions,
    aws_wafv2 as wafv2,
    aws_cloudwatch as cloudwatch,
    aws_cloudwatch_actions as cw_actions,
)
from constructs import Construct

from portfolio_infra import waf_rules
from portfolio_infra.config import DeploymentConfig

BLOCKED_COUNTRIES = ("CN", "RU", "KP", "IR")
REDACTED_HEADERS = ("authorization", "cookie")


class EnhancedWAFStack(Stack):
    """
    Layered Web ACL for the portfolio distribution.

    Managed rule groups run first, then geo and rate limits, then the
    portfolio-specific admin, upload and user-agent rules.
    """

    def __init__(self, scope: Construct, construct_id: str, config: DeploymentConfig, **kwargs):
        super().__init__(scope, construct_id, **kwargs)
        env_name = config.environment

        self.admin_ip_set = wafv2.CfnIPSet(self, "AdminAllowedIPs",
            name=f"portfolio-admin-ips-{env_name}",
            scope="CLOUDFRONT",
            ip_address_version="IPV4",
            addresses=config.admin_allowed_ips or ["127.0.0.1/32"],
        )

        self.rules = [
            waf_rules.managed_rule_group("AWSManagedRulesCommonRuleSet", 1, "CommonRuleSet",
                excluded_rules=["SizeRestrictions_BODY", "GenericRFI_BODY"]),
            waf_rules.managed_rule_group("AWSManagedRulesKnownBadInputsRuleSet", 2, "KnownBadInputs"),
            waf_rules.managed_rule_group("AWSManagedRulesSQLiRuleSet", 3, "SQLiRuleSet"),
            waf_rules.geo_block("GeoBlockRule", 5, BLOCKED_COUNTRIES),
            waf_rules.rate_limit("GeneralRateLimit", 10, 2000),
            waf_rules.admin_path_protection(15, self.admin_ip_set.attr_arn),
            waf_rules.scoped_rate_limit("APIRateLimit", 20, 500, "/api/"),
            waf_rules.upload_protection(25),
            waf_rules.suspicious_user_agents(30),
            waf_rules.admin_referrer_check(35, config.domain or "yourdomain.com"),
        ]
        waf_rules.validate_priorities(self.rules)

        self.web_acl = wafv2.CfnWebACL(self, "EnhancedWebACL",
            name=f"portfolio-waf-{env_name}",
            scope="CLOUDFRONT",
            default_action=wafv2.CfnWebACL.DefaultActionProperty(allow={}),
            rules=self.rules,
            visibility_config=waf_rules.visibility(f"PortfolioWAF-{env_name}"),
            description=f"Enhanced WAF for Photography Portfolio - {env_name}",
        )

        # WAF only delivers to log groups prefixed with aws-waf-logs-
        log_group_name = f"aws-waf-logs-portfolio-{env_name}"
        self.log_group = logs.LogGroup(self, "WAFLogGroup",
            log_group_name=log_group_name,
            retention=logs.RetentionDays.ONE_MONTH,
            removal_policy=RemovalPolicy.DESTROY,
        )
        # The destination ARN must not carry the trailing ":*"
        log_destination = self.format_arn(
            service="logs",
            resource="log-group",
            resource_name=log_group_name,
            arn_format=ArnFormat.COLON_RESOURCE_NAME,
        )
        logging_config = wafv2.CfnLoggingConfiguration(self, "WAFLoggingConfig",
            resource_arn=self.web_acl.attr_arn,
            log_destination_configs=[log_destination],
            redacted_fields=[
                wafv2.CfnLoggingConfiguration.FieldToMatchProperty(
                    single_header=wafv2.CfnLoggingConfiguration.SingleHeaderProperty(name=header)
                )
                for header in REDACTED_HEADERS
            ],
        )
        logging_config.node.add_dependency(self.log_group)

        self.alerts_topic = sns.Topic(self, "SecurityAlerts",
            display_name=f"Portfolio Security Alerts - {env_name}"
        )
        if config.alert_email:
            self.alerts_topic.add_subscription(subscriptions.EmailSubscription(config.alert_email))

        blocked_alarm = cloudwatch.Alarm(self, "WAFBlockedRequestsAlarm",
            alarm_name=f"Portfolio-WAF-HighBlockedRequests-{env_name}",
            alarm_description="High number of blocked requests detected",
            metric=self.blocked_requests("ALL"),
            threshold=100,
            evaluation_periods=2,
            treat_missing_data=cloudwatch.TreatMissingData.NOT_BREACHING,
        )
        admin_alarm = cloudwatch.Alarm(self, "AdminAccessAlarm",
            alarm_name=f"Portfolio-AdminAccess-{env_name}",
            alarm_description="Unusual admin path access detected",
            metric=self.blocked_requests("AdminPathProtection"),
            threshold=10,
            evaluation_periods=1,
            treat_missing_data=cloudwatch.TreatMissingData.NOT_BREACHING,
        )
        for alarm in (blocked_alarm, admin_alarm):
            alarm.add_alarm_action(cw_actions.SnsAction(self.alerts_topic))

        CfnOutput(self, "WebACLArn", value=self.web_acl.attr_arn,
                  description="Enhanced WAF Web ACL ARN",
                  export_name=f"Portfolio-WAF-ARN-{env_name}")
        CfnOutput(self, "WAFLogGroupName", value=self.log_group.log_group_name,
                  description="WAF log group",
                  export_name=f"Portfolio-WAF-LogGroup-{env_name}")
        CfnOutput(self, "SecurityAlertsTopicArn", value=self.alerts_topic.topic_arn,
                  description="Security alerts SNS topic",
                  export_name=f"Portfolio-SecurityAlerts-{env_name}")

    def blocked_requests(self, rule: str) -> cloudwatch.Metric:
        return cloudwatch.Metric(
            namespace="AWS/WAFV2",
            metric_name="BlockedRequests",
            dimensions_map={
                "WebACL": self.web_acl.name,
                "Region": "CloudFront",
                "Rule": rule,
            },
            statistic="Sum",
            period=Duration.minutes(5),
        )
