from aws_cdk import (
    Stack,
    Duration,
    CfnOutput,
    RemovalPolicy,
    aws_sns as sns,
    aws_logs as logs,
    aws_logs_destinations as destinations,
    aws_cloudwatch as cloudwatch,
    aws_cloudwatch_actions as cw_actions,
)
from constructs import Construct

from portfolio_infra.config import DeploymentConfig
from portfolio_infra.functions import python_function
from portfolio_infra.stacks.monitoring_stack import dashboard_url

SECURITY_NAMESPACE = "Portfolio/Security"


class SecurityLoggingStack(Stack):
    """Audit log groups, WAF log analysis and security metric filters."""

    def __init__(self, scope: Construct, construct_id: str, config: DeploymentConfig,
                 alert_topic: sns.ITopic, waf_log_group: logs.ILogGroup = None, **kwargs):
        super().__init__(scope, construct_id, **kwargs)
        env_name = config.environment

        self.cloudtrail_log_group = logs.LogGroup(self, "CloudTrailLogGroup",
            log_group_name=f"/aws/cloudtrail/portfolio-{env_name}",
            retention=logs.RetentionDays.THREE_MONTHS,
            removal_policy=RemovalPolicy.DESTROY,
        )
        # Reuse the Web ACL's log group when the enhanced WAF is deployed
        if waf_log_group is None:
            waf_log_group = logs.LogGroup(self, "WAFLogGroup",
                log_group_name=f"aws-waf-logs-portfolio-{env_name}",
                retention=logs.RetentionDays.ONE_MONTH,
                removal_policy=RemovalPolicy.DESTROY,
            )
        self.waf_log_group = waf_log_group

        processor = python_function(self, "SecurityProcessor", "security_logs",
            timeout=Duration.minutes(1),
            environment={"ALERT_TOPIC_ARN": alert_topic.topic_arn},
        )
        alert_topic.grant_publish(processor)
        logs.SubscriptionFilter(self, "WAFLogSubscription",
            log_group=waf_log_group,
            destination=destinations.LambdaDestination(processor),
            filter_pattern=logs.FilterPattern.all_events(),
        )

        logs.MetricFilter(self, "SuspiciousIpFilter",
            log_group=waf_log_group,
            metric_namespace=SECURITY_NAMESPACE,
            metric_name="SuspiciousIPs",
            filter_pattern=logs.FilterPattern.string_value("$.action", "=", "BLOCK"),
            metric_value="1",
        )
        logs.MetricFilter(self, "AttackAttemptFilter",
            log_group=waf_log_group,
            metric_namespace=SECURITY_NAMESPACE,
            metric_name="AttackAttempts",
            filter_pattern=logs.FilterPattern.any(
                *(logs.FilterPattern.string_value("$.terminatingRuleId", "=", f"*{marker}*")
                  for marker in ("SQL", "XSS", "injection"))
            ),
            metric_value="1",
        )

        suspicious_ip_alarm = self._alarm("SuspiciousIpAlarm", "SuspiciousIPs", 10,
                                          "Multiple IPs blocked by WAF", alert_topic)
        attack_alarm = self._alarm("AttackAttemptAlarm", "AttackAttempts", 5,
                                   "Potential attack attempts detected", alert_topic)

        self.dashboard = cloudwatch.Dashboard(self, "SecurityDashboard",
            dashboard_name=f"portfolio-security-{env_name}",
            widgets=[
                [cloudwatch.TextWidget(
                    markdown=f"# Security Monitoring - {env_name.upper()}\n"
                             "**Real-time security event monitoring and threat detection**",
                    width=24, height=2,
                )],
                [
                    cloudwatch.GraphWidget(title="WAF Blocked Requests", width=8, height=6,
                        left=[cloudwatch.Metric(
                            namespace="AWS/WAFV2", metric_name="BlockedRequests", statistic="Sum",
                            dimensions_map={"WebACL": f"portfolio-waf-{env_name}", "Region": "CloudFront",
                                            "Rule": "ALL"},
                        )]),
                    cloudwatch.GraphWidget(title="Security Events", width=8, height=6,
                        left=[self.security_metric("SuspiciousIPs"), self.security_metric("AttackAttempts")]),
                    cloudwatch.SingleValueWidget(title="Security Status", width=8, height=6,
                        metrics=[suspicious_ip_alarm.metric, attack_alarm.metric]),
                ],
                [cloudwatch.LogQueryWidget(
                    title="Recent Security Events",
                    log_group_names=[waf_log_group.log_group_name],
                    query_lines=[
                        "fields @timestamp, @message",
                        "filter @message like /BLOCK/",
                        "sort @timestamp desc",
                        "limit 20",
                    ],
                    width=24, height=8,
                )],
            ],
        )

        logs.QueryDefinition(self, "SecurityEventsQuery",
            query_definition_name=f"portfolio-security-events-{env_name}",
            query_string=logs.QueryString(
                fields=["@timestamp", "@message"],
                filter_statements=["@message like /BLOCK/ or @message like /RATE_LIMIT/"],
                stats_statements=["count() by bin(1h)"],
            ),
            log_groups=[waf_log_group],
        )
        logs.QueryDefinition(self, "TopBlockedIpsQuery",
            query_definition_name=f"portfolio-blocked-ips-{env_name}",
            query_string=logs.QueryString(
                fields=["@timestamp", "@message"],
                filter_statements=["@message like /BLOCK/"],
                parse_statements=['@message /clientIp":"(?<ip>[^"]+)/'],
                stats_statements=["count() as blocks by ip"],
                sort="blocks desc",
                limit=10,
            ),
            log_groups=[waf_log_group],
        )

        CfnOutput(self, "SecurityDashboardUrl", value=dashboard_url(self, self.dashboard),
                  description="Security monitoring dashboard")
        CfnOutput(self, "WAFLogGroupName", value=waf_log_group.log_group_name,
                  description="WAF log group for security analysis")
        CfnOutput(self, "CloudTrailLogGroupName", value=self.cloudtrail_log_group.log_group_name,
                  description="CloudTrail log group for audit trail")

    @staticmethod
    def security_metric(metric_name: str) -> cloudwatch.Metric:
        return cloudwatch.Metric(namespace=SECURITY_NAMESPACE, metric_name=metric_name,
                                 statistic="Sum", period=Duration.minutes(5))

    def _alarm(self, construct_id: str, metric_name: str, threshold: int, description: str,
               topic: sns.ITopic) -> cloudwatch.Alarm:
        alarm = cloudwatch.Alarm(self, construct_id,
            metric=self.security_metric(metric_name),
            threshold=threshold,
            evaluation_periods=1,
            comparison_operator=cloudwatch.ComparisonOperator.GREATER_THAN_OR_EQUAL_TO_THRESHOLD,
            treat_missing_data=cloudwatch.TreatMissingData.NOT_BREACHING,
            alarm_description=description,
        )
        alarm.add_alarm_action(cw_actions.SnsAction(topic))
        return alarm
