from aws_cdk import (
    Stack,
    Duration,
    CfnOutput,
    RemovalPolicy,
    aws_sns as sns,
    aws_sns_subscriptions as subscriptions,
    aws_logs as logs,
    aws_lambda as lambda_,
    aws_events as events,
    aws_events_targets as targets,
    aws_config as config_,
    aws_guardduty as guardduty,
    aws_cloudwatch as cloudwatch,
    aws_cloudwatch_actions as cw_actions,
)
from constructs import Construct

from portfolio_infra.config import DeploymentConfig
from portfolio_infra.functions import python_function
from portfolio_infra.iam_policies import security_monitoring_role
from portfolio_infra.stacks.monitoring_stack import dashboard_url

SENSITIVE_API_CALLS = [
    "AdminCreateUser",
    "AdminDeleteUser",
    "DeleteBucket",
    "DeleteFunction",
    "PutBucketPolicy",
]

CONFIG_RULES = {
    "S3BucketPublicAccessProhibited": (
        "S3_BUCKET_LEVEL_PUBLIC_ACCESS_PROHIBITED",
        "Checks that S3 buckets do not allow public access",
    ),
    "RootAccessKeyCheck": (
        "IAM_ROOT_ACCESS_KEY_CHECK",
        "Checks whether root access key is available",
    ),
    "MFAEnabledForIAMConsoleAccess": (
        "MFA_ENABLED_FOR_IAM_CONSOLE_ACCESS",
        "Checks whether MFA is enabled for IAM users",
    ),
}


class SecurityMonitoringStack(Stack):
    def __init__(self, scope: Construct, construct_id: str, config: DeploymentConfig,
                 api_function: lambda_.IFunction, distribution_id: str, **kwargs):
        super().__init__(scope, construct_id, **kwargs)
        env_name = config.environment

        self.alerts_topic = sns.Topic(self, "SecurityAlerts",
            topic_name=f"portfolio-security-alerts-{env_name}",
            display_name=f"Portfolio Security Alerts - {env_name}",
        )
        if config.alert_email:
            self.alerts_topic.add_subscription(subscriptions.EmailSubscription(config.alert_email))

        # Centralized log groups
        self.log_groups = {
            "api": self._log_group("APILogGroup", f"/aws/portfolio/api-{env_name}",
                                   logs.RetentionDays.ONE_MONTH),
            "auth": self._log_group("AuthLogGroup", f"/aws/cognito/portfolio-auth-{env_name}",
                                    logs.RetentionDays.THREE_MONTHS),
            "security": self._log_group("SecurityLogGroup", f"/security/portfolio-{env_name}",
                                        logs.RetentionDays.SIX_MONTHS),
            "cloudfront": self._log_group("CloudFrontLogGroup", f"/aws/cloudfront/portfolio-{env_name}",
                                          logs.RetentionDays.ONE_WEEK),
        }

        processor = python_function(self, "SecurityEventProcessor", "security_events",
            role=security_monitoring_role(self, "SecurityEventProcessorRole", self.alerts_topic.topic_arn),
            environment={
                "SNS_TOPIC_ARN": self.alerts_topic.topic_arn,
                "ENVIRONMENT": env_name,
            },
        )

        self.alarms = [
            self._alarm("FailedAuthAlarm", f"Portfolio-FailedAuth-{env_name}",
                        "Multiple failed authentication attempts detected",
                        cloudwatch.Metric(namespace="AWS/Cognito", metric_name="SignInFailures",
                                          statistic="Sum", period=Duration.minutes(5)),
                        threshold=5, periods=1),
            self._alarm("APIErrorAlarm", f"Portfolio-APIErrors-{env_name}",
                        "High API error rate detected",
                        api_function.metric_errors(statistic="Sum", period=Duration.minutes(5)),
                        threshold=10, periods=2),
            self._alarm("TrafficSpikeAlarm", f"Portfolio-TrafficSpike-{env_name}",
                        "Unusual traffic spike detected",
                        cloudwatch.Metric(namespace="AWS/CloudFront", metric_name="Requests",
                                          dimensions_map={"DistributionId": distribution_id,
                                                          "Region": "Global"},
                                          statistic="Sum", period=Duration.minutes(5)),
                        threshold=10000, periods=1),
        ]

        # Sensitive CloudTrail API calls and GuardDuty findings
        events.Rule(self, "SecurityEventRule",
            event_pattern=events.EventPattern(
                source=["aws.cognito-idp", "aws.s3", "aws.lambda"],
                detail_type=["AWS API Call via CloudTrail"],
                detail={
                    "eventSource": ["cognito-idp.amazonaws.com", "s3.amazonaws.com", "lambda.amazonaws.com"],
                    "eventName": SENSITIVE_API_CALLS,
                },
            ),
            targets=[targets.LambdaFunction(processor)],
        )
        events.Rule(self, "GuardDutyRule",
            event_pattern=events.EventPattern(
                source=["aws.guardduty"],
                detail_type=["GuardDuty Finding"],
            ),
            targets=[targets.LambdaFunction(processor)],
        )

        guardduty.CfnDetector(self, "GuardDutyDetector",
            enable=True,
            finding_publishing_frequency="FIFTEEN_MINUTES",
        )

        for rule_id, (identifier, description) in CONFIG_RULES.items():
            config_.ManagedRule(self, rule_id, identifier=identifier, description=description)

        self.dashboard = cloudwatch.Dashboard(self, "SecurityDashboard",
            dashboard_name=f"Portfolio-Security-{env_name}",
            default_interval=Duration.hours(1),
        )
        self.dashboard.add_widgets(
            cloudwatch.GraphWidget(title="WAF Blocked Requests", width=12, height=6,
                left=[cloudwatch.Metric(
                    namespace="AWS/WAFV2", metric_name="BlockedRequests", statistic="Sum",
                    dimensions_map={"WebACL": f"portfolio-waf-{env_name}", "Region": "CloudFront",
                                    "Rule": "ALL"},
                )]),
            cloudwatch.GraphWidget(title="Authentication Events", width=12, height=6,
                left=[cloudwatch.Metric(namespace="AWS/Cognito", metric_name=name, statistic="Sum")
                      for name in ("SignInSuccesses", "SignInFailures")]),
            cloudwatch.GraphWidget(title="API Performance", width=12, height=6,
                left=[api_function.metric_duration()],
                right=[api_function.metric_errors()]),
            cloudwatch.AlarmStatusWidget(title="Security Alarms", alarms=self.alarms, width=12, height=6),
        )

        if config.slack_webhook_url:
            notifier = python_function(self, "SlackNotifier", "slack_notifier",
                environment={
                    "SLACK_WEBHOOK_URL": config.slack_webhook_url,
                    "ENVIRONMENT": env_name,
                },
            )
            self.alerts_topic.add_subscription(subscriptions.LambdaSubscription(notifier))

        CfnOutput(self, "SecurityAlertsTopicArn", value=self.alerts_topic.topic_arn,
                  description="Security alerts SNS topic ARN")
        CfnOutput(self, "SecurityDashboardUrl", value=dashboard_url(self, self.dashboard),
                  description="Security monitoring dashboard URL")

    def _log_group(self, construct_id: str, name: str, retention: logs.RetentionDays) -> logs.LogGroup:
        return logs.LogGroup(self, construct_id,
            log_group_name=name,
            retention=retention,
            removal_policy=RemovalPolicy.DESTROY,
        )

    def _alarm(self, construct_id: str, name: str, description: str, metric: cloudwatch.IMetric,
               threshold: float, periods: int) -> cloudwatch.Alarm:
        alarm = cloudwatch.Alarm(self, construct_id,
            alarm_name=name,
            alarm_description=description,
            metric=metric,
            threshold=threshold,
            evaluation_periods=periods,
            treat_missing_data=cloudwatch.TreatMissingData.NOT_BREACHING,
        )
        alarm.add_alarm_action(cw_actions.SnsAction(self.alerts_topic))
        return alarm
