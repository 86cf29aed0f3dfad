from aws_cdk import (
    Stack,
    Duration,
    CfnOutput,
    aws_sns as sns,
    aws_sns_subscriptions as subscriptions,
    aws_logs as logs,
    aws_lambda as lambda_,
    aws_apigateway as apigateway,
    aws_cloudwatch as cloudwatch,
    aws_cloudwatch_actions as cw_actions,
)
from constructs import Construct

from portfolio_infra.config import DeploymentConfig
from portfolio_infra.iam_policies import api_gateway_logging_role


def dashboard_url(stack: Stack, dashboard: cloudwatch.Dashboard) -> str:
    return (f"https://console.aws.amazon.com/cloudwatch/home?region={stack.region}"
            f"#dashboards:name={dashboard.dashboard_name}")


class MonitoringStack(Stack):
    """Operational alarms, dashboards and saved log queries for the site and API."""

    def __init__(self, scope: Construct, construct_id: str, config: DeploymentConfig,
                 api_function: lambda_.IFunction, distribution_id: str, table_name: str,
                 image_function: lambda_.IFunction = None, seo_function: lambda_.IFunction = None,
                 **kwargs):
        super().__init__(scope, construct_id, **kwargs)
        env_name = config.environment
        self.distribution_id = distribution_id
        self.table_name = table_name

        self.alert_topic = sns.Topic(self, "AlertTopic",
            topic_name=f"portfolio-alerts-{env_name}",
            display_name="Portfolio Monitoring Alerts",
        )
        if config.alert_email:
            self.alert_topic.add_subscription(subscriptions.EmailSubscription(config.alert_email))

        # Account-wide role so API Gateway stages can write execution logs
        apigateway.CfnAccount(self, "ApiGatewayAccount",
            cloud_watch_role_arn=api_gateway_logging_role(self, "ApiGatewayLoggingRole").role_arn,
        )

        # Created by Lambda on first invocation, so it is referenced rather than owned
        api_log_group = logs.LogGroup.from_log_group_name(self, "ApiLogGroup",
            f"/aws/lambda/{api_function.function_name}"
        )

        waf_blocked = cloudwatch.Metric(
            namespace="AWS/WAFV2",
            metric_name="BlockedRequests",
            dimensions_map={"WebACL": f"portfolio-waf-{env_name}", "Region": "CloudFront", "Rule": "ALL"},
            statistic="Sum",
            period=Duration.minutes(5),
        )

        high_error_rate = self.alarm("HighErrorRate", self.cloudfront_metric("4xxErrorRate"), 5, 2,
                                     "High 4xx error rate on CloudFront")
        self.alarm("SlowResponseTime", self.cloudfront_metric("OriginLatency"), 3000, 3,
                   "Slow origin response time (>3s)")
        api_errors = self.alarm("ApiErrors", api_function.metric_errors(), 5, 2,
                                "High error rate in API Lambda")
        self.alarm("ApiDuration", api_function.metric_duration(), Duration.seconds(10).to_milliseconds(), 3,
                   "API Lambda duration >10s")
        db_throttles = self.alarm("DbThrottles", self.table_metric("ThrottledRequests", "Sum"), 1, 1,
                                  "DynamoDB throttling detected",
                                  comparison=cloudwatch.ComparisonOperator.GREATER_THAN_OR_EQUAL_TO_THRESHOLD)
        self.alarm("SuspiciousActivity", waf_blocked, 100, 1,
                   "High number of blocked requests (>100/5min)")

        if image_function is not None:
            self.alarm("ImageOptimizationErrors", image_function.metric_errors(), 5, 2,
                       "High error rate in image optimization")
        if seo_function is not None:
            self.alarm("SeoErrors", seo_function.metric_errors(), 5, 2,
                       "High error rate in SEO generation")

        self.dashboard = cloudwatch.Dashboard(self, "PortfolioDashboard",
            dashboard_name=f"portfolio-{env_name}",
            widgets=[
                [cloudwatch.TextWidget(
                    markdown=f"# Portfolio Monitoring - {env_name.upper()}\n**Environment**: {env_name}",
                    width=24, height=2,
                )],
                [
                    cloudwatch.GraphWidget(title="CloudFront Requests",
                        left=[self.cloudfront_metric("Requests", "Sum")], width=8, height=6),
                    cloudwatch.GraphWidget(title="Error Rates",
                        left=[self.cloudfront_metric("4xxErrorRate"), self.cloudfront_metric("5xxErrorRate")],
                        width=8, height=6),
                    cloudwatch.GraphWidget(title="Cache Hit Rate",
                        left=[self.cloudfront_metric("CacheHitRate")], width=8, height=6),
                ],
                [
                    cloudwatch.GraphWidget(title="Lambda Invocations",
                        left=[api_function.metric_invocations()], width=8, height=6),
                    cloudwatch.GraphWidget(title="Lambda Errors & Duration",
                        left=[api_function.metric_errors()], right=[api_function.metric_duration()],
                        width=8, height=6),
                    cloudwatch.GraphWidget(title="DynamoDB Operations",
                        left=[self.table_metric("ConsumedReadCapacityUnits"),
                              self.table_metric("ConsumedWriteCapacityUnits")],
                        width=8, height=6),
                ],
                [
                    cloudwatch.GraphWidget(title="WAF Blocked Requests", left=[waf_blocked], width=12, height=6),
                    cloudwatch.SingleValueWidget(title="Alarm Metrics",
                        metrics=[high_error_rate.metric, api_errors.metric, db_throttles.metric],
                        width=12, height=6),
                ],
            ],
        )

        self.performance_dashboard = cloudwatch.Dashboard(self, "PerformanceDashboard",
            dashboard_name=f"portfolio-performance-{env_name}",
            widgets=[
                [cloudwatch.TextWidget(markdown=f"# Performance Metrics - {env_name.upper()}", width=24, height=2)],
                [
                    cloudwatch.GraphWidget(title="Response Times",
                        left=[self.cloudfront_metric("OriginLatency").with_(label="Origin Latency"),
                              api_function.metric_duration(label="API Duration")],
                        width=12, height=8),
                    cloudwatch.GraphWidget(title="Throughput",
                        left=[self.cloudfront_metric("Requests", "Sum"),
                              api_function.metric_invocations(statistic="Sum")],
                        width=12, height=8),
                ],
            ],
        )

        logs.QueryDefinition(self, "ErrorQuery",
            query_definition_name=f"portfolio-errors-{env_name}",
            query_string=logs.QueryString(
                fields=["@timestamp", "@message", "@requestId"],
                filter_statements=["@message like /ERROR/"],
                sort="@timestamp desc",
                limit=100,
            ),
            log_groups=[api_log_group],
        )
        logs.QueryDefinition(self, "PerformanceQuery",
            query_definition_name=f"portfolio-performance-{env_name}",
            query_string=logs.QueryString(
                fields=["@timestamp", "@duration", "@requestId"],
                filter_statements=['@type = "REPORT"'],
                stats_statements=["avg(@duration), max(@duration), min(@duration) by bin(5m)"],
            ),
            log_groups=[api_log_group],
        )

        CfnOutput(self, "DashboardUrl", value=dashboard_url(self, self.dashboard),
                  description="Main monitoring dashboard")
        CfnOutput(self, "PerformanceDashboardUrl", value=dashboard_url(self, self.performance_dashboard),
                  description="Performance monitoring dashboard")
        CfnOutput(self, "AlertTopicArn", value=self.alert_topic.topic_arn,
                  description="SNS topic for monitoring alerts")

    def cloudfront_metric(self, metric_name: str, statistic: str = "Average") -> cloudwatch.Metric:
        # CloudFront publishes its metrics with Region=Global
        return cloudwatch.Metric(
            namespace="AWS/CloudFront",
            metric_name=metric_name,
            dimensions_map={"DistributionId": self.distribution_id, "Region": "Global"},
            statistic=statistic,
        )

    def table_metric(self, metric_name: str, statistic: str = "Sum") -> cloudwatch.Metric:
        return cloudwatch.Metric(
            namespace="AWS/DynamoDB",
            metric_name=metric_name,
            dimensions_map={"TableName": self.table_name},
            statistic=statistic,
        )

    def alarm(self, construct_id: str, metric: cloudwatch.IMetric, threshold: float, periods: int,
              description: str, comparison: cloudwatch.ComparisonOperator = None) -> cloudwatch.Alarm:
        alarm = cloudwatch.Alarm(self, construct_id,
            metric=metric,
            threshold=threshold,
            evaluation_periods=periods,
            comparison_operator=comparison or cloudwatch.ComparisonOperator.GREATER_THAN_THRESHOLD,
            treat_missing_data=cloudwatch.TreatMissingData.NOT_BREACHING,
            alarm_description=description,
        )
        alarm.add_alarm_action(cw_actions.SnsAction(self.alert_topic))
        return alarm
