import pytest
from aws_cdk import assertions

from portfolio_infra.config import DeploymentConfig
from portfolio_infra.stacks.backend_stack import BackendStack
from portfolio_infra.stacks.backup_recovery_stack import BackupRecoveryStack
from portfolio_infra.stacks.cost_optimization_stack import CostOptimizationStack
from portfolio_infra.stacks.enhanced_waf_stack import EnhancedWAFStack
from portfolio_infra.stacks.infrastructure_stack import InfrastructureStack
from portfolio_infra.stacks.monitoring_stack import MonitoringStack
from portfolio_infra.stacks.security_logging_stack import SecurityLoggingStack
from portfolio_infra.stacks.security_monitoring_stack import SecurityMonitoringStack

Match = assertions.Match
DISTRIBUTION_ID = "E2EXAMPLE123"


@pytest.fixture
def infrastructure(app, config, env):
    return InfrastructureStack(app, "OpsInfrastructure", config, env=env)


@pytest.fixture
def backend(app, config, env, infrastructure):
    return BackendStack(app, "OpsBackend", config, infrastructure.table, infrastructure.bucket, env=env)


class TestCostOptimizationStack:

    @pytest.mark.parametrize("phase, limit", [("minimal", 20), ("enhanced", 60), ("enterprise", 120)])
    def test_budget_limit_follows_phase(self, app, env, phase, limit):
        stack = CostOptimizationStack(app, f"Cost-{phase}", DeploymentConfig(phase=phase), env=env)
        assert stack.budget_limit == limit
        assertions.Template.from_stack(stack).has_resource_properties("AWS::Budgets::Budget", {
            "Budget": Match.object_like({
                "BudgetName": "portfolio-budget-staging",
                "BudgetLimit": {"Amount": limit, "Unit": "USD"},
                "TimeUnit": "MONTHLY",
                "CostFilters": {"TagKeyValue": ["user:Project$PhotographyPortfolio"]},
            }),
        })

    @pytest.fixture
    def template(self, app, config, env):
        return assertions.Template.from_stack(CostOptimizationStack(app, "TestCost", config, env=env))

    def test_budget_notifications(self, template):
        template.has_resource_properties("AWS::Budgets::Budget", {
            "NotificationsWithSubscribers": [
                Match.object_like({"Notification": Match.object_like({
                    "NotificationType": "ACTUAL", "Threshold": 80})}),
                Match.object_like({"Notification": Match.object_like({
                    "NotificationType": "FORECASTED", "Threshold": 100})}),
            ],
        })

    def test_topic_accepts_budget_notifications(self, template):
        template.has_resource_properties("AWS::SNS::TopicPolicy", {
            "PolicyDocument": {"Statement": Match.array_with([Match.object_like({
                "Principal": {"Service": "budgets.amazonaws.com"},
                "Action": "sns:Publish",
            })])},
        })

    def test_weekly_optimizer(self, template):
        template.has_resource_properties("AWS::Events::Rule", {"ScheduleExpression": "rate(7 days)"})
        template.has_resource_properties("AWS::CloudWatch::Dashboard", {"DashboardName": "portfolio-costs-staging"})
        template.has_output("BudgetLimit", {"Value": "120"})


class TestMonitoringStack:

    @pytest.fixture
    def template(self, app, config, env, infrastructure, backend):
        stack = MonitoringStack(app, "TestMonitoring", config,
            api_function=backend.api_function,
            distribution_id=DISTRIBUTION_ID,
            table_name=infrastructure.table.table_name,
            env=env,
        )
        return assertions.Template.from_stack(stack)

    def test_alarms(self, template):
        template.resource_count_is("AWS::CloudWatch::Alarm", 6)
        template.has_resource_properties("AWS::CloudWatch::Alarm", {
            "MetricName": "ThrottledRequests",
            "Threshold": 1,
            "ComparisonOperator": "GreaterThanOrEqualToThreshold",
        })
        template.has_resource_properties("AWS::CloudWatch::Alarm", {
            "MetricName": "OriginLatency",
            "Dimensions": Match.array_with([{"Name": "Region", "Value": "Global"}]),
            "Threshold": 3000,
        })

    def test_single_api_gateway_account(self, template):
        template.resource_count_is("AWS::ApiGateway::Account", 1)

    def test_api_log_group_is_not_created(self, template):
        template.resource_count_is("AWS::Logs::LogGroup", 0)
        template.resource_count_is("AWS::Logs::QueryDefinition", 2)

    def test_dashboards(self, template):
        template.has_resource_properties("AWS::CloudWatch::Dashboard", {"DashboardName": "portfolio-staging"})
        template.has_resource_properties("AWS::CloudWatch::Dashboard",
                                         {"DashboardName": "portfolio-performance-staging"})
        template.has_resource_properties("AWS::SNS::Topic", {"TopicName": "portfolio-alerts-staging"})


def test_monitoring_optional_function_alarms(app, config, env, infrastructure, backend):
    stack = MonitoringStack(app, "WithExtras", config,
        api_function=backend.api_function,
        distribution_id=DISTRIBUTION_ID,
        table_name=infrastructure.table.table_name,
        image_function=backend.api_function,
        seo_function=backend.api_function,
        env=env,
    )
    assertions.Template.from_stack(stack).resource_count_is("AWS::CloudWatch::Alarm", 8)


class TestSecurityMonitoringStack:

    @pytest.fixture
    def stack(self, app, config, env, backend):
        return SecurityMonitoringStack(app, "TestSecurityMonitoring", config,
                                       api_function=backend.api_function,
                                       distribution_id=DISTRIBUTION_ID, env=env)

    @pytest.fixture
    def template(self, stack):
        return assertions.Template.from_stack(stack)

    def test_log_groups(self, template):
        for name, days in (("/aws/portfolio/api-staging", 30),
                           ("/aws/cognito/portfolio-auth-staging", 90),
                           ("/security/portfolio-staging", 180),
                           ("/aws/cloudfront/portfolio-staging", 7)):
            template.has_resource_properties("AWS::Logs::LogGroup", {
                "LogGroupName": name,
                "RetentionInDays": days,
            })

    def test_alarms(self, stack, template):
        assert len(stack.alarms) == 3
        template.has_resource_properties("AWS::CloudWatch::Alarm", {
            "AlarmName": "Portfolio-TrafficSpike-staging",
            "Threshold": 10000,
        })

    def test_event_rules(self, template):
        template.has_resource_properties("AWS::Events::Rule", {
            "EventPattern": Match.object_like({"source": ["aws.guardduty"]}),
        })
        template.has_resource_properties("AWS::Events::Rule", {
            "EventPattern": Match.object_like({
                "detail": Match.object_like({"eventName": Match.array_with(["DeleteBucket"])}),
            }),
        })

    def test_guardduty_and_config_rules(self, template):
        template.has_resource_properties("AWS::GuardDuty::Detector", {
            "Enable": True,
            "FindingPublishingFrequency": "FIFTEEN_MINUTES",
        })
        template.resource_count_is("AWS::Config::ConfigRule", 3)

    def test_no_slack_without_webhook(self, template):
        template.resource_count_is("AWS::SNS::Subscription", 1)


def test_security_monitoring_slack_notifier(app, env, backend):
    config = DeploymentConfig(slack_webhook_url="https://hooks.slack.com/services/T/B/X")
    template = assertions.Template.from_stack(SecurityMonitoringStack(
        app, "WithSlack", config, api_function=backend.api_function, distribution_id=DISTRIBUTION_ID, env=env))
    template.has_resource_properties("AWS::SNS::Subscription", {"Protocol": "lambda"})
    template.has_resource_properties("AWS::Lambda::Function", {
        "Environment": {"Variables": Match.object_like({
            "SLACK_WEBHOOK_URL": "https://hooks.slack.com/services/T/B/X",
        })},
    })


class TestSecurityLoggingStack:

    @pytest.fixture
    def alert_stack(self, app, config, env, backend):
        return SecurityMonitoringStack(app, "LoggingAlerts", config, api_function=backend.api_function,
                                       distribution_id=DISTRIBUTION_ID, env=env)

    def test_creates_waf_log_group_when_not_given(self, app, config, env, alert_stack):
        template = assertions.Template.from_stack(
            SecurityLoggingStack(app, "OwnLogGroup", config, alert_topic=alert_stack.alerts_topic, env=env))
        template.has_resource_properties("AWS::Logs::LogGroup",
                                         {"LogGroupName": "aws-waf-logs-portfolio-staging"})
        template.has_resource_properties("AWS::Logs::LogGroup",
                                         {"LogGroupName": "/aws/cloudtrail/portfolio-staging"})

    def test_reuses_enhanced_waf_log_group(self, app, config, env, alert_stack):
        waf = EnhancedWAFStack(app, "LoggingWAF", config, env=env)
        template = assertions.Template.from_stack(SecurityLoggingStack(
            app, "SharedLogGroup", config, alert_topic=alert_stack.alerts_topic,
            waf_log_group=waf.log_group, env=env))
        template.resource_count_is("AWS::Logs::LogGroup", 1)
        template.resource_count_is("AWS::Logs::SubscriptionFilter", 1)
        template.has_resource_properties("AWS::Logs::MetricFilter", {
            "MetricTransformations": [Match.object_like({
                "MetricNamespace": "Portfolio/Security",
                "MetricName": "SuspiciousIPs",
            })],
        })
        template.resource_count_is("AWS::Logs::QueryDefinition", 2)
        template.resource_count_is("AWS::CloudWatch::Alarm", 2)

    def test_attack_filter_matches_terminating_rule_only(self, app, config, env, alert_stack):
        template = assertions.Template.from_stack(
            SecurityLoggingStack(app, "AttackFilter", config, alert_topic=alert_stack.alerts_topic, env=env))
        filters = template.find_resources("AWS::Logs::MetricFilter", {
            "Properties": {"MetricTransformations": [Match.object_like({"MetricName": "AttackAttempts"})]},
        })
        (attack_filter,) = filters.values()
        pattern = attack_filter["Properties"]["FilterPattern"]
        assert '$.terminatingRuleId = "*SQL*"' in pattern
        assert "ruleGroupList" not in pattern


class TestBackupRecoveryStack:

    @pytest.fixture
    def template(self, app, config, env, infrastructure):
        stack = BackupRecoveryStack(app, "TestBackup", config, infrastructure.table, infrastructure.bucket,
                                    env=env)
        return assertions.Template.from_stack(stack)

    def test_requires_alert_email(self, app, env, infrastructure):
        with pytest.raises(ValueError, match="alert email"):
            BackupRecoveryStack(app, "NoEmail", DeploymentConfig(), infrastructure.table,
                                infrastructure.bucket, env=env)

    def test_backup_region_must_differ(self, app, env, infrastructure):
        config = DeploymentConfig(alert_email="ops@example.com", backup_region="us-east-1")
        with pytest.raises(ValueError, match="Backup region"):
            BackupRecoveryStack(app, "SameRegion", config, infrastructure.table, infrastructure.bucket, env=env)

    def test_backup_bucket(self, template):
        template.has_resource_properties("AWS::S3::Bucket", {
            "BucketName": "portfolio-backup-staging-us-west-2",
            "VersioningConfiguration": {"Status": "Enabled"},
            "ReplicationConfiguration": Match.object_like({
                "Rules": [Match.object_like({"Prefix": "media/", "Status": "Enabled"})],
            }),
        })

    def test_global_table_replicates_to_backup_region(self, template):
        template.has_resource_properties("Custom::DynamoDBReplica", {"Region": "us-west-2"})

    def test_schedules(self, template):
        for expression in ("cron(0 2 * * ? *)", "cron(30 2 * * ? *)", "rate(15 minutes)"):
            template.has_resource_properties("AWS::Events::Rule", {"ScheduleExpression": expression})

    def test_backup_function(self, template):
        template.has_resource_properties("AWS::Lambda::Function", {
            "Timeout": 900,
            "MemorySize": 1024,
            "Environment": {"Variables": Match.object_like({"BACKUP_REGION": "us-west-2"})},
        })

    def test_alarms(self, template):
        template.has_resource_properties("AWS::CloudWatch::Alarm", {
            "AlarmName": "Portfolio-BackupFailure-staging",
            "ComparisonOperator": "GreaterThanOrEqualToThreshold",
        })
        template.has_resource_properties("AWS::CloudWatch::Alarm", {
            "AlarmName": "Portfolio-ReplicationFailure-staging",
            "TreatMissingData": "breaching",
        })

    def test_failover_parameter(self, template):
        template.has_resource_properties("AWS::SSM::Parameter", {
            "Name": "/portfolio/staging/dns/failover-config",
        })
