from aws_cdk import (
    Stack,
    Duration,
    CfnOutput,
    aws_sns as sns,
    aws_sns_subscriptions as subscriptions,
    aws_iam as iam,
    aws_budgets as budgets,
    aws_events as events,
    aws_events_targets as targets,
    aws_cloudwatch as cloudwatch,
)
from constructs import Construct

from portfolio_infra.config import DeploymentConfig
from portfolio_infra.functions import python_function


class CostOptimizationStack(Stack):
    def __init__(self, scope: Construct, construct_id: str, config: DeploymentConfig, **kwargs):
        super().__init__(scope, construct_id, **kwargs)
        env_name = config.environment
        self.budget_limit = config.budget_limit

        self.topic = sns.Topic(self, "CostAlertTopic",
            topic_name=f"portfolio-cost-alerts-{env_name}",
            display_name="Portfolio Cost Alerts",
        )
        if config.alert_email:
            self.topic.add_subscription(subscriptions.EmailSubscription(config.alert_email))

        # Budgets publishes to the topic directly
        self.topic.add_to_resource_policy(iam.PolicyStatement(
            principals=[iam.ServicePrincipal("budgets.amazonaws.com")],
            actions=["sns:Publish"],
            resources=[self.topic.topic_arn],
        ))

        budgets.CfnBudget(self, "PortfolioBudget",
            budget=budgets.CfnBudget.BudgetDataProperty(
                budget_name=f"portfolio-budget-{env_name}",
                budget_limit=budgets.CfnBudget.SpendProperty(amount=self.budget_limit, unit="USD"),
                time_unit="MONTHLY",
                budget_type="COST",
                cost_filters={"TagKeyValue": ["user:Project$PhotographyPortfolio"]},
            ),
            notifications_with_subscribers=[
                self._notification("ACTUAL", 80),
                self._notification("FORECASTED", 100),
            ],
        )

        optimizer = python_function(self, "CostOptimizer", "cost_optimizer",
            timeout=Duration.minutes(5),
            environment={"COST_ALERT_TOPIC_ARN": self.topic.topic_arn},
        )
        self.topic.grant_publish(optimizer)
        optimizer.add_to_role_policy(iam.PolicyStatement(
            actions=[
                "s3:ListAllMyBuckets",
                "s3:GetLifecycleConfiguration",
                "s3:GetIntelligentTieringConfiguration",
                "dynamodb:ListTables",
                "dynamodb:DescribeTable",
            ],
            resources=["*"],
        ))
        events.Rule(self, "CostOptimizationSchedule",
            schedule=events.Schedule.rate(Duration.days(7)),
            description="Weekly cost optimization analysis",
            targets=[targets.LambdaFunction(optimizer)],
        )

        dashboard = cloudwatch.Dashboard(self, "CostDashboard",
            dashboard_name=f"portfolio-costs-{env_name}",
            widgets=[[cloudwatch.TextWidget(
                markdown=(
                    f"# Portfolio Cost Monitoring - {env_name.upper()}\n\n"
                    f"**Deployment Phase**: {config.phase}\n"
                    f"**Budget Limit**: ${self.budget_limit}/month\n"
                    f"**Environment**: {env_name}\n\n"
                    "## Cost Optimization Tips\n"
                    "- Enable S3 Intelligent Tiering\n"
                    "- Use DynamoDB On-Demand for variable workloads\n"
                    "- Monitor CloudFront cache hit ratio\n"
                    "- Review unused resources monthly"
                ),
                width=24,
                height=6,
            )]],
        )

        CfnOutput(self, "CostAlertTopicArn", value=self.topic.topic_arn,
                  description="SNS Topic ARN for cost alerts")
        CfnOutput(self, "BudgetLimit", value=str(self.budget_limit),
                  description="Monthly budget limit in USD")
        CfnOutput(self, "CostDashboardUrl",
                  value=f"https://console.aws.amazon.com/cloudwatch/home?region={self.region}"
                        f"#dashboards:name={dashboard.dashboard_name}",
                  description="CloudWatch cost monitoring dashboard")

    def _notification(self, notification_type: str, threshold: int):
        return budgets.CfnBudget.NotificationWithSubscribersProperty(
            notification=budgets.CfnBudget.NotificationProperty(
                notification_type=notification_type,
                comparison_operator="GREATER_THAN",
                threshold=threshold,
                threshold_type="PERCENTAGE",
            ),
            subscribers=[budgets.CfnBudget.SubscriberProperty(
                subscription_type="SNS",
                address=self.topic.topic_arn,
            )],
        )
