import json

from aws_cdk import (
    Stack,
    Duration,
    CfnOutput,
    RemovalPolicy,
    aws_s3 as s3,
    aws_ssm as ssm,
    aws_sns as sns,
    aws_sns_subscriptions as subscriptions,
    aws_iam as iam,
    aws_events as events,
    aws_events_targets as targets,
    aws_dynamodb as dynamodb,
    aws_cloudwatch as cloudwatch,
    aws_cloudwatch_actions as cw_actions,
)
from constructs import Construct

from portfolio_infra.config import DeploymentConfig
from portfolio_infra.functions import python_function
from portfolio_infra.iam_policies import lambda_role, objects_access


class BackupRecoveryStack(Stack):
    """
    Backups and disaster-recovery readiness for the portfolio data.

    The backup bucket holds DynamoDB run metadata and configuration exports,
    replicates ``media/`` objects back to the primary bucket as a restore
    path, and the global table keeps a live copy in the backup region.
    """

    def __init__(self, scope: Construct, construct_id: str, config: DeploymentConfig,
                 primary_table: dynamodb.ITable, primary_bucket: s3.IBucket, **kwargs):
        super().__init__(scope, construct_id, **kwargs)
        if not config.alert_email:
            raise ValueError("BackupRecoveryStack requires an alert email (-c alert_email=...)")
        config.check_backup_region(self.region)

        env_name = config.environment
        backup_region = config.backup_region

        self.backup_bucket = s3.Bucket(self, "BackupBucket",
            bucket_name=f"portfolio-backup-{env_name}-{backup_region}",
            versioned=True,
            encryption=s3.BucketEncryption.S3_MANAGED,
            block_public_access=s3.BlockPublicAccess.BLOCK_ALL,
            enforce_ssl=True,
            removal_policy=RemovalPolicy.RETAIN,
            lifecycle_rules=[s3.LifecycleRule(
                id="BackupLifecycle",
                transitions=[
                    s3.Transition(storage_class=s3.StorageClass.INFREQUENT_ACCESS,
                                  transition_after=Duration.days(30)),
                    s3.Transition(storage_class=s3.StorageClass.GLACIER,
                                  transition_after=Duration.days(90)),
                    s3.Transition(storage_class=s3.StorageClass.DEEP_ARCHIVE,
                                  transition_after=Duration.days(365)),
                ],
                noncurrent_version_transitions=[s3.NoncurrentVersionTransition(
                    storage_class=s3.StorageClass.INFREQUENT_ACCESS,
                    transition_after=Duration.days(30),
                )],
                noncurrent_version_expiration=Duration.days(2555),
            )],
        )

        # Replication is not exposed the way we need it on the L2 bucket
        replication_role = self._replication_role(primary_bucket)
        cfn_bucket = self.backup_bucket.node.default_child
        cfn_bucket.add_property_override("ReplicationConfiguration", {
            "Role": replication_role.role_arn,
            "Rules": [{
                "Id": "ReplicateToBackupRegion",
                "Status": "Enabled",
                "Prefix": "media/",
                "Destination": {
                    "Bucket": primary_bucket.bucket_arn,
                    "StorageClass": "STANDARD_IA",
                },
            }],
        })

        self.global_table = dynamodb.Table(self, "GlobalTable",
            table_name=f"{primary_table.table_name}-global",
            partition_key=dynamodb.Attribute(name="PK", type=dynamodb.AttributeType.STRING),
            sort_key=dynamodb.Attribute(name="SK", type=dynamodb.AttributeType.STRING),
            billing_mode=dynamodb.BillingMode.PAY_PER_REQUEST,
            point_in_time_recovery=True,
            replication_regions=[backup_region],
            stream=dynamodb.StreamViewType.NEW_AND_OLD_IMAGES,
            removal_policy=RemovalPolicy.RETAIN,
        )

        # Alerts
        self.alerts_topic = sns.Topic(self, "BackupAlerts",
            display_name=f"Portfolio Backup Alerts - {env_name}"
        )
        self.alerts_topic.add_subscription(subscriptions.EmailSubscription(config.alert_email))
        ssm.StringParameter(self, "BackupAlertsTopicParam",
            parameter_name=f"/portfolio/{env_name}/sns/backup-alerts-topic",
            string_value=self.alerts_topic.topic_arn,
        )

        # Daily backup run
        params_arn = f"arn:aws:ssm:{self.region}:{self.account}:parameter/portfolio/{env_name}/*"
        self.backup_function = python_function(self, "BackupFunction", "backup_automation",
            role=lambda_role(self, "BackupLambdaRole", {
                "BackupPolicy": [
                    iam.PolicyStatement(
                        actions=["dynamodb:CreateBackup", "dynamodb:DescribeBackup",
                                 "dynamodb:DeleteBackup", "dynamodb:RestoreTableFromBackup"],
                        resources=[primary_table.table_arn, f"{primary_table.table_arn}/backup/*"],
                    ),
                    # ListBackups has no resource-level permissions
                    iam.PolicyStatement(actions=["dynamodb:ListBackups"], resources=["*"]),
                    iam.PolicyStatement(
                        actions=["s3:ListBucket", "s3:GetReplicationConfiguration",
                                 "s3:GetMetricsConfiguration"],
                        resources=[self.backup_bucket.bucket_arn],
                    ),
                    objects_access(self.backup_bucket.bucket_arn,
                                   ["s3:PutObject", "s3:GetObject", "s3:DeleteObject"]),
                    iam.PolicyStatement(
                        actions=["ssm:GetParameter", "ssm:GetParameters", "ssm:GetParametersByPath"],
                        resources=[params_arn],
                    ),
                    iam.PolicyStatement(actions=["sns:Publish"], resources=[self.alerts_topic.topic_arn]),
                ],
            }),
            timeout=Duration.minutes(15),
            memory_size=1024,
            environment={
                "PRIMARY_TABLE_NAME": primary_table.table_name,
                "BACKUP_BUCKET_NAME": self.backup_bucket.bucket_name,
                "BACKUP_REGION": backup_region,
                "ENVIRONMENT": env_name,
            },
        )
        events.Rule(self, "BackupSchedule",
            schedule=events.Schedule.cron(minute="0", hour="2"),
            description="Daily backup schedule",
            targets=[targets.LambdaFunction(self.backup_function)],
        )

        self._configuration_backup(env_name, params_arn)
        self._monitoring(env_name)
        self._health_check(primary_table)

        ssm.StringParameter(self, "DNSFailoverConfig",
            parameter_name=f"/portfolio/{env_name}/dns/failover-config",
            string_value=json.dumps({
                "primaryRegion": self.region,
                "backupRegion": backup_region,
                "healthCheckEndpoint": "/health",
                "failoverThreshold": 3,
            }),
            description="DNS failover configuration for disaster recovery",
        )

        CfnOutput(self, "BackupBucketName", value=self.backup_bucket.bucket_name,
                  description="Backup S3 bucket name")
        CfnOutput(self, "GlobalTableName", value=self.global_table.table_name,
                  description="Global DynamoDB table name")
        CfnOutput(self, "BackupFunctionArn", value=self.backup_function.function_arn,
                  description="Backup Lambda function ARN")

    def _replication_role(self, destination: s3.IBucket) -> iam.Role:
        return iam.Role(self, "ReplicationRole",
            assumed_by=iam.ServicePrincipal("s3.amazonaws.com"),
            inline_policies={"ReplicationPolicy": iam.PolicyDocument(statements=[
                iam.PolicyStatement(
                    actions=["s3:GetReplicationConfiguration", "s3:ListBucket"],
                    resources=[self.backup_bucket.bucket_arn],
                ),
                objects_access(self.backup_bucket.bucket_arn,
                               ["s3:GetObjectVersionForReplication", "s3:GetObjectVersionAcl"]),
                objects_access(destination.bucket_arn, ["s3:ReplicateObject", "s3:ReplicateDelete"]),
            ])},
        )

    def _configuration_backup(self, env_name: str, params_arn: str):
        function = python_function(self, "ConfigBackupFunction", "config_backup",
            timeout=Duration.minutes(5),
            environment={
                "BACKUP_BUCKET": self.backup_bucket.bucket_name,
                "ENVIRONMENT": env_name,
            },
        )
        self.backup_bucket.grant_write(function)
        function.add_to_role_policy(iam.PolicyStatement(
            actions=["ssm:GetParametersByPath"],
            resources=[params_arn],
        ))
        events.Rule(self, "ConfigBackupSchedule",
            schedule=events.Schedule.cron(minute="30", hour="2"),
            targets=[targets.LambdaFunction(function)],
        )

    def _monitoring(self, env_name: str):
        failure_alarm = cloudwatch.Alarm(self, "BackupFailureAlarm",
            alarm_name=f"Portfolio-BackupFailure-{env_name}",
            alarm_description="Backup operation failed",
            metric=self.backup_function.metric_errors(statistic="Sum", period=Duration.minutes(5)),
            threshold=1,
            evaluation_periods=1,
            comparison_operator=cloudwatch.ComparisonOperator.GREATER_THAN_OR_EQUAL_TO_THRESHOLD,
            treat_missing_data=cloudwatch.TreatMissingData.NOT_BREACHING,
        )
        replication_alarm = cloudwatch.Alarm(self, "ReplicationFailureAlarm",
            alarm_name=f"Portfolio-ReplicationFailure-{env_name}",
            alarm_description="S3 cross-region replication failed",
            metric=cloudwatch.Metric(
                namespace="AWS/S3",
                metric_name="ReplicationLatency",
                dimensions_map={"SourceBucket": self.backup_bucket.bucket_name},
                statistic="Maximum",
                period=Duration.minutes(15),
            ),
            threshold=3600,
            evaluation_periods=2,
            treat_missing_data=cloudwatch.TreatMissingData.BREACHING,
        )
        for alarm in (failure_alarm, replication_alarm):
            alarm.add_alarm_action(cw_actions.SnsAction(self.alerts_topic))

    def _health_check(self, primary_table: dynamodb.ITable):
        # Backups are taken from the primary table, so recency is checked there
        function = python_function(self, "HealthCheckFunction", "health_check",
            timeout=Duration.minutes(2),
            environment={
                "TABLE_NAME": primary_table.table_name,
                "BUCKET_NAME": self.backup_bucket.bucket_name,
            },
        )
        self.backup_bucket.grant_read(function)
        function.add_to_role_policy(iam.PolicyStatement(
            actions=["dynamodb:DescribeTable"],
            resources=[primary_table.table_arn],
        ))
        function.add_to_role_policy(iam.PolicyStatement(
            actions=["dynamodb:ListBackups"],
            resources=["*"],
        ))
        events.Rule(self, "HealthCheckSchedule",
            schedule=events.Schedule.rate(Duration.minutes(15)),
            targets=[targets.LambdaFunction(function)],
        )
