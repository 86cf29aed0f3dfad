from aws_cdk import (
    Stack,
    Duration,
    CfnOutput,
    RemovalPolicy,
    aws_s3 as s3,
    aws_ssm as ssm,
    aws_sns as sns,
    aws_sns_subscriptions as subscriptions,
    aws_wafv2 as wafv2,
    aws_cognito as cognito,
    aws_dynamodb as dynamodb,
    aws_cloudwatch as cloudwatch,
    aws_cloudwatch_actions as cw_actions,
)
from constructs import Construct

from portfolio_infra import waf_rules
from portfolio_infra.config import DeploymentConfig
from portfolio_infra.iam_policies import cross_account_deployment_role


class InfrastructureStack(Stack):
    """Shared data, identity and edge-security resources for the portfolio."""

    def __init__(self, scope: Construct, construct_id: str, config: DeploymentConfig, **kwargs):
        super().__init__(scope, construct_id, **kwargs)
        env_name = config.environment

        # Projects, images and carousel items
        self.table = dynamodb.Table(self, "PortfolioTable",
            partition_key=dynamodb.Attribute(name="PK", type=dynamodb.AttributeType.STRING),
            sort_key=dynamodb.Attribute(name="SK", type=dynamodb.AttributeType.STRING),
            billing_mode=dynamodb.BillingMode.PAY_PER_REQUEST,
            point_in_time_recovery=True,
            removal_policy=RemovalPolicy.RETAIN,
            deletion_protection=True,
        )
        # GSI1: items by status, GSI2: projects by category
        for index in ("GSI1", "GSI2"):
            self.table.add_global_secondary_index(
                index_name=index,
                partition_key=dynamodb.Attribute(name=f"{index}PK", type=dynamodb.AttributeType.STRING),
                sort_key=dynamodb.Attribute(name=f"{index}SK", type=dynamodb.AttributeType.STRING),
                projection_type=dynamodb.ProjectionType.ALL,
            )

        # Media bucket
        self.bucket = s3.Bucket(self, "PortfolioBucket",
            versioned=True,
            encryption=s3.BucketEncryption.S3_MANAGED,
            block_public_access=s3.BlockPublicAccess.BLOCK_ALL,
            enforce_ssl=True,
            removal_policy=RemovalPolicy.RETAIN,
            lifecycle_rules=[
                s3.LifecycleRule(
                    id="IntelligentTiering",
                    transitions=[s3.Transition(
                        storage_class=s3.StorageClass.INTELLIGENT_TIERING,
                        transition_after=Duration.days(0),
                    )],
                ),
                s3.LifecycleRule(
                    id="DeleteIncompleteUploads",
                    abort_incomplete_multipart_upload_after=Duration.days(7),
                ),
            ],
        )

        # Admin user pool (TOTP MFA only)
        self.user_pool = cognito.UserPool(self, "AdminUserPool",
            self_sign_up_enabled=False,
            mfa=cognito.Mfa.REQUIRED,
            mfa_second_factor=cognito.MfaSecondFactor(sms=False, otp=True),
            password_policy=cognito.PasswordPolicy(
                min_length=12,
                require_lowercase=True,
                require_uppercase=True,
                require_digits=True,
                require_symbols=True,
            ),
            account_recovery=cognito.AccountRecovery.EMAIL_ONLY,
            feature_plan=cognito.FeaturePlan.PLUS,
            standard_threat_protection_mode=cognito.StandardThreatProtectionMode.FULL_FUNCTION,
            device_tracking=cognito.DeviceTracking(
                challenge_required_on_new_device=True,
                device_only_remembered_on_user_prompt=True,
            ),
            sign_in_aliases=cognito.SignInAliases(email=True),
            auto_verify=cognito.AutoVerifiedAttrs(email=True),
            removal_policy=RemovalPolicy.RETAIN,
        )
        self.user_pool_client = self.user_pool.add_client("AdminUserPoolClient",
            generate_secret=False,
            auth_flows=cognito.AuthFlow(user_srp=True, user_password=True),
            prevent_user_existence_errors=True,
        )

        # Baseline Web ACL for the CloudFront distribution
        self.web_acl = wafv2.CfnWebACL(self, "PortfolioWAF",
            scope="CLOUDFRONT",
            default_action=wafv2.CfnWebACL.DefaultActionProperty(allow={}),
            rules=[
                waf_rules.managed_rule_group("AWSManagedRulesCommonRuleSet", 1, "CommonRuleSetMetric"),
                waf_rules.rate_limit("RateLimitRule", 2, 2000, metric_name="RateLimitMetric"),
                waf_rules.managed_rule_group("AWSManagedRulesKnownBadInputsRuleSet", 3, "BadInputsMetric"),
            ],
            visibility_config=waf_rules.visibility("PortfolioWAF"),
        )

        # Cost alerts
        self.cost_topic = sns.Topic(self, "CostAlarmTopic", display_name="Portfolio Cost Alerts")
        if config.alert_email:
            self.cost_topic.add_subscription(subscriptions.EmailSubscription(config.alert_email))

        billing_alarm = cloudwatch.Alarm(self, "BillingAlarm",
            alarm_name=f"Portfolio-MonthlyBilling-{env_name}",
            metric=cloudwatch.Metric(
                namespace="AWS/Billing",
                metric_name="EstimatedCharges",
                dimensions_map={"Currency": "USD"},
                statistic="Maximum",
                period=Duration.hours(6),
            ),
            threshold=50,
            evaluation_periods=1,
            treat_missing_data=cloudwatch.TreatMissingData.NOT_BREACHING,
        )
        billing_alarm.add_alarm_action(cw_actions.SnsAction(self.cost_topic))

        # Deployment role for an external CI/CD account
        self.deployment_role = None
        if config.trusted_account_id:
            self.deployment_role = cross_account_deployment_role(self, config.trusted_account_id, env_name)

        # Outputs
        CfnOutput(self, "TableName", value=self.table.table_name, description="DynamoDB table name")
        CfnOutput(self, "BucketName", value=self.bucket.bucket_name, description="S3 bucket name")
        CfnOutput(self, "UserPoolId", value=self.user_pool.user_pool_id, description="Cognito User Pool ID")
        CfnOutput(self, "UserPoolClientId", value=self.user_pool_client.user_pool_client_id,
                  description="Cognito User Pool Client ID")
        CfnOutput(self, "WebAclArn", value=self.web_acl.attr_arn, description="WAF Web ACL ARN")

        # SSM parameters (exported daily by the configuration backup)
        prefix = f"/portfolio/{env_name}"
        ssm.StringParameter(self, "ParamTableName", parameter_name=f"{prefix}/dynamodb/table-name", string_value=self.table.table_name)
        ssm.StringParameter(self, "ParamBucketName", parameter_name=f"{prefix}/s3/media-bucket", string_value=self.bucket.bucket_name)
        ssm.StringParameter(self, "ParamUserPoolId", parameter_name=f"{prefix}/cognito/user-pool-id", string_value=self.user_pool.user_pool_id)
        ssm.StringParameter(self, "ParamUserPoolClientId", parameter_name=f"{prefix}/cognito/client-id", string_value=self.user_pool_client.user_pool_client_id)
        ssm.StringParameter(self, "ParamWebAclArn", parameter_name=f"{prefix}/waf/web-acl-arn", string_value=self.web_acl.attr_arn)
