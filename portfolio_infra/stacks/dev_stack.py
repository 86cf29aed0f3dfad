from aws_cdk import (
    Aws,
    Stack,
    Duration,
    CfnOutput,
    RemovalPolicy,
    aws_s3 as s3,
    aws_logs as logs,
    aws_lambda as lambda_,
    aws_dynamodb as dynamodb,
    aws_apigateway as apigateway,
)
from constructs import Construct

from portfolio_infra.config import DeploymentConfig
from portfolio_infra.functions import python_function
from portfolio_infra.stacks.sandbox import throwaway_bucket, site_distribution


class DevStack(Stack):
    """Throwaway development copy of the site: everything is destroyed with the stack."""

    def __init__(self, scope: Construct, construct_id: str, config: DeploymentConfig, **kwargs):
        super().__init__(scope, construct_id, **kwargs)

        bucket = throwaway_bucket(self, "DevPortfolioBucket", f"portfolio-dev-{Aws.ACCOUNT_ID}-{Aws.REGION}",
            lifecycle_rules=[s3.LifecycleRule(id="dev-cleanup", expiration=Duration.days(30))],
        )

        table = dynamodb.Table(self, "DevPortfolioTable",
            table_name="PortfolioData-dev",
            partition_key=dynamodb.Attribute(name="PK", type=dynamodb.AttributeType.STRING),
            sort_key=dynamodb.Attribute(name="SK", type=dynamodb.AttributeType.STRING),
            billing_mode=dynamodb.BillingMode.PAY_PER_REQUEST,
            removal_policy=RemovalPolicy.DESTROY,
        )
        # GSI1: items by status, GSI2: projects by category
        for index in ("GSI1", "GSI2"):
            table.add_global_secondary_index(
                index_name=index,
                partition_key=dynamodb.Attribute(name=f"{index}PK", type=dynamodb.AttributeType.STRING),
                sort_key=dynamodb.Attribute(name=f"{index}SK", type=dynamodb.AttributeType.STRING),
                projection_type=dynamodb.ProjectionType.ALL,
            )

        api_function = python_function(self, "DevApiFunction", "portfolio_api",
            function_name="portfolio-api-dev",
            architecture=lambda_.Architecture.ARM_64,
            memory_size=512,
            reserved_concurrent_executions=5,
            log_group=logs.LogGroup(self, "DevApiLogs",
                retention=logs.RetentionDays.ONE_WEEK,
                removal_policy=RemovalPolicy.DESTROY,
            ),
            environment={
                "TABLE_NAME": table.table_name,
                "BUCKET_NAME": bucket.bucket_name,
                "ENVIRONMENT": "dev",
            },
        )
        table.grant_read_write_data(api_function)
        bucket.grant_read_write(api_function)

        api = apigateway.RestApi(self, "DevPortfolioApi",
            rest_api_name="portfolio-api-dev",
            description="Development API for Photography Portfolio",
            cloud_watch_role=False,
            endpoint_types=[apigateway.EndpointType.REGIONAL],
            deploy_options=apigateway.StageOptions(
                stage_name="dev",
                throttling_rate_limit=100,
                throttling_burst_limit=200,
                metrics_enabled=False,
                data_trace_enabled=False,
            ),
        )
        api.root.add_proxy(default_integration=apigateway.LambdaIntegration(api_function), any_method=True)

        distribution = site_distribution(self, "DevDistribution", bucket, api,
            comment="Dev Portfolio Distribution",
            domain=config.domain,
            hosted_zone_id=config.hosted_zone_id,
        )

        CfnOutput(self, "DevBucketName", value=bucket.bucket_name, description="Dev S3 bucket name")
        CfnOutput(self, "DevTableName", value=table.table_name, description="Dev DynamoDB table name")
        CfnOutput(self, "DevApiUrl", value=api.url, description="Dev API Gateway URL")
        CfnOutput(self, "DevDistributionUrl", value=f"https://{distribution.distribution_domain_name}",
                  description="Dev CloudFront distribution URL")
        CfnOutput(self, "DevDistributionId", value=distribution.distribution_id,
                  description="Dev CloudFront distribution ID")
        CfnOutput(self, "EstimatedMonthlyCost", value="$3-8 per month when running, $0 when stopped",
                  description="Estimated monthly cost for dev environment")
