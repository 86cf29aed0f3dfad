from aws_cdk import (
    Stack,
    Duration,
    CfnOutput,
    aws_s3 as s3,
    aws_dynamodb as dynamodb,
    aws_lambda as lambda_,
    aws_apigateway as apigateway,
    aws_events as events,
    aws_events_targets as targets,
    aws_cloudwatch as cloudwatch,
)
from constructs import Construct

from portfolio_infra.config import DeploymentConfig
from portfolio_infra.functions import python_function
from portfolio_infra.iam_policies import lambda_role, table_access, objects_access


class SEOAutomationStack(Stack):
    """Meta tag API plus scheduled sitemap.xml and robots.txt generation."""

    def __init__(self, scope: Construct, construct_id: str, config: DeploymentConfig,
                 table: dynamodb.ITable, site_bucket: s3.IBucket, **kwargs):
        super().__init__(scope, construct_id, **kwargs)
        env_name = config.environment

        role = lambda_role(self, "SEOLambdaRole", {
            "DynamoDBAccess": [table_access(table.table_arn,
                                            ["dynamodb:Query", "dynamodb:GetItem", "dynamodb:Scan"])],
            "S3Access": [objects_access(site_bucket.bucket_arn, ["s3:PutObject", "s3:GetObject"])],
        })

        self.meta_function = self._seo_function("MetaGeneratorFunction", "meta_generator", role,
            memory_size=512,
            environment={
                "TABLE_NAME": table.table_name,
                "SITE_URL": config.site_url,
                "IMAGE_DOMAIN": config.image_url,
                "ENVIRONMENT": env_name,
            },
        )
        self.sitemap_function = self._seo_function("SitemapGeneratorFunction", "sitemap_generator", role,
            timeout=Duration.minutes(5),
            memory_size=1024,
            environment={
                "TABLE_NAME": table.table_name,
                "BUCKET_NAME": site_bucket.bucket_name,
                "SITE_URL": config.site_url,
                "ENVIRONMENT": env_name,
            },
        )
        self.robots_function = self._seo_function("RobotsGeneratorFunction", "robots_generator", role,
            memory_size=256,
            environment={
                "BUCKET_NAME": site_bucket.bucket_name,
                "SITE_URL": config.site_url,
                "ENVIRONMENT": env_name,
            },
        )

        self.api = apigateway.RestApi(self, "SEOApi",
            rest_api_name="Photography Portfolio SEO API",
            description="SEO automation endpoints",
            cloud_watch_role=False,
            default_cors_preflight_options=apigateway.CorsOptions(
                allow_origins=apigateway.Cors.ALL_ORIGINS,
                allow_methods=["GET", "POST"],
                allow_headers=["Content-Type", "Authorization"],
            ),
        )
        seo = self.api.root.add_resource("seo")
        seo.add_resource("meta").add_resource("{proxy+}").add_method(
            "GET", apigateway.LambdaIntegration(self.meta_function))
        seo.add_resource("sitemap").add_method("POST", apigateway.LambdaIntegration(self.sitemap_function))
        seo.add_resource("robots").add_method("POST", apigateway.LambdaIntegration(self.robots_function))

        # Daily regeneration, 02:00 and 03:00 UTC
        events.Rule(self, "SitemapScheduleRule",
            schedule=events.Schedule.cron(minute="0", hour="2"),
            description="Daily sitemap generation",
            targets=[targets.LambdaFunction(self.sitemap_function)],
        )
        events.Rule(self, "RobotsScheduleRule",
            schedule=events.Schedule.cron(minute="0", hour="3"),
            description="Daily robots.txt generation",
            targets=[targets.LambdaFunction(self.robots_function)],
        )

        self.meta_function.metric_errors().create_alarm(self, "MetaGeneratorErrors",
            threshold=5,
            evaluation_periods=2,
            treat_missing_data=cloudwatch.TreatMissingData.NOT_BREACHING,
        )
        self.sitemap_function.metric_errors().create_alarm(self, "SitemapGeneratorErrors",
            threshold=1,
            evaluation_periods=1,
            treat_missing_data=cloudwatch.TreatMissingData.NOT_BREACHING,
        )

        CfnOutput(self, "SEOApiUrl", value=self.api.url, description="SEO API Gateway URL",
                  export_name=f"PhotographyPortfolio-{env_name}-SEOApiUrl")
        CfnOutput(self, "MetaEndpoint", value=f"{self.api.url}seo/meta/",
                  description="Meta tags generation endpoint")
        CfnOutput(self, "SitemapEndpoint", value=f"{self.api.url}seo/sitemap",
                  description="Sitemap generation endpoint")

    def _seo_function(self, construct_id: str, module: str, role, **kwargs) -> lambda_.Function:
        return python_function(self, construct_id, "seo", handler=f"{module}.handler", role=role, **kwargs)
