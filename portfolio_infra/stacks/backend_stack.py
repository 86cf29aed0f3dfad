from aws_cdk import (
    Stack,
    Duration,
    CfnOutput,
    aws_sns as sns,
    aws_s3 as s3,
    aws_dynamodb as dynamodb,
    aws_apigateway as apigateway,
    aws_cloudwatch as cloudwatch,
    aws_cloudwatch_actions as cw_actions,
)
from constructs import Construct

from portfolio_infra.config import DeploymentConfig
from portfolio_infra.functions import python_function, inline_function
from portfolio_infra.iam_policies import lambda_role, table_access, objects_access

IMAGE_PLACEHOLDER = '''
import json

def handler(event, context):
    return {
        "statusCode": 200,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps({"message": "Image processed"}),
    }
'''


class BackendStack(Stack):
    def __init__(self, scope: Construct, construct_id: str, config: DeploymentConfig,
                 table: dynamodb.ITable, bucket: s3.IBucket, **kwargs):
        super().__init__(scope, construct_id, **kwargs)

        role = lambda_role(self, "PortfolioLambdaRole", {
            "DynamoDBAccess": [table_access(table.table_arn, [
                "dynamodb:Query", "dynamodb:GetItem", "dynamodb:PutItem", "dynamodb:UpdateItem",
            ])],
            "S3Access": [objects_access(bucket.bucket_arn, ["s3:GetObject", "s3:PutObject"])],
        })

        self.api_function = python_function(self, "PortfolioFunction", "portfolio_api",
            role=role,
            environment={
                "TABLE_NAME": table.table_name,
                "BUCKET_NAME": bucket.bucket_name,
                "ENVIRONMENT": config.environment,
            },
            memory_size=512,
        )

        # Uploads are handled by the image optimization stack
        image_function = inline_function(self, "ImageFunction", IMAGE_PLACEHOLDER,
            role=role,
            timeout=Duration.seconds(60),
            memory_size=1024,
        )

        self.api = apigateway.RestApi(self, "PortfolioApi",
            rest_api_name="Photography Portfolio API",
            description="API for photographer portfolio",
            cloud_watch_role=False,
            default_cors_preflight_options=apigateway.CorsOptions(
                allow_origins=apigateway.Cors.ALL_ORIGINS,
                allow_methods=apigateway.Cors.ALL_METHODS,
                allow_headers=["Content-Type", "Authorization"],
            ),
        )

        api_integration = apigateway.LambdaIntegration(self.api_function)
        api_resource = self.api.root.add_resource("api")
        projects = api_resource.add_resource("projects")
        projects.add_method("GET", api_integration)
        projects.add_resource("{id}").add_method("GET", api_integration)
        api_resource.add_resource("carousel").add_method("GET", api_integration)
        api_resource.add_resource("health").add_method("GET", api_integration)
        api_resource.add_resource("images").add_method("POST", apigateway.LambdaIntegration(image_function))

        # Usage alarms
        self.cost_topic = sns.Topic(self, "CostAlarmTopic", display_name="Portfolio Cost Alerts")

        dynamodb_alarm = cloudwatch.Alarm(self, "DynamoDBCostAlarm",
            alarm_name="Portfolio-DynamoDB-HighUsage",
            metric=table.metric_consumed_read_capacity_units(
                statistic="Sum",
                period=Duration.minutes(5),
            ),
            threshold=1000,
            evaluation_periods=2,
            treat_missing_data=cloudwatch.TreatMissingData.NOT_BREACHING,
        )
        lambda_alarm = cloudwatch.Alarm(self, "LambdaCostAlarm",
            alarm_name="Portfolio-Lambda-HighInvocations",
            metric=self.api_function.metric_invocations(
                statistic="Sum",
                period=Duration.minutes(5),
            ),
            threshold=10000,
            evaluation_periods=2,
        )
        for alarm in (dynamodb_alarm, lambda_alarm):
            alarm.add_alarm_action(cw_actions.SnsAction(self.cost_topic))

        CfnOutput(self, "ApiUrl", value=self.api.url, description="API Gateway URL")
