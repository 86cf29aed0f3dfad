from aws_cdk import (
    Aws,
    Stack,
    CfnOutput,
    RemovalPolicy,
    aws_iam as iam,
    aws_wafv2 as wafv2,
    aws_lambda as lambda_,
    aws_cognito as cognito,
    aws_dynamodb as dynamodb,
    aws_apigateway as apigateway,
)
from constructs import Construct

from portfolio_infra import waf_rules
from portfolio_infra.config import DeploymentConfig
from portfolio_infra.functions import inline_function
from portfolio_infra.iam_policies import (
    admin_lambda_role,
    cognito_admin_policy,
    dynamodb_resource_policy,
    lambda_role,
    objects_access,
    table_access,
)
from portfolio_infra.stacks.sandbox import CORS_HEADERS, throwaway_bucket, site_distribution

TABLE_NAME = "PortfolioData-enhanced"

ENHANCED_API = CORS_HEADERS + '''
import json
import os
import time
from datetime import datetime, timezone

import boto3
from boto3.dynamodb.conditions import Attr

table = boto3.resource("dynamodb").Table(os.environ["TABLE_NAME"])


def reply(status, body):
    return {"statusCode": status, "headers": CORS_HEADERS, "body": json.dumps(body, default=str)}


def handler(event, context):
    path = event.get("path") or "/"
    method = event.get("httpMethod") or "GET"
    now = datetime.now(timezone.utc).isoformat()
    if method == "OPTIONS":
        return reply(200, {})
    if path in ("/", "/api", "/api/"):
        return reply(200, {"message": "Enhanced Portfolio API is working!", "timestamp": now,
                           "environment": "enhanced",
                           "features": ["authentication", "admin", "image-optimization", "cms"]})
    if path == "/api/health":
        return reply(200, {"status": "healthy",
                           "services": {"dynamodb": "connected", "s3": "connected", "cognito": "configured"}})
    if path == "/api/portfolio" and method == "GET":
        result = table.scan(FilterExpression=Attr("PK").begins_with("PORTFOLIO#"))
        return reply(200, {"items": result.get("Items", []), "count": result.get("Count", 0)})
    if path == "/api/contact" and method == "POST":
        body = json.loads(event.get("body") or "{}")
        table.put_item(Item={
            "PK": f"CONTACT#{int(time.time() * 1000)}", "SK": "SUBMISSION",
            "name": body.get("name"), "email": body.get("email"), "service": body.get("service"),
            "message": body.get("message"), "timestamp": now, "status": "new",
        })
        return reply(200, {"message": "Contact form submitted successfully", "timestamp": now})
    return reply(404, {"error": "Not Found", "path": path, "method": method})
'''

ADMIN_API = CORS_HEADERS + '''
import json
import os

import boto3
from boto3.dynamodb.conditions import Key

table = boto3.resource("dynamodb").Table(os.environ["TABLE_NAME"])


def handler(event, context):
    claims = (event.get("requestContext") or {}).get("authorizer", {}).get("claims", {})
    if event.get("httpMethod") == "POST":
        item = json.loads(event.get("body") or "{}")
        if not str(item.get("PK", "")).startswith(("PROJECT", "CAROUSEL", "CONFIG")) or "SK" not in item:
            return {"statusCode": 400, "headers": CORS_HEADERS,
                    "body": json.dumps({"error": "PK must start with PROJECT, CAROUSEL or CONFIG and SK is required"})}
        table.put_item(Item=item)
        return {"statusCode": 201, "headers": CORS_HEADERS, "body": json.dumps({"saved": item["PK"]})}
    items = table.query(KeyConditionExpression=Key("PK").eq("PROJECT")).get("Items", [])
    return {"statusCode": 200, "headers": CORS_HEADERS,
            "body": json.dumps({"user": claims.get("email"), "projects": items}, default=str)}
'''


class EnhancedDevStack(Stack):
    """Sandbox with authentication, an admin API and a rate-limiting WAF."""

    def __init__(self, scope: Construct, construct_id: str, config: DeploymentConfig, **kwargs):
        super().__init__(scope, construct_id, **kwargs)

        bucket = throwaway_bucket(self, "EnhancedBucket", f"portfolio-enhanced-{Aws.ACCOUNT_ID}")

        # Roles refer to the table by name so the table policy can name the roles
        table_arn = self.format_arn(service="dynamodb", resource="table", resource_name=TABLE_NAME)
        api_role = lambda_role(self, "EnhancedApiRole", {
            "DynamoDBAccess": [table_access(table_arn, ["dynamodb:Scan", "dynamodb:PutItem"])],
            "S3Access": [objects_access(bucket.bucket_arn, ["s3:GetObject", "s3:PutObject"])],
        })
        admin_role = admin_lambda_role(self, "AdminApiRole", table_arn, bucket.bucket_arn, "enhanced")

        table = dynamodb.Table(self, "EnhancedTable",
            table_name=TABLE_NAME,
            partition_key=dynamodb.Attribute(name="PK", type=dynamodb.AttributeType.STRING),
            sort_key=dynamodb.Attribute(name="SK", type=dynamodb.AttributeType.STRING),
            billing_mode=dynamodb.BillingMode.PAY_PER_REQUEST,
            point_in_time_recovery=True,
            removal_policy=RemovalPolicy.DESTROY,
            resource_policy=dynamodb_resource_policy(table_arn, [admin_role.role_arn, api_role.role_arn]),
        )
        table.add_global_secondary_index(
            index_name="GSI1",
            partition_key=dynamodb.Attribute(name="GSI1PK", type=dynamodb.AttributeType.STRING),
            sort_key=dynamodb.Attribute(name="GSI1SK", type=dynamodb.AttributeType.STRING),
        )

        user_pool = cognito.UserPool(self, "UserPool",
            user_pool_name="portfolio-enhanced-users",
            self_sign_up_enabled=False,
            sign_in_aliases=cognito.SignInAliases(email=True),
            password_policy=cognito.PasswordPolicy(
                min_length=8,
                require_lowercase=True,
                require_uppercase=True,
                require_digits=True,
                require_symbols=True,
            ),
            mfa=cognito.Mfa.OPTIONAL,
            mfa_second_factor=cognito.MfaSecondFactor(sms=True, otp=True),
            removal_policy=RemovalPolicy.DESTROY,
        )
        user_pool_client = user_pool.add_client("UserPoolClient",
            user_pool_client_name="portfolio-enhanced-client",
            generate_secret=False,
            auth_flows=cognito.AuthFlow(user_password=True, user_srp=True),
        )
        iam.Policy(self, "CognitoAdminPolicy",
            document=cognito_admin_policy(user_pool.user_pool_arn),
            roles=[admin_role],
        )

        environment = {
            "TABLE_NAME": TABLE_NAME,
            "BUCKET_NAME": bucket.bucket_name,
            "USER_POOL_ID": user_pool.user_pool_id,
            "USER_POOL_CLIENT_ID": user_pool_client.user_pool_client_id,
        }
        api_function = inline_function(self, "EnhancedFunction", ENHANCED_API,
            function_name="portfolio-api-enhanced",
            architecture=lambda_.Architecture.ARM_64,
            role=api_role,
            environment=environment,
        )
        admin_function = inline_function(self, "AdminFunction", ADMIN_API,
            function_name="portfolio-admin-enhanced",
            architecture=lambda_.Architecture.ARM_64,
            role=admin_role,
            environment=environment,
        )
        api = apigateway.RestApi(self, "EnhancedApi",
            rest_api_name="portfolio-enhanced-api",
            description="Enhanced Portfolio API with Authentication",
            cloud_watch_role=False,
            deploy_options=apigateway.StageOptions(
                stage_name="enhanced",
                throttling_rate_limit=1000,
                throttling_burst_limit=2000,
            ),
            default_cors_preflight_options=apigateway.CorsOptions(
                allow_origins=apigateway.Cors.ALL_ORIGINS,
                allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
                allow_headers=["Content-Type", "Authorization"],
            ),
        )
        authorizer = apigateway.CognitoUserPoolsAuthorizer(self, "CognitoAuthorizer",
            cognito_user_pools=[user_pool],
            authorizer_name="portfolio-authorizer",
        )

        integration = apigateway.LambdaIntegration(api_function)
        api.root.add_method("GET", integration)
        api_resource = api.root.add_resource("api")
        api_resource.add_method("GET", integration)
        api_resource.add_resource("health").add_method("GET", integration)
        api_resource.add_resource("portfolio").add_method("GET", integration)
        api_resource.add_resource("contact").add_method("POST", integration)

        admin_integration = apigateway.LambdaIntegration(admin_function)
        admin = api_resource.add_resource("admin")
        for method in ("GET", "POST"):
            admin.add_method(method, admin_integration,
                authorizer=authorizer,
                authorization_type=apigateway.AuthorizationType.COGNITO,
            )

        web_acl = wafv2.CfnWebACL(self, "EnhancedWAF",
            scope="CLOUDFRONT",
            default_action=wafv2.CfnWebACL.DefaultActionProperty(allow={}),
            rules=[waf_rules.rate_limit("RateLimitRule", 1, 2000)],
            visibility_config=waf_rules.visibility("EnhancedPortfolioWAF"),
        )

        distribution = site_distribution(self, "EnhancedDistribution", bucket, api,
            comment="Enhanced Portfolio Distribution with WAF",
            domain=config.domain,
            hosted_zone_id=config.hosted_zone_id,
            web_acl_id=web_acl.attr_arn,
        )

        CfnOutput(self, "EnhancedBucketName", value=bucket.bucket_name, description="Enhanced S3 bucket name")
        CfnOutput(self, "EnhancedTableName", value=table.table_name, description="Enhanced DynamoDB table name")
        CfnOutput(self, "EnhancedApiUrl", value=api.url, description="Enhanced API Gateway URL")
        CfnOutput(self, "EnhancedDistributionUrl", value=f"https://{distribution.distribution_domain_name}",
                  description="Enhanced CloudFront distribution URL")
        CfnOutput(self, "UserPoolId", value=user_pool.user_pool_id, description="Cognito User Pool ID")
        CfnOutput(self, "UserPoolClientId", value=user_pool_client.user_pool_client_id,
                  description="Cognito User Pool Client ID")
        CfnOutput(self, "EstimatedMonthlyCost",
                  value="$15-30 per month when running, includes authentication, WAF, and enhanced features",
                  description="Estimated monthly cost for enhanced environment")
