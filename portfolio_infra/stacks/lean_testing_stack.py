from aws_cdk import (
    Aws,
    Stack,
    Duration,
    CfnOutput,
    aws_lambda as lambda_,
    aws_apigateway as apigateway,
)
from constructs import Construct

from portfolio_infra.config import DeploymentConfig
from portfolio_infra.functions import inline_function
from portfolio_infra.stacks.sandbox import CORS_HEADERS, throwaway_bucket, site_distribution

# Items live in the execution environment and reset on cold start
LEAN_API = CORS_HEADERS + '''
import json
import random
import time
from datetime import datetime, timezone

portfolio_items = [
    {"id": "1", "title": "Wedding Photography", "category": "wedding", "description": "Beautiful wedding moments"},
    {"id": "2", "title": "Portrait Session", "category": "portrait", "description": "Professional portraits"},
]
contacts = []


def reply(status, body):
    return {"statusCode": status, "headers": CORS_HEADERS, "body": json.dumps(body)}


def handler(event, context):
    path = event.get("path") or "/"
    method = event.get("httpMethod") or "GET"
    now = datetime.now(timezone.utc).isoformat()
    body = json.loads(event.get("body") or "{}") if method == "POST" else {}
    if method == "OPTIONS":
        return reply(200, {})
    if path in ("/", "/api", "/api/"):
        return reply(200, {"message": "Lean Testing API - Cost Optimized!", "timestamp": now,
                           "environment": "lean-testing",
                           "features": ["in-memory-storage", "basic-api", "cost-optimized"],
                           "costSavings": ["no-dynamodb", "no-cognito", "no-waf", "no-monitoring"]})
    if path == "/api/health":
        return reply(200, {"status": "healthy", "timestamp": now,
                           "services": {"lambda": "connected", "s3": "connected", "storage": "in-memory"}})
    if path == "/api/portfolio" and method == "GET":
        return reply(200, {"items": portfolio_items, "count": len(portfolio_items), "storage": "in-memory"})
    if path == "/api/portfolio" and method == "POST":
        item = {"id": str(int(time.time() * 1000)), "title": body.get("title"), "category": body.get("category"),
                "description": body.get("description"), "timestamp": now}
        portfolio_items.append(item)
        return reply(201, {"message": "Portfolio item added", "item": item, "total": len(portfolio_items)})
    if path == "/api/contact" and method == "POST":
        contact = {"id": str(int(time.time() * 1000)), "name": body.get("name"), "email": body.get("email"),
                   "service": body.get("service"), "message": body.get("message"), "timestamp": now,
                   "status": "new"}
        contacts.append(contact)
        return reply(200, {"message": "Contact form submitted successfully", "contactId": contact["id"],
                           "storage": "in-memory"})
    if path.startswith("/api/admin") and method == "GET":
        return reply(200, {"contacts": contacts, "portfolioItems": portfolio_items,
                           "totalContacts": len(contacts), "totalPortfolio": len(portfolio_items),
                           "storage": "in-memory (resets on restart)"})
    if path == "/api/analytics":
        return reply(200, {"visitors": random.randint(50, 149), "pageViews": random.randint(200, 699),
                           "contacts": len(contacts), "portfolioItems": len(portfolio_items),
                           "timestamp": now, "note": "Simulated data for testing"})
    return reply(404, {"error": "Not Found", "path": path, "method": method})
'''


class LeanTestingStack(Stack):
    """Cheapest runnable copy of the site: no table, auth, WAF or monitoring."""

    def __init__(self, scope: Construct, construct_id: str, config: DeploymentConfig, **kwargs):
        super().__init__(scope, construct_id, **kwargs)

        bucket = throwaway_bucket(self, "LeanBucket", f"portfolio-lean-{Aws.ACCOUNT_ID}")

        function = inline_function(self, "LeanFunction", LEAN_API,
            function_name="portfolio-api-lean",
            architecture=lambda_.Architecture.ARM_64,
            memory_size=256,
            timeout=Duration.seconds(15),
            environment={
                "BUCKET_NAME": bucket.bucket_name,
                "ENVIRONMENT": "lean-testing",
            },
        )
        bucket.grant_read_write(function)

        api = apigateway.RestApi(self, "LeanApi",
            rest_api_name="portfolio-lean-api",
            description="Lean Testing API - Cost Optimized",
            cloud_watch_role=False,
            deploy_options=apigateway.StageOptions(
                stage_name="lean",
                throttling_rate_limit=100,
                throttling_burst_limit=200,
            ),
        )
        integration = apigateway.LambdaIntegration(function)
        api.root.add_method("GET", integration)
        api.root.add_proxy(default_integration=integration, any_method=True)

        distribution = site_distribution(self, "LeanDistribution", bucket, api,
            comment="Lean Testing Distribution - Cost Optimized",
        )

        CfnOutput(self, "LeanBucketName", value=bucket.bucket_name, description="Lean testing S3 bucket name")
        CfnOutput(self, "LeanApiUrl", value=api.url, description="Lean testing API Gateway URL")
        CfnOutput(self, "LeanDistributionUrl", value=f"https://{distribution.distribution_domain_name}",
                  description="Lean testing CloudFront distribution URL")
        CfnOutput(self, "CostSavings",
                  value="Removed: DynamoDB, Cognito, WAF, Enhanced Monitoring, Global Tables, Backup Services",
                  description="Cost optimizations applied")
        CfnOutput(self, "EstimatedMonthlyCost", value="$1-3 per month",
                  description="Estimated monthly cost for lean testing environment")
