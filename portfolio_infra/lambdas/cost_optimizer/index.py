"""Weekly cost review of the portfolio's S3 buckets and DynamoDB tables."""

import json
import logging
import os
from datetime import datetime, timezone

import boto3
from botocore.exceptions import ClientError

logger = logging.getLogger()
logger.setLevel(logging.INFO)

RESOURCE_MARKER = "portfolio"
REPORT_THRESHOLD = 10

# Estimated monthly savings (USD), midpoint of the expected range
LIFECYCLE_SAVINGS = 22.5
TIERING_SAVINGS = 10
ON_DEMAND_SAVINGS = 15

PRIORITY_ORDER = {"HIGH": 0, "MEDIUM": 1, "LOW": 2}

s3 = boto3.client("s3")
dynamodb = boto3.client("dynamodb")
sns = boto3.client("sns")


def _recommendation(service, resource, issue, recommendation, savings, priority):
    return {
        "service": service,
        "resource": resource,
        "issue": issue,
        "recommendation": recommendation,
        "potentialSavings": savings,
        "priority": priority,
    }


def analyze_s3_storage():
    recommendations = []
    for bucket in s3.list_buckets().get("Buckets", []):
        name = bucket["Name"]
        if RESOURCE_MARKER not in name.lower():
            continue

        try:
            s3.get_bucket_lifecycle_configuration(Bucket=name)
        except ClientError as e:
            if e.response["Error"]["Code"] != "NoSuchLifecycleConfiguration":
                raise
            recommendations.append(_recommendation(
                "S3", name, "No lifecycle policy configured",
                "Add lifecycle policy: Standard -> IA (30d) -> Glacier (90d)",
                LIFECYCLE_SAVINGS, "HIGH",
            ))

        tiering = s3.list_bucket_intelligent_tiering_configurations(Bucket=name)
        if not tiering.get("IntelligentTieringConfigurationList"):
            recommendations.append(_recommendation(
                "S3", name, "Intelligent Tiering not enabled",
                "Enable S3 Intelligent Tiering for automatic cost optimization",
                TIERING_SAVINGS, "MEDIUM",
            ))
    return recommendations


def analyze_dynamodb_capacity():
    recommendations = []
    paginator = dynamodb.get_paginator("list_tables")
    for page in paginator.paginate():
        for table_name in page.get("TableNames", []):
            if RESOURCE_MARKER not in table_name.lower():
                continue
            table = dynamodb.describe_table(TableName=table_name)["Table"]
            billing_mode = table.get("BillingModeSummary", {}).get("BillingMode", "PROVISIONED")
            if billing_mode == "PROVISIONED":
                recommendations.append(_recommendation(
                    "DynamoDB", table_name, "Provisioned capacity billing",
                    "Switch to On-Demand billing for variable workloads",
                    ON_DEMAND_SAVINGS, "MEDIUM",
                ))
    return recommendations


def total_savings(recommendations):
    return sum(r["potentialSavings"] for r in recommendations)


def build_report(recommendations, now=None):
    now = now or datetime.now(timezone.utc)
    savings = total_savings(recommendations)
    ranked = sorted(recommendations, key=lambda r: PRIORITY_ORDER.get(r["priority"], 3))
    return {
        "summary": f"Cost Optimization Report - {now.date().isoformat()}",
        "totalRecommendations": len(recommendations),
        "potentialMonthlySavings": f"${savings:.2f}",
        "annualSavings": f"${savings * 12:.2f}",
        "topRecommendations": ranked[:5],
    }


def send_cost_report(topic_arn, recommendations):
    savings = total_savings(recommendations)
    sns.publish(
        TopicArn=topic_arn,
        Subject=f"Portfolio Cost Optimization - ${savings:.2f}/month savings available",
        Message=json.dumps(build_report(recommendations), indent=2),
    )


def handler(event, context):
    logger.info("Starting cost optimization analysis")
    topic_arn = os.environ.get("COST_ALERT_TOPIC_ARN")

    try:
        recommendations = analyze_s3_storage() + analyze_dynamodb_capacity()
        savings = total_savings(recommendations)
        logger.info("Found %d recommendations, $%.2f potential savings", len(recommendations), savings)

        if savings > REPORT_THRESHOLD and topic_arn:
            send_cost_report(topic_arn, recommendations)
    except ClientError:
        logger.exception("Cost optimization error")
        raise

    return {
        "statusCode": 200,
        "body": json.dumps({
            "recommendations": len(recommendations),
            "potentialSavings": savings,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }),
    }
