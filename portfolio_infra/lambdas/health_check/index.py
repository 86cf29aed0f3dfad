import json
import logging
import os
from datetime import datetime, timedelta, timezone

import boto3
from botocore.exceptions import ClientError

logger = logging.getLogger()
logger.setLevel(logging.INFO)

HEALTHY = "HEALTHY"
DEGRADED = "DEGRADED"
UNHEALTHY = "UNHEALTHY"

dynamodb = boto3.client("dynamodb")
s3 = boto3.client("s3")


def check_table(table_name):
    status = dynamodb.describe_table(TableName=table_name)["Table"]["TableStatus"]
    return {
        "service": "DynamoDB",
        "status": HEALTHY if status == "ACTIVE" else UNHEALTHY,
        "details": {"tableStatus": status},
    }


def check_bucket(bucket):
    s3.head_bucket(Bucket=bucket)
    return {"service": "S3", "status": HEALTHY, "details": {"bucket": bucket}}


def check_recent_backups(table_name, now):
    backups = dynamodb.list_backups(
        TableName=table_name,
        TimeRangeLowerBound=now - timedelta(hours=24),
    ).get("BackupSummaries", [])
    return {
        "service": "Backups",
        "status": HEALTHY if backups else UNHEALTHY,
        "details": {"recentBackups": len(backups)},
    }


def overall_status(checks):
    return HEALTHY if all(c["status"] == HEALTHY for c in checks) else DEGRADED


def handler(event, context):
    table_name = os.environ["TABLE_NAME"]
    bucket = os.environ["BUCKET_NAME"]
    now = datetime.now(timezone.utc)

    try:
        checks = [
            check_table(table_name),
            check_bucket(bucket),
            check_recent_backups(table_name, now),
        ]
    except ClientError as e:
        logger.error("Health check failed: %s", e)
        return {
            "statusCode": 500,
            "body": json.dumps({"overall": UNHEALTHY, "error": str(e), "timestamp": now.isoformat()}),
        }

    overall = overall_status(checks)
    logger.info("Health check result: %s", overall)
    return {
        "statusCode": 200,
        "body": json.dumps({"overall": overall, "checks": checks, "timestamp": now.isoformat()}),
    }
