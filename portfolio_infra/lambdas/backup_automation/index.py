"""
Daily backup run for the portfolio data.

Steps: DynamoDB on-demand backup, S3 replication check, configuration
metadata export, retention cleanup and run metadata. A failed step is
recorded and the run keeps going; an unexpected error notifies the backup
alerts topic and is re-raised so the Lambda error alarm fires.
"""

import json
import logging
import os
import traceback
from datetime import datetime, timedelta, timezone

import boto3
from botocore.exceptions import ClientError

logger = logging.getLogger()
logger.setLevel(logging.INFO)

DYNAMODB_RETENTION_DAYS = 30
CONFIG_RETENTION_DAYS = 90
CLEANUP_PREFIXES = ("config-backups", "config-metadata")

dynamodb = boto3.client("dynamodb")
s3 = boto3.client("s3")
ssm = boto3.client("ssm")
sns = boto3.client("sns")


def _now():
    return datetime.now(timezone.utc)


def _put_json(bucket, key, body):
    s3.put_object(
        Bucket=bucket,
        Key=key,
        Body=json.dumps(body, indent=2, default=str),
        ServerSideEncryption="AES256",
        ContentType="application/json",
    )


def backup_name(table_name, environment, now=None):
    stamp = (now or _now()).strftime("%Y-%m-%dT%H-%M-%S")
    # DynamoDB backup names allow [a-zA-Z0-9_.-] and 255 chars
    return f"{table_name}-{environment}-{stamp}"[:255]


def create_dynamodb_backup(table_name, environment):
    logger.info("Creating DynamoDB backup for %s", table_name)
    name = backup_name(table_name, environment)
    try:
        response = dynamodb.create_backup(TableName=table_name, BackupName=name)
    except ClientError as e:
        logger.error("DynamoDB backup failed: %s", e)
        return {"service": "DynamoDB", "status": "FAILED", "error": str(e)}

    details = response["BackupDetails"]
    logger.info("DynamoDB backup created: %s", details["BackupArn"])
    return {
        "service": "DynamoDB",
        "status": "SUCCESS",
        "backupArn": details["BackupArn"],
        "backupName": name,
        "size": details.get("BackupSizeBytes", 0),
    }


def verify_s3_replication(bucket):
    logger.info("Verifying S3 replication on %s", bucket)
    try:
        config = s3.get_bucket_replication(Bucket=bucket)
    except ClientError as e:
        logger.error("S3 replication verification failed: %s", e)
        return {"service": "S3-Replication", "status": "FAILED", "error": str(e)}

    try:
        s3.get_bucket_metrics_configuration(Bucket=bucket, Id="ReplicationMetrics")
        metrics_enabled = True
    except ClientError:
        metrics_enabled = False

    return {
        "service": "S3-Replication",
        "status": "SUCCESS",
        "rules": len(config["ReplicationConfiguration"].get("Rules", [])),
        "metricsEnabled": metrics_enabled,
    }


def list_parameters(path):
    parameters = []
    paginator = ssm.get_paginator("get_parameters_by_path")
    for page in paginator.paginate(Path=path, Recursive=True, WithDecryption=False):
        parameters.extend(page.get("Parameters", []))
    return parameters


def export_configuration(bucket, environment):
    """Store parameter names, types and versions. Values never leave SSM."""
    logger.info("Exporting configuration for %s", environment)
    now = _now()
    try:
        parameters = list_parameters(f"/portfolio/{environment}/")
        export = {
            "timestamp": now.isoformat(),
            "environment": environment,
            "parameterCount": len(parameters),
            "parameters": [
                {
                    "name": p["Name"],
                    "type": p.get("Type"),
                    "lastModified": p.get("LastModifiedDate"),
                    "version": p.get("Version"),
                }
                for p in parameters
            ],
        }
        key = f"config-metadata/{environment}/{now.date().isoformat()}.json"
        _put_json(bucket, key, export)
    except ClientError as e:
        logger.error("Configuration export failed: %s", e)
        return {"service": "Configuration", "status": "FAILED", "error": str(e)}

    return {
        "service": "Configuration",
        "status": "SUCCESS",
        "backupKey": key,
        "parameterCount": len(parameters),
    }


def list_expired_backups(table_name, upper_bound):
    summaries = []
    kwargs = {"TableName": table_name, "TimeRangeUpperBound": upper_bound}
    while True:
        response = dynamodb.list_backups(**kwargs)
        summaries.extend(response.get("BackupSummaries", []))
        if "LastEvaluatedBackupArn" not in response:
            return summaries
        kwargs["ExclusiveStartBackupArn"] = response["LastEvaluatedBackupArn"]


def cleanup_old_backups(table_name, bucket, environment, now=None):
    logger.info("Cleaning up old backups")
    now = now or _now()
    results = {"dynamodbCleaned": 0, "s3Cleaned": 0}

    try:
        upper_bound = now - timedelta(days=DYNAMODB_RETENTION_DAYS)
        for backup in list_expired_backups(table_name, upper_bound):
            if environment not in backup["BackupName"]:
                continue
            try:
                dynamodb.delete_backup(BackupArn=backup["BackupArn"])
                results["dynamodbCleaned"] += 1
                logger.info("Deleted old backup: %s", backup["BackupName"])
            except ClientError as e:
                logger.error("Failed to delete backup %s: %s", backup["BackupName"], e)

        cutoff = now - timedelta(days=CONFIG_RETENTION_DAYS)
        paginator = s3.get_paginator("list_objects_v2")
        for prefix in CLEANUP_PREFIXES:
            for page in paginator.paginate(Bucket=bucket, Prefix=f"{prefix}/{environment}/"):
                for obj in page.get("Contents", []):
                    if obj["LastModified"] >= cutoff:
                        continue
                    try:
                        s3.delete_object(Bucket=bucket, Key=obj["Key"])
                        results["s3Cleaned"] += 1
                        logger.info("Deleted old S3 backup: %s", obj["Key"])
                    except ClientError as e:
                        logger.error("Failed to delete S3 object %s: %s", obj["Key"], e)
    except ClientError as e:
        logger.error("Cleanup failed: %s", e)
        results["error"] = str(e)

    return results


def store_backup_metadata(bucket, environment, results):
    key = f"backup-metadata/{environment}/{_now().date().isoformat()}.json"
    try:
        _put_json(bucket, key, results)
        logger.info("Backup metadata stored: %s", key)
    except ClientError as e:
        logger.error("Failed to store backup metadata: %s", e)
    return key


def send_failure_notification(environment, error):
    try:
        param = ssm.get_parameter(Name=f"/portfolio/{environment}/sns/backup-alerts-topic")
    except ClientError:
        logger.info("No SNS topic configured for notifications")
        return False

    message = {
        "timestamp": _now().isoformat(),
        "environment": environment,
        "error": str(error),
        "stack": traceback.format_exc(),
    }
    try:
        sns.publish(
            TopicArn=param["Parameter"]["Value"],
            Subject=f"Backup Failed - Portfolio {environment}",
            Message=json.dumps(message, indent=2),
        )
    except ClientError as e:
        logger.error("Failed to send notification: %s", e)
        return False
    logger.info("Failure notification sent")
    return True


def handler(event, context):
    logger.info("Starting backup process: %s", json.dumps(event))
    table_name = os.environ["PRIMARY_TABLE_NAME"]
    bucket = os.environ["BACKUP_BUCKET_NAME"]
    environment = os.environ.get("ENVIRONMENT", "staging")

    try:
        results = {
            "timestamp": _now().isoformat(),
            "environment": environment,
            "backups": [
                create_dynamodb_backup(table_name, environment),
                verify_s3_replication(bucket),
                export_configuration(bucket, environment),
            ],
        }
        results["cleanup"] = cleanup_old_backups(table_name, bucket, environment)
        store_backup_metadata(bucket, environment, results)
    except Exception as e:
        logger.exception("Backup process failed")
        send_failure_notification(environment, e)
        raise

    logger.info("Backup process completed: %s", json.dumps(results, default=str))
    return {
        "statusCode": 200,
        "body": json.dumps({"success": True, "results": results}, default=str),
    }
