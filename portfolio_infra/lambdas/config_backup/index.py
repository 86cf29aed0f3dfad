import json
import logging
import os
from datetime import datetime, timezone

import boto3

logger = logging.getLogger()
logger.setLevel(logging.INFO)

ssm = boto3.client("ssm")
s3 = boto3.client("s3")


def handler(event, context):
    environment = os.environ["ENVIRONMENT"]
    bucket = os.environ["BACKUP_BUCKET"]
    now = datetime.now(timezone.utc)

    parameters = []
    paginator = ssm.get_paginator("get_parameters_by_path")
    for page in paginator.paginate(Path=f"/portfolio/{environment}/", Recursive=True, WithDecryption=False):
        parameters.extend(page.get("Parameters", []))

    backup = {
        "timestamp": now.isoformat(),
        "environment": environment,
        "parameters": parameters,
    }
    key = f"config-backups/{environment}/{now.date().isoformat()}.json"
    s3.put_object(
        Bucket=bucket,
        Key=key,
        Body=json.dumps(backup, indent=2, default=str),
        ServerSideEncryption="AES256",
        ContentType="application/json",
    )

    logger.info("Configuration backup completed: %s (%d parameters)", key, len(parameters))
    return {"statusCode": 200, "body": json.dumps({"key": key, "parameterCount": len(parameters)})}
