import json
import logging
import os
from datetime import datetime, timezone

import boto3

logger = logging.getLogger()
logger.setLevel(logging.INFO)

ALERT_SEVERITIES = ("HIGH", "CRITICAL")
DESTRUCTIVE_ACTIONS = ("Delete", "Terminate")
# GuardDuty finding score floors, highest first
GUARDDUTY_SEVERITIES = ((9.0, "CRITICAL"), (7.0, "HIGH"), (4.0, "MEDIUM"))

sns = boto3.client("sns")


def finding_severity(score):
    for floor, severity in GUARDDUTY_SEVERITIES:
        if score >= floor:
            return severity
    return "LOW"


def determine_severity(event):
    detail = event.get("detail") or {}
    if event.get("source") == "aws.guardduty" and detail.get("severity") is not None:
        return finding_severity(float(detail["severity"]))
    event_name = detail.get("eventName") or ""
    if any(action in event_name for action in DESTRUCTIVE_ACTIONS):
        return "HIGH"
    if detail.get("errorCode") or detail.get("errorMessage"):
        return "MEDIUM"
    return "LOW"


def handler(event, context):
    logger.info("Security event received: %s", json.dumps(event))
    environment = os.environ.get("ENVIRONMENT", "staging")
    message = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": environment,
        "event": event,
        "severity": determine_severity(event),
        "source": event.get("source", "unknown"),
    }

    if message["severity"] in ALERT_SEVERITIES:
        sns.publish(
            TopicArn=os.environ["SNS_TOPIC_ARN"],
            Subject=f"Security Alert - {message['severity']} - Portfolio {environment}",
            Message=json.dumps(message, indent=2),
        )
        logger.info("Published %s security alert", message["severity"])

    return {"statusCode": 200, "severity": message["severity"]}
