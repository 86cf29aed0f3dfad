"""Classifies WAF log events delivered through a CloudWatch Logs subscription."""

import base64
import gzip
import json
import logging
import os
from datetime import datetime, timezone

import boto3

logger = logging.getLogger()
logger.setLevel(logging.INFO)

BLOCK_MARKERS = ("BLOCK", "RATE_LIMIT")
ATTACK_MARKERS = ("SQL", "XSS", "injection")

sns = boto3.client("sns")


def decode_log_events(event):
    if "awslogs" not in event:
        return []
    payload = json.loads(gzip.decompress(base64.b64decode(event["awslogs"]["data"])))
    return payload.get("logEvents", [])


def rule_fields(record):
    """Fields of a WAF log record that name the rule which decided the request."""
    fields = [record.get("action") or "", record.get("terminatingRuleId") or ""]
    for detail in record.get("terminatingRuleMatchDetails") or []:
        fields.append(detail.get("conditionType") or "")
    return [field.upper() for field in fields]


def classify(log_event):
    message = log_event["message"]
    timestamp = datetime.fromtimestamp(log_event["timestamp"] / 1000, tz=timezone.utc).isoformat()
    try:
        record = json.loads(message)
    except ValueError:
        logger.warning("Skipping non-JSON WAF log line")
        return []

    fields = rule_fields(record)
    alerts = []
    if any(marker in field for marker in BLOCK_MARKERS for field in fields):
        alerts.append({"type": "WAF_BLOCK", "timestamp": timestamp, "message": message, "severity": "MEDIUM"})
    if any(marker.upper() in field for marker in ATTACK_MARKERS for field in fields):
        alerts.append({"type": "ATTACK_ATTEMPT", "timestamp": timestamp, "message": message, "severity": "HIGH"})
    return alerts


def handler(event, context):
    alerts = []
    for log_event in decode_log_events(event):
        alerts.extend(classify(log_event))

    topic_arn = os.environ["ALERT_TOPIC_ARN"]
    for alert in alerts:
        if alert["severity"] != "HIGH":
            continue
        sns.publish(
            TopicArn=topic_arn,
            Subject=f"Security Alert: {alert['type']}",
            Message=json.dumps(alert, indent=2),
        )

    logger.info("Processed %d security alerts", len(alerts))
    return {"processedEvents": len(alerts)}
