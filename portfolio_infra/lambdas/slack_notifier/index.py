import json
import logging
import os
from datetime import datetime, timezone

import urllib3

logger = logging.getLogger()
logger.setLevel(logging.INFO)

http = urllib3.PoolManager()


def slack_message(message, environment):
    return {
        "text": f"Security Alert - {environment}",
        "attachments": [{
            "color": "danger",
            "fields": [
                {"title": "Environment", "value": environment, "short": True},
                {
                    "title": "Timestamp",
                    "value": message.get("timestamp") or datetime.now(timezone.utc).isoformat(),
                    "short": True,
                },
                {"title": "Details", "value": json.dumps(message, indent=2), "short": False},
            ],
        }],
    }


def parse_sns_message(record):
    raw = record["Sns"]["Message"]
    try:
        return json.loads(raw)
    except ValueError:
        # CloudWatch alarm text and other plain messages
        return {"message": raw}


def handler(event, context):
    environment = os.environ.get("ENVIRONMENT", "staging")
    webhook_url = os.environ["SLACK_WEBHOOK_URL"]

    status = None
    for record in event.get("Records", []):
        body = slack_message(parse_sns_message(record), environment)
        response = http.request(
            "POST",
            webhook_url,
            body=json.dumps(body).encode("utf-8"),
            headers={"Content-Type": "application/json"},
        )
        status = response.status
        if status >= 400:
            logger.error("Slack webhook returned %s", status)
        else:
            logger.info("Slack notification sent")

    return {"statusCode": status}
