import json
import logging
import os
from datetime import datetime, timezone

import boto3
from botocore.exceptions import ClientError

logger = logging.getLogger()
logger.setLevel(logging.INFO)

s3 = boto3.client("s3")

ALLOWED_BOTS = ("Googlebot", "Bingbot", "facebookexternalhit", "Twitterbot")
BLOCKED_BOTS = ("AhrefsBot", "MJ12bot", "DotBot")
PRIVATE_PATHS = ("/admin/", "/api/", "/_next/", "/static/")


def robots_txt(environment, site_url):
    if environment != "production":
        return "\n".join([
            "User-agent: *",
            "Disallow: /",
            "",
            f"# This is a {environment} environment",
            "# Please do not index this site",
        ])

    lines = [
        "User-agent: *",
        "Allow: /",
        "",
        "# Sitemaps",
        f"Sitemap: {site_url}/sitemap.xml",
        "",
        "Crawl-delay: 1",
        "",
    ]
    lines += [f"Disallow: {path}" for path in PRIVATE_PATHS]
    for bot in ALLOWED_BOTS:
        lines += ["", f"User-agent: {bot}", "Allow: /"]
    for bot in BLOCKED_BOTS:
        lines += ["", f"User-agent: {bot}", "Disallow: /"]
    return "\n".join(lines)


def handler(event, context):
    environment = os.environ.get("ENVIRONMENT", "production")
    logger.info("Generating robots.txt for %s environment", environment)

    try:
        s3.put_object(
            Bucket=os.environ["BUCKET_NAME"],
            Key="robots.txt",
            Body=robots_txt(environment, os.environ.get("SITE_URL", "")),
            ContentType="text/plain",
            CacheControl="public, max-age=86400",
        )
    except ClientError as e:
        logger.exception("Error generating robots.txt")
        return {
            "statusCode": 500,
            "headers": {"Content-Type": "application/json"},
            "body": json.dumps({"error": "Failed to generate robots.txt", "message": str(e)}),
        }

    return {
        "statusCode": 200,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps({
            "success": True,
            "environment": environment,
            "lastGenerated": datetime.now(timezone.utc).isoformat(),
        }),
    }
