"""Writes sitemap.xml (and a sitemap index for large sites) to the site bucket."""

import json
import logging
import os
from datetime import datetime, timezone
from xml.sax.saxutils import escape

import boto3
from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError

logger = logging.getLogger()
logger.setLevel(logging.INFO)

SITEMAP_NS = "http://www.sitemaps.org/schemas/sitemap/0.9"
INDEX_THRESHOLD = 1000

STATIC_PAGES = [
    {"url": "", "priority": "1.0", "changefreq": "weekly"},
    {"url": "/projects", "priority": "0.9", "changefreq": "daily"},
    {"url": "/about", "priority": "0.8", "changefreq": "monthly"},
    {"url": "/contact", "priority": "0.8", "changefreq": "monthly"},
]

dynamodb = boto3.resource("dynamodb")
s3 = boto3.client("s3")


def published_projects(table):
    """All published, visible projects from GSI1, following pagination."""
    kwargs = {
        "IndexName": "GSI1",
        "KeyConditionExpression": Key("GSI1PK").eq("PROJECT#STATUS#published"),
        "FilterExpression": Attr("IsVisible").eq(True),
    }
    items = []
    while True:
        result = table.query(**kwargs)
        items.extend(result.get("Items", []))
        if "LastEvaluatedKey" not in result:
            return items
        kwargs["ExclusiveStartKey"] = result["LastEvaluatedKey"]


def project_pages(projects):
    return [
        {
            "url": f"/projects/{p['ProjectId']}",
            "priority": "0.8",
            "changefreq": "weekly",
            "lastmod": p.get("UpdatedAt") or p.get("CreatedAt"),
        }
        for p in projects
    ]


def sitemap_xml(site_url, pages):
    entries = []
    for page in pages:
        parts = [f"    <loc>{escape(site_url + page['url'])}</loc>"]
        if page.get("lastmod"):
            parts.append(f"    <lastmod>{page['lastmod']}</lastmod>")
        parts.append(f"    <changefreq>{page['changefreq']}</changefreq>")
        parts.append(f"    <priority>{page['priority']}</priority>")
        entries.append("  <url>\n" + "\n".join(parts) + "\n  </url>")
    return "\n".join([
        '<?xml version="1.0" encoding="UTF-8"?>',
        f'<urlset xmlns="{SITEMAP_NS}">',
        *entries,
        "</urlset>",
    ])


def sitemap_index_xml(site_url, now):
    return "\n".join([
        '<?xml version="1.0" encoding="UTF-8"?>',
        f'<sitemapindex xmlns="{SITEMAP_NS}">',
        "  <sitemap>",
        f"    <loc>{escape(site_url)}/sitemap.xml</loc>",
        f"    <lastmod>{now.isoformat()}</lastmod>",
        "  </sitemap>",
        "</sitemapindex>",
    ])


def _put_xml(bucket, key, body):
    s3.put_object(
        Bucket=bucket,
        Key=key,
        Body=body,
        ContentType="application/xml",
        CacheControl="public, max-age=3600",
    )


def handler(event, context):
    bucket = os.environ["BUCKET_NAME"]
    site_url = os.environ.get("SITE_URL", "")
    now = datetime.now(timezone.utc)
    logger.info("Generating sitemap")

    try:
        projects = published_projects(dynamodb.Table(os.environ["TABLE_NAME"]))
        pages = STATIC_PAGES + project_pages(projects)
        _put_xml(bucket, "sitemap.xml", sitemap_xml(site_url, pages))
        if len(projects) > INDEX_THRESHOLD:
            _put_xml(bucket, "sitemap-index.xml", sitemap_index_xml(site_url, now))
    except ClientError as e:
        logger.exception("Error generating sitemap")
        return {
            "statusCode": 500,
            "headers": {"Content-Type": "application/json"},
            "body": json.dumps({"error": "Failed to generate sitemap", "message": str(e)}),
        }

    logger.info("Sitemap generated with %d URLs", len(pages))
    return {
        "statusCode": 200,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps({
            "success": True,
            "urlCount": len(pages),
            "lastGenerated": now.isoformat(),
        }),
    }
