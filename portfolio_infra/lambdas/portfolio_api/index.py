"""Public read API for projects, carousel items and health."""

import json
import logging
import os
from datetime import datetime, timezone
from decimal import Decimal

import boto3
from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError

logger = logging.getLogger()
logger.setLevel(logging.INFO)

API_VERSION = "1.0.0"
CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization, X-Requested-With",
    "Access-Control-Max-Age": "86400",
}
CLIENT_ERRORS = {
    "ResourceNotFoundException": (404, "Resource not found"),
    "ValidationException": (400, "Invalid request parameters"),
    "ConditionalCheckFailedException": (409, "Resource already exists or condition failed"),
}

dynamodb = boto3.resource("dynamodb")


class NotFound(Exception):
    pass


def _json_default(value):
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def response(status, body):
    return {
        "statusCode": status,
        "headers": {**CORS_HEADERS, "Content-Type": "application/json"},
        "body": json.dumps(body, default=_json_default),
    }


def error_response(status, message):
    logger.error("API error %s: %s", status, message)
    return response(status, {"error": message})


def path_parts(event):
    """Route segments with the ``api`` prefix removed, e.g. ``["projects", "abc"]``."""
    proxy = (event.get("pathParameters") or {}).get("proxy")
    path = proxy if proxy is not None else event.get("path") or ""
    parts = [p for p in path.split("/") if p]
    if parts and parts[0] == "api":
        parts = parts[1:]
    return parts


def published_projects(table):
    items = table.query(
        IndexName="GSI1",
        KeyConditionExpression=Key("GSI1PK").eq("PROJECT#STATUS#published"),
        ScanIndexForward=False,
    ).get("Items", [])
    return [item for item in items if item.get("IsVisible")]


def projects_by_category(table, category):
    return table.query(
        IndexName="GSI2",
        KeyConditionExpression=Key("GSI2PK").eq(f"PROJECT#CATEGORY#{category}"),
        FilterExpression=Attr("Status").eq("published") & Attr("IsVisible").eq(True),
        ScanIndexForward=False,
    ).get("Items", [])


def project_by_id(table, project_id):
    items = table.query(KeyConditionExpression=Key("PK").eq(f"PROJECT#{project_id}")).get("Items", [])
    project = next((i for i in items if i.get("EntityType") == "Project"), None)
    if project is None:
        raise NotFound("Project not found")
    images = sorted(
        (i for i in items if i.get("EntityType") == "Image"),
        key=lambda i: i.get("SortOrder", 0),
    )
    return {**project, "images": images}


def active_carousel(table):
    items = table.query(
        IndexName="GSI1",
        KeyConditionExpression=Key("GSI1PK").eq("CAROUSEL#STATUS#active"),
        FilterExpression=Attr("IsVisible").eq(True),
    ).get("Items", [])
    return sorted(items, key=lambda i: i.get("Position", 0))


def health():
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": API_VERSION,
    }


def route(event, table):
    method = event.get("httpMethod")
    if method == "OPTIONS":
        return response(200, {})

    parts = path_parts(event)
    resource = parts[0] if parts else None
    item_id = parts[1] if len(parts) > 1 else None
    query = event.get("queryStringParameters") or {}

    if method == "GET":
        if resource == "projects" and item_id is None:
            category = query.get("category")
            if category:
                return response(200, projects_by_category(table, category))
            return response(200, published_projects(table))
        if resource == "projects" and len(parts) == 2:
            return response(200, project_by_id(table, item_id))
        if resource == "carousel" and item_id is None:
            return response(200, active_carousel(table))
        if resource == "health":
            return response(200, health())

    return error_response(404, "Endpoint not found")


def handler(event, context):
    logger.info("%s %s", event.get("httpMethod"), event.get("path"))
    try:
        return route(event, dynamodb.Table(os.environ["TABLE_NAME"]))
    except NotFound as e:
        return error_response(404, str(e))
    except ClientError as e:
        code = e.response["Error"]["Code"]
        logger.exception("DynamoDB error: %s", code)
        status, message = CLIENT_ERRORS.get(code, (500, "Internal server error"))
        return error_response(status, message)
