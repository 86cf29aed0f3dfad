"""
Meta tags and schema.org JSON-LD for portfolio pages.

``GET /seo/meta/{proxy+}`` where proxy is ``home`` (or empty), ``projects``,
``projects/<id>`` or any other page path.
"""

import json
import logging
import os
from collections import Counter
from decimal import Decimal

import boto3
from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError

logger = logging.getLogger()
logger.setLevel(logging.INFO)

SITE_NAME = "Photography Portfolio"
SITE_DESCRIPTION = "Professional photography portfolio showcasing stunning visual stories"
AUTHOR = {"@type": "Person", "name": "Professional Photographer"}
SCHEMA = "https://schema.org"

dynamodb = boto3.resource("dynamodb")


class ProjectNotFound(Exception):
    pass


def _json_default(value):
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _visible_by_status(table, status, limit=None):
    kwargs = {
        "IndexName": "GSI1",
        "KeyConditionExpression": Key("GSI1PK").eq(status),
        "FilterExpression": Attr("IsVisible").eq(True),
    }
    if limit:
        kwargs["Limit"] = limit
    return table.query(**kwargs).get("Items", [])


def _unique(values):
    return list(dict.fromkeys(v for v in values if v))


def top_tags(tags, limit):
    return [tag for tag, _ in Counter(tags).most_common(limit)]


def og_image(image_domain, site_url, path):
    if path:
        return f"{image_domain}/{path}?w=1200&h=630&fit=cover&f=webp"
    return f"{site_url}/og-image.jpg"


def home_seo(table, site_url, image_domain):
    projects = _visible_by_status(table, "PROJECT#STATUS#published", limit=6)
    carousel = _visible_by_status(table, "CAROUSEL#STATUS#active")

    categories = _unique(p.get("Category") for p in projects)
    tags = top_tags([t for p in projects for t in p.get("Tags", [])], 10)
    cover = carousel[0].get("ImagePath") if carousel else None

    return {
        "meta": {
            "title": "Professional Photography Portfolio - Capturing Life's Beautiful Moments",
            "description": f"Award-winning photographer specializing in {', '.join(categories)}. "
                           f"Explore stunning visual stories and artistic photography showcasing "
                           f"{len(projects)} unique projects.",
            "keywords": ["photography", "portfolio", "professional photographer", *categories, *tags],
            "canonical": site_url,
            "ogImage": og_image(image_domain, site_url, cover),
            "ogType": "website",
        },
        "structuredData": [
            {
                "@context": SCHEMA,
                "@type": "WebSite",
                "name": SITE_NAME,
                "url": site_url,
                "description": SITE_DESCRIPTION,
                "potentialAction": {
                    "@type": "SearchAction",
                    "target": f"{site_url}/search?q={{search_term_string}}",
                    "query-input": "required name=search_term_string",
                },
            },
            {
                "@context": SCHEMA,
                "@type": "Organization",
                "name": SITE_NAME,
                "url": site_url,
                "logo": f"{site_url}/logo.png",
            },
            {
                "@context": SCHEMA,
                "@type": "ImageGallery",
                "name": f"{SITE_NAME} Gallery",
                "description": f"Professional photography collection featuring {len(projects)} projects",
                "numberOfItems": len(projects),
                "image": [
                    {
                        "@type": "ImageObject",
                        "url": f"{image_domain}/{p.get('FeaturedImage')}?w=800&f=webp",
                        "name": p.get("Title"),
                        "description": p.get("Title"),
                    }
                    for p in projects[:6]
                ],
            },
        ],
    }


def projects_list_seo(table, site_url, image_domain):
    projects = _visible_by_status(table, "PROJECT#STATUS#published")
    categories = _unique(p.get("Category") for p in projects)
    featured = projects[0].get("FeaturedImage") if projects else None

    return {
        "meta": {
            "title": f"Photography Projects - {len(projects)} Professional Collections",
            "description": f"Browse {len(projects)} professional photography projects spanning "
                           f"{', '.join(categories)}.",
            "keywords": ["photography projects", "photo collections", "portfolio", *categories],
            "canonical": f"{site_url}/projects",
            "ogImage": og_image(image_domain, site_url, featured),
            "ogType": "website",
        },
        "structuredData": [{
            "@context": SCHEMA,
            "@type": "CollectionPage",
            "name": "Photography Projects",
            "description": f"Collection of {len(projects)} professional photography projects",
            "url": f"{site_url}/projects",
            "mainEntity": {
                "@type": "ItemList",
                "numberOfItems": len(projects),
                "itemListElement": [
                    {
                        "@type": "CreativeWork",
                        "position": position,
                        "name": p.get("Title"),
                        "description": p.get("Description"),
                        "url": f"{site_url}/projects/{p.get('ProjectId')}",
                        "image": f"{image_domain}/{p.get('FeaturedImage')}?w=800&f=webp",
                        "datePublished": p.get("PublishedAt"),
                        "author": AUTHOR,
                    }
                    for position, p in enumerate(projects, start=1)
                ],
            },
        }],
    }


def project_seo(table, project_id, site_url, image_domain):
    items = table.query(KeyConditionExpression=Key("PK").eq(f"PROJECT#{project_id}")).get("Items", [])
    project = next((i for i in items if i.get("EntityType") == "Project"), None)
    if project is None:
        raise ProjectNotFound(project_id)
    images = [i for i in items if i.get("EntityType") == "Image" and i.get("IsVisible")]

    title = project.get("Title")
    category = project.get("Category")
    location = project.get("Location")
    url = f"{site_url}/projects/{project_id}"
    keywords = ["photography", category, *project.get("Tags", []), *([location] if location else [])]
    keywords = [k for k in keywords if k]

    creative_work = {
        "@context": SCHEMA,
        "@type": "CreativeWork",
        "name": title,
        "description": project.get("Description"),
        "url": url,
        "author": AUTHOR,
        "datePublished": project.get("PublishedAt"),
        "dateModified": project.get("UpdatedAt"),
        "keywords": ", ".join(keywords),
        "genre": category,
        "image": [
            {
                "@type": "ImageObject",
                "url": f"{image_domain}/{img.get('FilePath')}?w=800&f=webp",
                "description": img.get("Title") or img.get("Description"),
                "width": (img.get("Dimensions") or {}).get("width"),
                "height": (img.get("Dimensions") or {}).get("height"),
            }
            for img in images
        ],
    }
    if location:
        creative_work["contentLocation"] = {"@type": "Place", "name": location}

    return {
        "meta": {
            "title": f"{title} - Professional Photography Project",
            "description": project.get("Description") or (
                f"Explore {title}, a stunning {category} photography collection featuring "
                f"{len(images)} carefully curated images."
            ),
            "keywords": keywords,
            "canonical": url,
            "ogImage": og_image(image_domain, site_url, project.get("FeaturedImage")),
            "ogType": "article",
            "publishedTime": project.get("PublishedAt"),
            "modifiedTime": project.get("UpdatedAt"),
        },
        "structuredData": [
            creative_work,
            {
                "@context": SCHEMA,
                "@type": "BreadcrumbList",
                "itemListElement": [
                    {"@type": "ListItem", "position": 1, "name": "Home", "item": site_url},
                    {"@type": "ListItem", "position": 2, "name": "Projects", "item": f"{site_url}/projects"},
                    {"@type": "ListItem", "position": 3, "name": title, "item": url},
                ],
            },
        ],
    }


def default_seo(path, site_url):
    title = path.rstrip("/").split("/")[-1].replace("-", " ").title() or "Page"
    return {
        "meta": {
            "title": f"{title} - {SITE_NAME}",
            "description": SITE_DESCRIPTION,
            "keywords": ["photography", "portfolio"],
            "canonical": f"{site_url}/{path}",
            "ogImage": f"{site_url}/og-image.jpg",
            "ogType": "website",
        },
        "structuredData": [],
    }


def generate(path, table, site_url, image_domain):
    if path in ("", "home"):
        return home_seo(table, site_url, image_domain)
    if path == "projects":
        return projects_list_seo(table, site_url, image_domain)
    if path.startswith("projects/"):
        return project_seo(table, path.split("/")[1], site_url, image_domain)
    return default_seo(path, site_url)


def _response(status, body, cache=False):
    headers = {"Content-Type": "application/json"}
    if cache:
        headers["Cache-Control"] = "public, max-age=3600"
    return {"statusCode": status, "headers": headers, "body": json.dumps(body, default=_json_default)}


def handler(event, context):
    path = (event.get("pathParameters") or {}).get("proxy") or ""
    logger.info("Generating SEO data for path: %s", path)

    try:
        data = generate(
            path,
            dynamodb.Table(os.environ["TABLE_NAME"]),
            os.environ.get("SITE_URL", ""),
            os.environ.get("IMAGE_DOMAIN", ""),
        )
    except ProjectNotFound as e:
        return _response(404, {"error": "Project not found", "projectId": str(e)})
    except ClientError as e:
        logger.exception("Error generating SEO data")
        return _response(500, {"error": "Failed to generate SEO data", "message": str(e)})

    return _response(200, data, cache=True)
