"""
On-the-fly image resizing behind a Lambda function URL.

Query parameters: ``w``, ``h`` (pixels), ``q`` (quality), ``f`` (format or
``auto``), ``fit`` (cover, contain, fill, inside, outside) and ``auto``
(negotiate AVIF/WebP from the Accept header). Results are cached in the
processed bucket under a key derived from the parameters.
"""

import base64
import io
import json
import logging
import os

import boto3
from botocore.exceptions import ClientError
from PIL import Image, ImageOps

logger = logging.getLogger()
logger.setLevel(logging.INFO)

FORMATS = {
    "webp": "image/webp",
    "avif": "image/avif",
    "jpeg": "image/jpeg",
    "jpg": "image/jpeg",
    "png": "image/png",
}
FIT_MODES = ("cover", "contain", "fill", "inside", "outside")
CACHE_CONTROL = "public, max-age=31536000, immutable"

MAX_WIDTH = int(os.environ.get("MAX_WIDTH", "2048"))
MAX_HEIGHT = int(os.environ.get("MAX_HEIGHT", "2048"))
DEFAULT_QUALITY = int(os.environ.get("QUALITY", "85"))
ENABLE_WEBP = os.environ.get("ENABLE_WEBP", "true") == "true"
ENABLE_AVIF = os.environ.get("ENABLE_AVIF", "true") == "true"

s3 = boto3.client("s3")


def _int_param(value, default=None):
    try:
        return int(value) if value not in (None, "") else default
    except ValueError:
        return default


def parse_params(query):
    query = query or {}
    fit = query.get("fit", "cover")
    return {
        "width": _int_param(query.get("w")),
        "height": _int_param(query.get("h")),
        "quality": _int_param(query.get("q"), DEFAULT_QUALITY),
        "format": (query.get("f") or "auto").lower(),
        "fit": fit if fit in FIT_MODES else "cover",
        "auto": query.get("auto") in ("true", "1"),
    }


def avif_supported():
    Image.init()
    return "AVIF" in Image.SAVE


def determine_format(accept, requested, auto, webp=ENABLE_WEBP, avif=ENABLE_AVIF):
    if requested and requested != "auto" and requested in FORMATS:
        return requested
    if auto and accept:
        if avif and "image/avif" in accept:
            return "avif"
        if webp and "image/webp" in accept:
            return "webp"
    return "jpeg"


def cache_key(key, params, fmt):
    dimensions = "x".join(str(d) for d in (params["width"], params["height"]) if d)
    return f"processed/{key}/{dimensions}_q{params['quality']}_{params['fit']}.{fmt}"


def clamp(params):
    width, height = params["width"], params["height"]
    if width and width > MAX_WIDTH:
        width = MAX_WIDTH
    if height and height > MAX_HEIGHT:
        height = MAX_HEIGHT
    return width, height


def target_size(original, width, height, fit):
    """Output size for a resize; never enlarges the source image."""
    orig_w, orig_h = original
    if not width and not height:
        return original
    if not width or not height:
        scale = (width / orig_w) if width else (height / orig_h)
        scale = min(scale, 1)
        return max(1, round(orig_w * scale)), max(1, round(orig_h * scale))

    if fit in ("inside", "outside"):
        pick = min if fit == "inside" else max
        scale = min(pick(width / orig_w, height / orig_h), 1)
        return max(1, round(orig_w * scale)), max(1, round(orig_h * scale))

    if width >= orig_w and height >= orig_h:
        return original
    return min(width, orig_w), min(height, orig_h)


def process_image(data, params, fmt):
    image = Image.open(io.BytesIO(data))
    image = ImageOps.exif_transpose(image)
    width, height = clamp(params)
    size = target_size(image.size, width, height, params["fit"])

    if size != image.size:
        if params["fit"] == "cover" and width and height:
            image = ImageOps.fit(image, size, method=Image.LANCZOS)
        elif params["fit"] == "contain" and width and height:
            image = ImageOps.pad(image, size, method=Image.LANCZOS)
        else:
            image = image.resize(size, Image.LANCZOS)

    out = io.BytesIO()
    quality = params["quality"]
    if fmt in ("jpeg", "jpg"):
        image.convert("RGB").save(out, "JPEG", quality=quality, progressive=True, optimize=True)
    elif fmt == "png":
        image.save(out, "PNG", optimize=True, compress_level=9)
    elif fmt == "webp":
        image.save(out, "WEBP", quality=quality, method=4)
    elif fmt == "avif":
        image.save(out, "AVIF", quality=quality)
    return out.getvalue()


def _image_response(body, fmt, processed=False):
    headers = {
        "Content-Type": FORMATS[fmt],
        "Cache-Control": CACHE_CONTROL,
        "Content-Length": str(len(body)),
    }
    if processed:
        headers["X-Image-Processed"] = "true"
    return {
        "statusCode": 200,
        "headers": headers,
        "body": base64.b64encode(body).decode("ascii"),
        "isBase64Encoded": True,
    }


def _error(status, message):
    return {
        "statusCode": status,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps({"error": message}),
    }


def handler(event, context):
    source_bucket = os.environ["SOURCE_BUCKET"]
    processed_bucket = os.environ["PROCESSED_BUCKET"]

    path = event.get("rawPath") or (event.get("pathParameters") or {}).get("proxy") or ""
    key = path.lstrip("/")
    if not key:
        return _error(400, "Image path required")

    params = parse_params(event.get("queryStringParameters"))
    headers = event.get("headers") or {}
    accept = headers.get("accept") or headers.get("Accept") or ""
    fmt = determine_format(accept, params["format"], params["auto"])
    if fmt == "avif" and not avif_supported():
        fmt = "webp" if ENABLE_WEBP else "jpeg"
    processed_key = cache_key(key, params, fmt)

    try:
        cached = s3.get_object(Bucket=processed_bucket, Key=processed_key)
        logger.info("Serving cached image: %s", processed_key)
        return _image_response(cached["Body"].read(), fmt)
    except ClientError as e:
        logger.info("Image not cached (%s), processing: %s", e.response["Error"]["Code"], key)

    try:
        original = s3.get_object(Bucket=source_bucket, Key=key)["Body"].read()
        body = process_image(original, params, fmt)
        s3.put_object(
            Bucket=processed_bucket,
            Key=processed_key,
            Body=body,
            ContentType=FORMATS[fmt],
            CacheControl=CACHE_CONTROL,
        )
    except ClientError as e:
        if e.response["Error"]["Code"] in ("NoSuchKey", "404"):
            return _error(404, "Image not found")
        logger.exception("Error processing image")
        return _error(500, "Internal server error")
    except (OSError, ValueError):
        # Pillow raises these for unreadable or unsupported images
        logger.exception("Error processing image")
        return _error(500, "Internal server error")

    logger.info("Processed and cached image: %s", processed_key)
    return _image_response(body, fmt, processed=True)
