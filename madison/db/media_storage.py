"""Supabase Storage uploads for generated media."""

import asyncio
import base64
import time
import uuid

from madison.config.logger import app_logger
from madison.config.settings import settings
from madison.utils.supabase_client import get_supabase_admin_client


MIME_EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/webp": "webp",
}


def storage_path(organization_id: str, mime_type: str = "image/png") -> str:
    extension = MIME_EXTENSIONS.get(mime_type, "png")
    return f"{organization_id}/{int(time.time() * 1000)}-{uuid.uuid4()}.{extension}"


def _upload(bucket: str, path: str, content: bytes, mime_type: str) -> str:
    client = get_supabase_admin_client()
    storage = client.storage.from_(bucket)
    storage.upload(path, content, {"content-type": mime_type})
    return storage.get_public_url(path)


async def upload_generated_image(organization_id: str, image_base64: str, mime_type: str = "image/png") -> str:
    """Upload a base64 image and return its public URL."""
    content = base64.b64decode(image_base64)
    path = storage_path(organization_id, mime_type)
    try:
        url = await asyncio.to_thread(_upload, settings.GENERATED_IMAGES_BUCKET, path, content, mime_type)
    except Exception as e:
        app_logger.error(f"Failed to upload generated image to {settings.GENERATED_IMAGES_BUCKET}/{path}: {e}")
        raise
    app_logger.info(f"Uploaded generated image ({len(content)} bytes) to {path}")
    return url.rstrip("?")
