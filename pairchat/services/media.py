import logging
from typing import Optional

import httpx

from pairchat.config import get_settings
from pairchat.errors import ValidationError

logger = logging.getLogger(__name__)


class MediaStorage:
    """Turns raw image payloads into stable URLs.

    Payloads that already are http(s) URLs are kept as they are. Anything
    else (typically a base64 data URI) is uploaded to the configured endpoint
    and only the returned URL is kept.
    """

    def __init__(self, upload_url: Optional[str] = None, upload_preset: Optional[str] = None):
        settings = get_settings()
        self.upload_url = settings.media_upload_url if upload_url is None else upload_url
        self.upload_preset = settings.media_upload_preset if upload_preset is None else upload_preset

    def is_configured(self) -> bool:
        return bool(self.upload_url)

    async def store(self, payload: str) -> str:
        if payload.startswith(("http://", "https://")):
            return payload

        if not self.is_configured():
            raise ValidationError("Image uploads are not configured")

        data = {"file": payload}
        if self.upload_preset:
            data["upload_preset"] = self.upload_preset

        try:
            async with httpx.AsyncClient(timeout=30) as client:
                response = await client.post(self.upload_url, data=data)
        except httpx.HTTPError as e:
            logger.error(f"Image upload failed: {e}")
            raise ValidationError("Failed to upload image. Please try again.")

        if response.status_code == 413:
            raise ValidationError("File size too large. Please select an image smaller than 10MB.")
        if response.status_code >= 400:
            logger.error(f"Image upload rejected ({response.status_code}): {response.text}")
            raise ValidationError("Failed to upload image. Please try again.")

        body = response.json()
        url = body.get("secure_url") or body.get("url")
        if not url:
            raise ValidationError("Failed to upload image. Please try again.")
        return url
