"""
uploads.py
Profile image hosting through the imgBB HTTP API.
"""

from __future__ import annotations

import logging
import uuid

import requests

from config import settings
from models import UploadResult

logger = logging.getLogger(__name__)


class ImgbbUploader:
    def __init__(self, api_key: str | None, upload_url: str, timeout: float = 30.0):
        self.api_key = api_key
        self.upload_url = upload_url
        self.timeout = timeout

    def upload(self, data: bytes, filename: str) -> UploadResult:
        """
        Upload an image and return its public URL, or an error string the
        caller shows to the user as-is.
        """
        if not self.api_key:
            logger.error("IMGBB_API_KEY is not set")
            return UploadResult(error="Image upload service is not configured. Please add your imgBB API key to the .env file.")

        try:
            response = requests.post(
                self.upload_url,
                params={"key": self.api_key},
                files={"image": (filename, data)},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.exception("imgBB upload request failed")
            return UploadResult(error=f"An unexpected error occurred during image upload: {exc}")

        if not response.ok:
            logger.error("imgBB upload failed: %s", response.text)
            return UploadResult(error=f"Failed to upload image. Status: {response.status_code}")

        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}
        data = payload.get("data") if payload.get("success") else None
        url = data.get("url") if isinstance(data, dict) else None
        if not url:
            logger.error("imgBB did not return a success status or valid data: %s", payload)
            return UploadResult(error="Failed to process upload response from image service.")
        return UploadResult(url=url)


def get_uploader() -> ImgbbUploader:
    return ImgbbUploader(settings.IMGBB_API_KEY, settings.IMGBB_UPLOAD_URL, settings.HTTP_TIMEOUT_SECONDS)


def placeholder_image_url(seed: str | None = None) -> str:
    return settings.PLACEHOLDER_IMAGE_URL.format(seed=seed or uuid.uuid4().hex)
