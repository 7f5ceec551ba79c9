"""Image uploads to Cloudinary over httpx."""

from __future__ import annotations

import logging
import time

import httpx
from cloudinary.utils import api_sign_request

from eventhub.config import ImageStoreSettings
from eventhub.errors import UploadError

log = logging.getLogger(__name__)

API_BASE = "https://api.cloudinary.com/v1_1"


class ImageStore:
    """Uploads event images and returns their public HTTPS URL."""

    #: Seconds allowed for a single upload request.
    timeout: float = 30.0

    def __init__(
        self, settings: ImageStoreSettings, client: httpx.AsyncClient | None = None
    ) -> None:
        self.settings = settings
        self._client = client
        self._owns_client = client is None

    @property
    def upload_url(self) -> str:
        return f"{API_BASE}/{self.settings.cloud_name}/image/upload"

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout)
            self._owns_client = True
        return self._client

    async def upload(
        self, data: bytes, filename: str, content_type: str | None = None
    ) -> str:
        """Upload *data* and return the ``secure_url`` the store assigned."""
        params = {
            "folder": self.settings.folder,
            "timestamp": str(int(time.time())),
        }
        form = {
            **params,
            "api_key": self.settings.api_key,
            "signature": api_sign_request(params, self.settings.api_secret),
        }
        files = {"file": (filename, data, content_type or "application/octet-stream")}

        client = await self._ensure_client()
        try:
            resp = await client.post(self.upload_url, data=form, files=files)
            resp.raise_for_status()
            body = resp.json()
        except httpx.HTTPStatusError as exc:
            raise UploadError(
                f"Image upload rejected with status {exc.response.status_code}"
            ) from exc
        except (httpx.TransportError, ValueError) as exc:
            raise UploadError(f"Image upload failed: {exc}") from exc

        url = body.get("secure_url") if isinstance(body, dict) else None
        if not url:
            raise UploadError("Image store response did not include secure_url")
        log.info("Image uploaded", extra={"folder": self.settings.folder, "url": url})
        return url

    async def aclose(self) -> None:
        if self._owns_client and self._client and not self._client.is_closed:
            await self._client.aclose()
