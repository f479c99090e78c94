"""
Cloudinary proof image host.

Signed upload to the Cloudinary REST upload API.  The signature is the
SHA-1 of the sorted signed parameters followed by the API secret.
"""

import hashlib
import time
from collections.abc import Callable

import httpx

from grading_kernel.exceptions import ProofImageUploadError
from grading_kernel.logging_config import get_logger

logger = get_logger("integrations.image_host")

UPLOAD_URL = "https://api.cloudinary.com/v1_1/{cloud_name}/image/upload"


def sign_params(params: dict[str, str], api_secret: str) -> str:
    to_sign = "&".join(f"{key}={params[key]}" for key in sorted(params))
    return hashlib.sha1((to_sign + api_secret).encode("utf-8")).hexdigest()


class CloudinaryImageHost:
    """``ProofImageHost`` that stores images on Cloudinary and returns ``secure_url``."""

    def __init__(
        self,
        cloud_name: str,
        api_key: str,
        api_secret: str,
        folder: str | None = None,
        timeout_seconds: float = 30.0,
        client: httpx.Client | None = None,
        timestamp: Callable[[], int] | None = None,
    ):
        self._upload_url = UPLOAD_URL.format(cloud_name=cloud_name)
        self._api_key = api_key
        self._api_secret = api_secret
        self._folder = folder
        self._client = client or httpx.Client(timeout=timeout_seconds)
        self._timestamp = timestamp or _unix_now

    def close(self) -> None:
        self._client.close()

    def upload(self, data: bytes, filename: str | None = None) -> str:
        signed = {"timestamp": str(self._timestamp())}
        if self._folder:
            signed["folder"] = self._folder
        form = dict(signed)
        form["api_key"] = self._api_key
        form["signature"] = sign_params(signed, self._api_secret)

        try:
            response = self._client.post(
                self._upload_url,
                data=form,
                files={"file": (filename or "proof.jpg", data)},
            )
        except httpx.RequestError as exc:
            raise ProofImageUploadError(f"request failed: {exc}") from exc

        if response.status_code >= 400:
            message = response.text
            if response.headers.get("content-type", "").startswith("application/json"):
                message = response.json().get("error", {}).get("message", message)
            raise ProofImageUploadError(f"HTTP {response.status_code}: {message}")

        try:
            url = response.json().get("secure_url")
        except ValueError as exc:
            raise ProofImageUploadError("response is not JSON") from exc
        if not url:
            raise ProofImageUploadError("response has no secure_url")

        logger.debug("image_uploaded", extra={"url": url})
        return url


def _unix_now() -> int:
    return int(time.time())
