"""
Re-hosting of item pictures in object storage.
"""

import asyncio
import logging
import posixpath
from typing import Optional
from urllib.parse import urlparse

import httpx
from botocore.exceptions import BotoCoreError, ClientError

from core.config import settings
from core.exceptions import ImageRehostError

logger = logging.getLogger(__name__)


class ImageRehoster:
    """
    Copy an upstream image into the bucket and return its public URL.

    Uploads are keyed by the basename of the source URL, so uploading the
    same picture again overwrites the same object.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        s3_client,
        bucket: Optional[str] = None,
        region: Optional[str] = None,
        public_base_url: Optional[str] = None,
    ):
        self.http = http_client
        self.s3 = s3_client
        self.bucket = bucket or settings.AWS_BUCKET_NAME
        self.region = region or settings.AWS_BUCKET_REGION
        self.public_base_url = public_base_url if public_base_url is not None else settings.IMAGE_PUBLIC_BASE_URL

    def public_url(self, filename: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url.rstrip('/')}/{filename}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{filename}"

    async def rehost(self, image_url: str) -> str:
        """
        Fetch `image_url`, upload it, return the public URL.

        Raises:
            ImageRehostError: non-2xx response, non-image content type,
                network failure or rejected upload
        """
        context = {"image_url": image_url}

        try:
            response = await self.http.get(image_url)
        except httpx.HTTPError as e:
            raise ImageRehostError("Image download failed", context=context, original_exception=e)

        if not response.is_success:
            raise ImageRehostError(
                f"HTTP {response.status_code} for image",
                context={**context, "status_code": response.status_code},
            )

        content_type = response.headers.get("content-type", "")
        if not content_type.startswith("image/"):
            raise ImageRehostError(
                "URL does not point to a valid image content type",
                context={**context, "content_type": content_type},
            )

        filename = posixpath.basename(urlparse(image_url).path)
        if not filename:
            raise ImageRehostError("Image URL has no filename", context=context)

        try:
            result = await asyncio.to_thread(
                self.s3.put_object,
                Bucket=self.bucket,
                Key=filename,
                Body=response.content,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as e:
            raise ImageRehostError("Image upload failed", context={**context, "key": filename}, original_exception=e)

        status_code = result.get("ResponseMetadata", {}).get("HTTPStatusCode")
        if status_code != 200:
            raise ImageRehostError(
                "Image upload was not accepted",
                context={**context, "key": filename, "status_code": status_code},
            )

        logger.debug(f"Re-hosted {image_url} as {filename}")
        return self.public_url(filename)
