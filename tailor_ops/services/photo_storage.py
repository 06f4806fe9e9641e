"""
Inspiration photo storage in a Supabase Storage bucket
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..config.settings import Settings
from ..core.exceptions import PhotoUploadError
from ..core.timestamps import utc_now

logger = logging.getLogger(__name__)


@dataclass
class PhotoUpload:
    """A file picked by the customer"""
    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


def normalize_photos(raw: Any) -> List[Dict[str, Any]]:
    """Photo entries as {url, name, uploaded_at}; legacy rows stored bare URLs"""
    if not isinstance(raw, list):
        return []
    photos = []
    for photo in raw:
        if isinstance(photo, dict) and photo.get("url"):
            photos.append(photo)
        elif isinstance(photo, str) and photo:
            photos.append({"url": photo, "name": "Inspiration Photo", "uploaded_at": None})
    return photos


class InspirationPhotoStore:
    def __init__(self, client, settings: Settings, clock: Callable[[], float] = time.time):
        self.client = client
        self.bucket = settings.INSPIRATION_BUCKET
        self.max_photos = settings.MAX_INSPIRATION_PHOTOS
        self.max_bytes = settings.MAX_PHOTO_BYTES
        self.clock = clock

    def storage_key(self, uid: str, filename: str) -> str:
        # Same-name files picked together upload in the same millisecond
        return f"inspiration/{uid}/{int(self.clock() * 1000)}-{uuid.uuid4().hex[:8]}-{filename}"

    def select(self, files: List[PhotoUpload], existing_count: int = 0) -> Tuple[List[PhotoUpload], List[str]]:
        """Keep images under the size limit, capped at the per-order maximum"""
        valid, skipped = [], []
        for upload in files:
            if not upload.content_type.startswith("image/"):
                skipped.append(f"{upload.filename}: not an image")
            elif upload.size > self.max_bytes:
                skipped.append(f"{upload.filename}: larger than {self.max_bytes // (1024 * 1024)}MB")
            else:
                valid.append(upload)

        room = max(0, self.max_photos - existing_count)
        if len(valid) > room:
            skipped.extend(f"{u.filename}: limit of {self.max_photos} photos reached" for u in valid[room:])
            valid = valid[:room]

        if skipped:
            logger.warning(f"⚠️ Skipped {len(skipped)} photos: {skipped}")
        return valid, skipped

    async def _upload_one(self, uid: str, upload: PhotoUpload) -> Optional[Dict[str, Any]]:
        key = self.storage_key(uid, upload.filename)
        try:
            bucket = self.client.storage.from_(self.bucket)
            await bucket.upload(key, upload.data, {"content-type": upload.content_type})
            url = await bucket.get_public_url(key)
            return {"url": url, "name": upload.filename, "uploaded_at": utc_now().isoformat()}
        except Exception as e:
            logger.error(f"❌ Error uploading photo {upload.filename}: {e}")
            return None

    async def upload(self, uid: str, files: List[PhotoUpload], existing_count: int = 0) -> Dict[str, Any]:
        """Upload concurrently; individual failures are dropped from the result"""
        try:
            if not uid:
                raise PhotoUploadError("You must be logged in to upload photos", code="not_authenticated")
            valid, skipped = self.select(files, existing_count)
            results = await asyncio.gather(*(self._upload_one(uid, upload) for upload in valid))
            photos = [photo for photo in results if photo is not None]

            logger.info(f"✅ Uploaded {len(photos)}/{len(valid)} inspiration photos for {uid}")
            return {
                "success": True,
                "photos": photos,
                "skipped": skipped,
                "failed": len(valid) - len(photos),
            }
        except PhotoUploadError as e:
            return {"success": False, "error": e.message, "code": e.code, "photos": []}

    def _path_from(self, path_or_url: str) -> str:
        marker = f"/object/public/{self.bucket}/"
        if marker in path_or_url:
            return path_or_url.split(marker, 1)[1].split("?", 1)[0]
        return path_or_url

    async def remove(self, path_or_url: str) -> bool:
        try:
            path = self._path_from(path_or_url)
            await self.client.storage.from_(self.bucket).remove([path])
            logger.info(f"🗑️ Removed inspiration photo {path}")
            return True
        except Exception as e:
            logger.error(f"❌ Error removing photo {path_or_url}: {e}")
            return False
