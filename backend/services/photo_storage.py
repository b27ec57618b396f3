import hashlib
import logging
from pathlib import Path
from typing import Protocol, TypedDict

from backend.config import TRACKER_UPLOADS_SUBDIR, UPLOADS_DIR
from backend.errors import UploadFailedError

logger = logging.getLogger(__name__)

EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
}


class StoredPhoto(TypedDict):
    image_url: str
    image_hash: str


class PhotoStorage(Protocol):
    def save(self, data: bytes, *, name_hint: str, content_type: str) -> StoredPhoto: ...

    def delete(self, image_url: str) -> None: ...


def image_hash(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


class LocalPhotoStorage:
    """
    Stores evidence photos under `<uploads>/exam-tracker/` and serves them
    from `/uploads/exam-tracker/<file>`.
    """

    def __init__(self, root: Path, subdir: str = TRACKER_UPLOADS_SUBDIR):
        self.root = Path(root)
        self.subdir = subdir

    @property
    def directory(self) -> Path:
        return self.root / self.subdir

    def save(self, data: bytes, *, name_hint: str, content_type: str) -> StoredPhoto:
        ext = EXTENSIONS.get(content_type, ".jpg")
        digest = image_hash(data)
        # digest prefix keeps same-millisecond retries from colliding
        filename = f"{name_hint}_{digest[:12]}{ext}"
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            (self.directory / filename).write_bytes(data)
        except OSError as exc:
            logger.exception("Could not store photo %s", filename)
            raise UploadFailedError("Photo upload failed. Please try again.") from exc
        return {
            "image_url": f"/uploads/{self.subdir}/{filename}",
            "image_hash": digest,
        }

    def delete(self, image_url: str) -> None:
        prefix = f"/uploads/{self.subdir}/"
        if not image_url.startswith(prefix):
            return
        path = self.directory / image_url[len(prefix):]
        try:
            path.unlink(missing_ok=True)
        except OSError:
            logger.warning("Could not remove orphaned photo %s", path)


def get_photo_storage() -> PhotoStorage:
    return LocalPhotoStorage(UPLOADS_DIR)
