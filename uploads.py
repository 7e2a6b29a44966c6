import logging
import os
import re
import secrets
import shutil
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from fastapi import UploadFile

from errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {".jpeg", ".jpg", ".png", ".gif", ".webp"}
ALLOWED_MIME_TYPES = {"image/jpeg", "image/jpg", "image/png", "image/gif", "image/webp"}
MAX_FILE_SIZE = 10 * 1024 * 1024
MAX_TRUCK_FILES = 10
MAX_GENERAL_FILES = 5

_SAFE_SEGMENT = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


def is_safe_segment(value: str) -> bool:
    """True when ``value`` can only name an entry directly inside a directory."""
    if not value or ".." in value or "/" in value or "\\" in value:
        return False
    return bool(_SAFE_SEGMENT.match(value))


def generate_filename(original_name: str) -> str:
    extension = os.path.splitext(original_name or "")[1].lower()
    return f"{int(time.time() * 1000)}-{secrets.token_hex(4)}{extension}"


def _file_size(upload: UploadFile) -> int:
    stream = upload.file
    stream.seek(0, os.SEEK_END)
    size = stream.tell()
    stream.seek(0)
    return size


def validate_files(files: List[UploadFile], max_files: int) -> List[int]:
    """Check every file before any is written. Returns the sizes in order."""
    if not files:
        raise ValidationError("No files uploaded", code="NO_FILES")
    if len(files) > max_files:
        raise ValidationError(
            f"Too many files. Maximum is {max_files} files per upload.", code="TOO_MANY_FILES"
        )

    sizes = []
    for upload in files:
        extension = os.path.splitext(upload.filename or "")[1].lower()
        mime_type = (upload.content_type or "").lower()
        if extension not in ALLOWED_EXTENSIONS or mime_type not in ALLOWED_MIME_TYPES:
            raise ValidationError(
                "Only image files (jpeg, jpg, png, gif, webp) are allowed", code="INVALID_FILE_TYPE"
            )
        size = _file_size(upload)
        if size > MAX_FILE_SIZE:
            raise ValidationError(
                "File too large. Maximum file size is 10MB per file.", code="FILE_TOO_LARGE"
            )
        sizes.append(size)
    return sizes


class UploadManager:
    def __init__(self, uploads_dir):
        self.root = Path(uploads_dir)
        self.trucks_dir = self.root / "trucks"
        self.general_dir = self.root / "general"

    def ensure_directories(self) -> None:
        self.trucks_dir.mkdir(parents=True, exist_ok=True)
        self.general_dir.mkdir(parents=True, exist_ok=True)

    def truck_dir(self, truck_id: str) -> Path:
        if not is_safe_segment(truck_id):
            raise ValidationError("Invalid truck id", code="INVALID_TRUCK_ID")
        return self.trucks_dir / truck_id

    def _store_files(self, target_dir: Path, files: List[UploadFile], sizes: List[int]) -> List[dict]:
        target_dir.mkdir(parents=True, exist_ok=True)
        written = []
        saved = []
        try:
            for upload, size in zip(files, sizes):
                filename = generate_filename(upload.filename)
                destination = target_dir / filename
                with open(destination, "wb") as handle:
                    shutil.copyfileobj(upload.file, handle)
                written.append(destination)
                saved.append({
                    "filename": filename,
                    "originalName": upload.filename,
                    "size": size,
                })
        except OSError:
            for path in written:
                path.unlink(missing_ok=True)
            raise
        return saved

    def save_truck_images(
        self,
        truck_id: str,
        files: List[UploadFile],
        captions: Optional[List[str]] = None,
        primary_index: int = 0,
    ) -> List[dict]:
        target_dir = self.truck_dir(truck_id)
        sizes = validate_files(files, MAX_TRUCK_FILES)
        captions = captions or []

        images = []
        for index, saved in enumerate(self._store_files(target_dir, files, sizes)):
            caption = captions[index] if index < len(captions) and captions[index] else f"Image {index + 1}"
            images.append({
                "url": f"/uploads/trucks/{truck_id}/{saved['filename']}",
                "caption": caption,
                "isPrimary": index == primary_index,
                **saved,
            })
        logger.info("Uploaded %d image(s) for truck %s", len(images), truck_id)
        return images

    def save_general_files(self, files: List[UploadFile]) -> List[dict]:
        sizes = validate_files(files, MAX_GENERAL_FILES)
        stored = self._store_files(self.general_dir, files, sizes)
        for saved in stored:
            saved["url"] = f"/uploads/general/{saved['filename']}"
        logger.info("Uploaded %d general file(s)", len(stored))
        return stored

    def list_truck_images(self, truck_id: str) -> List[dict]:
        images_dir = self.truck_dir(truck_id)
        if not images_dir.is_dir():
            return []

        images = []
        for entry in sorted(images_dir.iterdir()):
            if not entry.is_file() or entry.suffix.lower() not in ALLOWED_EXTENSIONS:
                continue
            stat = entry.stat()
            images.append({
                "url": f"/uploads/trucks/{truck_id}/{entry.name}",
                "filename": entry.name,
                "size": stat.st_size,
                "uploadedAt": datetime.fromtimestamp(stat.st_mtime, timezone.utc).isoformat(),
            })
        return images

    def delete_truck_image(self, truck_id: str, filename: str) -> None:
        # Checked before the path is built or touched.
        if not is_safe_segment(filename):
            raise ValidationError("Invalid filename", code="INVALID_FILENAME")

        path = self.truck_dir(truck_id) / filename
        if not path.is_file():
            raise NotFoundError("Image not found")
        path.unlink()
        logger.info("Deleted image %s for truck %s", filename, truck_id)

    def delete_truck_images(self, truck_id: str) -> bool:
        """Remove the whole image directory of a truck. Returns False if there was none."""
        images_dir = self.truck_dir(truck_id)
        if not images_dir.is_dir():
            return False
        shutil.rmtree(images_dir)
        logger.info("Deleted all images for truck %s", truck_id)
        return True

    def rename_truck_dir(self, old_id: str, new_id: str) -> bool:
        """
        Move a truck's images to the directory of its new id.

        Files already under the new id are kept. Returns False if the old id
        had no directory.
        """
        old_dir = self.truck_dir(old_id)
        new_dir = self.truck_dir(new_id)
        if old_id == new_id or not old_dir.is_dir():
            return False

        if not new_dir.exists():
            os.replace(old_dir, new_dir)
        else:
            for entry in old_dir.iterdir():
                os.replace(entry, new_dir / entry.name)
            old_dir.rmdir()
        logger.info("Moved images of truck %s to %s", old_id, new_id)
        return True


def rebase_image_urls(images, old_id: str, new_id: str) -> None:
    """Point image urls stored under ``old_id`` at ``new_id``."""
    old_prefix = f"/uploads/trucks/{old_id}/"
    for image in images:
        if image.url.startswith(old_prefix):
            image.url = f"/uploads/trucks/{new_id}/" + image.url[len(old_prefix):]
