"""
JSON file store for the dealership data.

All trucks, site settings and the about page live in one document,
``<DATA_DIR>/trucks.json``. Every call reads the whole file from disk;
nothing is cached.

Writes go through ``JsonStore.write``:

1. copy the current file to ``backups/<name>_<timestamp>.json``
2. prune backups of that file down to the 10 newest
3. stamp ``lastUpdated`` on the document
4. dump to a temp file next to the target and ``os.replace`` it over the
   target, so a crash mid-dump leaves the old file untouched

There is no locking. Two requests that read the same state and then write
both succeed, and whichever ``os.replace`` runs last wins; the other
request's changes are lost. One admin editing occasionally is the
expected load. If that changes, put a single-writer lock around the
read-modify-write in the request handlers.
"""

import json
import logging
import os
import shutil
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from errors import (
    DataCorruptionError,
    DocumentNotFoundError,
    DocumentParseError,
    StoreWriteError,
    utc_now_iso,
)
from schemas import AboutPage, Document, SiteSettings, Truck

logger = logging.getLogger(__name__)

TRUCKS_FILE = "trucks.json"
BACKUPS_TO_KEEP = 10


def default_document() -> dict:
    return Document().model_dump(mode="json", by_alias=True)


class JsonStore:
    def __init__(self, data_dir):
        self.data_dir = Path(data_dir)
        self.backup_dir = self.data_dir / "backups"

    def ensure_directories(self) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.backup_dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, filename: str) -> Path:
        return self.data_dir / filename

    def exists(self, filename: str = TRUCKS_FILE) -> bool:
        return self.path_for(filename).is_file()

    # ---------- raw document access ----------

    def read(self, filename: str = TRUCKS_FILE) -> dict:
        path = self.path_for(filename)
        if not path.is_file():
            raise DocumentNotFoundError(f"File {filename} does not exist")
        try:
            with open(path, "r", encoding="utf-8") as handle:
                return json.load(handle)
        except json.JSONDecodeError as exc:
            logger.error("Error parsing %s: %s", filename, exc)
            raise DocumentParseError(f"Failed to parse {filename}: {exc}") from exc
        except OSError as exc:
            logger.error("Error reading %s: %s", filename, exc)
            raise DataCorruptionError(f"Failed to read {filename}: {exc}") from exc

    def write(self, data: dict, filename: str = TRUCKS_FILE) -> None:
        path = self.path_for(filename)
        self.ensure_directories()
        self.create_backup(filename)

        data["lastUpdated"] = utc_now_iso()

        tmp_path = None
        try:
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=self.data_dir,
                prefix=f".{filename}.",
                suffix=".tmp",
                delete=False,
            ) as handle:
                tmp_path = handle.name
                json.dump(data, handle, indent=2, ensure_ascii=False)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_path, path)
        except (OSError, TypeError, ValueError) as exc:
            if tmp_path and os.path.exists(tmp_path):
                os.remove(tmp_path)
            logger.error("Error writing %s: %s", filename, exc)
            raise StoreWriteError(f"Failed to write {filename}: {exc}") from exc

        logger.info("Successfully wrote %s", filename)

    def verify_integrity(self, filename: str = TRUCKS_FILE) -> None:
        """Re-read a file after a write; raises DataCorruptionError if it is unusable."""
        try:
            Document.model_validate(self.read(filename))
        except DataCorruptionError:
            logger.error("Data integrity check failed for %s", filename)
            raise
        except ValueError as exc:
            logger.error("Data integrity check failed for %s: %s", filename, exc)
            raise DataCorruptionError("Data corruption detected. Please contact administrator.") from exc
        logger.debug("Data integrity verified for %s", filename)

    # ---------- backups ----------

    def _backup_stem(self, filename: str) -> str:
        return Path(filename).stem

    def create_backup(self, filename: str = TRUCKS_FILE) -> Optional[Path]:
        source = self.path_for(filename)
        if not source.is_file():
            return None

        self.backup_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-%fZ")
        stem = self._backup_stem(filename)
        target = self.backup_dir / f"{stem}_{timestamp}.json"
        counter = 1
        while target.exists():
            target = self.backup_dir / f"{stem}_{timestamp}-{counter}.json"
            counter += 1

        shutil.copyfile(source, target)
        logger.info("Created backup: %s", target.name)

        self.clean_old_backups(filename)
        return target

    def list_backups(self, filename: str = TRUCKS_FILE) -> List[Path]:
        """Backups of ``filename``, newest first."""
        if not self.backup_dir.is_dir():
            return []
        prefix = f"{self._backup_stem(filename)}_"
        backups = [
            entry for entry in self.backup_dir.iterdir()
            if entry.is_file() and entry.name.startswith(prefix) and entry.suffix == ".json"
        ]
        # Names embed a microsecond timestamp; they break ties on coarse mtimes.
        backups.sort(key=lambda entry: (entry.stat().st_mtime_ns, entry.name), reverse=True)
        return backups

    def clean_old_backups(self, filename: str = TRUCKS_FILE) -> List[Path]:
        stale = self.list_backups(filename)[BACKUPS_TO_KEEP:]
        for entry in stale:
            entry.unlink()
            logger.info("Deleted old backup: %s", entry.name)
        return stale

    # ---------- typed accessors ----------

    def ensure_document(self) -> None:
        """Create an empty trucks.json on first boot. A corrupt file is left alone."""
        self.ensure_directories()
        if not self.exists(TRUCKS_FILE):
            logger.info("Creating default %s", TRUCKS_FILE)
            self.write(default_document())
            return
        self.verify_integrity(TRUCKS_FILE)
        logger.info("Trucks data file verified")

    def get_document(self) -> Document:
        raw = self.read(TRUCKS_FILE)
        try:
            return Document.model_validate(raw)
        except ValueError as exc:
            raise DocumentParseError(f"{TRUCKS_FILE} does not match the document schema: {exc}") from exc

    def save_document(self, document: Document) -> None:
        data = document.model_dump(mode="json", by_alias=True)
        self.write(data, TRUCKS_FILE)
        document.last_updated = data["lastUpdated"]

    def get_truck_by_id(self, truck_id: str) -> Optional[Truck]:
        for truck in self.get_document().trucks:
            if truck.id == truck_id:
                return truck
        return None

    def get_site_settings(self) -> SiteSettings:
        return self.get_document().site_settings

    def save_site_settings(self, site_settings: SiteSettings) -> Document:
        document = self.get_document()
        document.site_settings = site_settings
        self.save_document(document)
        return document

    def get_about_page(self) -> AboutPage:
        return self.get_document().about_page

    def save_about_page(self, about_page: AboutPage) -> Document:
        document = self.get_document()
        document.about_page = about_page
        self.save_document(document)
        return document
