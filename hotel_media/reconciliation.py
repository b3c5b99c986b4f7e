# hotel_media/reconciliation.py
import concurrent.futures
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from django.conf import settings

from .exceptions import TransientIOError
from .naming import (
    TIER_ORIGINALS, TIER_PUBLIC, content_type_for, normalize_slug, parse_filename, parse_tmp_name,
)
from .object_store import ObjectStoreClient
from .repository import MediaIndexRepository, build_index_row

logger = logging.getLogger(__name__)

LEGACY_ROOT = "hotel-images"


@dataclass
class GlobalReconcileResult:
    total_files: int = 0
    records_processed: int = 0
    inserted: int = 0
    updated: int = 0
    errors: List[str] = field(default_factory=list)
    dry_run: bool = False
    sample: List[dict] = field(default_factory=list)

    def to_dict(self):
        data = {
            "total_files": self.total_files,
            "records_processed": self.records_processed,
            "inserted": self.inserted,
            "updated": self.updated,
            "errors": list(self.errors),
            "dry_run": self.dry_run,
        }
        if self.dry_run:
            data["sample"] = list(self.sample)
        return data


@dataclass
class HotelReconcileResult:
    external_id: str
    slug: str
    created: int = 0
    seq_extracted: int = 0
    seq_failed: int = 0
    deleted: int = 0
    sources: Dict[str, Optional[str]] = field(default_factory=dict)

    def to_dict(self):
        return {
            "external_id": self.external_id,
            "slug": self.slug,
            "created": self.created,
            "seq_extracted": self.seq_extracted,
            "seq_failed": self.seq_failed,
            "deleted": self.deleted,
            "sources": dict(self.sources),
        }


def _row_preview(row) -> dict:
    return {
        "external_id": row.external_id,
        "slug": row.slug,
        "file_name": row.file_name,
        "file_path": row.file_path,
        "public_url": row.public_url,
        "file_type": row.file_type,
        "file_size": row.file_size,
        "sequence": row.sequence,
    }


class ReconciliationEngine:
    """Rebuilds the media index from what is actually in storage."""

    def __init__(self, store: ObjectStoreClient, repository: MediaIndexRepository = None):
        config = settings.HOTEL_MEDIA
        self.store = store
        self.repository = repository or MediaIndexRepository()
        self.roots = list(config["SWEEP_ROOTS"])
        self.scan_batch_size = config["SCAN_BATCH_SIZE"]
        self.upsert_batch_size = config["UPSERT_BATCH_SIZE"]
        self.sample_size = config["SAMPLE_SIZE"]

    # --- Global sweep (upsert) ---

    def reconcile_all(self, dry_run: bool = False) -> GlobalReconcileResult:
        result = GlobalReconcileResult(dry_run=dry_run)
        rows = []

        for root in self.roots:
            try:
                folders = self.store.list_folders(root)
            except TransientIOError as e:
                logger.error(f"Could not list '{root}': {e}")
                result.errors.append(f"{root}: could not list folders")
                continue
            logger.info(f"Sweeping {len(folders)} folder(s) under '{root}'.")

            for start in range(0, len(folders), self.scan_batch_size):
                batch = folders[start:start + self.scan_batch_size]
                for folder, listing, error in self._list_batch(root, batch):
                    if error is not None:
                        result.errors.append(f"{root}/{folder}: {error}")
                        continue
                    result.total_files += len(listing)
                    rows.extend(self._rows_for_folder(root, folder, listing, result.errors))

        result.records_processed = len(rows)
        if dry_run:
            result.sample = [_row_preview(row) for row in rows[:self.sample_size]]
            logger.info(f"Dry run: {len(rows)} record(s) would be upserted, {len(result.errors)} error(s).")
            return result

        for start in range(0, len(rows), self.upsert_batch_size):
            inserted, updated, errors = self.repository.upsert_batch(rows[start:start + self.upsert_batch_size])
            result.inserted += inserted
            result.updated += updated
            result.errors.extend(errors)

        logger.info(
            f"Index sweep finished: {result.total_files} file(s), {result.inserted} inserted, "
            f"{result.updated} updated, {len(result.errors)} error(s)."
        )
        return result

    def _list_batch(self, root: str, folders: List[str]):
        outcomes = {}
        with concurrent.futures.ThreadPoolExecutor(max_workers=len(folders)) as executor:
            futures = {executor.submit(self.store.list, f"{root}/{folder}"): folder for folder in folders}
            for future in concurrent.futures.as_completed(futures):
                folder = futures[future]
                try:
                    outcomes[folder] = (future.result(), None)
                except TransientIOError as e:
                    logger.warning(f"Listing {root}/{folder} failed: {e}")
                    outcomes[folder] = (None, e)
        return [(folder,) + outcomes[folder] for folder in folders]

    def _rows_for_folder(self, root: str, folder: str, listing, errors: List[str]):
        rows = []
        for obj in listing:
            path = f"{root}/{folder}/{obj.name}"
            if parse_tmp_name(obj.name):
                errors.append(f"{path}: left over from an interrupted reorder")
                continue
            parsed = parse_filename(obj.name)
            if parsed is None:
                errors.append(f"{path}: unrecognized file name")
                continue
            rows.append(build_index_row(
                external_id=parsed.external_id,
                slug=folder,
                tier=root,
                file_name=obj.name,
                file_size=obj.size,
                file_type=content_type_for(obj.name),
                public_url=self.store.public_url(path),
                sequence=parsed.sequence,
            ))
        return rows

    # --- Single hotel (replace-all) ---

    def candidate_dirs(self, slug: str, external_id: str) -> Dict[str, List[str]]:
        return {
            TIER_PUBLIC: [f"{TIER_PUBLIC}/{slug}", f"{LEGACY_ROOT}/{external_id}/{TIER_PUBLIC}"],
            TIER_ORIGINALS: [f"{TIER_ORIGINALS}/{slug}", f"{LEGACY_ROOT}/{external_id}/{TIER_ORIGINALS}"],
        }

    def reconcile_one(self, external_id: str, slug: str) -> HotelReconcileResult:
        """
        Replaces every index row of one hotel with what storage holds now.

        Storage is listed before anything is deleted, so a listing failure
        leaves the existing rows untouched.
        """
        slug = normalize_slug(slug)
        external_id = str(external_id)
        result = HotelReconcileResult(external_id=external_id, slug=slug)

        # Public first: on a name clash the public object wins.
        by_name = {}
        for tier in (TIER_PUBLIC, TIER_ORIGINALS):
            directory, listing = self._first_non_empty(self.candidate_dirs(slug, external_id)[tier])
            result.sources[tier] = directory
            for obj in listing:
                if obj.name not in by_name and not parse_tmp_name(obj.name):
                    by_name[obj.name] = (directory, obj)

        rows = []
        for name, (directory, obj) in by_name.items():
            parsed = parse_filename(name)
            sequence = parsed.sequence if parsed and parsed.external_id == external_id else None
            if sequence is None:
                result.seq_failed += 1
            else:
                result.seq_extracted += 1
            path = f"{directory}/{name}"
            row = build_index_row(
                external_id=external_id,
                slug=slug,
                tier=directory.split("/")[0],
                file_name=name,
                file_size=obj.size,
                file_type=obj.content_type or content_type_for(name),
                public_url=self.store.public_url(path),
                sequence=sequence,
            )
            row.file_path = row.storage_path = path
            rows.append(row)

        result.deleted, result.created = self.repository.replace_for_hotel(external_id, rows)
        logger.info(
            f"Re-indexed {slug} ({external_id}): {result.created} row(s), "
            f"{result.seq_extracted} with sequence, {result.seq_failed} without."
        )
        return result

    def _first_non_empty(self, directories: List[str]):
        for directory in directories:
            listing = self.store.list(directory)
            if listing:
                return directory, listing
        return None, []
