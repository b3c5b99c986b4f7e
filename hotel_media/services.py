# hotel_media/services.py
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import List, Optional

from django.conf import settings

from .exceptions import (
    ImageNotFound, MediaValidationError, StorageError, UpstreamServiceError, VersionSlugRequired,
)
from .folder_sync import FolderSync, FolderSyncResult
from .ingestion import IngestionEngine, IngestionResult, SourceImage
from .naming import (
    TIER_ORIGINALS, TIER_PUBLIC, normalize_slug, original_candidates, parse_filename, split_path,
)
from .object_store import ObjectStoreClient
from .reconciliation import LEGACY_ROOT, GlobalReconcileResult, HotelReconcileResult, ReconciliationEngine
from .reorder import ReorderEngine, ReorderResult
from .repository import MediaIndexRepository
from .versions import VersionCounter
from hotel_media_internals.clients import HotelDirectoryClient, HotelRef, SourceImageFetcher
from hotel_media_internals.sabre import UnparseableResponse, build_sabre_client

logger = logging.getLogger(__name__)


@dataclass
class DeleteResult:
    slug: str
    external_id: str = ""
    deleted: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    index_rows_deleted: int = 0

    def to_dict(self):
        return {
            "slug": self.slug,
            "external_id": self.external_id,
            "deleted": list(self.deleted),
            "errors": list(self.errors),
            "index_rows_deleted": self.index_rows_deleted,
        }


class MediaPipelineService:
    """
    Entry point for everything outside the pipeline: API views, management
    commands and queue workers.

    Ingest, reorder and folder sync for the same slug are serialized within
    this process. Nothing coordinates separate processes.
    """

    _slug_locks = {}
    _slug_locks_guard = threading.Lock()

    def __init__(self, store: ObjectStoreClient = None, directory: HotelDirectoryClient = None,
                 fetcher: SourceImageFetcher = None, sabre_client=None,
                 repository: MediaIndexRepository = None, versions: VersionCounter = None):
        self.store = store or ObjectStoreClient()
        self.repository = repository or MediaIndexRepository()
        self.versions = versions or VersionCounter()
        self._directory = directory
        self._fetcher = fetcher
        self._sabre_client = sabre_client

    # Collaborators are built on first use so a missing setting only breaks the operations that need it.
    @property
    def directory(self) -> HotelDirectoryClient:
        if self._directory is None:
            self._directory = HotelDirectoryClient()
        return self._directory

    @property
    def fetcher(self) -> SourceImageFetcher:
        if self._fetcher is None:
            self._fetcher = SourceImageFetcher()
        return self._fetcher

    @property
    def sabre_client(self):
        if self._sabre_client is None:
            self._sabre_client = build_sabre_client()
        return self._sabre_client

    @contextmanager
    def _hotel_lock(self, slug: str):
        with self._slug_locks_guard:
            lock = self._slug_locks.setdefault(slug, threading.Lock())
        with lock:
            yield

    def resolve_hotel(self, external_id: str) -> HotelRef:
        hotel = self.directory.get_hotel(str(external_id))
        slug = normalize_slug(hotel.slug)
        if not slug:
            raise MediaValidationError(f"Hotel '{external_id}' has an unusable slug '{hotel.slug}'.")
        return HotelRef(external_id=hotel.external_id, slug=slug)

    # --- Operations ---

    def ingest(self, external_id: str, images: list, slug: Optional[str] = None) -> IngestionResult:
        sources = [
            image if isinstance(image, SourceImage)
            else SourceImage(url=image["url"], source_label=image.get("source_label") or "manual")
            for image in images
        ]
        max_images = settings.HOTEL_MEDIA["MAX_INGEST_IMAGES"]
        if len(sources) > max_images:
            raise MediaValidationError(f"At most {max_images} images can be ingested at once.")

        slug = normalize_slug(slug) if slug else self.resolve_hotel(external_id).slug
        engine = IngestionEngine(self.store, self.fetcher, self.repository)
        with self._hotel_lock(slug):
            return engine.ingest(slug, str(external_id), sources)

    def import_from_sabre(self, external_id: str) -> IngestionResult:
        hotel = self.resolve_hotel(external_id)
        decoded = self.sabre_client.fetch_images(hotel.external_id)
        if isinstance(decoded, UnparseableResponse):
            logger.error(f"Unparseable Sabre image response for {hotel.external_id}: {decoded.reason}")
            raise UpstreamServiceError("Sabre returned images in a format this service does not understand.")

        urls = decoded.urls[:settings.HOTEL_MEDIA["MAX_INGEST_IMAGES"]]
        logger.info(f"Sabre listed {len(decoded.urls)} image(s) for {hotel.external_id} ({decoded.shape} layout).")
        return self.ingest(hotel.external_id, [SourceImage(url=url, source_label="sabre") for url in urls], slug=hotel.slug)

    def reorder(self, slug: str, ordered_public_paths: List[str]) -> ReorderResult:
        slug = normalize_slug(slug)
        with self._hotel_lock(slug):
            return ReorderEngine(self.store, self.repository).reorder(slug, ordered_public_paths)

    def reconcile_all(self, dry_run: bool = False) -> GlobalReconcileResult:
        return ReconciliationEngine(self.store, self.repository).reconcile_all(dry_run=dry_run)

    def reconcile_one(self, external_id: str) -> HotelReconcileResult:
        hotel = self.resolve_hotel(external_id)
        return ReconciliationEngine(self.store, self.repository).reconcile_one(hotel.external_id, hotel.slug)

    def folder_sync(self, external_id: str) -> FolderSyncResult:
        hotel = self.resolve_hotel(external_id)
        with self._hotel_lock(hotel.slug):
            return FolderSync(self.store).sync(hotel.slug)

    def get_version(self, slug: Optional[str] = None, external_id: Optional[str] = None) -> int:
        return self.versions.get_version(slug=slug, external_id=external_id)

    def bump_version(self, slug: Optional[str] = None, external_id: Optional[str] = None) -> int:
        try:
            return self.versions.bump_version(slug=slug, external_id=external_id)
        except VersionSlugRequired:
            hotel = self.resolve_hotel(external_id)
            return self.versions.bump_version(slug=hotel.slug, external_id=hotel.external_id)

    def delete_image(self, public_path: str) -> DeleteResult:
        """Removes a public image, the original it came from, and their index rows."""
        parts = split_path(public_path)
        if parts is None or parts[0] != TIER_PUBLIC:
            raise MediaValidationError(f"'{public_path}' is not a public image path.")
        _, slug, name = parts
        if not self.store.exists(public_path):
            raise ImageNotFound(f"'{public_path}' does not exist.")

        parsed = parse_filename(name)
        directories = [f"{TIER_ORIGINALS}/{slug}"]
        if parsed:
            directories.append(f"{LEGACY_ROOT}/{parsed.external_id}/{TIER_ORIGINALS}")
        original_path = next(
            (f"{directory}/{candidate}"
             for directory in directories
             for candidate in original_candidates(name)
             if self.store.exists(f"{directory}/{candidate}")),
            None,
        )

        result = DeleteResult(slug=slug, external_id=parsed.external_id if parsed else "")
        for path in filter(None, (public_path, original_path)):
            try:
                self.store.remove([path])
                result.deleted.append(path)
            except StorageError as e:
                logger.error(f"Could not delete {path}: {e}")
                result.errors.append(f"{path}: could not be deleted")

        if not result.deleted:
            raise StorageError(f"Nothing could be deleted for {public_path}.")
        result.index_rows_deleted = self.repository.delete_paths(result.deleted)
        logger.info(f"Deleted {', '.join(result.deleted)} ({result.index_rows_deleted} index row(s)).")
        return result

    def index_status(self) -> dict:
        """Compares what storage holds with what the index knows, without writing."""
        preview = self.reconcile_all(dry_run=True)
        indexed = self.repository.count()
        return {
            "storage_file_count": preview.records_processed,
            "unparseable_count": len(preview.errors),
            "index_record_count": indexed,
            "needs_sync": preview.records_processed != indexed,
        }
