# hotel_media/ingestion.py
import concurrent.futures
import logging
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Optional

from django.conf import settings
from django.db import DatabaseError

from .exceptions import TransientIOError
from .naming import (
    MAX_SEQUENCE, TIER_ORIGINALS, TIER_PUBLIC, TIERS, build_original_filename, build_original_path,
    build_public_filename, build_public_path, content_type_for, extension_from_url,
    normalize_format, normalize_slug, sequence_of, split_path,
)
from .object_store import ObjectStoreClient
from .renditions import RenditionError, build_public_rendition
from .repository import MediaIndexRepository, build_index_row

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SourceImage:
    url: str
    source_label: str = "manual"


@dataclass
class MigratedImage:
    url: str
    source_label: str
    sequence: int
    original_path: str
    public_path: str
    uploaded: bool = False
    public_uploaded: bool = False
    skipped: bool = False
    original_size: Optional[int] = None
    public_size: Optional[int] = None
    public_content_type: Optional[str] = None
    public_error: Optional[str] = None


@dataclass
class IngestionResult:
    slug: str = ""
    external_id: str = ""
    migrated_images: List[MigratedImage] = field(default_factory=list)
    statistics: Dict[str, int] = field(default_factory=lambda: {"total": 0, "succeeded": 0, "failed": 0, "skipped": 0})
    errors: List[str] = field(default_factory=list)

    def to_dict(self):
        return {
            "slug": self.slug,
            "external_id": self.external_id,
            "migrated_images": [asdict(image) for image in self.migrated_images],
            "statistics": dict(self.statistics),
            "errors": list(self.errors),
        }


@dataclass
class _PlannedImage:
    image: SourceImage
    sequence: Optional[int]
    duplicate: bool = False


class IngestionEngine:
    """
    Copies externally hosted images into both storage tiers.

    Sequence numbers are planned up front on the calling thread, then the
    images are fetched and uploaded in bounded groups on a thread pool. Only
    HTTP and storage calls run on the pool; index writes stay on the caller's
    thread (and its database connection).
    """

    def __init__(self, store: ObjectStoreClient, fetcher, repository: MediaIndexRepository = None,
                 public_width: int = None, public_format: str = None, quality: int = None,
                 batch_size: int = None, workers: int = None):
        config = settings.HOTEL_MEDIA
        self.store = store
        self.fetcher = fetcher
        self.repository = repository or MediaIndexRepository()
        self.public_width = public_width or config["PUBLIC_WIDTH"]
        self.public_format = normalize_format(public_format or config["PUBLIC_FORMAT"])
        self.quality = quality or config["PUBLIC_QUALITY"]
        self.batch_size = batch_size or config["INGEST_BATCH_SIZE"]
        self.workers = workers or config["INGEST_WORKERS"]

    def ingest(self, slug: str, external_id: str, images: List[SourceImage]) -> IngestionResult:
        slug = normalize_slug(slug)
        external_id = str(external_id)
        # Fails fast on a bad slug or id, before any I/O.
        build_original_filename(slug, external_id, 1)

        result = IngestionResult(slug=slug, external_id=external_id)
        result.statistics["total"] = len(images)
        if not images:
            return result

        plans = self._plan(slug, external_id, images)
        logger.info(f"Ingesting {len(images)} image(s) for {slug} ({external_id}).")

        for start in range(0, len(plans), self.batch_size):
            group = plans[start:start + self.batch_size]
            outcomes = self._run_group(slug, external_id, group)
            self._record(slug, external_id, outcomes, result)

        stats = result.statistics
        logger.info(
            f"Ingestion for {slug} finished: {stats['succeeded']} succeeded, "
            f"{stats['skipped']} skipped, {stats['failed']} failed."
        )
        return result

    def _plan(self, slug: str, external_id: str, images: List[SourceImage]) -> List[_PlannedImage]:
        listings = {tier: {obj.name: obj for obj in self.store.list(f"{tier}/{slug}")} for tier in TIERS}
        known = self._known_sequences(slug, external_id, listings[TIER_ORIGINALS])
        highest = max(
            [0]
            + [sequence_of(name, external_id) or 0 for names in listings.values() for name in names]
            + list(known.values())
        )

        planned_urls = {}
        plans = []
        for image in images:
            if image.url in planned_urls:
                plans.append(_PlannedImage(image=image, sequence=planned_urls[image.url], duplicate=True))
                continue
            sequence = known.get(image.url)
            if sequence is None:
                highest += 1
                sequence = highest
            planned_urls[image.url] = sequence
            plans.append(_PlannedImage(image=image, sequence=sequence))
        return plans

    def _known_sequences(self, slug: str, external_id: str, originals) -> Dict[str, int]:
        """
        Source URLs the index has seen before, mapped to their sequence. An
        entry only counts while storage still holds the indexed original at
        the indexed size; otherwise the slot may belong to another image now.
        """
        known = {}
        for url, (sequence, file_path, file_size) in self.repository.originals_by_source_url(external_id).items():
            parts = split_path(file_path)
            stored = originals.get(parts[2]) if parts and parts[:2] == (TIER_ORIGINALS, slug) else None
            if stored is None or stored.size != file_size:
                logger.warning(f"Index entry for {url} no longer matches {file_path}; it gets a new sequence.")
                continue
            known[url] = sequence
        return known

    def _run_group(self, slug: str, external_id: str, group: List[_PlannedImage]):
        outcomes = []
        with concurrent.futures.ThreadPoolExecutor(max_workers=min(self.workers, len(group))) as executor:
            futures = {}
            for plan in group:
                if plan.duplicate:
                    outcomes.append((plan, None, None))
                    continue
                futures[executor.submit(self._migrate_one, slug, external_id, plan)] = plan

            for future in concurrent.futures.as_completed(futures):
                plan = futures[future]
                try:
                    outcomes.append((plan, future.result(), None))
                except Exception as e:
                    # One bad image never takes its siblings down.
                    outcomes.append((plan, None, e))
        order = {id(plan): i for i, plan in enumerate(group)}
        outcomes.sort(key=lambda outcome: order[id(outcome[0])])
        return outcomes

    def _migrate_one(self, slug: str, external_id: str, plan: _PlannedImage) -> MigratedImage:
        if plan.sequence > MAX_SEQUENCE:
            raise ValueError(f"no sequence left (would be {plan.sequence}, max {MAX_SEQUENCE})")

        url = plan.image.url
        original_name = build_original_filename(slug, external_id, plan.sequence, extension_from_url(url))
        public_name = build_public_filename(slug, external_id, plan.sequence, self.public_width, self.public_format)
        migrated = MigratedImage(
            url=url,
            source_label=plan.image.source_label,
            sequence=plan.sequence,
            original_path=build_original_path(slug, original_name),
            public_path=build_public_path(slug, public_name),
        )

        source = self.fetcher.fetch(url)
        existing = self.store.download(migrated.original_path)
        migrated.original_size = len(source)

        if existing is not None and len(existing) == len(source):
            migrated.skipped = True
            if not self.store.exists(migrated.public_path):
                self._upload_public(migrated, source)
            logger.info(f"Skipping {migrated.original_path}: same size as source.")
            return migrated

        self.store.upload(migrated.original_path, source, content_type_for(original_name), overwrite=True)
        migrated.uploaded = True
        self._upload_public(migrated, source)
        logger.info(f"Migrated {url} -> {migrated.original_path}")
        return migrated

    def _upload_public(self, migrated: MigratedImage, source: bytes) -> None:
        """Public tier failures are recorded on the item but never fail it."""
        try:
            data = build_public_rendition(source, self.public_width, self.public_format, self.quality)
            content_type = content_type_for(migrated.public_path)
        except RenditionError as e:
            logger.warning(f"{e} for {migrated.url}; storing the source bytes as the public copy.")
            data = source
            content_type = content_type_for(migrated.original_path)

        try:
            self.store.upload(migrated.public_path, data, content_type, overwrite=True)
        except TransientIOError as e:
            logger.error(f"Public upload failed for {migrated.public_path}: {e}")
            migrated.public_error = str(e)
            return
        migrated.public_uploaded = True
        migrated.public_size = len(data)
        migrated.public_content_type = content_type

    def _record(self, slug: str, external_id: str, outcomes, result: IngestionResult) -> None:
        rows = []
        for plan, migrated, error in outcomes:
            stats = result.statistics
            if error is not None:
                stats["failed"] += 1
                result.errors.append(f"{plan.image.url}: {error}")
                logger.warning(f"Failed to ingest {plan.image.url}: {error}")
                continue
            if migrated is None:
                stats["skipped"] += 1
                logger.info(f"Skipping {plan.image.url}: listed more than once.")
                continue

            result.migrated_images.append(migrated)
            stats["skipped" if migrated.skipped else "succeeded"] += 1
            rows.extend(self._index_rows(slug, external_id, migrated))

        for row in rows:
            try:
                self.repository.upsert(row)
            except DatabaseError as e:
                logger.error(f"Index update failed for {row.file_path}: {e}")

    def _index_rows(self, slug: str, external_id: str, migrated: MigratedImage):
        rows = [build_index_row(
            external_id=external_id,
            slug=slug,
            tier=TIER_ORIGINALS,
            file_name=migrated.original_path.rsplit("/", 1)[-1],
            file_size=migrated.original_size,
            file_type=content_type_for(migrated.original_path),
            public_url=self.store.public_url(migrated.original_path),
            sequence=migrated.sequence,
            original_url=migrated.url,
        )]
        if migrated.public_uploaded:
            rows.append(build_index_row(
                external_id=external_id,
                slug=slug,
                tier=TIER_PUBLIC,
                file_name=migrated.public_path.rsplit("/", 1)[-1],
                file_size=migrated.public_size,
                file_type=migrated.public_content_type,
                public_url=self.store.public_url(migrated.public_path),
                sequence=migrated.sequence,
                original_url=migrated.url,
            ))
        return rows
